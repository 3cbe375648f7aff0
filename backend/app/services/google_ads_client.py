"""Google Ads client service abstraction.

WHAT:
    Encapsulates Google Ads SDK usage behind a small async surface:
    - `list_accessible_customers(refresh_token)`: account ids a credential reaches
    - `query(context, gaql)`: GAQL search for one customer, as a login customer
    SDK calls are blocking, so they run in worker threads behind a token
    bucket rate limiter.

WHY:
    - Separation of concerns: keep provider SDK logic out of services/routers.
    - Every SDK failure is translated once, here, into `UnauthorizedError`
      (refresh token rejected) or `UpstreamError` (everything else).
    - Testability: the SDK client factory is injectable.

REFERENCES:
    app/services/google_ads_service.py (GAQL queries + row mapping)
    app/services/account_resolver.py
    https://developers.google.com/google-ads/api/docs/concepts/call-structure
"""

from __future__ import annotations

import asyncio
import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, List, Optional

from google.ads.googleads.client import GoogleAdsClient
from google.ads.googleads.errors import GoogleAdsException
from google.auth.exceptions import RefreshError

from app.exceptions import AdsSyncError, UnauthorizedError, UpstreamError

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def normalize_customer_id(value: Any) -> str:
    """Return a Google Ads customer id as digits only ("123-456-7890" -> "1234567890")."""
    return "".join(ch for ch in str(value or "") if ch.isdigit())


def enum_name(value: Any) -> Optional[str]:
    """Render a proto-plus enum (e.g. CampaignStatus.ENABLED) as "ENABLED"."""
    if value is None:
        return None
    if hasattr(value, "name"):
        return str(value.name)
    return str(value)


def _extract_retry_seconds(error_str: str) -> Optional[int]:
    """Extract retry delay from messages like "Retry in 723 seconds"."""
    match = re.search(r'[Rr]etry in (\d+) seconds', error_str)
    if match:
        return int(match.group(1))
    return None


def _is_quota_error(error_str: str) -> bool:
    return (
        'RESOURCE_EXHAUSTED' in error_str or
        'Too many requests' in error_str or
        'quota' in error_str.lower()
    )


def _describe(exc: Exception) -> str:
    if isinstance(exc, GoogleAdsException):
        messages = [err.message for err in getattr(exc.failure, "errors", []) if getattr(err, "message", None)]
        if messages:
            return "; ".join(messages)
    return str(exc) or exc.__class__.__name__


def translate_error(exc: Exception, customer_id: Optional[str]) -> AdsSyncError:
    """Map an SDK/transport exception onto the sync error taxonomy."""
    if isinstance(exc, AdsSyncError):
        return exc
    if isinstance(exc, RefreshError) or "invalid_grant" in str(exc):
        return UnauthorizedError("Google rejected the stored refresh token. Please reconnect Google Ads.")

    message = _describe(exc)
    if _is_quota_error(message):
        return UpstreamError(
            f"Google Ads quota exhausted: {message[:200]}",
            customer_id=customer_id,
            kind="quota",
            retry_seconds=_extract_retry_seconds(message),
        )
    return UpstreamError(message, customer_id=customer_id)


@dataclass(frozen=True)
class CustomerContext:
    """Who a query targets and who it authenticates as."""

    customer_id: str
    refresh_token: str
    login_customer_id: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "customer_id", normalize_customer_id(self.customer_id))
        if self.login_customer_id:
            object.__setattr__(self, "login_customer_id", normalize_customer_id(self.login_customer_id))

    def __repr__(self) -> str:
        # Keep the refresh token out of logs and tracebacks
        return f"CustomerContext(customer_id={self.customer_id!r}, login_customer_id={self.login_customer_id!r})"


class GoogleAdsRateLimiter:
    """Simple token bucket rate limiter.

    WHAT:
        Guard outgoing requests to honor QPS/quota. Defaults are conservative.
        Thread-safe, since SDK calls run in worker threads.
    """

    def __init__(self, capacity: int = 15, refill_per_sec: float = 5.0) -> None:
        self.capacity = capacity
        self.tokens = float(capacity)
        self.refill_per_sec = refill_per_sec
        self.last = time.monotonic()
        self._lock = threading.Lock()

    def acquire(self) -> None:
        with self._lock:
            now = time.monotonic()
            elapsed = now - self.last
            self.last = now
            self.tokens = min(self.capacity, self.tokens + elapsed * self.refill_per_sec)
            if self.tokens < 1:
                # Sleep until we have at least 1 token
                missing = 1 - self.tokens
                time.sleep(max(0.0, missing / self.refill_per_sec))
                self.last = time.monotonic()
                self.tokens = 1.0
            self.tokens -= 1


SdkClientFactory = Callable[[str, Optional[str]], Any]


# =============================================================================
# CLIENT
# =============================================================================

class GAdsClient:
    """Async wrapper around the Google Ads Python SDK.

    One instance serves every user: SDK clients are built per call from the
    caller's refresh token and login customer id.

    Args:
        developer_token, client_id, client_secret: app-level API credentials.
        client_factory: `(refresh_token, login_customer_id) -> SDK client`;
            defaults to `GoogleAdsClient.load_from_dict`.
        rate_limiter: shared token bucket.
    """

    def __init__(
        self,
        developer_token: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        client_factory: Optional[SdkClientFactory] = None,
        rate_limiter: Optional[GoogleAdsRateLimiter] = None,
    ) -> None:
        self._developer_token = developer_token
        self._client_id = client_id
        self._client_secret = client_secret
        self._client_factory = client_factory or self._build_client_from_tokens
        self._rate = rate_limiter or GoogleAdsRateLimiter()

    @classmethod
    def from_settings(cls, settings: Any) -> "GAdsClient":
        return cls(
            developer_token=settings.GOOGLE_DEVELOPER_TOKEN,
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
        )

    # --- Client factory -------------------------------------------------
    def _build_client_from_tokens(self, refresh_token: str, login_customer_id: Optional[str] = None) -> Any:
        """Build GoogleAdsClient from a connection's refresh token."""
        if not self._developer_token or not self._client_id or not self._client_secret:
            raise ValueError(
                "Missing required Google Ads settings: GOOGLE_DEVELOPER_TOKEN, GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET"
            )

        config = {
            "developer_token": self._developer_token,
            "client_id": self._client_id,
            "client_secret": self._client_secret,
            "refresh_token": refresh_token,
            # google-ads >= 21 requires explicit use_proto_plus
            "use_proto_plus": True,
        }
        # Only pass a valid 10-digit id; the SDK rejects anything else
        if login_customer_id and len(login_customer_id) == 10:
            config["login_customer_id"] = login_customer_id
        return GoogleAdsClient.load_from_dict(config)

    # --- Blocking SDK calls (run in threads) ----------------------------
    def _search_blocking(self, context: CustomerContext, query: str) -> List[Any]:
        client = self._client_factory(context.refresh_token, context.login_customer_id)
        self._rate.acquire()
        service = client.get_service("GoogleAdsService")
        return list(service.search(customer_id=context.customer_id, query=query))

    def _list_accessible_blocking(self, refresh_token: str) -> List[str]:
        client = self._client_factory(refresh_token, None)
        self._rate.acquire()
        response = client.get_service("CustomerService").list_accessible_customers()
        return list(response.resource_names)

    # --- Async surface --------------------------------------------------
    async def query(self, context: CustomerContext, query: str) -> List[Any]:
        """Run a GAQL search and return all rows.

        Raises:
            UnauthorizedError: refresh token rejected.
            UpstreamError: any other API failure, tagged with the customer id.
        """
        try:
            return await asyncio.to_thread(self._search_blocking, context, query)
        except Exception as exc:  # noqa: BLE001
            error = translate_error(exc, context.customer_id)
            if error is exc:
                raise
            logger.warning("[GOOGLE_ADS] Query failed for customer %s: %s", context.customer_id, error.message)
            raise error from exc

    async def list_accessible_customers(self, refresh_token: str) -> List[str]:
        """Return digits-only ids of accounts directly accessible to the credential."""
        try:
            resource_names = await asyncio.to_thread(self._list_accessible_blocking, refresh_token)
        except Exception as exc:  # noqa: BLE001
            error = translate_error(exc, None)
            if error is exc:
                raise
            logger.warning("[GOOGLE_ADS] list_accessible_customers failed: %s", error.message)
            raise error from exc
        # Resource names look like "customers/1234567890"
        return [normalize_customer_id(name.rsplit("/", 1)[-1]) for name in resource_names]
