"""
Sentry Error Tracking
=====================

Error tracking for the API and for sync jobs whose failures are recorded on
the job row (and therefore never reach the unhandled-exception path).

OAuth material is scrubbed from every event before it leaves the process:
the `Authorization` header, the callback's `code`/`state` query parameters
and any extra whose key mentions a token.

Related files:
- app/main.py: Initializes Sentry on app startup
- app/deps.py: Sets user context after authentication
- app/services/google_sync_service.py: Reports handled sync job failures

Environment Variables:
- SENTRY_DSN: Sentry project DSN (Sentry stays disabled without it)
- ENVIRONMENT: Environment name (production, staging, development)
- RELEASE_VERSION: Release tag, set by CI/CD
"""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration

logger = logging.getLogger(__name__)

FILTERED = "[Filtered]"
_SENSITIVE_HEADERS = {"authorization", "cookie"}
_SENSITIVE_QUERY_PARAMS = {"code", "state"}


def _is_sensitive_key(key: str) -> bool:
    key = key.lower()
    return "token" in key or "secret" in key


def scrub_event(event: Dict[str, Any], hint: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """`before_send` hook: strip OAuth codes, bearer tokens and token extras."""
    request = event.get("request") or {}

    headers = request.get("headers")
    if isinstance(headers, dict):
        for name in list(headers):
            if name.lower() in _SENSITIVE_HEADERS:
                headers[name] = FILTERED

    query = request.get("query_string")
    if isinstance(query, str) and query:
        pairs = []
        for pair in query.split("&"):
            name, sep, _ = pair.partition("=")
            pairs.append(f"{name}={FILTERED}" if sep and name in _SENSITIVE_QUERY_PARAMS else pair)
        request["query_string"] = "&".join(pairs)

    extra = event.get("extra")
    if isinstance(extra, dict):
        for key in list(extra):
            if _is_sensitive_key(key):
                extra[key] = FILTERED

    return event


def init_sentry() -> bool:
    """
    Initialize Sentry SDK for FastAPI.

    Returns:
        True if Sentry was initialized, False when no DSN is configured
        or initialization failed.
    """
    dsn = os.environ.get("SENTRY_DSN")
    if not dsn:
        return False

    environment = os.environ.get("ENVIRONMENT", "development")

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                SqlalchemyIntegration(),
                LoggingIntegration(
                    level=logging.INFO,        # INFO+ as breadcrumbs
                    event_level=logging.ERROR,  # ERROR+ as events
                ),
            ],
            traces_sample_rate=0.1,
            send_default_pii=False,
            before_send=scrub_event,
            release=os.environ.get("RELEASE_VERSION"),
        )
        logger.debug("[SENTRY] Initialized for %s environment", environment)
        return True
    except Exception as e:  # noqa: BLE001
        logger.error("[SENTRY] Failed to initialize: %s", e)
        return False


def set_user_context(user_id: str, email: Optional[str] = None) -> None:
    """Attach the authenticated user to subsequent events in this request."""
    sentry_sdk.set_user({"id": user_id, "email": email})


def capture_exception(exception: BaseException, extra: Optional[dict] = None) -> None:
    """
    Report a handled exception (e.g. a failed sync job recorded on its row).

    `customer_id` and `job_id` extras are also set as tags so failures can
    be grouped per advertiser account. A no-op when Sentry was never
    initialized.
    """
    with sentry_sdk.new_scope() as scope:
        for key, value in (extra or {}).items():
            scope.set_extra(key, value)
            if key in ("customer_id", "job_id"):
                scope.set_tag(key, value)
        sentry_sdk.capture_exception(exception)
