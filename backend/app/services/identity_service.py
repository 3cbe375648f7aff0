"""Identity provider (Supabase) admin lookups.

WHAT: Confirms a user id exists before credentials are stored for it
WHY: The OAuth callback arrives without a session; the signed state only
     proves which user started the flow, not that the account still exists

REFERENCES:
    - Supabase Auth admin API: GET /auth/v1/admin/users/{id}
    - app/routers/google_oauth.py (callback)
"""

import logging
from dataclasses import dataclass
from typing import Any, Optional
from uuid import UUID

import httpx

from app.exceptions import NotFoundError, UpstreamError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserProfile:
    id: UUID
    email: Optional[str] = None


class IdentityClient:
    """Supabase admin API client authenticated with the service role key."""

    def __init__(
        self,
        base_url: Optional[str],
        service_role_key: Optional[str],
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or "").rstrip("/")
        self.service_role_key = service_role_key
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Any) -> "IdentityClient":
        return cls(settings.SUPABASE_URL, settings.SUPABASE_SERVICE_ROLE_KEY)

    async def validate_user(self, user_id: UUID) -> UserProfile:
        """Return the user's profile.

        Raises:
            NotFoundError: the identity provider has no such user
            UpstreamError: the identity provider is misconfigured or unreachable
        """
        if not self.base_url or not self.service_role_key:
            logger.error("[IDENTITY] SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY not configured")
            raise UpstreamError("Identity provider is not configured")

        url = f"{self.base_url}/auth/v1/admin/users/{user_id}"
        try:
            async with httpx.AsyncClient(transport=self._transport) as client:
                response = await client.get(
                    url,
                    headers={
                        "Authorization": f"Bearer {self.service_role_key}",
                        "apikey": self.service_role_key,
                    },
                    timeout=10.0,
                )
        except httpx.HTTPError as e:
            logger.exception(f"[IDENTITY] HTTP error looking up user {user_id}: {e}")
            raise UpstreamError(f"Identity provider unreachable: {e}") from e

        if response.status_code == 404:
            logger.warning(f"[IDENTITY] User {user_id} not found")
            raise NotFoundError(f"User {user_id} not found")
        if response.status_code != 200:
            logger.error(
                f"[IDENTITY] Failed to look up user {user_id}: "
                f"status={response.status_code}, body={response.text[:200]}"
            )
            raise UpstreamError(f"Identity provider returned {response.status_code}")

        data = response.json()
        return UserProfile(id=UUID(str(data.get("id", user_id))), email=data.get("email"))
