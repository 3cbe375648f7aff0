"""Google OAuth 2.0 token exchange.

WHAT:
    - `build_authorization_url(state)`: consent screen URL (offline access)
    - `exchange_code(code)`: authorization code -> tokens + Google profile
    - `refresh(refresh_token)`: refresh token -> new access token

WHY:
    Keeps httpx calls against Google's OAuth endpoints out of the router and
    out of the credential store. `invalid_grant` means the user revoked access
    or the token expired; it is surfaced as `UnauthorizedError`.

REFERENCES:
    - https://developers.google.com/identity/protocols/oauth2/web-server
    - app/routers/google_oauth.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, Optional, Tuple
from urllib.parse import urlencode

import httpx

from app.exceptions import UnauthorizedError, UpstreamError

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"
GOOGLE_SCOPES = [
    "https://www.googleapis.com/auth/adwords",
    "https://www.googleapis.com/auth/userinfo.email",
    "https://www.googleapis.com/auth/userinfo.profile",
]


@dataclass(frozen=True)
class OAuthTokens:
    access_token: str
    refresh_token: Optional[str] = None
    expires_at: Optional[datetime] = None
    scopes: Tuple[str, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class GoogleProfile:
    id: str
    email: str
    name: Optional[str] = None


def _tokens_from_payload(payload: Dict[str, Any]) -> OAuthTokens:
    expires_in = payload.get("expires_in")
    expires_at = datetime.utcnow() + timedelta(seconds=int(expires_in)) if expires_in else None
    scope = payload.get("scope") or ""
    return OAuthTokens(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token"),
        expires_at=expires_at,
        scopes=tuple(s for s in scope.split(" ") if s),
    )


class GoogleOAuthClient:
    """Thin async client for Google's OAuth endpoints.

    Args:
        transport: optional httpx transport (tests pass `httpx.MockTransport`).
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: str,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 10.0,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self._transport = transport
        self._timeout = timeout

    @classmethod
    def from_settings(cls, settings: Any) -> "GoogleOAuthClient":
        return cls(
            client_id=settings.GOOGLE_CLIENT_ID,
            client_secret=settings.GOOGLE_CLIENT_SECRET,
            redirect_uri=settings.GOOGLE_REDIRECT_URI,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    def _http(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self._timeout)

    def build_authorization_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(GOOGLE_SCOPES),
            "access_type": "offline",  # Request refresh token
            "prompt": "consent",  # Force consent screen to ensure refresh token
            "include_granted_scopes": "true",
            "state": state,
        }
        return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"

    async def _post_token(self, data: Dict[str, str]) -> Dict[str, Any]:
        try:
            async with self._http() as client:
                response = await client.post(GOOGLE_TOKEN_URL, data=data)
        except httpx.HTTPError as exc:
            logger.error("[GOOGLE_OAUTH] Token endpoint unreachable: %s", exc)
            raise UpstreamError(f"Google token endpoint unreachable: {exc}") from exc

        if response.status_code == 200:
            return response.json()

        try:
            error = response.json().get("error")
        except ValueError:
            error = None
        logger.error("[GOOGLE_OAUTH] Token endpoint returned %s (%s)", response.status_code, error)
        if error in ("invalid_grant", "unauthorized_client"):
            raise UnauthorizedError("Google rejected the authorization. Please reconnect Google Ads.")
        raise UpstreamError(f"Google token endpoint returned {response.status_code}")

    async def exchange_code(self, code: str) -> Tuple[OAuthTokens, GoogleProfile]:
        """Exchange an authorization code for tokens and the granting profile."""
        payload = await self._post_token({
            "code": code,
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "redirect_uri": self.redirect_uri,
            "grant_type": "authorization_code",
        })
        tokens = _tokens_from_payload(payload)

        try:
            async with self._http() as client:
                response = await client.get(
                    GOOGLE_USERINFO_URL,
                    headers={"Authorization": f"Bearer {tokens.access_token}"},
                )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.error("[GOOGLE_OAUTH] Failed to fetch user profile: %s", exc)
            raise UpstreamError(f"Failed to fetch Google user profile: {exc}") from exc

        info = response.json()
        profile = GoogleProfile(id=str(info["id"]), email=info.get("email", ""), name=info.get("name"))
        logger.info("[GOOGLE_OAUTH] Exchanged code for %s (refresh_token=%s)", profile.email, bool(tokens.refresh_token))
        return tokens, profile

    async def refresh(self, refresh_token: str) -> OAuthTokens:
        """Trade a refresh token for a fresh access token."""
        payload = await self._post_token({
            "refresh_token": refresh_token,
            "client_id": self.client_id or "",
            "client_secret": self.client_secret or "",
            "grant_type": "refresh_token",
        })
        return _tokens_from_payload(payload)
