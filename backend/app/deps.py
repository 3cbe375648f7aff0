"""Dependency providers and settings management."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Header, HTTPException, Request, status
from jose import JWTError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .security import TokenCodec, decode_identity_token
from .services.google_ads_client import GAdsClient
from .services.google_oauth_client import GoogleOAuthClient
from .services.identity_service import IdentityClient
from .telemetry.sentry import set_user_context


class Settings(BaseSettings):
    """Application settings loaded from environment or .env."""

    BACKEND_CORS_ORIGINS: str = "http://localhost:3000"
    FRONTEND_URL: str = "http://localhost:3000"
    ENVIRONMENT: str = "development"

    # Google OAuth + Ads API
    GOOGLE_CLIENT_ID: Optional[str] = None
    GOOGLE_CLIENT_SECRET: Optional[str] = None
    GOOGLE_REDIRECT_URI: str = "http://localhost:8000/google-auth/callback"
    GOOGLE_DEVELOPER_TOKEN: Optional[str] = None

    # 64 hex chars = 32-byte AES-256 key for stored OAuth tokens
    CRYPTO_SECRET: Optional[str] = None

    # Identity provider (Supabase)
    SUPABASE_URL: Optional[str] = None
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: str = "change-me"
    SUPABASE_JWT_AUDIENCE: Optional[str] = "authenticated"

    OAUTH_STATE_TTL_MINUTES: int = 10

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()  # type: ignore[call-arg]


@dataclass(frozen=True)
class AuthenticatedUser:
    id: UUID
    email: Optional[str] = None


def get_token_codec(request: Request) -> TokenCodec:
    """Codec built once in `create_app` from CRYPTO_SECRET."""
    return request.app.state.token_codec


def get_ads_client(request: Request) -> GAdsClient:
    return request.app.state.ads_client


def get_oauth_client(request: Request) -> GoogleOAuthClient:
    return request.app.state.oauth_client


def get_identity_client(request: Request) -> IdentityClient:
    return request.app.state.identity_client


def get_current_user(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> AuthenticatedUser:
    """Resolve the current user from an `Authorization: Bearer <jwt>` header.

    The JWT is issued by the identity provider and verified with its shared
    secret; no database lookup is needed.
    """
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid authorization header")

    try:
        payload = decode_identity_token(token, settings.SUPABASE_JWT_SECRET, settings.SUPABASE_JWT_AUDIENCE)
    except JWTError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

    subject = payload.get("sub")
    try:
        user_id = UUID(str(subject))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")

    user = AuthenticatedUser(id=user_id, email=payload.get("email"))
    set_user_context(user_id=str(user.id), email=user.email)
    return user
