"""Token service for encrypting and persisting Google OAuth credentials.

WHAT:
    The credential store: one `GoogleOAuthConnection` per (user, Google
    identity), tokens encrypted with the injected `TokenCodec`.

WHY:
    - Keeps encryption logic out of routers and sync services.
    - A re-authorization without a refresh token (Google omits it when the
      user already granted offline access) must keep the stored one.

REFERENCES:
    - backend/app/security.py (TokenCodec)
    - backend/app/routers/google_oauth.py (callback writes, refresh, disconnect)
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.exceptions import UnauthorizedError
from app.models import GoogleOAuthConnection
from app.security import TokenCodec
from app.services.google_oauth_client import GoogleProfile, OAuthTokens
from app.services.upsert import upsert_row

logger = logging.getLogger(__name__)


def _label(connection: GoogleOAuthConnection) -> str:
    return f"google:{connection.google_user_id}"


def upsert_oauth_connection(
    db: Session,
    codec: TokenCodec,
    user_id: UUID,
    profile: GoogleProfile,
    tokens: OAuthTokens,
) -> GoogleOAuthConnection:
    """Encrypt and persist tokens for a (user, Google identity) pair.

    WHAT:
        Single atomic insert-on-conflict keyed on (user_id, google_user_id).
        Tokens, email, expiry and scopes are overwritten and the connection is
        reactivated; a missing refresh token keeps the stored one.

    Returns:
        The GoogleOAuthConnection as stored after the write.
    """
    label = f"google:{profile.id}"
    encrypted_access = codec.encrypt(tokens.access_token, context=f"{label}:access")
    encrypted_refresh = (
        codec.encrypt(tokens.refresh_token, context=f"{label}:refresh")
        if tokens.refresh_token else None
    )

    values = {
        "user_id": user_id,
        "google_email": profile.email,
        "google_user_id": profile.id,
        "access_token_enc": encrypted_access,
        "refresh_token_enc": encrypted_refresh,
        "token_expires_at": tokens.expires_at,
        "scopes": list(tokens.scopes),
        "is_active": True,
    }
    connection_id = upsert_row(
        db,
        GoogleOAuthConnection,
        values,
        conflict_columns=("user_id", "google_user_id"),
        overrides=lambda excluded: {
            "refresh_token_enc": func.coalesce(
                excluded.refresh_token_enc,
                GoogleOAuthConnection.__table__.c.refresh_token_enc,
            ),
        },
    )
    db.commit()

    connection = db.execute(
        select(GoogleOAuthConnection)
        .where(GoogleOAuthConnection.id == connection_id)
        .execution_options(populate_existing=True)
    ).scalar_one()
    logger.info(
        "[TOKEN_SERVICE] Stored encrypted tokens for %s (refresh_token=%s)",
        label, "new" if encrypted_refresh else "kept",
    )
    return connection


def get_active_connection(db: Session, user_id: UUID) -> Optional[GoogleOAuthConnection]:
    """Most recently updated active connection of a user, if any."""
    return (
        db.query(GoogleOAuthConnection)
        .filter(
            GoogleOAuthConnection.user_id == user_id,
            GoogleOAuthConnection.is_active.is_(True),
        )
        .order_by(GoogleOAuthConnection.updated_at.desc())
        .first()
    )


def require_active_connection(db: Session, user_id: UUID) -> GoogleOAuthConnection:
    """Like `get_active_connection` but raises `UnauthorizedError` when absent."""
    connection = get_active_connection(db, user_id)
    if connection is None:
        raise UnauthorizedError("No active Google Ads connection. Please connect your Google account.")
    return connection


def get_refresh_token(codec: TokenCodec, connection: GoogleOAuthConnection) -> str:
    """Decrypt the connection's refresh token.

    Raises:
        UnauthorizedError: no refresh token stored, or it cannot be decrypted.
    """
    label = _label(connection)
    if not connection.refresh_token_enc:
        logger.warning("[TOKEN_SERVICE] No refresh token for %s", label)
        raise UnauthorizedError("Google connection has no refresh token. Please reconnect Google Ads.")
    try:
        return codec.decrypt(connection.refresh_token_enc, context=f"{label}:refresh")
    except ValueError as exc:
        logger.error("[TOKEN_SERVICE] Failed to decrypt refresh token for %s", label)
        raise UnauthorizedError("Stored Google credentials are unreadable. Please reconnect Google Ads.") from exc


def get_access_token(codec: TokenCodec, connection: GoogleOAuthConnection) -> str:
    return codec.decrypt(connection.access_token_enc, context=f"{_label(connection)}:access")


def store_refreshed_tokens(
    db: Session,
    codec: TokenCodec,
    connection: GoogleOAuthConnection,
    tokens: OAuthTokens,
) -> GoogleOAuthConnection:
    """Persist the result of a token refresh on an existing connection."""
    label = _label(connection)
    connection.access_token_enc = codec.encrypt(tokens.access_token, context=f"{label}:access")
    if tokens.refresh_token:
        # Google may rotate the refresh token
        connection.refresh_token_enc = codec.encrypt(tokens.refresh_token, context=f"{label}:refresh")
    connection.token_expires_at = tokens.expires_at
    if tokens.scopes:
        connection.scopes = list(tokens.scopes)
    connection.updated_at = datetime.utcnow()
    db.commit()
    logger.info("[TOKEN_SERVICE] Refreshed access token for %s", label)
    return connection


def deactivate_connection(db: Session, connection: GoogleOAuthConnection) -> GoogleOAuthConnection:
    """Soft-delete: the row and its synced data stay, but it is no longer used."""
    connection.is_active = False
    connection.updated_at = datetime.utcnow()
    db.commit()
    logger.info("[TOKEN_SERVICE] Deactivated connection %s", _label(connection))
    return connection
