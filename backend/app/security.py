"""Security utilities for provider token encryption and identity JWTs.

WHAT:
    - `TokenCodec`: AES-256-GCM encryption for OAuth tokens at rest.
    - Bearer-token verification for identity provider (Supabase) JWTs.
    - Short-lived signed `state` values for the Google OAuth round trip.

WHY:
    - Token encryption keeps Google credentials out of plaintext storage.
    - The codec is an explicit object built once at startup from
      `Settings.CRYPTO_SECRET`, so key material never lives in module state
      and tests can build codecs with their own keys.

STORAGE FORMAT:
    base64( nonce[12] || tag[16] || ciphertext )

REFERENCES:
    - app/services/token_service.py (encrypt on write, decrypt on read)
    - app/deps.py (get_token_codec, get_current_user)
"""

import base64
import binascii
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from uuid import UUID

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from jose import jwt, JWTError


ALGORITHM = "HS256"
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32
OAUTH_STATE_PURPOSE = "google_oauth_state"

logger = logging.getLogger(__name__)


class TokenCodec:
    """Symmetric authenticated encryption for tokens stored in the database.

    Args:
        key: 32 raw key bytes (AES-256).
    """

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ValueError(f"TokenCodec key must be {KEY_SIZE} bytes, got {len(key)}")
        self._aead = AESGCM(key)

    @classmethod
    def from_hex(cls, secret: Optional[str]) -> "TokenCodec":
        """Build a codec from the 64 hex character CRYPTO_SECRET value."""
        if not secret:
            raise RuntimeError(
                "CRYPTO_SECRET is not set. Generate one with generate_keys.py "
                "and export it or add it to backend/.env."
            )
        try:
            key = bytes.fromhex(secret.strip())
        except ValueError as exc:
            raise RuntimeError("CRYPTO_SECRET must be 64 hexadecimal characters.") from exc
        if len(key) != KEY_SIZE:
            raise RuntimeError("CRYPTO_SECRET must be 64 hexadecimal characters.")
        return cls(key)

    def encrypt(self, plaintext: str, *, context: str = "token") -> str:
        """Encrypt a secret before persisting.

        Returns:
            base64 text of nonce || tag || ciphertext.
        """
        if not plaintext:
            raise ValueError("Cannot encrypt empty secret.")

        nonce = os.urandom(NONCE_SIZE)
        # AESGCM appends the 16-byte tag to the ciphertext
        sealed = self._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
        ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
        logger.debug("[TOKEN_ENCRYPT] Secret encrypted for %s (length=%d)", context, len(plaintext))
        return base64.b64encode(nonce + tag + ciphertext).decode("ascii")

    def decrypt(self, stored: str, *, context: str = "token") -> str:
        """Reverse `encrypt`.

        Raises:
            ValueError: If the value is malformed or fails authentication.
        """
        if not stored:
            raise ValueError("Cannot decrypt empty secret.")

        try:
            raw = base64.b64decode(stored.encode("ascii"), validate=True)
        except (binascii.Error, UnicodeEncodeError) as exc:
            raise ValueError("Stored token is not valid base64.") from exc

        if len(raw) < NONCE_SIZE + TAG_SIZE:
            raise ValueError("Stored token is too short.")

        nonce = raw[:NONCE_SIZE]
        tag = raw[NONCE_SIZE:NONCE_SIZE + TAG_SIZE]
        ciphertext = raw[NONCE_SIZE + TAG_SIZE:]
        try:
            plaintext = self._aead.decrypt(nonce, ciphertext + tag, None)
        except InvalidTag as exc:
            logger.error("[TOKEN_DECRYPT] Invalid ciphertext for %s", context)
            raise ValueError("Unable to decrypt stored token.") from exc
        return plaintext.decode("utf-8")


def decode_identity_token(token: str, secret: str, audience: Optional[str] = "authenticated") -> Dict[str, Any]:
    """Decode and validate an identity provider JWT, returning its payload.

    Raises jose.JWTError on failure.
    """
    options = {"verify_aud": audience is not None}
    return jwt.decode(token, secret, algorithms=[ALGORITHM], audience=audience, options=options)


def create_oauth_state(user_id: UUID, secret: str, expires_minutes: int = 10) -> str:
    """Sign the user id into the OAuth `state` parameter."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "purpose": OAUTH_STATE_PURPOSE,
        "iat": int(now.timestamp()),
        "exp": int((now + timedelta(minutes=expires_minutes)).timestamp()),
    }
    return jwt.encode(payload, secret, algorithm=ALGORITHM)


def read_oauth_state(state: str, secret: str) -> UUID:
    """Return the user id carried by a signed `state`.

    Raises:
        ValueError: If the state is expired, tampered with or not an OAuth state.
    """
    try:
        payload = jwt.decode(state, secret, algorithms=[ALGORITHM])
    except JWTError as exc:
        raise ValueError("Invalid OAuth state") from exc

    if payload.get("purpose") != OAUTH_STATE_PURPOSE or not payload.get("sub"):
        raise ValueError("Invalid OAuth state")
    try:
        return UUID(payload["sub"])
    except ValueError as exc:
        raise ValueError("Invalid OAuth state") from exc
