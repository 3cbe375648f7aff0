"""Google Ads OAuth 2.0 flow endpoints.

WHAT:
    Implements OAuth authorization flow for user-initiated Google Ads connections,
    plus status, refresh and disconnect for the stored connection.

WHY:
    Allows users to connect their own Google Ads accounts without manual token setup.

FLOW:
    1. /authorize returns the consent URL with a signed `state` (user id, 10 min)
    2. Google redirects to /callback with `code` + `state`
    3. Code is exchanged, tokens are encrypted and upserted per (user, Google identity)
    4. Accessible accounts are resolved and registered (best effort)
    5. Browser is redirected back to the frontend settings page

REFERENCES:
    - https://developers.google.com/google-ads/api/docs/oauth/overview
    - app/services/google_oauth_client.py
    - app/services/token_service.py
"""

import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from app.database import get_db
from app.deps import (
    AuthenticatedUser,
    Settings,
    get_ads_client,
    get_current_user,
    get_identity_client,
    get_oauth_client,
    get_settings,
    get_token_codec,
)
from app.exceptions import AdsSyncError, UnauthorizedError, UpstreamError
from app.schemas import AuthorizationUrlOut, ConnectionStatusOut, SuccessResponse, TokenRefreshOut
from app.security import TokenCodec, create_oauth_state, read_oauth_state
from app.services import account_resolver
from app.services.customer_registry import materialize_accounts
from app.services.google_ads_client import GAdsClient
from app.services.google_oauth_client import GoogleOAuthClient
from app.services.identity_service import IdentityClient
from app.services.token_service import (
    deactivate_connection,
    get_active_connection,
    get_refresh_token,
    require_active_connection,
    store_refreshed_tokens,
    upsert_oauth_connection,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-auth", tags=["Google OAuth"])


def _settings_redirect(settings: Settings, **params) -> RedirectResponse:
    return RedirectResponse(url=f"{settings.FRONTEND_URL}/settings?{urlencode(params)}")


@router.get("/authorize", response_model=AuthorizationUrlOut)
async def google_authorize(
    current_user: AuthenticatedUser = Depends(get_current_user),
    settings: Settings = Depends(get_settings),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
):
    """
    Build the Google consent screen URL.

    WHAT:
        Signs the user id into `state` and returns the authorization URL.
    WHY:
        The callback arrives without the user's bearer token; `state` carries
        the identity across the redirect.
    """
    if not oauth_client.configured:
        raise UpstreamError("Google OAuth not configured. Missing CLIENT_ID or CLIENT_SECRET.")

    state = create_oauth_state(current_user.id, settings.SUPABASE_JWT_SECRET, settings.OAUTH_STATE_TTL_MINUTES)
    logger.info("[GOOGLE_OAUTH] Issuing consent URL for user %s", current_user.id)
    return AuthorizationUrlOut(authorization_url=oauth_client.build_authorization_url(state))


@router.get("/callback")
async def google_callback(
    code: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
    codec: TokenCodec = Depends(get_token_codec),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
    identity_client: IdentityClient = Depends(get_identity_client),
    ads_client: GAdsClient = Depends(get_ads_client),
):
    """
    Handle OAuth callback from Google.

    Always answers with a redirect to the frontend; failures are reported
    through `google_ads=error&message=<reason>`.
    """
    if error:
        logger.error("[GOOGLE_OAUTH] OAuth error: %s", error)
        return _settings_redirect(settings, google_ads="error", message=error)

    if not code or not state:
        logger.error("[GOOGLE_OAUTH] Missing code or state parameter")
        return _settings_redirect(settings, google_ads="error", message="missing_code")

    try:
        user_id = read_oauth_state(state, settings.SUPABASE_JWT_SECRET)
    except ValueError:
        logger.warning("[GOOGLE_OAUTH] Rejected callback with invalid state")
        return _settings_redirect(settings, google_ads="error", message="invalid_state")

    try:
        await identity_client.validate_user(user_id)
        tokens, profile = await oauth_client.exchange_code(code)
    except AdsSyncError as e:
        logger.error("[GOOGLE_OAUTH] Callback failed for user %s: %s", user_id, e)
        return _settings_redirect(settings, google_ads="error", message="token_exchange_failed")

    connection = upsert_oauth_connection(db, codec, user_id, profile, tokens)

    # Account discovery is best effort; the connection is already stored
    account_count = 0
    try:
        refresh_token = get_refresh_token(codec, connection)
        accounts = await account_resolver.list_accessible_accounts(ads_client, refresh_token, include_managed=True)
        account_count = len(materialize_accounts(db, connection.id, accounts))
    except AdsSyncError as e:
        logger.warning("[GOOGLE_OAUTH] Account discovery failed for %s: %s", profile.email, e)

    logger.info(
        "[GOOGLE_OAUTH] Connected %s for user %s (%d accounts)", profile.email, user_id, account_count,
    )
    return _settings_redirect(settings, google_ads="connected", accounts=account_count)


@router.get("/connection", response_model=ConnectionStatusOut)
def get_connection(
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    connection = get_active_connection(db, current_user.id)
    return ConnectionStatusOut(connected=connection is not None, connection=connection)


@router.delete("/connection", response_model=SuccessResponse)
def disconnect(
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Deactivate the connection. Stored customers and search terms are kept."""
    connection = require_active_connection(db, current_user.id)
    deactivate_connection(db, connection)
    return SuccessResponse(detail="Google Ads disconnected")


@router.post("/refresh", response_model=TokenRefreshOut)
async def refresh_access_token(
    db: Session = Depends(get_db),
    codec: TokenCodec = Depends(get_token_codec),
    oauth_client: GoogleOAuthClient = Depends(get_oauth_client),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Exchange the stored refresh token for a new access token.

    A revoked grant deactivates the connection and answers 401.
    """
    connection = require_active_connection(db, current_user.id)
    refresh_token = get_refresh_token(codec, connection)
    try:
        tokens = await oauth_client.refresh(refresh_token)
    except UnauthorizedError:
        deactivate_connection(db, connection)
        raise

    connection = store_refreshed_tokens(db, codec, connection, tokens)
    return TokenRefreshOut(refreshed=True, token_expires_at=connection.token_expires_at)
