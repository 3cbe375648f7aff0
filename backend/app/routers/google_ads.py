"""Google Ads account, sync and live query endpoints.

WHAT:
    Thin HTTP wrappers around account resolution, the customer registry,
    search-term sync jobs, structure sync and live GAQL passthrough queries.

WHY:
    - Routers focus on auth and request parsing.
    - Domain errors (AdsSyncError subclasses) propagate to the app-level
      handler in main.py, which maps them to status codes.

REFERENCES:
    - app/services/google_sync_service.py
    - app/services/google_full_sync_service.py
    - app/services/google_ads_service.py
"""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from app.database import get_db
from app.deps import AuthenticatedUser, get_ads_client, get_current_user, get_token_codec
from app.schemas import (
    AccountInfoOut,
    CustomerOut,
    LiveAdGroupOut,
    LiveCampaignOut,
    LiveKeywordOut,
    LiveSearchTermsOut,
    SearchTermOut,
    StructureSyncOut,
    StructureSyncRequest,
    SyncJobOut,
    SyncResultOut,
    SyncSearchTermsRequest,
)
from app.security import TokenCodec
from app.services import account_resolver, google_ads_service
from app.services.customer_registry import (
    get_or_fetch_customer,
    list_customers_for_user,
    materialize_accounts,
)
from app.services.google_ads_client import CustomerContext, GAdsClient, normalize_customer_id
from app.services.google_full_sync_service import sync_account_structure
from app.services.google_sync_service import get_stored_search_terms, list_sync_jobs, sync_search_terms
from app.services.token_service import get_refresh_token, require_active_connection

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/google-ads", tags=["Google Ads"])


async def _customer_context(
    db: Session,
    client: GAdsClient,
    codec: TokenCodec,
    user: AuthenticatedUser,
    customer_id: str,
) -> CustomerContext:
    """Resolve a customer (registering it if unseen) into a query context."""
    connection = require_active_connection(db, user.id)
    customer = await get_or_fetch_customer(db, client, codec, user.id, customer_id)
    return CustomerContext(
        customer_id=customer.customer_id,
        refresh_token=get_refresh_token(codec, connection),
        login_customer_id=customer.login_customer_id,
    )


# =============================================================================
# ACCOUNTS
# =============================================================================

@router.get("/accounts", response_model=List[AccountInfoOut])
async def list_accounts(
    include_managed: bool = Query(False, description="Also walk manager accounts' client rosters"),
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """List accounts reachable by the user's Google credential and register them locally."""
    connection = require_active_connection(db, current_user.id)
    refresh_token = get_refresh_token(codec, connection)
    accounts = await account_resolver.list_accessible_accounts(client, refresh_token, include_managed=include_managed)
    materialize_accounts(db, connection.id, accounts)
    logger.info("[GOOGLE_ADS] User %s resolved %d accounts", current_user.id, len(accounts))
    return [account.to_dict() for account in accounts]


@router.get("/managed-accounts/{manager_customer_id}", response_model=List[AccountInfoOut])
async def list_managed_accounts(
    manager_customer_id: str,
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Client roster of one manager account."""
    connection = require_active_connection(db, current_user.id)
    accounts = await account_resolver.get_managed_accounts(
        client, get_refresh_token(codec, connection), normalize_customer_id(manager_customer_id),
    )
    return [account.to_dict() for account in accounts]


@router.get("/customers", response_model=List[CustomerOut])
def list_customers(
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    return list_customers_for_user(db, current_user.id)


# =============================================================================
# STORED DATA
# =============================================================================

@router.get("/customers/{customer_id}/sync-jobs", response_model=List[SyncJobOut])
def get_sync_jobs(
    customer_id: str,
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Most recent sync jobs first (at most 50)."""
    return list_sync_jobs(db, current_user.id, customer_id)


@router.get("/customers/{customer_id}/search-terms", response_model=List[SearchTermOut])
def get_search_terms(
    customer_id: str,
    start_date: Optional[str] = Query(None, description="Earliest fetch day (YYYY-MM-DD)"),
    end_date: Optional[str] = Query(None, description="Latest fetch day (YYYY-MM-DD)"),
    db: Session = Depends(get_db),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Stored search terms, newest fetch first."""
    return get_stored_search_terms(db, current_user.id, customer_id, start_date, end_date)


# =============================================================================
# SYNC
# =============================================================================

@router.post("/customers/{customer_id}/sync/search-terms", response_model=SyncResultOut)
async def sync_customer_search_terms(
    customer_id: str,
    payload: SyncSearchTermsRequest,
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    """Run a search-term sync job. A failed job is still a 200 with status `failed`."""
    logger.info("[GOOGLE_SYNC] HTTP search-term sync requested: customer=%s", customer_id)
    return await sync_search_terms(
        db, client, codec, current_user.id, customer_id, payload.start_date, payload.end_date,
    )


@router.post("/customers/{customer_id}/sync/structure", response_model=StructureSyncOut)
async def sync_customer_structure(
    customer_id: str,
    payload: Optional[StructureSyncRequest] = None,
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    payload = payload or StructureSyncRequest()
    logger.info("[GOOGLE_FULL_SYNC] HTTP structure sync requested: customer=%s", customer_id)
    totals = await sync_account_structure(
        db,
        client,
        codec,
        current_user.id,
        customer_id,
        login_customer_id=payload.login_customer_id,
        start_date=payload.start_date,
        end_date=payload.end_date,
    )
    return StructureSyncOut(
        customer_id=normalize_customer_id(customer_id),
        total_campaigns=totals.total_campaigns,
        total_ad_groups=totals.total_ad_groups,
        total_keywords=totals.total_keywords,
    )


# =============================================================================
# LIVE PASSTHROUGH (nothing is stored)
# =============================================================================

@router.get("/customers/{customer_id}/live/search-terms", response_model=LiveSearchTermsOut)
async def live_search_terms(
    customer_id: str,
    start_date: str = Query(..., description="YYYY-MM-DD"),
    end_date: str = Query(..., description="YYYY-MM-DD"),
    campaign_id: Optional[str] = Query(None),
    ad_group_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    start, end = google_ads_service.validate_date_range(start_date, end_date)
    context = await _customer_context(db, client, codec, current_user, customer_id)
    page = await google_ads_service.fetch_search_terms(
        client, context, start, end, campaign_id=campaign_id, ad_group_id=ad_group_id,
    )
    return LiveSearchTermsOut(
        customer_id=context.customer_id,
        start_date=start,
        end_date=end,
        records_fetched=page.fetched_count,
        records_skipped=page.skipped_count,
        search_terms=[google_ads_service.row_to_dict(row) for row in page.rows],
    )


@router.get("/customers/{customer_id}/live/campaigns", response_model=List[LiveCampaignOut])
async def live_campaigns(
    customer_id: str,
    start_date: Optional[str] = Query(None, description="With end_date, include metrics for the window"),
    end_date: Optional[str] = Query(None),
    include_ad_groups: bool = Query(False),
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    context = await _customer_context(db, client, codec, current_user, customer_id)
    if include_ad_groups:
        campaigns = await google_ads_service.fetch_campaigns_with_ad_groups(client, context, start_date, end_date)
    else:
        campaigns = await google_ads_service.fetch_campaigns(client, context, start_date, end_date)
    return [google_ads_service.row_to_dict(row) for row in campaigns]


@router.get("/customers/{customer_id}/live/ad-groups", response_model=List[LiveAdGroupOut])
async def live_ad_groups(
    customer_id: str,
    campaign_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    context = await _customer_context(db, client, codec, current_user, customer_id)
    ad_groups = await google_ads_service.fetch_ad_groups(client, context, campaign_id=campaign_id)
    return [google_ads_service.row_to_dict(row) for row in ad_groups]


@router.get("/customers/{customer_id}/live/keywords", response_model=List[LiveKeywordOut])
async def live_keywords(
    customer_id: str,
    ad_group_id: Optional[str] = Query(None),
    campaign_id: Optional[str] = Query(None),
    db: Session = Depends(get_db),
    client: GAdsClient = Depends(get_ads_client),
    codec: TokenCodec = Depends(get_token_codec),
    current_user: AuthenticatedUser = Depends(get_current_user),
):
    context = await _customer_context(db, client, codec, current_user, customer_id)
    keywords = await google_ads_service.fetch_keywords(
        client, context, ad_group_id=ad_group_id, campaign_id=campaign_id,
    )
    return [google_ads_service.row_to_dict(row) for row in keywords]
