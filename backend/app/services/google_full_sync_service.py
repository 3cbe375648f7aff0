"""Google Ads account structure snapshot.

WHAT:
    Walks campaign -> ad group -> keyword for one customer and upserts each
    level on its natural key:
        campaigns  (ads_customer_id, campaign_id)
        ad groups  (campaign_db_id, ad_group_id)
        keywords   (ad_group_db_id, keyword_id)

WHY:
    Low-frequency, bounded-size snapshot of an account's structure, used for
    reporting next to stored search terms. It is not job-tracked.

CONSISTENCY:
    Best-effort, not all-or-nothing. Each campaign subtree is committed once
    written, so a failure partway through leaves earlier campaigns in place
    and the exception propagates to the caller.

REFERENCES:
    - app/services/google_ads_service.py (fetch_campaigns_with_ad_groups)
    - app/services/upsert.py
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models import AdGroup, AdsCustomer, Campaign, Keyword
from app.security import TokenCodec
from app.services.customer_registry import get_customer
from app.services.google_ads_client import CustomerContext, GAdsClient
from app.services.google_ads_service import (
    AdGroupRow,
    CampaignRow,
    KeywordRow,
    attach_keywords,
    fetch_campaigns_with_ad_groups,
    validate_date_range,
)
from app.services.token_service import get_refresh_token, require_active_connection
from app.services.upsert import upsert_row

logger = logging.getLogger(__name__)


@dataclass
class StructureSyncTotals:
    total_campaigns: int = 0
    total_ad_groups: int = 0
    total_keywords: int = 0


def upsert_campaign(
    db: Session,
    customer: AdsCustomer,
    row: CampaignRow,
    fetched_at: datetime,
    start: Optional[date],
    end: Optional[date],
) -> UUID:
    values = {
        "ads_customer_id": customer.id,
        "campaign_id": row.campaign_id,
        "campaign_name": row.campaign_name,
        "status": row.status,
        "advertising_channel_type": row.advertising_channel_type,
        "bidding_strategy_type": row.bidding_strategy_type,
        "budget_amount": row.budget_amount,
        "currency_code": row.currency_code,
        "start_date": row.start_date,
        "end_date": row.end_date,
        "last_fetched_at": fetched_at,
    }
    if row.metrics is not None:
        m = row.metrics
        values.update({
            "impressions": m.impressions,
            "clicks": m.clicks,
            "cost": m.cost,
            "conversions": m.conversions,
            "conversions_value": m.conversions_value,
            "ctr": m.ctr,
            "average_cpc": m.average_cpc,
            "average_cpm": m.average_cpm,
            "metrics_start_date": start,
            "metrics_end_date": end,
        })
    return upsert_row(db, Campaign, values, conflict_columns=("ads_customer_id", "campaign_id"))


def upsert_ad_group(db: Session, campaign_db_id: UUID, row: AdGroupRow, fetched_at: datetime) -> UUID:
    values = {
        "campaign_db_id": campaign_db_id,
        "ad_group_id": row.ad_group_id,
        "ad_group_name": row.ad_group_name,
        "status": row.status,
        "type": row.type,
        "cpc_bid": row.cpc_bid,
        "target_cpa": row.target_cpa,
        "last_fetched_at": fetched_at,
    }
    return upsert_row(db, AdGroup, values, conflict_columns=("campaign_db_id", "ad_group_id"))


def upsert_keyword(db: Session, ad_group_db_id: UUID, row: KeywordRow, fetched_at: datetime) -> UUID:
    values = {
        "ad_group_db_id": ad_group_db_id,
        "keyword_id": row.keyword_id,
        "keyword_text": row.keyword_text,
        "match_type": row.match_type,
        "status": row.status,
        "quality_score": row.quality_score,
        "final_urls": row.final_urls,
        "cpc_bid": row.cpc_bid,
        "last_fetched_at": fetched_at,
    }
    return upsert_row(db, Keyword, values, conflict_columns=("ad_group_db_id", "keyword_id"))


async def sync_account_structure(
    db: Session,
    client: GAdsClient,
    codec: TokenCodec,
    user_id: UUID,
    external_customer_id: str,
    login_customer_id: Optional[str] = None,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
) -> StructureSyncTotals:
    """Snapshot campaigns, ad groups and keywords of a known customer.

    Args:
        login_customer_id: overrides the customer's stored delegation id
        start_date/end_date: when both are given, campaign metrics for the
            window are stored as well

    Raises:
        UnauthorizedError: no active connection.
        NotFoundError: the customer was never resolved for this connection.
        ValidationError: bad date range.
        UpstreamError / SQLAlchemyError: mid-walk; earlier campaigns stay stored.
    """
    connection = require_active_connection(db, user_id)
    customer = get_customer(db, connection.id, external_customer_id)
    if customer is None:
        raise NotFoundError(f"Google Ads customer {external_customer_id} not found. List accounts first.")

    start: Optional[date] = None
    end: Optional[date] = None
    if start_date or end_date:
        start, end = validate_date_range(start_date, end_date)

    context = CustomerContext(
        customer_id=customer.customer_id,
        refresh_token=get_refresh_token(codec, connection),
        login_customer_id=login_customer_id or customer.login_customer_id,
    )
    fetched_at = datetime.utcnow()
    totals = StructureSyncTotals()

    campaigns = await fetch_campaigns_with_ad_groups(client, context, start, end)
    logger.info(
        "[GOOGLE_FULL_SYNC] Customer %s: %d campaigns to snapshot", customer.customer_id, len(campaigns),
    )

    for campaign in campaigns:
        # Keywords are fetched per campaign so earlier subtrees are already stored if this fails
        await attach_keywords(client, context, campaign.ad_groups)

        campaign_db_id = upsert_campaign(db, customer, campaign, fetched_at, start, end)
        totals.total_campaigns += 1
        for ad_group in campaign.ad_groups:
            ad_group_db_id = upsert_ad_group(db, campaign_db_id, ad_group, fetched_at)
            totals.total_ad_groups += 1
            for keyword in ad_group.keywords:
                upsert_keyword(db, ad_group_db_id, keyword, fetched_at)
                totals.total_keywords += 1
        db.commit()

    logger.info(
        "[GOOGLE_FULL_SYNC] Customer %s synced: campaigns=%d ad_groups=%d keywords=%d",
        customer.customer_id, totals.total_campaigns, totals.total_ad_groups, totals.total_keywords,
    )
    return totals
