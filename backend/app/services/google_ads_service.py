"""Google Ads data ingestion.

WHAT:
    GAQL queries and row mapping for the four data categories the sync
    services need: search terms, campaigns, ad groups and keywords. Each
    fetch returns plain dataclasses in local units (currency, not micros).

WHY:
    One place owns the normalization rules shared by stored syncs and the
    live passthrough endpoints:
    - rows missing a required id are skipped with a warning, never fatal
    - micros are divided by 1,000,000 exactly (Decimal, no float rounding)
    - missing numerics become 0, never None

    Results are capped at 10,000 rows per query. This is a ceiling, not
    pagination; callers needing more narrow the date range or filters.

REFERENCES:
    - app/services/google_ads_client.py (query execution, error translation)
    - app/services/google_sync_service.py (search-term jobs)
    - app/services/google_full_sync_service.py (structure snapshots)
    - https://developers.google.com/google-ads/api/fields/v17/search_term_view
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import asdict, dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar, Union

from app.exceptions import RowSkipped, ValidationError
from app.services.google_ads_client import CustomerContext, GAdsClient, enum_name

logger = logging.getLogger(__name__)

PAGE_SIZE_CAP = 10_000
MICROS_PER_UNIT = Decimal(1_000_000)
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

T = TypeVar("T")


# =============================================================================
# NORMALIZATION
# =============================================================================

def micros_to_amount(micros: Any) -> Decimal:
    """Exact conversion of API micros to currency units; None/missing -> 0."""
    if micros is None:
        return Decimal(0)
    if isinstance(micros, int):
        return Decimal(micros) / MICROS_PER_UNIT
    return Decimal(str(micros)) / MICROS_PER_UNIT


def _optional_amount(micros: Any) -> Optional[Decimal]:
    """Like `micros_to_amount`, but an unset bid target stays None."""
    if not micros:
        return None
    return micros_to_amount(micros)


def _decimal(value: Any) -> Decimal:
    return Decimal(str(value)) if value else Decimal(0)


def _int(value: Any) -> int:
    return int(value or 0)


def _id(value: Any) -> Optional[str]:
    """External ids are kept as strings; 0 / empty means missing."""
    if value is None or value == 0 or value == "":
        return None
    return str(value)


def parse_date(value: Union[str, date, None], field_name: str) -> date:
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise ValidationError(f"{field_name} must be a date in YYYY-MM-DD format")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError(f"{field_name} is not a valid calendar date: {value}") from exc


def validate_date_range(
    start_date: Union[str, date, None],
    end_date: Union[str, date, None],
    today: Optional[date] = None,
) -> Tuple[date, date]:
    """Parse and check a reporting window.

    Raises:
        ValidationError: malformed date, start after end, or end in the future.
    """
    start = parse_date(start_date, "start_date")
    end = parse_date(end_date, "end_date")
    if start > end:
        raise ValidationError("start_date must be on or before end_date")
    if end > (today or date.today()):
        raise ValidationError("end_date cannot be in the future")
    return start, end


def _id_filter(value: Optional[str], field_name: str) -> Optional[str]:
    if value is None or value == "":
        return None
    text = str(value).strip()
    if not text.isdigit():
        raise ValidationError(f"{field_name} must be numeric")
    return text


# =============================================================================
# ROW TYPES
# =============================================================================

@dataclass
class Metrics:
    impressions: int = 0
    clicks: int = 0
    cost: Decimal = Decimal(0)
    conversions: Decimal = Decimal(0)
    conversions_value: Decimal = Decimal(0)
    ctr: Decimal = Decimal(0)
    average_cpc: Decimal = Decimal(0)
    average_cpm: Decimal = Decimal(0)


@dataclass
class SearchTermRow:
    campaign_id: str
    campaign_name: str
    ad_group_id: str
    ad_group_name: str
    search_term: str
    status: Optional[str]
    keyword_text: Optional[str]
    match_type: Optional[str]
    metrics: Metrics


@dataclass
class KeywordRow:
    keyword_id: str
    ad_group_id: str
    campaign_id: str
    keyword_text: str
    match_type: Optional[str]
    status: Optional[str]
    quality_score: Optional[int]
    final_urls: List[str]
    cpc_bid: Decimal


@dataclass
class AdGroupRow:
    ad_group_id: str
    ad_group_name: str
    campaign_id: str
    campaign_name: str
    status: Optional[str]
    type: Optional[str]
    cpc_bid: Decimal
    target_cpa: Optional[Decimal] = None
    keywords: List[KeywordRow] = field(default_factory=list)


@dataclass
class CampaignRow:
    campaign_id: str
    campaign_name: str
    status: Optional[str]
    advertising_channel_type: Optional[str]
    bidding_strategy_type: Optional[str]
    budget_amount: Decimal
    start_date: Optional[str]
    end_date: Optional[str]
    currency_code: Optional[str] = None
    metrics: Optional[Metrics] = None
    ad_groups: List[AdGroupRow] = field(default_factory=list)


@dataclass
class SearchTermPage:
    """Mapped rows plus how many upstream rows produced them."""

    rows: List[SearchTermRow]
    fetched_count: int
    skipped_count: int


def row_to_dict(row: Any) -> Dict[str, Any]:
    return asdict(row)


# =============================================================================
# ROW MAPPERS (raise RowSkipped on missing ids)
# =============================================================================

def _metrics(m: Any, with_cpm: bool = False) -> Metrics:
    if m is None:
        return Metrics()
    return Metrics(
        impressions=_int(getattr(m, "impressions", 0)),
        clicks=_int(getattr(m, "clicks", 0)),
        cost=micros_to_amount(getattr(m, "cost_micros", 0)),
        conversions=_decimal(getattr(m, "conversions", 0)),
        # conversions_value is already in currency units
        conversions_value=_decimal(getattr(m, "conversions_value", 0)),
        ctr=_decimal(getattr(m, "ctr", 0)),
        average_cpc=micros_to_amount(getattr(m, "average_cpc", 0)),
        average_cpm=micros_to_amount(getattr(m, "average_cpm", 0)) if with_cpm else Decimal(0),
    )


def map_search_term_row(row: Any) -> SearchTermRow:
    campaign = getattr(row, "campaign", None)
    ad_group = getattr(row, "ad_group", None)
    view = getattr(row, "search_term_view", None)

    campaign_id = _id(getattr(campaign, "id", None))
    ad_group_id = _id(getattr(ad_group, "id", None))
    search_term = getattr(view, "search_term", None)
    if not campaign_id:
        raise RowSkipped("missing campaign id", "search term")
    if not ad_group_id:
        raise RowSkipped("missing ad group id", "search term")
    if not search_term:
        raise RowSkipped("missing search term", "search term")

    keyword_info = getattr(getattr(getattr(row, "segments", None), "keyword", None), "info", None)
    return SearchTermRow(
        campaign_id=campaign_id,
        campaign_name=getattr(campaign, "name", None) or "Unknown Campaign",
        ad_group_id=ad_group_id,
        ad_group_name=getattr(ad_group, "name", None) or "Unknown Ad Group",
        search_term=search_term,
        status=enum_name(getattr(view, "status", None)),
        keyword_text=getattr(keyword_info, "text", None) or None,
        match_type=enum_name(getattr(keyword_info, "match_type", None)),
        metrics=_metrics(getattr(row, "metrics", None)),
    )


def map_campaign_row(row: Any, with_metrics: bool) -> CampaignRow:
    campaign = getattr(row, "campaign", None)
    campaign_id = _id(getattr(campaign, "id", None))
    if not campaign_id:
        raise RowSkipped("missing campaign id", "campaign")

    budget = getattr(row, "campaign_budget", None)
    return CampaignRow(
        campaign_id=campaign_id,
        campaign_name=getattr(campaign, "name", None) or "Unknown Campaign",
        status=enum_name(getattr(campaign, "status", None)),
        advertising_channel_type=enum_name(getattr(campaign, "advertising_channel_type", None)),
        bidding_strategy_type=enum_name(getattr(campaign, "bidding_strategy_type", None)),
        budget_amount=micros_to_amount(getattr(budget, "amount_micros", 0)),
        start_date=getattr(campaign, "start_date", None) or None,
        end_date=getattr(campaign, "end_date", None) or None,
        currency_code=getattr(getattr(row, "customer", None), "currency_code", None) or None,
        metrics=_metrics(getattr(row, "metrics", None), with_cpm=True) if with_metrics else None,
    )


def map_ad_group_row(row: Any) -> AdGroupRow:
    campaign = getattr(row, "campaign", None)
    ad_group = getattr(row, "ad_group", None)
    campaign_id = _id(getattr(campaign, "id", None))
    ad_group_id = _id(getattr(ad_group, "id", None))
    if not campaign_id or not ad_group_id:
        raise RowSkipped("missing campaign or ad group id", "ad group")

    return AdGroupRow(
        ad_group_id=ad_group_id,
        ad_group_name=getattr(ad_group, "name", None) or "Unknown Ad Group",
        campaign_id=campaign_id,
        campaign_name=getattr(campaign, "name", None) or "Unknown Campaign",
        status=enum_name(getattr(ad_group, "status", None)),
        type=enum_name(getattr(ad_group, "type_", None) or getattr(ad_group, "type", None)),
        cpc_bid=micros_to_amount(getattr(ad_group, "cpc_bid_micros", 0)),
        target_cpa=_optional_amount(getattr(ad_group, "target_cpa_micros", None)),
    )


def map_keyword_row(row: Any) -> KeywordRow:
    campaign = getattr(row, "campaign", None)
    ad_group = getattr(row, "ad_group", None)
    criterion = getattr(row, "ad_group_criterion", None)
    ad_group_id = _id(getattr(ad_group, "id", None))
    keyword_id = _id(getattr(criterion, "criterion_id", None))
    if not ad_group_id or not keyword_id:
        raise RowSkipped("missing ad group or criterion id", "keyword")

    keyword = getattr(criterion, "keyword", None)
    quality_info = getattr(criterion, "quality_info", None)
    quality_score = getattr(quality_info, "quality_score", None)
    return KeywordRow(
        keyword_id=keyword_id,
        ad_group_id=ad_group_id,
        campaign_id=_id(getattr(campaign, "id", None)) or "",
        keyword_text=getattr(keyword, "text", None) or "",
        match_type=enum_name(getattr(keyword, "match_type", None)),
        status=enum_name(getattr(criterion, "status", None)),
        # 0 means "no score yet"
        quality_score=int(quality_score) if quality_score else None,
        final_urls=list(getattr(criterion, "final_urls", None) or []),
        cpc_bid=micros_to_amount(getattr(criterion, "cpc_bid_micros", 0)),
    )


def _map_rows(rows: List[Any], mapper: Callable[[Any], T], customer_id: str) -> Tuple[List[T], int]:
    mapped: List[T] = []
    skipped = 0
    for row in rows:
        try:
            mapped.append(mapper(row))
        except RowSkipped as skip:
            skipped += 1
            logger.warning("[GOOGLE_ADS] Customer %s: %s", customer_id, skip)
    return mapped, skipped


# =============================================================================
# FETCHERS
# =============================================================================

async def fetch_search_terms(
    client: GAdsClient,
    context: CustomerContext,
    start_date: Union[str, date],
    end_date: Union[str, date],
    campaign_id: Optional[str] = None,
    ad_group_id: Optional[str] = None,
) -> SearchTermPage:
    """Search terms for enabled campaigns/ad groups, highest impressions first."""
    start, end = validate_date_range(start_date, end_date)
    conditions = [
        f"segments.date BETWEEN '{start.isoformat()}' AND '{end.isoformat()}'",
        "campaign.status = 'ENABLED'",
        "ad_group.status = 'ENABLED'",
    ]
    campaign_filter = _id_filter(campaign_id, "campaign_id")
    if campaign_filter:
        conditions.append(f"campaign.id = {campaign_filter}")
    ad_group_filter = _id_filter(ad_group_id, "ad_group_id")
    if ad_group_filter:
        conditions.append(f"ad_group.id = {ad_group_filter}")

    query = (
        "SELECT campaign.id, campaign.name, ad_group.id, ad_group.name, "
        "search_term_view.search_term, search_term_view.status, "
        "segments.keyword.info.text, segments.keyword.info.match_type, "
        "metrics.impressions, metrics.clicks, metrics.cost_micros, "
        "metrics.conversions, metrics.conversions_value, metrics.ctr, metrics.average_cpc "
        "FROM search_term_view "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY metrics.impressions DESC LIMIT {PAGE_SIZE_CAP}"
    )
    rows = await client.query(context, query)
    mapped, skipped = _map_rows(rows, map_search_term_row, context.customer_id)
    logger.info(
        "[GOOGLE_ADS] Fetched %d search terms (%d skipped) for customer %s from %s to %s",
        len(mapped), skipped, context.customer_id, start, end,
    )
    return SearchTermPage(rows=mapped, fetched_count=len(rows), skipped_count=skipped)


async def fetch_campaigns(
    client: GAdsClient,
    context: CustomerContext,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
) -> List[CampaignRow]:
    """Non-removed campaigns; metrics are included only when a date range is given."""
    with_metrics = bool(start_date and end_date)
    fields = [
        "campaign.id", "campaign.name", "campaign.status",
        "campaign.bidding_strategy_type", "campaign.advertising_channel_type",
        "campaign_budget.amount_micros", "campaign.start_date", "campaign.end_date",
        "customer.currency_code",
    ]
    conditions = ["campaign.status != 'REMOVED'"]
    if with_metrics:
        start, end = validate_date_range(start_date, end_date)
        fields += [
            "metrics.impressions", "metrics.clicks", "metrics.cost_micros",
            "metrics.conversions", "metrics.conversions_value", "metrics.ctr",
            "metrics.average_cpc", "metrics.average_cpm",
        ]
        conditions.append(f"segments.date BETWEEN '{start.isoformat()}' AND '{end.isoformat()}'")

    query = (
        f"SELECT {', '.join(fields)} FROM campaign "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY campaign.name LIMIT {PAGE_SIZE_CAP}"
    )
    rows = await client.query(context, query)
    mapped, skipped = _map_rows(rows, lambda r: map_campaign_row(r, with_metrics), context.customer_id)
    logger.info("[GOOGLE_ADS] Fetched %d campaigns (%d skipped) for customer %s", len(mapped), skipped, context.customer_id)
    return mapped


async def fetch_ad_groups(
    client: GAdsClient,
    context: CustomerContext,
    campaign_id: Optional[str] = None,
) -> List[AdGroupRow]:
    """Enabled and paused ad groups of enabled and paused campaigns, optionally for one campaign."""
    conditions = [
        "ad_group.status IN ('ENABLED', 'PAUSED')",
        "campaign.status IN ('ENABLED', 'PAUSED')",
    ]
    campaign_filter = _id_filter(campaign_id, "campaign_id")
    if campaign_filter:
        conditions.append(f"campaign.id = {campaign_filter}")

    query = (
        "SELECT campaign.id, campaign.name, ad_group.id, ad_group.name, "
        "ad_group.status, ad_group.type, ad_group.cpc_bid_micros, ad_group.target_cpa_micros "
        "FROM ad_group "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY campaign.name, ad_group.name LIMIT {PAGE_SIZE_CAP}"
    )
    rows = await client.query(context, query)
    mapped, _ = _map_rows(rows, map_ad_group_row, context.customer_id)
    return mapped


async def fetch_keywords(
    client: GAdsClient,
    context: CustomerContext,
    ad_group_id: Optional[str] = None,
    campaign_id: Optional[str] = None,
) -> List[KeywordRow]:
    """Keyword criteria (not removed), optionally for one ad group or campaign."""
    conditions = [
        "ad_group_criterion.type = 'KEYWORD'",
        "ad_group_criterion.status != 'REMOVED'",
    ]
    ad_group_filter = _id_filter(ad_group_id, "ad_group_id")
    if ad_group_filter:
        conditions.append(f"ad_group.id = {ad_group_filter}")
    campaign_filter = _id_filter(campaign_id, "campaign_id")
    if campaign_filter:
        conditions.append(f"campaign.id = {campaign_filter}")

    query = (
        "SELECT campaign.id, ad_group.id, ad_group_criterion.criterion_id, "
        "ad_group_criterion.keyword.text, ad_group_criterion.keyword.match_type, "
        "ad_group_criterion.status, ad_group_criterion.final_urls, "
        "ad_group_criterion.cpc_bid_micros, ad_group_criterion.quality_info.quality_score "
        "FROM ad_group_criterion "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY ad_group_criterion.keyword.text LIMIT {PAGE_SIZE_CAP}"
    )
    rows = await client.query(context, query)
    mapped, _ = _map_rows(rows, map_keyword_row, context.customer_id)
    return mapped


async def attach_keywords(client: GAdsClient, context: CustomerContext, ad_groups: List[AdGroupRow]) -> None:
    """Fetch keywords for each ad group concurrently and attach them in place."""
    results = await asyncio.gather(
        *(fetch_keywords(client, context, ad_group_id=ag.ad_group_id) for ag in ad_groups)
    )
    for ad_group, keywords in zip(ad_groups, results):
        ad_group.keywords = keywords


async def fetch_campaigns_with_ad_groups(
    client: GAdsClient,
    context: CustomerContext,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
    deep: bool = False,
) -> List[CampaignRow]:
    """Campaigns with their ad groups nested; `deep` also nests keywords.

    One ad-group query per campaign and one keyword query per ad group: GAQL
    cannot join these resources hierarchically.
    """
    campaigns = await fetch_campaigns(client, context, start_date, end_date)
    ad_group_lists = await asyncio.gather(
        *(fetch_ad_groups(client, context, campaign_id=c.campaign_id) for c in campaigns)
    )
    for campaign, ad_groups in zip(campaigns, ad_group_lists):
        campaign.ad_groups = ad_groups
        if deep:
            await attach_keywords(client, context, ad_groups)
    return campaigns
