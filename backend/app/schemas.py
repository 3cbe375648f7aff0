"""Pydantic schemas for request/response payloads."""

from datetime import datetime, date
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from .models import SyncJobStatusEnum, SyncTypeEnum


# =============================================================================
# OAUTH CONNECTION
# =============================================================================

class AuthorizationUrlOut(BaseModel):
    authorization_url: str = Field(description="Google consent screen URL to redirect the user to")


class ConnectionOut(BaseModel):
    """Current Google connection of the user (tokens are never returned)."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    google_email: str = Field(description="Email of the Google identity that granted access")
    google_user_id: str
    is_active: bool
    token_expires_at: Optional[datetime] = None
    scopes: List[str] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime


class ConnectionStatusOut(BaseModel):
    connected: bool
    connection: Optional[ConnectionOut] = None


class TokenRefreshOut(BaseModel):
    refreshed: bool
    token_expires_at: Optional[datetime] = None


class SuccessResponse(BaseModel):
    detail: str = Field(description="Success message", example="Google Ads disconnected")


class ErrorResponse(BaseModel):
    detail: str = Field(description="Error message", example="Google Ads customer 1234567890 not found")


# =============================================================================
# ACCOUNTS
# =============================================================================

class AccountInfoOut(BaseModel):
    """A Google Ads account reachable by the connected credential."""

    model_config = ConfigDict(from_attributes=True)

    customer_id: str = Field(description="10-digit customer id without dashes", example="1234567890")
    descriptive_name: Optional[str] = None
    currency_code: Optional[str] = None
    time_zone: Optional[str] = None
    is_manager_account: bool = False
    login_customer_id: Optional[str] = Field(
        default=None,
        description="Manager id to send as login-customer-id when querying this account",
    )
    manager_customer_id: Optional[str] = None
    status: Optional[str] = None
    level: int = 0


class CustomerOut(BaseModel):
    """Locally registered Google Ads customer."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    customer_id: str
    customer_name: str
    descriptive_name: Optional[str] = None
    login_customer_id: Optional[str] = None
    is_manager_account: bool
    manager_customer_id: Optional[str] = None
    account_level: int = 0
    status: Optional[str] = None
    currency_code: str
    time_zone: str
    is_active: bool
    last_synced_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


# =============================================================================
# SEARCH-TERM SYNC
# =============================================================================

class SyncSearchTermsRequest(BaseModel):
    start_date: str = Field(description="Inclusive start date (YYYY-MM-DD)", example="2024-01-01")
    end_date: str = Field(description="Inclusive end date (YYYY-MM-DD)", example="2024-01-31")


class SyncResultOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    job_id: UUID
    customer_id: str
    customer_name: Optional[str] = None
    status: SyncJobStatusEnum
    records_fetched: int = Field(description="Rows returned by Google Ads")
    records_stored: int = Field(description="Rows written after skipping unusable ones")
    start_date: date
    end_date: date
    error: Optional[str] = None


class SyncJobOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    status: SyncJobStatusEnum
    sync_type: SyncTypeEnum
    sync_start_date: date
    sync_end_date: date
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    records_processed: int = 0
    error_message: Optional[str] = None
    error_details: Optional[Dict[str, Any]] = None
    created_at: datetime


class SearchTermOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    campaign_id: str
    campaign_name: str
    ad_group_id: str
    ad_group_name: str
    search_term: str
    status: Optional[str] = None
    keyword_text: Optional[str] = None
    match_type: Optional[str] = None
    impressions: int
    clicks: int
    cost: float
    conversions: float
    conversions_value: float
    ctr: float
    average_cpc: float
    date_range_start: date
    date_range_end: date
    fetched_at: datetime


# =============================================================================
# STRUCTURE SYNC
# =============================================================================

class StructureSyncRequest(BaseModel):
    login_customer_id: Optional[str] = Field(
        default=None,
        description="Override the manager id used to reach this customer",
    )
    start_date: Optional[str] = Field(default=None, description="Metrics window start (YYYY-MM-DD)")
    end_date: Optional[str] = Field(default=None, description="Metrics window end (YYYY-MM-DD)")


class StructureSyncOut(BaseModel):
    customer_id: str
    total_campaigns: int
    total_ad_groups: int
    total_keywords: int


# =============================================================================
# LIVE QUERIES
# =============================================================================

class MetricsOut(BaseModel):
    impressions: int = 0
    clicks: int = 0
    cost: float = 0.0
    conversions: float = 0.0
    conversions_value: float = 0.0
    ctr: float = 0.0
    average_cpc: float = 0.0


class LiveSearchTermOut(BaseModel):
    campaign_id: str
    campaign_name: str
    ad_group_id: str
    ad_group_name: str
    search_term: str
    status: Optional[str] = None
    keyword_text: Optional[str] = None
    match_type: Optional[str] = None
    metrics: MetricsOut


class LiveSearchTermsOut(BaseModel):
    customer_id: str
    start_date: date
    end_date: date
    records_fetched: int
    records_skipped: int
    search_terms: List[LiveSearchTermOut]


class LiveKeywordOut(BaseModel):
    keyword_id: str
    keyword_text: str
    match_type: Optional[str] = None
    status: Optional[str] = None
    quality_score: Optional[int] = None
    final_urls: List[str] = Field(default_factory=list)
    cpc_bid: Optional[float] = None
    ad_group_id: Optional[str] = None


class LiveAdGroupOut(BaseModel):
    ad_group_id: str
    ad_group_name: str
    status: Optional[str] = None
    type: Optional[str] = None
    cpc_bid: Optional[float] = None
    target_cpa: Optional[float] = None
    campaign_id: Optional[str] = None
    keywords: List[LiveKeywordOut] = Field(default_factory=list)


class LiveCampaignOut(BaseModel):
    campaign_id: str
    campaign_name: str
    status: Optional[str] = None
    advertising_channel_type: Optional[str] = None
    bidding_strategy_type: Optional[str] = None
    budget_amount: Optional[float] = None
    currency_code: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    metrics: Optional[MetricsOut] = None
    ad_groups: List[LiveAdGroupOut] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str = Field(description="Service status", example="ok")
