"""SQLAlchemy ORM models and enums.

This module defines the sync schema using UUID primary keys and explicit
relationships. Every performance row hangs off an `AdsCustomer`, which is
owned by exactly one `GoogleOAuthConnection`:

    Keyword -> AdGroup -> Campaign -> AdsCustomer -> GoogleOAuthConnection
    SearchTerm / SyncJob -> AdsCustomer

Deletes cascade down that chain both in the database (ON DELETE CASCADE) and
in the ORM (delete-orphan), so removing a connection removes everything synced
through it.
"""

import uuid
from datetime import datetime
import enum

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    JSON,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship, declarative_base


# Single Base used by the entire application
Base = declarative_base()

# Money columns hold exact micros / 1_000_000 values
Money = Numeric(18, 6)


# Enums ---------------------------------------------------------

class SyncJobStatusEnum(str, enum.Enum):
    """Lifecycle of a sync job: pending -> running -> completed | failed."""
    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"


class SyncTypeEnum(str, enum.Enum):
    manual = "manual"
    initial = "initial"
    incremental = "incremental"
    backfill = "backfill"


TERMINAL_SYNC_STATUSES = (SyncJobStatusEnum.completed, SyncJobStatusEnum.failed)


def _enum_values(obj):
    return [e.value for e in obj]


# Models --------------------------------------------------------

class GoogleOAuthConnection(Base):
    """One Google identity linked by one user.

    WHAT:
        Stores the encrypted access/refresh tokens returned by the OAuth
        callback together with the Google profile that granted them.
    WHY:
        Every Google Ads API call is made with the refresh token of the
        user's active connection.
    REFERENCES:
        - app/services/token_service.py (upsert / decrypt)
        - app/security.py (TokenCodec)
    """
    __tablename__ = "google_oauth_connections"
    __table_args__ = (
        UniqueConstraint("user_id", "google_user_id", name="uq_google_oauth_user_google_user"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(UUID(as_uuid=True), nullable=False, index=True)  # Identity provider user id
    google_email = Column(String, nullable=False)
    google_user_id = Column(String, nullable=False)

    # Ciphertext produced by TokenCodec, never plaintext
    access_token_enc = Column(Text, nullable=False)
    refresh_token_enc = Column(Text, nullable=True)
    token_expires_at = Column(DateTime, nullable=True)
    scopes = Column(JSON, nullable=False, default=list)

    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customers = relationship(
        "AdsCustomer",
        back_populates="connection",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    def __str__(self):
        state = "active" if self.is_active else "inactive"
        return f"{self.google_email} ({state})"


class AdsCustomer(Base):
    """An advertiser account as seen through one OAuth connection.

    `login_customer_id` is the id the API must be told to authenticate as:
    the account itself for managers and self-service accounts, otherwise the
    manager (MCC) it was reached through.
    """
    __tablename__ = "google_ads_customers"
    __table_args__ = (
        UniqueConstraint("oauth_connection_id", "customer_id", name="uq_google_ads_customers_connection_customer"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    oauth_connection_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_oauth_connections.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    customer_id = Column(String, nullable=False)  # Digits only, e.g. "1234567890"
    customer_name = Column(String, nullable=True)
    descriptive_name = Column(String, nullable=True)
    login_customer_id = Column(String, nullable=True)
    is_manager_account = Column(Boolean, nullable=False, default=False)
    manager_customer_id = Column(String, nullable=True)
    account_level = Column(Integer, nullable=True)  # 0 = direct access, >=1 = reached through a manager
    status = Column(String, nullable=True)
    currency_code = Column(String, nullable=True)
    time_zone = Column(String, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)

    # Advances only when a search-term sync completes
    last_synced_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    connection = relationship("GoogleOAuthConnection", back_populates="customers")
    sync_jobs = relationship("SyncJob", back_populates="customer", cascade="all, delete-orphan", passive_deletes=True)
    search_terms = relationship("SearchTerm", back_populates="customer", cascade="all, delete-orphan", passive_deletes=True)
    campaigns = relationship("Campaign", back_populates="customer", cascade="all, delete-orphan", passive_deletes=True)

    def __str__(self):
        return f"{self.customer_name or 'Unnamed'} ({self.customer_id})"


class SyncJob(Base):
    """One tracked attempt to sync a date range for a customer.

    A retry is always a new row; terminal rows are never reopened.
    """
    __tablename__ = "sync_jobs"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ads_customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_ads_customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    status = Column(
        Enum(SyncJobStatusEnum, name="sync_job_status", values_callable=_enum_values),
        nullable=False,
        default=SyncJobStatusEnum.pending,
    )
    sync_type = Column(
        Enum(SyncTypeEnum, name="sync_type", values_callable=_enum_values),
        nullable=False,
        default=SyncTypeEnum.manual,
    )
    sync_start_date = Column(Date, nullable=False)
    sync_end_date = Column(Date, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)
    records_processed = Column(Integer, nullable=False, default=0)
    error_message = Column(Text, nullable=True)
    error_details = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = relationship("AdsCustomer", back_populates="sync_jobs")

    def __str__(self):
        return f"{self.sync_type.value} sync {self.sync_start_date}..{self.sync_end_date} ({self.status.value})"


class SearchTerm(Base):
    """Search query that triggered an ad, with a metrics snapshot.

    `fetched_at` is shared by every row written by the same sync, so a batch
    can be traced back to one upstream fetch.
    """
    __tablename__ = "search_terms"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ads_customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_ads_customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=True)
    ad_group_id = Column(String, nullable=False)
    ad_group_name = Column(String, nullable=True)
    search_term = Column(Text, nullable=False)
    status = Column(String, nullable=True)
    keyword_text = Column(String, nullable=True)
    match_type = Column(String, nullable=True)

    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    cost = Column(Money, nullable=False, default=0)
    conversions = Column(Numeric(18, 4), nullable=False, default=0)
    conversions_value = Column(Money, nullable=False, default=0)
    ctr = Column(Numeric(12, 6), nullable=False, default=0)
    average_cpc = Column(Money, nullable=False, default=0)

    date_range_start = Column(Date, nullable=False)
    date_range_end = Column(Date, nullable=False)
    fetched_at = Column(DateTime, nullable=False, index=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    customer = relationship("AdsCustomer", back_populates="search_terms")

    def __str__(self):
        return f"{self.search_term} ({self.impressions} impressions)"


class Campaign(Base):
    __tablename__ = "google_ads_campaigns"
    __table_args__ = (
        UniqueConstraint("ads_customer_id", "campaign_id", name="uq_google_ads_campaigns_customer_campaign"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ads_customer_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_ads_customers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    campaign_id = Column(String, nullable=False)
    campaign_name = Column(String, nullable=False)
    status = Column(String, nullable=True)
    advertising_channel_type = Column(String, nullable=True)
    bidding_strategy_type = Column(String, nullable=True)
    budget_amount = Column(Money, nullable=True)
    currency_code = Column(String, nullable=True)
    start_date = Column(String, nullable=True)
    end_date = Column(String, nullable=True)

    # Metrics are only populated when the structure sync was given a date range
    impressions = Column(Integer, nullable=False, default=0)
    clicks = Column(Integer, nullable=False, default=0)
    cost = Column(Money, nullable=False, default=0)
    conversions = Column(Numeric(18, 4), nullable=False, default=0)
    conversions_value = Column(Money, nullable=False, default=0)
    ctr = Column(Numeric(12, 6), nullable=False, default=0)
    average_cpc = Column(Money, nullable=False, default=0)
    average_cpm = Column(Money, nullable=False, default=0)
    metrics_start_date = Column(Date, nullable=True)
    metrics_end_date = Column(Date, nullable=True)

    last_fetched_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    customer = relationship("AdsCustomer", back_populates="campaigns")
    ad_groups = relationship("AdGroup", back_populates="campaign", cascade="all, delete-orphan", passive_deletes=True)

    def __str__(self):
        return f"{self.campaign_name} ({self.campaign_id})"


class AdGroup(Base):
    __tablename__ = "google_ads_ad_groups"
    __table_args__ = (
        UniqueConstraint("campaign_db_id", "ad_group_id", name="uq_google_ads_ad_groups_campaign_ad_group"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    campaign_db_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_ads_campaigns.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    ad_group_id = Column(String, nullable=False)
    ad_group_name = Column(String, nullable=False)
    status = Column(String, nullable=True)
    type = Column(String, nullable=True)
    cpc_bid = Column(Money, nullable=True)
    target_cpa = Column(Money, nullable=True)  # None when the ad group has no tCPA target

    last_fetched_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    campaign = relationship("Campaign", back_populates="ad_groups")
    keywords = relationship("Keyword", back_populates="ad_group", cascade="all, delete-orphan", passive_deletes=True)

    def __str__(self):
        return f"{self.ad_group_name} ({self.ad_group_id})"


class Keyword(Base):
    __tablename__ = "google_ads_keywords"
    __table_args__ = (
        UniqueConstraint("ad_group_db_id", "keyword_id", name="uq_google_ads_keywords_ad_group_keyword"),
    )

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    ad_group_db_id = Column(
        UUID(as_uuid=True),
        ForeignKey("google_ads_ad_groups.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    keyword_id = Column(String, nullable=False)  # ad_group_criterion.criterion_id
    keyword_text = Column(String, nullable=False)
    match_type = Column(String, nullable=True)
    status = Column(String, nullable=True)
    quality_score = Column(Integer, nullable=True)
    final_urls = Column(JSON, nullable=False, default=list)
    cpc_bid = Column(Money, nullable=True)

    last_fetched_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    ad_group = relationship("AdGroup", back_populates="keywords")

    def __str__(self):
        return f"{self.keyword_text} [{self.match_type or 'UNKNOWN'}]"
