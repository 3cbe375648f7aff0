"""Create Google Ads sync schema

Revision ID: 20260101_000001
Revises:
Create Date: 2026-01-01

WHAT:
    Creates the tables behind Google Ads connections and syncs:
    - google_oauth_connections: encrypted OAuth tokens per (user, Google identity)
    - google_ads_customers: advertiser accounts reachable through a connection
    - sync_jobs: one row per search-term sync attempt
    - search_terms: fetched search-term rows with metrics snapshots
    - google_ads_campaigns / google_ads_ad_groups / google_ads_keywords:
      account structure snapshots

WHY:
    Every table below google_oauth_connections cascades on delete, so
    removing a connection removes everything synced through it.

REFERENCES:
    - app/models.py
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


# revision identifiers, used by Alembic.
revision = '20260101_000001'
down_revision = None
branch_labels = None
depends_on = None


MONEY = sa.Numeric(18, 6)


def _timestamps():
    return [
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
        sa.Column('updated_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    ]


def _metric_columns():
    return [
        sa.Column('impressions', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('clicks', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('cost', MONEY, nullable=False, server_default='0'),
        sa.Column('conversions', sa.Numeric(18, 4), nullable=False, server_default='0'),
        sa.Column('conversions_value', MONEY, nullable=False, server_default='0'),
        sa.Column('ctr', sa.Numeric(12, 6), nullable=False, server_default='0'),
        sa.Column('average_cpc', MONEY, nullable=False, server_default='0'),
    ]


def upgrade() -> None:
    # =========================================================================
    # STEP 1: Connections and customers
    # =========================================================================
    op.create_table(
        'google_oauth_connections',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('google_email', sa.String(), nullable=False),
        sa.Column('google_user_id', sa.String(), nullable=False),
        sa.Column('access_token_enc', sa.Text(), nullable=False),
        sa.Column('refresh_token_enc', sa.Text(), nullable=True),
        sa.Column('token_expires_at', sa.DateTime(), nullable=True),
        sa.Column('scopes', sa.JSON(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.UniqueConstraint('user_id', 'google_user_id', name='uq_google_oauth_user_google_user'),
    )
    op.create_index('ix_google_oauth_connections_user_id', 'google_oauth_connections', ['user_id'])

    op.create_table(
        'google_ads_customers',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'oauth_connection_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_oauth_connections.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('customer_id', sa.String(), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=True),
        sa.Column('descriptive_name', sa.String(), nullable=True),
        sa.Column('login_customer_id', sa.String(), nullable=True),
        sa.Column('is_manager_account', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('manager_customer_id', sa.String(), nullable=True),
        sa.Column('account_level', sa.Integer(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('currency_code', sa.String(), nullable=True),
        sa.Column('time_zone', sa.String(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('last_synced_at', sa.DateTime(), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            'oauth_connection_id', 'customer_id', name='uq_google_ads_customers_connection_customer',
        ),
    )
    op.create_index('ix_google_ads_customers_oauth_connection_id', 'google_ads_customers', ['oauth_connection_id'])

    # =========================================================================
    # STEP 2: Sync jobs and search terms
    # =========================================================================
    sync_job_status = postgresql.ENUM('pending', 'running', 'completed', 'failed', name='sync_job_status')
    sync_type = postgresql.ENUM('manual', 'initial', 'incremental', 'backfill', name='sync_type')

    op.create_table(
        'sync_jobs',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'ads_customer_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_ads_customers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('status', sync_job_status, nullable=False, server_default='pending'),
        sa.Column('sync_type', sync_type, nullable=False, server_default='manual'),
        sa.Column('sync_start_date', sa.Date(), nullable=False),
        sa.Column('sync_end_date', sa.Date(), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=True),
        sa.Column('completed_at', sa.DateTime(), nullable=True),
        sa.Column('records_processed', sa.Integer(), nullable=False, server_default='0'),
        sa.Column('error_message', sa.Text(), nullable=True),
        sa.Column('error_details', sa.JSON(), nullable=True),
        *_timestamps(),
    )
    op.create_index('ix_sync_jobs_ads_customer_id', 'sync_jobs', ['ads_customer_id'])

    op.create_table(
        'search_terms',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'ads_customer_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_ads_customers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('campaign_name', sa.String(), nullable=True),
        sa.Column('ad_group_id', sa.String(), nullable=False),
        sa.Column('ad_group_name', sa.String(), nullable=True),
        sa.Column('search_term', sa.Text(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('keyword_text', sa.String(), nullable=True),
        sa.Column('match_type', sa.String(), nullable=True),
        *_metric_columns(),
        sa.Column('date_range_start', sa.Date(), nullable=False),
        sa.Column('date_range_end', sa.Date(), nullable=False),
        sa.Column('fetched_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False, server_default=sa.func.now()),
    )
    op.create_index('ix_search_terms_ads_customer_id', 'search_terms', ['ads_customer_id'])
    op.create_index('ix_search_terms_fetched_at', 'search_terms', ['fetched_at'])

    # =========================================================================
    # STEP 3: Account structure
    # =========================================================================
    op.create_table(
        'google_ads_campaigns',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'ads_customer_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_ads_customers.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('campaign_id', sa.String(), nullable=False),
        sa.Column('campaign_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('advertising_channel_type', sa.String(), nullable=True),
        sa.Column('bidding_strategy_type', sa.String(), nullable=True),
        sa.Column('budget_amount', MONEY, nullable=True),
        sa.Column('currency_code', sa.String(), nullable=True),
        sa.Column('start_date', sa.String(), nullable=True),
        sa.Column('end_date', sa.String(), nullable=True),
        *_metric_columns(),
        sa.Column('average_cpm', MONEY, nullable=False, server_default='0'),
        sa.Column('metrics_start_date', sa.Date(), nullable=True),
        sa.Column('metrics_end_date', sa.Date(), nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('ads_customer_id', 'campaign_id', name='uq_google_ads_campaigns_customer_campaign'),
    )
    op.create_index('ix_google_ads_campaigns_ads_customer_id', 'google_ads_campaigns', ['ads_customer_id'])

    op.create_table(
        'google_ads_ad_groups',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'campaign_db_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_ads_campaigns.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('ad_group_id', sa.String(), nullable=False),
        sa.Column('ad_group_name', sa.String(), nullable=False),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('type', sa.String(), nullable=True),
        sa.Column('cpc_bid', MONEY, nullable=True),
        sa.Column('target_cpa', MONEY, nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('campaign_db_id', 'ad_group_id', name='uq_google_ads_ad_groups_campaign_ad_group'),
    )
    op.create_index('ix_google_ads_ad_groups_campaign_db_id', 'google_ads_ad_groups', ['campaign_db_id'])

    op.create_table(
        'google_ads_keywords',
        sa.Column('id', postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            'ad_group_db_id', postgresql.UUID(as_uuid=True),
            sa.ForeignKey('google_ads_ad_groups.id', ondelete='CASCADE'), nullable=False,
        ),
        sa.Column('keyword_id', sa.String(), nullable=False),
        sa.Column('keyword_text', sa.String(), nullable=False),
        sa.Column('match_type', sa.String(), nullable=True),
        sa.Column('status', sa.String(), nullable=True),
        sa.Column('quality_score', sa.Integer(), nullable=True),
        sa.Column('final_urls', sa.JSON(), nullable=False),
        sa.Column('cpc_bid', MONEY, nullable=True),
        sa.Column('last_fetched_at', sa.DateTime(), nullable=False),
        *_timestamps(),
        sa.UniqueConstraint('ad_group_db_id', 'keyword_id', name='uq_google_ads_keywords_ad_group_keyword'),
    )
    op.create_index('ix_google_ads_keywords_ad_group_db_id', 'google_ads_keywords', ['ad_group_db_id'])


def downgrade() -> None:
    # Children first
    op.drop_table('google_ads_keywords')
    op.drop_table('google_ads_ad_groups')
    op.drop_table('google_ads_campaigns')
    op.drop_table('search_terms')
    op.drop_table('sync_jobs')
    op.drop_table('google_ads_customers')
    op.drop_table('google_oauth_connections')

    op.execute("DROP TYPE IF EXISTS sync_type")
    op.execute("DROP TYPE IF EXISTS sync_job_status")
