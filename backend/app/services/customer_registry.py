"""Customer registry: Google Ads accounts known to a connection.

WHAT:
    Maps (connection, Google Ads customer id) to one `AdsCustomer` row,
    creating it lazily the first time an account is resolved or synced.

WHY:
    Sync jobs, search terms and campaign structure all hang off the local
    customer row. The unique constraint on the natural key and an atomic
    upsert keep concurrent callers from creating duplicates.

REFERENCES:
    - app/services/account_resolver.py (AccountInfo)
    - app/services/upsert.py
"""

from __future__ import annotations

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models import AdsCustomer, GoogleOAuthConnection
from app.security import TokenCodec
from app.services import account_resolver
from app.services.account_resolver import AccountInfo
from app.services.google_ads_client import GAdsClient, normalize_customer_id
from app.services.token_service import get_refresh_token, require_active_connection
from app.services.upsert import upsert_row

logger = logging.getLogger(__name__)


def ensure_customer(
    db: Session,
    connection_id: UUID,
    external_customer_id: str,
    metadata: AccountInfo,
) -> AdsCustomer:
    """Insert or refresh the customer row for (connection, customer id).

    Mutable metadata (names, delegation ids, currency, timezone, status) is
    overwritten on every call; `last_synced_at` is never touched here.
    """
    customer_id = normalize_customer_id(external_customer_id)
    values = {
        "oauth_connection_id": connection_id,
        "customer_id": customer_id,
        "customer_name": metadata.descriptive_name or "Unnamed",
        "descriptive_name": metadata.descriptive_name,
        "login_customer_id": metadata.login_customer_id,
        "is_manager_account": metadata.is_manager_account,
        "manager_customer_id": metadata.manager_customer_id,
        "account_level": metadata.level,
        "status": metadata.status,
        "currency_code": metadata.currency_code or "USD",
        "time_zone": metadata.time_zone or "UTC",
        "is_active": True,
    }
    row_id = upsert_row(
        db,
        AdsCustomer,
        values,
        conflict_columns=("oauth_connection_id", "customer_id"),
    )
    db.commit()

    customer = db.execute(
        select(AdsCustomer).where(AdsCustomer.id == row_id).execution_options(populate_existing=True)
    ).scalar_one()
    logger.info("[CUSTOMER_REGISTRY] Ensured customer %s for connection %s", customer_id, connection_id)
    return customer


def get_customer(db: Session, connection_id: UUID, external_customer_id: str) -> Optional[AdsCustomer]:
    return (
        db.query(AdsCustomer)
        .filter(
            AdsCustomer.oauth_connection_id == connection_id,
            AdsCustomer.customer_id == normalize_customer_id(external_customer_id),
        )
        .first()
    )


def get_customer_for_user(db: Session, user_id: UUID, external_customer_id: str) -> AdsCustomer:
    """Customer row under the user's active connection, or `NotFoundError`.

    Raises:
        UnauthorizedError: the user has no active connection.
    """
    connection = require_active_connection(db, user_id)
    customer = get_customer(db, connection.id, external_customer_id)
    if customer is None:
        raise NotFoundError(f"Google Ads customer {normalize_customer_id(external_customer_id)} not found")
    return customer


def list_customers_for_user(db: Session, user_id: UUID) -> List[AdsCustomer]:
    """Locally known customers across the user's active connections."""
    return (
        db.query(AdsCustomer)
        .join(GoogleOAuthConnection, AdsCustomer.oauth_connection_id == GoogleOAuthConnection.id)
        .filter(
            GoogleOAuthConnection.user_id == user_id,
            GoogleOAuthConnection.is_active.is_(True),
        )
        .order_by(AdsCustomer.customer_name, AdsCustomer.customer_id)
        .all()
    )


def materialize_accounts(
    db: Session,
    connection_id: UUID,
    accounts: List[AccountInfo],
) -> List[AdsCustomer]:
    """`ensure_customer` for every resolved account."""
    return [ensure_customer(db, connection_id, account.customer_id, account) for account in accounts]


async def get_or_fetch_customer(
    db: Session,
    client: GAdsClient,
    codec: TokenCodec,
    user_id: UUID,
    external_customer_id: str,
) -> AdsCustomer:
    """Local customer row for the user's active connection, resolving it upstream if unseen.

    Raises:
        UnauthorizedError: no active connection / refresh token rejected.
        NotFoundError: the id is not among the accounts the credential reaches.
    """
    connection = require_active_connection(db, user_id)
    customer_id = normalize_customer_id(external_customer_id)

    existing = get_customer(db, connection.id, customer_id)
    if existing is not None:
        return existing

    logger.info("[CUSTOMER_REGISTRY] Customer %s unknown locally, resolving accounts", customer_id)
    refresh_token = get_refresh_token(codec, connection)
    accounts = await account_resolver.list_accessible_accounts(client, refresh_token, include_managed=True)
    match = next((a for a in accounts if a.customer_id == customer_id), None)
    if match is None:
        raise NotFoundError(f"Google Ads customer {customer_id} is not accessible with this connection")
    return ensure_customer(db, connection.id, customer_id, match)
