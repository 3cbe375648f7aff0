"""Account resolution for Google Ads credentials.

WHAT:
    Turns a refresh token into the list of advertiser accounts the caller may
    operate on, each with the `login_customer_id` the API must be called with.

WHY:
    Client accounts under a manager (MCC) can only be queried "as" the
    manager. Getting this wrong yields USER_PERMISSION_DENIED on every call,
    so the delegation rules live in one place:

    - manager accounts log in as themselves
    - other accounts log in as the fallback manager (the first manager the
      credential can access), or as themselves when there is none

    The managed variant also walks each manager's customer_client roster to
    surface accounts only reachable through the hierarchy, including
    suspended/closed/canceled ones that are not hidden.

REFERENCES:
    - app/services/customer_registry.py (materializes AccountInfo rows)
    - https://developers.google.com/google-ads/api/docs/account-management/get-account-hierarchy
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, List, Optional

from app.exceptions import UpstreamError
from app.services.google_ads_client import CustomerContext, GAdsClient, enum_name, normalize_customer_id

logger = logging.getLogger(__name__)


CUSTOMER_METADATA_QUERY = (
    "SELECT customer.id, customer.descriptive_name, customer.currency_code, "
    "customer.time_zone, customer.manager, customer.status "
    "FROM customer LIMIT 1"
)

MANAGED_ACCOUNTS_QUERY = (
    "SELECT customer_client.id, customer_client.descriptive_name, "
    "customer_client.currency_code, customer_client.time_zone, "
    "customer_client.manager, customer_client.level, customer_client.status, "
    "customer_client.hidden "
    "FROM customer_client "
    "WHERE customer_client.level >= 1 "
    "AND customer_client.hidden = FALSE "
    "AND customer_client.status IN ('ENABLED', 'SUSPENDED', 'CLOSED', 'CANCELED')"
)


@dataclass(frozen=True)
class AccountInfo:
    """One advertiser account as seen by a credential.

    `manager_customer_id` is None for managers themselves and for
    self-service accounts. `level` is 0 for direct access and the hierarchy
    depth for accounts reached through a manager.
    """

    customer_id: str
    descriptive_name: Optional[str]
    currency_code: Optional[str]
    time_zone: Optional[str]
    is_manager_account: bool
    login_customer_id: str
    manager_customer_id: Optional[str] = None
    status: Optional[str] = None
    level: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _account_from_customer_row(row: Any) -> AccountInfo:
    customer = row.customer
    customer_id = normalize_customer_id(customer.id)
    return AccountInfo(
        customer_id=customer_id,
        descriptive_name=getattr(customer, "descriptive_name", None) or None,
        currency_code=getattr(customer, "currency_code", None) or None,
        time_zone=getattr(customer, "time_zone", None) or None,
        is_manager_account=bool(getattr(customer, "manager", False)),
        # Provisional; assigned for real once all managers are known
        login_customer_id=customer_id,
        status=enum_name(getattr(customer, "status", None)),
    )


async def _fetch_account_metadata(
    client: GAdsClient,
    refresh_token: str,
    customer_id: str,
) -> Optional[AccountInfo]:
    """Fetch one account's metadata; None when the lookup fails."""
    context = CustomerContext(customer_id=customer_id, refresh_token=refresh_token, login_customer_id=customer_id)
    try:
        rows = await client.query(context, CUSTOMER_METADATA_QUERY)
    except Exception as exc:  # noqa: BLE001
        logger.warning("[ACCOUNT_RESOLVER] Dropping customer %s, metadata lookup failed: %s", customer_id, exc)
        return None
    if not rows:
        logger.warning("[ACCOUNT_RESOLVER] Dropping customer %s, no customer row returned", customer_id)
        return None
    return _account_from_customer_row(rows[0])


def assign_login_customer_ids(accounts: List[AccountInfo]) -> List[AccountInfo]:
    """Apply manager delegation rules to directly accessible accounts.

    The first manager in `accounts` is the fallback manager for every
    non-manager account.
    """
    fallback_manager = next((a for a in accounts if a.is_manager_account), None)
    resolved: List[AccountInfo] = []
    for account in accounts:
        if account.is_manager_account:
            resolved.append(replace(account, login_customer_id=account.customer_id, manager_customer_id=None))
        elif fallback_manager is not None:
            resolved.append(replace(
                account,
                login_customer_id=fallback_manager.customer_id,
                manager_customer_id=fallback_manager.customer_id,
            ))
        else:
            resolved.append(replace(account, login_customer_id=account.customer_id, manager_customer_id=None))
    return resolved


async def get_managed_accounts(
    client: GAdsClient,
    refresh_token: str,
    manager_customer_id: str,
) -> List[AccountInfo]:
    """Return every non-hidden client account below a manager.

    customer_client already spans the whole hierarchy, so one query covers
    sub-managers' clients too. All entries log in through `manager_customer_id`.

    Raises:
        UpstreamError / UnauthorizedError from the query.
    """
    manager_id = normalize_customer_id(manager_customer_id)
    context = CustomerContext(customer_id=manager_id, refresh_token=refresh_token, login_customer_id=manager_id)
    rows = await client.query(context, MANAGED_ACCOUNTS_QUERY)

    accounts: List[AccountInfo] = []
    for row in rows:
        cc = row.customer_client
        customer_id = normalize_customer_id(getattr(cc, "id", None))
        if not customer_id or customer_id == manager_id:
            continue
        accounts.append(AccountInfo(
            customer_id=customer_id,
            descriptive_name=getattr(cc, "descriptive_name", None) or None,
            currency_code=getattr(cc, "currency_code", None) or None,
            time_zone=getattr(cc, "time_zone", None) or None,
            is_manager_account=bool(getattr(cc, "manager", False)),
            login_customer_id=manager_id,
            manager_customer_id=manager_id,
            status=enum_name(getattr(cc, "status", None)),
            level=int(getattr(cc, "level", 1) or 1),
        ))

    logger.info("[ACCOUNT_RESOLVER] Manager %s has %d managed accounts", manager_id, len(accounts))
    return accounts


async def list_accessible_accounts(
    client: GAdsClient,
    refresh_token: str,
    include_managed: bool = False,
) -> List[AccountInfo]:
    """Resolve every account a refresh token may act on.

    Args:
        client: Google Ads gateway
        refresh_token: decrypted refresh token of the user's connection
        include_managed: also walk each manager's client roster

    Returns:
        Direct accounts in access order, followed by hierarchy-only accounts.
        An id appears once; the direct-access entry wins.

    Raises:
        UnauthorizedError: refresh token rejected.
        UpstreamError: listing failed, or every metadata lookup failed.
    """
    customer_ids = await client.list_accessible_customers(refresh_token)
    if not customer_ids:
        logger.info("[ACCOUNT_RESOLVER] Credential has no accessible customers")
        return []

    results = await asyncio.gather(
        *(_fetch_account_metadata(client, refresh_token, cid) for cid in customer_ids)
    )
    fetched = [account for account in results if account is not None]
    logger.info(
        "[ACCOUNT_RESOLVER] Fetched metadata for %d/%d accessible customers",
        len(fetched), len(customer_ids),
    )
    if not fetched:
        raise UpstreamError("Could not fetch details for any accessible Google Ads customer")

    accounts = assign_login_customer_ids(fetched)
    if not include_managed:
        return accounts

    managers = [a for a in accounts if a.is_manager_account]
    rosters = await asyncio.gather(
        *(get_managed_accounts(client, refresh_token, m.customer_id) for m in managers),
        return_exceptions=True,
    )

    seen = {a.customer_id for a in accounts}
    merged = list(accounts)
    for manager, roster in zip(managers, rosters):
        if isinstance(roster, Exception):
            logger.warning(
                "[ACCOUNT_RESOLVER] Skipping managed accounts of %s: %s", manager.customer_id, roster,
            )
            continue
        for account in roster:
            if account.customer_id in seen:
                continue
            seen.add(account.customer_id)
            merged.append(account)

    logger.info(
        "[ACCOUNT_RESOLVER] Resolved %d accounts (%d direct, %d via managers)",
        len(merged), len(accounts), len(merged) - len(accounts),
    )
    return merged
