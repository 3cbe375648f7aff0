#!/usr/bin/env python3
"""
Run Google Ads syncs from the command line.

WHAT:
    Runs the same search-term and structure syncs as the HTTP endpoints,
    for one user's customer, outside request scope:
    - search-terms: one sync job over a date range (defaults to the last 30 days)
    - structure: campaigns, ad groups and keywords snapshot

USAGE:
    python scripts/sync_google_ads.py search-terms --user-id <uuid> --customer 123-456-7890
    python scripts/sync_google_ads.py search-terms --user-id <uuid> --customer 1234567890 \
        --start 2024-01-01 --end 2024-01-31 --backfill
    python scripts/sync_google_ads.py structure --user-id <uuid> --customer 1234567890

REFERENCES:
    - backend/app/services/google_sync_service.py
    - backend/app/services/google_full_sync_service.py
"""

import argparse
import asyncio
import logging
import os
import sys
from datetime import date, timedelta
from uuid import UUID

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def _clients():
    from app.deps import get_settings
    from app.security import TokenCodec
    from app.services.google_ads_client import GAdsClient

    settings = get_settings()
    return GAdsClient.from_settings(settings), TokenCodec.from_hex(settings.CRYPTO_SECRET)


async def run_search_terms(args) -> int:
    from app.database import get_sync_session
    from app.models import SyncJobStatusEnum, SyncTypeEnum
    from app.services.google_sync_service import sync_search_terms

    ads_client, codec = _clients()
    end = args.end or (date.today() - timedelta(days=1)).isoformat()
    start = args.start or (date.today() - timedelta(days=30)).isoformat()
    sync_type = SyncTypeEnum.backfill if args.backfill else SyncTypeEnum.manual

    with get_sync_session() as db:
        result = await sync_search_terms(
            db, ads_client, codec, args.user_id, args.customer, start, end, sync_type=sync_type,
        )

    logger.info(
        "Job %s %s: fetched=%d stored=%d",
        result.job_id, result.status.value, result.records_fetched, result.records_stored,
    )
    if result.status == SyncJobStatusEnum.failed:
        logger.error("Sync failed: %s", result.error)
        return 1
    return 0


async def run_structure(args) -> int:
    from app.database import get_sync_session
    from app.services.google_full_sync_service import sync_account_structure

    ads_client, codec = _clients()
    with get_sync_session() as db:
        totals = await sync_account_structure(
            db, ads_client, codec, args.user_id, args.customer,
            login_customer_id=args.login_customer_id,
            start_date=args.start,
            end_date=args.end,
        )

    logger.info(
        "Structure synced: %d campaigns, %d ad groups, %d keywords",
        totals.total_campaigns, totals.total_ad_groups, totals.total_keywords,
    )
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Google Ads sync runner")
    subparsers = parser.add_subparsers(dest="command", required=True)

    for name in ("search-terms", "structure"):
        sub = subparsers.add_parser(name)
        sub.add_argument("--user-id", type=UUID, required=True, help="Identity provider user id")
        sub.add_argument("--customer", required=True, help="Google Ads customer id (dashes allowed)")
        sub.add_argument("--start", help="YYYY-MM-DD")
        sub.add_argument("--end", help="YYYY-MM-DD")

    subparsers.choices["search-terms"].add_argument(
        "--backfill", action="store_true", help="Record the job as a backfill",
    )
    subparsers.choices["structure"].add_argument("--login-customer-id", help="Override the manager to log in as")

    args = parser.parse_args()

    from app.exceptions import AdsSyncError

    runner = run_search_terms if args.command == "search-terms" else run_structure
    try:
        return asyncio.run(runner(args))
    except AdsSyncError as e:
        logger.error("%s: %s", type(e).__name__, e.to_user_message())
        return 1


if __name__ == "__main__":
    sys.exit(main())
