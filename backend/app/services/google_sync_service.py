"""Search-term sync jobs.

WHAT:
    Runs one "fetch search terms for a date range" unit of work for a
    customer and tracks it as a `SyncJob` row:

        pending -> running -> completed | failed

WHY:
    The job row is the durability boundary. It is committed as `pending`
    before anything is fetched and moved to `running` right before the
    upstream call, so an interrupted sync leaves an inspectable `running`
    row. Retries always create a new job; terminal rows are never reopened.

FAILURE POLICY:
    - Missing connection, bad dates, unknown customer: raised before any job
      row exists (UnauthorizedError / ValidationError / NotFoundError).
    - Anything failing after the job exists is recorded on the job
      (message + structured details) and returned as a `failed` SyncResult.

REFERENCES:
    - app/services/google_ads_service.py (fetch_search_terms)
    - app/services/customer_registry.py (get_or_fetch_customer)
    - app/models.py (SyncJob, SearchTerm)
"""

from __future__ import annotations

import logging
import traceback
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Union
from uuid import UUID

from sqlalchemy import insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.exceptions import UpstreamError, ValidationError
from app.models import (
    AdsCustomer,
    SearchTerm,
    SyncJob,
    SyncJobStatusEnum,
    SyncTypeEnum,
)
from app.security import TokenCodec
from app.services.customer_registry import get_customer_for_user, get_or_fetch_customer
from app.services.google_ads_client import CustomerContext, GAdsClient
from app.services.google_ads_service import SearchTermRow, fetch_search_terms, parse_date, validate_date_range
from app.services.token_service import get_refresh_token, require_active_connection
from app.telemetry.sentry import capture_exception

logger = logging.getLogger(__name__)

SYNC_JOBS_LIMIT = 50
STORED_SEARCH_TERMS_LIMIT = 10_000

_ALLOWED_TRANSITIONS = {
    SyncJobStatusEnum.pending: {SyncJobStatusEnum.running, SyncJobStatusEnum.failed},
    SyncJobStatusEnum.running: {SyncJobStatusEnum.completed, SyncJobStatusEnum.failed},
    SyncJobStatusEnum.completed: set(),
    SyncJobStatusEnum.failed: set(),
}


@dataclass
class SyncResult:
    job_id: UUID
    customer_id: str
    customer_name: Optional[str]
    status: SyncJobStatusEnum
    records_fetched: int
    records_stored: int
    start_date: date
    end_date: date
    error: Optional[str] = None


# =============================================================================
# JOB STATE MACHINE
# =============================================================================

def _transition(job: SyncJob, status: SyncJobStatusEnum) -> None:
    if status not in _ALLOWED_TRANSITIONS[job.status]:
        raise RuntimeError(f"Illegal sync job transition {job.status.value} -> {status.value} for job {job.id}")
    job.status = status


def create_sync_job(
    db: Session,
    customer: AdsCustomer,
    start: date,
    end: date,
    sync_type: SyncTypeEnum = SyncTypeEnum.manual,
) -> SyncJob:
    job = SyncJob(
        ads_customer_id=customer.id,
        status=SyncJobStatusEnum.pending,
        sync_type=sync_type,
        sync_start_date=start,
        sync_end_date=end,
        records_processed=0,
    )
    db.add(job)
    db.commit()
    return job


def mark_job_running(db: Session, job: SyncJob) -> SyncJob:
    _transition(job, SyncJobStatusEnum.running)
    job.started_at = datetime.utcnow()
    db.commit()
    return job


def mark_job_completed(db: Session, job: SyncJob, customer: AdsCustomer, records_processed: int) -> SyncJob:
    """Close the job and advance the customer's sync watermark in one commit."""
    _transition(job, SyncJobStatusEnum.completed)
    completed_at = datetime.utcnow()
    job.completed_at = completed_at
    job.records_processed = records_processed
    customer.last_synced_at = completed_at
    db.commit()
    return job


def _error_details(exc: BaseException, customer_id: str) -> Dict[str, Any]:
    if isinstance(exc, UpstreamError):
        kind = "upstream"
    elif isinstance(exc, SQLAlchemyError):
        kind = "storage"
    elif isinstance(exc, Exception):
        kind = "internal"
    else:
        kind = "interrupted"
    details: Dict[str, Any] = {
        "type": exc.__class__.__name__,
        "kind": kind,
        "message": str(exc),
        "customer_id": customer_id,
        "traceback": "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)),
    }
    if isinstance(exc, UpstreamError):
        details["upstream_kind"] = exc.kind
        details["retry_seconds"] = exc.retry_seconds
    return details


def mark_job_failed(db: Session, job: SyncJob, exc: BaseException, customer_id: str) -> SyncJob:
    _transition(job, SyncJobStatusEnum.failed)
    job.completed_at = datetime.utcnow()
    job.error_message = str(exc) or exc.__class__.__name__
    job.error_details = _error_details(exc, customer_id)
    db.commit()
    return job


# =============================================================================
# PERSISTENCE
# =============================================================================

def build_search_term_record(
    ads_customer_id: UUID,
    row: SearchTermRow,
    start: date,
    end: date,
    fetched_at: datetime,
) -> Dict[str, Any]:
    m = row.metrics
    return {
        "ads_customer_id": ads_customer_id,
        "campaign_id": row.campaign_id,
        "campaign_name": row.campaign_name,
        "ad_group_id": row.ad_group_id,
        "ad_group_name": row.ad_group_name,
        "search_term": row.search_term,
        "status": row.status,
        "keyword_text": row.keyword_text,
        "match_type": row.match_type,
        "impressions": m.impressions,
        "clicks": m.clicks,
        "cost": m.cost,
        "conversions": m.conversions,
        "conversions_value": m.conversions_value,
        "ctr": m.ctr,
        "average_cpc": m.average_cpc,
        "date_range_start": start,
        "date_range_end": end,
        "fetched_at": fetched_at,
    }


def bulk_insert_search_terms(db: Session, records: List[Dict[str, Any]]) -> int:
    """Insert a batch and return how many rows were actually written."""
    if not records:
        return 0
    inserted_ids = db.execute(insert(SearchTerm).returning(SearchTerm.id), records).scalars().all()
    return len(inserted_ids)


# =============================================================================
# ORCHESTRATION
# =============================================================================

async def sync_search_terms(
    db: Session,
    client: GAdsClient,
    codec: TokenCodec,
    user_id: UUID,
    external_customer_id: str,
    start_date: Union[str, date],
    end_date: Union[str, date],
    sync_type: SyncTypeEnum = SyncTypeEnum.manual,
) -> SyncResult:
    """Fetch and store search terms for one customer and date range.

    Raises (before any job row exists):
        UnauthorizedError, ValidationError, NotFoundError, UpstreamError
        (account resolution for an unseen customer).

    Returns:
        SyncResult with status `completed` or `failed`.
    """
    connection = require_active_connection(db, user_id)
    start, end = validate_date_range(start_date, end_date)
    customer = await get_or_fetch_customer(db, client, codec, user_id, external_customer_id)
    refresh_token = get_refresh_token(codec, connection)

    # Plain values survive rollbacks that expire ORM state
    customer_id = customer.customer_id
    customer_name = customer.customer_name

    job = create_sync_job(db, customer, start, end, sync_type)
    mark_job_running(db, job)
    job_id = job.id
    logger.info(
        "[GOOGLE_SYNC] Job %s started for customer %s (%s..%s)", job_id, customer_id, start, end,
    )

    context = CustomerContext(
        customer_id=customer_id,
        refresh_token=refresh_token,
        login_customer_id=customer.login_customer_id,
    )
    records_fetched = 0
    try:
        page = await fetch_search_terms(client, context, start, end)
        records_fetched = page.fetched_count

        fetched_at = datetime.utcnow()
        records = [build_search_term_record(customer.id, row, start, end, fetched_at) for row in page.rows]
        records_stored = bulk_insert_search_terms(db, records)
        mark_job_completed(db, job, customer, records_stored)
    except Exception as exc:  # noqa: BLE001
        db.rollback()
        logger.exception("[GOOGLE_SYNC] Job %s failed for customer %s", job_id, customer_id)
        mark_job_failed(db, job, exc, customer_id)
        capture_exception(exc, extra={"job_id": str(job_id), "customer_id": customer_id})
        return SyncResult(
            job_id=job_id,
            customer_id=customer_id,
            customer_name=customer_name,
            status=SyncJobStatusEnum.failed,
            records_fetched=records_fetched,
            records_stored=0,
            start_date=start,
            end_date=end,
            error=exc.to_user_message() if hasattr(exc, "to_user_message") else str(exc),
        )
    except BaseException as exc:
        # Cancellation: leave a failed row behind, then let it propagate
        db.rollback()
        mark_job_failed(db, job, exc, customer_id)
        raise

    logger.info(
        "[GOOGLE_SYNC] Job %s completed for customer %s: fetched=%d stored=%d",
        job_id, customer_id, records_fetched, records_stored,
    )
    return SyncResult(
        job_id=job_id,
        customer_id=customer_id,
        customer_name=customer_name,
        status=SyncJobStatusEnum.completed,
        records_fetched=records_fetched,
        records_stored=records_stored,
        start_date=start,
        end_date=end,
    )


# =============================================================================
# READS
# =============================================================================

def list_sync_jobs(
    db: Session,
    user_id: UUID,
    external_customer_id: str,
    limit: int = SYNC_JOBS_LIMIT,
) -> List[SyncJob]:
    """Newest jobs first for one of the user's customers."""
    customer = get_customer_for_user(db, user_id, external_customer_id)
    return (
        db.query(SyncJob)
        .filter(SyncJob.ads_customer_id == customer.id)
        .order_by(SyncJob.created_at.desc())
        .limit(min(limit, SYNC_JOBS_LIMIT))
        .all()
    )


def get_stored_search_terms(
    db: Session,
    user_id: UUID,
    external_customer_id: str,
    start_date: Union[str, date, None] = None,
    end_date: Union[str, date, None] = None,
    limit: int = STORED_SEARCH_TERMS_LIMIT,
) -> List[SearchTerm]:
    """Stored search terms, newest fetch first, optionally bounded by fetch date."""
    start = parse_date(start_date, "start_date") if start_date else None
    end = parse_date(end_date, "end_date") if end_date else None
    if start and end and start > end:
        raise ValidationError("start_date must be on or before end_date")

    customer = get_customer_for_user(db, user_id, external_customer_id)
    query = db.query(SearchTerm).filter(SearchTerm.ads_customer_id == customer.id)
    if start:
        query = query.filter(SearchTerm.fetched_at >= datetime.combine(start, time.min))
    if end:
        query = query.filter(SearchTerm.fetched_at < datetime.combine(end + timedelta(days=1), time.min))
    return (
        query.order_by(SearchTerm.fetched_at.desc(), SearchTerm.impressions.desc())
        .limit(min(limit, STORED_SEARCH_TERMS_LIMIT))
        .all()
    )
