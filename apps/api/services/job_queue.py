"""Durable pipeline job queue helpers (Redis/RQ)."""

from __future__ import annotations

import hashlib
import logging
from datetime import datetime, timezone
from typing import Any, Optional, Sequence

from redis import Redis
from rq import Queue, Retry
from rq.exceptions import NoSuchJobError
from rq.job import Job
from sqlalchemy import select

from config import settings
from database import async_session_maker
from models.brightdata_snapshot import OPEN_SNAPSHOT_STATUSES, BrightDataSnapshot

logger = logging.getLogger(__name__)

COLLECTION_QUEUE_NAME = "collection_jobs"
SNAPSHOT_QUEUE_NAME = "snapshot_jobs"
RELEVANCY_QUEUE_NAME = "relevancy_jobs"
CORRECTION_QUEUE_NAME = "correction_jobs"
DIGEST_QUEUE_NAME = "digest_jobs"
ALL_QUEUE_NAMES = (
    COLLECTION_QUEUE_NAME,
    SNAPSHOT_QUEUE_NAME,
    RELEVANCY_QUEUE_NAME,
    CORRECTION_QUEUE_NAME,
    DIGEST_QUEUE_NAME,
)
ACTIVE_JOB_STATUSES = ("queued", "started", "scheduled", "deferred")


def get_redis_connection() -> Redis:
    """Build Redis connection used by RQ."""
    return Redis.from_url(settings.REDIS_URL)


def get_queue(name: str, *, default_timeout: int = 600) -> Queue:
    """Return one of the named pipeline queues."""
    if name not in ALL_QUEUE_NAMES:
        raise ValueError(f"Unknown queue: {name}")
    return Queue(name=name, connection=get_redis_connection(), default_timeout=default_timeout)


def _active_job(queue: Queue, job_id: str) -> Optional[Job]:
    try:
        job = Job.fetch(job_id, connection=queue.connection)
    except NoSuchJobError:
        return None
    status = job.get_status(refresh=True)
    if status is not None and str(getattr(status, "value", status)) in ACTIVE_JOB_STATUSES:
        return job
    return None


def _enqueue_once(
    queue_name: str,
    func_path: str,
    *args: Any,
    job_id: str,
    retry_intervals: Sequence[int],
    job_timeout: int,
) -> Job:
    """Enqueue unless a job with the same id is still pending or running."""
    queue = get_queue(queue_name, default_timeout=job_timeout)
    existing = _active_job(queue, job_id)
    if existing is not None:
        logger.info("Job %s already active on %s; not enqueueing again", job_id, queue_name)
        return existing
    return queue.enqueue(
        func_path,
        *args,
        job_id=job_id,
        retry=Retry(max=3, interval=list(retry_intervals)),
        job_timeout=job_timeout,
        result_ttl=86400,
        failure_ttl=86400,
    )


def collection_job_id(creator_urls: Optional[Sequence[str]]) -> str:
    if not creator_urls:
        return "collection:all"
    digest = hashlib.sha1("\n".join(sorted(creator_urls)).encode("utf-8")).hexdigest()[:16]
    return f"collection:{digest}"


def enqueue_collection_job(creator_urls: Optional[Sequence[str]] = None) -> Job:
    """Trigger vendor collection for the given URLs (or every LinkedIn creator)."""
    return _enqueue_once(
        COLLECTION_QUEUE_NAME,
        "services.tasks.run_collection_job",
        list(creator_urls) if creator_urls else None,
        job_id=collection_job_id(creator_urls),
        retry_intervals=[15, 60, 180],
        job_timeout=300,
    )


def enqueue_snapshot_reconcile_job() -> Job:
    return _enqueue_once(
        SNAPSHOT_QUEUE_NAME,
        "services.tasks.run_snapshot_reconcile_job",
        job_id="snapshots:reconcile",
        retry_intervals=[30, 120, 300],
        job_timeout=900,
    )


def enqueue_snapshot_recovery_job() -> Job:
    return _enqueue_once(
        SNAPSHOT_QUEUE_NAME,
        "services.tasks.run_snapshot_recovery_job",
        job_id="snapshots:recover",
        retry_intervals=[60, 300, 900],
        job_timeout=1800,
    )


def enqueue_relevancy_job(limit: Optional[int] = None) -> Job:
    return _enqueue_once(
        RELEVANCY_QUEUE_NAME,
        "services.tasks.run_relevancy_job",
        limit,
        job_id="relevancy:score",
        retry_intervals=[30, 120, 300],
        job_timeout=1800,
    )


def enqueue_correction_analysis_job() -> Job:
    return _enqueue_once(
        CORRECTION_QUEUE_NAME,
        "services.tasks.run_correction_analysis_job",
        job_id="corrections:analyze",
        retry_intervals=[60, 300, 900],
        job_timeout=1800,
    )


def enqueue_digest_dispatch_job() -> Job:
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return _enqueue_once(
        DIGEST_QUEUE_NAME,
        "services.tasks.run_digest_dispatch_job",
        job_id=f"digest:{today}",
        retry_intervals=[60, 300, 900],
        job_timeout=1800,
    )


async def recover_stalled_snapshots() -> int:
    """Fail open snapshots that ran out of poll attempts while no worker was polling."""
    now = datetime.now(timezone.utc)
    async with async_session_maker() as db:
        result = await db.execute(
            select(BrightDataSnapshot).where(
                BrightDataSnapshot.status.in_(OPEN_SNAPSHOT_STATUSES),
                BrightDataSnapshot.processed_at.is_(None),
                BrightDataSnapshot.poll_attempts >= settings.SNAPSHOT_MAX_POLL_ATTEMPTS,
            )
        )
        snapshots = result.scalars().all()
        for snapshot in snapshots:
            snapshot.status = "failed"
            snapshot.error_code = "stalled"
            snapshot.error = "Snapshot ran out of poll attempts. Run snapshot recovery to re-import it."
            snapshot.last_checked_at = now
            snapshot.next_check_at = None
        if snapshots:
            await db.commit()
        return len(snapshots)
