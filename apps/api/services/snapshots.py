"""Snapshot reconciler: polls vendor jobs, ingests ready results, recovers lost handles."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.brightdata_snapshot import OPEN_SNAPSHOT_STATUSES, BrightDataSnapshot
from models.creator import CreatorUrl
from services.connectors import BrightDataClient
from services.content_store import (
    dialect_insert,
    load_creator_url_index,
    resolve_creator_id,
    upsert_content,
)
from services.errors import NotFoundError, SnapshotNotFoundError, VendorError
from services.normalization import NormalizedContent, normalize_profile_url, parse_vendor_record

logger = logging.getLogger(__name__)


@dataclass
class ReconcileSummary:
    checked: int = 0
    processed: int = 0
    still_running: int = 0
    failed: int = 0
    errors: int = 0
    posts: int = 0
    details: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class IngestResult:
    posts: int
    skipped: int
    created: int
    updated: int


def backoff_seconds(attempts: int) -> int:
    """Delay before the next poll after `attempts` unsuccessful checks."""
    base = max(int(settings.SNAPSHOT_BACKOFF_BASE_SECONDS), 1)
    exponent = max(int(attempts) - 1, 0)
    return int(min(base * (2 ** min(exponent, 20)), settings.SNAPSHOT_BACKOFF_MAX_SECONDS))


def _mark_failed(snapshot: BrightDataSnapshot, error: str, error_code: str, now: datetime) -> None:
    snapshot.status = "failed"
    snapshot.error = (error or "")[:1000]
    snapshot.error_code = error_code
    snapshot.last_checked_at = now
    snapshot.next_check_at = None


def _schedule_retry(snapshot: BrightDataSnapshot, now: datetime, error: Optional[str] = None) -> bool:
    """Bump the attempt counter; returns False once the attempt limit is reached."""
    snapshot.poll_attempts = int(snapshot.poll_attempts or 0) + 1
    snapshot.last_checked_at = now
    if error is not None:
        snapshot.error = error[:1000]
    if snapshot.poll_attempts >= settings.SNAPSHOT_MAX_POLL_ATTEMPTS:
        _mark_failed(
            snapshot,
            error or f"Snapshot still not ready after {snapshot.poll_attempts} poll attempts",
            "poll_attempts_exhausted",
            now,
        )
        return False
    snapshot.next_check_at = now + timedelta(seconds=backoff_seconds(snapshot.poll_attempts))
    return True


async def _default_creator_id(db: AsyncSession, snapshot: BrightDataSnapshot) -> Optional[str]:
    metadata = snapshot.metadata_json or {}
    creator_ids = metadata.get("creator_ids") or []
    if len(creator_ids) == 1:
        return str(creator_ids[0])
    urls = snapshot.creator_urls_json or []
    if len(urls) != 1:
        return None
    result = await db.execute(
        select(CreatorUrl.creator_id).where(
            CreatorUrl.platform == snapshot.platform,
            CreatorUrl.normalized_url == normalize_profile_url(urls[0]),
        )
    )
    return result.scalars().first()


async def ingest_snapshot_records(
    db: AsyncSession,
    snapshot: BrightDataSnapshot,
    records: List[Dict[str, Any]],
) -> IngestResult:
    """Map raw vendor records to content rows and upsert them (no commit)."""
    platform = snapshot.platform or "linkedin"
    index = await load_creator_url_index(db, platform)
    default_creator_id = await _default_creator_id(db, snapshot)

    items: List[NormalizedContent] = []
    skipped = 0
    for raw in records:
        record = parse_vendor_record(platform, raw)
        if record is None:
            skipped += 1
            continue
        creator_id = resolve_creator_id(
            getattr(record, "author_url", None),
            index,
            default_creator_id=default_creator_id,
        )
        if not creator_id:
            skipped += 1
            logger.warning("Snapshot %s: no creator matches record author %s", snapshot.snapshot_id, getattr(record, "author_url", None))
            continue
        items.append(record.normalize(creator_id))

    summary = await upsert_content(db, items)
    return IngestResult(posts=summary.total, skipped=skipped, created=summary.created, updated=summary.updated)


async def _process_ready(
    db: AsyncSession,
    vendor: BrightDataClient,
    snapshot: BrightDataSnapshot,
    now: datetime,
) -> IngestResult:
    snapshot_id = snapshot.snapshot_id
    try:
        records = await vendor.fetch_result(snapshot_id)
        result = await ingest_snapshot_records(db, snapshot, records)
        snapshot.status = "processed"
        snapshot.posts_retrieved = result.posts
        snapshot.processed_at = now
        snapshot.last_checked_at = now
        snapshot.next_check_at = None
        snapshot.error = None
        snapshot.error_code = None
        await db.commit()
    except SnapshotNotFoundError as exc:
        await db.rollback()
        fresh = await db.get(BrightDataSnapshot, snapshot_id)
        _mark_failed(fresh, str(exc), "not_found", now)
        await db.commit()
        raise
    except Exception as exc:
        # Nothing from the partial ingest is kept; the snapshot stays ready
        # so the whole result set is retried on a later pass.
        await db.rollback()
        fresh = await db.get(BrightDataSnapshot, snapshot_id)
        fresh.status = "ready"
        _schedule_retry(fresh, now, error=f"Ingest failed: {exc}")
        fresh.error_code = fresh.error_code or "ingest_failed"
        await db.commit()
        raise
    logger.info(
        "Snapshot %s processed: %d post(s) (%d new, %d updated, %d skipped)",
        snapshot_id,
        result.posts,
        result.created,
        result.updated,
        result.skipped,
    )
    return result


async def reconcile_snapshot(
    db: AsyncSession,
    vendor: BrightDataClient,
    snapshot: BrightDataSnapshot,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Advance one snapshot as far as the vendor allows. Returns an outcome record."""
    now = now or datetime.now(timezone.utc)
    snapshot_id = snapshot.snapshot_id
    if snapshot.processed_at is not None or snapshot.status in ("processed", "failed"):
        return {"snapshot_id": snapshot_id, "outcome": "skipped", "status": snapshot.status}

    if snapshot.status != "ready":
        try:
            progress = await vendor.get_progress(snapshot_id)
        except SnapshotNotFoundError as exc:
            _mark_failed(snapshot, str(exc), "not_found", now)
            await db.commit()
            return {"snapshot_id": snapshot_id, "outcome": "failed", "error": str(exc)}
        except VendorError as exc:
            logger.warning("Progress check failed for snapshot %s: %s", snapshot_id, exc)
            retrying = _schedule_retry(snapshot, now, error=str(exc))
            await db.commit()
            return {
                "snapshot_id": snapshot_id,
                "outcome": "error" if retrying else "failed",
                "error": str(exc),
            }

        if progress.status == "failed":
            _mark_failed(snapshot, progress.error or "Vendor reported job failure", progress.error_code or "vendor_failed", now)
            await db.commit()
            return {"snapshot_id": snapshot_id, "outcome": "failed", "error": snapshot.error}

        if progress.status in ("pending", "running"):
            if progress.status == "running":
                snapshot.status = "running"
            retrying = _schedule_retry(snapshot, now)
            await db.commit()
            return {
                "snapshot_id": snapshot_id,
                "outcome": "running" if retrying else "failed",
                "attempts": snapshot.poll_attempts,
            }

        snapshot.status = "ready"

    try:
        result = await _process_ready(db, vendor, snapshot, now)
    except SnapshotNotFoundError as exc:
        return {"snapshot_id": snapshot_id, "outcome": "failed", "error": str(exc)}
    except Exception as exc:
        logger.exception("Snapshot %s ingest failed", snapshot_id)
        return {"snapshot_id": snapshot_id, "outcome": "error", "error": str(exc)}
    return {
        "snapshot_id": snapshot_id,
        "outcome": "processed",
        "posts": result.posts,
        "skipped": result.skipped,
    }


async def reconcile_pending(
    db: AsyncSession,
    vendor: BrightDataClient,
    *,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> ReconcileSummary:
    """Check every open snapshot that is due for a poll."""
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(BrightDataSnapshot)
        .where(
            BrightDataSnapshot.status.in_(OPEN_SNAPSHOT_STATUSES),
            BrightDataSnapshot.processed_at.is_(None),
            or_(BrightDataSnapshot.next_check_at.is_(None), BrightDataSnapshot.next_check_at <= now),
        )
        .order_by(BrightDataSnapshot.created_at.asc())
        .limit(max(int(limit or settings.SNAPSHOT_RECONCILE_LIMIT), 1))
    )
    snapshot_ids = [snapshot.snapshot_id for snapshot in result.scalars().all()]

    summary = ReconcileSummary()
    for snapshot_id in snapshot_ids:
        # A failed sibling rolls the session back and expires loaded rows.
        snapshot = await db.get(BrightDataSnapshot, snapshot_id)
        outcome = await reconcile_snapshot(db, vendor, snapshot, now=now)
        summary.checked += 1
        summary.details.append(outcome)
        kind = outcome["outcome"]
        if kind == "processed":
            summary.processed += 1
            summary.posts += int(outcome.get("posts") or 0)
        elif kind == "running":
            summary.still_running += 1
        elif kind == "failed":
            summary.failed += 1
        elif kind == "error":
            summary.errors += 1

    logger.info(
        "Reconciled %d snapshot(s): %d processed, %d running, %d failed, %d errors",
        summary.checked,
        summary.processed,
        summary.still_running,
        summary.failed,
        summary.errors,
    )
    return summary


async def reprocess_snapshot(db: AsyncSession, vendor: BrightDataClient, snapshot_id: str) -> IngestResult:
    """Re-download and upsert a processed snapshot; processed_at is left as is."""
    snapshot = await db.get(BrightDataSnapshot, snapshot_id)
    if snapshot is None:
        raise NotFoundError("snapshot", snapshot_id)
    if snapshot.status != "processed":
        raise ValueError(f"Snapshot {snapshot_id} has not been processed yet")
    records = await vendor.fetch_result(snapshot_id)
    result = await ingest_snapshot_records(db, snapshot, records)
    snapshot.posts_retrieved = result.posts
    await db.commit()
    return result


async def recover_snapshots(
    db: AsyncSession,
    vendor: BrightDataClient,
    *,
    lookback_hours: Optional[int] = None,
    limit: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Adopt vendor-side snapshots missing locally, reopen failed ones the vendor
    still reports ready, then reconcile both."""
    now = now or datetime.now(timezone.utc)
    if lookback_hours is None:
        lookback_hours = settings.SNAPSHOT_RECOVERY_LOOKBACK_HOURS
    cutoff = now - timedelta(hours=lookback_hours)
    remote = await vendor.list_snapshots(limit=limit or settings.SNAPSHOT_RECOVERY_LIMIT)
    recent = [item for item in remote if item.created is None or item.created >= cutoff]

    known: Dict[str, BrightDataSnapshot] = {}
    if recent:
        result = await db.execute(
            select(BrightDataSnapshot).where(
                BrightDataSnapshot.snapshot_id.in_([item.snapshot_id for item in recent])
            )
        )
        known = {snapshot.snapshot_id: snapshot for snapshot in result.scalars().all()}

    insert = dialect_insert(db)
    adopted: List[str] = []
    reopened: List[str] = []
    for item in recent:
        local = known.get(item.snapshot_id)
        if local is not None:
            # Failed locally but still downloadable from the vendor.
            if local.status == "failed" and local.processed_at is None and item.status == "ready":
                local.status = "ready"
                local.poll_attempts = 0
                local.next_check_at = None
                local.error = None
                local.error_code = None
                reopened.append(item.snapshot_id)
            continue
        status = "failed" if item.status == "failed" else ("ready" if item.status == "ready" else "pending")
        stmt = (
            insert(BrightDataSnapshot)
            .values(
                snapshot_id=item.snapshot_id,
                dataset_id=vendor.dataset_id,
                platform="linkedin",
                status=status,
                creator_urls_json=[],
                metadata_json={"recovery_run": now.isoformat(), "vendor_status": item.status},
                poll_attempts=0,
                error=item.error if status == "failed" else None,
                error_code=item.error_code if status == "failed" else None,
                created_at=item.created or now,
            )
            .on_conflict_do_nothing(index_elements=["snapshot_id"])
        )
        await db.execute(stmt)
        if status != "failed":
            adopted.append(item.snapshot_id)
    await db.commit()

    outcomes = []
    for snapshot_id in reopened + adopted:
        snapshot = await db.get(BrightDataSnapshot, snapshot_id)
        if snapshot is not None:
            outcomes.append(await reconcile_snapshot(db, vendor, snapshot, now=now))

    logger.info(
        "Snapshot recovery: %d vendor snapshot(s) in window, %d already tracked, %d reopened, %d adopted",
        len(recent),
        len(known),
        len(reopened),
        len(adopted),
    )
    return {
        "vendor_snapshots": len(recent),
        "already_tracked": len(known),
        "reopened": len(reopened),
        "adopted": len(adopted),
        "processed": sum(1 for item in outcomes if item["outcome"] == "processed"),
        "posts": sum(int(item.get("posts") or 0) for item in outcomes),
        "details": outcomes,
    }
