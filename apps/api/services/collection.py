"""Collection manager: submits vendor collection jobs and records their handles."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.brightdata_snapshot import BrightDataSnapshot
from models.creator import CreatorUrl
from services.connectors import BrightDataClient, CollectionRequest
from services.errors import VendorError

logger = logging.getLogger(__name__)


def _dedupe_urls(urls: Sequence[str]) -> List[str]:
    seen = set()
    cleaned: List[str] = []
    for url in urls:
        value = (url or "").strip()
        if value and value not in seen:
            seen.add(value)
            cleaned.append(value)
    return cleaned


async def start_collection(
    db: AsyncSession,
    vendor: BrightDataClient,
    creator_urls: Sequence[str],
    *,
    platform: str = "linkedin",
    lookback_hours: Optional[int] = None,
    metadata: Optional[Dict[str, Any]] = None,
) -> str:
    """Submit one vendor job for a batch of profile URLs and persist a pending handle.

    Never waits for the vendor job itself. When submission fails the VendorError
    propagates and nothing is written.
    """
    urls = _dedupe_urls(creator_urls)
    if not urls:
        raise ValueError("At least one creator URL is required")

    end = datetime.now(timezone.utc)
    if lookback_hours is None:
        lookback_hours = settings.COLLECTION_LOOKBACK_HOURS
    start = end - timedelta(hours=lookback_hours)
    handle = await vendor.trigger_collection(
        CollectionRequest(
            urls=urls,
            start_date=start,
            end_date=end,
            limit_per_input=settings.COLLECTION_LIMIT_PER_INPUT,
        )
    )

    snapshot = BrightDataSnapshot(
        snapshot_id=handle.snapshot_id,
        dataset_id=handle.dataset_id,
        platform=platform,
        status="pending",
        creator_urls_json=urls,
        metadata_json={
            "start_date": start.isoformat(),
            "end_date": end.isoformat(),
            **(metadata or {}),
        },
        poll_attempts=0,
        created_at=end,
    )
    db.add(snapshot)
    await db.commit()
    logger.info("Recorded pending snapshot %s for %d creator url(s)", handle.snapshot_id, len(urls))
    return handle.snapshot_id


async def start_collection_for_creators(
    db: AsyncSession,
    vendor: BrightDataClient,
    *,
    platform: str = "linkedin",
    batch_size: Optional[int] = None,
    creator_ids: Optional[Sequence[str]] = None,
) -> Dict[str, Any]:
    """Trigger collection for every creator URL on a platform, in batches.

    A failing batch is logged and counted; later batches are still submitted.
    """
    query = select(CreatorUrl).where(CreatorUrl.platform == platform).order_by(CreatorUrl.creator_id)
    if creator_ids:
        query = query.where(CreatorUrl.creator_id.in_(list(creator_ids)))
    result = await db.execute(query)
    rows = result.scalars().all()

    size = max(int(batch_size or settings.COLLECTION_BATCH_SIZE), 1)
    snapshot_ids: List[str] = []
    errors: List[Dict[str, Any]] = []
    for offset in range(0, len(rows), size):
        chunk = rows[offset : offset + size]
        urls = [row.url for row in chunk]
        try:
            snapshot_id = await start_collection(
                db,
                vendor,
                urls,
                platform=platform,
                metadata={"creator_ids": [row.creator_id for row in chunk]},
            )
            snapshot_ids.append(snapshot_id)
        except VendorError as exc:
            logger.exception("Collection trigger failed for batch starting at %d", offset)
            errors.append({"urls": urls, "error": str(exc)})

    return {
        "creators": len({row.creator_id for row in rows}),
        "snapshots": snapshot_ids,
        "errors": errors,
    }
