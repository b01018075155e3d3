"""Idempotent content persistence keyed by (platform, platform_content_id, creator_id)."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Set, Tuple

from sqlalchemy import and_, func, or_, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from models.content import Content
from models.creator import CreatorUrl
from services.normalization import NormalizedContent, normalize_profile_url

logger = logging.getLogger(__name__)

IDENTITY_COLUMNS = ["platform", "platform_content_id", "creator_id"]
# Columns refreshed when a vendor item is seen again. Score fields and
# manual approval belong to the scorer/arbiter and are never overwritten here.
REFRESHED_COLUMNS = (
    "title",
    "description",
    "content_body",
    "url",
    "published_at",
    "media_urls_json",
    "engagement_json",
    "reference_type",
    "referenced_content_json",
    "content_hash",
)


@dataclass
class UpsertSummary:
    created: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.created + self.updated


def dialect_insert(db: AsyncSession):
    """Return the dialect-specific insert construct supporting ON CONFLICT."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite.insert
    return postgresql.insert


def _row_values(item: NormalizedContent) -> Dict[str, object]:
    return {
        "title": item.title,
        "description": item.description,
        "content_body": item.content_body,
        "url": item.url,
        "published_at": item.published_at,
        "media_urls_json": item.media_urls or [],
        "engagement_json": item.engagement or {},
        "reference_type": item.reference_type,
        "referenced_content_json": item.referenced_content,
        "content_hash": item.content_hash,
    }


async def load_creator_url_index(db: AsyncSession, platform: str) -> Dict[str, str]:
    """Map normalized profile URL -> creator_id for one platform."""
    result = await db.execute(select(CreatorUrl).where(CreatorUrl.platform == platform))
    index: Dict[str, str] = {}
    for row in result.scalars().all():
        key = row.normalized_url or normalize_profile_url(row.url)
        if key:
            index[key] = row.creator_id
    return index


def resolve_creator_id(
    author_url: Optional[str],
    index: Dict[str, str],
    *,
    default_creator_id: Optional[str] = None,
) -> Optional[str]:
    key = normalize_profile_url(author_url)
    if key and key in index:
        return index[key]
    return default_creator_id


async def _existing_identities(db: AsyncSession, items: List[NormalizedContent]) -> Set[Tuple[str, str, str]]:
    if not items:
        return set()
    clauses = [
        and_(
            Content.platform == item.platform,
            Content.platform_content_id == item.platform_content_id,
            Content.creator_id == item.creator_id,
        )
        for item in items
    ]
    result = await db.execute(
        select(Content.platform, Content.platform_content_id, Content.creator_id).where(or_(*clauses))
    )
    return {tuple(row) for row in result.all()}


async def _is_cross_post(db: AsyncSession, item: NormalizedContent) -> bool:
    if not item.content_hash:
        return False
    result = await db.execute(
        select(func.count())
        .select_from(Content)
        .where(
            Content.creator_id == item.creator_id,
            Content.content_hash == item.content_hash,
            Content.platform != item.platform,
            Content.is_primary.is_(True),
        )
    )
    return int(result.scalar_one() or 0) > 0


async def upsert_content(db: AsyncSession, items: Iterable[NormalizedContent]) -> UpsertSummary:
    """Insert new rows and refresh existing ones without committing.

    Duplicate identities inside one batch collapse to the last occurrence.
    """
    unique: Dict[Tuple[str, str, str], NormalizedContent] = {}
    for item in items:
        unique[item.identity()] = item
    batch = list(unique.values())
    summary = UpsertSummary()
    if not batch:
        return summary

    existing = await _existing_identities(db, batch)
    insert = dialect_insert(db)
    now = datetime.now(timezone.utc)

    for item in batch:
        values = _row_values(item)
        is_new = item.identity() not in existing
        is_primary = True
        if is_new:
            is_primary = not await _is_cross_post(db, item)
        stmt = insert(Content).values(
            id=str(uuid.uuid4()),
            platform=item.platform,
            platform_content_id=item.platform_content_id,
            creator_id=item.creator_id,
            processing_status="processed",
            is_primary=is_primary,
            created_at=now,
            **values,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=IDENTITY_COLUMNS,
            set_={**{column: stmt.excluded[column] for column in REFRESHED_COLUMNS}, "updated_at": now},
        )
        await db.execute(stmt)
        if is_new:
            summary.created += 1
        else:
            summary.updated += 1

    logger.info("Upserted %d content row(s): %d created, %d updated", summary.total, summary.created, summary.updated)
    return summary
