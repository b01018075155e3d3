"""Lifecycle arbiter: keep/suppress decisions and curator restoration.

Suppression is a tombstone. A content item is live iff no ``DeletedContent``
row matches its (platform_content_id, platform, creator_id) identity, so both
automatic and human restoration are "delete the marker".
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Union

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.content import Content, ContentLoungeScore
from models.creator import Creator
from models.deleted_content import DeletedContent
from models.lounge import CreatorLounge, Lounge
from models.relevancy_correction import RelevancyCorrection
from models.user import RESTORE_ROLES
from services.content_store import dialect_insert
from services.errors import NotFoundError, PermissionDeniedError

logger = logging.getLogger(__name__)

AUTO_DELETION_REASON = "low_relevancy"


@dataclass(frozen=True)
class Live:
    pass


@dataclass(frozen=True)
class Suppressed:
    reason: str
    at: Optional[datetime]
    by: Optional[str]


ContentState = Union[Live, Suppressed]


@dataclass(frozen=True)
class LoungeVerdict:
    lounge_id: str
    threshold: int
    score: Optional[int]

    @property
    def passed(self) -> bool:
        return self.score is not None and self.score >= self.threshold


@dataclass(frozen=True)
class ActingUser:
    id: str
    role: str


@dataclass
class RestoreResult:
    status: str
    content_id: str
    lounge_id: str
    correction_id: Optional[str] = None


def _marker_query(content: Content):
    return select(DeletedContent).where(
        DeletedContent.platform_content_id == content.platform_content_id,
        DeletedContent.platform == content.platform,
        DeletedContent.creator_id == content.creator_id,
    )


async def get_marker(db: AsyncSession, content: Content) -> Optional[DeletedContent]:
    result = await db.execute(_marker_query(content))
    return result.scalar_one_or_none()


async def get_content_state(db: AsyncSession, content: Content) -> ContentState:
    marker = await get_marker(db, content)
    if marker is None:
        return Live()
    return Suppressed(reason=marker.deletion_reason, at=marker.deleted_at, by=marker.deleted_by)


async def evaluate_lounges(db: AsyncSession, content: Content) -> List[LoungeVerdict]:
    """Score vs threshold for every lounge the content's creator currently belongs to."""
    result = await db.execute(
        select(Lounge.id, Lounge.relevancy_threshold, ContentLoungeScore.score)
        .join(CreatorLounge, CreatorLounge.lounge_id == Lounge.id)
        .outerjoin(
            ContentLoungeScore,
            (ContentLoungeScore.lounge_id == Lounge.id) & (ContentLoungeScore.content_id == content.id),
        )
        .where(CreatorLounge.creator_id == content.creator_id)
        .order_by(Lounge.id.asc())
    )
    verdicts = []
    for lounge_id, threshold, ledger_score in result.all():
        score = ledger_score if ledger_score is not None else content.relevancy_score
        verdicts.append(
            LoungeVerdict(
                lounge_id=lounge_id,
                threshold=int(threshold if threshold is not None else settings.DEFAULT_RELEVANCY_THRESHOLD),
                score=score,
            )
        )
    return verdicts


async def _suppress(db: AsyncSession, content: Content, now: datetime) -> None:
    insert = dialect_insert(db)
    stmt = (
        insert(DeletedContent)
        .values(
            platform_content_id=content.platform_content_id,
            platform=str(content.platform),
            creator_id=content.creator_id,
            deletion_reason=AUTO_DELETION_REASON,
            deleted_by=None,
            deleted_at=now,
            title=content.title,
            url=content.url,
        )
        .on_conflict_do_nothing(index_elements=["platform_content_id", "platform", "creator_id"])
    )
    await db.execute(stmt)


async def apply_score(
    db: AsyncSession,
    content_id: str,
    *,
    now: Optional[datetime] = None,
    commit: bool = True,
) -> str:
    """Keep or suppress one content item from its current scores.

    Returns one of ``unscored``, ``kept``, ``suppressed``, ``restored``,
    ``already_suppressed``. Only automated (low relevancy) markers are removed
    by automatic restoration.
    """
    now = now or datetime.now(timezone.utc)
    content = await db.get(Content, content_id)
    if content is None:
        raise NotFoundError("content", content_id)
    if content.relevancy_score is None and not content.manually_approved:
        return "unscored"

    verdicts = await evaluate_lounges(db, content)
    marker = await get_marker(db, content)

    if content.manually_approved:
        should_suppress = False
    elif not verdicts:
        # No lounge to pass or fail: the current state stands.
        return "already_suppressed" if marker is not None else "kept"
    else:
        should_suppress = not any(verdict.passed for verdict in verdicts)

    if should_suppress:
        if marker is not None:
            return "already_suppressed"
        await _suppress(db, content, now)
        if commit:
            await db.commit()
        logger.info(
            "Suppressed content %s: failed all thresholds [%s]",
            content_id,
            ", ".join(f"{v.lounge_id[:8]}: {v.score}/{v.threshold}" for v in verdicts),
        )
        return "suppressed"

    if marker is not None:
        if marker.deletion_reason != AUTO_DELETION_REASON:
            return "already_suppressed"
        await db.delete(marker)
        if commit:
            await db.commit()
        logger.info("Automatically restored content %s", content_id)
        return "restored"
    return "kept"


async def apply_scores(db: AsyncSession, content_ids: Sequence[str]) -> Dict[str, int]:
    """Run the arbiter for many items; one failing item does not stop the rest."""
    summary = {"kept": 0, "suppressed": 0, "restored": 0, "unscored": 0, "already_suppressed": 0, "errors": 0}
    for content_id in content_ids:
        try:
            decision = await apply_score(db, content_id)
        except Exception:
            logger.exception("Lifecycle decision failed for content %s", content_id)
            await db.rollback()
            summary["errors"] += 1
            continue
        summary[decision] += 1
    return summary


async def reevaluate_lounge(db: AsyncSession, lounge_id: str) -> Dict[str, int]:
    """Re-apply decisions to every scored item of a lounge (e.g. after a threshold change)."""
    if await db.get(Lounge, lounge_id) is None:
        raise NotFoundError("lounge", lounge_id)
    result = await db.execute(
        select(Content.id)
        .join(CreatorLounge, CreatorLounge.creator_id == Content.creator_id)
        .where(CreatorLounge.lounge_id == lounge_id, Content.relevancy_score.is_not(None))
    )
    return await apply_scores(db, list(result.scalars().all()))


def _content_snapshot(content: Content, creator_name: Optional[str]) -> Dict[str, Any]:
    return {
        "title": content.title,
        "description": content.description,
        "url": content.url,
        "platform": content.platform,
        "creator_name": creator_name,
        "published_at": content.published_at.isoformat() if content.published_at else None,
        "reference_type": content.reference_type,
        "referenced_content": content.referenced_content_json,
    }


async def restore(
    db: AsyncSession,
    content_id: str,
    lounge_id: str,
    acting_user: ActingUser,
    *,
    now: Optional[datetime] = None,
) -> RestoreResult:
    """Human restoration of a suppressed item.

    Removes the marker, pins the item with ``manually_approved`` and the
    restoration score, and records one correction capturing the
    pre-restoration score. Restoring a live item is a no-op.
    """
    if acting_user.role not in RESTORE_ROLES:
        raise PermissionDeniedError(f"Role {acting_user.role!r} may not restore content")
    now = now or datetime.now(timezone.utc)

    content = await db.get(Content, content_id)
    if content is None:
        raise NotFoundError("content", content_id)
    lounge = await db.get(Lounge, lounge_id)
    if lounge is None:
        raise NotFoundError("lounge", lounge_id)

    marker = await get_marker(db, content)
    if marker is None:
        return RestoreResult(status="already_live", content_id=content_id, lounge_id=lounge_id)

    ledger = await db.execute(
        select(ContentLoungeScore).where(
            ContentLoungeScore.content_id == content_id,
            ContentLoungeScore.lounge_id == lounge_id,
        )
    )
    ledger_row = ledger.scalar_one_or_none()
    original_score = ledger_row.score if ledger_row is not None else content.relevancy_score
    original_reason = ledger_row.reason if ledger_row is not None else content.relevancy_reason

    creator = await db.get(Creator, content.creator_id)
    correction = RelevancyCorrection(
        content_id=content_id,
        lounge_id=lounge_id,
        original_score=int(original_score or 0),
        original_reason=original_reason or "No reason recorded",
        restored_by=acting_user.id,
        content_snapshot_json=_content_snapshot(content, creator.display_name if creator else None),
        processed=False,
        created_at=now,
    )
    db.add(correction)

    await db.execute(
        delete(DeletedContent).where(
            DeletedContent.platform_content_id == content.platform_content_id,
            DeletedContent.platform == content.platform,
            DeletedContent.creator_id == content.creator_id,
        )
    )

    restored_score = int(settings.RESTORED_RELEVANCY_SCORE)
    reason = f"Manually restored by {acting_user.role}"
    content.relevancy_score = restored_score
    content.relevancy_reason = reason
    content.relevancy_checked_at = now
    content.manually_approved = True
    content.manually_approved_by = acting_user.id
    content.manually_approved_at = now
    if ledger_row is not None:
        ledger_row.score = restored_score
        ledger_row.reason = reason
        ledger_row.checked_at = now
    else:
        db.add(
            ContentLoungeScore(
                content_id=content_id,
                lounge_id=lounge_id,
                score=restored_score,
                reason=reason,
                checked_at=now,
            )
        )

    await db.commit()
    logger.info("Content %s restored in lounge %s by %s (%s)", content_id, lounge_id, acting_user.id, acting_user.role)
    return RestoreResult(status="restored", content_id=content_id, lounge_id=lounge_id, correction_id=correction.id)
