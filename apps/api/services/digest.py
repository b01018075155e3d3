"""Digest selector and dispatch to the delivery collaborator."""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Protocol, Sequence

from sqlalchemy import and_, exists, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from models.content import Content, ContentLoungeScore
from models.deleted_content import DeletedContent
from models.digest_subscription import LoungeDigestSubscription
from models.lounge import CreatorLounge, Lounge
from models.user import User
from services.errors import NotFoundError

logger = logging.getLogger(__name__)


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


async def get_digest_candidates(
    db: AsyncSession,
    lounge: Lounge,
    *,
    window_hours: int,
    now: datetime,
) -> List[Content]:
    """Live, processed, primary, passing content of member creators, newest first."""
    threshold = lounge.relevancy_threshold if lounge.relevancy_threshold is not None else settings.DEFAULT_RELEVANCY_THRESHOLD
    since = now - timedelta(hours=max(int(window_hours), 0))
    effective_score = func.coalesce(ContentLoungeScore.score, Content.relevancy_score)
    suppressed = exists().where(
        and_(
            DeletedContent.platform_content_id == Content.platform_content_id,
            DeletedContent.platform == Content.platform,
            DeletedContent.creator_id == Content.creator_id,
        )
    )
    result = await db.execute(
        select(Content)
        .join(CreatorLounge, CreatorLounge.creator_id == Content.creator_id)
        .outerjoin(
            ContentLoungeScore,
            and_(ContentLoungeScore.content_id == Content.id, ContentLoungeScore.lounge_id == lounge.id),
        )
        .where(
            CreatorLounge.lounge_id == lounge.id,
            Content.processing_status == "processed",
            Content.is_primary.is_(True),
            Content.relevancy_score.is_not(None),
            Content.published_at.is_not(None),
            Content.published_at >= since,
            Content.published_at <= now,
            or_(Content.manually_approved.is_(True), effective_score >= threshold),
            ~suppressed,
        )
        .order_by(Content.published_at.desc(), Content.id.asc())
    )
    return list(result.scalars().unique().all())


def diversify(candidates: Sequence[Content], *, max_items: int, per_platform: int) -> List[Content]:
    """Up to `per_platform` newest items per platform, then fill by recency.

    `candidates` must already be ordered newest first with ties broken by id.
    """
    if max_items <= 0:
        return []
    selected: List[Content] = []
    chosen = set()

    by_platform: Dict[str, List[Content]] = {}
    for item in candidates:
        by_platform.setdefault(str(item.platform), []).append(item)

    for platform in sorted(by_platform):
        for item in by_platform[platform][:per_platform]:
            if len(selected) >= max_items:
                break
            if item.id not in chosen:
                chosen.add(item.id)
                selected.append(item)
        if len(selected) >= max_items:
            break

    for item in candidates:
        if len(selected) >= max_items:
            break
        if item.id not in chosen:
            chosen.add(item.id)
            selected.append(item)

    selected.sort(key=lambda item: (-_as_utc(item.published_at).timestamp(), item.id))
    return selected


async def select_for_digest(
    db: AsyncSession,
    lounge_id: str,
    window_hours: Optional[int] = None,
    max_items: Optional[int] = None,
    *,
    now: Optional[datetime] = None,
) -> List[Content]:
    lounge = await db.get(Lounge, lounge_id)
    if lounge is None:
        raise NotFoundError("lounge", lounge_id)
    now = now or datetime.now(timezone.utc)
    candidates = await get_digest_candidates(
        db,
        lounge,
        window_hours=settings.DIGEST_WINDOW_HOURS if window_hours is None else int(window_hours),
        now=now,
    )
    return diversify(
        candidates,
        max_items=settings.DIGEST_MAX_ITEMS if max_items is None else int(max_items),
        per_platform=settings.DIGEST_PER_PLATFORM,
    )


class DigestDelivery(Protocol):
    async def deliver(self, recipient: User, lounge: Lounge, items: Sequence[Content]) -> None:
        ...


class LoggingDigestDelivery:
    """Default delivery: records what would be sent. Rendering and email live elsewhere."""

    async def deliver(self, recipient: User, lounge: Lounge, items: Sequence[Content]) -> None:
        logger.info(
            "Digest for %s (%s): %d item(s) [%s]",
            recipient.email,
            lounge.name,
            len(items),
            ", ".join(item.id for item in items),
        )


async def dispatch_digests(
    db: AsyncSession,
    delivery: DigestDelivery,
    *,
    window_hours: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Select once per subscribed lounge and hand the result to each recipient.

    A subscription already served on the current UTC day is skipped so a
    re-run job does not send twice.
    """
    now = now or datetime.now(timezone.utc)
    result = await db.execute(
        select(LoungeDigestSubscription.id, LoungeDigestSubscription.user_id)
        .join(User, User.id == LoungeDigestSubscription.user_id)
        .where(LoungeDigestSubscription.is_active.is_(True))
        .order_by(LoungeDigestSubscription.lounge_id.asc(), User.email.asc())
    )
    rows = result.all()

    summary = {"lounges": 0, "sent": 0, "skipped": 0, "empty": 0, "errors": 0}
    selections: Dict[str, Optional[List[Content]]] = {}
    for subscription_id, user_id in rows:
        # A failed lounge rolls the session back and expires loaded rows.
        subscription = await db.get(LoungeDigestSubscription, subscription_id)
        user = await db.get(User, user_id)
        last_sent = _as_utc(subscription.last_sent_at)
        if last_sent is not None and last_sent.date() == now.date():
            summary["skipped"] += 1
            continue
        lounge_id = subscription.lounge_id
        if lounge_id not in selections:
            summary["lounges"] += 1
            try:
                selections[lounge_id] = await select_for_digest(db, lounge_id, window_hours, now=now)
            except Exception:
                logger.exception("Digest selection failed for lounge %s", lounge_id)
                await db.rollback()
                selections[lounge_id] = None
        items = selections[lounge_id]
        if items is None:
            summary["errors"] += 1
            continue
        if not items:
            summary["empty"] += 1
            continue
        lounge = await db.get(Lounge, lounge_id)
        try:
            await delivery.deliver(user, lounge, items)
        except Exception:
            logger.exception("Digest delivery failed for user %s / lounge %s", user.id, lounge_id)
            summary["errors"] += 1
            continue
        subscription.last_sent_at = now
        await db.commit()
        summary["sent"] += 1
    return summary
