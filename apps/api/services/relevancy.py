"""Relevancy scorer: rates unscored content against each lounge it belongs to."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from pydantic import ValidationError
from sqlalchemy import and_, exists, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from classification.llm import Classifier
from classification.models import RelevancyVerdict
from config import settings
from models.content import Content, ContentLoungeScore
from models.creator import Creator
from models.deleted_content import DeletedContent
from models.lounge import CreatorLounge, Lounge
from models.prompt_adjustment import PromptAdjustment
from services.content_store import dialect_insert
from services.errors import ClassificationError
from services.lifecycle import apply_scores

logger = logging.getLogger(__name__)

FALLBACK_REASON = "Error during relevancy check"
SYSTEM_PROMPT = "You are a content relevancy evaluator. Always respond in valid JSON format."


@dataclass(frozen=True)
class UnscoredItem:
    content_id: str
    lounge_id: str
    lounge_name: str
    theme_description: str
    threshold: int
    title: str
    description: str
    url: str
    creator_name: str
    reference_type: Optional[str] = None
    referenced_content: Optional[Dict[str, Any]] = None


@dataclass(frozen=True)
class ScoreResult:
    content_id: str
    lounge_id: str
    score: int
    reason: str
    defaulted: bool = False


def _unscored_filter():
    suppressed = exists().where(
        and_(
            DeletedContent.platform_content_id == Content.platform_content_id,
            DeletedContent.platform == Content.platform,
            DeletedContent.creator_id == Content.creator_id,
        )
    )
    has_lounge = exists().where(CreatorLounge.creator_id == Content.creator_id)
    return and_(
        Content.processing_status == "processed",
        Content.relevancy_checked_at.is_(None),
        Content.manually_approved.is_(False),
        ~suppressed,
        has_lounge,
    )


async def count_unscored(db: AsyncSession) -> int:
    result = await db.execute(select(func.count()).select_from(Content).where(_unscored_filter()))
    return int(result.scalar_one() or 0)


async def get_content_for_relevancy_check(db: AsyncSession, limit: Optional[int] = None) -> List[UnscoredItem]:
    """Unscored processed content, one item per (content, lounge) membership.

    `limit` bounds the number of content rows, not lounge pairs.
    """
    limit = max(int(limit or settings.RELEVANCY_BATCH_LIMIT), 1)
    content_result = await db.execute(
        select(Content, Creator.display_name)
        .join(Creator, Creator.id == Content.creator_id)
        .where(_unscored_filter())
        .order_by(Content.created_at.asc(), Content.id.asc())
        .limit(limit)
    )
    rows = content_result.all()
    if not rows:
        return []

    creator_ids = {content.creator_id for content, _ in rows}
    lounge_result = await db.execute(
        select(CreatorLounge.creator_id, Lounge)
        .join(Lounge, Lounge.id == CreatorLounge.lounge_id)
        .where(CreatorLounge.creator_id.in_(creator_ids))
        .order_by(Lounge.name.asc())
    )
    lounges_by_creator: Dict[str, List[Lounge]] = {}
    for creator_id, lounge in lounge_result.all():
        lounges_by_creator.setdefault(creator_id, []).append(lounge)

    items: List[UnscoredItem] = []
    for content, creator_name in rows:
        for lounge in lounges_by_creator.get(content.creator_id, []):
            items.append(
                UnscoredItem(
                    content_id=content.id,
                    lounge_id=lounge.id,
                    lounge_name=lounge.name,
                    theme_description=lounge.theme_description or "",
                    threshold=int(lounge.relevancy_threshold if lounge.relevancy_threshold is not None else settings.DEFAULT_RELEVANCY_THRESHOLD),
                    title=content.title or "",
                    description=content.description or "",
                    url=content.url,
                    creator_name=creator_name or "",
                    reference_type=content.reference_type,
                    referenced_content=content.referenced_content_json,
                )
            )
    return items


async def load_active_adjustments(db: AsyncSession, lounge_ids: Iterable[str]) -> Dict[str, List[Tuple[str, str]]]:
    """Approved and active prompt adjustments per lounge as (type, text) pairs."""
    ids = list(set(lounge_ids))
    if not ids:
        return {}
    result = await db.execute(
        select(PromptAdjustment.lounge_id, PromptAdjustment.adjustment_type, PromptAdjustment.adjustment_text)
        .where(
            PromptAdjustment.lounge_id.in_(ids),
            PromptAdjustment.approved.is_(True),
            PromptAdjustment.active.is_(True),
        )
        .order_by(PromptAdjustment.created_at.asc())
    )
    adjustments: Dict[str, List[Tuple[str, str]]] = {}
    for lounge_id, adjustment_type, text in result.all():
        adjustments.setdefault(lounge_id, []).append((adjustment_type, text))
    return adjustments


def _content_text(item: UnscoredItem) -> str:
    text = item.description or item.title
    ref = item.referenced_content or {}
    if not item.reference_type or not ref:
        return text
    author = (ref.get("author") or {}) if isinstance(ref.get("author"), dict) else {}
    handle = author.get("username") or author.get("name")
    ref_text = ref.get("text") or ref.get("description") or ""
    if item.reference_type == "quote":
        text += f"\n\n[QUOTED POST: {ref_text}]"
        if handle:
            text += f" by @{handle}"
    elif item.reference_type == "retweet":
        text = f"[REPOST: {ref_text or text}]"
        if handle:
            text += f" by @{handle}"
    elif item.reference_type == "reply":
        text += f"\n\n[REPLYING TO: @{handle or 'unknown'}]"
    return text


def build_scoring_prompt(item: UnscoredItem, adjustments: Sequence[Tuple[str, str]] = ()) -> str:
    sections = [
        "You are a strict content curator for a professional lounge. Be STRICT about filtering off-topic content.",
        "",
        f"LOUNGE: {item.lounge_name}",
        f"THEME: {item.theme_description or item.lounge_name}",
    ]
    for label, kind in (("KEEP", "keep"), ("BORDERLINE", "borderline"), ("FILTER OUT", "filter")):
        rules = [f"- {text}" for adjustment_type, text in adjustments if adjustment_type == kind]
        if rules:
            sections.extend(["", f"{label}:", *rules])
    sections.extend(
        [
            "",
            "CONTENT TO EVALUATE:",
            f"Author: {item.creator_name}",
            f"Title: {item.title}",
            f"Content: {_content_text(item)}",
            "",
            "Content must be DIRECTLY relevant to the lounge theme, not tangentially related.",
            "For quotes and reposts both the commentary and the referenced content must be relevant.",
            f"Score 0-100 based on relevance to the lounge. The threshold is {item.threshold}.",
            "",
            "Respond in JSON:",
            '{"score": <0-100>, "reason": "<briefly explain relevance>"}',
        ]
    )
    return "\n".join(sections)


def fallback_result(item: UnscoredItem) -> ScoreResult:
    return ScoreResult(
        content_id=item.content_id,
        lounge_id=item.lounge_id,
        score=int(settings.RELEVANCY_DEFAULT_SCORE),
        reason=FALLBACK_REASON,
        defaulted=True,
    )


async def score_item(
    classifier: Classifier,
    item: UnscoredItem,
    adjustments: Sequence[Tuple[str, str]] = (),
) -> ScoreResult:
    """Score one (content, lounge) pair; failures yield the conservative default."""
    try:
        payload = await classifier.classify_json(
            SYSTEM_PROMPT,
            build_scoring_prompt(item, adjustments),
            model=settings.RELEVANCY_MODEL,
            temperature=0.3,
            max_tokens=200,
        )
        verdict = RelevancyVerdict.model_validate(payload)
    except (ClassificationError, ValidationError) as exc:
        logger.warning("Relevancy output rejected for content %s / lounge %s: %s", item.content_id, item.lounge_id, exc)
        return fallback_result(item)
    except Exception:
        logger.exception("Relevancy check failed for content %s / lounge %s", item.content_id, item.lounge_id)
        return fallback_result(item)
    return ScoreResult(
        content_id=item.content_id,
        lounge_id=item.lounge_id,
        score=verdict.score,
        reason=verdict.reason or "No reason provided",
    )


async def score_batch(
    classifier: Classifier,
    items: Sequence[UnscoredItem],
    adjustments: Optional[Dict[str, List[Tuple[str, str]]]] = None,
    *,
    concurrency: Optional[int] = None,
) -> List[ScoreResult]:
    """Score items with bounded parallelism; output order follows input order."""
    adjustments = adjustments or {}
    semaphore = asyncio.Semaphore(max(int(concurrency or settings.RELEVANCY_CONCURRENCY), 1))

    async def _run(item: UnscoredItem) -> ScoreResult:
        async with semaphore:
            return await score_item(classifier, item, adjustments.get(item.lounge_id, ()))

    return list(await asyncio.gather(*[_run(item) for item in items]))


async def write_scores(
    db: AsyncSession,
    results: Sequence[ScoreResult],
    *,
    now: Optional[datetime] = None,
) -> List[str]:
    """Persist per-lounge ledger rows and the best score onto each content row.

    Manually approved content keeps its restored score. Returns written content ids.
    """
    now = now or datetime.now(timezone.utc)
    by_content: Dict[str, List[ScoreResult]] = {}
    for result in results:
        by_content.setdefault(result.content_id, []).append(result)
    if not by_content:
        return []

    insert = dialect_insert(db)
    written: List[str] = []
    content_rows = await db.execute(select(Content).where(Content.id.in_(list(by_content))))
    for content in content_rows.scalars().all():
        if content.manually_approved:
            continue
        scored = by_content[content.id]
        for result in scored:
            stmt = insert(ContentLoungeScore).values(
                content_id=result.content_id,
                lounge_id=result.lounge_id,
                score=result.score,
                reason=result.reason,
                checked_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=["content_id", "lounge_id"],
                set_={"score": stmt.excluded.score, "reason": stmt.excluded.reason, "checked_at": now},
            )
            await db.execute(stmt)
        best = max(scored, key=lambda item: item.score)
        content.relevancy_score = best.score
        content.relevancy_reason = best.reason
        content.relevancy_checked_at = now
        written.append(content.id)
    await db.commit()
    return written


async def process_relevancy_checks(
    db: AsyncSession,
    classifier: Classifier,
    *,
    limit: Optional[int] = None,
) -> Dict[str, Any]:
    """Score a bounded batch, persist it and let the arbiter decide keep/suppress."""
    items = await get_content_for_relevancy_check(db, limit)
    if not items:
        return {"processed": 0, "errors": 0, "remaining": 0, "suppressed": 0, "restored": 0}

    adjustments = await load_active_adjustments(db, [item.lounge_id for item in items])
    results = await score_batch(classifier, items, adjustments)
    written = await write_scores(db, results)
    decisions = await apply_scores(db, written)
    remaining = await count_unscored(db)

    errors = sum(1 for result in results if result.defaulted)
    logger.info(
        "Relevancy batch: %d content item(s) across %d lounge pair(s), %d defaulted, %d remaining",
        len(written),
        len(results),
        errors,
        remaining,
    )
    return {
        "processed": len(written),
        "errors": errors,
        "remaining": remaining,
        "suppressed": decisions["suppressed"],
        "restored": decisions["restored"],
    }
