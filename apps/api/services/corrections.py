"""Correction analyzer: turns curator restorations into prompt adjustment suggestions."""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from pydantic import ValidationError
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from classification.llm import Classifier
from classification.models import AdjustmentSuggestion, CorrectionAnalysis
from config import settings
from models.lounge import Lounge
from models.prompt_adjustment import PromptAdjustment
from models.relevancy_analysis_run import RelevancyAnalysisRun
from models.relevancy_correction import RelevancyCorrection
from services.content_store import dialect_insert
from services.errors import ClassificationError, NotFoundError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are an expert at analyzing content categorization patterns. "
    "Provide specific, actionable improvements."
)


@dataclass
class LoungeAnalysis:
    lounge_id: str
    lounge_name: str
    corrections: int
    pattern_analysis: str = ""
    suggestions: List[PromptAdjustment] = field(default_factory=list)
    discarded: int = 0

    def summary(self) -> Dict[str, Any]:
        return {
            "corrections_count": self.corrections,
            "pattern": self.pattern_analysis,
            "suggestions_count": len(self.suggestions),
            "discarded": self.discarded,
        }


def build_analysis_prompt(lounge: Lounge, corrections: Sequence[RelevancyCorrection]) -> str:
    summaries = [
        {
            "content": correction.content_snapshot_json,
            "original_score": correction.original_score,
            "original_reason": correction.original_reason,
        }
        for correction in corrections
    ]
    threshold = lounge.relevancy_threshold if lounge.relevancy_threshold is not None else settings.DEFAULT_RELEVANCY_THRESHOLD
    limit = settings.MAX_ADJUSTMENTS_PER_LOUNGE
    return f"""You are analyzing content that was incorrectly filtered as low relevancy but was manually restored by curators.

Lounge: {lounge.name}
Description: {lounge.theme_description or ""}
Current threshold: {threshold}

Incorrectly filtered content ({len(summaries)} items):
{json.dumps(summaries, indent=2, default=str)}

Analyze these corrections and identify patterns. What type of content is being incorrectly filtered?

Provide up to {limit} specific, actionable adjustments to the relevancy prompt that would have correctly identified this content as relevant. Each adjustment should be a single clear rule, specific enough to catch similar content and not so broad that it lets in irrelevant content.

Respond in JSON format:
{{
  "pattern_analysis": "Brief description of the pattern you identified",
  "adjustments": [
    {{"type": "keep | filter | borderline", "text": "Specific rule to add", "reasoning": "Why this would help"}}
  ]
}}"""


def _parse_suggestions(payload: Dict[str, Any]) -> tuple:
    """Validate the capability's answer item by item; malformed entries are dropped."""
    try:
        analysis = CorrectionAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise ClassificationError(f"Malformed correction analysis: {exc}") from exc
    suggestions: List[AdjustmentSuggestion] = []
    dropped = 0
    for raw in analysis.adjustments:
        try:
            suggestions.append(AdjustmentSuggestion.model_validate(raw))
        except ValidationError:
            dropped += 1
    return analysis.pattern_analysis, suggestions, dropped


async def analyze_lounge(
    db: AsyncSession,
    classifier: Classifier,
    lounge_id: str,
    corrections: Sequence[RelevancyCorrection],
) -> LoungeAnalysis:
    """Generate pending suggestions for one lounge and mark its corrections processed.

    Suggestions and the processed flags are committed together; on failure
    neither is written and the corrections stay eligible for the next run.
    """
    lounge = await db.get(Lounge, lounge_id)
    if lounge is None:
        raise NotFoundError("lounge", lounge_id)
    pending = [correction for correction in corrections if not correction.processed]
    result = LoungeAnalysis(lounge_id=lounge_id, lounge_name=lounge.name, corrections=len(pending))
    if not pending:
        return result

    payload = await classifier.classify_json(
        SYSTEM_PROMPT,
        build_analysis_prompt(lounge, pending),
        model=settings.CORRECTION_ANALYSIS_MODEL,
        temperature=0.3,
        max_tokens=500,
    )
    pattern, suggestions, dropped = _parse_suggestions(payload)
    result.pattern_analysis = pattern
    result.discarded = dropped

    existing = await db.execute(select(PromptAdjustment.adjustment_text).where(PromptAdjustment.lounge_id == lounge_id))
    seen = {(text or "").strip().lower() for text in existing.scalars().all()}

    insert = dialect_insert(db)
    inserted_ids: List[str] = []
    for suggestion in suggestions:
        if len(inserted_ids) >= settings.MAX_ADJUSTMENTS_PER_LOUNGE:
            result.discarded += 1
            continue
        key = suggestion.text.lower()
        if key in seen:
            result.discarded += 1
            continue
        seen.add(key)
        adjustment_id = str(uuid.uuid4())
        stmt = (
            insert(PromptAdjustment)
            .values(
                id=adjustment_id,
                lounge_id=lounge_id,
                adjustment_type=suggestion.type,
                adjustment_text=suggestion.text,
                reasoning=suggestion.reasoning,
                corrections_addressed=len(pending),
                approved=False,
                active=False,
            )
            .on_conflict_do_nothing(index_elements=["lounge_id", "adjustment_text"])
        )
        inserted = await db.execute(stmt)
        if inserted.rowcount:
            inserted_ids.append(adjustment_id)
        else:
            result.discarded += 1

    await db.execute(
        update(RelevancyCorrection)
        .where(
            RelevancyCorrection.id.in_([correction.id for correction in pending]),
            RelevancyCorrection.processed.is_(False),
        )
        .values(processed=True)
    )
    await db.commit()
    if inserted_ids:
        stored = await db.execute(
            select(PromptAdjustment)
            .where(PromptAdjustment.id.in_(inserted_ids))
            .order_by(PromptAdjustment.adjustment_text.asc())
        )
        result.suggestions = list(stored.scalars().all())
    logger.info(
        "Lounge %s: %d correction(s) analyzed, %d suggestion(s) stored, %d discarded",
        lounge.name,
        len(pending),
        len(result.suggestions),
        result.discarded,
    )
    return result


async def analyze_pending_corrections(
    db: AsyncSession,
    classifier: Classifier,
    *,
    window_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Analyze unprocessed corrections in the trailing window, lounge by lounge."""
    now = now or datetime.now(timezone.utc)
    if window_days is None:
        window_days = settings.CORRECTION_WINDOW_DAYS
    since = now - timedelta(days=window_days)
    result = await db.execute(
        select(RelevancyCorrection)
        .where(RelevancyCorrection.processed.is_(False), RelevancyCorrection.created_at >= since)
        .order_by(RelevancyCorrection.lounge_id.asc(), RelevancyCorrection.created_at.asc())
    )
    by_lounge: Dict[str, List[str]] = {}
    for correction in result.scalars().all():
        by_lounge.setdefault(correction.lounge_id, []).append(correction.id)

    analyzed = 0
    generated = 0
    failed = 0
    summary: Dict[str, Any] = {}
    for lounge_id, correction_ids in by_lounge.items():
        try:
            # Reload per lounge; a rollback for a failed sibling expires loaded rows.
            loaded = await db.execute(select(RelevancyCorrection).where(RelevancyCorrection.id.in_(correction_ids)))
            analysis = await analyze_lounge(db, classifier, lounge_id, loaded.scalars().all())
        except Exception as exc:
            logger.exception("Correction analysis failed for lounge %s", lounge_id)
            await db.rollback()
            failed += 1
            summary[lounge_id] = {"corrections_count": len(correction_ids), "error": str(exc)}
            continue
        analyzed += analysis.corrections
        generated += len(analysis.suggestions)
        summary[analysis.lounge_name] = analysis.summary()

    run = RelevancyAnalysisRun(
        corrections_analyzed=analyzed,
        suggestions_generated=generated,
        failed_lounges=failed,
        analysis_summary_json=summary,
        created_at=now,
        completed_at=datetime.now(timezone.utc),
    )
    db.add(run)
    await db.commit()
    return {
        "run_id": run.id,
        "corrections_analyzed": analyzed,
        "suggestions_generated": generated,
        "failed_lounges": failed,
        "analysis_summary": summary,
    }
