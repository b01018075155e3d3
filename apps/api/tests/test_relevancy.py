import asyncio
import re

import pytest
from sqlalchemy import select

from models.content import Content, ContentLoungeScore
from models.deleted_content import DeletedContent
from models.prompt_adjustment import PromptAdjustment
from services.errors import ClassificationError
from services.relevancy import (
    FALLBACK_REASON,
    UnscoredItem,
    build_scoring_prompt,
    get_content_for_relevancy_check,
    process_relevancy_checks,
    score_batch,
)


class _FakeClassifier:
    """Answers by looking up (title, lounge name) pairs found in the prompt."""

    def __init__(self, answers):
        self.answers = answers
        self.prompts = []

    async def classify_json(self, system_prompt, user_prompt, *, model=None, temperature=0.3, max_tokens=200):
        self.prompts.append(user_prompt)
        lounge = re.search(r"^LOUNGE: (.+)$", user_prompt, re.MULTILINE).group(1)
        title = re.search(r"^Title: (.+)$", user_prompt, re.MULTILINE).group(1)
        answer = self.answers[(title, lounge)]
        if isinstance(answer, Exception):
            raise answer
        return answer


async def _markers(db):
    result = await db.execute(select(DeletedContent.platform_content_id))
    return set(result.scalars().all())


@pytest.mark.asyncio
async def test_threshold_boundary_single_lounge(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", threshold=60, creators=[jane])
    below = await seed.content(jane, platform_content_id="below", title="Below")
    at = await seed.content(jane, platform_content_id="at", title="At")
    classifier = _FakeClassifier(
        {
            ("Below", "SaaS"): {"score": 59, "reason": "Tangential"},
            ("At", "SaaS"): {"score": 60, "reason": "On topic"},
        }
    )

    summary = await process_relevancy_checks(db, classifier)

    assert summary == {"processed": 2, "errors": 0, "remaining": 0, "suppressed": 1, "restored": 0}
    assert await _markers(db) == {"below"}
    rows = dict((await db.execute(select(Content.id, Content.relevancy_score))).all())
    assert rows == {below.id: 59, at.id: 60}


@pytest.mark.asyncio
async def test_multi_lounge_content_stays_live_if_any_lounge_passes(db, seed):
    jane = await seed.creator("Jane")
    strict = await seed.lounge("Strict", threshold=60, creators=[jane])
    lenient = await seed.lounge("Lenient", threshold=40, creators=[jane])
    item = await seed.content(jane, platform_content_id="dual", title="Dual")
    classifier = _FakeClassifier(
        {
            ("Dual", "Strict"): {"score": 55, "reason": "Partly relevant"},
            ("Dual", "Lenient"): {"score": 55, "reason": "Relevant enough"},
        }
    )

    summary = await process_relevancy_checks(db, classifier)

    assert summary["suppressed"] == 0
    assert await _markers(db) == set()
    ledger = dict(
        (await db.execute(select(ContentLoungeScore.lounge_id, ContentLoungeScore.score).where(ContentLoungeScore.content_id == item.id))).all()
    )
    assert ledger == {strict.id: 55, lenient.id: 55}


@pytest.mark.asyncio
async def test_content_keeps_highest_lounge_score(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("Growth", threshold=60, creators=[jane])
    await seed.lounge("Design", threshold=60, creators=[jane])
    item = await seed.content(jane, title="Mixed")
    classifier = _FakeClassifier(
        {
            ("Mixed", "Growth"): {"score": 82, "reason": "Growth loop breakdown"},
            ("Mixed", "Design"): {"score": 20, "reason": "Not about design"},
        }
    )

    await process_relevancy_checks(db, classifier)

    row = (await db.execute(select(Content.relevancy_score, Content.relevancy_reason).where(Content.id == item.id))).one()
    assert row.relevancy_score == 82
    assert row.relevancy_reason == "Growth loop breakdown"


@pytest.mark.asyncio
async def test_malformed_and_failed_classifications_default(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", threshold=40, creators=[jane])
    await seed.content(jane, title="Garbled")
    await seed.content(jane, title="Timeout")
    await seed.content(jane, title="Clamped")
    classifier = _FakeClassifier(
        {
            ("Garbled", "SaaS"): {"score": "very relevant"},
            ("Timeout", "SaaS"): ClassificationError("Classification timed out after 30s"),
            ("Clamped", "SaaS"): {"score": 140, "reason": "Extremely relevant"},
        }
    )

    summary = await process_relevancy_checks(db, classifier)

    assert summary["processed"] == 3
    assert summary["errors"] == 2
    assert summary["suppressed"] == 0
    rows = dict((await db.execute(select(Content.title, Content.relevancy_score))).all())
    assert rows == {"Garbled": 50, "Timeout": 50, "Clamped": 100}
    reasons = (await db.execute(select(Content.relevancy_reason).where(Content.title == "Garbled"))).scalar_one()
    assert reasons == FALLBACK_REASON


@pytest.mark.asyncio
async def test_selection_skips_scored_approved_suppressed_and_orphan_content(db, seed):
    jane = await seed.creator("Jane")
    loner = await seed.creator("No Lounge")
    await seed.lounge("SaaS", creators=[jane])
    fresh = await seed.content(jane, title="Fresh")
    await seed.content(jane, title="Scored", score=70)
    approved = await seed.content(jane, title="Approved")
    approved.manually_approved = True
    await db.commit()
    hidden = await seed.content(jane, title="Hidden", checked=False)
    await seed.suppress(hidden)
    await seed.content(loner, title="Orphan")

    items = await get_content_for_relevancy_check(db)

    assert [item.content_id for item in items] == [fresh.id]

    classifier = _FakeClassifier({("Fresh", "SaaS"): {"score": 90, "reason": "Great"}})
    first = await process_relevancy_checks(db, classifier)
    second = await process_relevancy_checks(db, classifier)
    assert first["processed"] == 1
    assert second == {"processed": 0, "errors": 0, "remaining": 0, "suppressed": 0, "restored": 0}
    assert len(classifier.prompts) == 1


@pytest.mark.asyncio
async def test_active_adjustments_are_added_to_prompt(db, seed):
    jane = await seed.creator("Jane")
    lounge = await seed.lounge("SaaS", creators=[jane])
    await seed.content(jane, title="Pricing")
    db.add_all(
        [
            PromptAdjustment(lounge_id=lounge.id, adjustment_type="keep", adjustment_text="Pricing teardown posts", approved=True, active=True),
            PromptAdjustment(lounge_id=lounge.id, adjustment_type="filter", adjustment_text="Hiring announcements", approved=True, active=True),
            PromptAdjustment(lounge_id=lounge.id, adjustment_type="keep", adjustment_text="Unreviewed idea", approved=False, active=False),
        ]
    )
    await db.commit()
    classifier = _FakeClassifier({("Pricing", "SaaS"): {"score": 75, "reason": "Pricing"}})

    await process_relevancy_checks(db, classifier)

    prompt = classifier.prompts[0]
    assert "KEEP:\n- Pricing teardown posts" in prompt
    assert "FILTER OUT:\n- Hiring announcements" in prompt
    assert "Unreviewed idea" not in prompt
    assert "BORDERLINE:" not in prompt


def _item(index: int, **overrides) -> UnscoredItem:
    values = dict(
        content_id=f"c{index}",
        lounge_id="l1",
        lounge_name="SaaS",
        theme_description="B2B software",
        threshold=60,
        title=f"Item {index}",
        description="",
        url="https://example.com",
        creator_name="Jane",
    )
    values.update(overrides)
    return UnscoredItem(**values)


def test_prompt_includes_quote_context():
    prompt = build_scoring_prompt(
        _item(
            1,
            description="Great point here",
            reference_type="quote",
            referenced_content={"text": "Churn is a lagging metric", "author": {"username": "bob"}},
        )
    )
    assert "Content: Great point here\n\n[QUOTED POST: Churn is a lagging metric] by @bob" in prompt
    assert "The threshold is 60." in prompt


@pytest.mark.asyncio
async def test_score_batch_preserves_order_and_bounds_concurrency():
    active = 0
    peak = 0

    class _SlowClassifier:
        async def classify_json(self, system_prompt, user_prompt, **kwargs):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            index = int(re.search(r"^Title: Item (\d+)$", user_prompt, re.MULTILINE).group(1))
            await asyncio.sleep(0.01 * (5 - index % 5))
            active -= 1
            return {"score": index, "reason": f"item {index}"}

    items = [_item(index) for index in range(10)]
    results = await score_batch(_SlowClassifier(), items, concurrency=3)

    assert [result.score for result in results] == list(range(10))
    assert peak <= 3
