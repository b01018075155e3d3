from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from models.content import Content, ContentLoungeScore
from models.deleted_content import DeletedContent
from models.relevancy_correction import RelevancyCorrection
from services.digest import select_for_digest
from services.errors import NotFoundError, PermissionDeniedError
from services.lifecycle import (
    ActingUser,
    Live,
    Suppressed,
    apply_score,
    apply_scores,
    get_content_state,
    reevaluate_lounge,
    restore,
)


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
CURATOR = ActingUser(id="curator-1", role="curator")


async def _count(db, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return int(result.scalar_one())


@pytest.mark.asyncio
async def test_saas_scenario(db, seed):
    jane = await seed.creator("Jane")
    saas = await seed.lounge("SaaS", threshold=60, creators=[jane])
    published = NOW - timedelta(hours=2)
    high = await seed.content(jane, title="High", score=80, published_at=published)
    low = await seed.content(jane, title="Low", score=45, published_at=published)
    pending = await seed.content(jane, title="Pending", score=None, published_at=published)

    assert await apply_score(db, high.id, now=NOW) == "kept"
    assert await apply_score(db, low.id, now=NOW) == "suppressed"

    assert isinstance(await get_content_state(db, high), Live)
    state = await get_content_state(db, low)
    assert isinstance(state, Suppressed)
    assert state.reason == "low_relevancy"
    assert state.by is None
    assert isinstance(await get_content_state(db, pending), Live)

    digest = await select_for_digest(db, saas.id, now=NOW)
    assert [item.id for item in digest] == [high.id]


@pytest.mark.asyncio
async def test_unscored_content_is_untouched(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", creators=[jane])
    pending = await seed.content(jane, score=None)

    assert await apply_score(db, pending.id, now=NOW) == "unscored"
    assert await _count(db, DeletedContent) == 0


@pytest.mark.asyncio
async def test_apply_score_is_idempotent(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", creators=[jane])
    low = await seed.content(jane, score=10)

    assert await apply_score(db, low.id, now=NOW) == "suppressed"
    assert await apply_score(db, low.id, now=NOW) == "already_suppressed"
    assert await _count(db, DeletedContent) == 1


@pytest.mark.asyncio
async def test_per_lounge_ledger_decides_over_content_score(db, seed):
    jane = await seed.creator("Jane")
    strict = await seed.lounge("Strict", threshold=60, creators=[jane])
    lenient = await seed.lounge("Lenient", threshold=40, creators=[jane])
    item = await seed.content(jane, score=55)
    await seed.lounge_score(item, strict, 55)
    await seed.lounge_score(item, lenient, 55)

    assert await apply_score(db, item.id, now=NOW) == "kept"

    lenient.relevancy_threshold = 70
    await db.commit()
    summary = await reevaluate_lounge(db, lenient.id)
    assert summary["suppressed"] == 1


@pytest.mark.asyncio
async def test_rescored_content_is_restored_automatically(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", threshold=60, creators=[jane])
    item = await seed.content(jane, score=30)
    assert await apply_score(db, item.id, now=NOW) == "suppressed"

    item.relevancy_score = 75
    await db.commit()
    assert await apply_score(db, item.id, now=NOW) == "restored"
    assert isinstance(await get_content_state(db, item), Live)


@pytest.mark.asyncio
async def test_content_without_lounges_keeps_its_current_state(db, seed):
    loner = await seed.creator("Loner")
    hidden = await seed.content(loner, score=10)
    await seed.suppress(hidden)
    visible = await seed.content(loner, score=10)

    assert await apply_score(db, hidden.id, now=NOW) == "already_suppressed"
    assert await apply_score(db, visible.id, now=NOW) == "kept"
    assert isinstance(await get_content_state(db, hidden), Suppressed)
    assert await _count(db, DeletedContent) == 1


@pytest.mark.asyncio
async def test_manual_markers_are_not_lifted_automatically(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", creators=[jane])
    item = await seed.content(jane, score=95)
    await seed.suppress(item, reason="spam")

    assert await apply_score(db, item.id, now=NOW) == "already_suppressed"
    assert await _count(db, DeletedContent) == 1


@pytest.mark.asyncio
async def test_apply_scores_isolates_failures(db, seed):
    jane = await seed.creator("Jane")
    await seed.lounge("SaaS", creators=[jane])
    good = await seed.content(jane, score=90)
    bad = await seed.content(jane, score=5)

    summary = await apply_scores(db, [good.id, "missing-id", bad.id])

    assert summary["kept"] == 1
    assert summary["suppressed"] == 1
    assert summary["errors"] == 1


@pytest.mark.asyncio
async def test_restore_records_one_correction_and_pins_content(db, seed):
    jane = await seed.creator("Jane")
    saas = await seed.lounge("SaaS", threshold=60, creators=[jane])
    item = await seed.content(jane, title="Usage pricing", score=45, reason="Mostly about hiring", published_at=NOW - timedelta(hours=1))
    await seed.lounge_score(item, saas, 45, "Mostly about hiring")
    await apply_score(db, item.id, now=NOW)

    result = await restore(db, item.id, saas.id, CURATOR, now=NOW)

    assert result.status == "restored"
    assert result.correction_id
    assert await _count(db, DeletedContent) == 0
    correction = await db.get(RelevancyCorrection, result.correction_id)
    assert correction.original_score == 45
    assert correction.original_reason == "Mostly about hiring"
    assert correction.restored_by == "curator-1"
    assert correction.processed is False
    assert correction.content_snapshot_json["title"] == "Usage pricing"
    assert correction.content_snapshot_json["creator_name"] == "Jane"

    content = await db.get(Content, item.id)
    assert content.relevancy_score == 100
    assert content.manually_approved is True
    assert content.manually_approved_by == "curator-1"
    ledger = (
        await db.execute(select(ContentLoungeScore.score).where(ContentLoungeScore.content_id == item.id))
    ).scalar_one()
    assert ledger == 100

    again = await restore(db, item.id, saas.id, CURATOR, now=NOW)
    assert again.status == "already_live"
    assert await _count(db, RelevancyCorrection) == 1

    # Manual approval survives later lifecycle passes.
    content.relevancy_score = 0
    await db.commit()
    assert await apply_score(db, item.id, now=NOW) == "kept"


@pytest.mark.asyncio
async def test_restore_without_ledger_uses_content_score(db, seed):
    jane = await seed.creator("Jane")
    saas = await seed.lounge("SaaS", creators=[jane])
    item = await seed.content(jane, score=20)
    await seed.suppress(item)

    result = await restore(db, item.id, saas.id, ActingUser(id="admin-1", role="admin"), now=NOW)

    correction = await db.get(RelevancyCorrection, result.correction_id)
    assert correction.original_score == 20
    assert correction.original_reason == "No reason recorded"
    ledger = (await db.execute(select(ContentLoungeScore))).scalar_one()
    assert (ledger.lounge_id, ledger.score) == (saas.id, 100)


@pytest.mark.asyncio
async def test_restore_rejects_viewers_and_unknown_ids(db, seed):
    jane = await seed.creator("Jane")
    saas = await seed.lounge("SaaS", creators=[jane])
    item = await seed.content(jane, score=20)
    await seed.suppress(item)

    with pytest.raises(PermissionDeniedError):
        await restore(db, item.id, saas.id, ActingUser(id="v", role="viewer"))
    with pytest.raises(NotFoundError):
        await restore(db, "missing", saas.id, CURATOR)
    with pytest.raises(NotFoundError):
        await restore(db, item.id, "missing", CURATOR)
    assert await _count(db, DeletedContent) == 1
    assert await _count(db, RelevancyCorrection) == 0
