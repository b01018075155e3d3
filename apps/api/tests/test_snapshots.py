from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

from config import settings
from models.brightdata_snapshot import BrightDataSnapshot
from models.content import Content
from services.connectors import SnapshotProgress
from services.content_store import upsert_content
from services.errors import SnapshotNotFoundError, VendorError
from services.normalization import LinkedInPost, TwitterPost
from services.snapshots import (
    backoff_seconds,
    reconcile_pending,
    reconcile_snapshot,
    recover_snapshots,
    reprocess_snapshot,
)


NOW = datetime(2026, 10, 18, 12, 0, tzinfo=timezone.utc)
JANE_URL = "https://www.linkedin.com/in/jane-doe"


def _post(post_id: str, author: str = JANE_URL, text: str = "Notes on SaaS pricing"):
    return {
        "id": post_id,
        "url": f"https://www.linkedin.com/feed/update/{post_id}",
        "use_url": author,
        "post_text": text,
        "date_posted": "2026-10-18T08:00:00Z",
    }


class _FakeVendor:
    dataset_id = "gd_test"

    def __init__(self, progress=None, results=None, listing=None):
        self.progress = progress or {}
        self.results = results or {}
        self.listing = listing or []
        self.progress_calls = []
        self.fetch_calls = []

    async def get_progress(self, snapshot_id):
        self.progress_calls.append(snapshot_id)
        outcome = self.progress.get(snapshot_id, "ready")
        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, SnapshotProgress):
            return outcome
        return SnapshotProgress(snapshot_id=snapshot_id, status=outcome)

    async def fetch_result(self, snapshot_id):
        self.fetch_calls.append(snapshot_id)
        outcome = self.results.get(snapshot_id, [])
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    async def list_snapshots(self, *, limit=500, status=None):
        return list(self.listing)


async def _snapshot(db, snapshot_id, *, urls=(JANE_URL,), status="pending", created_at=None, metadata=None):
    snapshot = BrightDataSnapshot(
        snapshot_id=snapshot_id,
        dataset_id="gd_test",
        platform="linkedin",
        status=status,
        creator_urls_json=list(urls),
        metadata_json=metadata or {},
        poll_attempts=0,
        created_at=created_at or NOW - timedelta(minutes=30),
    )
    db.add(snapshot)
    await db.commit()
    return snapshot


async def _content_count(db) -> int:
    result = await db.execute(select(func.count()).select_from(Content))
    return int(result.scalar_one())


def test_backoff_grows_exponentially_and_caps():
    assert backoff_seconds(1) == 30
    assert backoff_seconds(2) == 60
    assert backoff_seconds(3) == 120
    assert backoff_seconds(50) == settings.SNAPSHOT_BACKOFF_MAX_SECONDS


@pytest.mark.asyncio
async def test_ready_snapshot_is_ingested_once(db, seed):
    jane = await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_ready")
    vendor = _FakeVendor(results={"s_ready": [_post("p1"), _post("p2"), {"url": "missing-id"}]})

    first = await reconcile_pending(db, vendor, now=NOW)

    assert first.checked == 1
    assert first.processed == 1
    assert first.posts == 2
    snapshot = await db.get(BrightDataSnapshot, "s_ready")
    assert snapshot.status == "processed"
    assert snapshot.posts_retrieved == 2
    assert snapshot.processed_at is not None
    assert await _content_count(db) == 2

    rows = (await db.execute(select(Content).order_by(Content.platform_content_id))).scalars().all()
    assert [row.creator_id for row in rows] == [jane.id, jane.id]
    assert all(row.relevancy_score is None for row in rows)

    second = await reconcile_pending(db, vendor, now=NOW + timedelta(hours=1))
    assert second.checked == 0
    outcome = await reconcile_snapshot(db, vendor, snapshot, now=NOW)
    assert outcome["outcome"] == "skipped"
    assert vendor.fetch_calls == ["s_ready"]


@pytest.mark.asyncio
async def test_reprocessing_same_snapshot_does_not_duplicate_rows(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_twice")
    vendor = _FakeVendor(results={"s_twice": [_post("p1"), _post("p2")]})
    await reconcile_pending(db, vendor, now=NOW)

    row = (await db.execute(select(Content).where(Content.platform_content_id == "p1"))).scalar_one()
    row.relevancy_score = 77
    await db.commit()

    vendor.results["s_twice"] = [_post("p1", text="Edited notes on SaaS pricing"), _post("p2")]
    result = await reprocess_snapshot(db, vendor, "s_twice")

    assert result.created == 0
    assert result.updated == 2
    assert await _content_count(db) == 2
    snapshot = await db.get(BrightDataSnapshot, "s_twice")
    assert snapshot.posts_retrieved == 2

    refreshed = (
        await db.execute(
            select(Content.description, Content.relevancy_score).where(Content.platform_content_id == "p1")
        )
    ).one()
    assert refreshed.description == "Edited notes on SaaS pricing"
    assert refreshed.relevancy_score == 77


@pytest.mark.asyncio
async def test_running_snapshot_backs_off(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_slow")
    vendor = _FakeVendor(progress={"s_slow": "running"})

    summary = await reconcile_pending(db, vendor, now=NOW)

    assert summary.still_running == 1
    snapshot = await db.get(BrightDataSnapshot, "s_slow")
    assert snapshot.status == "running"
    assert snapshot.poll_attempts == 1
    assert snapshot.next_check_at.replace(tzinfo=timezone.utc) == NOW + timedelta(seconds=30)

    # Not due yet: skipped without contacting the vendor.
    again = await reconcile_pending(db, vendor, now=NOW + timedelta(seconds=10))
    assert again.checked == 0
    assert vendor.progress_calls == ["s_slow"]


@pytest.mark.asyncio
async def test_poll_attempt_exhaustion_fails_snapshot(db, seed, monkeypatch):
    monkeypatch.setattr(settings, "SNAPSHOT_MAX_POLL_ATTEMPTS", 2)
    await seed.creator("Jane", {"linkedin": JANE_URL})
    snapshot = await _snapshot(db, "s_stuck")
    vendor = _FakeVendor(progress={"s_stuck": "pending"})

    first = await reconcile_snapshot(db, vendor, snapshot, now=NOW)
    second = await reconcile_snapshot(db, vendor, snapshot, now=NOW + timedelta(minutes=5))

    assert first["outcome"] == "running"
    assert second["outcome"] == "failed"
    assert snapshot.status == "failed"
    assert snapshot.error_code == "poll_attempts_exhausted"
    assert snapshot.next_check_at is None


@pytest.mark.asyncio
async def test_vendor_failures_are_recorded_not_raised(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_failed", created_at=NOW - timedelta(minutes=50))
    await _snapshot(db, "s_expired", created_at=NOW - timedelta(minutes=40))
    await _snapshot(db, "s_flaky", created_at=NOW - timedelta(minutes=30))
    await _snapshot(db, "s_good", created_at=NOW - timedelta(minutes=20))
    vendor = _FakeVendor(
        progress={
            "s_failed": SnapshotProgress(snapshot_id="s_failed", status="failed", error="Blocked", error_code="blocked"),
            "s_expired": SnapshotNotFoundError("Snapshot s_expired not found or expired", status_code=404),
            "s_flaky": VendorError("Bright Data request failed: timeout"),
        },
        results={"s_good": [_post("p1")]},
    )

    summary = await reconcile_pending(db, vendor, now=NOW)

    assert summary.checked == 4
    assert summary.failed == 2
    assert summary.errors == 1
    assert summary.processed == 1
    failed = await db.get(BrightDataSnapshot, "s_failed")
    assert (failed.status, failed.error, failed.error_code) == ("failed", "Blocked", "blocked")
    expired = await db.get(BrightDataSnapshot, "s_expired")
    assert (expired.status, expired.error_code) == ("failed", "not_found")
    flaky = await db.get(BrightDataSnapshot, "s_flaky")
    assert flaky.status == "pending"
    assert flaky.poll_attempts == 1
    assert "timeout" in flaky.error


@pytest.mark.asyncio
async def test_ingest_failure_leaves_snapshot_ready_for_retry(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_retry")
    vendor = _FakeVendor(results={"s_retry": RuntimeError("download interrupted")})

    outcome = await reconcile_snapshot(db, vendor, await db.get(BrightDataSnapshot, "s_retry"), now=NOW)

    assert outcome["outcome"] == "error"
    snapshot = await db.get(BrightDataSnapshot, "s_retry")
    assert snapshot.status == "ready"
    assert snapshot.processed_at is None
    assert snapshot.error_code == "ingest_failed"
    assert await _content_count(db) == 0

    vendor.results["s_retry"] = [_post("p1")]
    outcome = await reconcile_snapshot(db, vendor, snapshot, now=NOW + timedelta(minutes=5))
    assert outcome["outcome"] == "processed"
    assert vendor.progress_calls == ["s_retry"]
    assert await _content_count(db) == 1


@pytest.mark.asyncio
async def test_expired_result_download_fails_snapshot(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    snapshot = await _snapshot(db, "s_gone", status="ready")
    vendor = _FakeVendor(results={"s_gone": SnapshotNotFoundError("gone", status_code=404)})

    outcome = await reconcile_snapshot(db, vendor, snapshot, now=NOW)

    assert outcome["outcome"] == "failed"
    snapshot = await db.get(BrightDataSnapshot, "s_gone")
    assert snapshot.status == "failed"
    assert snapshot.error_code == "not_found"


@pytest.mark.asyncio
async def test_records_resolve_by_author_url_and_skip_unknown_authors(db, seed):
    jane = await seed.creator("Jane", {"linkedin": JANE_URL})
    bob = await seed.creator("Bob", {"linkedin": "https://linkedin.com/in/bob/"})
    await _snapshot(db, "s_multi", urls=(JANE_URL, "https://linkedin.com/in/bob"))
    vendor = _FakeVendor(
        results={
            "s_multi": [
                _post("p1", author="https://linkedin.com/in/jane-doe/"),
                _post("p2", author="https://www.linkedin.com/in/BOB"),
                _post("p3", author="https://www.linkedin.com/in/stranger"),
            ]
        }
    )

    outcome = await reconcile_snapshot(db, vendor, await db.get(BrightDataSnapshot, "s_multi"), now=NOW)

    assert outcome["posts"] == 2
    assert outcome["skipped"] == 1
    rows = (await db.execute(select(Content.platform_content_id, Content.creator_id))).all()
    assert dict(rows) == {"p1": jane.id, "p2": bob.id}


@pytest.mark.asyncio
async def test_single_creator_snapshot_defaults_unmatched_authors(db, seed):
    jane = await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_single", metadata={"creator_ids": [jane.id]})
    vendor = _FakeVendor(results={"s_single": [_post("p1", author=None)]})

    outcome = await reconcile_snapshot(db, vendor, await db.get(BrightDataSnapshot, "s_single"), now=NOW)

    assert outcome["posts"] == 1
    row = (await db.execute(select(Content))).scalar_one()
    assert row.creator_id == jane.id


@pytest.mark.asyncio
async def test_cross_post_on_second_platform_is_not_primary(db, seed):
    jane = await seed.creator("Jane", {"linkedin": JANE_URL, "twitter": "https://twitter.com/jane"})
    linkedin = LinkedInPost.from_raw(_post("li-1", text="Shipping usage-based pricing this week, here is why")).normalize(jane.id)
    await upsert_content(db, [linkedin])
    await db.commit()

    tweet = TwitterPost.from_raw(
        {"id": "tw-1", "text": "Shipping usage-based pricing this week - here is why", "author_username": "jane"}
    ).normalize(jane.id)
    summary = await upsert_content(db, [tweet])
    await db.commit()

    assert summary.created == 1
    rows = dict((await db.execute(select(Content.platform, Content.is_primary))).all())
    assert rows == {"linkedin": True, "twitter": False}


@pytest.mark.asyncio
async def test_recovery_adopts_unknown_vendor_snapshots(db, seed):
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_known", status="processed")
    listing = [
        SnapshotProgress(snapshot_id="s_known", status="ready", created=NOW - timedelta(hours=2)),
        SnapshotProgress(snapshot_id="s_lost", status="ready", created=NOW - timedelta(hours=3)),
        SnapshotProgress(snapshot_id="s_broken", status="failed", error="quota", created=NOW - timedelta(hours=1)),
        SnapshotProgress(snapshot_id="s_ancient", status="ready", created=NOW - timedelta(days=5)),
    ]
    vendor = _FakeVendor(listing=listing, results={"s_lost": [_post("p1")]})

    summary = await recover_snapshots(db, vendor, lookback_hours=48, now=NOW)

    assert summary["vendor_snapshots"] == 3
    assert summary["already_tracked"] == 1
    assert summary["adopted"] == 1
    assert summary["processed"] == 1
    lost = await db.get(BrightDataSnapshot, "s_lost")
    assert lost.status == "processed"
    assert lost.metadata_json["vendor_status"] == "ready"
    broken = await db.get(BrightDataSnapshot, "s_broken")
    assert (broken.status, broken.error) == ("failed", "quota")
    assert await db.get(BrightDataSnapshot, "s_ancient") is None
    assert vendor.fetch_calls == ["s_lost"]


@pytest.mark.asyncio
async def test_recovery_reopens_failed_snapshot_still_ready_at_vendor(db, seed, monkeypatch):
    monkeypatch.setattr(settings, "SNAPSHOT_MAX_POLL_ATTEMPTS", 1)
    await seed.creator("Jane", {"linkedin": JANE_URL})
    await _snapshot(db, "s_flaky", status="ready")
    vendor = _FakeVendor(results={"s_flaky": RuntimeError("connection reset")})

    await reconcile_snapshot(db, vendor, await db.get(BrightDataSnapshot, "s_flaky"), now=NOW)
    snapshot = await db.get(BrightDataSnapshot, "s_flaky")
    assert (snapshot.status, snapshot.error_code) == ("failed", "poll_attempts_exhausted")

    vendor.results["s_flaky"] = [_post("p1")]
    vendor.listing = [SnapshotProgress(snapshot_id="s_flaky", status="ready", created=NOW - timedelta(hours=1))]
    summary = await recover_snapshots(db, vendor, lookback_hours=48, now=NOW + timedelta(hours=1))

    assert summary["reopened"] == 1
    assert summary["adopted"] == 0
    assert summary["processed"] == 1
    snapshot = await db.get(BrightDataSnapshot, "s_flaky")
    assert snapshot.status == "processed"
    assert snapshot.error is None
    assert snapshot.posts_retrieved == 1
    assert await _content_count(db) == 1


@pytest.mark.asyncio
async def test_recovery_leaves_vendor_failed_snapshots_alone(db, seed):
    await _snapshot(db, "s_dead", status="failed")
    vendor = _FakeVendor(listing=[SnapshotProgress(snapshot_id="s_dead", status="failed", created=NOW - timedelta(hours=1))])

    summary = await recover_snapshots(db, vendor, lookback_hours=48, now=NOW)

    assert summary["reopened"] == 0
    assert vendor.fetch_calls == []
    assert (await db.get(BrightDataSnapshot, "s_dead")).status == "failed"
