"""RQ worker entrypoints. Each wraps an async pipeline operation in its own session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from classification.llm import get_classifier
from database import async_session_maker
from services.collection import start_collection, start_collection_for_creators
from services.connectors import get_brightdata_client
from services.corrections import analyze_pending_corrections
from services.digest import LoggingDigestDelivery, dispatch_digests
from services.relevancy import process_relevancy_checks
from services.snapshots import reconcile_pending, recover_snapshots

logger = logging.getLogger(__name__)


async def run_collection_async(creator_urls: Optional[List[str]] = None) -> Dict[str, Any]:
    async with get_brightdata_client() as vendor:
        async with async_session_maker() as db:
            if creator_urls:
                snapshot_id = await start_collection(db, vendor, creator_urls)
                return {"snapshots": [snapshot_id], "errors": []}
            return await start_collection_for_creators(db, vendor)


async def run_snapshot_reconcile_async() -> Dict[str, Any]:
    async with get_brightdata_client() as vendor:
        async with async_session_maker() as db:
            summary = await reconcile_pending(db, vendor)
            return summary.to_dict()


async def run_snapshot_recovery_async() -> Dict[str, Any]:
    async with get_brightdata_client() as vendor:
        async with async_session_maker() as db:
            return await recover_snapshots(db, vendor)


async def run_relevancy_async(limit: Optional[int] = None) -> Dict[str, Any]:
    classifier = get_classifier()
    try:
        async with async_session_maker() as db:
            return await process_relevancy_checks(db, classifier, limit=limit)
    finally:
        await classifier.aclose()


async def run_correction_analysis_async() -> Dict[str, Any]:
    classifier = get_classifier()
    try:
        async with async_session_maker() as db:
            return await analyze_pending_corrections(db, classifier)
    finally:
        await classifier.aclose()


async def run_digest_dispatch_async() -> Dict[str, Any]:
    async with async_session_maker() as db:
        return await dispatch_digests(db, LoggingDigestDelivery())


def run_collection_job(creator_urls: Optional[List[str]] = None) -> Dict[str, Any]:
    """RQ worker entrypoint for vendor collection triggers."""
    return asyncio.run(run_collection_async(creator_urls))


def run_snapshot_reconcile_job() -> Dict[str, Any]:
    """RQ worker entrypoint for snapshot reconciliation."""
    return asyncio.run(run_snapshot_reconcile_async())


def run_snapshot_recovery_job() -> Dict[str, Any]:
    """RQ worker entrypoint for vendor snapshot recovery."""
    return asyncio.run(run_snapshot_recovery_async())


def run_relevancy_job(limit: Optional[int] = None) -> Dict[str, Any]:
    """RQ worker entrypoint for relevancy scoring."""
    return asyncio.run(run_relevancy_async(limit))


def run_correction_analysis_job() -> Dict[str, Any]:
    """RQ worker entrypoint for correction analysis."""
    return asyncio.run(run_correction_analysis_async())


def run_digest_dispatch_job() -> Dict[str, Any]:
    """RQ worker entrypoint for digest dispatch."""
    return asyncio.run(run_digest_dispatch_async())
