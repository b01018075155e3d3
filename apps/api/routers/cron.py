"""Scheduler trigger endpoints. Each enqueues a pipeline job and returns immediately."""

from __future__ import annotations

import logging
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from routers.auth_scope import verify_cron_secret
from services import job_queue

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_cron_secret)])


class CollectRequest(BaseModel):
    creator_urls: Optional[List[str]] = Field(default=None, max_length=500)


class EnqueueResponse(BaseModel):
    queued: bool = True
    job: str
    job_id: str


def _enqueue(job_name: str, enqueue: Callable, *args) -> EnqueueResponse:
    try:
        queue_job = enqueue(*args)
    except Exception as exc:
        logger.exception("Failed to enqueue %s job", job_name)
        raise HTTPException(
            status_code=503,
            detail={"code": "queue_unavailable", "message": f"Could not enqueue {job_name}: {exc}"},
        ) from exc
    return EnqueueResponse(job=job_name, job_id=queue_job.id)


@router.post("/collect", response_model=EnqueueResponse)
async def trigger_collection(request: Optional[CollectRequest] = None):
    """Start vendor collection for the given profile URLs, or for every LinkedIn creator."""
    raw_urls = request.creator_urls if request and request.creator_urls else []
    urls = [url.strip() for url in raw_urls if url and url.strip()]
    return _enqueue("collection", job_queue.enqueue_collection_job, urls or None)


@router.post("/process-snapshots", response_model=EnqueueResponse)
async def trigger_snapshot_reconcile():
    return _enqueue("snapshot_reconcile", job_queue.enqueue_snapshot_reconcile_job)


@router.post("/recover-snapshots", response_model=EnqueueResponse)
async def trigger_snapshot_recovery():
    return _enqueue("snapshot_recovery", job_queue.enqueue_snapshot_recovery_job)


@router.post("/score-relevancy", response_model=EnqueueResponse)
async def trigger_relevancy_scoring(limit: Optional[int] = Query(default=None, ge=1, le=500)):
    return _enqueue("relevancy", job_queue.enqueue_relevancy_job, limit)


@router.post("/analyze-relevancy", response_model=EnqueueResponse)
async def trigger_correction_analysis():
    return _enqueue("correction_analysis", job_queue.enqueue_correction_analysis_job)


@router.post("/send-digests", response_model=EnqueueResponse)
async def trigger_digest_dispatch():
    return _enqueue("digest_dispatch", job_queue.enqueue_digest_dispatch_job)
