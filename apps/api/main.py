"""
Lounge Content Pipeline - FastAPI Backend
Main application entry point: schema bootstrap, periodic enqueue loops and API routing.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Callable

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from config import settings, validate_security_settings
from database import engine, Base
import models  # noqa: F401
from routers import health, cron, relevancy, lounges
from services.job_queue import (
    enqueue_correction_analysis_job,
    enqueue_relevancy_job,
    enqueue_snapshot_reconcile_job,
    recover_stalled_snapshots,
)

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


async def _periodic_enqueue(label: str, interval_minutes: int, enqueue: Callable) -> None:
    interval_minutes = max(int(interval_minutes), 0)
    if interval_minutes <= 0:
        return
    while True:
        await asyncio.sleep(interval_minutes * 60)
        try:
            job = await asyncio.to_thread(enqueue)
            print(f"⏱️ {label} tick: enqueued job={job.id}")
        except Exception as exc:
            print(f"⚠️ {label} tick failed: {exc}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Lounge Content Pipeline API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")
    try:
        recovered = await recover_stalled_snapshots()
        if recovered:
            print(f"♻️ Marked {recovered} stalled snapshots as failed after startup.")
    except Exception as exc:
        print(f"⚠️ Stalled snapshot recovery skipped: {exc}")

    loops = []
    for label, interval, enqueue in (
        ("Snapshot reconcile", settings.SNAPSHOT_RECONCILE_INTERVAL_MINUTES, enqueue_snapshot_reconcile_job),
        ("Relevancy scoring", settings.RELEVANCY_SCORE_INTERVAL_MINUTES, enqueue_relevancy_job),
        ("Correction analysis", settings.CORRECTION_ANALYSIS_INTERVAL_MINUTES, enqueue_correction_analysis_job),
    ):
        if int(interval) > 0:
            loops.append(asyncio.create_task(_periodic_enqueue(label, interval, enqueue)))
            print(f"📅 {label} loop enabled (every {int(interval)} min).")
    yield
    # Shutdown
    for task in loops:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
    await engine.dispose()
    print("👋 Shutting down API...")


app = FastAPI(
    title="Lounge Content Pipeline API",
    description="Collects creator content, scores it per lounge and selects digests",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(cron.router, prefix="/cron", tags=["Cron"])
app.include_router(relevancy.router, prefix="/relevancy", tags=["Relevancy"])
app.include_router(lounges.router, prefix="/lounges", tags=["Lounges"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Lounge Content Pipeline API",
        "version": "0.1.0",
        "status": "running"
    }
