"""Curator relevancy endpoints: restoration and suggestion review."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from models.prompt_adjustment import PromptAdjustment
from models.relevancy_analysis_run import RelevancyAnalysisRun
from routers.auth_scope import AuthContext, require_roles
from services.errors import NotFoundError, PermissionDeniedError
from services.lifecycle import ActingUser, restore

router = APIRouter()


class RestoreRequest(BaseModel):
    content_id: str = Field(min_length=1)
    lounge_id: str = Field(min_length=1)


class RestoreResponse(BaseModel):
    status: str
    content_id: str
    lounge_id: str
    correction_id: Optional[str] = None


class SuggestionResponse(BaseModel):
    id: str
    lounge_id: str
    adjustment_type: str
    adjustment_text: str
    reasoning: Optional[str] = None
    corrections_addressed: int
    approved: bool
    active: bool
    created_at: Optional[str] = None


class AnalysisRunResponse(BaseModel):
    id: str
    corrections_analyzed: int
    suggestions_generated: int
    failed_lounges: int
    analysis_summary: Optional[dict] = None
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


@router.post("/restore", response_model=RestoreResponse)
async def restore_content(
    request: RestoreRequest,
    auth: AuthContext = Depends(require_roles("admin", "curator")),
    db: AsyncSession = Depends(get_db),
):
    """Restore suppressed content and record the correction."""
    try:
        result = await restore(
            db,
            request.content_id,
            request.lounge_id,
            ActingUser(id=auth.user_id, role=auth.role),
        )
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except PermissionDeniedError as exc:
        raise HTTPException(status_code=403, detail=str(exc)) from exc
    return RestoreResponse(
        status=result.status,
        content_id=result.content_id,
        lounge_id=result.lounge_id,
        correction_id=result.correction_id,
    )


@router.get("/suggestions", response_model=List[SuggestionResponse])
async def list_suggestions(
    lounge_id: Optional[str] = Query(default=None),
    include_reviewed: bool = Query(default=False),
    _auth: AuthContext = Depends(require_roles("admin", "curator")),
    db: AsyncSession = Depends(get_db),
):
    """Prompt adjustment suggestions awaiting human approval (newest first)."""
    query = select(PromptAdjustment).order_by(PromptAdjustment.created_at.desc(), PromptAdjustment.id.asc())
    if lounge_id:
        query = query.where(PromptAdjustment.lounge_id == lounge_id)
    if not include_reviewed:
        query = query.where(PromptAdjustment.approved.is_(False))
    result = await db.execute(query)
    return [
        SuggestionResponse(
            id=row.id,
            lounge_id=row.lounge_id,
            adjustment_type=row.adjustment_type,
            adjustment_text=row.adjustment_text,
            reasoning=row.reasoning,
            corrections_addressed=int(row.corrections_addressed or 0),
            approved=bool(row.approved),
            active=bool(row.active),
            created_at=row.created_at.isoformat() if row.created_at else None,
        )
        for row in result.scalars().all()
    ]


@router.get("/analysis-runs", response_model=List[AnalysisRunResponse])
async def list_analysis_runs(
    limit: int = Query(default=10, ge=1, le=100),
    _auth: AuthContext = Depends(require_roles("admin", "curator")),
    db: AsyncSession = Depends(get_db),
):
    result = await db.execute(
        select(RelevancyAnalysisRun).order_by(RelevancyAnalysisRun.created_at.desc()).limit(limit)
    )
    return [
        AnalysisRunResponse(
            id=run.id,
            corrections_analyzed=int(run.corrections_analyzed or 0),
            suggestions_generated=int(run.suggestions_generated or 0),
            failed_lounges=int(run.failed_lounges or 0),
            analysis_summary=run.analysis_summary_json,
            created_at=run.created_at.isoformat() if run.created_at else None,
            completed_at=run.completed_at.isoformat() if run.completed_at else None,
        )
        for run in result.scalars().all()
    ]
