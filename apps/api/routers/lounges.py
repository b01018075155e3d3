"""Lounge digest preview endpoint."""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import get_db
from models.content import Content
from routers.auth_scope import AuthContext, get_auth_context
from services.digest import select_for_digest
from services.errors import NotFoundError

router = APIRouter()


class DigestItemResponse(BaseModel):
    id: str
    platform: str
    creator_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    url: str
    published_at: Optional[str] = None
    relevancy_score: Optional[int] = None


class DigestResponse(BaseModel):
    lounge_id: str
    window_hours: int
    max_items: int
    items: List[DigestItemResponse]


def _serialize(item: Content) -> DigestItemResponse:
    return DigestItemResponse(
        id=item.id,
        platform=str(item.platform),
        creator_id=item.creator_id,
        title=item.title,
        description=item.description,
        url=item.url,
        published_at=item.published_at.isoformat() if item.published_at else None,
        relevancy_score=item.relevancy_score,
    )


@router.get("/{lounge_id}/digest", response_model=DigestResponse)
async def preview_digest(
    lounge_id: str,
    window_hours: int = Query(default=settings.DIGEST_WINDOW_HOURS, ge=1, le=24 * 30),
    max_items: int = Query(default=settings.DIGEST_MAX_ITEMS, ge=1, le=50),
    _auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    """Items the next digest for this lounge would contain."""
    try:
        items = await select_for_digest(db, lounge_id, window_hours, max_items)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    return DigestResponse(
        lounge_id=lounge_id,
        window_hours=window_hours,
        max_items=max_items,
        items=[_serialize(item) for item in items],
    )
