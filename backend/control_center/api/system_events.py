from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session

from control_center.db.session import get_db
from control_center.models import SystemEvent
from control_center.schemas.system_events import SystemEventRead

# ruff: noqa: B008  # FastAPI dependency injection pattern

router = APIRouter()


@router.get("/", response_model=List[SystemEventRead])
def list_system_events(
    level: Optional[str] = Query(None),
    category: Optional[str] = Query(None),
    correlation_id: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=500),
    db: Session = Depends(get_db),
) -> List[SystemEvent]:
    """Recent operational events, newest first."""

    stmt = select(SystemEvent)
    if level is not None:
        stmt = stmt.where(SystemEvent.level == level.upper())
    if category is not None:
        stmt = stmt.where(SystemEvent.category == category)
    if correlation_id is not None:
        stmt = stmt.where(SystemEvent.correlation_id == correlation_id)
    stmt = stmt.order_by(SystemEvent.created_at.desc(), SystemEvent.id.desc()).limit(limit)
    return list(db.scalars(stmt))


__all__ = ["router"]
