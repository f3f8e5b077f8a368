from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from control_center.db.session import get_db
from control_center.services.container import AppServices
from control_center.services.ledger import PositionLedger

# ruff: noqa: B008  # FastAPI dependency injection pattern


def get_services(request: Request) -> AppServices:
    """Return the service container attached to the running application."""

    return request.app.state.services


def get_ledger(db: Session = Depends(get_db)) -> PositionLedger:
    return PositionLedger(db)


__all__ = ["get_services", "get_ledger"]
