from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from control_center.schemas.sessions import SessionActionResponse, SessionStatusRead
from control_center.services.container import AppServices

from .deps import get_services

# ruff: noqa: B008  # FastAPI dependency injection pattern

logger = logging.getLogger(__name__)

router = APIRouter()


def _status(services: AppServices, client_id: str) -> SessionStatusRead:
    return SessionStatusRead(**services.session_cache.snapshot(client_id))


@router.get("/", response_model=list[SessionStatusRead])
def list_sessions(services: AppServices = Depends(get_services)) -> list[SessionStatusRead]:
    return [_status(services, key) for key in services.session_cache.client_keys()]


@router.get("/{client_id}", response_model=SessionStatusRead)
def get_session(
    client_id: str, services: AppServices = Depends(get_services)
) -> SessionStatusRead:
    return _status(services, client_id)


@router.post("/{client_id}/validate", response_model=SessionActionResponse)
async def validate_session(
    client_id: str, services: AppServices = Depends(get_services)
) -> SessionActionResponse:
    """Check the cached token with the broker; a rejected token is dropped."""

    ok = await services.session_cache.validate(client_id)
    return SessionActionResponse(
        client_id=client_id, ok=ok, status=_status(services, client_id)
    )


@router.post("/{client_id}/revalidate", response_model=SessionActionResponse)
async def revalidate_session(
    client_id: str, services: AppServices = Depends(get_services)
) -> SessionActionResponse:
    """Discard the cached token and log in again with stored credentials."""

    try:
        ok = await services.session_cache.force_revalidate(client_id)
    except LookupError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return SessionActionResponse(
        client_id=client_id, ok=ok, status=_status(services, client_id)
    )


@router.delete("/", status_code=status.HTTP_204_NO_CONTENT)
def clear_sessions(services: AppServices = Depends(get_services)) -> None:
    services.session_cache.clear()
    logger.info("Cleared all broker sessions")


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
def clear_session(client_id: str, services: AppServices = Depends(get_services)) -> None:
    services.session_cache.clear(client_id)
    logger.info("Cleared broker session for %s", client_id)


__all__ = ["router"]
