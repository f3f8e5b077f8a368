from fastapi import APIRouter, Depends

from ..core.config import Settings, get_settings
from ..core.security import require_access_password
from . import accounts, ledger, notifications, sessions, system_events, webhook

# ruff: noqa: B008  # FastAPI dependency injection pattern


router = APIRouter()


@router.get("/", tags=["system"])
def read_root(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Root endpoint to verify that the API is running."""

    return {
        "message": f"{settings.app_name} is running",
        "environment": settings.environment,
    }


@router.get("/health", tags=["system"])
def health_check(settings: Settings = Depends(get_settings)) -> dict[str, str]:
    """Basic health endpoint used by the dashboard and monitoring."""

    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.environment,
    }


router.include_router(
    accounts.router,
    prefix="/api/accounts",
    dependencies=[Depends(require_access_password)],
    tags=["accounts"],
)

router.include_router(
    ledger.router,
    prefix="/api/ledger",
    dependencies=[Depends(require_access_password)],
    tags=["ledger"],
)

router.include_router(
    sessions.router,
    prefix="/api/sessions",
    dependencies=[Depends(require_access_password)],
    tags=["sessions"],
)

router.include_router(
    system_events.router,
    prefix="/api/system-events",
    dependencies=[Depends(require_access_password)],
    tags=["system-events"],
)

router.include_router(
    notifications.router,
    prefix="/api/notifications",
    tags=["notifications"],
)

router.include_router(
    webhook.router,
    prefix="/webhook",
    tags=["webhook"],
)


__all__ = ["router"]
