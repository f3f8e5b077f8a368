import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .api.routes import router as api_router
from .core.config import get_settings
from .core.logging import RequestContextMiddleware, configure_logging
from .db.session import init_db
from .services.container import build_services

settings = get_settings()

configure_logging()
logger = logging.getLogger(__name__)

services = build_services(settings)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    """Create ledger tables and run the session sweep for the app's lifetime."""

    init_db()
    await app.state.services.startup()
    logger.info(
        "Control center started",
        extra={"extra": settings.dict_for_logging()},
    )
    yield
    await app.state.services.shutdown()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=_lifespan,
)

app.state.services = services
app.add_middleware(RequestContextMiddleware)
app.include_router(api_router)


__all__ = ["app"]
