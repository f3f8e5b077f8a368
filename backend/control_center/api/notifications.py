from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from control_center.clients.chat_webhook import WebhookDeliveryError
from control_center.core.security import require_access_password
from control_center.schemas.webhook import SignalPayload
from control_center.services.container import AppServices

from .deps import get_services

# ruff: noqa: B008  # FastAPI dependency injection pattern

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/signal-message")
async def relay_signal_message(
    payload: SignalPayload,
    services: AppServices = Depends(get_services),
) -> Any:
    """Format a signal as a chat message and post it to the premium chat."""

    if not payload.text:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": "Text is required"},
        )

    try:
        result = await services.notifier.relay_signal_message(payload)
    except WebhookDeliveryError as exc:
        logger.warning("Signal message delivery failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc)},
        )

    return {
        "success": True,
        "message": "Trading signal message sent successfully",
        "direction": payload.direction,
        "symbol": payload.symbol,
        "result": result,
    }


@router.post("/test", dependencies=[Depends(require_access_password)])
async def send_test_message(services: AppServices = Depends(get_services)) -> Any:
    """Post a test message to the general and degen chats."""

    try:
        return await services.notifier.send_test_message()
    except WebhookDeliveryError as exc:
        logger.warning("Test message delivery failed: %s", exc)
        return JSONResponse(
            status_code=status.HTTP_502_BAD_GATEWAY,
            content={"success": False, "error": str(exc)},
        )


__all__ = ["router"]
