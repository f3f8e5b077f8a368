from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Request, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from control_center.db.session import get_db
from control_center.schemas.webhook import SignalPayload
from control_center.services.container import AppServices
from control_center.services.ledger import PositionLedger
from control_center.services.signal_router import SignalRoutingError
from control_center.services.system_events import record_system_event

from .deps import get_services

# ruff: noqa: B008  # FastAPI dependency injection pattern

logger = logging.getLogger(__name__)

router = APIRouter()


def _payload_error(exc: ValidationError) -> str:
    parts = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ())) or "body"
        parts.append(f"{loc}: {err.get('msg')}")
    return "Invalid signal payload: " + "; ".join(parts)


async def _read_payload(request: Request) -> SignalPayload:
    try:
        body = await request.json()
    except ValueError as exc:
        raise SignalRoutingError("Invalid signal payload: body is not valid JSON") from exc
    try:
        return SignalPayload.model_validate(body)
    except ValidationError as exc:
        raise SignalRoutingError(_payload_error(exc)) from exc


@router.post(
    "/signal",
    summary="Receive trading-signal webhook alerts",
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {
                "application/json": {
                    "schema": SignalPayload.model_json_schema(by_alias=True)
                }
            },
        }
    },
)
async def signal_webhook(
    request: Request,
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
) -> Any:
    """Route an alert to every configured account and record the outcome.

    The body is parsed here rather than by FastAPI so that malformed JSON,
    bad field types, unknown symbols and unknown ``direction``/``comment``
    combinations all answer 400 ``{success, error}`` before any broker call.
    Per-account failures do not change the status code; they are reported in
    ``results``.
    """

    correlation_id = getattr(request.state, "correlation_id", None)
    context: Dict[str, Any] = {"correlation_id": correlation_id}

    try:
        payload = await _read_payload(request)
        context.update(
            symbol=payload.symbol,
            direction=payload.direction,
            comment=payload.comment,
        )
        result: Dict[str, Any] = await services.router.process(payload, PositionLedger(db))
    except SignalRoutingError as exc:
        logger.warning("Rejected signal: %s", exc, extra={"extra": context})
        await asyncio.to_thread(
            record_system_event,
            db,
            level="WARNING",
            category="signal",
            message="Signal rejected",
            correlation_id=correlation_id,
            details={**context, "error": str(exc)},
        )
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": str(exc)},
        )
    except Exception as exc:
        logger.exception("Signal processing failed", extra={"extra": context})
        await asyncio.to_thread(db.rollback)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"success": False, "error": str(exc) or "Unknown error"},
        )

    failed = [r["accountId"] for r in result["results"] if not r["success"]]
    await asyncio.to_thread(
        record_system_event,
        db,
        level="WARNING" if failed else "INFO",
        category="signal",
        message="Signal processed",
        correlation_id=correlation_id,
        details={
            **context,
            "signal_id": result["signalId"],
            "action": result["action"],
            "trade": result.get("trade"),
            "failed_accounts": failed,
        },
    )
    return result


__all__ = ["router"]
