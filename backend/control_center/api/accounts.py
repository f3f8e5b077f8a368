from __future__ import annotations

import asyncio
import logging
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.orm import Session

from control_center.clients.topstep import BrokerAuthError, BrokerCallError
from control_center.core.logging import log_with_correlation
from control_center.db.session import get_db
from control_center.schemas.accounts import (
    AccountRead,
    BrokerOrderRead,
    BrokerPositionRead,
    ClosePositionRequest,
    ClosePositionResponse,
    ContractRead,
)
from control_center.services.container import AppServices
from control_center.services.system_events import record_system_event

from .deps import get_services

# ruff: noqa: B008  # FastAPI dependency injection pattern

logger = logging.getLogger(__name__)

router = APIRouter()


async def _dashboard_token(services: AppServices) -> str:
    creds = services.settings.dashboard_credentials()
    if creds is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No broker credentials configured for the dashboard.",
        )
    user_name, api_key = creds
    try:
        return await services.session_cache.get_token(user_name, api_key)
    except BrokerAuthError as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Broker authentication failed: {exc}",
        ) from exc


def _broker_failure(exc: BrokerCallError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc))


@router.get("/", response_model=List[AccountRead])
async def list_accounts(
    only_active: bool = Query(True),
    services: AppServices = Depends(get_services),
) -> List[AccountRead]:
    """Accounts visible to the dashboard credentials."""

    token = await _dashboard_token(services)
    try:
        accounts = await services.broker.search_accounts(
            token=token, only_active_accounts=only_active
        )
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc
    return [AccountRead.model_validate(a) for a in accounts]


@router.get("/contracts", response_model=List[ContractRead])
async def search_contracts(
    search: str = Query(..., min_length=1),
    live: bool = Query(False),
    services: AppServices = Depends(get_services),
) -> List[ContractRead]:
    """Broker contracts matching ``search`` (used to fill the symbol table)."""

    token = await _dashboard_token(services)
    try:
        rows = await services.broker.search_contracts(
            token=token, search_text=search, live=live
        )
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc
    return [ContractRead.model_validate(r) for r in rows]


@router.get("/{account_id}", response_model=AccountRead)
async def get_account(
    account_id: int,
    services: AppServices = Depends(get_services),
) -> AccountRead:
    token = await _dashboard_token(services)
    try:
        account = await services.broker.get_account(token=token, account_id=account_id)
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc
    if account is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return AccountRead.model_validate(account)


@router.get("/{account_id}/positions", response_model=List[BrokerPositionRead])
async def list_account_positions(
    account_id: int,
    services: AppServices = Depends(get_services),
) -> List[BrokerPositionRead]:
    token = await _dashboard_token(services)
    try:
        positions = await services.broker.search_open_positions(
            token=token, account_id=account_id
        )
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc
    return [BrokerPositionRead.model_validate(p) for p in positions]


@router.get("/{account_id}/orders", response_model=List[BrokerOrderRead])
async def list_account_orders(
    account_id: int,
    services: AppServices = Depends(get_services),
) -> List[BrokerOrderRead]:
    token = await _dashboard_token(services)
    try:
        orders = await services.broker.search_open_orders(token=token, account_id=account_id)
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc
    return [BrokerOrderRead.model_validate(o) for o in orders]


@router.delete(
    "/{account_id}/orders/{order_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def cancel_account_order(
    account_id: int,
    order_id: int,
    request: Request,
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
) -> None:
    """Cancel one working order on one account."""

    token = await _dashboard_token(services)
    try:
        await services.broker.cancel_order(
            token=token, account_id=account_id, order_id=order_id
        )
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc

    log_with_correlation(
        logger,
        request,
        logging.INFO,
        "Manual order cancel",
        account_id=account_id,
        order_id=order_id,
    )
    await asyncio.to_thread(
        record_system_event,
        db,
        level="INFO",
        category="order",
        message="Order cancelled from dashboard",
        correlation_id=getattr(request.state, "correlation_id", None),
        details={"account_id": account_id, "order_id": order_id},
    )


@router.post("/{account_id}/positions/close", response_model=ClosePositionResponse)
async def close_account_position(
    account_id: int,
    payload: ClosePositionRequest,
    request: Request,
    db: Session = Depends(get_db),
    services: AppServices = Depends(get_services),
) -> ClosePositionResponse:
    """Manually flatten one contract on one account.

    This only touches the broker; the ledger's tracked position is left for
    the next exit signal.
    """

    token = await _dashboard_token(services)
    try:
        await services.broker.close_position(
            token=token, account_id=account_id, contract_id=payload.contract_id
        )
    except BrokerCallError as exc:
        raise _broker_failure(exc) from exc

    log_with_correlation(
        logger,
        request,
        logging.INFO,
        "Manual position close",
        account_id=account_id,
        contract_id=payload.contract_id,
    )
    await asyncio.to_thread(
        record_system_event,
        db,
        level="INFO",
        category="position",
        message="Position closed from dashboard",
        correlation_id=getattr(request.state, "correlation_id", None),
        details={"account_id": account_id, "contract_id": payload.contract_id},
    )
    return ClosePositionResponse(
        success=True, account_id=account_id, contract_id=payload.contract_id
    )


__all__ = ["router"]
