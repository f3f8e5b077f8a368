from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from control_center.models import CurrentPosition, Signal, Trade
from control_center.schemas.ledger import CurrentPositionRead, SignalRead, TradeRead
from control_center.services.ledger import PositionLedger

from .deps import get_ledger

# ruff: noqa: B008  # FastAPI dependency injection pattern

router = APIRouter()


@router.get("/trades", response_model=List[TradeRead])
def list_trades(
    symbol: Optional[str] = Query(None),
    status_filter: Optional[str] = Query(None, alias="status"),
    limit: int = Query(100, ge=1, le=1000),
    ledger: PositionLedger = Depends(get_ledger),
) -> List[Trade]:
    """Trades, most recent first."""

    return ledger.list_trades(symbol=symbol, status=status_filter, limit=limit)


@router.get("/trades/{trade_id}", response_model=TradeRead)
def get_trade(trade_id: int, ledger: PositionLedger = Depends(get_ledger)) -> Trade:
    trade = ledger.get_trade(trade_id)
    if trade is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trade not found")
    return trade


@router.get("/positions", response_model=List[CurrentPositionRead])
def list_positions(
    symbol: Optional[str] = Query(None),
    ledger: PositionLedger = Depends(get_ledger),
) -> List[CurrentPosition]:
    """Tracked positions (at most one per symbol)."""

    if symbol is not None:
        return ledger.get_current_positions(symbol)
    return ledger.list_current_positions()


@router.get("/signals", response_model=List[SignalRead])
def list_signals(
    symbol: Optional[str] = Query(None),
    limit: int = Query(100, ge=1, le=1000),
    ledger: PositionLedger = Depends(get_ledger),
) -> List[Signal]:
    return ledger.list_signals(symbol=symbol, limit=limit)


@router.get("/signals/{signal_id}", response_model=SignalRead)
def get_signal(signal_id: str, ledger: PositionLedger = Depends(get_ledger)) -> Signal:
    signal = ledger.get_signal(signal_id)
    if signal is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Signal not found")
    return signal


__all__ = ["router"]
