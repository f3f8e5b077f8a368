from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict


class TradeRead(BaseModel):
    id: int
    direction: str
    comment: str
    symbol: str
    contract_id: str
    timeframe: str
    time_of_message: str
    text: str
    quantity: int
    signal_id: str
    price: Optional[float] = None
    status: str
    executed_at: datetime
    exit_price: Optional[float] = None
    pnl: Optional[float] = None
    pnl_dollars: Optional[float] = None
    closed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CurrentPositionRead(BaseModel):
    id: int
    symbol: str
    contract_id: str
    direction: str
    quantity: int
    entry_price: Optional[float] = None
    entry_time: datetime
    signal_id: str
    trade_id: int
    last_update: datetime

    model_config = ConfigDict(from_attributes=True)


class SignalRead(BaseModel):
    id: int
    signal_id: str
    direction: str
    comment: str
    symbol: str
    timeframe: str
    time_of_message: str
    price: Optional[float] = None
    text: str
    received_at: datetime
    status: str
    executed_accounts: List[int]
    failed_accounts: List[int]

    model_config = ConfigDict(from_attributes=True)


__all__ = ["TradeRead", "CurrentPositionRead", "SignalRead"]
