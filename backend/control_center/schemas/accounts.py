from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class AccountRead(BaseModel):
    id: int
    name: str
    balance: float
    can_trade: bool
    is_visible: bool

    model_config = ConfigDict(from_attributes=True)


class BrokerPositionRead(BaseModel):
    id: int
    account_id: int
    contract_id: str
    creation_timestamp: str
    type: int
    size: int
    average_price: float

    model_config = ConfigDict(from_attributes=True)


class BrokerOrderRead(BaseModel):
    id: int
    account_id: int
    contract_id: str
    status: int
    type: int
    side: int
    size: int
    limit_price: Optional[float] = None
    stop_price: Optional[float] = None
    creation_timestamp: str = ""
    update_timestamp: str = ""

    model_config = ConfigDict(from_attributes=True)


class ContractRead(BaseModel):
    """A broker contract row; accepts the broker's camelCase keys."""

    id: str
    name: str = ""
    description: str = ""
    tick_size: Optional[float] = Field(default=None, alias="tickSize")
    tick_value: Optional[float] = Field(default=None, alias="tickValue")
    active_contract: bool = Field(default=False, alias="activeContract")

    model_config = ConfigDict(populate_by_name=True)


class ClosePositionRequest(BaseModel):
    contract_id: str = Field(..., min_length=1)


class ClosePositionResponse(BaseModel):
    success: bool
    account_id: int
    contract_id: str


__all__ = [
    "AccountRead",
    "BrokerPositionRead",
    "BrokerOrderRead",
    "ClosePositionRequest",
    "ClosePositionResponse",
    "ContractRead",
]
