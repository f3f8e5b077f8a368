from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class SignalPayload(BaseModel):
    """Alert body sent by the charting tool.

    ``direction``/``comment`` are kept as free strings so that an unknown
    combination is reported by the router as a 400 rather than rejected as
    a schema error.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    text: str = ""
    direction: str = ""
    comment: str = ""
    timeframe: str = ""
    time_of_message: str = Field(default="", alias="time_Of_Message")
    symbol: str = ""
    price: Optional[float] = None

    @field_validator("direction", "comment", mode="before")
    @classmethod
    def _normalize_keyword(cls, v: Any) -> str:
        return str(v or "").strip().lower()

    @field_validator("symbol", "timeframe", "time_of_message", "text", mode="before")
    @classmethod
    def _coerce_text(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()

    @field_validator("price", mode="before")
    @classmethod
    def _blank_price_is_none(cls, v: Any) -> Any:
        # Alert templates render a missing {{close}} as an empty string.
        if isinstance(v, str) and not v.strip():
            return None
        return v


__all__ = ["SignalPayload"]
