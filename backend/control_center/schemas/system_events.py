from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class SystemEventRead(BaseModel):
    id: int
    level: str
    category: str
    message: str
    details: Optional[str]
    correlation_id: Optional[str]
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


__all__ = ["SystemEventRead"]
