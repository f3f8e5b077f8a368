from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SessionStatusRead(BaseModel):
    client_id: Optional[str] = None
    known: bool
    has_token: bool
    is_valid: bool
    is_validating: bool
    expires_at: Optional[datetime] = None
    seconds_until_expiry: int = 0


class SessionActionResponse(BaseModel):
    client_id: str
    ok: bool
    status: SessionStatusRead


__all__ = ["SessionStatusRead", "SessionActionResponse"]
