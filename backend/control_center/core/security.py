from __future__ import annotations

import secrets
from typing import Optional

from fastapi import Depends, Header, HTTPException, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from .config import Settings, get_settings

# ruff: noqa: B008  # FastAPI dependency injection pattern

security = HTTPBasic(auto_error=False)


def require_access_password(
    settings: Settings = Depends(get_settings),
    credentials: HTTPBasicCredentials | None = Depends(security),
    x_access_password: Optional[str] = Header(default=None),
) -> None:
    """Guard for dashboard APIs.

    Behaviour:
    - When ``MCC_ACCESS_PASSWORD`` is not configured the APIs stay open.
    - Otherwise the password must be supplied either in the
      ``X-Access-Password`` header or as the HTTP Basic password (any
      username is accepted).
    """

    expected = settings.access_password
    if not expected:
        return None

    supplied = x_access_password
    if supplied is None and credentials is not None:
        supplied = credentials.password

    if supplied is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access password is required.",
            headers={"WWW-Authenticate": 'Basic realm="Control Center"'},
        )

    if not secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid access password.",
            headers={"WWW-Authenticate": 'Basic realm="Control Center"'},
        )

    return None


__all__ = ["require_access_password"]
