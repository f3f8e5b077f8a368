from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Protocol

from control_center.core.time_utils import utc_now

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=24)
DEFAULT_SWEEP_INTERVAL = timedelta(hours=12)


class AuthApi(Protocol):
    """The two broker auth calls the cache depends on."""

    async def login_key(self, *, user_name: str, api_key: str) -> str: ...

    async def validate(self, *, token: str) -> None: ...


@dataclass
class SessionRecord:
    user_name: str
    api_key: str
    token: str | None = None
    token_expiry: datetime | None = None
    is_validating: bool = False

    def clear_token(self) -> None:
        self.token = None
        self.token_expiry = None


class SessionTokenCache:
    """Per-client cache of broker session tokens.

    Records are keyed by a client id that defaults to the username. A cached
    token is returned without any network call while unexpired; an expired
    token is first re-validated with the broker and only replaced by a fresh
    login when validation fails. A background sweep re-validates every cached
    token at half the token lifetime so that, under normal operation, logins
    are rare.

    Only one validation per client key may be in flight at a time; a second
    caller sees ``is_validating`` and gets ``False`` back instead of waiting.
    """

    def __init__(
        self,
        auth_api: AuthApi,
        *,
        token_ttl: timedelta = DEFAULT_TOKEN_TTL,
        sweep_interval: timedelta = DEFAULT_SWEEP_INTERVAL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._auth_api = auth_api
        self._token_ttl = token_ttl
        self._sweep_interval = sweep_interval
        self._clock = clock
        self._sessions: Dict[str, SessionRecord] = {}
        self._default_client_key: str | None = None
        self._sweep_task: asyncio.Task | None = None

    # ------------------------------------------------------------------
    # Background sweep

    def start(self) -> None:
        """Start the periodic validation sweep on the running event loop."""

        if self._sweep_task is not None and not self._sweep_task.done():
            return
        self._sweep_task = asyncio.create_task(
            self._sweep_loop(), name="session-token-sweep"
        )

    async def stop(self) -> None:
        task = self._sweep_task
        self._sweep_task = None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    @property
    def sweep_running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def _sweep_loop(self) -> None:
        interval = self._sweep_interval.total_seconds()
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Automatic validation sweep error")

    async def sweep(self) -> None:
        """Validate every cached token concurrently, extending the good ones."""

        keys = [
            key
            for key, record in self._sessions.items()
            if record.token and not record.is_validating
        ]
        if not keys:
            return
        await asyncio.gather(*(self._sweep_one(key) for key in keys))

    async def _sweep_one(self, client_key: str) -> None:
        try:
            ok = await self.validate(client_key)
        except Exception:
            logger.exception("Automatic validation error for %s", client_key)
            return
        if ok:
            record = self._sessions.get(client_key)
            if record is not None:
                record.token_expiry = self._clock() + self._token_ttl

    # ------------------------------------------------------------------
    # Token acquisition

    async def get_token(
        self, user_name: str, api_key: str, client_id: str | None = None
    ) -> str:
        """Return a usable bearer token for the given credentials."""

        client_key = (client_id if client_id is not None else user_name or "").strip()
        if not client_key:
            raise ValueError("client_id or user_name must be provided")

        self._default_client_key = client_key

        record = self._sessions.get(client_key)
        if record is None:
            record = SessionRecord(user_name=user_name, api_key=api_key)
            self._sessions[client_key] = record
        else:
            # Keep latest credentials in case they changed.
            record.user_name = user_name
            record.api_key = api_key

        if record.token and record.token_expiry:
            if self._clock() < record.token_expiry:
                return record.token

            logger.info("[%s] Token expired, attempting validation", client_key)
            if await self.validate(client_key):
                current = self._sessions.get(client_key)
                if current is not None and current.token:
                    current.token_expiry = self._clock() + self._token_ttl
                    logger.info("[%s] Validation successful, extending expiry", client_key)
                    return current.token

        return await self.authenticate(client_key, user_name, api_key)

    async def authenticate(self, client_key: str, user_name: str, api_key: str) -> str:
        """Log in with the broker and store the new token for ``client_key``."""

        logger.info("[%s] Authenticating with broker", client_key)
        try:
            token = await self._auth_api.login_key(user_name=user_name, api_key=api_key)
        except Exception:
            logger.exception("[%s] Authentication error", client_key)
            raise

        record = self._sessions.get(client_key)
        if record is None:
            record = SessionRecord(user_name=user_name, api_key=api_key)
            self._sessions[client_key] = record
        record.token = token
        record.token_expiry = self._clock() + self._token_ttl
        record.user_name = user_name
        record.api_key = api_key
        logger.info("[%s] Successfully authenticated", client_key)
        return token

    async def validate(self, client_id: str | None = None) -> bool:
        """Check the cached token with the broker; clear it if rejected."""

        client_key = self._resolve(client_id)
        if client_key is None:
            return False

        record = self._sessions.get(client_key)
        if record is None or not record.token or record.is_validating:
            return False

        record.is_validating = True
        try:
            await self._auth_api.validate(token=record.token)
            logger.info("[%s] Session token is still valid", client_key)
            return True
        except Exception as exc:
            logger.warning(
                "[%s] Session validation error: %s", client_key, exc
            )
            current = self._sessions.get(client_key)
            if current is not None:
                current.clear_token()
            return False
        finally:
            current = self._sessions.get(client_key)
            if current is not None:
                current.is_validating = False

    async def force_revalidate(self, client_id: str | None = None) -> bool:
        """Drop the cached token and log in again with stored credentials."""

        client_key = self._resolve(client_id)
        if client_key is None:
            raise ValueError("No client specified for revalidation")

        record = self._sessions.get(client_key)
        if record is None:
            raise LookupError("No credentials available for revalidation")

        logger.info("[%s] Force revalidating session", client_key)
        record.clear_token()
        try:
            await self.authenticate(client_key, record.user_name, record.api_key)
            return True
        except Exception:
            logger.warning("[%s] Revalidation failed", client_key)
            return False

    def clear(self, client_id: str | None = None) -> None:
        if client_id:
            self._sessions.pop(client_id, None)
            if self._default_client_key == client_id:
                self._default_client_key = None
        else:
            self._sessions.clear()
            self._default_client_key = None

    # ------------------------------------------------------------------
    # Read accessors

    def _resolve(self, client_id: str | None) -> str | None:
        return client_id if client_id is not None else self._default_client_key

    def _record(self, client_id: str | None) -> SessionRecord | None:
        client_key = self._resolve(client_id)
        if client_key is None:
            return None
        return self._sessions.get(client_key)

    def get_current_token(self, client_id: str | None = None) -> str | None:
        record = self._record(client_id)
        return record.token if record is not None else None

    def is_valid(self, client_id: str | None = None) -> bool:
        record = self._record(client_id)
        return bool(
            record is not None
            and record.token
            and record.token_expiry
            and self._clock() < record.token_expiry
        )

    def get_expiry(self, client_id: str | None = None) -> datetime | None:
        record = self._record(client_id)
        return record.token_expiry if record is not None else None

    def get_time_until_expiry(self, client_id: str | None = None) -> timedelta:
        expiry = self.get_expiry(client_id)
        if expiry is None:
            return timedelta(0)
        return max(timedelta(0), expiry - self._clock())

    def client_keys(self) -> list[str]:
        return sorted(self._sessions)

    def snapshot(self, client_id: str | None = None) -> dict[str, Any]:
        """Summarize one client's session without exposing the token."""

        client_key = self._resolve(client_id)
        record = self._record(client_id)
        return {
            "client_id": client_key,
            "known": record is not None,
            "has_token": bool(record is not None and record.token),
            "is_valid": self.is_valid(client_id),
            "is_validating": bool(record is not None and record.is_validating),
            "expires_at": self.get_expiry(client_id),
            "seconds_until_expiry": int(
                self.get_time_until_expiry(client_id).total_seconds()
            ),
        }


__all__ = [
    "AuthApi",
    "SessionRecord",
    "SessionTokenCache",
    "DEFAULT_TOKEN_TTL",
    "DEFAULT_SWEEP_INTERVAL",
]
