from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from control_center.clients.topstep import BrokerAuthError
from control_center.services.session_cache import SessionTokenCache


class FakeAuthApi:
    def __init__(self, *, tokens: list[str] | None = None, validate_ok: bool = True) -> None:
        self.tokens = list(tokens or ["tok-1", "tok-2", "tok-3"])
        self.validate_ok = validate_ok
        self.login_calls: list[tuple[str, str]] = []
        self.validate_calls: list[str] = []
        self.login_error: Exception | None = None

    async def login_key(self, *, user_name: str, api_key: str) -> str:
        self.login_calls.append((user_name, api_key))
        if self.login_error is not None:
            raise self.login_error
        return self.tokens.pop(0)

    async def validate(self, *, token: str) -> None:
        self.validate_calls.append(token)
        if not self.validate_ok:
            raise BrokerAuthError("Session validation failed")


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2025, 7, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


def _cache(api: FakeAuthApi, clock: Clock) -> SessionTokenCache:
    return SessionTokenCache(api, clock=clock)


def test_first_request_authenticates_and_sets_24h_expiry() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)

    token = asyncio.run(cache.get_token("trader", "key"))

    assert token == "tok-1"
    assert api.login_calls == [("trader", "key")]
    assert cache.get_expiry("trader") == clock.now + timedelta(hours=24)
    assert cache.is_valid("trader")


def test_cached_unexpired_token_makes_no_network_call() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))
    api.login_calls.clear()

    clock.advance(hours=23)
    token = asyncio.run(cache.get_token("trader", "key"))

    assert token == "tok-1"
    assert api.login_calls == []
    assert api.validate_calls == []


def test_expired_token_is_revalidated_and_extended_without_login() -> None:
    api, clock = FakeAuthApi(validate_ok=True), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))

    clock.advance(hours=25)
    token = asyncio.run(cache.get_token("trader", "key"))

    assert token == "tok-1"
    assert api.validate_calls == ["tok-1"]
    assert len(api.login_calls) == 1
    assert cache.get_expiry("trader") == clock.now + timedelta(hours=24)


def test_expired_token_with_failed_validation_logs_in_once() -> None:
    api, clock = FakeAuthApi(validate_ok=False), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))
    api.login_calls.clear()

    clock.advance(hours=25)
    token = asyncio.run(cache.get_token("trader", "key"))

    assert token == "tok-2"
    assert api.login_calls == [("trader", "key")]


def test_empty_client_key_is_rejected() -> None:
    cache = _cache(FakeAuthApi(), Clock())
    with pytest.raises(ValueError):
        asyncio.run(cache.get_token("   ", "key"))


def test_explicit_client_id_keeps_sessions_separate() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)

    first = asyncio.run(cache.get_token("trader", "key", client_id="acct-a"))
    second = asyncio.run(cache.get_token("trader", "key", client_id="acct-b"))

    assert first == "tok-1"
    assert second == "tok-2"
    assert cache.client_keys() == ["acct-a", "acct-b"]


def test_login_failure_propagates_and_caches_nothing() -> None:
    api, clock = FakeAuthApi(), Clock()
    api.login_error = BrokerAuthError("Invalid API key")
    cache = _cache(api, clock)

    with pytest.raises(BrokerAuthError, match="Invalid API key"):
        asyncio.run(cache.get_token("trader", "bad"))

    assert cache.get_current_token("trader") is None
    assert not cache.is_valid("trader")


def test_validate_failure_clears_token() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))

    api.validate_ok = False
    ok = asyncio.run(cache.validate("trader"))

    assert ok is False
    assert cache.get_current_token("trader") is None
    assert cache.get_expiry("trader") is None


def test_validate_without_token_is_a_noop() -> None:
    api = FakeAuthApi()
    cache = _cache(api, Clock())

    assert asyncio.run(cache.validate("nobody")) is False
    assert asyncio.run(cache.validate()) is False
    assert api.validate_calls == []


def test_only_one_validation_in_flight_per_client() -> None:
    release = asyncio.Event()

    class SlowAuthApi(FakeAuthApi):
        async def validate(self, *, token: str) -> None:
            self.validate_calls.append(token)
            await release.wait()

    api = SlowAuthApi()
    cache = _cache(api, Clock())

    async def _run() -> tuple[bool, bool]:
        await cache.get_token("trader", "key")
        first = asyncio.create_task(cache.validate("trader"))
        await asyncio.sleep(0)
        second = await cache.validate("trader")
        release.set()
        return await first, second

    first, second = asyncio.run(_run())

    assert first is True
    assert second is False
    assert api.validate_calls == ["tok-1"]


def test_force_revalidate_replaces_token() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))

    ok = asyncio.run(cache.force_revalidate("trader"))

    assert ok is True
    assert cache.get_current_token("trader") == "tok-2"


def test_force_revalidate_swallows_login_failure() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))
    api.login_error = BrokerAuthError("locked out")

    ok = asyncio.run(cache.force_revalidate("trader"))

    assert ok is False
    assert cache.get_current_token("trader") is None


def test_clear_single_and_all_sessions() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("a", "key"))
    asyncio.run(cache.get_token("b", "key"))

    cache.clear("a")
    assert cache.client_keys() == ["b"]
    assert cache.get_current_token("a") is None

    cache.clear()
    assert cache.client_keys() == []
    assert cache.get_time_until_expiry("b") == timedelta(0)


def test_read_accessors_use_last_client_by_default() -> None:
    api, clock = FakeAuthApi(), Clock()
    cache = _cache(api, clock)
    asyncio.run(cache.get_token("trader", "key"))

    clock.advance(hours=1)

    assert cache.get_current_token() == "tok-1"
    assert cache.is_valid()
    assert cache.get_time_until_expiry() == timedelta(hours=23)


def test_sweep_extends_expiry_for_valid_tokens_and_drops_rejected_ones() -> None:
    clock = Clock()
    good = FakeAuthApi(tokens=["good-token"])
    cache = _cache(good, clock)
    asyncio.run(cache.get_token("good", "key"))

    clock.advance(hours=12)
    asyncio.run(cache.sweep())
    assert cache.get_expiry("good") == clock.now + timedelta(hours=24)

    good.validate_ok = False
    asyncio.run(cache.sweep())
    assert cache.get_current_token("good") is None


def test_start_and_stop_manage_the_sweep_task() -> None:
    cache = SessionTokenCache(FakeAuthApi(), sweep_interval=timedelta(hours=12))

    async def _run() -> tuple[bool, bool]:
        cache.start()
        running = cache.sweep_running
        await cache.stop()
        return running, cache.sweep_running

    running, after = asyncio.run(_run())
    assert running is True
    assert after is False
