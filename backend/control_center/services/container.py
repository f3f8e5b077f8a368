from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from control_center.clients.chat_webhook import ChatWebhookClient
from control_center.clients.topstep import TopstepClient
from control_center.core.config import Settings

from .notifications import NotificationDispatcher
from .session_cache import SessionTokenCache
from .signal_router import SignalRouter


@dataclass
class AppServices:
    """Long-lived service objects shared by every request."""

    settings: Settings
    broker: TopstepClient
    session_cache: SessionTokenCache
    notifier: NotificationDispatcher
    router: SignalRouter

    async def startup(self) -> None:
        if self.settings.session_sweep_enabled:
            self.session_cache.start()

    async def shutdown(self) -> None:
        await self.session_cache.stop()


def build_services(
    settings: Settings,
    *,
    broker: TopstepClient | None = None,
    chat_client: ChatWebhookClient | None = None,
) -> AppServices:
    broker = broker or TopstepClient(
        base_url=settings.broker_base_url,
        timeout_seconds=settings.broker_timeout_seconds,
    )
    session_cache = SessionTokenCache(
        broker,
        token_ttl=timedelta(hours=settings.session_ttl_hours),
        sweep_interval=timedelta(hours=settings.session_sweep_interval_hours),
    )
    notifier = NotificationDispatcher(settings, chat_client or ChatWebhookClient())
    router = SignalRouter(
        settings=settings,
        session_cache=session_cache,
        broker=broker,
        notifier=notifier,
    )
    return AppServices(
        settings=settings,
        broker=broker,
        session_cache=session_cache,
        notifier=notifier,
        router=router,
    )


__all__ = ["AppServices", "build_services"]
