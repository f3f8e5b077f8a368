from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from control_center.clients.chat_webhook import ChatWebhookClient, WebhookDeliveryError
from control_center.core.config import Settings
from control_center.core.time_utils import format_signal_time
from control_center.schemas.webhook import SignalPayload

logger = logging.getLogger(__name__)

_HEADERS: dict[str, tuple[str, str, str]] = {
    # comment -> (header, action label, direction label)
    "go_long": ("🟢 BUY SIGNAL - GO LONG 🟢", "GO LONG", "BUY"),
    "go_short": ("🔴 SELL SIGNAL - GO SHORT 🔴", "GO SHORT", "SELL"),
    "exit_long": ("❌ EXIT SIGNAL - CLOSE LONG 🔴", "EXIT LONG", "SELL"),
    "exit_short": ("❌ EXIT SIGNAL - CLOSE SHORT 🟢", "EXIT SHORT", "BUY"),
}


def _price_label(price: Optional[float]) -> str:
    return str(price) if price else "Market"


def format_signal_message(signal: SignalPayload) -> str:
    """Human-readable chat message for an inbound signal."""

    when = format_signal_time(signal.time_of_message)
    known = _HEADERS.get(signal.comment)
    if known is None:
        lines = [
            "📊 TRADING SIGNAL 📊",
            "",
            f"Symbol: {signal.symbol}",
            f"Timeframe: {signal.timeframe}",
            f"Comment: {signal.comment}",
            f"Direction: {(signal.direction or 'UNKNOWN').upper()}",
        ]
    else:
        header, action, direction = known
        lines = [
            header,
            "",
            f"Symbol: {signal.symbol}",
            f"Timeframe: {signal.timeframe}",
            f"Action: {action}",
            f"Direction: {direction}",
        ]
    lines.extend([f"Time: {when}", f"Price: {_price_label(signal.price)}", "", signal.text])
    return "\n".join(lines)


def format_exit_message(
    signal: SignalPayload,
    *,
    pnl: float,
    pnl_dollars: Optional[float] = None,
    entry_price: Optional[float] = None,
) -> str:
    """Exit message with the point P&L of the closed tracked position."""

    base = format_signal_message(signal)
    sign = "+" if pnl >= 0 else ""
    extra = [f"Entry: {_price_label(entry_price)}", f"P&L: {sign}{pnl:.2f} points"]
    if pnl_dollars is not None:
        dollar_sign = "+" if pnl_dollars >= 0 else "-"
        extra.append(f"P&L ($): {dollar_sign}${abs(pnl_dollars):,.2f}")
    return base + "\n\n" + "\n".join(extra)


class NotificationDispatcher:
    """Formats trading notifications and delivers them to chat webhooks.

    Entry/exit announcements are best-effort: delivery failures are logged
    and reported as ``False`` so that signal processing never fails because
    a chat was unreachable. The relay and test helpers propagate errors to
    their HTTP endpoints instead.
    """

    def __init__(self, settings: Settings, client: ChatWebhookClient) -> None:
        self._settings = settings
        self._client = client

    @property
    def enabled(self) -> bool:
        return bool(self._settings.notifications_enabled)

    async def _send_best_effort(self, url: Optional[str], content: str, kind: str) -> bool:
        if not self.enabled:
            return False
        if not url:
            logger.info("Skipping %s notification: chat URL not configured", kind)
            return False
        try:
            await self._client.send(url, {"content": content})
        except WebhookDeliveryError as exc:
            logger.warning(
                "Failed to deliver %s notification",
                kind,
                extra={"extra": {"status_code": exc.status_code, "error": str(exc)}},
            )
            return False
        except Exception:
            logger.exception("Unexpected error delivering %s notification", kind)
            return False
        return True

    async def notify_entry(self, signal: SignalPayload) -> bool:
        return await self._send_best_effort(
            self._settings.premium_chat_url,
            format_signal_message(signal),
            "entry",
        )

    async def notify_exit(
        self,
        signal: SignalPayload,
        *,
        pnl: float,
        pnl_dollars: Optional[float] = None,
        entry_price: Optional[float] = None,
    ) -> bool:
        content = format_exit_message(
            signal, pnl=pnl, pnl_dollars=pnl_dollars, entry_price=entry_price
        )
        return await self._send_best_effort(
            self._settings.premium_chat_url, content, "exit"
        )

    async def relay_signal_message(self, signal: SignalPayload) -> Dict[str, str]:
        """Format a signal and post it to the premium chat, raising on failure."""

        url = self._settings.premium_chat_url
        if not url:
            raise WebhookDeliveryError(None, "Premium chat URL is not configured")
        return await self._client.send(url, {"content": format_signal_message(signal)})

    async def send_test_message(self) -> Dict[str, Any]:
        """Post a test message to both the general and degen chats."""

        urls = [self._settings.general_chat_url, self._settings.degen_chat_url]
        if not all(urls):
            raise WebhookDeliveryError(None, "General and degen chat URLs must be configured")
        payload = {
            "content": (
                "Hey chat, testing sending batch messages to both chats. You should "
                "see this in the general chat and the degen chat - server"
            )
        }
        general, degen = await self._client.send_batch(urls, payload)  # type: ignore[arg-type]
        return {
            "status": "ok",
            "message": "All messages sent successfully",
            "general_chat": general,
            "degen_chat": degen,
        }


__all__ = [
    "NotificationDispatcher",
    "format_exit_message",
    "format_signal_message",
]
