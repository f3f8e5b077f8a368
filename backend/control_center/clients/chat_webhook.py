from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List

import httpx

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class WebhookDeliveryError(RuntimeError):
    status_code: int | None
    message: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.status_code is None:
            return self.message
        return f"Webhook error: {self.status_code}"


class ChatWebhookClient:
    """Posts ``{"content": ...}`` messages to chat webhook URLs."""

    def __init__(
        self,
        *,
        timeout_seconds: float = 15,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = float(timeout_seconds)
        self._transport = transport

    async def send(self, url: str, payload: Dict[str, Any]) -> Dict[str, str]:
        if not url:
            raise WebhookDeliveryError(None, "Chat webhook URL is not configured")
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout_seconds, transport=self._transport
            ) as client:
                resp = await client.post(url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            # InvalidURL is not an HTTPError; a malformed configured URL lands here.
            raise WebhookDeliveryError(None, f"Webhook request failed: {exc}") from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            raise WebhookDeliveryError(resp.status_code, resp.text[:300])
        return {"status": "ok", "message": "Message sent successfully"}

    async def send_batch(
        self, urls: Iterable[str], payload: Dict[str, Any]
    ) -> List[Dict[str, str]]:
        """Send the same payload to every URL concurrently.

        Raises the first delivery error if any target fails; partial
        success is not reported separately.
        """

        targets = list(urls)
        results = await asyncio.gather(
            *(self.send(url, payload) for url in targets),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, BaseException):
                raise result
        return list(results)  # type: ignore[arg-type]


__all__ = ["ChatWebhookClient", "WebhookDeliveryError"]
