from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    return datetime.now(UTC)


def epoch_millis(dt: datetime | None = None) -> int:
    """Milliseconds since the Unix epoch for ``dt`` (defaults to now)."""

    value = dt if dt is not None else utc_now()
    return int(value.timestamp() * 1000)


def format_signal_time(raw: str | None) -> str:
    """Render an alert timestamp as ``MM/DD/YYYY, hh:mm:ss AM``.

    Alerting tools send ISO-8601 strings; anything that does not parse is
    returned unchanged so the message still carries the original value.
    """

    if not raw:
        return ""
    text = raw.strip()
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return raw
    return parsed.strftime("%m/%d/%Y, %I:%M:%S %p")


__all__ = ["utc_now", "epoch_millis", "format_signal_time"]
