from .system_event import SystemEvent
from .trading import CurrentPosition, Signal, Trade

__all__ = [
    "CurrentPosition",
    "Signal",
    "SystemEvent",
    "Trade",
]
