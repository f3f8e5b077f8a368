from .webhook import SignalPayload

__all__ = ["SignalPayload"]
