from .chat_webhook import ChatWebhookClient, WebhookDeliveryError
from .topstep import (
    BrokerAccount,
    BrokerAuthError,
    BrokerCallError,
    BrokerOrder,
    BrokerPosition,
    OrderResult,
    OrderSide,
    OrderType,
    TopstepClient,
)

__all__ = [
    "TopstepClient",
    "BrokerAccount",
    "BrokerOrder",
    "BrokerPosition",
    "OrderResult",
    "OrderSide",
    "OrderType",
    "BrokerAuthError",
    "BrokerCallError",
    "ChatWebhookClient",
    "WebhookDeliveryError",
]
