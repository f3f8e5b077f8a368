from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, List, Optional

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.topstepx.com/api"


class BrokerAuthError(RuntimeError):
    """Raised when the broker rejects credentials or a login call fails."""


@dataclass(eq=False)
class BrokerCallError(RuntimeError):
    message: str
    status_code: int | None = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        if self.status_code is None:
            return self.message
        return f"HTTP {self.status_code}: {self.message}"


class OrderType(IntEnum):
    LIMIT = 1
    MARKET = 2
    STOP = 4
    TRAILING_STOP = 5
    JOIN_BID = 6
    JOIN_ASK = 7


class OrderSide(IntEnum):
    BID = 0  # buy
    ASK = 1  # sell


@dataclass
class BrokerAccount:
    id: int
    name: str
    balance: float
    can_trade: bool
    is_visible: bool

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "BrokerAccount":
        return cls(
            id=int(row.get("id") or 0),
            name=str(row.get("name") or ""),
            balance=float(row.get("balance") or 0.0),
            can_trade=bool(row.get("canTrade")),
            is_visible=bool(row.get("isVisible")),
        )


@dataclass
class BrokerPosition:
    id: int
    account_id: int
    contract_id: str
    creation_timestamp: str
    type: int
    size: int
    average_price: float

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "BrokerPosition":
        return cls(
            id=int(row.get("id") or 0),
            account_id=int(row.get("accountId") or 0),
            contract_id=str(row.get("contractId") or ""),
            creation_timestamp=str(row.get("creationTimestamp") or ""),
            type=int(row.get("type") or 0),
            size=int(row.get("size") or 0),
            average_price=float(row.get("averagePrice") or 0.0),
        )


@dataclass
class BrokerOrder:
    id: int
    account_id: int
    contract_id: str
    status: int
    type: int
    side: int
    size: int
    limit_price: float | None = None
    stop_price: float | None = None
    creation_timestamp: str = ""
    update_timestamp: str = ""

    @classmethod
    def from_api(cls, row: Dict[str, Any]) -> "BrokerOrder":
        return cls(
            id=int(row.get("id") or 0),
            account_id=int(row.get("accountId") or 0),
            contract_id=str(row.get("contractId") or ""),
            status=int(row.get("status") or 0),
            type=int(row.get("type") or 0),
            side=int(row.get("side") or 0),
            size=int(row.get("size") or 0),
            limit_price=row.get("limitPrice"),
            stop_price=row.get("stopPrice"),
            creation_timestamp=str(row.get("creationTimestamp") or ""),
            update_timestamp=str(row.get("updateTimestamp") or ""),
        )


@dataclass
class OrderResult:
    order_id: int
    raw: Dict[str, Any] = field(default_factory=dict)


class TopstepClient:
    """Async client for the ProjectX/TopstepX futures REST API.

    Every endpoint answers HTTP 200 with a ``success``/``errorCode`` envelope;
    a call only counts as successful when ``success`` is true and
    ``errorCode`` is zero. The client is stateless: callers pass the bearer
    token obtained from the session cache on every call.
    """

    def __init__(
        self,
        *,
        base_url: str = DEFAULT_BASE_URL,
        timeout_seconds: float = 30,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = float(timeout_seconds)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        # A fresh client per call keeps the instance usable across event loops.
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            transport=self._transport,
        )

    @staticmethod
    def _headers(token: str | None = None) -> dict[str, str]:
        h = {
            "accept": "text/plain",
            "Content-Type": "application/json",
        }
        if token:
            h["Authorization"] = f"Bearer {token}"
        return h

    @staticmethod
    def _safe_json(resp: httpx.Response) -> Optional[Any]:
        try:
            return resp.json()
        except ValueError:
            return None

    async def _post(
        self,
        path: str,
        *,
        token: str | None,
        json_body: Any | None,
        failure_message: str,
        error_cls: type[Exception] = BrokerCallError,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            async with self._client() as client:
                resp = await client.post(url, headers=self._headers(token), json=json_body)
        except httpx.HTTPError as exc:
            raise self._error(error_cls, f"{failure_message}: {exc}", None) from exc

        if resp.status_code < 200 or resp.status_code >= 300:
            raise self._error(
                error_cls,
                f"HTTP error! status: {resp.status_code}",
                resp.status_code,
            )

        data = self._safe_json(resp)
        if not isinstance(data, dict):
            raise self._error(
                error_cls,
                f"{failure_message}: invalid JSON response",
                resp.status_code,
            )

        if data.get("success") is not True or data.get("errorCode") != 0:
            raise self._error(
                error_cls,
                str(data.get("errorMessage") or failure_message),
                resp.status_code,
            )
        return data

    @staticmethod
    def _error(
        error_cls: type[Exception], message: str, status_code: int | None
    ) -> Exception:
        if error_cls is BrokerCallError:
            return BrokerCallError(message, status_code)
        return error_cls(message)

    async def login_key(self, *, user_name: str, api_key: str) -> str:
        """Exchange a username/API key pair for a session token."""

        data = await self._post(
            "/Auth/loginKey",
            token=None,
            json_body={"userName": user_name, "apiKey": api_key},
            failure_message="Authentication failed",
            error_cls=BrokerAuthError,
        )
        token = str(data.get("token") or "")
        if not token:
            raise BrokerAuthError("Authentication response did not include a token")
        return token

    async def validate(self, *, token: str) -> None:
        """Raise unless the broker still accepts ``token``."""

        await self._post(
            "/Auth/validate",
            token=token,
            json_body=None,
            failure_message="Session validation failed",
            error_cls=BrokerAuthError,
        )

    async def search_accounts(
        self, *, token: str, only_active_accounts: bool = True
    ) -> List[BrokerAccount]:
        data = await self._post(
            "/Account/search",
            token=token,
            json_body={"onlyActiveAccounts": only_active_accounts},
            failure_message="Account search failed",
        )
        rows = data.get("accounts") or []
        accounts = [BrokerAccount.from_api(r) for r in rows if isinstance(r, dict)]
        logger.info("Found %d accounts", len(accounts))
        return accounts

    async def get_account(self, *, token: str, account_id: int) -> BrokerAccount | None:
        """Return account details, or ``None`` when the broker answers 404."""

        url = f"{self.base_url}/Account/{int(account_id)}"
        try:
            async with self._client() as client:
                resp = await client.get(url, headers=self._headers(token))
        except httpx.HTTPError as exc:
            raise BrokerCallError(f"Failed to get account details: {exc}") from exc
        if resp.status_code == 404:
            return None
        if resp.status_code >= 300:
            raise BrokerCallError(
                f"HTTP error! status: {resp.status_code}", resp.status_code
            )
        data = self._safe_json(resp)
        if not isinstance(data, dict) or data.get("success") is not True or data.get(
            "errorCode"
        ) != 0:
            message = "Failed to get account details"
            if isinstance(data, dict) and data.get("errorMessage"):
                message = str(data["errorMessage"])
            raise BrokerCallError(message, resp.status_code)
        row = data.get("account")
        return BrokerAccount.from_api(row) if isinstance(row, dict) else None

    async def search_open_orders(self, *, token: str, account_id: int) -> List[BrokerOrder]:
        data = await self._post(
            "/Order/searchOpen",
            token=token,
            json_body={"accountId": int(account_id)},
            failure_message="Failed to search open orders",
        )
        rows = data.get("orders") or []
        return [BrokerOrder.from_api(r) for r in rows if isinstance(r, dict)]

    async def search_open_positions(
        self, *, token: str, account_id: int
    ) -> List[BrokerPosition]:
        data = await self._post(
            "/Position/searchOpen",
            token=token,
            json_body={"accountId": int(account_id)},
            failure_message="Failed to search open positions",
        )
        rows = data.get("positions") or []
        return [BrokerPosition.from_api(r) for r in rows if isinstance(r, dict)]

    async def close_position(self, *, token: str, account_id: int, contract_id: str) -> bool:
        logger.info(
            "Closing position for account %s, contract %s", account_id, contract_id
        )
        await self._post(
            "/Position/closeContract",
            token=token,
            json_body={"accountId": int(account_id), "contractId": contract_id},
            failure_message="Failed to close position",
        )
        return True

    async def place_order(
        self,
        *,
        token: str,
        account_id: int,
        contract_id: str,
        order_type: OrderType,
        side: OrderSide,
        size: int,
        limit_price: float | None = None,
        stop_price: float | None = None,
        custom_tag: str | None = None,
    ) -> OrderResult:
        payload: Dict[str, Any] = {
            "accountId": int(account_id),
            "contractId": contract_id,
            "type": int(order_type),
            "side": int(side),
            "size": int(size),
        }
        if limit_price is not None:
            payload["limitPrice"] = float(limit_price)
        if stop_price is not None:
            payload["stopPrice"] = float(stop_price)
        if custom_tag is not None:
            payload["customTag"] = custom_tag

        data = await self._post(
            "/Order/place",
            token=token,
            json_body=payload,
            failure_message="Order placement failed",
        )
        result = OrderResult(order_id=int(data.get("orderId") or 0), raw=data)
        logger.info(
            "Order placed",
            extra={
                "extra": {
                    "account_id": account_id,
                    "contract_id": contract_id,
                    "side": side.name,
                    "size": size,
                    "order_id": result.order_id,
                }
            },
        )
        return result

    async def open_long_position(
        self, *, token: str, account_id: int, contract_id: str, size: int = 1
    ) -> OrderResult:
        return await self.place_order(
            token=token,
            account_id=account_id,
            contract_id=contract_id,
            order_type=OrderType.MARKET,
            side=OrderSide.BID,
            size=size,
            custom_tag="Auto Long Position",
        )

    async def open_short_position(
        self, *, token: str, account_id: int, contract_id: str, size: int = 1
    ) -> OrderResult:
        return await self.place_order(
            token=token,
            account_id=account_id,
            contract_id=contract_id,
            order_type=OrderType.MARKET,
            side=OrderSide.ASK,
            size=size,
            custom_tag="Auto Short Position",
        )

    async def cancel_order(self, *, token: str, account_id: int, order_id: int) -> None:
        await self._post(
            "/Order/cancel",
            token=token,
            json_body={"accountId": int(account_id), "orderId": int(order_id)},
            failure_message="Failed to cancel order",
        )

    async def search_contracts(
        self, *, token: str, search_text: str, live: bool = False
    ) -> List[Dict[str, Any]]:
        data = await self._post(
            "/Contract/search",
            token=token,
            json_body={"searchText": search_text, "live": live},
            failure_message="Failed to fetch contracts",
        )
        rows = data.get("contracts") or []
        return [r for r in rows if isinstance(r, dict)]


__all__ = [
    "BrokerAccount",
    "BrokerAuthError",
    "BrokerCallError",
    "BrokerOrder",
    "BrokerPosition",
    "OrderResult",
    "OrderSide",
    "OrderType",
    "TopstepClient",
]
