from __future__ import annotations

import asyncio
import json
from typing import Any, Dict, List

import httpx
import pytest

from control_center.clients.topstep import (
    BrokerAuthError,
    BrokerCallError,
    OrderSide,
    OrderType,
    TopstepClient,
)


def _client(handler) -> TopstepClient:  # noqa: ANN001
    return TopstepClient(
        base_url="https://broker.test/api/",
        transport=httpx.MockTransport(handler),
    )


def _ok(**body: Any) -> Dict[str, Any]:
    return {"success": True, "errorCode": 0, "errorMessage": None, **body}


def test_login_key_returns_token_and_sends_credentials() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok(token="abc123"))

    token = asyncio.run(_client(handler).login_key(user_name="trader", api_key="k"))

    assert token == "abc123"
    assert str(seen[0].url) == "https://broker.test/api/Auth/loginKey"
    assert json.loads(seen[0].content) == {"userName": "trader", "apiKey": "k"}
    assert "Authorization" not in seen[0].headers


def test_login_key_rejected_by_error_code_raises_auth_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={"success": False, "errorCode": 3, "errorMessage": "Invalid API key"},
        )

    with pytest.raises(BrokerAuthError, match="Invalid API key"):
        asyncio.run(_client(handler).login_key(user_name="trader", api_key="bad"))


def test_login_key_without_token_raises_auth_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_ok(token=""))

    with pytest.raises(BrokerAuthError):
        asyncio.run(_client(handler).login_key(user_name="trader", api_key="k"))


def test_success_flag_alone_is_not_enough() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": True, "errorCode": 2})

    with pytest.raises(BrokerCallError):
        asyncio.run(
            _client(handler).close_position(token="t", account_id=1, contract_id="C")
        )


def test_non_2xx_status_raises_with_status_code() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(BrokerCallError) as exc:
        asyncio.run(_client(handler).search_accounts(token="t"))

    assert exc.value.status_code == 503


def test_validate_sends_bearer_token() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok())

    asyncio.run(_client(handler).validate(token="tok"))

    assert seen[0].url.path == "/api/Auth/validate"
    assert seen[0].headers["Authorization"] == "Bearer tok"


def test_open_long_places_market_buy_with_size() -> None:
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=_ok(orderId=9056))

    result = asyncio.run(
        _client(handler).open_long_position(
            token="t", account_id=7, contract_id="CON.F.US.ENQ.U25", size=3
        )
    )

    assert result.order_id == 9056
    assert seen[0] == {
        "accountId": 7,
        "contractId": "CON.F.US.ENQ.U25",
        "type": int(OrderType.MARKET),
        "side": int(OrderSide.BID),
        "size": 3,
        "customTag": "Auto Long Position",
    }


def test_open_short_places_market_sell() -> None:
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json=_ok(orderId=1))

    asyncio.run(
        _client(handler).open_short_position(token="t", account_id=7, contract_id="C")
    )

    assert seen[0]["type"] == 2
    assert seen[0]["side"] == 1
    assert seen[0]["size"] == 1


def test_close_position_posts_account_and_contract() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok())

    closed = asyncio.run(
        _client(handler).close_position(token="t", account_id=5, contract_id="CON.X")
    )

    assert closed is True
    assert seen[0].url.path == "/api/Position/closeContract"
    assert json.loads(seen[0].content) == {"accountId": 5, "contractId": "CON.X"}


def test_search_endpoints_map_rows() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/Account/search"):
            return httpx.Response(
                200,
                json=_ok(
                    accounts=[
                        {"id": 11, "name": "Combine", "balance": 50000, "canTrade": True, "isVisible": True}
                    ]
                ),
            )
        if request.url.path.endswith("/Position/searchOpen"):
            return httpx.Response(
                200,
                json=_ok(
                    positions=[
                        {
                            "id": 1,
                            "accountId": 11,
                            "contractId": "CON.F.US.EP.U25",
                            "creationTimestamp": "2025-07-01T12:00:00Z",
                            "type": 1,
                            "size": 2,
                            "averagePrice": 6200.25,
                        }
                    ]
                ),
            )
        return httpx.Response(
            200,
            json=_ok(
                orders=[
                    {"id": 3, "accountId": 11, "contractId": "C", "status": 1, "type": 1, "side": 0, "size": 1, "limitPrice": 10.5}
                ]
            ),
        )

    client = _client(handler)
    accounts = asyncio.run(client.search_accounts(token="t"))
    positions = asyncio.run(client.search_open_positions(token="t", account_id=11))
    orders = asyncio.run(client.search_open_orders(token="t", account_id=11))

    assert accounts[0].id == 11 and accounts[0].can_trade is True
    assert positions[0].size == 2 and positions[0].average_price == 6200.25
    assert orders[0].limit_price == 10.5 and orders[0].stop_price is None


def test_get_account_returns_none_on_404() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404)

    assert asyncio.run(_client(handler).get_account(token="t", account_id=1)) is None


def test_transport_failure_is_wrapped() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(BrokerCallError):
        asyncio.run(_client(handler).cancel_order(token="t", account_id=1, order_id=2))


def test_search_contracts_returns_rows() -> None:
    seen: List[Dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(
            200,
            json=_ok(
                contracts=[
                    {"id": "CON.F.US.MGC.Q25", "name": "MGCQ5", "tickSize": 0.1, "tickValue": 1.0, "activeContract": True},
                    "garbage",
                ]
            ),
        )

    rows = asyncio.run(_client(handler).search_contracts(token="t", search_text="MGC"))

    assert seen[0] == {"searchText": "MGC", "live": False}
    assert [r["id"] for r in rows] == ["CON.F.US.MGC.Q25"]


def test_cancel_order_posts_account_and_order() -> None:
    seen: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_ok())

    asyncio.run(_client(handler).cancel_order(token="t", account_id=7, order_id=42))

    assert seen[0].url.path == "/api/Order/cancel"
    assert json.loads(seen[0].content) == {"accountId": 7, "orderId": 42}


def test_get_account_maps_row() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "GET"
        assert request.url.path == "/api/Account/11"
        return httpx.Response(
            200,
            json=_ok(account={"id": 11, "name": "Combine", "balance": 1.5, "canTrade": False, "isVisible": True}),
        )

    account = asyncio.run(_client(handler).get_account(token="t", account_id=11))

    assert account is not None
    assert account.name == "Combine"
    assert account.can_trade is False
