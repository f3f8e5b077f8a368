from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from control_center.clients.topstep import TopstepClient
from control_center.core.config import Settings, TradingAccountConfig
from control_center.core.time_utils import epoch_millis
from control_center.schemas.webhook import SignalPayload
from control_center.services.ledger import PositionLedger, SignalFields, TradeFields
from control_center.services.notifications import NotificationDispatcher
from control_center.services.session_cache import SessionTokenCache

logger = logging.getLogger(__name__)


class SignalRoutingError(ValueError):
    """Signal input that cannot be routed; reported to the caller as a 400."""


class UnknownSymbolError(SignalRoutingError):
    pass


class UnknownActionError(SignalRoutingError):
    pass


class MissingCredentialsError(RuntimeError):
    pass


class SignalAction(str, Enum):
    OPEN_LONG = "open_long"
    OPEN_SHORT = "open_short"
    CLOSE_LONG = "close_long"
    CLOSE_SHORT = "close_short"

    @property
    def is_entry(self) -> bool:
        return self in (SignalAction.OPEN_LONG, SignalAction.OPEN_SHORT)

    @property
    def position_direction(self) -> str:
        if self in (SignalAction.OPEN_LONG, SignalAction.CLOSE_LONG):
            return "long"
        return "short"


_ACTIONS: dict[tuple[str, str], SignalAction] = {
    ("buy", "go_long"): SignalAction.OPEN_LONG,
    ("sell", "go_short"): SignalAction.OPEN_SHORT,
    ("sell", "exit_long"): SignalAction.CLOSE_LONG,
    ("buy", "exit_short"): SignalAction.CLOSE_SHORT,
}


def action_key(direction: str, comment: str) -> str:
    return f"{(direction or '').strip().lower()}_{(comment or '').strip().lower()}"


def resolve_action(direction: str, comment: str) -> SignalAction:
    """Map a ``(direction, comment)`` pair onto one of the four actions."""

    key = ((direction or "").strip().lower(), (comment or "").strip().lower())
    action = _ACTIONS.get(key)
    if action is None:
        raise UnknownActionError(f"Unknown action: {action_key(direction, comment)}")
    return action


def make_signal_id(symbol: str, direction: str, comment: str, received_ms: int) -> str:
    return f"{symbol}_{direction}_{comment}_{received_ms}"


def compute_pnl(direction: str, entry_price: Optional[float], exit_price: Optional[float]) -> float:
    """Point P&L of a tracked position; missing prices count as zero."""

    entry = float(entry_price or 0.0)
    exit_ = float(exit_price or 0.0)
    if direction == "long":
        return exit_ - entry
    return entry - exit_


@dataclass(frozen=True)
class SignalPlan:
    action: SignalAction
    symbol: str
    contract_id: str
    quantity: int
    signal_id: str


class SignalRouter:
    """Turns one inbound signal into broker orders, ledger writes and chat messages.

    Orders fan out to every configured account concurrently. A failure on
    one account (missing credentials, login rejected, order rejected) is
    recorded in the results and never stops the other accounts. Ledger
    writes happen once, after every account has settled, and are serialized
    per symbol so two signals for the same symbol cannot interleave their
    read-then-write of the tracked position. Ledger calls are blocking
    SQLAlchemy work and run in a worker thread, one at a time per signal.
    """

    def __init__(
        self,
        *,
        settings: Settings,
        session_cache: SessionTokenCache,
        broker: TopstepClient,
        notifier: NotificationDispatcher,
    ) -> None:
        self._settings = settings
        self._sessions = session_cache
        self._broker = broker
        self._notifier = notifier
        self._symbol_locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, symbol: str) -> asyncio.Lock:
        lock = self._symbol_locks.get(symbol)
        if lock is None:
            lock = asyncio.Lock()
            self._symbol_locks[symbol] = lock
        return lock

    def plan(self, signal: SignalPayload, *, received_ms: int | None = None) -> SignalPlan:
        """Validate a signal and resolve its contract, size and action."""

        received = received_ms if received_ms is not None else epoch_millis()
        signal_id = make_signal_id(signal.symbol, signal.direction, signal.comment, received)

        contract_id = self._settings.symbol_contracts.get(signal.symbol)
        if not contract_id:
            raise UnknownSymbolError(f"Unknown symbol: {signal.symbol}")

        quantity = int(self._settings.symbol_quantities.get(signal.symbol, 1))
        action = resolve_action(signal.direction, signal.comment)
        return SignalPlan(
            action=action,
            symbol=signal.symbol,
            contract_id=contract_id,
            quantity=quantity,
            signal_id=signal_id,
        )

    async def process(
        self,
        signal: SignalPayload,
        ledger: PositionLedger,
        *,
        received_ms: int | None = None,
    ) -> Dict[str, Any]:
        plan = self.plan(signal, received_ms=received_ms)
        logger.info(
            "Routing signal",
            extra={
                "extra": {
                    "signal_id": plan.signal_id,
                    "symbol": plan.symbol,
                    "contract_id": plan.contract_id,
                    "action": plan.action.value,
                    "quantity": plan.quantity,
                }
            },
        )

        accounts = list(self._settings.trading_accounts)
        results: List[Dict[str, Any]] = list(
            await asyncio.gather(*(self._execute_for_account(plan, acc) for acc in accounts))
        )
        executed = [r["accountId"] for r in results if r["success"]]
        failed = [r["accountId"] for r in results if not r["success"]]

        async with self._lock_for(plan.symbol):
            if plan.action.is_entry:
                response = await self._record_entry(signal, plan, ledger, results)
            else:
                response = await self._record_exit(signal, plan, ledger)

            await asyncio.to_thread(
                ledger.upsert_signal,
                SignalFields(
                    signal_id=plan.signal_id,
                    direction=signal.direction,
                    comment=signal.comment,
                    symbol=signal.symbol,
                    timeframe=signal.timeframe,
                    time_of_message=signal.time_of_message,
                    text=signal.text,
                    price=signal.price,
                    executed_accounts=executed,
                    failed_accounts=failed,
                ),
            )

        response.update(
            {
                "success": True,
                "action": plan.action.value,
                "signalId": plan.signal_id,
                "results": results,
            }
        )
        return response

    async def _execute_for_account(
        self, plan: SignalPlan, account: TradingAccountConfig
    ) -> Dict[str, Any]:
        try:
            if not account.username or not account.api_key:
                raise MissingCredentialsError(
                    f"Missing credentials for account {account.account_id}"
                )
            token = await self._sessions.get_token(
                account.username, account.api_key, client_id=account.username
            )
            result = await self._execute_action(plan, account.account_id, token)
        except Exception as exc:
            logger.warning(
                "Signal execution failed for account",
                extra={
                    "extra": {
                        "account_id": account.account_id,
                        "signal_id": plan.signal_id,
                        "action": plan.action.value,
                        "error": str(exc),
                    }
                },
            )
            return {"accountId": account.account_id, "success": False, "error": str(exc)}
        return {
            "accountId": account.account_id,
            "success": True,
            "action": plan.action.value,
            "result": result,
        }

    async def _execute_action(self, plan: SignalPlan, account_id: int, token: str) -> Any:
        action = plan.action
        if action is SignalAction.OPEN_LONG:
            order = await self._broker.open_long_position(
                token=token,
                account_id=account_id,
                contract_id=plan.contract_id,
                size=plan.quantity,
            )
            return {"orderId": order.order_id}
        if action is SignalAction.OPEN_SHORT:
            order = await self._broker.open_short_position(
                token=token,
                account_id=account_id,
                contract_id=plan.contract_id,
                size=plan.quantity,
            )
            return {"orderId": order.order_id}
        if action in (SignalAction.CLOSE_LONG, SignalAction.CLOSE_SHORT):
            closed = await self._broker.close_position(
                token=token, account_id=account_id, contract_id=plan.contract_id
            )
            return {"closed": closed}
        raise UnknownActionError(f"Unhandled action: {action}")

    async def _record_entry(
        self,
        signal: SignalPayload,
        plan: SignalPlan,
        ledger: PositionLedger,
        results: List[Dict[str, Any]],
    ) -> Dict[str, Any]:
        if results and not any(r["success"] for r in results):
            logger.warning(
                "Entry failed on every account; no trade recorded",
                extra={"extra": {"signal_id": plan.signal_id, "symbol": plan.symbol}},
            )
            return {"message": "Entry failed on every account", "trade": None}

        trade_id = await asyncio.to_thread(
            ledger.create_trade,
            TradeFields(
                direction=signal.direction,
                comment=signal.comment,
                symbol=plan.symbol,
                contract_id=plan.contract_id,
                timeframe=signal.timeframe,
                time_of_message=signal.time_of_message,
                text=signal.text,
                quantity=plan.quantity,
                signal_id=plan.signal_id,
                price=signal.price,
            ),
        )

        if plan.symbol == self._settings.premium_symbol:
            await self._notifier.notify_entry(signal)

        side = "long" if plan.action is SignalAction.OPEN_LONG else "short"
        return {"message": f"Opened {side} position for {plan.symbol}", "trade": trade_id}

    async def _record_exit(
        self,
        signal: SignalPayload,
        plan: SignalPlan,
        ledger: PositionLedger,
    ) -> Dict[str, Any]:
        positions = await asyncio.to_thread(ledger.get_current_positions, plan.symbol)
        if not positions:
            logger.info(
                "No tracked position to close",
                extra={"extra": {"signal_id": plan.signal_id, "symbol": plan.symbol}},
            )
            return {
                "message": f"Closed positions for {plan.symbol}; no tracked position",
                "trade": None,
            }

        position = positions[0]
        exit_price = signal.price if signal.price is not None else 0.0
        pnl = compute_pnl(position.direction, position.entry_price, exit_price)
        point_value = self._settings.symbol_point_values.get(plan.symbol)
        pnl_dollars = None
        if point_value is not None:
            pnl_dollars = pnl * float(point_value) * int(position.quantity)

        entry_price = position.entry_price
        await asyncio.to_thread(
            ledger.close_trade,
            position.trade_id,
            exit_price=exit_price,
            pnl=pnl,
            pnl_dollars=pnl_dollars,
        )
        await self._notifier.notify_exit(
            signal, pnl=pnl, pnl_dollars=pnl_dollars, entry_price=entry_price
        )
        return {
            "message": f"Closed {position.direction} position for {plan.symbol}",
            "trade": position.trade_id,
            "pnl": pnl,
            "pnlDollars": pnl_dollars,
        }


__all__ = [
    "SignalAction",
    "SignalPlan",
    "SignalRouter",
    "SignalRoutingError",
    "UnknownActionError",
    "UnknownSymbolError",
    "action_key",
    "compute_pnl",
    "make_signal_id",
    "resolve_action",
]
