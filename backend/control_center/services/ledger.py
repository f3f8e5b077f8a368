from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from control_center.core.time_utils import utc_now
from control_center.models import CurrentPosition, Signal, Trade

logger = logging.getLogger(__name__)


class TradeNotFoundError(LookupError):
    """Raised when closing a trade id that does not exist."""


@dataclass
class TradeFields:
    direction: str
    comment: str
    symbol: str
    contract_id: str
    timeframe: str
    time_of_message: str
    text: str
    quantity: int
    signal_id: str
    price: Optional[float] = None


@dataclass
class SignalFields:
    signal_id: str
    direction: str
    comment: str
    symbol: str
    timeframe: str
    time_of_message: str
    text: str
    executed_accounts: Sequence[int]
    failed_accounts: Sequence[int]
    price: Optional[float] = None


def position_direction(comment: str) -> str:
    return "long" if "long" in (comment or "").lower() else "short"


class PositionLedger:
    """Trades, the tracked position per symbol, and signal outcomes.

    At most one ``CurrentPosition`` row exists per symbol. A new entry for a
    symbol that is already tracked overwrites the row in place; positions
    are never stacked.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # ------------------------------------------------------------------
    # Trades

    def create_trade(self, fields: TradeFields) -> int:
        """Insert an open trade and make it the tracked position for its symbol."""

        try:
            return self._create_trade(fields)
        except IntegrityError:
            # Another writer inserted the position row for this symbol
            # between our update and insert; the retry takes the update path.
            self.db.rollback()
            logger.warning(
                "Position insert raced for %s; retrying as overwrite", fields.symbol
            )
            return self._create_trade(fields)

    def _create_trade(self, fields: TradeFields) -> int:
        trade = Trade(
            direction=fields.direction,
            comment=fields.comment,
            symbol=fields.symbol,
            contract_id=fields.contract_id,
            timeframe=fields.timeframe,
            time_of_message=fields.time_of_message,
            text=fields.text,
            quantity=int(fields.quantity),
            signal_id=fields.signal_id,
            price=fields.price,
            executed_at=utc_now(),
            status="open",
        )
        self.db.add(trade)
        self.db.flush()

        self._track_position(trade)
        self.db.commit()

        logger.info(
            "Trade opened",
            extra={
                "extra": {
                    "trade_id": trade.id,
                    "symbol": trade.symbol,
                    "signal_id": trade.signal_id,
                    "quantity": trade.quantity,
                }
            },
        )
        return trade.id

    def _track_position(self, trade: Trade) -> None:
        now = utc_now()
        values = {
            "contract_id": trade.contract_id,
            "direction": position_direction(trade.comment),
            "quantity": trade.quantity,
            "entry_price": trade.price,
            "entry_time": now,
            "signal_id": trade.signal_id,
            "trade_id": trade.id,
            "last_update": now,
        }
        if self._overwrite_position(trade.symbol, values):
            return
        self.db.add(CurrentPosition(symbol=trade.symbol, **values))
        self.db.flush()

    def _overwrite_position(self, symbol: str, values: dict) -> bool:
        result = self.db.execute(
            update(CurrentPosition)
            .where(CurrentPosition.symbol == symbol)
            .values(**values)
        )
        return bool(result.rowcount)

    def close_trade(
        self,
        trade_id: int,
        *,
        exit_price: Optional[float] = None,
        pnl: Optional[float] = None,
        pnl_dollars: Optional[float] = None,
    ) -> Trade:
        trade = self.db.get(Trade, trade_id)
        if trade is None:
            raise TradeNotFoundError(f"Trade not found: {trade_id}")

        trade.status = "closed"
        trade.exit_price = exit_price
        trade.pnl = pnl
        trade.pnl_dollars = pnl_dollars
        trade.closed_at = utc_now()
        self.db.add(trade)

        position = self.db.scalars(
            select(CurrentPosition).where(CurrentPosition.trade_id == trade_id)
        ).first()
        if position is not None:
            self.db.delete(position)

        self.db.commit()
        self.db.refresh(trade)
        logger.info(
            "Trade closed",
            extra={
                "extra": {
                    "trade_id": trade.id,
                    "symbol": trade.symbol,
                    "exit_price": exit_price,
                    "pnl": pnl,
                }
            },
        )
        return trade

    def get_trade(self, trade_id: int) -> Trade | None:
        return self.db.get(Trade, trade_id)

    def list_trades(
        self,
        *,
        symbol: str | None = None,
        status: str | None = None,
        limit: int = 100,
    ) -> List[Trade]:
        stmt = select(Trade)
        if symbol is not None:
            stmt = stmt.where(Trade.symbol == symbol)
        if status is not None:
            stmt = stmt.where(Trade.status == status)
        stmt = stmt.order_by(Trade.executed_at.desc(), Trade.id.desc()).limit(limit)
        return list(self.db.scalars(stmt))

    # ------------------------------------------------------------------
    # Current positions

    def get_current_positions(self, symbol: str) -> List[CurrentPosition]:
        stmt = select(CurrentPosition).where(CurrentPosition.symbol == symbol)
        return list(self.db.scalars(stmt))

    def list_current_positions(self) -> List[CurrentPosition]:
        stmt = select(CurrentPosition).order_by(CurrentPosition.symbol)
        return list(self.db.scalars(stmt))

    # ------------------------------------------------------------------
    # Signals

    def upsert_signal(self, fields: SignalFields) -> Signal:
        existing = self.get_signal(fields.signal_id)
        if existing is not None:
            existing.status = "executed"
            existing.executed_accounts = list(fields.executed_accounts)
            existing.failed_accounts = list(fields.failed_accounts)
            self.db.add(existing)
            self.db.commit()
            return existing

        signal = Signal(
            signal_id=fields.signal_id,
            direction=fields.direction,
            comment=fields.comment,
            symbol=fields.symbol,
            timeframe=fields.timeframe,
            time_of_message=fields.time_of_message,
            price=fields.price,
            text=fields.text,
            received_at=utc_now(),
            status="executed",
            executed_accounts=list(fields.executed_accounts),
            failed_accounts=list(fields.failed_accounts),
        )
        self.db.add(signal)
        self.db.commit()
        self.db.refresh(signal)
        return signal

    def get_signal(self, signal_id: str) -> Signal | None:
        stmt = select(Signal).where(Signal.signal_id == signal_id)
        return self.db.scalars(stmt).first()

    def list_signals(self, *, symbol: str | None = None, limit: int = 100) -> List[Signal]:
        stmt = select(Signal)
        if symbol is not None:
            stmt = stmt.where(Signal.symbol == symbol)
        stmt = stmt.order_by(Signal.received_at.desc(), Signal.id.desc()).limit(limit)
        return list(self.db.scalars(stmt))


__all__ = [
    "PositionLedger",
    "SignalFields",
    "TradeFields",
    "TradeNotFoundError",
    "position_direction",
]
