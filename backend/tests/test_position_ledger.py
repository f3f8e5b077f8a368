from __future__ import annotations

import pytest
from sqlalchemy import func, select

from control_center.db.base import Base
from control_center.db.session import SessionLocal, engine
from control_center.models import CurrentPosition, Signal, Trade
from control_center.services.ledger import (
    PositionLedger,
    SignalFields,
    TradeFields,
    TradeNotFoundError,
    position_direction,
)


def setup_function() -> None:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)


def _trade(symbol: str = "NQ1!", comment: str = "go_long", **overrides) -> TradeFields:  # noqa: ANN003
    values = dict(
        direction="buy" if "long" in comment else "sell",
        comment=comment,
        symbol=symbol,
        contract_id="CON.F.US.ENQ.U25",
        timeframe="5",
        time_of_message="2025-07-01T14:30:00Z",
        text="entry",
        quantity=1,
        signal_id=f"{symbol}_{comment}_1",
        price=21500.0,
    )
    values.update(overrides)
    return TradeFields(**values)


def test_position_direction_follows_comment() -> None:
    assert position_direction("go_long") == "long"
    assert position_direction("exit_long") == "long"
    assert position_direction("go_short") == "short"


def test_create_trade_tracks_position_from_entry_price() -> None:
    with SessionLocal() as session:
        ledger = PositionLedger(session)
        trade_id = ledger.create_trade(_trade(quantity=2))

        trade = session.get(Trade, trade_id)
        assert trade is not None
        assert trade.status == "open"

        positions = ledger.get_current_positions("NQ1!")
        assert len(positions) == 1
        assert positions[0].trade_id == trade_id
        assert positions[0].direction == "long"
        assert positions[0].quantity == 2
        assert positions[0].entry_price == 21500.0


def test_new_entry_overwrites_tracked_position_for_symbol() -> None:
    with SessionLocal() as session:
        ledger = PositionLedger(session)
        first = ledger.create_trade(_trade(signal_id="a"))
        second = ledger.create_trade(
            _trade(comment="go_short", signal_id="b", price=21450.0)
        )

        count = session.scalar(
            select(func.count()).select_from(CurrentPosition).where(
                CurrentPosition.symbol == "NQ1!"
            )
        )
        assert count == 1

        position = ledger.get_current_positions("NQ1!")[0]
        assert position.trade_id == second
        assert position.direction == "short"
        assert position.entry_price == 21450.0

        # The earlier trade stays open; only the tracked position moved on.
        earlier = ledger.get_trade(first)
        assert earlier is not None and earlier.status == "open"


def test_positions_for_other_symbols_are_untouched() -> None:
    with SessionLocal() as session:
        ledger = PositionLedger(session)
        ledger.create_trade(_trade(symbol="NQ1!"))
        ledger.create_trade(_trade(symbol="ES1!", contract_id="CON.F.US.EP.U25"))

        symbols = [p.symbol for p in ledger.list_current_positions()]
        assert symbols == ["ES1!", "NQ1!"]


def test_close_trade_sets_exit_fields_and_drops_position() -> None:
    with SessionLocal() as session:
        ledger = PositionLedger(session)
        trade_id = ledger.create_trade(_trade())

        closed = ledger.close_trade(trade_id, exit_price=21510.0, pnl=10.0, pnl_dollars=200.0)

        assert closed.status == "closed"
        assert closed.exit_price == 21510.0
        assert closed.pnl == 10.0
        assert closed.pnl_dollars == 200.0
        assert closed.closed_at is not None
        assert ledger.get_current_positions("NQ1!") == []


def test_close_unknown_trade_raises() -> None:
    with SessionLocal() as session:
        with pytest.raises(TradeNotFoundError):
            PositionLedger(session).close_trade(999, exit_price=1.0, pnl=0.0)


def test_list_trades_filters_by_status() -> None:
    with SessionLocal() as session:
        ledger = PositionLedger(session)
        open_id = ledger.create_trade(_trade(symbol="NQ1!"))
        closed_id = ledger.create_trade(_trade(symbol="ES1!"))
        ledger.close_trade(closed_id, exit_price=1.0, pnl=0.0)

        assert [t.id for t in ledger.list_trades(status="open")] == [open_id]
        assert [t.id for t in ledger.list_trades(status="closed")] == [closed_id]
        assert [t.id for t in ledger.list_trades(symbol="ES1!")] == [closed_id]


def test_upsert_signal_inserts_then_patches_outcome() -> None:
    fields = SignalFields(
        signal_id="NQ1!_buy_go_long_1751380200000",
        direction="buy",
        comment="go_long",
        symbol="NQ1!",
        timeframe="5",
        time_of_message="2025-07-01T14:30:00Z",
        text="entry",
        price=21500.0,
        executed_accounts=[1],
        failed_accounts=[2],
    )

    with SessionLocal() as session:
        ledger = PositionLedger(session)
        created = ledger.upsert_signal(fields)
        assert created.status == "executed"
        assert created.executed_accounts == [1]
        assert created.failed_accounts == [2]

        fields.executed_accounts = [1, 2]
        fields.failed_accounts = []
        ledger.upsert_signal(fields)

        rows = list(session.scalars(select(Signal)))
        assert len(rows) == 1

    with SessionLocal() as session:
        fetched = PositionLedger(session).get_signal(fields.signal_id)
        assert fetched is not None
        assert fetched.executed_accounts == [1, 2]
        assert fetched.failed_accounts == []
