from __future__ import annotations

from datetime import UTC, datetime
from typing import List, Optional

from sqlalchemy import (
    CheckConstraint,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from control_center.db.base import Base
from control_center.db.types import JSONList, UTCDateTime


class Trade(Base):
    """One executed entry signal, shared across every account it fanned out to."""

    __tablename__ = "trades"

    __table_args__ = (
        CheckConstraint("direction IN ('buy', 'sell')", name="ck_trades_direction"),
        CheckConstraint(
            "status IN ('open', 'closed', 'cancelled')",
            name="ck_trades_status",
        ),
        Index("ix_trades_symbol", "symbol"),
        Index("ix_trades_status", "status"),
        Index("ix_trades_signal", "signal_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    comment: Mapped[str] = mapped_column(String(32), nullable=False)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(128), nullable=False)
    timeframe: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    time_of_message: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    signal_id: Mapped[str] = mapped_column(String(255), nullable=False)
    price: Mapped[Optional[float]] = mapped_column(Float)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="open")

    executed_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )
    exit_price: Mapped[Optional[float]] = mapped_column(Float)
    pnl: Mapped[Optional[float]] = mapped_column(Float)
    pnl_dollars: Mapped[Optional[float]] = mapped_column(Float)
    closed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime())

    positions: Mapped[List["CurrentPosition"]] = relationship(back_populates="trade")


class CurrentPosition(Base):
    """The single tracked open position for a symbol."""

    __tablename__ = "current_positions"

    __table_args__ = (
        UniqueConstraint("symbol", name="ux_current_positions_symbol"),
        CheckConstraint(
            "direction IN ('long', 'short')",
            name="ck_current_positions_direction",
        ),
        Index("ix_current_positions_trade", "trade_id"),
        Index("ix_current_positions_signal", "signal_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    contract_id: Mapped[str] = mapped_column(String(128), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    entry_price: Mapped[Optional[float]] = mapped_column(Float)
    entry_time: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )
    signal_id: Mapped[str] = mapped_column(String(255), nullable=False)
    trade_id: Mapped[int] = mapped_column(
        ForeignKey("trades.id", ondelete="CASCADE"), nullable=False
    )
    last_update: Mapped[datetime] = mapped_column(
        UTCDateTime(),
        nullable=False,
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
    )

    trade: Mapped[Trade] = relationship(back_populates="positions")


class Signal(Base):
    """Inbound alert plus the accounts it executed or failed on."""

    __tablename__ = "signals"

    __table_args__ = (
        UniqueConstraint("signal_id", name="ux_signals_signal_id"),
        CheckConstraint(
            "status IN ('pending', 'executed', 'failed')",
            name="ck_signals_status",
        ),
        Index("ix_signals_symbol", "symbol"),
        Index("ix_signals_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    signal_id: Mapped[str] = mapped_column(String(255), nullable=False)
    direction: Mapped[str] = mapped_column(String(8), nullable=False)
    comment: Mapped[str] = mapped_column(String(32), nullable=False)
    symbol: Mapped[str] = mapped_column(String(64), nullable=False)
    timeframe: Mapped[str] = mapped_column(String(32), nullable=False, default="")
    time_of_message: Mapped[str] = mapped_column(String(64), nullable=False, default="")
    price: Mapped[Optional[float]] = mapped_column(Float)
    text: Mapped[str] = mapped_column(Text, nullable=False, default="")
    received_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), nullable=False, default=lambda: datetime.now(UTC)
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="pending")
    executed_accounts: Mapped[List[int]] = mapped_column(
        JSONList(), nullable=False, default=list
    )
    failed_accounts: Mapped[List[int]] = mapped_column(
        JSONList(), nullable=False, default=list
    )


__all__ = ["Trade", "CurrentPosition", "Signal"]
