"""Shared fixtures for position engine unit tests."""

from datetime import date
from decimal import Decimal

import pytest

from optledger.services.positions import (
    Direction,
    EntryLot,
    EntryRequest,
    OperationContext,
    Position,
    PositionService,
    PositionStatus,
    status_for,
)
from optledger.system import LoggerFactory, LoggingConfig


@pytest.fixture
def ctx() -> OperationContext:
    """Caller identity used by all tests."""
    return OperationContext(user_id="trader-1")


@pytest.fixture
def make_lot():
    """Factory for entry lots."""

    def _make(
        sequence: int,
        entry_date: date,
        quantity: int,
        price: str = "10.00",
        remaining: int | None = None,
    ) -> EntryLot:
        unit_price = Decimal(price)
        remaining_quantity = quantity if remaining is None else remaining
        return EntryLot(
            entry_date=entry_date,
            quantity=quantity,
            unit_price=unit_price,
            total_value=unit_price * quantity,
            remaining_quantity=remaining_quantity,
            sequence_number=sequence,
            is_fully_consumed=remaining_quantity == 0,
        )

    return _make


@pytest.fixture
def make_position():
    """Factory for positions built from lots.

    Totals and status are derived from the lots unless given explicitly.
    """

    def _make(
        *lots: EntryLot,
        status: PositionStatus | None = None,
        remaining: int | None = None,
        direction: Direction = Direction.LONG,
        average_price: str | None = None,
    ) -> Position:
        total = sum(lot.quantity for lot in lots)
        remaining_quantity = sum(lot.remaining_quantity for lot in lots) if remaining is None else remaining
        return Position(
            user_id="trader-1",
            option_symbol="PETRA245",
            brokerage="XP",
            direction=direction,
            status=status or status_for(remaining_quantity, total),
            open_date=min(lot.entry_date for lot in lots),
            total_quantity=total,
            remaining_quantity=remaining_quantity,
            average_price=Decimal(average_price) if average_price else lots[0].unit_price,
            entry_lots=list(lots),
        )

    return _make


@pytest.fixture
def entry():
    """Factory for entry requests on PETRA245 at XP."""

    def _make(
        entry_date: date,
        quantity: int,
        price: str,
        direction: Direction = Direction.LONG,
        option_symbol: str = "PETRA245",
    ) -> EntryRequest:
        return EntryRequest(
            option_symbol=option_symbol,
            brokerage="XP",
            direction=direction,
            entry_date=entry_date,
            quantity=quantity,
            unit_price=Decimal(price),
        )

    return _make


@pytest.fixture
def service() -> PositionService:
    """Fresh service with default configuration and in-memory storage."""
    return PositionService()


@pytest.fixture
def captured_logs(caplog):
    """Route engine logs through stdlib logging at DEBUG so caplog sees them.

    Yields a callable returning every captured message joined into one string.
    """
    LoggerFactory.reset()
    LoggerFactory.configure(LoggingConfig(level="DEBUG", enable_file=False))

    yield lambda: "\n".join(record.getMessage() for record in caplog.records)

    LoggerFactory.reset()
    LoggerFactory.configure(LoggingConfig(enable_file=False))
