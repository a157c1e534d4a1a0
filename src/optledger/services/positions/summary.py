"""Aggregate summary over a set of positions."""

from collections.abc import Iterable
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from optledger.services.positions.arithmetic import ZERO, quantize
from optledger.services.positions.models import Direction, Position, PositionStatus


class PositionSummary(BaseModel):
    """
    Portfolio-level figures for a set of positions.

    Attributes:
        total_positions: Number of positions
        open_positions: Positions with status OPEN
        partial_positions: Positions with status PARTIAL
        closed_positions: Positions with status CLOSED
        long_positions: LONG positions
        short_positions: SHORT positions
        total_invested_value: Cost basis still exposed (non-closed positions)
        total_realized_profit: Sum of realized P&L
        average_realized_percentage: Realized percentage weighted by |realized P&L|
    """

    total_positions: int = 0
    open_positions: int = 0
    partial_positions: int = 0
    closed_positions: int = 0
    long_positions: int = 0
    short_positions: int = 0
    total_invested_value: Decimal = Decimal("0")
    total_realized_profit: Decimal = Decimal("0")
    average_realized_percentage: Decimal = Decimal("0")

    model_config = ConfigDict(frozen=True)


def summarize_positions(positions: Iterable[Position], precision: int = 6) -> PositionSummary:
    """
    Summarize positions.

    Args:
        positions: Positions to summarize
        precision: Decimal places for the weighted percentage

    Returns:
        PositionSummary (all zero for no positions)
    """
    positions = list(positions)
    by_status = {status: 0 for status in PositionStatus}
    for position in positions:
        by_status[position.status] += 1

    invested = sum(
        (p.invested_value for p in positions if p.status != PositionStatus.CLOSED),
        start=ZERO,
    )
    realized = sum((p.total_realized_profit for p in positions), start=ZERO)

    weight = sum((abs(p.total_realized_profit) for p in positions), start=ZERO)
    if weight == 0:
        average_percentage = quantize(ZERO, precision)
    else:
        weighted = sum(
            (p.total_realized_profit_percentage * abs(p.total_realized_profit) for p in positions),
            start=ZERO,
        )
        average_percentage = quantize(weighted / weight, precision)

    return PositionSummary(
        total_positions=len(positions),
        open_positions=by_status[PositionStatus.OPEN],
        partial_positions=by_status[PositionStatus.PARTIAL],
        closed_positions=by_status[PositionStatus.CLOSED],
        long_positions=sum(1 for p in positions if p.direction == Direction.LONG),
        short_positions=sum(1 for p in positions if p.direction == Direction.SHORT),
        total_invested_value=invested,
        total_realized_profit=realized,
        average_realized_percentage=average_percentage,
    )
