"""Lot consumption planning.

Decides which lots an exit draws from, how much from each, and whether each
draw is a day trade or a swing trade:

- AUTO: same-day lots first, newest first (LIFO, tagged DAY), then prior-day
  lots oldest first (FIFO by entry date and sequence, tagged SWING)
- FIFO: all active lots oldest first
- LIFO: all active lots newest first

Lots entered after the exit date are never drawn.

Planning never mutates the position; the plan is applied by PositionLedger.
"""

from datetime import date

from optledger.services.positions.errors import ExitValidationError
from optledger.services.positions.models import (
    ConsumptionPlan,
    EntryLot,
    ExitStrategy,
    LotConsumption,
    Position,
    TradeType,
)
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class LotConsumptionPlanner:
    """
    Builds ordered, trade-type-tagged consumption plans.

    Example:
        >>> planner = LotConsumptionPlanner()
        >>> # Exit 150 against [100 entered today, 200 entered yesterday]
        >>> plan = planner.plan(position, date.today(), 150)
        >>> [(c.quantity, c.trade_type) for c in plan.consumptions]
        [(100, <TradeType.DAY: 'day'>), (50, <TradeType.SWING: 'swing'>)]
    """

    def plan(
        self,
        position: Position,
        exit_date: date,
        quantity: int,
        strategy: ExitStrategy = ExitStrategy.AUTO,
    ) -> ConsumptionPlan:
        """
        Plan an exit of `quantity` units on `exit_date`.

        Args:
            position: Position to draw from (not modified)
            exit_date: Date of the exit
            quantity: Units to exit (positive)
            strategy: Lot selection order

        Returns:
            ConsumptionPlan whose draws sum to `quantity`

        Raises:
            ExitValidationError: If quantity is not positive or lots are insufficient
        """
        if quantity <= 0:
            raise ExitValidationError(f"Quantity must be positive, got {quantity}")

        ordered = self._order_lots(position.active_lots, exit_date, strategy)

        consumptions: list[LotConsumption] = []
        needed = quantity
        for lot, trade_type in ordered:
            if needed == 0:
                break
            draw = min(lot.remaining_quantity, needed)
            consumptions.append(LotConsumption(lot=lot, quantity=draw, trade_type=trade_type))
            needed -= draw

            logger.debug(
                "positions.planner.draw",
                position_id=position.position_id,
                lot_sequence=lot.sequence_number,
                quantity=draw,
                trade_type=trade_type.value,
                still_needed=needed,
            )

        if needed > 0:
            raise ExitValidationError(f"Insufficient quantity: need {quantity}, have {quantity - needed}")

        plan = ConsumptionPlan(
            consumptions=tuple(consumptions),
            total_quantity=quantity,
            exit_date=exit_date,
            strategy=strategy,
        )

        logger.debug(
            "positions.planner.planned",
            position_id=position.position_id,
            strategy=strategy.value,
            quantity=quantity,
            draws=len(consumptions),
            day_quantity=plan.day_trade_quantity,
            swing_quantity=plan.swing_trade_quantity,
        )
        return plan

    def _order_lots(
        self, lots: list[EntryLot], exit_date: date, strategy: ExitStrategy
    ) -> list[tuple[EntryLot, TradeType]]:
        """Return active lots held on `exit_date` in draw order, each with its trade type."""
        lots = [lot for lot in lots if lot.entry_date <= exit_date]

        if strategy == ExitStrategy.AUTO:
            same_day = [lot for lot in lots if lot.entry_date == exit_date]
            prior_day = [lot for lot in lots if lot.entry_date < exit_date]

            # Most recently entered same-day lot first
            same_day.sort(key=lambda lot: lot.sequence_number, reverse=True)
            # Oldest cost basis first
            prior_day.sort(key=lambda lot: (lot.entry_date, lot.sequence_number))

            return [(lot, TradeType.DAY) for lot in same_day] + [(lot, TradeType.SWING) for lot in prior_day]

        if strategy == ExitStrategy.FIFO:
            ordered = sorted(lots, key=lambda lot: (lot.entry_date, lot.sequence_number))
        elif strategy == ExitStrategy.LIFO:
            ordered = sorted(lots, key=lambda lot: (lot.entry_date, lot.sequence_number), reverse=True)
        else:
            raise ValueError(f"Invalid exit strategy: {strategy}")

        return [(lot, self._trade_type(lot, exit_date)) for lot in ordered]

    @staticmethod
    def _trade_type(lot: EntryLot, exit_date: date) -> TradeType:
        return TradeType.DAY if lot.entry_date == exit_date else TradeType.SWING
