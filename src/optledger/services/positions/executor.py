"""Consumption execution.

Turns a ConsumptionPlan into per-lot financial results. Pure arithmetic: the
position and its lots are not modified.
"""

from decimal import Decimal

from optledger.services.positions.arithmetic import ZERO, percentage, quantize
from optledger.services.positions.models import (
    ConsumptionPlan,
    ConsumptionResult,
    Direction,
    LotConsumptionResult,
    TradeType,
)


class ConsumptionExecutor:
    """
    Computes cost, proceeds and P&L for each planned draw.

    For each draw:
        entry_total = lot.unit_price * quantity
        exit_total = exit_price * quantity
        profit_loss = (exit_price - lot.unit_price) * quantity   (negated for shorts)
        profit_loss_percentage = profit_loss / entry_total * 100 (0 if entry_total is 0)

    Example:
        >>> executor = ConsumptionExecutor()
        >>> result = executor.execute(plan, Decimal("12.00"), Direction.LONG)
        >>> result.total_profit_loss
        Decimal('200.00')
    """

    def __init__(self, price_precision: int = 6, percentage_precision: int = 6) -> None:
        self.price_precision = price_precision
        self.percentage_precision = percentage_precision

    def execute(
        self, plan: ConsumptionPlan, exit_unit_price: Decimal, direction: Direction = Direction.LONG
    ) -> ConsumptionResult:
        """
        Execute a plan at `exit_unit_price`.

        Args:
            plan: Planned draws
            exit_unit_price: Exit price per unit
            direction: Position direction (short positions invert P&L sign)

        Returns:
            Per-draw results with totals and the day/swing P&L split
        """
        sign = Decimal("1") if direction == Direction.LONG else Decimal("-1")

        results: list[LotConsumptionResult] = []
        for consumption in plan.consumptions:
            entry_price = consumption.lot.unit_price
            entry_total = entry_price * consumption.quantity
            exit_total = exit_unit_price * consumption.quantity
            profit_loss = (exit_unit_price - entry_price) * consumption.quantity * sign

            results.append(
                LotConsumptionResult(
                    lot=consumption.lot,
                    quantity=consumption.quantity,
                    trade_type=consumption.trade_type,
                    entry_unit_price=entry_price,
                    exit_unit_price=exit_unit_price,
                    profit_loss=profit_loss,
                    profit_loss_percentage=percentage(profit_loss, entry_total, self.percentage_precision),
                    entry_total_value=entry_total,
                    exit_total_value=exit_total,
                )
            )

        total_quantity = sum(r.quantity for r in results)
        total_entry_value = sum((r.entry_total_value for r in results), start=ZERO)
        average_entry = quantize(total_entry_value / total_quantity, self.price_precision) if total_quantity else ZERO

        return ConsumptionResult(
            results=tuple(results),
            total_profit_loss=sum((r.profit_loss for r in results), start=ZERO),
            day_trade_profit_loss=sum((r.profit_loss for r in results if r.trade_type == TradeType.DAY), start=ZERO),
            swing_trade_profit_loss=sum(
                (r.profit_loss for r in results if r.trade_type == TradeType.SWING), start=ZERO
            ),
            total_quantity=total_quantity,
            day_trade_quantity=sum(r.quantity for r in results if r.trade_type == TradeType.DAY),
            swing_trade_quantity=sum(r.quantity for r in results if r.trade_type == TradeType.SWING),
            exit_date=plan.exit_date,
            average_entry_price=average_entry,
            exit_unit_price=exit_unit_price,
            strategy=plan.strategy,
        )
