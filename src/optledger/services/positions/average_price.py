"""Average price calculation.

Cost basis after a partial exit shrinks by the capital removed (the exit
proceeds), not by re-averaging lot prices:

    new_average = max(0, invested - proceeds) / remaining_quantity

Worked example:
    300 units @ 10.00 -> invested 3000.00
    exit 100 @ 12.00  -> proceeds 1200.00
    (3000.00 - 1200.00) / 200 = 9.00
"""

from decimal import Decimal

from optledger.services.positions.arithmetic import ZERO, quantize
from optledger.services.positions.models import EntryLot
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class AveragePriceCalculator:
    """
    Recomputes weighted cost basis and average exit price.

    All methods are pure functions of their arguments. Results are rounded
    half up to `precision` decimal places.
    """

    def __init__(self, precision: int = 6) -> None:
        """
        Initialize calculator.

        Args:
            precision: Decimal places for computed prices
        """
        if precision < 0:
            raise ValueError(f"Precision must be non-negative, got {precision}")
        self.precision = precision

    def new_average_price(self, invested_value: Decimal, exit_value: Decimal, remaining_quantity: int) -> Decimal:
        """
        Cost basis of the units still open after an exit.

        Args:
            invested_value: Capital invested before the exit (average * remaining)
            exit_value: Proceeds received from the exit
            remaining_quantity: Units still open after the exit

        Returns:
            New average price (0 when nothing remains)

        Raises:
            ValueError: If remaining_quantity is negative
        """
        if remaining_quantity < 0:
            raise ValueError(f"Remaining quantity cannot be negative, got {remaining_quantity}")

        remaining_value = invested_value - exit_value
        if remaining_value < 0:
            logger.warning(
                "positions.arithmetic_anomaly",
                reason="negative_remaining_value",
                invested_value=str(invested_value),
                exit_value=str(exit_value),
                remaining_quantity=remaining_quantity,
            )
            remaining_value = ZERO

        if remaining_quantity == 0:
            return quantize(ZERO, self.precision)
        return quantize(remaining_value / remaining_quantity, self.precision)

    def average_exit_price(self, total_value: Decimal, total_quantity: int) -> Decimal:
        """Average price received over `total_quantity` exited units (0 if none)."""
        if total_quantity == 0:
            return quantize(ZERO, self.precision)
        return quantize(total_value / total_quantity, self.precision)

    def remaining_average_price(self, lots: list[EntryLot]) -> Decimal:
        """Weighted lot entry price over the units still open in `lots`."""
        open_lots = [lot for lot in lots if lot.remaining_quantity > 0]
        quantity = sum(lot.remaining_quantity for lot in open_lots)
        if quantity == 0:
            return quantize(ZERO, self.precision)
        value = sum((lot.unit_price * lot.remaining_quantity for lot in open_lots), start=ZERO)
        return quantize(value / quantity, self.precision)

    def validate(self, original_price: Decimal, new_price: Decimal, profit_loss: Decimal) -> bool:
        """
        Sanity-check a recomputed average price.

        After a profitable exit the average should not rise; after a loss it
        should not fall. Mixed-lot histories can break this legitimately, so
        violations are logged rather than raised.

        Returns:
            True if the new price is consistent with the exit's result
        """
        if profit_loss > 0:
            consistent = new_price <= original_price
        elif profit_loss < 0:
            consistent = new_price >= original_price
        else:
            consistent = True

        if not consistent:
            logger.warning(
                "positions.average_price.anomaly",
                original_price=str(original_price),
                new_price=str(new_price),
                profit_loss=str(profit_loss),
            )
        return consistent
