"""Exit request and lot integrity validation.

Runs before any state is touched. Request problems raise ExitValidationError,
stored-state problems raise ConsistencyFault.
"""

from datetime import date
from decimal import Decimal

from optledger.services.positions.errors import ConsistencyFault, ExitValidationError
from optledger.services.positions.models import EntryLot, Position, PositionStatus
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class ExitValidator:
    """
    Validates an exit request against a position's lots.

    Example:
        >>> validator = ExitValidator()
        >>> validator.validate_exit(position, 100, Decimal("12.00"))
    """

    def validate_exit(
        self,
        position: Position,
        quantity: int,
        exit_unit_price: Decimal | None = None,
        exit_date: date | None = None,
    ) -> None:
        """
        Check that an exit of `quantity` units can be applied to `position`.

        When `exit_date` is given, only lots entered on or before it count
        as available.

        Args:
            position: Position to exit
            quantity: Requested exit quantity
            exit_unit_price: Requested exit price (optional)
            exit_date: Date of the exit (optional)

        Raises:
            ExitValidationError: If the request is not satisfiable
            ConsistencyFault: If the position's lots disagree with its totals
        """
        if quantity <= 0:
            raise ExitValidationError(f"Exit quantity must be positive, got {quantity}")

        if exit_unit_price is not None and exit_unit_price < 0:
            raise ExitValidationError(f"Exit price cannot be negative, got {exit_unit_price}")

        if position.status == PositionStatus.CLOSED:
            raise ExitValidationError(f"Position {position.position_id} is closed")

        if exit_date is not None and exit_date < position.open_date:
            raise ExitValidationError(
                f"Exit date {exit_date} is before position open date {position.open_date}"
            )

        self.validate_lot_integrity(position)

        active_lots = position.active_lots
        lots_remaining = sum(lot.remaining_quantity for lot in active_lots)
        if lots_remaining != position.remaining_quantity:
            logger.error(
                "positions.validator.remaining_mismatch",
                position_id=position.position_id,
                lots_remaining=lots_remaining,
                position_remaining=position.remaining_quantity,
            )
            raise ConsistencyFault(
                f"Lot remaining total {lots_remaining} does not match position remaining "
                f"{position.remaining_quantity} for {position.position_id}"
            )

        if exit_date is not None:
            active_lots = [lot for lot in active_lots if lot.entry_date <= exit_date]
        if not active_lots:
            raise ExitValidationError(f"Position {position.position_id} has no lots available")

        available = sum(lot.remaining_quantity for lot in active_lots)
        if quantity > available:
            raise ExitValidationError(f"Insufficient quantity: requested {quantity}, available {available}")

    def validate_lot_integrity(self, position: Position) -> None:
        """
        Check every lot's remaining quantity is within [0, quantity].

        A disagreeing is_fully_consumed flag is only reported.

        Raises:
            ConsistencyFault: If any lot's remaining quantity is out of range
        """
        for lot in position.entry_lots:
            self._check_lot(position, lot)

    def _check_lot(self, position: Position, lot: EntryLot) -> None:
        if lot.remaining_quantity < 0 or lot.remaining_quantity > lot.quantity:
            logger.error(
                "positions.validator.lot_out_of_range",
                position_id=position.position_id,
                lot_sequence=lot.sequence_number,
                quantity=lot.quantity,
                remaining=lot.remaining_quantity,
            )
            raise ConsistencyFault(
                f"Lot {lot.sequence_number} of {position.position_id} has remaining "
                f"{lot.remaining_quantity} outside [0, {lot.quantity}]"
            )

        if lot.is_fully_consumed != (lot.remaining_quantity == 0):
            logger.warning(
                "positions.validator.consumed_flag_mismatch",
                position_id=position.position_id,
                lot_sequence=lot.sequence_number,
                remaining=lot.remaining_quantity,
                is_fully_consumed=lot.is_fully_consumed,
            )
