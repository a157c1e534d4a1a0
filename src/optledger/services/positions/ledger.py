"""Position state transitions.

PositionLedger is the only code that mutates a Position and its lots. Each
transition records what changed: exit records for consumptions, a
StatusTransition for every status change, and a PositionOperation history
event for every entry and exit.
"""

from datetime import date
from decimal import Decimal

from optledger.services.positions.arithmetic import ZERO, percentage, quantize
from optledger.services.positions.errors import ConsistencyFault
from optledger.services.positions.models import (
    AverageOperationGroup,
    ConsumptionResult,
    EntryLot,
    EntryRequest,
    ExitRecord,
    GroupStatus,
    OperationContext,
    Position,
    PositionOperation,
    PositionOperationType,
    PositionStatus,
    StatusTransition,
)
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


def status_for(remaining_quantity: int, total_quantity: int) -> PositionStatus:
    """Status implied by a remaining/total pair."""
    if remaining_quantity == 0:
        return PositionStatus.CLOSED
    if remaining_quantity == total_quantity:
        return PositionStatus.OPEN
    return PositionStatus.PARTIAL


class PositionLedger:
    """
    Applies entries and exits to Position aggregates.

    Example:
        >>> ledger = PositionLedger()
        >>> position = ledger.open_position(request, context, operation_id)
        >>> records, transition = ledger.apply_exit(position, result, Decimal("9.00"), exit_operation_id)
    """

    def __init__(self, price_precision: int = 6, percentage_precision: int = 6) -> None:
        self.price_precision = price_precision
        self.percentage_precision = percentage_precision

    # ==================== Entries ====================

    def open_position(self, request: EntryRequest, context: OperationContext, operation_id: str) -> Position:
        """
        Create a position holding one lot.

        Args:
            request: First entry
            context: Caller identity
            operation_id: ORIGINAL trade record for the entry

        Returns:
            New OPEN position
        """
        position = Position(
            user_id=context.user_id,
            option_symbol=request.option_symbol,
            brokerage=request.brokerage,
            direction=request.direction,
            status=PositionStatus.OPEN,
            open_date=request.entry_date,
            total_quantity=request.quantity,
            remaining_quantity=request.quantity,
            average_price=quantize(request.unit_price, self.price_precision),
        )
        position.entry_lots.append(self._new_lot(position, request, operation_id))
        position.transitions.append(
            StatusTransition(
                from_status=None,
                to_status=PositionStatus.OPEN,
                remaining_before=0,
                remaining_after=request.quantity,
                on_date=request.entry_date,
            )
        )
        self._record_event(position, PositionOperationType.ENTRY, operation_id, request.entry_date, request.quantity)
        return position

    def add_lot(self, position: Position, request: EntryRequest, operation_id: str) -> EntryLot:
        """
        Add a lot to an existing position and reaverage its cost basis.

        Status is left unchanged: a PARTIAL position stays PARTIAL.

        Raises:
            ValueError: If the position is closed or the request targets another series
        """
        if position.status == PositionStatus.CLOSED:
            raise ValueError(f"Cannot add entry to closed position {position.position_id}")
        if (request.option_symbol, request.brokerage, request.direction) != (
            position.option_symbol,
            position.brokerage,
            position.direction,
        ):
            raise ValueError(
                f"Entry {request.option_symbol}@{request.brokerage} ({request.direction.value}) does not match "
                f"position {position.option_symbol}@{position.brokerage} ({position.direction.value})"
            )

        lot = self._new_lot(position, request, operation_id)
        position.entry_lots.append(lot)

        new_remaining = position.remaining_quantity + request.quantity
        position.average_price = quantize(
            (position.average_price * position.remaining_quantity + request.total_value) / new_remaining,
            self.price_precision,
        )
        position.total_quantity += request.quantity
        position.remaining_quantity = new_remaining

        self._record_event(position, PositionOperationType.ADD, operation_id, request.entry_date, request.quantity)
        self.check_invariants(position)
        return lot

    def _new_lot(self, position: Position, request: EntryRequest, operation_id: str) -> EntryLot:
        return EntryLot(
            entry_date=request.entry_date,
            quantity=request.quantity,
            unit_price=request.unit_price,
            total_value=request.total_value,
            remaining_quantity=request.quantity,
            sequence_number=position.next_lot_sequence(),
            operation_id=operation_id,
        )

    # ==================== Exits ====================

    def apply_exit(
        self,
        position: Position,
        result: ConsumptionResult,
        new_average_price: Decimal,
        operation_id: str,
    ) -> tuple[list[ExitRecord], StatusTransition | None]:
        """
        Consume lots per an executed plan and update position totals.

        Args:
            position: Position to mutate
            result: Executed consumption plan
            new_average_price: Cost basis of the units left open
            operation_id: Trade record representing the exit

        Returns:
            (exit records created, status transition or None)

        Raises:
            ConsistencyFault: If a planned lot is missing or has too little remaining
        """
        records: list[ExitRecord] = []
        for draw in result.results:
            lot = position.get_lot(draw.lot.lot_id)
            if lot is None:
                raise ConsistencyFault(f"Lot {draw.lot.lot_id} not found in position {position.position_id}")
            if draw.quantity > lot.remaining_quantity:
                raise ConsistencyFault(
                    f"Lot {lot.sequence_number} has {lot.remaining_quantity} remaining, cannot consume {draw.quantity}"
                )

            lot.remaining_quantity -= draw.quantity
            lot.is_fully_consumed = lot.remaining_quantity == 0

            records.append(
                ExitRecord(
                    lot_id=lot.lot_id,
                    lot_sequence_number=lot.sequence_number,
                    entry_date=lot.entry_date,
                    exit_date=result.exit_date,
                    quantity=draw.quantity,
                    entry_unit_price=draw.entry_unit_price,
                    exit_unit_price=draw.exit_unit_price,
                    profit_loss=draw.profit_loss,
                    profit_loss_percentage=draw.profit_loss_percentage,
                    trade_type=draw.trade_type,
                    applied_strategy=result.strategy,
                    operation_id=operation_id,
                )
            )
        position.exit_records.extend(records)

        position.remaining_quantity -= result.total_quantity
        position.average_price = new_average_price
        position.total_realized_profit += result.total_profit_loss
        position.total_realized_profit_percentage = percentage(
            position.total_realized_profit, position.consumed_entry_value, self.percentage_precision
        )

        transition = self.transition_status(position, result.exit_date, result.total_quantity)

        event_type = (
            PositionOperationType.FULL_EXIT
            if position.status == PositionStatus.CLOSED
            else PositionOperationType.PARTIAL_EXIT
        )
        self._record_event(position, event_type, operation_id, result.exit_date, result.total_quantity)
        self.check_invariants(position)
        return records, transition

    def transition_status(
        self, position: Position, on_date: date, quantity_removed: int = 0
    ) -> StatusTransition | None:
        """
        Move position.status to match its quantities, logging the change.

        Returns:
            The recorded transition, or None if status was already correct
        """
        new_status = status_for(position.remaining_quantity, position.total_quantity)
        if new_status == position.status:
            return None

        transition = StatusTransition(
            from_status=position.status,
            to_status=new_status,
            remaining_before=position.remaining_quantity + quantity_removed,
            remaining_after=position.remaining_quantity,
            on_date=on_date,
        )
        position.status = new_status
        position.transitions.append(transition)
        if new_status == PositionStatus.CLOSED:
            position.close_date = on_date

        logger.info(
            "positions.status.transition",
            position_id=position.position_id,
            from_status=transition.from_status.value if transition.from_status else None,
            to_status=new_status.value,
            remaining=position.remaining_quantity,
        )
        return transition

    # ==================== Bookkeeping ====================

    def sync_group(self, position: Position, group: AverageOperationGroup) -> None:
        """Refresh a group's totals and status from its position."""
        group.total_quantity = position.total_quantity
        group.remaining_quantity = position.remaining_quantity
        group.closed_quantity = position.total_quantity - position.remaining_quantity
        group.total_profit = position.total_realized_profit

        exited = sum(record.quantity for record in position.exit_records)
        proceeds = sum((record.exit_total_value for record in position.exit_records), start=ZERO)
        group.avg_exit_price = quantize(proceeds / exited, self.price_precision) if exited else ZERO

        if position.status == PositionStatus.CLOSED:
            group.status = GroupStatus.CLOSED
        elif position.status == PositionStatus.PARTIAL:
            group.status = GroupStatus.PARTIALLY_CLOSED
        else:
            group.status = GroupStatus.ACTIVE

    def check_invariants(self, position: Position) -> None:
        """
        Verify lot totals and status agree with the position.

        Raises:
            ConsistencyFault: If any invariant is broken
        """
        lots_remaining = position.lots_remaining_quantity
        if lots_remaining != position.remaining_quantity:
            logger.error(
                "positions.ledger.remaining_mismatch",
                position_id=position.position_id,
                lots_remaining=lots_remaining,
                position_remaining=position.remaining_quantity,
            )
            raise ConsistencyFault(
                f"Lot remaining total {lots_remaining} does not match position remaining "
                f"{position.remaining_quantity} for {position.position_id}"
            )

        for lot in position.entry_lots:
            if not 0 <= lot.remaining_quantity <= lot.quantity:
                raise ConsistencyFault(
                    f"Lot {lot.sequence_number} remaining {lot.remaining_quantity} outside [0, {lot.quantity}]"
                )

        expected = status_for(position.remaining_quantity, position.total_quantity)
        if position.status != expected:
            raise ConsistencyFault(
                f"Position {position.position_id} status {position.status.value} does not match "
                f"remaining {position.remaining_quantity}/{position.total_quantity}"
            )

    def _record_event(
        self, position: Position, type: PositionOperationType, operation_id: str, on_date: date, quantity: int
    ) -> None:
        position.operations.append(
            PositionOperation(
                type=type,
                operation_id=operation_id,
                on_date=on_date,
                quantity=quantity,
                sequence_number=position.next_operation_sequence(),
            )
        )
