"""Consolidation of a position's trade records.

A position exited in several steps is reported as one logical trade. The
AverageOperationGroup role chain evolves with the exit lifecycle:

    FIRST_PARTIAL       ORIGINAL/NEW_ENTRY -> HIDDEN
                        + CONSOLIDATED_ENTRY (remaining exposure)
                        + CONSOLIDATED_RESULT (this exit)
    SUBSEQUENT_PARTIAL  CONSOLIDATED_ENTRY updated, CONSOLIDATED_RESULT accumulated
    FINAL_PARTIAL       as SUBSEQUENT_PARTIAL, then CONSOLIDATED_RESULT -> TOTAL_EXIT
                        (WINNER/LOSER) and CONSOLIDATED_ENTRY -> HIDDEN
    SINGLE_TOTAL_EXIT   no consolidation; ORIGINAL closed in place -> TOTAL_EXIT

Each partial exit's own trade record joins the group as a hidden
PARTIAL_EXIT item, so the group always ends with exactly one visible
terminal record.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from optledger.services.positions.arithmetic import percentage, quantize
from optledger.services.positions.average_price import AveragePriceCalculator
from optledger.services.positions.config import PositionEngineConfig
from optledger.services.positions.errors import ConsistencyFault, UnknownExitTypeError
from optledger.services.positions.interface import IOperationWriter
from optledger.services.positions.models import (
    ConsumptionResult,
    EntryLot,
    ExitType,
    Operation,
    OperationContext,
    OperationRoleType,
    OperationStatus,
    Position,
    TradeType,
)
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


@dataclass(frozen=True)
class ConsolidationOutcome:
    """Trade records touched by one exit."""

    exit_operation_id: str  # Record the exit's ExitRecords point to
    consolidated_operation_id: str | None  # CONSOLIDATED_RESULT / TOTAL_EXIT, if any


class ConsolidationManager:
    """
    Maintains the AverageOperationGroup role chain through IOperationWriter.

    Example:
        >>> manager = ConsolidationManager(config)
        >>> outcome = manager.consolidate(
        ...     ExitType.FIRST_PARTIAL, position, result, new_average_price, remaining, writer, ctx
        ... )
        >>> outcome.consolidated_operation_id  # CONSOLIDATED_RESULT id
    """

    def __init__(
        self,
        config: PositionEngineConfig | None = None,
        calculator: AveragePriceCalculator | None = None,
    ) -> None:
        self.config = config or PositionEngineConfig()
        self.calculator = calculator or AveragePriceCalculator(self.config.price_precision)

    # ==================== Entries ====================

    def record_original(
        self, position: Position, lot: EntryLot, writer: IOperationWriter, context: OperationContext, operation_id: str
    ) -> Operation:
        """Create the ORIGINAL trade record of a new position."""
        operation = self._entry_operation(position, lot, context, operation_id)
        writer.create_operation(operation)
        writer.group.add_item(operation.operation_id, OperationRoleType.ORIGINAL, lot.entry_date)
        return operation

    def record_new_entry(
        self,
        position: Position,
        lot: EntryLot,
        writer: IOperationWriter,
        context: OperationContext,
        operation_id: str,
    ) -> Operation:
        """
        Create the NEW_ENTRY trade record of an added lot.

        When the position is already consolidated the new record is hidden at
        once and the CONSOLIDATED_ENTRY is refreshed to the position's
        current remaining quantity and average price.
        """
        operation = self._entry_operation(position, lot, context, operation_id)
        group = writer.group
        consolidated_entry = self._find_role(writer, OperationRoleType.CONSOLIDATED_ENTRY)
        if consolidated_entry is not None:
            operation.status = OperationStatus.HIDDEN
        writer.create_operation(operation)
        group.add_item(operation.operation_id, OperationRoleType.NEW_ENTRY, lot.entry_date)

        if consolidated_entry is not None:
            self._refresh_entry(consolidated_entry, position.remaining_quantity, position.average_price)
            writer.update_operation(consolidated_entry)
            logger.debug(
                "positions.consolidation.entry_refreshed",
                position_id=position.position_id,
                operation_id=consolidated_entry.operation_id,
                quantity=consolidated_entry.quantity,
                price=str(consolidated_entry.entry_unit_price),
            )
        return operation

    # ==================== Exits ====================

    def consolidate(
        self,
        exit_type: ExitType,
        position: Position,
        result: ConsumptionResult,
        new_average_price: Decimal,
        remaining_quantity: int,
        writer: IOperationWriter,
        context: OperationContext,
    ) -> ConsolidationOutcome:
        """
        Update the role chain for one exit.

        Args:
            exit_type: Lifecycle stage of the exit
            position: Position as it was before the exit
            result: Executed consumption plan
            new_average_price: Cost basis of the units left open
            remaining_quantity: Units left open after the exit
            writer: Trade record persistence
            context: Caller identity

        Returns:
            ConsolidationOutcome with the exit and consolidated record ids

        Raises:
            ConsistencyFault: If the group is missing required records
            UnknownExitTypeError: If exit_type is UNKNOWN
        """
        if exit_type == ExitType.SINGLE_TOTAL_EXIT:
            return self._close_original(position, result, writer)

        if exit_type == ExitType.UNKNOWN:
            raise UnknownExitTypeError(f"Cannot consolidate unclassified exit on {position.position_id}")

        exit_operation = self._exit_operation(position, result, context)
        exit_operation.status = OperationStatus.HIDDEN
        writer.create_operation(exit_operation)

        if exit_type == ExitType.FIRST_PARTIAL:
            consolidated_id = self._create_consolidation(
                position, result, new_average_price, remaining_quantity, writer, context
            )
        elif exit_type in (ExitType.SUBSEQUENT_PARTIAL, ExitType.FINAL_PARTIAL):
            consolidated_id = self._update_consolidation(
                position,
                result,
                new_average_price,
                remaining_quantity,
                writer,
                context,
                final=exit_type == ExitType.FINAL_PARTIAL,
            )
        else:
            raise UnknownExitTypeError(f"Unsupported exit type: {exit_type}")

        writer.group.add_item(exit_operation.operation_id, OperationRoleType.PARTIAL_EXIT, result.exit_date)
        return ConsolidationOutcome(
            exit_operation_id=exit_operation.operation_id,
            consolidated_operation_id=consolidated_id,
        )

    def _create_consolidation(
        self,
        position: Position,
        result: ConsumptionResult,
        new_average_price: Decimal,
        remaining_quantity: int,
        writer: IOperationWriter,
        context: OperationContext,
    ) -> str:
        group = writer.group

        consolidated_entry = Operation(
            position_id=position.position_id,
            user_id=context.user_id,
            option_symbol=position.option_symbol,
            brokerage=position.brokerage,
            transaction_type=position.entry_transaction_type,
            entry_date=position.open_date,
            quantity=remaining_quantity,
            entry_unit_price=new_average_price,
            entry_total_value=quantize(new_average_price * remaining_quantity, self.config.price_precision),
        )
        writer.create_operation(consolidated_entry)

        consolidated_result = self._exit_operation(position, result, context)
        consolidated_result.exit_unit_price = self.calculator.average_exit_price(
            result.total_exit_value, result.total_quantity
        )
        writer.create_operation(consolidated_result)

        hidden = 0
        for item in group.items:
            if item.role in (OperationRoleType.ORIGINAL, OperationRoleType.NEW_ENTRY):
                operation = writer.get_operation(item.operation_id)
                operation.status = OperationStatus.HIDDEN
                writer.update_operation(operation)
                hidden += 1

        group.add_item(consolidated_entry.operation_id, OperationRoleType.CONSOLIDATED_ENTRY, result.exit_date)
        group.add_item(consolidated_result.operation_id, OperationRoleType.CONSOLIDATED_RESULT, result.exit_date)

        logger.info(
            "positions.consolidation.created",
            position_id=position.position_id,
            consolidated_entry_id=consolidated_entry.operation_id,
            consolidated_result_id=consolidated_result.operation_id,
            remaining=remaining_quantity,
            average_price=str(new_average_price),
            hidden_entries=hidden,
        )
        return consolidated_result.operation_id

    def _update_consolidation(
        self,
        position: Position,
        result: ConsumptionResult,
        new_average_price: Decimal,
        remaining_quantity: int,
        writer: IOperationWriter,
        context: OperationContext,
        final: bool,
    ) -> str:
        group = writer.group

        consolidated_entry = self._find_role(writer, OperationRoleType.CONSOLIDATED_ENTRY)
        if consolidated_entry is None:
            logger.error(
                "positions.consolidation.missing_entry",
                position_id=position.position_id,
                group_id=group.group_id,
            )
            raise ConsistencyFault(
                f"Position {position.position_id} has no consolidated entry for a "
                f"{'final' if final else 'subsequent'} exit"
            )

        self._refresh_entry(consolidated_entry, remaining_quantity, new_average_price)
        if final:
            consolidated_entry.status = OperationStatus.HIDDEN
        writer.update_operation(consolidated_entry)

        consolidated_result = self._find_role(writer, OperationRoleType.CONSOLIDATED_RESULT)
        if consolidated_result is None:
            logger.warning(
                "positions.consolidation.missing_result",
                position_id=position.position_id,
                group_id=group.group_id,
            )
            consolidated_result = self._exit_operation(position, result, context)
            consolidated_result.exit_unit_price = self.calculator.average_exit_price(
                result.total_exit_value, result.total_quantity
            )
            writer.create_operation(consolidated_result)
            group.add_item(consolidated_result.operation_id, OperationRoleType.CONSOLIDATED_RESULT, result.exit_date)
        else:
            self._accumulate(consolidated_result, result)
            writer.update_operation(consolidated_result)

        if final:
            item = group.find_item(consolidated_result.operation_id)
            if item is None:
                raise ConsistencyFault(f"Consolidated result {consolidated_result.operation_id} is not in its group")
            item.role = OperationRoleType.TOTAL_EXIT
            consolidated_result.status = self._result_status(consolidated_result.profit_loss)
            writer.update_operation(consolidated_result)

        logger.info(
            "positions.consolidation.finalized" if final else "positions.consolidation.updated",
            position_id=position.position_id,
            consolidated_result_id=consolidated_result.operation_id,
            cumulative_quantity=consolidated_result.quantity,
            cumulative_profit_loss=str(consolidated_result.profit_loss),
            remaining=remaining_quantity,
            status=consolidated_result.status.value,
        )
        return consolidated_result.operation_id

    def _close_original(
        self, position: Position, result: ConsumptionResult, writer: IOperationWriter
    ) -> ConsolidationOutcome:
        """Close the ORIGINAL record in place, folding in any NEW_ENTRY records."""
        group = writer.group
        originals = group.items_with_role(OperationRoleType.ORIGINAL)
        if len(originals) != 1:
            raise ConsistencyFault(
                f"Position {position.position_id} group has {len(originals)} original records, expected 1"
            )
        original_item = originals[0]
        original = writer.get_operation(original_item.operation_id)

        new_entries = group.items_with_role(OperationRoleType.NEW_ENTRY)
        if new_entries:
            entry_total = original.entry_total_value
            quantity = original.quantity
            for item in new_entries:
                operation = writer.get_operation(item.operation_id)
                entry_total += operation.entry_total_value
                quantity += operation.quantity
                operation.status = OperationStatus.HIDDEN
                writer.update_operation(operation)
            original.quantity = quantity
            original.entry_total_value = entry_total
            original.entry_unit_price = quantize(entry_total / quantity, self.config.price_precision)

        original.trade_type = result.dominant_trade_type
        original.exit_date = result.exit_date
        original.exit_unit_price = result.exit_unit_price
        original.exit_total_value = result.total_exit_value
        original.profit_loss = result.total_profit_loss
        original.profit_loss_percentage = percentage(
            result.total_profit_loss, result.total_entry_value, self.config.percentage_precision
        )
        original.status = self._result_status(result.total_profit_loss)
        writer.update_operation(original)
        original_item.role = OperationRoleType.TOTAL_EXIT

        logger.info(
            "positions.consolidation.closed_in_place",
            position_id=position.position_id,
            operation_id=original.operation_id,
            merged_entries=len(new_entries),
            profit_loss=str(original.profit_loss),
            status=original.status.value,
        )
        return ConsolidationOutcome(exit_operation_id=original.operation_id, consolidated_operation_id=None)

    # ==================== Helpers ====================

    def _accumulate(self, consolidated_result: Operation, result: ConsumptionResult) -> None:
        """Fold one exit into the cumulative CONSOLIDATED_RESULT figures."""
        consolidated_result.quantity += result.total_quantity
        consolidated_result.profit_loss += result.total_profit_loss
        consolidated_result.entry_total_value += result.total_entry_value
        previous_exit_total = consolidated_result.exit_total_value or Decimal("0")
        consolidated_result.exit_total_value = previous_exit_total + result.total_exit_value

        consolidated_result.entry_unit_price = quantize(
            consolidated_result.entry_total_value / consolidated_result.quantity, self.config.price_precision
        )
        consolidated_result.exit_unit_price = self.calculator.average_exit_price(
            consolidated_result.exit_total_value, consolidated_result.quantity
        )
        # Percentage is over the cumulative entry value, not this exit's
        consolidated_result.profit_loss_percentage = percentage(
            consolidated_result.profit_loss, consolidated_result.entry_total_value, self.config.percentage_precision
        )
        if consolidated_result.exit_date is None or result.exit_date > consolidated_result.exit_date:
            consolidated_result.exit_date = result.exit_date
        if consolidated_result.trade_type != result.dominant_trade_type:
            consolidated_result.trade_type = TradeType.SWING

    def _refresh_entry(self, consolidated_entry: Operation, remaining_quantity: int, average_price: Decimal) -> None:
        consolidated_entry.quantity = remaining_quantity
        consolidated_entry.entry_unit_price = average_price
        consolidated_entry.entry_total_value = quantize(average_price * remaining_quantity, self.config.price_precision)

    def _result_status(self, profit_loss: Decimal) -> OperationStatus:
        if profit_loss > 0:
            return OperationStatus.WINNER
        if profit_loss < 0:
            return OperationStatus.LOSER
        return self.config.zero_status

    def _find_role(self, writer: IOperationWriter, role: OperationRoleType) -> Operation | None:
        items = writer.group.items_with_role(role)
        if not items:
            return None
        if len(items) > 1:
            raise ConsistencyFault(f"Group {writer.group.group_id} has {len(items)} {role.value} records, expected 1")
        return writer.get_operation(items[0].operation_id)

    def _entry_operation(
        self, position: Position, lot: EntryLot, context: OperationContext, operation_id: str
    ) -> Operation:
        return Operation(
            operation_id=operation_id,
            position_id=position.position_id,
            user_id=context.user_id,
            option_symbol=position.option_symbol,
            brokerage=position.brokerage,
            transaction_type=position.entry_transaction_type,
            entry_date=lot.entry_date,
            quantity=lot.quantity,
            entry_unit_price=lot.unit_price,
            entry_total_value=lot.total_value,
        )

    def _exit_operation(self, position: Position, result: ConsumptionResult, context: OperationContext) -> Operation:
        """Trade record carrying one exit's own figures."""
        entry_date: date = min((r.lot.entry_date for r in result.results), default=position.open_date)
        return Operation(
            position_id=position.position_id,
            user_id=context.user_id,
            option_symbol=position.option_symbol,
            brokerage=position.brokerage,
            transaction_type=position.exit_transaction_type,
            trade_type=result.dominant_trade_type,
            entry_date=entry_date,
            exit_date=result.exit_date,
            quantity=result.total_quantity,
            entry_unit_price=result.average_entry_price,
            entry_total_value=result.total_entry_value,
            exit_unit_price=result.exit_unit_price,
            exit_total_value=result.total_exit_value,
            profit_loss=result.total_profit_loss,
            profit_loss_percentage=percentage(
                result.total_profit_loss, result.total_entry_value, self.config.percentage_precision
            ),
        )
