"""Position service implementation.

Orchestrates the engine components for entries and exits:

    ExitValidator -> ExitLifecycleDetector / ScenarioDetector
        -> LotConsumptionPlanner -> ConsumptionExecutor
        -> AveragePriceCalculator -> ConsolidationManager
        -> PositionLedger -> repository commit

Each request works on a unit-of-work copy of one position under that
position's lock; nothing is stored unless every step succeeds.
"""

from uuid import uuid4

from optledger.services.positions.arithmetic import percentage
from optledger.services.positions.average_price import AveragePriceCalculator
from optledger.services.positions.config import PositionEngineConfig
from optledger.services.positions.consolidation import ConsolidationManager
from optledger.services.positions.executor import ConsumptionExecutor
from optledger.services.positions.ledger import PositionLedger
from optledger.services.positions.lifecycle import ExitLifecycleDetector
from optledger.services.positions.models import (
    AverageOperationGroup,
    Direction,
    EntryRequest,
    ExitRequest,
    ExitResult,
    Operation,
    OperationContext,
    Position,
)
from optledger.services.positions.planner import LotConsumptionPlanner
from optledger.services.positions.repository import InMemoryPositionRepository
from optledger.services.positions.scenario import ScenarioDetector
from optledger.services.positions.validator import ExitValidator
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class PositionService:
    """
    Position engine service.

    Attributes:
        config: Engine configuration
        repository: Position storage

    Example:
        >>> service = PositionService()
        >>> ctx = OperationContext(user_id="trader-1")
        >>> position = service.open_position(
        ...     EntryRequest(
        ...         option_symbol="PETRA245",
        ...         brokerage="XP",
        ...         entry_date=date(2024, 3, 1),
        ...         quantity=300,
        ...         unit_price=Decimal("10.00"),
        ...     ),
        ...     ctx,
        ... )
        >>> result = service.process_exit(
        ...     ExitRequest(
        ...         position_id=position.position_id,
        ...         exit_date=date(2024, 3, 4),
        ...         quantity=100,
        ...         exit_unit_price=Decimal("12.00"),
        ...     ),
        ...     ctx,
        ... )
        >>> result.new_average_price
        Decimal('9.000000')
    """

    def __init__(
        self,
        config: PositionEngineConfig | None = None,
        repository: InMemoryPositionRepository | None = None,
    ) -> None:
        """
        Initialize position service.

        Args:
            config: Engine configuration (defaults if None)
            repository: Position storage (new in-memory store if None)
        """
        self.config = config or PositionEngineConfig()
        self.repository = repository or InMemoryPositionRepository()

        self._validator = ExitValidator()
        self._scenario_detector = ScenarioDetector()
        self._lifecycle_detector = ExitLifecycleDetector()
        self._planner = LotConsumptionPlanner()
        self._executor = ConsumptionExecutor(self.config.price_precision, self.config.percentage_precision)
        self._calculator = AveragePriceCalculator(self.config.price_precision)
        self._consolidation = ConsolidationManager(self.config, self._calculator)
        self._ledger = PositionLedger(self.config.price_precision, self.config.percentage_precision)

    # ==================== Entries ====================

    def open_position(self, request: EntryRequest, context: OperationContext) -> Position:
        """
        Create a position from its first entry.

        Args:
            request: First entry
            context: Caller identity

        Returns:
            Copy of the stored position
        """
        operation_id = str(uuid4())
        position = self._ledger.open_position(request, context, operation_id)
        group = AverageOperationGroup(position_id=position.position_id, creation_date=request.entry_date)

        uow = self.repository.begin(position, group)
        self._consolidation.record_original(position, position.entry_lots[0], uow, context, operation_id)
        self._ledger.sync_group(position, group)
        committed = self.repository.commit(uow)

        logger.info(
            "positions.entry.opened",
            position_id=committed.position_id,
            user_id=context.user_id,
            option_symbol=committed.option_symbol,
            direction=committed.direction.value,
            quantity=request.quantity,
            unit_price=str(request.unit_price),
        )
        return committed

    def add_entry(self, position_id: str, request: EntryRequest, context: OperationContext) -> Position:
        """
        Add a lot to an open or partially closed position.

        Args:
            position_id: Position to add to
            request: Entry to add
            context: Caller identity

        Returns:
            Copy of the stored position

        Raises:
            PositionNotFoundError: If position does not exist
            ValueError: If the position is closed or the entry targets another series
        """
        with self.repository.position_lock(position_id):
            uow = self.repository.load(position_id)
            position = uow.position

            operation_id = str(uuid4())
            lot = self._ledger.add_lot(position, request, operation_id)
            self._consolidation.record_new_entry(position, lot, uow, context, operation_id)
            self._ledger.sync_group(position, uow.group)
            committed = self.repository.commit(uow)

        logger.info(
            "positions.entry.added",
            position_id=position_id,
            user_id=context.user_id,
            lot_sequence=lot.sequence_number,
            quantity=request.quantity,
            unit_price=str(request.unit_price),
            average_price=str(committed.average_price),
            remaining=committed.remaining_quantity,
        )
        return committed

    # ==================== Exits ====================

    def process_exit(self, request: ExitRequest, context: OperationContext) -> ExitResult:
        """
        Exit part or all of a position.

        Args:
            request: Exit to apply
            context: Caller identity

        Returns:
            ExitResult for the exit

        Raises:
            PositionNotFoundError: If position does not exist
            ExitValidationError: If the request cannot be satisfied
            ConsistencyFault: If stored state is corrupt
            UnknownExitTypeError: If the exit fits no lifecycle stage
        """
        with self.repository.position_lock(request.position_id):
            uow = self.repository.load(request.position_id)
            position = uow.position

            self._validator.validate_exit(position, request.quantity, request.exit_unit_price, request.exit_date)

            exit_type = self._lifecycle_detector.require(position, request.quantity)
            scenario = self._scenario_detector.detect(position, request.quantity)

            strategy = request.strategy_hint or self.config.exit_strategy
            plan = self._planner.plan(position, request.exit_date, request.quantity, strategy)
            result = self._executor.execute(plan, request.exit_unit_price, position.direction)

            original_average = position.average_price
            remaining_after = position.remaining_quantity - request.quantity
            new_average = self._calculator.new_average_price(
                position.invested_value, result.total_exit_value, remaining_after
            )
            if self.config.validate_average_price and remaining_after > 0:
                # Long cost basis falls on a gain; short basis moves the other way
                price_move = result.total_profit_loss
                if position.direction == Direction.SHORT:
                    price_move = -price_move
                self._calculator.validate(original_average, new_average, price_move)

            outcome = self._consolidation.consolidate(
                exit_type, position, result, new_average, remaining_after, uow, context
            )
            records, transition = self._ledger.apply_exit(position, result, new_average, outcome.exit_operation_id)
            self._ledger.sync_group(position, uow.group)
            committed = self.repository.commit(uow)

        exit_result = ExitResult(
            position_id=committed.position_id,
            exit_quantity=result.total_quantity,
            total_exit_value=result.total_exit_value,
            total_profit_loss=result.total_profit_loss,
            profit_loss_percentage=percentage(
                result.total_profit_loss, result.total_entry_value, self.config.percentage_precision
            ),
            remaining_quantity=committed.remaining_quantity,
            new_status=committed.status,
            exit_records=records,
            consolidated_operation_id=outcome.consolidated_operation_id,
            scenario=scenario,
            exit_type=exit_type,
            day_trade_profit_loss=result.day_trade_profit_loss,
            swing_trade_profit_loss=result.swing_trade_profit_loss,
            average_entry_price=result.average_entry_price,
            new_average_price=new_average,
            transition=transition,
        )

        logger.info(
            "positions.exit.processed",
            position_id=committed.position_id,
            user_id=context.user_id,
            exit_type=exit_type.value,
            scenario=scenario.value,
            strategy=strategy.value,
            quantity=result.total_quantity,
            profit_loss=str(result.total_profit_loss),
            remaining=committed.remaining_quantity,
            status=committed.status.value,
        )
        return exit_result

    # ==================== Queries ====================

    def get_position(self, position_id: str) -> Position:
        """
        Get a read-only copy of a position.

        Raises:
            PositionNotFoundError: If position does not exist
        """
        return self.repository.get(position_id)

    def get_group(self, position_id: str) -> AverageOperationGroup:
        """Get a copy of a position's operation group."""
        return self.repository.get_group(position_id)

    def get_operations(self, position_id: str) -> list[Operation]:
        """Get copies of a position's trade records in creation order."""
        return self.repository.get_operations(position_id)

    def list_positions(self) -> list[Position]:
        """Get copies of all positions."""
        return self.repository.list_positions()
