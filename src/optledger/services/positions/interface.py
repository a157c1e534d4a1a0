"""Position engine interfaces (Protocol).

Defines the contracts between the engine and its collaborators. Enables
dependency injection and makes each side independently testable.
"""

from typing import Protocol

from optledger.services.positions.models import (
    AverageOperationGroup,
    EntryRequest,
    ExitRequest,
    ExitResult,
    Operation,
    OperationContext,
    Position,
)


class IOperationWriter(Protocol):
    """
    Persistence collaborator for role-tagged trade records.

    Writes are staged against one position's unit of work and only become
    visible when the whole unit is committed.
    """

    @property
    def group(self) -> AverageOperationGroup:
        """Operation group of the position being modified."""
        ...

    def create_operation(self, operation: Operation) -> Operation:
        """
        Stage a new trade record.

        Raises:
            ValueError: If an operation with the same id already exists
        """
        ...

    def update_operation(self, operation: Operation) -> Operation:
        """
        Stage an update of an existing trade record.

        Raises:
            ConsistencyFault: If the operation does not exist
        """
        ...

    def get_operation(self, operation_id: str) -> Operation:
        """
        Get a trade record by id.

        Raises:
            ConsistencyFault: If the operation does not exist
        """
        ...


class IPositionService(Protocol):
    """
    Position engine interface.

    Core responsibilities:
    - Open positions and add entry lots
    - Process exits: validate, plan, execute, reaverage, consolidate
    - Keep every position's validate-to-persist sequence atomic

    Example:
        >>> service: IPositionService = PositionService()
        >>> ctx = OperationContext(user_id="trader-1")
        >>> position = service.open_position(entry_request, ctx)
        >>> result = service.process_exit(
        ...     ExitRequest(
        ...         position_id=position.position_id,
        ...         exit_date=date(2024, 3, 4),
        ...         quantity=100,
        ...         exit_unit_price=Decimal("12.00"),
        ...     ),
        ...     ctx,
        ... )
        >>> result.new_status
        <PositionStatus.PARTIAL: 'partial'>
    """

    def open_position(self, request: EntryRequest, context: OperationContext) -> Position:
        """Create a position from its first entry."""
        ...

    def add_entry(self, position_id: str, request: EntryRequest, context: OperationContext) -> Position:
        """
        Add a lot to an open or partially closed position.

        Raises:
            PositionNotFoundError: If position does not exist
            ValueError: If the position is closed or the entry targets another series
        """
        ...

    def process_exit(self, request: ExitRequest, context: OperationContext) -> ExitResult:
        """
        Exit part or all of a position.

        Raises:
            PositionNotFoundError: If position does not exist
            ExitValidationError: If the request cannot be satisfied
            ConsistencyFault: If stored state is corrupt
        """
        ...

    def get_position(self, position_id: str) -> Position:
        """
        Get a read-only copy of a position.

        Raises:
            PositionNotFoundError: If position does not exist
        """
        ...
