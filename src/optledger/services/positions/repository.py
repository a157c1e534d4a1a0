"""In-memory position storage with per-position units of work.

A unit of work is a deep copy of one position, its operation group and its
trade records. The engine mutates only the copy; `commit` swaps it in
atomically after a version check, so a failed exit leaves stored state
untouched and a stale writer is rejected.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager

from optledger.services.positions.errors import (
    ConcurrentModificationError,
    ConsistencyFault,
    PositionNotFoundError,
)
from optledger.services.positions.models import AverageOperationGroup, Operation, Position
from optledger.system import LoggerFactory

logger = LoggerFactory.get_logger()


class PositionUnitOfWork:
    """
    Staged copy of one position and its trade records.

    Implements IOperationWriter for the consolidation step.

    Attributes:
        position: Working copy of the position
        version: Position version the copy was taken from
    """

    def __init__(
        self,
        position: Position,
        group: AverageOperationGroup,
        operations: dict[str, Operation],
        version: int,
    ) -> None:
        self.position = position
        self._group = group
        self._operations = operations
        self.version = version
        self.committed = False

    @property
    def group(self) -> AverageOperationGroup:
        return self._group

    @property
    def operations(self) -> dict[str, Operation]:
        return self._operations

    def create_operation(self, operation: Operation) -> Operation:
        if operation.operation_id in self._operations:
            raise ValueError(f"Operation {operation.operation_id} already exists")
        self._operations[operation.operation_id] = operation
        return operation

    def update_operation(self, operation: Operation) -> Operation:
        if operation.operation_id not in self._operations:
            raise ConsistencyFault(f"Operation {operation.operation_id} not found")
        self._operations[operation.operation_id] = operation
        return operation

    def get_operation(self, operation_id: str) -> Operation:
        try:
            return self._operations[operation_id]
        except KeyError:
            raise ConsistencyFault(
                f"Operation {operation_id} referenced by group {self._group.group_id} not found"
            ) from None


class InMemoryPositionRepository:
    """
    Thread-safe in-memory store of positions, groups and trade records.

    Example:
        >>> repo = InMemoryPositionRepository()
        >>> with repo.position_lock(position_id):
        ...     uow = repo.load(position_id)
        ...     ...  # mutate uow.position / uow.group via the engine
        ...     repo.commit(uow)
    """

    def __init__(self) -> None:
        self._positions: dict[str, Position] = {}
        self._groups: dict[str, AverageOperationGroup] = {}
        self._operations: dict[str, Operation] = {}
        self._operation_ids: dict[str, list[str]] = {}

        self._lock = threading.Lock()
        self._position_locks: dict[str, threading.RLock] = {}

    @contextmanager
    def position_lock(self, position_id: str) -> Iterator[None]:
        """Serialize load-to-commit sequences for one position."""
        with self._lock:
            lock = self._position_locks.setdefault(position_id, threading.RLock())
        with lock:
            yield

    def begin(self, position: Position, group: AverageOperationGroup) -> PositionUnitOfWork:
        """Start a unit of work for a position that is not stored yet."""
        return PositionUnitOfWork(position=position, group=group, operations={}, version=0)

    def load(self, position_id: str) -> PositionUnitOfWork:
        """
        Copy a stored position into a new unit of work.

        Raises:
            PositionNotFoundError: If position does not exist
        """
        with self._lock:
            stored = self._positions.get(position_id)
            if stored is None:
                raise PositionNotFoundError(f"Position {position_id} not found")
            return PositionUnitOfWork(
                position=stored.model_copy(deep=True),
                group=self._groups[position_id].model_copy(deep=True),
                operations={
                    op_id: self._operations[op_id].model_copy(deep=True)
                    for op_id in self._operation_ids.get(position_id, [])
                },
                version=stored.version,
            )

    def commit(self, uow: PositionUnitOfWork) -> Position:
        """
        Store a unit of work atomically.

        Returns:
            Copy of the committed position (version bumped)

        Raises:
            ConcurrentModificationError: If the stored version moved since load
            ValueError: If the unit of work was already committed
        """
        if uow.committed:
            raise ValueError("Unit of work already committed")

        position_id = uow.position.position_id
        with self._lock:
            stored = self._positions.get(position_id)
            stored_version = stored.version if stored is not None else 0
            if stored_version != uow.version:
                logger.warning(
                    "positions.repository.version_conflict",
                    position_id=position_id,
                    expected_version=uow.version,
                    stored_version=stored_version,
                )
                raise ConcurrentModificationError(
                    f"Position {position_id} was modified concurrently "
                    f"(loaded version {uow.version}, stored version {stored_version})"
                )

            uow.position.version = uow.version + 1
            self._positions[position_id] = uow.position.model_copy(deep=True)
            self._groups[position_id] = uow.group.model_copy(deep=True)
            ids = self._operation_ids.setdefault(position_id, [])
            for op_id, operation in uow.operations.items():
                if op_id not in self._operations:
                    ids.append(op_id)
                self._operations[op_id] = operation.model_copy(deep=True)

        uow.committed = True
        return uow.position.model_copy(deep=True)

    def get(self, position_id: str) -> Position:
        """
        Get a copy of a stored position.

        Raises:
            PositionNotFoundError: If position does not exist
        """
        with self._lock:
            stored = self._positions.get(position_id)
            if stored is None:
                raise PositionNotFoundError(f"Position {position_id} not found")
            return stored.model_copy(deep=True)

    def get_group(self, position_id: str) -> AverageOperationGroup:
        """Get a copy of a position's operation group."""
        with self._lock:
            if position_id not in self._groups:
                raise PositionNotFoundError(f"Position {position_id} not found")
            return self._groups[position_id].model_copy(deep=True)

    def get_operations(self, position_id: str) -> list[Operation]:
        """Get copies of a position's trade records in creation order."""
        with self._lock:
            if position_id not in self._positions:
                raise PositionNotFoundError(f"Position {position_id} not found")
            return [self._operations[op_id].model_copy(deep=True) for op_id in self._operation_ids[position_id]]

    def list_positions(self) -> list[Position]:
        """Get copies of all stored positions."""
        with self._lock:
            return [position.model_copy(deep=True) for position in self._positions.values()]
