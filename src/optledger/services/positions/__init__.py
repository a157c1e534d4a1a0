"""Position engine for lot-based option trade accounting.

Matches exits against entry lots, splits each exit into day-trade and
swing-trade portions, recomputes the weighted cost basis, and maintains the
consolidated trade records that report a multi-exit position as one trade.

Key components:
- PositionService: Main service implementation
- IPositionService / IOperationWriter: Protocol interfaces
- ExitValidator, ScenarioDetector, ExitLifecycleDetector: Exit classification
- LotConsumptionPlanner, ConsumptionExecutor: Lot matching and P&L
- AveragePriceCalculator: Cost basis arithmetic
- ConsolidationManager: Trade record role chain
- PositionLedger: Position state transitions

Example:
    >>> from optledger.services.positions import EntryRequest, OperationContext, PositionService
    >>> from datetime import date
    >>> from decimal import Decimal
    >>>
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
"""

from optledger.services.positions.average_price import AveragePriceCalculator
from optledger.services.positions.config import PositionEngineConfig
from optledger.services.positions.consolidation import ConsolidationManager, ConsolidationOutcome
from optledger.services.positions.errors import (
    ConcurrentModificationError,
    ConsistencyFault,
    ExitValidationError,
    PositionEngineError,
    PositionNotFoundError,
    UnknownExitTypeError,
)
from optledger.services.positions.executor import ConsumptionExecutor
from optledger.services.positions.interface import IOperationWriter, IPositionService
from optledger.services.positions.ledger import PositionLedger, status_for
from optledger.services.positions.lifecycle import ExitLifecycleDetector
from optledger.services.positions.models import (
    AverageOperationGroup,
    AverageOperationItem,
    ConsumptionPlan,
    ConsumptionResult,
    Direction,
    EntryLot,
    EntryRequest,
    ExitRecord,
    ExitRequest,
    ExitResult,
    ExitScenario,
    ExitStrategy,
    ExitType,
    GroupStatus,
    LotConsumption,
    LotConsumptionResult,
    Operation,
    OperationContext,
    OperationRoleType,
    OperationStatus,
    Position,
    PositionOperation,
    PositionOperationType,
    PositionStatus,
    StatusTransition,
    TradeType,
    TransactionType,
)
from optledger.services.positions.planner import LotConsumptionPlanner
from optledger.services.positions.repository import InMemoryPositionRepository, PositionUnitOfWork
from optledger.services.positions.scenario import ScenarioDetector
from optledger.services.positions.service import PositionService
from optledger.services.positions.summary import PositionSummary, summarize_positions
from optledger.services.positions.validator import ExitValidator

__all__ = [
    # Service
    "PositionService",
    "IPositionService",
    "IOperationWriter",
    "PositionEngineConfig",
    # Components
    "AveragePriceCalculator",
    "ConsolidationManager",
    "ConsolidationOutcome",
    "ConsumptionExecutor",
    "ExitLifecycleDetector",
    "ExitValidator",
    "LotConsumptionPlanner",
    "PositionLedger",
    "ScenarioDetector",
    "status_for",
    # Storage
    "InMemoryPositionRepository",
    "PositionUnitOfWork",
    # Summary
    "PositionSummary",
    "summarize_positions",
    # Errors
    "PositionEngineError",
    "ExitValidationError",
    "ConsistencyFault",
    "UnknownExitTypeError",
    "PositionNotFoundError",
    "ConcurrentModificationError",
    # Models
    "AverageOperationGroup",
    "AverageOperationItem",
    "ConsumptionPlan",
    "ConsumptionResult",
    "Direction",
    "EntryLot",
    "EntryRequest",
    "ExitRecord",
    "ExitRequest",
    "ExitResult",
    "ExitScenario",
    "ExitStrategy",
    "ExitType",
    "GroupStatus",
    "LotConsumption",
    "LotConsumptionResult",
    "Operation",
    "OperationContext",
    "OperationRoleType",
    "OperationStatus",
    "Position",
    "PositionOperation",
    "PositionOperationType",
    "PositionStatus",
    "StatusTransition",
    "TradeType",
    "TransactionType",
]
