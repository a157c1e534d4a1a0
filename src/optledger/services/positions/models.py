"""Data models for the position engine.

Defines all core entities for lot-based option position accounting:
- EntryLot: One batch of quantity entered at a given date/price
- ExitRecord: One consumption of a lot by an exit (immutable)
- Position: Aggregate root owning its lots, exit records and history
- Operation: Role-tagged trade record used for external reporting
- AverageOperationGroup / AverageOperationItem: Role chain of a position's trade records
- EntryRequest / ExitRequest / ExitResult: Engine inputs and outputs
- LotConsumption / ConsumptionPlan / LotConsumptionResult / ConsumptionResult:
  Ephemeral planning values, never persisted
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _new_id() -> str:
    return str(uuid4())


class Direction(str, Enum):
    """Direction of a position."""

    LONG = "long"
    SHORT = "short"


class PositionStatus(str, Enum):
    """Position lifecycle states.

    State Transitions:
        OPEN → PARTIAL → PARTIAL → CLOSED
        OPEN → CLOSED (single total exit)
    """

    OPEN = "open"  # remaining == total
    PARTIAL = "partial"  # 0 < remaining < total
    CLOSED = "closed"  # remaining == 0


class TransactionType(str, Enum):
    """Side of a trade record."""

    BUY = "buy"
    SELL = "sell"


class TradeType(str, Enum):
    """Tax classification of a lot draw."""

    DAY = "day"  # Entered and exited on the same date
    SWING = "swing"  # Exited on a later date


class ExitStrategy(str, Enum):
    """Lot selection order for an exit."""

    FIFO = "fifo"
    LIFO = "lifo"
    AUTO = "auto"  # LIFO for same-day lots, then FIFO for prior-day lots


class OperationStatus(str, Enum):
    """Status of a trade record."""

    ACTIVE = "active"
    HIDDEN = "hidden"  # Represented by a consolidated record, excluded from aggregates
    WINNER = "winner"
    LOSER = "loser"


class OperationRoleType(str, Enum):
    """Role of a trade record inside an AverageOperationGroup."""

    ORIGINAL = "original"
    NEW_ENTRY = "new_entry"
    PARTIAL_EXIT = "partial_exit"
    TOTAL_EXIT = "total_exit"
    CONSOLIDATED_ENTRY = "consolidated_entry"
    CONSOLIDATED_RESULT = "consolidated_result"

    @property
    def is_entry(self) -> bool:
        return self in (
            OperationRoleType.ORIGINAL,
            OperationRoleType.NEW_ENTRY,
            OperationRoleType.CONSOLIDATED_ENTRY,
        )

    @property
    def is_exit(self) -> bool:
        return self in (
            OperationRoleType.PARTIAL_EXIT,
            OperationRoleType.TOTAL_EXIT,
            OperationRoleType.CONSOLIDATED_RESULT,
        )

    @property
    def is_consolidation(self) -> bool:
        return self in (OperationRoleType.CONSOLIDATED_ENTRY, OperationRoleType.CONSOLIDATED_RESULT)


class PositionOperationType(str, Enum):
    """Kind of event recorded in a position's history."""

    ENTRY = "entry"
    ADD = "add"
    PARTIAL_EXIT = "partial_exit"
    FULL_EXIT = "full_exit"


class GroupStatus(str, Enum):
    """Status of an AverageOperationGroup."""

    ACTIVE = "active"
    PARTIALLY_CLOSED = "partially_closed"
    CLOSED = "closed"


class ExitScenario(str, Enum):
    """Complexity class of an exit."""

    SINGLE_LOT = "single_lot"
    MULTIPLE_LOTS_TOTAL_EXIT = "multiple_lots_total_exit"
    PARTIAL_SINGLE_SOURCE = "partial_single_source"
    COMPLEX_MULTIPLE_SOURCES = "complex_multiple_sources"


class ExitType(str, Enum):
    """Lifecycle stage of an exit."""

    FIRST_PARTIAL = "first_partial"  # Create consolidation records
    SUBSEQUENT_PARTIAL = "subsequent_partial"  # Update consolidation records
    FINAL_PARTIAL = "final_partial"  # Finalize consolidation records
    SINGLE_TOTAL_EXIT = "single_total_exit"  # No consolidation at all
    UNKNOWN = "unknown"


# ==================== Position Aggregate ====================


class EntryLot(BaseModel):
    """
    One batch of quantity entered into a position.

    quantity is the original size and never changes. remaining_quantity only
    ever decreases as exits consume the lot.

    Attributes:
        lot_id: Unique identifier
        entry_date: Date the lot was entered
        quantity: Original lot size
        unit_price: Entry price per unit
        total_value: unit_price * quantity
        remaining_quantity: Units not yet consumed
        sequence_number: Creation order within the position (1-based)
        is_fully_consumed: True once remaining_quantity reaches zero
        operation_id: Trade record that created this lot

    Example:
        >>> lot = EntryLot(
        ...     entry_date=date(2024, 3, 1),
        ...     quantity=300,
        ...     unit_price=Decimal("10.00"),
        ...     total_value=Decimal("3000.00"),
        ...     remaining_quantity=300,
        ...     sequence_number=1,
        ... )
    """

    lot_id: str = Field(default_factory=_new_id)
    entry_date: date
    quantity: int
    unit_price: Decimal
    total_value: Decimal
    remaining_quantity: int
    sequence_number: int
    is_fully_consumed: bool = False
    operation_id: str | None = None

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        """Validate lot quantity is positive."""
        if v <= 0:
            raise ValueError(f"Lot quantity must be positive, got {v}")
        return v

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: Decimal) -> Decimal:
        """Validate unit price is not negative."""
        if v < 0:
            raise ValueError(f"Unit price cannot be negative, got {v}")
        return v

    @property
    def is_partially_consumed(self) -> bool:
        return 0 < self.remaining_quantity < self.quantity

    model_config = ConfigDict(validate_assignment=False)  # NOT frozen - remaining decreases


class ExitRecord(BaseModel):
    """
    One consumption of one lot by an exit.

    Attributes:
        exit_id: Unique identifier
        lot_id: Lot consumed
        lot_sequence_number: Sequence number of the lot consumed
        entry_date: Entry date of the lot consumed
        exit_date: Date of the exit
        quantity: Units consumed from the lot
        entry_unit_price: Lot entry price
        exit_unit_price: Exit price
        profit_loss: Realized P&L for this draw
        profit_loss_percentage: profit_loss / entry value * 100
        trade_type: DAY or SWING
        applied_strategy: Lot selection strategy used
        operation_id: Trade record created for the exit
    """

    exit_id: str = Field(default_factory=_new_id)
    lot_id: str
    lot_sequence_number: int
    entry_date: date
    exit_date: date
    quantity: int
    entry_unit_price: Decimal
    exit_unit_price: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Decimal
    trade_type: TradeType
    applied_strategy: ExitStrategy
    operation_id: str | None = None

    @property
    def entry_total_value(self) -> Decimal:
        return self.entry_unit_price * self.quantity

    @property
    def exit_total_value(self) -> Decimal:
        return self.exit_unit_price * self.quantity

    model_config = ConfigDict(frozen=True)  # Immutable after creation


class StatusTransition(BaseModel):
    """Audit record of one status change of a position."""

    from_status: PositionStatus | None  # None when the position is created
    to_status: PositionStatus
    remaining_before: int
    remaining_after: int
    on_date: date

    model_config = ConfigDict(frozen=True)


class PositionOperation(BaseModel):
    """History event linking a position to a trade record."""

    event_id: str = Field(default_factory=_new_id)
    type: PositionOperationType
    operation_id: str
    on_date: date
    quantity: int
    sequence_number: int
    recorded_at: datetime = Field(default_factory=datetime.now)

    model_config = ConfigDict(frozen=True)


class Position(BaseModel):
    """
    Aggregate root for one directional stake in one option series at one brokerage.

    Exclusively owns its entry lots, exit records, history events and status
    transitions. Mutated only through PositionLedger.

    Attributes:
        position_id: Unique identifier
        user_id: Owner of the position
        option_symbol: Option series code (e.g. "PETRA245")
        brokerage: Brokerage name
        direction: Long or short
        status: OPEN, PARTIAL or CLOSED
        open_date: Date of the first entry
        close_date: Date of the final exit (CLOSED only)
        total_quantity: Sum of all lot quantities
        remaining_quantity: Units still open
        average_price: Weighted cost basis of the remaining units
        total_realized_profit: Cumulative realized P&L
        total_realized_profit_percentage: Realized P&L / consumed entry value * 100
        entry_lots: Lots in creation order
        exit_records: Every lot consumption so far
        operations: History of entries and exits
        transitions: Status change log
        version: Optimistic concurrency version, bumped on every commit
    """

    position_id: str = Field(default_factory=_new_id)
    user_id: str
    option_symbol: str
    brokerage: str
    direction: Direction = Direction.LONG
    status: PositionStatus = PositionStatus.OPEN
    open_date: date
    close_date: date | None = None
    total_quantity: int = 0
    remaining_quantity: int = 0
    average_price: Decimal = Decimal("0")
    total_realized_profit: Decimal = Decimal("0")
    total_realized_profit_percentage: Decimal = Decimal("0")

    entry_lots: list[EntryLot] = Field(default_factory=list)
    exit_records: list[ExitRecord] = Field(default_factory=list)
    operations: list[PositionOperation] = Field(default_factory=list)
    transitions: list[StatusTransition] = Field(default_factory=list)

    version: int = 0

    @property
    def active_lots(self) -> list[EntryLot]:
        """Lots with remaining quantity, in creation order."""
        return [lot for lot in self.entry_lots if lot.remaining_quantity > 0]

    @property
    def lots_remaining_quantity(self) -> int:
        """Sum of remaining quantity over all lots."""
        return sum(lot.remaining_quantity for lot in self.entry_lots)

    @property
    def invested_value(self) -> Decimal:
        """Capital still exposed: average_price * remaining_quantity."""
        return self.average_price * self.remaining_quantity

    @property
    def consumed_entry_value(self) -> Decimal:
        """Entry value of every unit consumed so far."""
        return sum((record.entry_total_value for record in self.exit_records), start=Decimal("0"))

    @property
    def entry_transaction_type(self) -> TransactionType:
        return TransactionType.BUY if self.direction == Direction.LONG else TransactionType.SELL

    @property
    def exit_transaction_type(self) -> TransactionType:
        return TransactionType.SELL if self.direction == Direction.LONG else TransactionType.BUY

    def get_lot(self, lot_id: str) -> EntryLot | None:
        for lot in self.entry_lots:
            if lot.lot_id == lot_id:
                return lot
        return None

    def next_lot_sequence(self) -> int:
        return len(self.entry_lots) + 1

    def next_operation_sequence(self) -> int:
        return len(self.operations) + 1

    model_config = ConfigDict(arbitrary_types_allowed=True)  # NOT frozen - mutable


# ==================== Trade Records ====================


class Operation(BaseModel):
    """
    Role-tagged trade record used for external reporting.

    Entry records (ORIGINAL, NEW_ENTRY, CONSOLIDATED_ENTRY) carry exit fields
    as None until they are closed in place. Exit records (PARTIAL_EXIT,
    CONSOLIDATED_RESULT, TOTAL_EXIT) carry both sides.
    """

    operation_id: str = Field(default_factory=_new_id)
    position_id: str
    user_id: str
    option_symbol: str
    brokerage: str
    transaction_type: TransactionType
    trade_type: TradeType | None = None
    entry_date: date
    exit_date: date | None = None
    quantity: int
    entry_unit_price: Decimal
    entry_total_value: Decimal
    exit_unit_price: Decimal | None = None
    exit_total_value: Decimal | None = None
    profit_loss: Decimal = Decimal("0")
    profit_loss_percentage: Decimal = Decimal("0")
    status: OperationStatus = OperationStatus.ACTIVE

    model_config = ConfigDict(arbitrary_types_allowed=True)  # NOT frozen - updated in place


class AverageOperationItem(BaseModel):
    """Membership of one trade record in a group, with its role."""

    item_id: str = Field(default_factory=_new_id)
    operation_id: str
    role: OperationRoleType
    sequence_number: int
    inclusion_date: date


class AverageOperationGroup(BaseModel):
    """
    Sequence of trade records that together represent one logical position.

    Attributes:
        group_id: Unique identifier
        position_id: Position this group reports
        creation_date: Date of the first entry
        status: ACTIVE, PARTIALLY_CLOSED or CLOSED
        total_quantity: Position total quantity
        remaining_quantity: Position remaining quantity
        closed_quantity: total - remaining
        total_profit: Cumulative realized P&L
        avg_exit_price: Average price over all exits so far
        items: Role-tagged members in sequence order
    """

    group_id: str = Field(default_factory=_new_id)
    position_id: str
    creation_date: date
    status: GroupStatus = GroupStatus.ACTIVE
    total_quantity: int = 0
    remaining_quantity: int = 0
    closed_quantity: int = 0
    total_profit: Decimal = Decimal("0")
    avg_exit_price: Decimal = Decimal("0")
    items: list[AverageOperationItem] = Field(default_factory=list)

    def items_with_role(self, role: OperationRoleType) -> list[AverageOperationItem]:
        return [item for item in self.items if item.role == role]

    def find_item(self, operation_id: str) -> AverageOperationItem | None:
        for item in self.items:
            if item.operation_id == operation_id:
                return item
        return None

    def add_item(self, operation_id: str, role: OperationRoleType, inclusion_date: date) -> AverageOperationItem:
        """Append a member with the next sequence number."""
        item = AverageOperationItem(
            operation_id=operation_id,
            role=role,
            sequence_number=len(self.items) + 1,
            inclusion_date=inclusion_date,
        )
        self.items.append(item)
        return item

    def has_consolidation(self) -> bool:
        return any(item.role.is_consolidation for item in self.items)


# ==================== Requests / Results ====================


class OperationContext(BaseModel):
    """Caller identity, passed explicitly into every engine entry point."""

    user_id: str
    request_id: str = Field(default_factory=_new_id)

    model_config = ConfigDict(frozen=True)


class EntryRequest(BaseModel):
    """
    Request to open a position or add a lot to an existing one.

    Example:
        >>> request = EntryRequest(
        ...     option_symbol="PETRA245",
        ...     brokerage="XP",
        ...     entry_date=date(2024, 3, 1),
        ...     quantity=300,
        ...     unit_price=Decimal("10.00"),
        ... )
    """

    option_symbol: str
    brokerage: str
    direction: Direction = Direction.LONG
    entry_date: date
    quantity: int
    unit_price: Decimal

    @field_validator("quantity")
    @classmethod
    def validate_quantity(cls, v: int) -> int:
        """Validate entry quantity is positive."""
        if v <= 0:
            raise ValueError(f"Entry quantity must be positive, got {v}")
        return v

    @field_validator("unit_price")
    @classmethod
    def validate_unit_price(cls, v: Decimal) -> Decimal:
        """Validate unit price is not negative."""
        if v < 0:
            raise ValueError(f"Unit price cannot be negative, got {v}")
        return v

    @property
    def total_value(self) -> Decimal:
        return self.unit_price * self.quantity

    model_config = ConfigDict(frozen=True)


class ExitRequest(BaseModel):
    """
    Request to exit part or all of a position.

    Quantity is deliberately unvalidated here: ExitValidator owns that check
    so that a bad quantity surfaces as ExitValidationError.
    """

    position_id: str
    exit_date: date
    quantity: int
    exit_unit_price: Decimal
    strategy_hint: ExitStrategy | None = None

    model_config = ConfigDict(frozen=True)


class ExitResult(BaseModel):
    """
    Outcome of one processed exit.

    Attributes:
        position_id: Position exited
        exit_quantity: Units exited
        total_exit_value: Proceeds (exit price * quantity)
        total_profit_loss: Realized P&L of this exit
        profit_loss_percentage: total_profit_loss / consumed entry value * 100
        remaining_quantity: Units still open after the exit
        new_status: Position status after the exit
        exit_records: One record per lot consumed
        consolidated_operation_id: CONSOLIDATED_RESULT / TOTAL_EXIT record id, if any
        scenario: Complexity class of the exit
        exit_type: Lifecycle stage of the exit
        day_trade_profit_loss: P&L from DAY draws
        swing_trade_profit_loss: P&L from SWING draws
        average_entry_price: Weighted entry price of the consumed units
        new_average_price: Cost basis of the remaining units
        transition: Status change caused by the exit, if any
    """

    position_id: str
    exit_quantity: int
    total_exit_value: Decimal
    total_profit_loss: Decimal
    profit_loss_percentage: Decimal
    remaining_quantity: int
    new_status: PositionStatus
    exit_records: list[ExitRecord]
    consolidated_operation_id: str | None = None
    scenario: ExitScenario
    exit_type: ExitType
    day_trade_profit_loss: Decimal = Decimal("0")
    swing_trade_profit_loss: Decimal = Decimal("0")
    average_entry_price: Decimal = Decimal("0")
    new_average_price: Decimal = Decimal("0")
    transition: StatusTransition | None = None

    model_config = ConfigDict(frozen=True)


# ==================== Ephemeral Planning Values ====================


@dataclass(frozen=True)
class LotConsumption:
    """One planned draw: which lot, how much, and its trade type."""

    lot: EntryLot
    quantity: int
    trade_type: TradeType

    def __post_init__(self) -> None:
        if self.quantity <= 0:
            raise ValueError(f"Planned draw must be positive, got {self.quantity}")
        if self.quantity > self.lot.remaining_quantity:
            raise ValueError(
                f"Planned draw {self.quantity} exceeds lot {self.lot.sequence_number} "
                f"remaining {self.lot.remaining_quantity}"
            )


@dataclass(frozen=True)
class ConsumptionPlan:
    """Ordered draws satisfying one exit request."""

    consumptions: tuple[LotConsumption, ...]
    total_quantity: int
    exit_date: date
    strategy: ExitStrategy

    @property
    def planned_quantity(self) -> int:
        return sum(c.quantity for c in self.consumptions)

    @property
    def day_trade_quantity(self) -> int:
        return sum(c.quantity for c in self.consumptions if c.trade_type == TradeType.DAY)

    @property
    def swing_trade_quantity(self) -> int:
        return sum(c.quantity for c in self.consumptions if c.trade_type == TradeType.SWING)


@dataclass(frozen=True)
class LotConsumptionResult:
    """Financial outcome of executing one planned draw."""

    lot: EntryLot
    quantity: int
    trade_type: TradeType
    entry_unit_price: Decimal
    exit_unit_price: Decimal
    profit_loss: Decimal
    profit_loss_percentage: Decimal
    entry_total_value: Decimal
    exit_total_value: Decimal


@dataclass(frozen=True)
class ConsumptionResult:
    """Aggregated outcome of executing a whole plan."""

    results: tuple[LotConsumptionResult, ...]
    total_profit_loss: Decimal
    day_trade_profit_loss: Decimal
    swing_trade_profit_loss: Decimal
    total_quantity: int
    day_trade_quantity: int
    swing_trade_quantity: int
    exit_date: date
    average_entry_price: Decimal
    exit_unit_price: Decimal
    strategy: ExitStrategy

    @property
    def total_entry_value(self) -> Decimal:
        return sum((r.entry_total_value for r in self.results), start=Decimal("0"))

    @property
    def total_exit_value(self) -> Decimal:
        return sum((r.exit_total_value for r in self.results), start=Decimal("0"))

    @property
    def dominant_trade_type(self) -> TradeType:
        """DAY when every unit was a day trade, otherwise SWING."""
        return TradeType.DAY if self.swing_trade_quantity == 0 and self.day_trade_quantity > 0 else TradeType.SWING
