"""Configuration for the position engine.

Defines decimal precision, default lot selection and result classification.
"""

from dataclasses import dataclass

from optledger.services.positions.models import ExitStrategy, OperationStatus


@dataclass
class PositionEngineConfig:
    """Position engine settings.

    Attributes:
        price_precision: Decimal places for average and exit prices (ROUND_HALF_UP)
        percentage_precision: Decimal places for P&L percentages (ROUND_HALF_UP)
        default_exit_strategy: Lot selection used when an exit carries no hint
        zero_result_status: Status given to a closing record with exactly zero P&L
        validate_average_price: Run the post-exit average price sanity check

    Example:
        >>> config = PositionEngineConfig(default_exit_strategy="fifo")
        >>> config.exit_strategy
        <ExitStrategy.FIFO: 'fifo'>
    """

    price_precision: int = 6
    percentage_precision: int = 6
    default_exit_strategy: ExitStrategy | str = ExitStrategy.AUTO
    zero_result_status: OperationStatus | str = OperationStatus.WINNER
    validate_average_price: bool = True

    def __post_init__(self) -> None:
        """Validate precision and normalize enum settings."""
        if self.price_precision < 0:
            raise ValueError(f"price_precision must be non-negative, got {self.price_precision}")
        if self.percentage_precision < 0:
            raise ValueError(f"percentage_precision must be non-negative, got {self.percentage_precision}")

        try:
            self.default_exit_strategy = ExitStrategy(self.default_exit_strategy)
        except ValueError:
            valid = [s.value for s in ExitStrategy]
            raise ValueError(
                f"default_exit_strategy must be one of {valid}, got '{self.default_exit_strategy}'"
            ) from None

        try:
            status = OperationStatus(self.zero_result_status)
        except ValueError:
            status = None
        if status not in (OperationStatus.WINNER, OperationStatus.LOSER):
            raise ValueError(f"zero_result_status must be 'winner' or 'loser', got '{self.zero_result_status}'")
        self.zero_result_status = status

    @property
    def exit_strategy(self) -> ExitStrategy:
        return ExitStrategy(self.default_exit_strategy)

    @property
    def zero_status(self) -> OperationStatus:
        return OperationStatus(self.zero_result_status)
