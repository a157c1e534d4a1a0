"""Unit tests for ExitValidator."""

from datetime import date
from decimal import Decimal

import pytest

from optledger.services.positions import (
    ConsistencyFault,
    ExitValidationError,
    ExitValidator,
    PositionStatus,
)

D1 = date(2024, 3, 1)
D2 = date(2024, 3, 4)
D3 = date(2024, 3, 10)


@pytest.fixture
def validator() -> ExitValidator:
    return ExitValidator()


class TestRequestValidation:
    """Test caller errors raise ExitValidationError."""

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity(self, validator, make_lot, make_position, quantity) -> None:
        """Test zero or negative quantity is rejected."""
        position = make_position(make_lot(1, D1, 100))

        with pytest.raises(ExitValidationError, match="must be positive"):
            validator.validate_exit(position, quantity)

    def test_quantity_above_available(self, validator, make_lot, make_position) -> None:
        """Test a request above the lots' remaining total is rejected."""
        position = make_position(make_lot(1, D1, 100), make_lot(2, D2, 100, remaining=20))

        with pytest.raises(ExitValidationError, match="requested 121, available 120"):
            validator.validate_exit(position, 121)

    def test_negative_price(self, validator, make_lot, make_position) -> None:
        """Test a negative exit price is rejected."""
        position = make_position(make_lot(1, D1, 100))

        with pytest.raises(ExitValidationError, match="cannot be negative"):
            validator.validate_exit(position, 10, Decimal("-0.01"))

    def test_zero_price_accepted(self, validator, make_lot, make_position) -> None:
        """Test an option may be exited at zero."""
        position = make_position(make_lot(1, D1, 100))

        validator.validate_exit(position, 100, Decimal("0"))

    def test_closed_position(self, validator, make_lot, make_position) -> None:
        """Test exits from a closed position are rejected."""
        position = make_position(make_lot(1, D1, 100, remaining=0))
        assert position.status == PositionStatus.CLOSED

        with pytest.raises(ExitValidationError, match="is closed"):
            validator.validate_exit(position, 1)

    def test_no_lots_available(self, validator, make_lot, make_position) -> None:
        """Test a non-closed position without active lots is rejected."""
        position = make_position(make_lot(1, D1, 100, remaining=0), status=PositionStatus.PARTIAL)

        with pytest.raises(ExitValidationError, match="no lots available"):
            validator.validate_exit(position, 1)

    def test_valid_request_passes(self, validator, make_lot, make_position) -> None:
        """Test a satisfiable request raises nothing and changes nothing."""
        position = make_position(make_lot(1, D1, 100), make_lot(2, D2, 50))
        before = position.model_copy(deep=True)

        validator.validate_exit(position, 150, Decimal("12.00"))

        assert position == before

    def test_exit_before_open_date(self, validator, make_lot, make_position) -> None:
        """Test an exit dated before the position was opened is rejected."""
        position = make_position(make_lot(1, D2, 100))

        with pytest.raises(ExitValidationError, match="before position open date"):
            validator.validate_exit(position, 50, Decimal("12.00"), D1)

    def test_lots_entered_after_exit_date_not_available(self, validator, make_lot, make_position) -> None:
        """Test only lots held on the exit date count towards the available quantity."""
        position = make_position(make_lot(1, D1, 100), make_lot(2, D3, 100))

        with pytest.raises(ExitValidationError, match="requested 150, available 100"):
            validator.validate_exit(position, 150, Decimal("12.00"), D2)

    def test_exit_on_lot_entry_date_counts_lot(self, validator, make_lot, make_position) -> None:
        """Test a lot entered on the exit date is available."""
        position = make_position(make_lot(1, D1, 100), make_lot(2, D2, 100))

        validator.validate_exit(position, 200, Decimal("12.00"), D2)


class TestConsistencyChecks:
    """Test corrupted state raises ConsistencyFault."""

    def test_lot_sum_mismatch(self, validator, make_lot, make_position) -> None:
        """Test lots disagreeing with position remaining is a fault, not a user error."""
        position = make_position(make_lot(1, D1, 100), remaining=90, status=PositionStatus.PARTIAL)

        with pytest.raises(ConsistencyFault, match="does not match position remaining"):
            validator.validate_exit(position, 10)

    def test_lot_sum_mismatch_reported_before_quantity_check(self, validator, make_lot, make_position) -> None:
        """Test corrupted totals are a fault even when the request also exceeds the lots."""
        position = make_position(make_lot(1, D1, 100), remaining=300, status=PositionStatus.PARTIAL)

        with pytest.raises(ConsistencyFault, match="Lot remaining total 100 does not match position remaining 300"):
            validator.validate_exit(position, 200)

    def test_lot_remaining_above_quantity(self, validator, make_lot, make_position) -> None:
        """Test a lot with more remaining than its size is a fault."""
        position = make_position(make_lot(1, D1, 100, remaining=150), remaining=150, status=PositionStatus.PARTIAL)

        with pytest.raises(ConsistencyFault, match="outside"):
            validator.validate_exit(position, 10)

    def test_lot_remaining_negative(self, validator, make_lot, make_position) -> None:
        """Test a lot with negative remaining is a fault."""
        position = make_position(
            make_lot(1, D1, 100, remaining=-5),
            make_lot(2, D2, 100),
            remaining=95,
            status=PositionStatus.PARTIAL,
        )

        with pytest.raises(ConsistencyFault, match="outside"):
            validator.validate_lot_integrity(position)

    def test_consumed_flag_mismatch_only_warns(self, validator, make_lot, make_position, captured_logs) -> None:
        """Test a stale is_fully_consumed flag is logged but not fatal."""
        lot = make_lot(1, D1, 100)
        lot.is_fully_consumed = True
        position = make_position(lot)

        validator.validate_exit(position, 10)

        assert "positions.validator.consumed_flag_mismatch" in captured_logs()

