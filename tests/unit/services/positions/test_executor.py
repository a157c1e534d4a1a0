"""Unit tests for ConsumptionExecutor - per-lot P&L arithmetic."""

from datetime import date
from decimal import Decimal

import pytest

from optledger.services.positions import (
    ConsumptionExecutor,
    Direction,
    LotConsumptionPlanner,
    TradeType,
)

D1 = date(2024, 3, 1)
D2 = date(2024, 3, 4)


@pytest.fixture
def executor() -> ConsumptionExecutor:
    return ConsumptionExecutor()


@pytest.fixture
def planner() -> LotConsumptionPlanner:
    return LotConsumptionPlanner()


class TestLongExecution:
    """Test execution for long positions."""

    def test_single_draw(self, executor, planner, make_lot, make_position) -> None:
        """Test (12.00 - 10.00) * 100 = 200.00."""
        position = make_position(make_lot(1, D1, 300, "10.00"))
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("12.00"))

        assert len(result.results) == 1
        draw = result.results[0]
        assert draw.entry_total_value == Decimal("1000.00")
        assert draw.exit_total_value == Decimal("1200.00")
        assert draw.profit_loss == Decimal("200.00")
        assert draw.profit_loss_percentage == Decimal("20")
        assert result.total_profit_loss == Decimal("200.00")
        assert result.total_quantity == 100
        assert result.total_entry_value == Decimal("1000.00")
        assert result.total_exit_value == Decimal("1200.00")
        assert result.average_entry_price == Decimal("10")

    def test_loss(self, executor, planner, make_lot, make_position) -> None:
        """Test a lower exit price yields a negative P&L and percentage."""
        position = make_position(make_lot(1, D1, 100, "10.00"))
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("7.50"))

        assert result.total_profit_loss == Decimal("-250.00")
        assert result.results[0].profit_loss_percentage == Decimal("-25")

    def test_day_swing_split_and_weighted_entry(self, executor, planner, make_lot, make_position) -> None:
        """Test P&L is split by trade type and entry price is weighted over draws."""
        position = make_position(
            make_lot(1, D1, 200, "2.00"),
            make_lot(2, D2, 100, "2.20"),
        )
        plan = planner.plan(position, D2, 150)

        result = executor.execute(plan, Decimal("2.50"))

        assert result.day_trade_profit_loss == Decimal("30.00")
        assert result.swing_trade_profit_loss == Decimal("25.00")
        assert result.total_profit_loss == Decimal("55.00")
        assert result.day_trade_quantity == 100
        assert result.swing_trade_quantity == 50
        # (220.00 + 100.00) / 150
        assert result.average_entry_price == Decimal("2.133333")
        assert result.dominant_trade_type == TradeType.SWING

    def test_all_day_trades_are_dominant_day(self, executor, planner, make_lot, make_position) -> None:
        """Test a plan made only of day trades reports DAY."""
        position = make_position(make_lot(1, D2, 100))
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("11.00"))

        assert result.dominant_trade_type == TradeType.DAY
        assert result.swing_trade_profit_loss == Decimal("0")

    def test_zero_entry_value_percentage(self, executor, planner, make_lot, make_position) -> None:
        """Test percentage is 0 when the lot cost nothing."""
        position = make_position(make_lot(1, D1, 100, "0"))
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("1.00"))

        assert result.total_profit_loss == Decimal("100.00")
        assert result.results[0].profit_loss_percentage == Decimal("0")


class TestShortExecution:
    """Test execution for short positions."""

    def test_sign_inverted(self, executor, planner, make_lot, make_position) -> None:
        """Test buying back above the entry price is a loss for a short."""
        position = make_position(make_lot(1, D1, 100, "10.00"), direction=Direction.SHORT)
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("12.00"), Direction.SHORT)

        assert result.total_profit_loss == Decimal("-200.00")
        assert result.results[0].profit_loss_percentage == Decimal("-20")

    def test_short_profit(self, executor, planner, make_lot, make_position) -> None:
        """Test buying back below the entry price is a gain for a short."""
        position = make_position(make_lot(1, D1, 100, "10.00"), direction=Direction.SHORT)
        plan = planner.plan(position, D2, 100)

        result = executor.execute(plan, Decimal("8.00"), Direction.SHORT)

        assert result.total_profit_loss == Decimal("200.00")


class TestExecutionPurity:
    """Test execution does not touch lots."""

    def test_lots_unchanged(self, executor, planner, make_lot, make_position) -> None:
        """Test remaining quantities are untouched by execution."""
        position = make_position(make_lot(1, D1, 300))
        plan = planner.plan(position, D2, 100)

        executor.execute(plan, Decimal("12.00"))

        assert position.entry_lots[0].remaining_quantity == 300
