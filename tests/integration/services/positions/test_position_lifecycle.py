"""
Integration tests for the position engine.

Tests end-to-end flows through PositionService built from system
configuration: multi-lot positions exited across several days, consolidated
trade records, and independent positions processed in parallel.
"""

import threading
from datetime import date
from decimal import Decimal

import pytest

from optledger.services.positions import (
    EntryRequest,
    ExitRequest,
    ExitScenario,
    ExitType,
    GroupStatus,
    OperationContext,
    OperationRoleType,
    OperationStatus,
    PositionService,
    PositionStatus,
    TradeType,
    summarize_positions,
)
from optledger.system.config import SystemConfig


@pytest.fixture
def ctx() -> OperationContext:
    return OperationContext(user_id="trader-1")


def make_service(tmp_path, yaml_text: str = "") -> PositionService:
    config_file = tmp_path / "system.yaml"
    config_file.write_text(yaml_text)
    system_config = SystemConfig.load(config_file)
    return PositionService(config=system_config.engine.to_engine_config())


def entry(entry_date: date, quantity: int, price: str, symbol: str = "PETRA245") -> EntryRequest:
    return EntryRequest(
        option_symbol=symbol,
        brokerage="XP",
        entry_date=entry_date,
        quantity=quantity,
        unit_price=Decimal(price),
    )


def exit_(position_id: str, exit_date: date, quantity: int, price: str) -> ExitRequest:
    return ExitRequest(
        position_id=position_id,
        exit_date=exit_date,
        quantity=quantity,
        exit_unit_price=Decimal(price),
    )


class TestMultiLotLifecycle:
    """Test a two-lot position exited in three steps."""

    def test_lifecycle(self, tmp_path, ctx) -> None:
        """Test classification, lot matching and the consolidated outcome."""
        service = make_service(tmp_path)
        position = service.open_position(entry(date(2024, 3, 1), 100, "10.00"), ctx)
        service.add_entry(position.position_id, entry(date(2024, 3, 4), 100, "12.00"), ctx)

        # 1. Partial exit drawn from the oldest lot
        first = service.process_exit(exit_(position.position_id, date(2024, 3, 5), 50, "13.00"), ctx)
        assert first.exit_type == ExitType.FIRST_PARTIAL
        assert first.scenario == ExitScenario.SINGLE_LOT
        assert [(r.lot_sequence_number, r.quantity) for r in first.exit_records] == [(1, 50)]
        assert first.total_profit_loss == Decimal("150.00")

        # 2. Exit spanning the partially consumed lot and the untouched one
        second = service.process_exit(exit_(position.position_id, date(2024, 3, 5), 100, "13.00"), ctx)
        assert second.exit_type == ExitType.SUBSEQUENT_PARTIAL
        assert second.scenario == ExitScenario.COMPLEX_MULTIPLE_SOURCES
        assert [(r.lot_sequence_number, r.quantity) for r in second.exit_records] == [(1, 50), (2, 50)]
        assert second.total_profit_loss == Decimal("200.00")

        # 3. Final exit closes the position
        third = service.process_exit(exit_(position.position_id, date(2024, 3, 6), 50, "13.00"), ctx)
        assert third.exit_type == ExitType.FINAL_PARTIAL
        assert third.new_status == PositionStatus.CLOSED

        stored = service.get_position(position.position_id)
        assert stored.total_realized_profit == Decimal("400.00")
        assert stored.total_realized_profit_percentage == Decimal("18.181818")
        assert all(lot.is_fully_consumed for lot in stored.entry_lots)
        assert all(record.trade_type == TradeType.SWING for record in stored.exit_records)

        group = service.get_group(position.position_id)
        assert group.status == GroupStatus.CLOSED
        assert [item.role for item in group.items] == [
            OperationRoleType.ORIGINAL,
            OperationRoleType.NEW_ENTRY,
            OperationRoleType.CONSOLIDATED_ENTRY,
            OperationRoleType.TOTAL_EXIT,
            OperationRoleType.PARTIAL_EXIT,
            OperationRoleType.PARTIAL_EXIT,
            OperationRoleType.PARTIAL_EXIT,
        ]

        visible = [op for op in service.get_operations(position.position_id) if op.status != OperationStatus.HIDDEN]
        assert len(visible) == 1
        assert visible[0].quantity == 200
        assert visible[0].profit_loss == Decimal("400.00")
        assert visible[0].profit_loss_percentage == Decimal("18.181818")
        assert visible[0].exit_unit_price == Decimal("13")
        assert visible[0].status == OperationStatus.WINNER

    def test_configured_lifo_and_zero_status(self, tmp_path, ctx) -> None:
        """Test engine settings from YAML reach lot selection and result status."""
        service = make_service(
            tmp_path,
            "engine:\n  default_exit_strategy: lifo\n  zero_result_status: loser\n",
        )
        position = service.open_position(entry(date(2024, 3, 1), 100, "10.00"), ctx)
        service.add_entry(position.position_id, entry(date(2024, 3, 4), 100, "10.00"), ctx)

        first = service.process_exit(exit_(position.position_id, date(2024, 3, 4), 150, "10.00"), ctx)
        assert [(r.lot_sequence_number, r.trade_type) for r in first.exit_records] == [
            (2, TradeType.DAY),
            (1, TradeType.SWING),
        ]

        service.process_exit(exit_(position.position_id, date(2024, 3, 5), 50, "10.00"), ctx)

        visible = [op for op in service.get_operations(position.position_id) if op.status != OperationStatus.HIDDEN]
        assert [op.status for op in visible] == [OperationStatus.LOSER]


class TestIndependentPositions:
    """Test positions processed in parallel do not interfere."""

    def test_parallel_positions(self, tmp_path, ctx) -> None:
        service = make_service(tmp_path)
        symbols = [f"OPT{n}" for n in range(8)]
        position_ids = [
            service.open_position(entry(date(2024, 3, 1), 300, "10.00", symbol), ctx).position_id
            for symbol in symbols
        ]
        errors: list[Exception] = []

        def close(position_id: str) -> None:
            try:
                for day, price in [(4, "12.00"), (5, "11.00"), (6, "9.50")]:
                    service.process_exit(exit_(position_id, date(2024, 3, day), 100, price), ctx)
            except Exception as exc:
                errors.append(exc)

        threads = [threading.Thread(target=close, args=(position_id,)) for position_id in position_ids]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        positions = service.list_positions()
        assert all(p.status == PositionStatus.CLOSED and p.version == 4 for p in positions)

        summary = summarize_positions(positions)
        assert summary.closed_positions == 8
        assert summary.total_realized_profit == Decimal("2000.00")
        assert summary.average_realized_percentage == Decimal("8.333333")
