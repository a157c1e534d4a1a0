"""Rich table formatters for CLI output."""

from decimal import Decimal

from rich.table import Table

from optledger.services.positions import (
    AverageOperationGroup,
    ExitResult,
    Operation,
    OperationStatus,
    Position,
    PositionSummary,
)

_STATUS_STYLES = {
    OperationStatus.ACTIVE: "white",
    OperationStatus.HIDDEN: "dim",
    OperationStatus.WINNER: "green",
    OperationStatus.LOSER: "red",
}


def format_money(value: Decimal | None) -> str:
    """Format a Decimal amount with two places, or '-' for None."""
    if value is None:
        return "-"
    return f"{value:,.2f}"


def format_profit(value: Decimal) -> str:
    """Format P&L colored by sign."""
    color = "green" if value >= 0 else "red"
    return f"[{color}]{value:,.2f}[/{color}]"


def create_positions_table(positions: list[Position]) -> Table:
    """
    Create a Rich table listing positions.

    Args:
        positions: Positions to list

    Returns:
        Populated Rich Table
    """
    table = Table(title="Positions")
    table.add_column("Position", style="cyan", no_wrap=True)
    table.add_column("Symbol", style="magenta")
    table.add_column("Brokerage", style="white")
    table.add_column("Dir", style="white")
    table.add_column("Status", style="yellow")
    table.add_column("Total", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("Avg Price", justify="right")
    table.add_column("Realized", justify="right")
    table.add_column("Realized %", justify="right")

    for position in positions:
        table.add_row(
            position.position_id[:8],
            position.option_symbol,
            position.brokerage,
            position.direction.value,
            position.status.value,
            f"{position.total_quantity:,}",
            f"{position.remaining_quantity:,}",
            format_money(position.average_price),
            format_profit(position.total_realized_profit),
            f"{position.total_realized_profit_percentage:.2f}",
        )
    return table


def create_exit_results_table(results: list[ExitResult]) -> Table:
    """
    Create a Rich table of processed exits.

    Args:
        results: Exit results in processing order

    Returns:
        Populated Rich Table
    """
    table = Table(title="Exits")
    table.add_column("Position", style="cyan", no_wrap=True)
    table.add_column("Type", style="yellow")
    table.add_column("Scenario", style="white")
    table.add_column("Qty", justify="right")
    table.add_column("Proceeds", justify="right")
    table.add_column("P&L", justify="right")
    table.add_column("P&L %", justify="right")
    table.add_column("Day P&L", justify="right")
    table.add_column("Swing P&L", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_column("New Avg", justify="right")

    for result in results:
        table.add_row(
            result.position_id[:8],
            result.exit_type.value,
            result.scenario.value,
            f"{result.exit_quantity:,}",
            format_money(result.total_exit_value),
            format_profit(result.total_profit_loss),
            f"{result.profit_loss_percentage:.2f}",
            format_profit(result.day_trade_profit_loss),
            format_profit(result.swing_trade_profit_loss),
            f"{result.remaining_quantity:,}",
            format_money(result.new_average_price),
        )
    return table


def create_group_table(group: AverageOperationGroup, operations: list[Operation]) -> Table:
    """
    Create a Rich table of a position's trade record role chain.

    Args:
        group: Operation group of the position
        operations: Trade records of the position

    Returns:
        Populated Rich Table, one row per group item in sequence order
    """
    by_id = {operation.operation_id: operation for operation in operations}

    table = Table(title=f"Operation Group {group.group_id[:8]} ({group.status.value})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Role", style="cyan")
    table.add_column("Status")
    table.add_column("Side", style="white")
    table.add_column("Qty", justify="right")
    table.add_column("Entry", justify="right")
    table.add_column("Exit", justify="right")
    table.add_column("P&L", justify="right")

    for item in sorted(group.items, key=lambda i: i.sequence_number):
        operation = by_id.get(item.operation_id)
        if operation is None:
            table.add_row(str(item.sequence_number), item.role.value, "[red]missing[/red]", "", "", "", "", "")
            continue
        style = _STATUS_STYLES[operation.status]
        table.add_row(
            str(item.sequence_number),
            item.role.value,
            f"[{style}]{operation.status.value}[/{style}]",
            operation.transaction_type.value,
            f"{operation.quantity:,}",
            format_money(operation.entry_unit_price),
            format_money(operation.exit_unit_price),
            format_profit(operation.profit_loss),
        )
    return table


def create_summary_table(summary: PositionSummary) -> Table:
    """
    Create a Rich table for a position summary.

    Returns:
        Populated two-column Rich Table
    """
    table = Table(title="Summary")
    table.add_column("Metric", style="cyan", no_wrap=True)
    table.add_column("Value", style="white", justify="right")

    table.add_row("Positions", str(summary.total_positions))
    table.add_row("Open", str(summary.open_positions))
    table.add_row("Partial", str(summary.partial_positions))
    table.add_row("Closed", str(summary.closed_positions))
    table.add_row("Long / Short", f"{summary.long_positions} / {summary.short_positions}")
    table.add_row("Invested", format_money(summary.total_invested_value))
    table.add_row("Realized", format_profit(summary.total_realized_profit))
    table.add_row("Avg Realized %", f"{summary.average_realized_percentage:.2f}")
    return table
