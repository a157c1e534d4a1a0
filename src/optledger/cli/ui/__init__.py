"""CLI UI components - table formatters."""

from optledger.cli.ui.formatters import (
    create_exit_results_table,
    create_group_table,
    create_positions_table,
    create_summary_table,
)

__all__ = [
    "create_exit_results_table",
    "create_group_table",
    "create_positions_table",
    "create_summary_table",
]
