"""Fill replay command.

Replays a YAML file of entries and exits through PositionService:

    user_id: trader-1
    fills:
      - action: open
        ref: petr
        option_symbol: PETRA245
        brokerage: XP
        date: 2024-03-01
        quantity: 300
        price: "10.00"
      - action: exit
        ref: petr
        date: 2024-03-04
        quantity: 100
        price: "12.00"
        strategy: auto      # optional: auto | fifo | lifo

`ref` names a position within the file; `add` and `exit` fills refer back to
the `open` fill with the same ref.
"""

import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Literal, Optional, cast

import click
import yaml
from pydantic import BaseModel, Field, ValidationError
from rich.console import Console

from optledger.cli.ui.formatters import (
    create_exit_results_table,
    create_group_table,
    create_positions_table,
    create_summary_table,
)
from optledger.services.positions import (
    Direction,
    EntryRequest,
    ExitRequest,
    ExitResult,
    ExitStrategy,
    OperationContext,
    PositionEngineError,
    PositionService,
    summarize_positions,
)
from optledger.system import LoggerFactory
from optledger.system.config import get_system_config, reload_system_config

console = Console()


class ReplayFill(BaseModel):
    """One line of a replay file."""

    action: Literal["open", "add", "exit"]
    ref: str
    fill_date: date = Field(alias="date")
    quantity: int
    price: Decimal
    option_symbol: str | None = None
    brokerage: str | None = None
    direction: Direction = Direction.LONG
    strategy: ExitStrategy | None = None


class ReplayFile(BaseModel):
    """Parsed replay file."""

    user_id: str = "cli"
    fills: list[ReplayFill] = Field(default_factory=list)


def load_replay_file(path: Path) -> ReplayFile:
    """
    Load and validate a replay file.

    Raises:
        ValueError: If the file is not a mapping or fails validation
    """
    with open(path, encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict):
        raise ValueError(f"Replay file must be a mapping with a 'fills' list: {path}")
    try:
        return ReplayFile.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"Invalid replay file {path}: {e}") from e


def replay_fills(service: PositionService, replay: ReplayFile) -> tuple[dict[str, str], list[ExitResult]]:
    """
    Apply every fill in order.

    Args:
        service: Service to apply fills to
        replay: Parsed replay file

    Returns:
        (position id by ref, exit results in order)

    Raises:
        ValueError: If a fill refers to an unknown ref or an open lacks its series
        PositionEngineError: If the engine rejects a fill
    """
    context = OperationContext(user_id=replay.user_id)
    positions: dict[str, str] = {}
    results: list[ExitResult] = []

    for number, fill in enumerate(replay.fills, start=1):
        if fill.action == "open":
            if fill.option_symbol is None or fill.brokerage is None:
                raise ValueError(f"Fill {number}: open requires option_symbol and brokerage")
            if fill.ref in positions:
                raise ValueError(f"Fill {number}: ref '{fill.ref}' is already open")
            position = service.open_position(
                EntryRequest(
                    option_symbol=fill.option_symbol,
                    brokerage=fill.brokerage,
                    direction=fill.direction,
                    entry_date=fill.fill_date,
                    quantity=fill.quantity,
                    unit_price=fill.price,
                ),
                context,
            )
            positions[fill.ref] = position.position_id
            continue

        if fill.ref not in positions:
            raise ValueError(f"Fill {number}: unknown ref '{fill.ref}'")
        position_id = positions[fill.ref]

        if fill.action == "add":
            current = service.get_position(position_id)
            service.add_entry(
                position_id,
                EntryRequest(
                    option_symbol=current.option_symbol,
                    brokerage=current.brokerage,
                    direction=current.direction,
                    entry_date=fill.fill_date,
                    quantity=fill.quantity,
                    unit_price=fill.price,
                ),
                context,
            )
        else:
            results.append(
                service.process_exit(
                    ExitRequest(
                        position_id=position_id,
                        exit_date=fill.fill_date,
                        quantity=fill.quantity,
                        exit_unit_price=fill.price,
                        strategy_hint=fill.strategy,
                    ),
                    context,
                )
            )

    return positions, results


@click.command("replay")
@click.option(
    "--file",
    "-f",
    "fills_file",
    type=click.Path(exists=True, path_type=Path),
    required=True,
    help="Path to fills file (YAML)",
)
@click.option(
    "--config",
    "-c",
    "config_file",
    type=click.Path(exists=True, path_type=Path),
    help="Path to system configuration file (YAML)",
)
@click.option(
    "--groups/--no-groups",
    default=True,
    help="Show each position's operation group",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set logging level (DEBUG shows per-lot planning)",
)
def replay_command(fills_file: Path, config_file: Optional[Path], groups: bool, log_level: Optional[str]):
    """
    Replay entries and exits from a fills file.

    \b
    Examples:
        # Replay with default configuration
        optledger replay --file fills.yaml

        # Custom engine configuration, debug logging
        optledger replay -f fills.yaml -c config/system.yaml -l debug
    """
    try:
        console.rule("[bold blue]OptLedger Replay[/bold blue]")
        console.print()

        system_config = reload_system_config(config_file)
        if log_level:
            # Type cast since click already validated the choice
            level = cast(Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], log_level.upper())
            system_config.logging.level = level
        LoggerFactory.configure(get_system_config().logging.to_logger_config())

        replay = load_replay_file(fills_file)
        console.print(f"  Fills: [yellow]{len(replay.fills)}[/yellow] from [magenta]{fills_file}[/magenta]")
        console.print()

        service = PositionService(config=system_config.engine.to_engine_config())
        positions, results = replay_fills(service, replay)

        console.print(create_positions_table(service.list_positions()))
        if results:
            console.print(create_exit_results_table(results))
        if groups:
            for position_id in positions.values():
                console.print(
                    create_group_table(service.get_group(position_id), service.get_operations(position_id))
                )
        console.print(create_summary_table(summarize_positions(service.list_positions())))

        console.print()
        console.print("[bold green]✓ Replay completed successfully![/bold green]")
        sys.exit(0)

    except (PositionEngineError, ValueError, yaml.YAMLError) as e:
        console.print()
        console.print(f"[bold red]✗ Replay failed:[/bold red] {e}")
        sys.exit(1)
