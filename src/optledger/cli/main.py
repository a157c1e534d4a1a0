"""OptLedger CLI main entry point."""

import click

from optledger import __version__
from optledger.cli.commands import replay_command


@click.group()
@click.version_option(version=__version__)
def main():
    """OptLedger - Option Position Ledger"""
    pass


# Register commands
main.add_command(replay_command)


if __name__ == "__main__":
    main()
