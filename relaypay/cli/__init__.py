"""
relaypay/cli/__init__.py

RelayPay CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    relaypay = "relaypay.cli:cli"

Adding a new command:
    1. Create relaypay/cli/your_command.py with a @click.command()
    2. Import it here
    3. cli.add_command(your_command)
"""

import logging

import click

from relaypay.cli.digest import digest_command
from relaypay.cli.records import records_command
from relaypay.cli.verify import verify_command


@click.group()
@click.version_option(package_name="relaypay")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for relaypay modules.",
)
def cli(log_level: str) -> None:
    """
    RelayPay: relayed payment settlement tools.

    \b
    Commands:
      verify    Verify a payment journal: chain, data hashes, signatures.
      records   List payment records, filtered by token, payer or receiver.
      digest    Print the typed-data digest a payer signs for a payment.
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(verify_command)
cli.add_command(records_command)
cli.add_command(digest_command)
