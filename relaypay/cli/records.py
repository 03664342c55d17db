"""
relaypay records: list payment records from a journal, one JSON object per line.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from relaypay.core.exceptions import JournalError, ValidationError
from relaypay.core.models import normalize_address
from relaypay.journal.journal import read_entries


@click.command(name="records")
@click.argument("journal", type=click.Path(exists=True, dir_okay=False))
@click.option("--token", default=None, help="Only records for this token.")
@click.option("--payer", default=None, help="Only records paid by this account.")
@click.option("--receiver", default=None, help="Only records paid to this account.")
def records_command(
    journal:  str,
    token:    Optional[str],
    payer:    Optional[str],
    receiver: Optional[str],
) -> None:
    """List payment records in JOURNAL."""
    try:
        filters = {
            name: normalize_address(value, name)
            for name, value in (("token", token), ("payer", payer), ("receiver", receiver))
            if value is not None
        }
        entries = read_entries(Path(journal))
    except (JournalError, ValidationError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    for entry in entries:
        if all(entry.data.get(name) == value for name, value in filters.items()):
            click.echo(json.dumps({"index": entry.index, **entry.data}, sort_keys=True))
