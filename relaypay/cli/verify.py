"""
relaypay/cli/verify.py

relaypay verify: payment journal verification

Usage:
    relaypay verify <journal>                      Human output (default)
    relaypay verify <journal> --format json        Machine-readable JSON
    relaypay verify <journal> --signer <hex>       Require one signing key
    relaypay verify <journal> --quiet              Exit code only

Exit codes:
    0  Journal fully valid  (chain + data hashes + signatures)
    1  Journal has violations
    2  Error  (file missing, malformed JSON)
"""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from relaypay.core.exceptions import JournalError
from relaypay.journal.journal import find_violations, read_entries


@click.command(name="verify")
@click.argument("journal", type=click.Path())
@click.option(
    "--format", "fmt",
    type=click.Choice(["human", "json"], case_sensitive=False),
    default="human",
    show_default=True,
    help="Output format.",
)
@click.option(
    "--signer",
    type=str,
    default=None,
    metavar="PUBKEY_HEX",
    help="Require every entry to be signed by this Ed25519 public key.",
)
@click.option(
    "--quiet",
    is_flag=True,
    default=False,
    help="Suppress all output. Use exit code only (0=valid, 1=invalid, 2=error).",
)
def verify_command(
    journal: str,
    fmt:     str,
    signer:  Optional[str],
    quiet:   bool,
) -> None:
    """Verify a payment journal file."""
    path = Path(journal)
    if not path.exists():
        if not quiet:
            click.echo(f"Error: journal not found: {path}", err=True)
        sys.exit(2)

    try:
        entries = read_entries(path)
    except JournalError as exc:
        if not quiet:
            click.echo(f"Error: {exc}", err=True)
        sys.exit(2)

    violations = find_violations(entries, public_key_hex=signer)
    valid = not violations

    if not quiet:
        if fmt == "json":
            click.echo(json.dumps({
                "journal": str(path),
                "valid": valid,
                "total_entries": len(entries),
                "head_hash": entries[-1].compute_hash() if entries else None,
                "violations": violations,
            }, indent=2))
        else:
            click.echo(f"Journal  : {path}")
            click.echo(f"Entries  : {len(entries)}")
            if entries:
                click.echo(f"Head hash: {entries[-1].compute_hash()}")
            if valid:
                click.echo("Result   : VALID")
            else:
                click.echo(f"Result   : VIOLATED ({len(violations)})")
                for violation in violations:
                    click.echo(f"  - {violation}")

    sys.exit(0 if valid else 1)
