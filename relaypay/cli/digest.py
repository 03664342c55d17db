"""
relaypay digest: print the EIP-712 digest a payer signs for a payment.

Useful when a wallet or HSM signs raw digests instead of typed-data JSON.
"""

from typing import Optional

import click

from relaypay.core.exceptions import ValidationError
from relaypay.core.models import Domain
from relaypay.core.typed_data import (
    PayloadBinding,
    digest_of,
    domain_separator,
    payment_struct_hash,
    signable,
)


@click.command(name="digest")
@click.option("--chain-id", type=int, required=True, help="Chain id of the engine's domain.")
@click.option("--contract", required=True, help="Engine address (verifying contract).")
@click.option("--receiver", required=True, help="Payment receiver.")
@click.option("--nonce", type=int, required=True, help="Payer's current permit nonce on the token.")
@click.option(
    "--binding",
    type=click.Choice([b.value for b in PayloadBinding]),
    default=PayloadBinding.RECEIVER_NONCE.value,
    show_default=True,
    help="Fields covered by the payment signature.",
)
@click.option("--token", default=None, help="Token address (full binding only).")
@click.option("--amount", type=int, default=None, help="Amount in base units (full binding only).")
def digest_command(
    chain_id: int,
    contract: str,
    receiver: str,
    nonce:    int,
    binding:  str,
    token:    Optional[str],
    amount:   Optional[int],
) -> None:
    """Print domain separator, struct hash and digest as 0x-hex."""
    try:
        domain = Domain(chain_id=chain_id, verifying_contract=contract)
        separator = domain_separator(domain)
        struct_hash = payment_struct_hash(
            receiver, nonce, PayloadBinding(binding), token=token, amount=amount
        )
    except (ValidationError, ValueError) as exc:
        raise click.BadParameter(str(exc)) from exc

    click.echo(f"domain_separator: 0x{separator.hex()}")
    click.echo(f"struct_hash:      0x{struct_hash.hex()}")
    click.echo(f"digest:           0x{digest_of(signable(separator, struct_hash)).hex()}")
