"""
Deterministic accounts and payment builders shared by the test suite.

Every key is fixed so failures reproduce. Time is pinned: ledgers built by
the fixtures read their clock from a Clock that returns NOW until a test
moves it.
"""

from typing import Optional, Tuple

from eth_account import Account

from relaypay.core.models import (
    DelegationProof,
    PaymentAuthorization,
    Signature,
)
from relaypay.core.typed_data import sign_payment, sign_permit
from relaypay.ledger.memory import InMemoryTokenLedger
from relaypay.settlement.engine import SettlementEngine


CHAIN_ID   = 1
NOW        = 1_700_000_000
TOKEN_NAME = "Gho Token"

PAYER_KEY    = "0x" + "11" * 32
STRANGER_KEY = "0x" + "99" * 32

PAYER          = Account.from_key(PAYER_KEY).address
OWNER          = Account.from_key("0x" + "33" * 32).address
RELAY          = Account.from_key("0x" + "44" * 32).address
FEE_COLLECTOR  = Account.from_key("0x" + "55" * 32).address
STRANGER       = Account.from_key(STRANGER_KEY).address
RECEIVER       = Account.from_key("0x" + "22" * 32).address
OTHER_RECEIVER = Account.from_key("0x" + "66" * 32).address

TOKEN          = "0x" + "aa" * 20
OTHER_TOKEN    = "0x" + "bb" * 20
ENGINE_ADDRESS = "0x" + "e0" * 20


def payer_key(i: int) -> str:
    """Deterministic private key number i."""
    return "0x" + f"{i + 0x1000:064x}"


class Clock:
    """Mutable clock handed to the ledger."""

    def __init__(self, now: int = NOW):
        self.now = now

    def __call__(self) -> int:
        return self.now


def make_payment(
    ledger:        InMemoryTokenLedger,
    engine:        SettlementEngine,
    amount:        int = 50,
    receiver:      str = RECEIVER,
    token:         str = TOKEN,
    key:           str = PAYER_KEY,
    deadline:      int = NOW + 3600,
    nonce:         Optional[int] = None,
    permit_amount: Optional[int] = None,
) -> Tuple[PaymentAuthorization, Signature]:
    """
    Build what a payer hands to a relay: the authorization (carrying the
    permit) and the payment signature, both for the payer's current nonce
    unless `nonce` overrides it.
    """
    payer = Account.from_key(key).address
    if nonce is None:
        nonce = ledger.nonce_of(token, payer)

    permit = sign_permit(
        key,
        token_name=ledger.permit_domain(token).name,
        chain_id=ledger.chain_id,
        token=token,
        owner=payer,
        spender=engine.address,
        value=amount if permit_amount is None else permit_amount,
        nonce=nonce,
        deadline=deadline,
    )
    auth = PaymentAuthorization(
        token=token,
        payer=payer,
        receiver=receiver,
        amount=amount,
        delegation=DelegationProof(deadline=deadline, signature=permit),
    )
    signature = sign_payment(
        key,
        engine.domain,
        receiver,
        nonce,
        engine.binding,
        token=token,
        amount=amount,
    )
    return auth, signature


def snapshot(ledger: InMemoryTokenLedger, engine: SettlementEngine, token: str = TOKEN) -> dict:
    """Everything a settlement may touch, for before/after comparisons."""
    return {
        "payer": ledger.balance_of(token, PAYER),
        "receiver": ledger.balance_of(token, RECEIVER),
        "engine": ledger.balance_of(token, engine.address),
        "collector": ledger.balance_of(token, FEE_COLLECTOR),
        "nonce": ledger.nonce_of(token, PAYER),
        "allowance": ledger.allowance(token, PAYER, engine.address),
        "journal": len(engine.journal) if engine.journal is not None else 0,
    }
