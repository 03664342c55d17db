"""
Shared fixtures for the RelayPay test suite.

Accounts, clock and payment builders live in tests/helpers/payments.py.
"""

from typing import Callable

import pytest

from relaypay.core.crypto import Ed25519KeyManager
from relaypay.core.models import Domain, RelayContext
from relaypay.core.typed_data import PayloadBinding
from relaypay.journal.journal import PaymentJournal
from relaypay.ledger.memory import InMemoryTokenLedger
from relaypay.policy.access import AccessPolicy
from relaypay.settlement.engine import SettlementEngine

from helpers.payments import (
    CHAIN_ID,
    ENGINE_ADDRESS,
    FEE_COLLECTOR,
    OTHER_TOKEN,
    OWNER,
    PAYER,
    RELAY,
    TOKEN,
    TOKEN_NAME,
    Clock,
)


@pytest.fixture
def clock():
    return Clock()


@pytest.fixture
def ledger(clock):
    """Ledger where PAYER holds 100 TOKEN at permit nonce 3."""
    ledger = InMemoryTokenLedger(chain_id=CHAIN_ID, clock=clock)
    ledger.register_token(TOKEN, TOKEN_NAME)
    ledger.register_token(OTHER_TOKEN, "Other Token")
    ledger.mint(TOKEN, PAYER, 100)
    ledger.mint(OTHER_TOKEN, PAYER, 100)
    ledger.set_nonce(TOKEN, PAYER, 3)
    return ledger


@pytest.fixture
def journal_key():
    return Ed25519KeyManager.generate()


@pytest.fixture
def make_engine(ledger, journal_key) -> Callable[..., SettlementEngine]:
    """Factory: a fresh engine over the shared ledger."""

    def _make(binding: PayloadBinding = PayloadBinding.RECEIVER_NONCE) -> SettlementEngine:
        return SettlementEngine(
            ledger=ledger,
            domain=Domain(chain_id=CHAIN_ID, verifying_contract=ENGINE_ADDRESS),
            access=AccessPolicy(owner=OWNER, relays=[RELAY]),
            journal=PaymentJournal(journal_key),
            binding=binding,
        )

    return _make


@pytest.fixture
def engine(make_engine):
    return make_engine()


@pytest.fixture
def relay():
    """Trusted relay charging a fee of 2 TOKEN."""
    return RelayContext(
        caller=RELAY,
        fee_collector=FEE_COLLECTOR,
        fee_token=TOKEN,
        fee=2,
    )
