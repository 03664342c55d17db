"""
relaypay/__init__.py

RelayPay: relayed, permit-backed token payments.

A payer signs a payment intent and a token permit off-chain; a trusted relay
submits both; the SettlementEngine verifies the intent, consumes the permit,
pulls the funds, pays the relay and forwards the rest to the receiver, all
in one atomic unit. verify_data() predicts the outcome without committing
anything.
"""

__version__ = "0.3.0"

from relaypay.core.exceptions import (
    RelayPayError,
    InvalidSignature,
    LedgerError,
    DelegationRejected,
    InsufficientFunds,
    FeeError,
    PausedState,
    NotPausedState,
    Unauthorized,
    DryRunInvariantError,
)
from relaypay.core.models import (
    Signature,
    DelegationProof,
    PaymentAuthorization,
    PaymentRecord,
    RelayContext,
    Domain,
    DryRunResult,
)
from relaypay.core.typed_data import PayloadBinding, sign_payment, sign_permit
from relaypay.ledger import TokenLedger, InMemoryTokenLedger
from relaypay.policy import AccessPolicy
from relaypay.journal import PaymentJournal
from relaypay.settlement import SettlementEngine

__all__ = [
    # Engine
    "SettlementEngine",
    "AccessPolicy",
    "PaymentJournal",
    "TokenLedger",
    "InMemoryTokenLedger",
    # Data model
    "Signature",
    "DelegationProof",
    "PaymentAuthorization",
    "PaymentRecord",
    "RelayContext",
    "Domain",
    "DryRunResult",
    "PayloadBinding",
    # Payer-side helpers
    "sign_payment",
    "sign_permit",
    # Errors
    "RelayPayError",
    "InvalidSignature",
    "LedgerError",
    "DelegationRejected",
    "InsufficientFunds",
    "FeeError",
    "PausedState",
    "NotPausedState",
    "Unauthorized",
    "DryRunInvariantError",
]
