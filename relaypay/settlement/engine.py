"""
Settlement engine for relayed, permit-backed token payments.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterator, List, Optional

from eth_account.messages import SignableMessage

from relaypay.core.exceptions import (
    DryRunCompleted,
    DryRunInvariantError,
    InvalidSignature,
    LedgerError,
    RelayPayError,
)
from relaypay.core.models import (
    Domain,
    DryRunResult,
    PaymentAuthorization,
    PaymentRecord,
    RelayContext,
    Signature,
)
from relaypay.core.typed_data import (
    PayloadBinding,
    digest_of,
    domain_separator,
    payment_struct_hash,
    recover_signer,
    signable,
)
from relaypay.journal.journal import PaymentJournal
from relaypay.ledger.adapter import TokenLedger
from relaypay.policy.access import AccessPolicy
from relaypay.relay.fees import FeeMechanism, TransferRelayFee


logger = logging.getLogger(__name__)


class SettlementEngine:
    """
    Verifies a payer's signed intent and settles it in one atomic unit.

    pay() runs, in order:
        1. verify the payment signature against the payer's current nonce
        2. submit the payer's permit (grants exactly `amount`, bumps nonce)
        3. pull `amount` from the payer into the engine's custody
        4. charge the relay fee
        5. forward the engine's whole balance of the token to the receiver
        6. emit a payment record

    Either every step takes effect or none does. The engine holds no token
    balance between calls.

    verify_data() runs the same six steps inside a unit that is always rolled
    back, and reports whether they would have succeeded.

    Entry points of one engine are serialised by a re-entrant lock, so no two
    settlements interleave.
    """

    def __init__(
        self,
        ledger: TokenLedger,
        domain: Domain,
        access: AccessPolicy,
        fees: Optional[FeeMechanism] = None,
        journal: Optional[PaymentJournal] = None,
        binding: PayloadBinding = PayloadBinding.RECEIVER_NONCE,
    ):
        """
        Args:
            ledger:  Token ledger holding balances, allowances and permit nonces
            domain:  EIP-712 domain; domain.verifying_contract is also the
                     custody account funds pass through
            access:  Owner, pause switch and trusted relays
            fees:    Relay fee mechanism (TransferRelayFee by default)
            journal: Where committed payment records are emitted, if anywhere
            binding: Fields covered by the payer's payment signature
        """
        self.ledger = ledger
        self.domain = domain
        self.access = access
        self.fees = fees or TransferRelayFee()
        self.journal = journal
        self.binding = PayloadBinding(binding)

        self._lock = threading.RLock()
        self._domain_separator = domain_separator(domain)

    @property
    def address(self) -> str:
        """Custody account of this engine."""
        return self.domain.verifying_contract

    # ── Authorization ─────────────────────────────────────────

    def _payment_message(self, auth: PaymentAuthorization) -> SignableMessage:
        nonce = self.ledger.nonce_of(auth.token, auth.payer)
        return signable(
            self._domain_separator,
            payment_struct_hash(
                auth.receiver,
                nonce,
                self.binding,
                token=auth.token,
                amount=auth.amount,
            ),
        )

    def payment_digest(self, auth: PaymentAuthorization) -> bytes:
        """
        Digest the payer must sign for auth at the current nonce.

        Raises LedgerError when the ledger does not know auth.token.
        """
        return digest_of(self._payment_message(auth))

    def verify_signature(self, auth: PaymentAuthorization, signature: Signature) -> bool:
        """
        True iff signature was made by auth.payer over the payment struct at
        the payer's current nonce. Side-effect free; a malformed signature or
        a token the ledger does not know gives False.
        """
        try:
            message = self._payment_message(auth)
        except LedgerError:
            return False
        signer = recover_signer(message, signature)
        return signer is not None and signer == auth.payer

    # ── Settlement ────────────────────────────────────────────

    def pay(
        self,
        auth: PaymentAuthorization,
        signature: Signature,
        relay: RelayContext,
    ) -> PaymentRecord:
        """
        Settle auth. Only a trusted relay may call this, and only while the
        engine is unpaused.

        Returns:
            The emitted payment record.

        Raises:
            PausedState, Unauthorized: before any side effect
            InvalidSignature, DelegationRejected, InsufficientFunds, FeeError:
                after a full rollback
        """
        with self._lock:
            self.access.require_not_paused()
            self.access.require_relay(relay.caller)
            try:
                with self._atomic() as staged:
                    record = self._settle(auth, signature, relay, staged)
            except RelayPayError as exc:
                logger.warning(
                    "Payment rejected payer=%s receiver=%s token=%s: %s: %s",
                    auth.payer, auth.receiver, auth.token, type(exc).__name__, exc,
                )
                raise
            logger.info(
                "Payment settled payer=%s receiver=%s token=%s amount=%d forwarded=%d",
                record.payer, record.receiver, record.token, record.amount, record.forwarded,
            )
            return record

    def _settle(
        self,
        auth: PaymentAuthorization,
        signature: Signature,
        relay: RelayContext,
        staged: List[PaymentRecord],
    ) -> PaymentRecord:
        if not self.verify_signature(auth, signature):
            raise InvalidSignature(
                "Payment signature does not recover to payer",
                {"payer": auth.payer},
            )

        account_nonce = self.ledger.nonce_of(auth.token, auth.payer)
        self._apply_delegation(auth)

        self.ledger.transfer_from(
            auth.token, self.address, auth.payer, self.address, auth.amount
        )

        fee = self.fees.charge(self.ledger, self.address, relay)

        forwarded = self.ledger.balance_of(auth.token, self.address)
        if forwarded:
            self.ledger.transfer(auth.token, self.address, auth.receiver, forwarded)

        record = PaymentRecord(
            token=auth.token,
            payer=auth.payer,
            receiver=auth.receiver,
            amount=auth.amount,
            forwarded=forwarded,
            fee=fee,
            relay=relay.caller,
            account_nonce=account_nonce,
        )
        staged.append(record)
        return record

    def _apply_delegation(self, auth: PaymentAuthorization) -> None:
        """Grant this engine an allowance of exactly auth.amount via the payer's permit."""
        self.ledger.grant_delegated_allowance(
            auth.token,
            auth.payer,
            self.address,
            auth.amount,
            auth.delegation.deadline,
            auth.delegation.signature,
        )

    @contextmanager
    def _atomic(self) -> Iterator[List[PaymentRecord]]:
        """
        One all-or-nothing unit over the ledger and the journal.

        The savepoint holds the ledger exclusively until it is closed, so
        engines sharing one ledger run their units one after another.
        Records staged inside the unit reach the journal only if the body
        completes; any exception rolls the ledger back to the savepoint.
        """
        savepoint = self.ledger.savepoint()
        staged: List[PaymentRecord] = []
        try:
            yield staged
            if self.journal is not None:
                for record in staged:
                    self.journal.append_payment(record)
        except BaseException:
            self.ledger.rollback(savepoint)
            raise
        else:
            self.ledger.release(savepoint)

    # ── Dry run ───────────────────────────────────────────────

    def verify_data_reverting(
        self,
        auth: PaymentAuthorization,
        signature: Signature,
        relay: RelayContext,
    ) -> None:
        """
        Run every settlement step, then revert with DryRunCompleted.

        Always raises. Nothing it does survives, so it carries no pause or
        relay guard of its own.
        """
        with self._lock:
            with self._atomic() as staged:
                record = self._settle(auth, signature, relay, staged)
                raise DryRunCompleted({
                    "forwarded": record.forwarded,
                    "fee": record.fee,
                    "account_nonce": record.account_nonce,
                })

    def simulate(
        self,
        auth: PaymentAuthorization,
        signature: Signature,
        relay: RelayContext,
    ) -> DryRunResult:
        """
        Predict whether pay(auth, signature, relay) would succeed right now.

        Same guards as pay(). Never mutates balances, allowances, nonces or
        the journal.

        Raises:
            PausedState, Unauthorized: from the guards
            DryRunInvariantError: the reverting run returned normally
        """
        with self._lock:
            self.access.require_not_paused()
            self.access.require_relay(relay.caller)
            try:
                self.verify_data_reverting(auth, signature, relay)
            except DryRunCompleted as done:
                logger.debug("Dry run succeeded payer=%s", auth.payer)
                return DryRunResult(ok=True, reason=done.message, details=done.details)
            except RelayPayError as exc:
                logger.debug("Dry run failed payer=%s: %s", auth.payer, exc)
                return DryRunResult(
                    ok=False,
                    reason=exc.message,
                    error=type(exc).__name__,
                    details=exc.details,
                )
            except Exception as exc:
                logger.exception("Dry run aborted unexpectedly payer=%s", auth.payer)
                return DryRunResult(ok=False, reason=str(exc), error=type(exc).__name__)
            raise DryRunInvariantError(
                "verify_data_reverting returned without reverting"
            )

    def verify_data(
        self,
        auth: PaymentAuthorization,
        signature: Signature,
        relay: RelayContext,
    ) -> bool:
        """True iff an immediately following pay() with the same arguments would succeed."""
        return self.simulate(auth, signature, relay).ok

    # ── Administration ────────────────────────────────────────

    def pause(self, caller: str) -> None:
        self.access.pause(caller)

    def unpause(self, caller: str) -> None:
        self.access.unpause(caller)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        self.access.transfer_ownership(caller, new_owner)

    @property
    def paused(self) -> bool:
        return self.access.is_paused
