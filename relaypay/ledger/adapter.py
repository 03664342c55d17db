"""
Token ledger interface.

The settlement engine never touches balances directly. Everything goes
through a TokenLedger injected at construction, which makes the engine
testable against InMemoryTokenLedger and lets a deployment plug in a real
chain or database backend.

Atomicity contract:
    sp = ledger.savepoint()     open a nested unit of work
    ledger.rollback(sp)         undo everything done since sp
    ledger.release(sp)          keep everything done since sp

Savepoints nest. An open unit is exclusive: while a thread holds a
savepoint, no other thread may read or write the ledger, so a rollback can
never undo work committed by someone else. A backend that cannot undo
writes (for example one that talks to a live chain) must buffer them and
apply on the outermost release.
"""

from abc import ABC, abstractmethod
from typing import Any

from relaypay.core.models import Signature


class TokenLedger(ABC):
    """Balances, allowances and per-account permit nonces for many tokens."""

    # ── Reads ─────────────────────────────────────────────────

    @abstractmethod
    def balance_of(self, token: str, account: str) -> int:
        ...

    @abstractmethod
    def allowance(self, token: str, owner: str, spender: str) -> int:
        ...

    @abstractmethod
    def nonce_of(self, token: str, owner: str) -> int:
        """Current permit nonce of owner on token."""
        ...

    # ── Writes ────────────────────────────────────────────────

    @abstractmethod
    def grant_delegated_allowance(
        self,
        token:     str,
        owner:     str,
        spender:   str,
        value:     int,
        deadline:  int,
        signature: Signature,
    ) -> None:
        """
        Set allowance(owner, spender) to exactly value on the strength of a
        permit signed by owner, and advance owner's nonce by one.

        Raises DelegationRejected when the deadline has passed, the signature
        does not recover to owner, or it was made for another nonce.
        """
        ...

    @abstractmethod
    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        """Move amount from sender to recipient. Raises InsufficientFunds."""
        ...

    @abstractmethod
    def transfer_from(
        self,
        token:     str,
        spender:   str,
        owner:     str,
        recipient: str,
        amount:    int,
    ) -> None:
        """Spend spender's allowance over owner. Raises InsufficientFunds."""
        ...

    # ── Units of work ─────────────────────────────────────────

    @abstractmethod
    def savepoint(self) -> Any:
        ...

    @abstractmethod
    def rollback(self, savepoint: Any) -> None:
        ...

    @abstractmethod
    def release(self, savepoint: Any) -> None:
        ...
