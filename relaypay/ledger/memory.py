"""
In-memory token ledger.

Reference TokenLedger used by tests, the CLI and local simulations. It
behaves like a set of ERC-20 tokens with ERC-2612 permits: each token has
its own EIP-712 domain (token name, version, chain id, token address) and
its own per-owner permit nonce.

Savepoints are full snapshots of the three state maps. An open savepoint
holds the ledger lock, so a snapshot restored by rollback() can only ever
contain changes made by the thread that opened it.
"""

import logging
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

from relaypay.core.exceptions import (
    DelegationRejected,
    InsufficientFunds,
    LedgerError,
)
from relaypay.core.models import (
    UINT256_MAX,
    ZERO_ADDRESS,
    Domain,
    Signature,
    normalize_address,
)
from relaypay.core.time import unix_now
from relaypay.core.typed_data import (
    domain_separator,
    permit_struct_hash,
    recover_signer,
    signable,
)
from relaypay.ledger.adapter import TokenLedger


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenInfo:
    address: str
    name: str
    version: str = "1"


_State = Tuple[
    Dict[Tuple[str, str], int],
    Dict[Tuple[str, str, str], int],
    Dict[Tuple[str, str], int],
]


class InMemoryTokenLedger(TokenLedger):
    """
    Thread-safe in-process ledger with snapshot savepoints.

    Args:
        chain_id: Chain id baked into every token's permit domain.
        clock:    Returns current unix seconds; permits are valid while
                  clock() <= deadline.
    """

    def __init__(self, chain_id: int = 1, clock: Callable[[], int] = unix_now):
        self.chain_id = chain_id
        self.clock = clock

        self._lock = threading.RLock()
        self._tokens: Dict[str, TokenInfo] = {}
        self._balances: Dict[Tuple[str, str], int] = {}
        self._allowances: Dict[Tuple[str, str, str], int] = {}
        self._nonces: Dict[Tuple[str, str], int] = {}
        self._savepoints: List[_State] = []

    # ── Setup ─────────────────────────────────────────────────

    def register_token(self, address: str, name: str, version: str = "1") -> TokenInfo:
        info = TokenInfo(normalize_address(address, "token"), name, version)
        with self._lock:
            self._tokens[info.address] = info
        return info

    def mint(self, token: str, account: str, amount: int) -> None:
        token = self._token(token).address
        account = normalize_address(account, "account")
        with self._lock:
            key = (token, account)
            self._balances[key] = self._balances.get(key, 0) + amount

    def set_nonce(self, token: str, owner: str, nonce: int) -> None:
        """Seed an owner's permit nonce, as if earlier permits had been used."""
        token = self._token(token).address
        with self._lock:
            self._nonces[(token, normalize_address(owner, "owner"))] = nonce

    def permit_domain(self, token: str) -> Domain:
        info = self._token(token)
        return Domain(
            chain_id=self.chain_id,
            verifying_contract=info.address,
            name=info.name,
            version=info.version,
        )

    # ── Reads ─────────────────────────────────────────────────

    def balance_of(self, token: str, account: str) -> int:
        token = self._token(token).address
        with self._lock:
            return self._balances.get((token, normalize_address(account, "account")), 0)

    def allowance(self, token: str, owner: str, spender: str) -> int:
        token = self._token(token).address
        key = (token, normalize_address(owner, "owner"), normalize_address(spender, "spender"))
        with self._lock:
            return self._allowances.get(key, 0)

    def nonce_of(self, token: str, owner: str) -> int:
        token = self._token(token).address
        with self._lock:
            return self._nonces.get((token, normalize_address(owner, "owner")), 0)

    # ── Writes ────────────────────────────────────────────────

    def grant_delegated_allowance(
        self,
        token:     str,
        owner:     str,
        spender:   str,
        value:     int,
        deadline:  int,
        signature: Signature,
    ) -> None:
        token = self._token(token).address
        owner = normalize_address(owner, "owner")
        spender = normalize_address(spender, "spender")

        with self._lock:
            now = self.clock()
            if now > deadline:
                raise DelegationRejected(
                    "Permit deadline has passed",
                    {"deadline": deadline, "now": now},
                )

            nonce = self._nonces.get((token, owner), 0)
            message = signable(
                domain_separator(self.permit_domain(token)),
                permit_struct_hash(owner, spender, value, nonce, deadline),
            )
            signer = recover_signer(message, signature)
            if signer != owner:
                # Covers forged, malformed and stale-nonce permits alike:
                # a permit signed for an old nonce recovers to another address.
                raise DelegationRejected(
                    "Permit signature does not match owner",
                    {"owner": owner, "nonce": nonce},
                )

            self._nonces[(token, owner)] = nonce + 1
            self._allowances[(token, owner, spender)] = value
            logger.debug(
                "Permit accepted token=%s owner=%s spender=%s value=%d nonce=%d",
                token, owner, spender, value, nonce,
            )

    def transfer(self, token: str, sender: str, recipient: str, amount: int) -> None:
        token = self._token(token).address
        sender = normalize_address(sender, "sender")
        recipient = normalize_address(recipient, "recipient")
        with self._lock:
            self._move(token, sender, recipient, amount)

    def transfer_from(
        self,
        token:     str,
        spender:   str,
        owner:     str,
        recipient: str,
        amount:    int,
    ) -> None:
        token = self._token(token).address
        spender = normalize_address(spender, "spender")
        owner = normalize_address(owner, "owner")
        recipient = normalize_address(recipient, "recipient")

        with self._lock:
            key = (token, owner, spender)
            allowed = self._allowances.get(key, 0)
            if allowed < amount:
                raise InsufficientFunds(
                    "Allowance too low",
                    {"owner": owner, "spender": spender, "allowance": allowed, "amount": amount},
                )
            self._move(token, owner, recipient, amount)
            if allowed != UINT256_MAX:
                self._allowances[key] = allowed - amount

    # ── Units of work ─────────────────────────────────────────

    def savepoint(self) -> int:
        """
        Open a unit of work. The calling thread keeps the ledger lock until
        the matching rollback() or release(), so every other thread blocks
        on reads and writes in between.
        """
        self._lock.acquire()
        self._savepoints.append((
            dict(self._balances),
            dict(self._allowances),
            dict(self._nonces),
        ))
        return len(self._savepoints) - 1

    def rollback(self, savepoint: int) -> None:
        with self._lock:
            self._check_innermost(savepoint)
            balances, allowances, nonces = self._savepoints.pop()
            self._balances = balances
            self._allowances = allowances
            self._nonces = nonces
            self._lock.release()

    def release(self, savepoint: int) -> None:
        with self._lock:
            self._check_innermost(savepoint)
            self._savepoints.pop()
            self._lock.release()

    # ── Internals ─────────────────────────────────────────────

    def _token(self, token: str) -> TokenInfo:
        info: Optional[TokenInfo] = self._tokens.get(normalize_address(token, "token"))
        if info is None:
            raise LedgerError(f"Unknown token {token}", {"token": token})
        return info

    def _move(self, token: str, sender: str, recipient: str, amount: int) -> None:
        if recipient == ZERO_ADDRESS:
            raise LedgerError("Transfer to the zero address", {"token": token})
        held = self._balances.get((token, sender), 0)
        if held < amount:
            raise InsufficientFunds(
                "Balance too low",
                {"account": sender, "balance": held, "amount": amount},
            )
        self._balances[(token, sender)] = held - amount
        self._balances[(token, recipient)] = self._balances.get((token, recipient), 0) + amount

    def _check_innermost(self, savepoint: int) -> None:
        if savepoint != len(self._savepoints) - 1:
            raise LedgerError(
                "Savepoints must be closed innermost first",
                {"savepoint": savepoint, "depth": len(self._savepoints)},
            )
