"""
relaypay/core/models.py

RelayPay Data Model

PaymentAuthorization objects are transient: a payer builds and signs one
off-chain, a relay submits it, and a successful settlement consumes it.
The engine never persists them. Only PaymentRecord reaches the journal.

Addresses are normalised to EIP-55 checksum form on construction, so two
spellings of the same account always compare equal. Amounts are integers
in token base units and must fit in a uint256.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from eth_utils import is_address, to_checksum_address

from relaypay.core.exceptions import ValidationError


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
UINT256_MAX  = 2 ** 256 - 1

DOMAIN_NAME    = "PaymentSettlement"
DOMAIN_VERSION = "1"


def normalize_address(value: str, field_name: str = "address") -> str:
    """Return the checksum form of value or raise ValidationError."""
    if not isinstance(value, str) or not is_address(value):
        raise ValidationError(
            f"Invalid {field_name}: {value!r}",
            {"field": field_name},
        )
    return to_checksum_address(value)


def _check_uint256(value: int, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field_name} must be an integer", {"field": field_name})
    if value < 0 or value > UINT256_MAX:
        raise ValidationError(f"{field_name} out of uint256 range", {"field": field_name})
    return value


def _parse_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith(("0x", "0X")) else int(value)
    return int(value)


# ─────────────────────────────────────────────────────────────
# Signatures
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Signature:
    """
    Three-component ECDSA signature (recovery id, r, s).

    No range checks happen here: a malformed signature must still be
    representable so that verification can reject it.
    """
    v: int
    r: int
    s: int

    @classmethod
    def from_bytes(cls, raw: bytes) -> "Signature":
        """Parse the 65-byte r || s || v layout produced by eth_account."""
        raw = bytes(raw)
        if len(raw) != 65:
            raise ValidationError(
                f"Signature must be 65 bytes, got {len(raw)}",
                {"length": len(raw)},
            )
        return cls(
            v=raw[64],
            r=int.from_bytes(raw[0:32], "big"),
            s=int.from_bytes(raw[32:64], "big"),
        )

    @classmethod
    def from_hex(cls, value: str) -> "Signature":
        value = value[2:] if value.startswith(("0x", "0X")) else value
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise ValidationError(f"Signature is not hex: {exc}") from exc
        return cls.from_bytes(raw)

    def to_bytes(self) -> bytes:
        return (
            self.r.to_bytes(32, "big")
            + self.s.to_bytes(32, "big")
            + bytes([self.v])
        )

    def to_hex(self) -> str:
        return "0x" + self.to_bytes().hex()

    def to_dict(self) -> dict:
        return {
            "v": self.v,
            "r": hex(self.r),
            "s": hex(self.s),
        }

    @staticmethod
    def from_dict(data: dict) -> "Signature":
        return Signature(
            v=_parse_int(data["v"]),
            r=_parse_int(data["r"]),
            s=_parse_int(data["s"]),
        )


@dataclass(frozen=True)
class DelegationProof:
    """
    Permit issued by the payer to the ledger: lets the engine pull exactly
    `amount` of `token` until `deadline` (unix seconds, inclusive).
    """
    deadline: int
    signature: Signature

    def to_dict(self) -> dict:
        return {
            "deadline": self.deadline,
            "signature": self.signature.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict) -> "DelegationProof":
        return DelegationProof(
            deadline=_parse_int(data["deadline"]),
            signature=Signature.from_dict(data["signature"]),
        )


@dataclass(frozen=True)
class PaymentAuthorization:
    """One intended transfer of `amount` of `token` from `payer` to `receiver`."""
    token: str
    payer: str
    receiver: str
    amount: int
    delegation: DelegationProof

    def __post_init__(self):
        object.__setattr__(self, "token", normalize_address(self.token, "token"))
        object.__setattr__(self, "payer", normalize_address(self.payer, "payer"))
        object.__setattr__(self, "receiver", normalize_address(self.receiver, "receiver"))
        _check_uint256(self.amount, "amount")
        _check_uint256(self.delegation.deadline, "deadline")

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "payer": self.payer,
            "receiver": self.receiver,
            "amount": str(self.amount),
            "delegation": self.delegation.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict) -> "PaymentAuthorization":
        return PaymentAuthorization(
            token=data["token"],
            payer=data["payer"],
            receiver=data["receiver"],
            amount=_parse_int(data["amount"]),
            delegation=DelegationProof.from_dict(data["delegation"]),
        )


# ─────────────────────────────────────────────────────────────
# Domain
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Domain:
    """EIP-712 domain binding every payment digest to one engine instance."""
    chain_id: int
    verifying_contract: str
    name: str = DOMAIN_NAME
    version: str = DOMAIN_VERSION

    def __post_init__(self):
        object.__setattr__(
            self,
            "verifying_contract",
            normalize_address(self.verifying_contract, "verifying_contract"),
        )

    def to_eip712(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "chainId": self.chain_id,
            "verifyingContract": self.verifying_contract,
        }


# ─────────────────────────────────────────────────────────────
# Relay submission
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class RelayContext:
    """
    Who submitted the call and what the relay expects to be paid.

    caller is checked against the trusted relay set. fee of fee_token is
    sent from the engine's custody to fee_collector by the fee mechanism.
    """
    caller: str
    fee_collector: str = ZERO_ADDRESS
    fee_token: str = ZERO_ADDRESS
    fee: int = 0

    def __post_init__(self):
        object.__setattr__(self, "caller", normalize_address(self.caller, "caller"))
        object.__setattr__(
            self, "fee_collector", normalize_address(self.fee_collector, "fee_collector")
        )
        object.__setattr__(self, "fee_token", normalize_address(self.fee_token, "fee_token"))
        _check_uint256(self.fee, "fee")


# ─────────────────────────────────────────────────────────────
# Outcomes
# ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class PaymentRecord:
    """
    Record emitted by a committed settlement.

    `amount` is the intended amount from the authorization. `forwarded` is
    what the receiver actually got, which is lower when the relay fee was
    paid in the same token.
    """
    token: str
    payer: str
    receiver: str
    amount: int
    forwarded: int = 0
    fee: int = 0
    relay: Optional[str] = None
    account_nonce: Optional[int] = None

    def to_dict(self) -> dict:
        return {
            "token": self.token,
            "payer": self.payer,
            "receiver": self.receiver,
            "amount": str(self.amount),
            "forwarded": str(self.forwarded),
            "fee": str(self.fee),
            "relay": self.relay,
            "account_nonce": self.account_nonce,
        }

    @staticmethod
    def from_dict(data: dict) -> "PaymentRecord":
        return PaymentRecord(
            token=data["token"],
            payer=data["payer"],
            receiver=data["receiver"],
            amount=int(data["amount"]),
            forwarded=int(data.get("forwarded", 0)),
            fee=int(data.get("fee", 0)),
            relay=data.get("relay"),
            account_nonce=data.get("account_nonce"),
        )


@dataclass(frozen=True)
class DryRunResult:
    """Outcome of a simulated settlement. Nothing it describes was committed."""
    ok: bool
    reason: str
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.ok
