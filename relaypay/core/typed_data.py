"""
relaypay/core/typed_data.py

EIP-712 typed data for payment intents and permits.

Digest construction (two stages, standard EIP-712):
    domainSeparator = keccak256(abi.encode(EIP712_DOMAIN_TYPEHASH,
                                           keccak256(name), keccak256(version),
                                           chainId, verifyingContract))
    structHash      = keccak256(abi.encode(PAY_TYPEHASH, receiver, accountNonce))
    digest          = keccak256(0x19 0x01 || domainSeparator || structHash)

The verification side builds the two hashes explicitly with eth_abi so the
digest does not depend on eth_account's JSON schema handling. The signing
side (payers, tests) goes through eth_account.messages.encode_typed_data,
which must produce the same bytes.

Recovery never raises. Anything malformed recovers to None.
"""

from enum import Enum
from typing import Any, Dict, Optional, Union

from eth_abi import encode
from eth_account import Account
from eth_account.messages import SignableMessage, encode_typed_data
from eth_utils import keccak

from relaypay.core.models import (
    Domain,
    Signature,
    normalize_address,
)


# secp256k1 group order
SECP256K1_N      = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
SECP256K1_HALF_N = SECP256K1_N // 2

EIP712_DOMAIN_TYPE = (
    "EIP712Domain(string name,string version,uint256 chainId,address verifyingContract)"
)
EIP712_DOMAIN_TYPEHASH = keccak(text=EIP712_DOMAIN_TYPE)

PAY_TYPE       = "Pay(address receiver,uint256 accountNonce)"
PAY_TYPEHASH   = keccak(text=PAY_TYPE)

FULL_PAY_TYPE     = "Pay(address token,address receiver,uint256 amount,uint256 accountNonce)"
FULL_PAY_TYPEHASH = keccak(text=FULL_PAY_TYPE)

PERMIT_TYPE     = (
    "Permit(address owner,address spender,uint256 value,uint256 nonce,uint256 deadline)"
)
PERMIT_TYPEHASH = keccak(text=PERMIT_TYPE)

_EIP712_DOMAIN_FIELDS = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
    {"name": "verifyingContract", "type": "address"},
]


class PayloadBinding(str, Enum):
    """Which fields the payer's payment signature covers."""
    RECEIVER_NONCE = "receiver-nonce"
    FULL           = "full"


# ─────────────────────────────────────────────────────────────
# Hashing
# ─────────────────────────────────────────────────────────────

def domain_separator(domain: Domain) -> bytes:
    """First stage of the digest: hash of the fixed domain."""
    return keccak(encode(
        ["bytes32", "bytes32", "bytes32", "uint256", "address"],
        [
            EIP712_DOMAIN_TYPEHASH,
            keccak(text=domain.name),
            keccak(text=domain.version),
            domain.chain_id,
            domain.verifying_contract,
        ],
    ))


def payment_struct_hash(
    receiver:      str,
    account_nonce: int,
    binding:       PayloadBinding = PayloadBinding.RECEIVER_NONCE,
    token:         Optional[str] = None,
    amount:        Optional[int] = None,
) -> bytes:
    """Second stage of the digest: hash of the schema-tagged payment struct."""
    receiver = normalize_address(receiver, "receiver")
    if PayloadBinding(binding) is PayloadBinding.FULL:
        if token is None or amount is None:
            raise ValueError("full payload binding requires token and amount")
        return keccak(encode(
            ["bytes32", "address", "address", "uint256", "uint256"],
            [
                FULL_PAY_TYPEHASH,
                normalize_address(token, "token"),
                receiver,
                amount,
                account_nonce,
            ],
        ))
    return keccak(encode(
        ["bytes32", "address", "uint256"],
        [PAY_TYPEHASH, receiver, account_nonce],
    ))


def permit_struct_hash(
    owner:    str,
    spender:  str,
    value:    int,
    nonce:    int,
    deadline: int,
) -> bytes:
    return keccak(encode(
        ["bytes32", "address", "address", "uint256", "uint256", "uint256"],
        [
            PERMIT_TYPEHASH,
            normalize_address(owner, "owner"),
            normalize_address(spender, "spender"),
            value,
            nonce,
            deadline,
        ],
    ))


def signable(domain_hash: bytes, struct_hash: bytes) -> SignableMessage:
    """Wrap the two stages as an EIP-191 version 0x01 message."""
    return SignableMessage(version=b"\x01", header=domain_hash, body=struct_hash)


def digest_of(message: SignableMessage) -> bytes:
    """keccak256(0x19 || version || header || body)"""
    return keccak(b"\x19" + message.version + message.header + message.body)


# ─────────────────────────────────────────────────────────────
# Recovery
# ─────────────────────────────────────────────────────────────

def is_well_formed(signature: Signature) -> bool:
    """
    Range checks applied before recovery.

    v must be 27 or 28, r in [1, n), s in [1, n/2]. Upper-half s values are
    the malleable twin of a valid signature and are refused.
    """
    if not isinstance(signature, Signature):
        return False
    if signature.v not in (27, 28):
        return False
    if not 0 < signature.r < SECP256K1_N:
        return False
    if not 0 < signature.s <= SECP256K1_HALF_N:
        return False
    return True


def recover_signer(message: SignableMessage, signature: Signature) -> Optional[str]:
    """
    Recover the checksum address that signed message, or None.

    Never raises: malformed components and failed recoveries both give None.
    """
    if not is_well_formed(signature):
        return None
    try:
        return Account.recover_message(
            message,
            vrs=(signature.v, signature.r, signature.s),
        )
    except Exception:
        return None


# ─────────────────────────────────────────────────────────────
# Signing (payer side)
# ─────────────────────────────────────────────────────────────

def payment_typed_data(
    domain:        Domain,
    receiver:      str,
    account_nonce: int,
    binding:       PayloadBinding = PayloadBinding.RECEIVER_NONCE,
    token:         Optional[str] = None,
    amount:        Optional[int] = None,
) -> Dict[str, Any]:
    """Full EIP-712 JSON document for a payment intent, as wallets expect it."""
    if PayloadBinding(binding) is PayloadBinding.FULL:
        fields = [
            {"name": "token", "type": "address"},
            {"name": "receiver", "type": "address"},
            {"name": "amount", "type": "uint256"},
            {"name": "accountNonce", "type": "uint256"},
        ]
        message = {
            "token": normalize_address(token, "token"),
            "receiver": normalize_address(receiver, "receiver"),
            "amount": amount,
            "accountNonce": account_nonce,
        }
    else:
        fields = [
            {"name": "receiver", "type": "address"},
            {"name": "accountNonce", "type": "uint256"},
        ]
        message = {
            "receiver": normalize_address(receiver, "receiver"),
            "accountNonce": account_nonce,
        }
    return {
        "types": {"EIP712Domain": _EIP712_DOMAIN_FIELDS, "Pay": fields},
        "primaryType": "Pay",
        "domain": domain.to_eip712(),
        "message": message,
    }


def permit_typed_data(
    token_name: str,
    chain_id:   int,
    token:      str,
    owner:      str,
    spender:    str,
    value:      int,
    nonce:      int,
    deadline:   int,
    version:    str = "1",
) -> Dict[str, Any]:
    return {
        "types": {
            "EIP712Domain": _EIP712_DOMAIN_FIELDS,
            "Permit": [
                {"name": "owner", "type": "address"},
                {"name": "spender", "type": "address"},
                {"name": "value", "type": "uint256"},
                {"name": "nonce", "type": "uint256"},
                {"name": "deadline", "type": "uint256"},
            ],
        },
        "primaryType": "Permit",
        "domain": {
            "name": token_name,
            "version": version,
            "chainId": chain_id,
            "verifyingContract": normalize_address(token, "token"),
        },
        "message": {
            "owner": normalize_address(owner, "owner"),
            "spender": normalize_address(spender, "spender"),
            "value": value,
            "nonce": nonce,
            "deadline": deadline,
        },
    }


def sign_typed_data(typed_data: Dict[str, Any], private_key: Union[str, bytes]) -> Signature:
    """Sign an EIP-712 document and return its (v, r, s) components."""
    signed = Account.sign_message(encode_typed_data(full_message=typed_data), private_key)
    return Signature(v=signed.v, r=signed.r, s=signed.s)


def sign_payment(
    private_key:   Union[str, bytes],
    domain:        Domain,
    receiver:      str,
    account_nonce: int,
    binding:       PayloadBinding = PayloadBinding.RECEIVER_NONCE,
    token:         Optional[str] = None,
    amount:        Optional[int] = None,
) -> Signature:
    """Payer-side: sign the payment intent for the current account nonce."""
    return sign_typed_data(
        payment_typed_data(domain, receiver, account_nonce, binding, token, amount),
        private_key,
    )


def sign_permit(private_key: Union[str, bytes], **fields) -> Signature:
    """Payer-side: sign a delegated-allowance permit. Keywords as permit_typed_data()."""
    return sign_typed_data(permit_typed_data(**fields), private_key)
