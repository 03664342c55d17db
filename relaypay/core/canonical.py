"""
RelayPay: Canonical JSON Encoding: RFC 8785 (JCS)

Journal hashing and journal signatures MUST use this module.
Typed-data digests for payers are EIP-712 and live in typed_data.py instead.

RFC 8785: https://www.rfc-editor.org/rfc/rfc8785
"""

import hashlib

import jcs


def canonicalize(obj: dict) -> bytes:
    """
    Encode a dict to RFC 8785 canonical JSON bytes.

    Output is deterministic regardless of key insertion order.
    Amounts are integers of arbitrary size; JCS serialises them as JSON
    numbers, so journal payloads store amounts as decimal strings.

    Returns:
        UTF-8 encoded canonical JSON bytes, suitable for signing.
    """
    return jcs.canonicalize(obj)


def canonical_hash(obj: dict) -> str:
    """
    SHA-256 of the RFC 8785 canonical form.

    Returns:
        Lowercase hex-encoded SHA-256 digest (64 characters).
    """
    return hashlib.sha256(canonicalize(obj)).hexdigest()
