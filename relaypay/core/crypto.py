"""
relaypay/core/crypto.py

Journal signing key.

The engine operator signs every journal entry with an Ed25519 key. This key
has nothing to do with the secp256k1 keys payers sign payments with (see
typed_data.py); it only proves which engine wrote a journal.

Signatures travel as unpadded base64url strings. Public keys travel as
64-char lowercase hex, so a journal can be checked with nothing but the
hex string recorded in each entry.
"""

import base64
import binascii
from pathlib import Path

from cryptography.exceptions import InvalidSignature as _BadEd25519Signature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
    load_pem_private_key,
)


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64url_decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class Ed25519KeyManager:
    """Ed25519 key pair that signs payment journal entries."""

    def __init__(self, private_key: Ed25519PrivateKey) -> None:
        self._private_key = private_key
        self._public_key_hex = (
            private_key.public_key()
            .public_bytes(Encoding.Raw, PublicFormat.Raw)
            .hex()
        )

    @classmethod
    def generate(cls) -> "Ed25519KeyManager":
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_file(cls, path: Path) -> "Ed25519KeyManager":
        """
        Load a PEM (PKCS8, unencrypted) private key.

        Raises:
            FileNotFoundError: path does not exist
            ValueError: the file holds no Ed25519 private key
        """
        pem = Path(path).read_bytes()
        try:
            private_key = load_pem_private_key(pem, password=None)
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Unreadable journal key {path}: {exc}") from exc
        if not isinstance(private_key, Ed25519PrivateKey):
            raise ValueError(f"Journal key {path} is not an Ed25519 private key")
        return cls(private_key)

    @classmethod
    def load_or_generate(cls, path: Path) -> "Ed25519KeyManager":
        """Load the key at path, or create one there on first use."""
        path = Path(path)
        if path.exists():
            return cls.from_file(path)
        key = cls.generate()
        key.save(path)
        return key

    @property
    def public_key_hex(self) -> str:
        return self._public_key_hex

    def sign(self, data: bytes) -> str:
        return _b64url_encode(self._private_key.sign(data))

    def verify(self, data: bytes, signature_b64: str) -> bool:
        return self.verify_detached(data, signature_b64, self._public_key_hex)

    @staticmethod
    def verify_detached(data: bytes, signature_b64: str, public_key_hex: str) -> bool:
        """
        Check an Ed25519 signature given only the signer's hex public key.

        Returns False on any failure, including malformed key or signature
        encodings.
        """
        try:
            public_key = Ed25519PublicKey.from_public_bytes(bytes.fromhex(public_key_hex))
            raw_signature = _b64url_decode(signature_b64)
        except (TypeError, ValueError, binascii.Error):
            return False
        if len(raw_signature) != 64:
            return False
        try:
            public_key.verify(raw_signature, data)
        except _BadEd25519Signature:
            return False
        return True

    def save(self, path: Path) -> None:
        """Write the private key as unencrypted PKCS8 PEM, creating parent dirs."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self._private_key.private_bytes(
            encoding=Encoding.PEM,
            format=PrivateFormat.PKCS8,
            encryption_algorithm=NoEncryption(),
        ))

    def __repr__(self) -> str:
        return f"Ed25519KeyManager(public_key_hex={self._public_key_hex[:16]}...)"
