"""
tests/test_typed_data.py

EIP-712 digests and signature recovery.

The verification side hashes with eth_abi directly; wallets sign through
eth_account's typed-data encoder. Both must agree byte for byte, and any
change to the signed fields or the signature must break recovery.
"""

import pytest
from eth_account import Account
from eth_account.messages import encode_typed_data
from eth_utils import keccak

from relaypay.core.exceptions import ValidationError
from relaypay.core.models import Domain, Signature
from relaypay.core.typed_data import (
    PAY_TYPEHASH,
    SECP256K1_HALF_N,
    SECP256K1_N,
    PayloadBinding,
    domain_separator,
    is_well_formed,
    payment_struct_hash,
    payment_typed_data,
    recover_signer,
    sign_payment,
    signable,
)

from helpers.payments import (
    CHAIN_ID,
    ENGINE_ADDRESS,
    PAYER,
    PAYER_KEY,
    RECEIVER,
    STRANGER,
    TOKEN,
)


DOMAIN = Domain(chain_id=CHAIN_ID, verifying_contract=ENGINE_ADDRESS)


def _message(receiver=RECEIVER, nonce=3, binding=PayloadBinding.RECEIVER_NONCE, amount=50):
    return signable(
        domain_separator(DOMAIN),
        payment_struct_hash(receiver, nonce, binding, token=TOKEN, amount=amount),
    )


# ─────────────────────────────────────────────────────────────
# Digest construction
# ─────────────────────────────────────────────────────────────

class TestDigest:

    def test_schema_tag(self):
        assert PAY_TYPEHASH == keccak(text="Pay(address receiver,uint256 accountNonce)")

    @pytest.mark.parametrize("binding", list(PayloadBinding))
    def test_matches_wallet_encoding(self, binding):
        wallet = encode_typed_data(
            full_message=payment_typed_data(DOMAIN, RECEIVER, 3, binding, TOKEN, 50)
        )
        ours = _message(binding=binding)
        assert wallet.header == ours.header
        assert wallet.body == ours.body

    def test_domain_binds_chain_and_contract(self):
        base = domain_separator(DOMAIN)
        assert domain_separator(Domain(chain_id=5, verifying_contract=ENGINE_ADDRESS)) != base
        assert domain_separator(Domain(chain_id=CHAIN_ID, verifying_contract=TOKEN)) != base

    def test_full_binding_needs_token_and_amount(self):
        with pytest.raises(ValueError):
            payment_struct_hash(RECEIVER, 0, PayloadBinding.FULL)

    def test_receiver_nonce_binding_ignores_amount(self):
        assert _message(amount=1).body == _message(amount=2).body
        full = PayloadBinding.FULL
        assert _message(binding=full, amount=1).body != _message(binding=full, amount=2).body


# ─────────────────────────────────────────────────────────────
# Recovery
# ─────────────────────────────────────────────────────────────

class TestRecovery:

    def test_recovers_payer(self):
        signature = sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3)
        assert recover_signer(_message(), signature) == PAYER

    def test_other_receiver_recovers_someone_else(self):
        signature = sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3)
        assert recover_signer(_message(receiver=STRANGER), signature) != PAYER

    def test_other_nonce_recovers_someone_else(self):
        signature = sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3)
        assert recover_signer(_message(nonce=4), signature) != PAYER

    def test_single_bit_flips_break_recovery(self):
        raw = bytearray(sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3).to_bytes())
        message = _message()
        for byte in (0, 17, 31, 32, 50, 63):
            flipped = bytearray(raw)
            flipped[byte] ^= 0x01
            assert recover_signer(message, Signature.from_bytes(bytes(flipped))) != PAYER

    @pytest.mark.parametrize("signature", [
        Signature(v=29, r=1, s=1),
        Signature(v=0, r=1, s=1),
        Signature(v=27, r=0, s=1),
        Signature(v=27, r=1, s=0),
        Signature(v=27, r=SECP256K1_N, s=1),
        Signature(v=27, r=1, s=SECP256K1_HALF_N + 1),
    ])
    def test_malformed_recovers_none(self, signature):
        assert is_well_formed(signature) is False
        assert recover_signer(_message(), signature) is None

    def test_high_s_twin_is_refused(self):
        good = sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3)
        twin = Signature(v=55 - good.v, r=good.r, s=SECP256K1_N - good.s)
        assert recover_signer(_message(), good) == PAYER
        assert recover_signer(_message(), twin) is None

    def test_eth_account_agrees(self):
        message = _message()
        signed = Account.sign_message(message, PAYER_KEY)
        assert recover_signer(message, Signature(signed.v, signed.r, signed.s)) == PAYER


# ─────────────────────────────────────────────────────────────
# Signature encoding
# ─────────────────────────────────────────────────────────────

class TestSignatureEncoding:

    def test_hex_and_dict_forms(self):
        signature = sign_payment(PAYER_KEY, DOMAIN, RECEIVER, 3)
        assert Signature.from_hex(signature.to_hex()) == signature
        assert Signature.from_dict(signature.to_dict()) == signature
        assert len(signature.to_bytes()) == 65

    def test_wrong_length_rejected(self):
        with pytest.raises(ValidationError):
            Signature.from_bytes(b"\x00" * 64)

    def test_non_hex_rejected(self):
        with pytest.raises(ValidationError):
            Signature.from_hex("0xzz")
