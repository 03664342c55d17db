"""
tests/test_concurrency.py

Concurrency safety test for SettlementEngine.
Tests that simultaneous settlements from multiple threads neither interleave
nor double-spend, and that the journal written under contention stays a
valid chain.

Run:
    pytest tests/test_concurrency.py -v --tb=short
"""

import threading

import pytest
from eth_account import Account

from relaypay.core.exceptions import InvalidSignature, RelayPayError
from relaypay.journal.journal import PaymentJournal, find_violations, read_entries
from relaypay.relay.fees import TransferRelayFee

from helpers.payments import RECEIVER, TOKEN, make_payment, payer_key


THREADS = 8


class TestConcurrency:

    def test_parallel_payers_all_settle(self, ledger, engine, relay, journal_key, tmp_path):
        """Eight payers settling at once must all commit, in one unbroken chain."""
        engine.journal = PaymentJournal(journal_key, path=tmp_path / "journal.jsonl")
        keys = [payer_key(i) for i in range(THREADS)]
        payments = []
        for key in keys:
            ledger.mint(TOKEN, Account.from_key(key).address, 20)
            payments.append(make_payment(ledger, engine, amount=20, key=key))

        errors = []
        barrier = threading.Barrier(THREADS)

        def settle(auth, signature):
            barrier.wait()
            try:
                engine.pay(auth, signature, relay)
            except RelayPayError as e:
                errors.append(str(e))

        threads = [threading.Thread(target=settle, args=p) for p in payments]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Step 1: no settlement failed
        assert errors == [], f"Concurrent payments raised: {errors}"

        # Step 2: money is conserved and custody is empty
        assert ledger.balance_of(TOKEN, engine.address) == 0
        assert ledger.balance_of(TOKEN, RECEIVER) == THREADS * 18
        for key in keys:
            payer = Account.from_key(key).address
            assert ledger.balance_of(TOKEN, payer) == 0
            assert ledger.nonce_of(TOKEN, payer) == 1

        # Step 3: the file on disk is one valid chain of every payment
        entries = read_entries(tmp_path / "journal.jsonl")
        assert len(entries) == THREADS
        assert find_violations(entries, journal_key.public_key_hex) == []

    def test_same_authorization_settles_once(self, ledger, engine, relay):
        """Two relays racing the same signed payment: exactly one wins."""
        auth, signature = make_payment(ledger, engine, amount=50)
        outcomes = []
        barrier = threading.Barrier(2)

        def settle():
            barrier.wait()
            try:
                engine.pay(auth, signature, relay)
                outcomes.append("settled")
            except InvalidSignature:
                outcomes.append("rejected")

        threads = [threading.Thread(target=settle) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert sorted(outcomes) == ["rejected", "settled"]
        assert ledger.balance_of(TOKEN, RECEIVER) == 48
        assert ledger.nonce_of(TOKEN, auth.payer) == 4
        assert len(engine.journal) == 1

    def test_dry_run_on_one_engine_cannot_undo_another(self, ledger, make_engine, relay):
        """
        Engine A is mid dry run, parked inside its fee step, while engine B
        settles the same payment on the same ledger. B must wait for A's unit
        to close, commit, and stay committed.
        """
        entered = threading.Event()
        proceed = threading.Event()

        class ParkedFee(TransferRelayFee):
            def charge(self, ledger, custody, relay):
                entered.set()
                proceed.wait(timeout=5)
                return super().charge(ledger, custody, relay)

        engine_a = make_engine()
        engine_a.fees = ParkedFee()
        engine_b = make_engine()
        auth, signature = make_payment(ledger, engine_b, amount=50)
        outcomes = {}

        def dry_run():
            outcomes["a"] = engine_a.verify_data(auth, signature, relay)

        def settle():
            outcomes["b"] = engine_b.pay(auth, signature, relay)

        thread_a = threading.Thread(target=dry_run)
        thread_a.start()
        assert entered.wait(timeout=5)

        thread_b = threading.Thread(target=settle)
        thread_b.start()
        thread_b.join(timeout=0.2)
        assert thread_b.is_alive(), "B settled while A's unit was still open"

        proceed.set()
        thread_a.join(timeout=5)
        thread_b.join(timeout=5)

        assert outcomes["a"] is True
        assert outcomes["b"].forwarded == 48
        assert ledger.balance_of(TOKEN, RECEIVER) == 48
        assert ledger.nonce_of(TOKEN, auth.payer) == 4
        assert len(engine_b.journal) == 1

        with pytest.raises(InvalidSignature):
            engine_b.pay(auth, signature, relay)
        assert engine_a.verify_data(auth, signature, relay) is False
        assert ledger.balance_of(TOKEN, RECEIVER) == 48
