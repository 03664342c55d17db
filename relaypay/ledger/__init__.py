"""
RelayPay Ledger Adapter

Balances, allowances and permit nonces live behind TokenLedger.
InMemoryTokenLedger is the reference implementation.
"""

from relaypay.ledger.adapter import TokenLedger
from relaypay.ledger.memory import InMemoryTokenLedger

__all__ = ["TokenLedger", "InMemoryTokenLedger"]
