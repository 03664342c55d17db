"""
RelayPay Settlement Engine

Critical Invariants:
- A payer's (token, nonce) authorizes at most one settlement
- A settlement commits entirely or not at all
- The engine holds no token balance between calls
- A dry run never commits anything
"""

from relaypay.settlement.engine import SettlementEngine

__all__ = ["SettlementEngine"]
