"""
RelayPay Payment Journal - Append-Only Record of Committed Payments
"""

from relaypay.journal.journal import PaymentJournal, JournalEntry

__all__ = ["PaymentJournal", "JournalEntry"]
