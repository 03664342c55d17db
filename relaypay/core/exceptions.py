"""
RelayPay Exception Hierarchy

All exceptions inherit from RelayPayError for easy catching.
Every failure aborts the whole settlement call; nothing is retried here.
"""


class RelayPayError(Exception):
    """Base exception for all RelayPay errors"""

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


class ValidationError(RelayPayError):
    """Raised when payment data is malformed"""
    pass


class InvalidSignature(RelayPayError):
    """Raised when the recovered payment signer is not the payer"""
    pass


class LedgerError(RelayPayError):
    """Raised when the token ledger refuses an operation"""
    pass


class DelegationRejected(LedgerError):
    """Raised when a delegated-allowance grant is refused (expired, bad signature, stale nonce)"""
    pass


class InsufficientFunds(LedgerError):
    """Raised when a balance or allowance cannot cover a transfer"""
    pass


class FeeError(RelayPayError):
    """Raised when the relay fee cannot be charged"""
    pass


class AccessError(RelayPayError):
    """Raised when the access policy refuses an entry point"""
    pass


class PausedState(AccessError):
    """Raised when an entry point is called while the engine is paused"""
    pass


class NotPausedState(AccessError):
    """Raised when unpause is requested on an engine that is not paused"""
    pass


class Unauthorized(AccessError):
    """Raised when the caller is not the owner or not a trusted relay"""
    pass


class DryRunCompleted(RelayPayError):
    """
    Reserved marker raised by the reverting dry run after every settlement
    step succeeded. Raising it rolls the whole unit back.
    """

    MARKER = "PaymentSettlement: dry run succeeded"

    def __init__(self, details: dict = None):
        super().__init__(self.MARKER, details)


class DryRunInvariantError(RuntimeError):
    """
    Raised when the reverting dry run returns normally instead of raising.

    Deliberately NOT a RelayPayError: this is a defect, never a normal outcome,
    and must not be swallowed by handlers that catch RelayPayError.
    """
    pass


class JournalError(RelayPayError):
    """Raised when the payment journal is unreadable or has been tampered with"""
    pass


class ConfigError(RelayPayError):
    """Raised when engine configuration is missing or invalid"""
    pass
