"""
RelayPay Access Policy

Owner-gated pause switch and trusted relay set, checked at the top of
every settlement entry point.
"""

from relaypay.policy.access import AccessPolicy

__all__ = ["AccessPolicy"]
