"""
relaypay/core/time.py

Clock helpers.

Two clocks exist in RelayPay and both live here:
    unix_now()          integer unix seconds, compared against permit deadlines
    record_timestamp()  journal wire format YYYY-MM-DDTHH:MM:SS.mmmZ

Anything that needs "now" takes a clock callable defaulting to one of these,
so tests can pin time without patching.
"""

import time
from datetime import datetime, timezone


def unix_now() -> int:
    """Current UTC time as integer unix seconds."""
    return int(time.time())


def record_timestamp() -> str:
    """
    Return current UTC time in journal wire format.
    Format: YYYY-MM-DDTHH:MM:SS.mmmZ  (exactly 3 fractional digits, Z suffix)
    """
    now = datetime.now(timezone.utc)
    ms  = now.microsecond // 1000
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{ms:03d}Z"
