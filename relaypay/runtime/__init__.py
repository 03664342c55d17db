"""
RelayPay Runtime - configuration loading and engine wiring.
"""

from relaypay.runtime.config import EngineConfig
from relaypay.runtime.context import RuntimeContext

__all__ = ["EngineConfig", "RuntimeContext"]
