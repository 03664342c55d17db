"""
Runtime context: one configured settlement engine and its collaborators.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from relaypay.core.crypto import Ed25519KeyManager
from relaypay.core.models import Domain
from relaypay.journal.journal import PaymentJournal
from relaypay.ledger.adapter import TokenLedger
from relaypay.policy.access import AccessPolicy
from relaypay.relay.fees import FEE_MECHANISMS
from relaypay.runtime.config import EngineConfig
from relaypay.settlement.engine import SettlementEngine


@dataclass
class RuntimeContext:
    """Everything a relay-facing service needs to settle payments."""

    config: EngineConfig
    engine: SettlementEngine
    journal: PaymentJournal
    key_manager: Ed25519KeyManager

    @classmethod
    def from_settings(
        cls,
        config: EngineConfig,
        ledger: TokenLedger,
        key_manager: Optional[Ed25519KeyManager] = None,
    ) -> "RuntimeContext":
        """Wire an engine from an already-parsed configuration."""
        if key_manager is None:
            if config.journal_key_path is not None:
                key_manager = Ed25519KeyManager.load_or_generate(config.journal_key_path)
            else:
                key_manager = Ed25519KeyManager.generate()

        journal = PaymentJournal(key_manager, path=config.journal_path)
        access = AccessPolicy(
            owner=config.owner,
            relays=config.relays,
            paused=config.paused,
        )
        engine = SettlementEngine(
            ledger=ledger,
            domain=Domain(chain_id=config.chain_id, verifying_contract=config.address),
            access=access,
            fees=FEE_MECHANISMS[config.fee_mechanism](),
            journal=journal,
            binding=config.payload_binding,
        )
        return cls(
            config=config,
            engine=engine,
            journal=journal,
            key_manager=key_manager,
        )

    @classmethod
    def from_config(
        cls,
        config_file: Path,
        ledger: TokenLedger,
        key_manager: Optional[Ed25519KeyManager] = None,
    ) -> "RuntimeContext":
        """Create runtime context from a YAML configuration file."""
        return cls.from_settings(EngineConfig.from_yaml(config_file), ledger, key_manager)

    def __repr__(self) -> str:
        return (
            f"RuntimeContext("
            f"engine={self.engine.address!r}, "
            f"journal_entries={len(self.journal)})"
        )
