"""
Engine configuration.

Loaded from YAML:

    engine:
      address: "0x..."                  # verifying contract and custody account
      chain_id: 1
      payload_binding: receiver-nonce   # or: full
    access:
      owner: "0x..."
      relays: ["0x..."]
      paused: false
    fees:
      mechanism: transfer               # or: none
    journal:
      path: .relaypay/journal.jsonl     # omit for an in-memory journal
      key_path: .relaypay/journal.pem   # generated on first use

Relative journal paths resolve against the directory holding the YAML file.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from relaypay.core.exceptions import ConfigError, ValidationError
from relaypay.core.models import normalize_address
from relaypay.core.typed_data import PayloadBinding
from relaypay.relay.fees import FEE_MECHANISMS


@dataclass
class EngineConfig:
    address: str
    chain_id: int
    owner: str
    relays: List[str] = field(default_factory=list)
    paused: bool = False
    payload_binding: PayloadBinding = PayloadBinding.RECEIVER_NONCE
    fee_mechanism: str = "transfer"
    journal_path: Optional[Path] = None
    journal_key_path: Optional[Path] = None

    @classmethod
    def from_dict(cls, data: dict, base_dir: Optional[Path] = None) -> "EngineConfig":
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a mapping")

        engine = data.get("engine") or {}
        access = data.get("access") or {}
        fees = data.get("fees") or {}
        journal = data.get("journal") or {}

        try:
            address = normalize_address(engine["address"], "engine.address")
            owner = normalize_address(access["owner"], "access.owner")
            relays = [normalize_address(r, "access.relays") for r in access.get("relays", [])]
            chain_id = int(engine["chain_id"])
        except KeyError as exc:
            raise ConfigError(f"Missing configuration key: {exc.args[0]}") from exc
        except (ValidationError, TypeError, ValueError) as exc:
            raise ConfigError(f"Invalid configuration: {exc}") from exc

        try:
            binding = PayloadBinding(engine.get("payload_binding", PayloadBinding.RECEIVER_NONCE.value))
        except ValueError as exc:
            raise ConfigError(
                f"Unknown payload_binding {engine.get('payload_binding')!r}"
            ) from exc

        mechanism = fees.get("mechanism", "transfer")
        if mechanism not in FEE_MECHANISMS:
            raise ConfigError(
                f"Unknown fee mechanism {mechanism!r}",
                {"choices": ", ".join(sorted(FEE_MECHANISMS))},
            )

        return cls(
            address=address,
            chain_id=chain_id,
            owner=owner,
            relays=relays,
            paused=bool(access.get("paused", False)),
            payload_binding=binding,
            fee_mechanism=mechanism,
            journal_path=_resolve(journal.get("path"), base_dir),
            journal_key_path=_resolve(journal.get("key_path"), base_dir),
        )

    @classmethod
    def from_yaml(cls, config_file: Path) -> "EngineConfig":
        config_file = Path(config_file)
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as exc:
            raise ConfigError(f"Cannot read configuration {config_file}: {exc}") from exc
        except yaml.YAMLError as exc:
            raise ConfigError(f"Malformed YAML in {config_file}: {exc}") from exc
        return cls.from_dict(data, base_dir=config_file.parent)


def _resolve(value: Optional[str], base_dir: Optional[Path]) -> Optional[Path]:
    if not value:
        return None
    path = Path(value)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    return path
