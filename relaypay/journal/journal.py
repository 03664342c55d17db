"""
Payment journal.

Append-only, hash-chained, signed log of committed payment records. This is
where the engine "emits" a payment: only settlements that committed reach
it, and dry runs never do.

Entry layout (one JSON object per line):
    index          position in the journal, from 0
    previous_hash  entry hash of the previous entry, GENESIS_HASH for index 0
    timestamp      record_timestamp() wire format
    entry_type     "payment"
    data           PaymentRecord.to_dict()
    data_hash      SHA-256 of JCS(data)
    signer         Ed25519 public key hex of the engine operator
    signature      Ed25519 over bytes.fromhex(entry_hash)

entry_hash = SHA-256(JCS({index, previous_hash, timestamp, entry_type,
                          data_hash, signer}))
"""

import json
import logging
import os
import threading
from collections import defaultdict
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Dict, List, Optional

from relaypay.core.canonical import canonical_hash
from relaypay.core.crypto import Ed25519KeyManager
from relaypay.core.exceptions import JournalError
from relaypay.core.models import PaymentRecord
from relaypay.core.time import record_timestamp


logger = logging.getLogger(__name__)

GENESIS_HASH = "0" * 64
PAYMENT_ENTRY = "payment"


@dataclass(frozen=True)
class JournalEntry:
    """A single entry in the payment journal"""
    index: int
    previous_hash: str
    timestamp: str
    entry_type: str
    data: dict
    data_hash: str
    signer: str
    signature: str = ""

    def chain_dict(self) -> dict:
        return {
            "index": self.index,
            "previous_hash": self.previous_hash,
            "timestamp": self.timestamp,
            "entry_type": self.entry_type,
            "data_hash": self.data_hash,
            "signer": self.signer,
        }

    def compute_hash(self) -> str:
        """Hash of this entry; the next entry's previous_hash."""
        return canonical_hash(self.chain_dict())

    def record(self) -> PaymentRecord:
        return PaymentRecord.from_dict(self.data)

    def to_dict(self) -> dict:
        return {**self.chain_dict(), "data": self.data, "signature": self.signature}

    @staticmethod
    def from_dict(data: dict) -> "JournalEntry":
        return JournalEntry(
            index=data["index"],
            previous_hash=data["previous_hash"],
            timestamp=data["timestamp"],
            entry_type=data["entry_type"],
            data=data["data"],
            data_hash=data["data_hash"],
            signer=data["signer"],
            signature=data.get("signature", ""),
        )


# ─────────────────────────────────────────────────────────────
# Reading and verification (no private key needed)
# ─────────────────────────────────────────────────────────────

def read_entries(path: Path) -> List[JournalEntry]:
    """Load every entry of a journal file. Raises JournalError on bad JSON."""
    entries = []
    try:
        with open(path, "r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(JournalEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError) as e:
                    raise JournalError(
                        f"Invalid journal entry at line {line_num}: {e}",
                        {"line": line_num},
                    ) from e
    except OSError as e:
        raise JournalError(f"Failed to read journal {path}: {e}") from e
    return entries


def find_violations(
    entries: List[JournalEntry],
    public_key_hex: Optional[str] = None,
) -> List[str]:
    """
    Check linkage, data hashes and signatures.

    When public_key_hex is given every entry must also be signed by it;
    otherwise each entry is checked against its own signer field.

    Returns:
        Human-readable violations, empty when the journal is intact.
    """
    violations = []
    expected_prev = GENESIS_HASH
    for position, entry in enumerate(entries):
        if entry.index != position:
            violations.append(f"Index gap at position {position}: found index {entry.index}")
        if entry.previous_hash != expected_prev:
            violations.append(
                f"Chain break at index {entry.index}: "
                f"expected {expected_prev}, got {entry.previous_hash}"
            )
        if canonical_hash(entry.data) != entry.data_hash:
            violations.append(f"Data hash mismatch at index {entry.index}")
        if public_key_hex is not None and entry.signer != public_key_hex:
            violations.append(f"Unexpected signer at index {entry.index}")
        entry_hash = entry.compute_hash()
        if not Ed25519KeyManager.verify_detached(
            bytes.fromhex(entry_hash), entry.signature, entry.signer
        ):
            violations.append(f"Invalid signature at index {entry.index}")
        expected_prev = entry_hash
    return violations


# ─────────────────────────────────────────────────────────────
# Journal
# ─────────────────────────────────────────────────────────────

class PaymentJournal:
    """
    Append-only journal of committed payments, indexed by token, payer and
    receiver.

    With path=None the journal lives in memory only. With a path, existing
    entries are loaded and verified on construction and every append is
    written and fsync'd before it becomes visible.
    """

    def __init__(
        self,
        key_manager: Ed25519KeyManager,
        path: Optional[Path] = None,
        clock: Callable[[], str] = record_timestamp,
    ):
        self.key_manager = key_manager
        self.path = Path(path) if path is not None else None
        self.clock = clock

        self._lock = threading.Lock()
        self._entries: List[JournalEntry] = []
        self._index: Dict[str, Dict[str, List[int]]] = {
            "token": defaultdict(list),
            "payer": defaultdict(list),
            "receiver": defaultdict(list),
        }

        if self.path is not None and self.path.exists():
            for entry in read_entries(self.path):
                self._remember(entry)
            self.verify_or_raise()
            logger.info("Loaded %d journal entries from %s", len(self._entries), self.path)

    # ── Writing ───────────────────────────────────────────────

    def append_payment(self, record: PaymentRecord) -> JournalEntry:
        """Sign, persist and index one payment record."""
        data = record.to_dict()
        with self._lock:
            index = len(self._entries)
            unsigned = JournalEntry(
                index=index,
                previous_hash=(
                    self._entries[-1].compute_hash() if self._entries else GENESIS_HASH
                ),
                timestamp=self.clock(),
                entry_type=PAYMENT_ENTRY,
                data=data,
                data_hash=canonical_hash(data),
                signer=self.key_manager.public_key_hex,
            )
            signature = self.key_manager.sign(bytes.fromhex(unsigned.compute_hash()))
            entry = replace(unsigned, signature=signature)

            if self.path is not None:
                self._write_entry(entry)
            self._remember(entry)
        return entry

    # ── Reading ───────────────────────────────────────────────

    def entries(self) -> List[JournalEntry]:
        return list(self._entries)

    def records(self) -> List[PaymentRecord]:
        return [e.record() for e in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def find(
        self,
        token: Optional[str] = None,
        payer: Optional[str] = None,
        receiver: Optional[str] = None,
    ) -> List[PaymentRecord]:
        """Payment records matching every given field, in journal order."""
        selected: Optional[set] = None
        for name, value in (("token", token), ("payer", payer), ("receiver", receiver)):
            if value is None:
                continue
            hits = set(self._index[name].get(value.lower(), []))
            selected = hits if selected is None else selected & hits
        if selected is None:
            return self.records()
        return [self._entries[i].record() for i in sorted(selected)]

    def verify_or_raise(self) -> None:
        """Verify the journal or raise JournalError with the first violation."""
        violations = find_violations(self._entries, self.key_manager.public_key_hex)
        if violations:
            raise JournalError(violations[0], {"violations": len(violations)})

    # ── Internals ─────────────────────────────────────────────

    def _remember(self, entry: JournalEntry) -> None:
        position = len(self._entries)
        self._entries.append(entry)
        for name in ("token", "payer", "receiver"):
            value = entry.data.get(name)
            if value:
                self._index[name][value.lower()].append(position)

    def _write_entry(self, entry: JournalEntry) -> None:
        """
        Append one line durably, or leave the file exactly as it was.

        Unbuffered, so nothing is left pending in Python after a failure; a
        partial or unsynced line is truncated away before JournalError.
        """
        line = (json.dumps(entry.to_dict(), ensure_ascii=False) + "\n").encode("utf-8")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "ab", buffering=0) as f:
                offset = f.seek(0, os.SEEK_END)
                try:
                    written = f.write(line)
                    if written != len(line):
                        raise OSError(f"short write ({written} of {len(line)} bytes)")
                    os.fsync(f.fileno())
                except OSError:
                    f.truncate(offset)
                    raise
        except OSError as e:
            raise JournalError(f"Failed to write journal entry: {e}") from e
