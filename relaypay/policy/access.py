"""
Access policy for the settlement engine.

One object owns the three administrative switches:
    owner    may pause, unpause, hand over ownership and manage relays
    paused   while set, pay() and verify_data() refuse to run
    relays   identities allowed to submit settlements

The engine calls require_not_paused() and require_relay() at the top of
each entry point, before any side effect. Ownership transfer is immediate
and single-step; there is no acceptance handshake.
"""

import logging
import threading
from typing import Iterable, Optional, Set

from relaypay.core.exceptions import (
    NotPausedState,
    PausedState,
    Unauthorized,
    ValidationError,
)
from relaypay.core.models import ZERO_ADDRESS, normalize_address


logger = logging.getLogger(__name__)


class AccessPolicy:
    """Owner, pause switch and trusted relay set of one engine."""

    def __init__(
        self,
        owner: str,
        relays: Optional[Iterable[str]] = None,
        paused: bool = False,
    ):
        self._lock = threading.Lock()
        self._owner = normalize_address(owner, "owner")
        self._relays: Set[str] = {normalize_address(r, "relay") for r in (relays or [])}
        self._paused = paused

    # ── Queries ───────────────────────────────────────────────

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def relays(self) -> frozenset:
        return frozenset(self._relays)

    def is_relay(self, caller: str) -> bool:
        return normalize_address(caller, "caller") in self._relays

    # ── Guards ────────────────────────────────────────────────

    def require_not_paused(self) -> None:
        if self._paused:
            raise PausedState("Engine is paused")

    def require_relay(self, caller: str) -> None:
        if not self.is_relay(caller):
            raise Unauthorized("Caller is not a trusted relay", {"caller": caller})

    def require_owner(self, caller: str) -> None:
        if normalize_address(caller, "caller") != self._owner:
            raise Unauthorized("Caller is not the owner", {"caller": caller})

    # ── Administration ────────────────────────────────────────

    def pause(self, caller: str) -> None:
        with self._lock:
            self.require_owner(caller)
            self.require_not_paused()
            self._paused = True
        logger.info("Engine paused by %s", caller)

    def unpause(self, caller: str) -> None:
        with self._lock:
            self.require_owner(caller)
            if not self._paused:
                raise NotPausedState("Engine is not paused")
            self._paused = False
        logger.info("Engine unpaused by %s", caller)

    def transfer_ownership(self, caller: str, new_owner: str) -> None:
        new_owner = normalize_address(new_owner, "new_owner")
        if new_owner == ZERO_ADDRESS:
            raise ValidationError("New owner is the zero address")
        with self._lock:
            self.require_owner(caller)
            previous, self._owner = self._owner, new_owner
        logger.info("Ownership transferred from %s to %s", previous, new_owner)

    def add_relay(self, caller: str, relay: str) -> None:
        relay = normalize_address(relay, "relay")
        with self._lock:
            self.require_owner(caller)
            self._relays.add(relay)
        logger.info("Relay %s trusted", relay)

    def remove_relay(self, caller: str, relay: str) -> None:
        relay = normalize_address(relay, "relay")
        with self._lock:
            self.require_owner(caller)
            self._relays.discard(relay)
        logger.info("Relay %s removed", relay)

    def __repr__(self) -> str:
        return (
            f"AccessPolicy(owner={self._owner!r}, "
            f"paused={self._paused}, relays={len(self._relays)})"
        )
