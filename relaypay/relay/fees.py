"""
Relay fee mechanisms.

The relay that submits a settlement is paid out of the engine's custody
during the settlement itself, after the payer's funds were pulled in and
before the remainder is forwarded. The mechanism is pluggable; whatever it
does is part of the atomic unit and is rolled back with everything else
if a later step fails.
"""

import logging
from abc import ABC, abstractmethod

from relaypay.core.exceptions import FeeError, LedgerError
from relaypay.core.models import ZERO_ADDRESS, RelayContext
from relaypay.ledger.adapter import TokenLedger


logger = logging.getLogger(__name__)


class FeeMechanism(ABC):
    """Charges the relay for one settlement."""

    @abstractmethod
    def charge(self, ledger: TokenLedger, custody: str, relay: RelayContext) -> int:
        """
        Pay the relay from custody.

        Returns:
            The amount charged, in relay.fee_token base units.

        Raises:
            FeeError or LedgerError. Either aborts the settlement.
        """
        ...


class NoRelayFee(FeeMechanism):
    """Relay is compensated elsewhere."""

    def charge(self, ledger: TokenLedger, custody: str, relay: RelayContext) -> int:
        return 0


class TransferRelayFee(FeeMechanism):
    """
    Transfer relay.fee of relay.fee_token from custody to relay.fee_collector.

    A zero fee is a no-op. A non-zero fee with no collector or no fee token
    is refused rather than burnt.
    """

    def charge(self, ledger: TokenLedger, custody: str, relay: RelayContext) -> int:
        if relay.fee == 0:
            return 0
        if relay.fee_collector == ZERO_ADDRESS or relay.fee_token == ZERO_ADDRESS:
            raise FeeError(
                "Relay fee requires a fee collector and a fee token",
                {"fee": relay.fee},
            )
        try:
            ledger.transfer(relay.fee_token, custody, relay.fee_collector, relay.fee)
        except LedgerError as exc:
            raise FeeError(
                f"Relay fee transfer failed: {exc.message}",
                {"fee": relay.fee, "fee_token": relay.fee_token, **exc.details},
            ) from exc
        logger.debug(
            "Relay fee %d of %s paid to %s", relay.fee, relay.fee_token, relay.fee_collector
        )
        return relay.fee


FEE_MECHANISMS = {
    "none": NoRelayFee,
    "transfer": TransferRelayFee,
}
