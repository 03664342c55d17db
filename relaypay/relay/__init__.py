from relaypay.relay.fees import FeeMechanism, NoRelayFee, TransferRelayFee

__all__ = ["FeeMechanism", "NoRelayFee", "TransferRelayFee"]
