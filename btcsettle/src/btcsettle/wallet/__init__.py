"""
Wallet provisioning and address resolution.
"""

from btcsettle.wallet.address import resolve_address
from btcsettle.wallet.models import ProvisionOutcome, ProvisionState, WalletHandle
from btcsettle.wallet.provisioner import WalletProvisioner

__all__ = [
    "ProvisionOutcome",
    "ProvisionState",
    "WalletHandle",
    "WalletProvisioner",
    "resolve_address",
]
