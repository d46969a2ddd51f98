"""
btcsettle - Regtest wallet funding and settlement reconciliation

Drives a Bitcoin Core node over JSON-RPC, sends a transfer between two
wallets and writes an audit record of the confirmed transaction.
"""

__version__ = "0.1.0"

from btcsettle.errors import (
    AddressNetworkMismatchError,
    AuthError,
    ConnectivityError,
    ErrorKind,
    NodeRPCError,
    ProtocolDecodeError,
    ReportIOError,
    SettlementError,
    UnsupportedTransactionShapeError,
    WalletStateError,
)
from btcsettle.models import (
    Address,
    AddressRole,
    ClassifiedOutputs,
    FeeResult,
    FeeSource,
    NetworkType,
    SettlementRecord,
    TransactionOutput,
)

__all__ = [
    "Address",
    "AddressNetworkMismatchError",
    "AddressRole",
    "AuthError",
    "ClassifiedOutputs",
    "ConnectivityError",
    "ErrorKind",
    "FeeResult",
    "FeeSource",
    "NetworkType",
    "NodeRPCError",
    "ProtocolDecodeError",
    "ReportIOError",
    "SettlementError",
    "SettlementRecord",
    "TransactionOutput",
    "UnsupportedTransactionShapeError",
    "WalletStateError",
]
