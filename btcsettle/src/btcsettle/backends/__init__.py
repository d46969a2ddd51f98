"""
Ledger node implementations.

Available backends:
- BitcoinCoreNode: Bitcoin Core JSON-RPC with per-wallet URL routing

Anything implementing LedgerNode can stand in for the node, which is how the
test suite runs the full settlement pipeline without a running bitcoind.
"""

from btcsettle.backends.base import (
    BlockInfo,
    ChainInfo,
    LedgerNode,
    MempoolEntry,
    RawTransaction,
    TransactionInput,
    WalletTransaction,
    WalletTransactionDetail,
)
from btcsettle.backends.bitcoin_core import BitcoinCoreNode

__all__ = [
    "BitcoinCoreNode",
    "BlockInfo",
    "ChainInfo",
    "LedgerNode",
    "MempoolEntry",
    "RawTransaction",
    "TransactionInput",
    "WalletTransaction",
    "WalletTransactionDetail",
]
