"""
Base ledger node interface.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from btcsettle.models import TransactionOutput


@dataclass
class ChainInfo:
    chain: str
    blocks: int
    best_block_hash: str


@dataclass
class TransactionInput:
    txid: str | None
    vout: int | None
    coinbase: bool = False


@dataclass
class RawTransaction:
    """Decoded transaction (decoderawtransaction / getrawtransaction verbose)"""

    txid: str
    inputs: list[TransactionInput]
    outputs: list[TransactionOutput]
    vsize: int = 0
    blockhash: str | None = None
    confirmations: int = 0


@dataclass
class WalletTransactionDetail:
    address: str | None
    category: str
    amount: int
    vout: int


@dataclass
class WalletTransaction:
    """
    A transaction as seen by one wallet (gettransaction).

    amount is the net effect on the wallet excluding the fee. fee is only
    reported for transactions the wallet sent and is negative, as Bitcoin
    Core reports it.
    """

    txid: str
    amount: int
    confirmations: int
    hex: str
    fee: int | None = None
    blockhash: str | None = None
    blockheight: int | None = None
    details: list[WalletTransactionDetail] = field(default_factory=list)


@dataclass
class MempoolEntry:
    txid: str
    vsize: int
    fee: int | None = None
    time: int | None = None


@dataclass
class BlockInfo:
    hash: str
    height: int
    confirmations: int
    tx: list[str] = field(default_factory=list)
    time: int | None = None


class LedgerNode(ABC):
    """
    Abstract ledger node interface.
    Everything btcsettle knows about wallets and the chain comes through here;
    implementations own the transport.
    """

    @abstractmethod
    async def get_blockchain_info(self) -> ChainInfo:
        """Get chain name, height and tip"""

    @abstractmethod
    async def list_wallets(self) -> list[str]:
        """Names of currently loaded wallets"""

    @abstractmethod
    async def load_wallet(self, name: str) -> None:
        """Load an existing wallet from disk"""

    @abstractmethod
    async def create_wallet(self, name: str) -> None:
        """Create and load a new wallet"""

    @abstractmethod
    async def get_new_address(self, wallet: str, label: str, address_type: str) -> str:
        """Generate a new receiving address in the wallet"""

    @abstractmethod
    async def generate_to_address(self, num_blocks: int, address: str) -> list[str]:
        """Mine blocks paying the reward to address, returns block hashes"""

    @abstractmethod
    async def get_balance(self, wallet: str) -> int:
        """Spendable (trusted, mature) wallet balance in satoshis"""

    @abstractmethod
    async def send_to_address(self, wallet: str, address: str, amount: int) -> str:
        """Send amount satoshis from wallet to address, returns txid"""

    @abstractmethod
    async def get_mempool_entry(self, txid: str) -> MempoolEntry:
        """Get mempool entry for an unconfirmed transaction"""

    @abstractmethod
    async def get_raw_transaction(self, txid: str, blockhash: str | None = None) -> RawTransaction:
        """Fetch and decode a transaction by txid"""

    @abstractmethod
    async def decode_raw_transaction(self, tx_hex: str) -> RawTransaction:
        """Decode a serialized transaction"""

    @abstractmethod
    async def get_wallet_transaction(self, wallet: str, txid: str) -> WalletTransaction:
        """Get a wallet's view of a transaction"""

    @abstractmethod
    async def get_block(self, block_hash: str) -> BlockInfo:
        """Get block by hash"""

    @abstractmethod
    async def get_block_count(self) -> int:
        """Get current blockchain height"""

    @abstractmethod
    async def get_block_hash(self, block_height: int) -> str:
        """Get block hash for given height"""

    async def fetch_transaction(self, wallet: str, txid: str) -> RawTransaction:
        """
        Decode a transaction known to the wallet.

        Uses the wallet's copy of the transaction so it works on nodes
        without -txindex.
        """
        wallet_tx = await self.get_wallet_transaction(wallet, txid)
        decoded = await self.decode_raw_transaction(wallet_tx.hex)
        decoded.blockhash = wallet_tx.blockhash
        decoded.confirmations = wallet_tx.confirmations
        return decoded

    async def close(self) -> None:
        """Close node connection"""
        pass
