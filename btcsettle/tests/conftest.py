"""
Test configuration for btcsettle tests.

FakeLedgerNode is an in-memory stand-in for a regtest bitcoind: wallets,
coinbase maturity, a mempool, blocks and wallet views of transactions. It
produces real bech32 regtest addresses so address resolution runs unmodified.
"""

from __future__ import annotations

import hashlib
from collections.abc import Generator
from dataclasses import dataclass, field
from pathlib import Path

import pytest
from loguru import logger

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
from btcsettle.config import Settings
from btcsettle.constants import COINBASE_MATURITY, REGTEST_BLOCK_SUBSIDY
from btcsettle.errors import NodeRPCError, WalletStateError
from btcsettle.models import NetworkType, TransactionOutput
from btcsettle.wallet.address import hash160, pubkey_hash_to_p2wpkh_address

FAKE_TX_FEE = 14_100  # sats
FAKE_TX_VSIZE = 141


def _digest(*parts: object) -> str:
    return hashlib.sha256("|".join(str(p) for p in parts).encode()).hexdigest()


@dataclass
class FakeTx:
    txid: str
    inputs: list[TransactionInput]
    outputs: list[TransactionOutput]
    coinbase: bool = False
    sender_wallet: str | None = None
    fee: int = 0
    block_hash: str | None = None


@dataclass
class FakeBlock:
    hash: str
    height: int
    txids: list[str] = field(default_factory=list)


class FakeLedgerNode(LedgerNode):
    """In-memory regtest node."""

    def __init__(self, network: NetworkType = NetworkType.REGTEST):
        self.network = network
        self.wallets_on_disk: set[str] = set()
        self.loaded: list[str] = []
        # Number of upcoming loadwallet calls to fail per wallet
        self.load_failures: dict[str, int] = {}
        self.create_failures: set[str] = set()

        self.address_owner: dict[str, str] = {}
        self._address_counter = 0

        self.txs: dict[str, FakeTx] = {}
        self.mempool: list[str] = []
        self.spent: set[tuple[str, int]] = set()

        genesis = FakeBlock(hash=_digest("genesis"), height=0)
        self.blocks: list[FakeBlock] = [genesis]

        self.tx_fee = FAKE_TX_FEE
        self.change_first = False
        self.change_address: str | None = None  # overrides the sender's fresh change address
        self.report_wallet_fee = True
        self.closed = False
        self.calls: list[str] = []

    # Helpers

    @property
    def height(self) -> int:
        return len(self.blocks) - 1

    def _confirmations(self, tx: FakeTx) -> int:
        if tx.block_hash is None:
            return 0
        block = next(b for b in self.blocks if b.hash == tx.block_hash)
        return self.height - block.height + 1

    def _owned_utxos(self, wallet: str) -> list[tuple[FakeTx, TransactionOutput]]:
        utxos = []
        for tx in self.txs.values():
            for out in tx.outputs:
                if (tx.txid, out.index) in self.spent:
                    continue
                if out.address is not None and self.address_owner.get(out.address) == wallet:
                    utxos.append((tx, out))
        return utxos

    def _spendable(self, tx: FakeTx, wallet: str) -> bool:
        confirmations = self._confirmations(tx)
        if tx.coinbase:
            return confirmations > COINBASE_MATURITY
        return confirmations > 0 or tx.sender_wallet == wallet

    def _require_loaded(self, wallet: str) -> None:
        if wallet not in self.loaded:
            raise WalletStateError(
                "RPC error -18: Requested wallet does not exist or is not loaded",
                code=-18,
                wallet=wallet,
            )

    def new_address(self, wallet: str) -> str:
        self._address_counter += 1
        pubkey_hash = hash160(f"{wallet}-{self._address_counter}".encode())
        address = pubkey_hash_to_p2wpkh_address(pubkey_hash, self.network)
        self.address_owner[address] = wallet
        return address

    # LedgerNode

    async def get_blockchain_info(self) -> ChainInfo:
        self.calls.append("getblockchaininfo")
        chain = {"mainnet": "main", "testnet": "test"}.get(self.network.value, self.network.value)
        return ChainInfo(chain=chain, blocks=self.height, best_block_hash=self.blocks[-1].hash)

    async def list_wallets(self) -> list[str]:
        self.calls.append("listwallets")
        return list(self.loaded)

    async def load_wallet(self, name: str) -> None:
        self.calls.append("loadwallet")
        if self.load_failures.get(name, 0) > 0:
            self.load_failures[name] -= 1
            raise WalletStateError("RPC error -4: Wallet file verification failed", code=-4)
        if name not in self.wallets_on_disk:
            raise WalletStateError("RPC error -18: Wallet not found", code=-18)
        if name in self.loaded:
            raise WalletStateError("RPC error -35: Wallet is already loaded", code=-35)
        self.loaded.append(name)

    async def create_wallet(self, name: str) -> None:
        self.calls.append("createwallet")
        if name in self.create_failures or name in self.wallets_on_disk:
            raise WalletStateError("RPC error -4: Wallet already exists", code=-4)
        self.wallets_on_disk.add(name)
        self.loaded.append(name)

    async def get_new_address(self, wallet: str, label: str, address_type: str) -> str:
        self.calls.append("getnewaddress")
        self._require_loaded(wallet)
        return self.new_address(wallet)

    async def generate_to_address(self, num_blocks: int, address: str) -> list[str]:
        self.calls.append("generatetoaddress")
        hashes = []
        for _ in range(num_blocks):
            height = self.height + 1
            fees = sum(self.txs[txid].fee for txid in self.mempool)
            coinbase = FakeTx(
                txid=_digest("coinbase", height),
                inputs=[TransactionInput(txid=None, vout=None, coinbase=True)],
                outputs=[
                    TransactionOutput(index=0, amount=REGTEST_BLOCK_SUBSIDY + fees, address=address)
                ],
                coinbase=True,
            )
            self.txs[coinbase.txid] = coinbase
            block = FakeBlock(
                hash=_digest("block", height), height=height, txids=[coinbase.txid, *self.mempool]
            )
            for txid in block.txids:
                self.txs[txid].block_hash = block.hash
            self.mempool = []
            self.blocks.append(block)
            hashes.append(block.hash)
        return hashes

    async def get_balance(self, wallet: str) -> int:
        self.calls.append("getbalance")
        self._require_loaded(wallet)
        return sum(
            out.amount for tx, out in self._owned_utxos(wallet) if self._spendable(tx, wallet)
        )

    async def send_to_address(self, wallet: str, address: str, amount: int) -> str:
        self.calls.append("sendtoaddress")
        self._require_loaded(wallet)

        selected: list[tuple[FakeTx, TransactionOutput]] = []
        total = 0
        for tx, out in self._owned_utxos(wallet):
            if not self._spendable(tx, wallet):
                continue
            selected.append((tx, out))
            total += out.amount
            if total >= amount + self.tx_fee:
                break
        if total < amount + self.tx_fee:
            raise WalletStateError("RPC error -6: Insufficient funds", code=-6, wallet=wallet)

        change = total - amount - self.tx_fee
        destinations = [(address, amount)]
        if change > 0:
            change_entry = (self.change_address or self.new_address(wallet), change)
            if self.change_first:
                destinations.insert(0, change_entry)
            else:
                destinations.append(change_entry)

        txid = _digest("tx", len(self.txs), address, amount)
        tx = FakeTx(
            txid=txid,
            inputs=[TransactionInput(txid=t.txid, vout=o.index) for t, o in selected],
            outputs=[
                TransactionOutput(index=i, amount=value, address=addr)
                for i, (addr, value) in enumerate(destinations)
            ],
            sender_wallet=wallet,
            fee=self.tx_fee,
        )
        for t, o in selected:
            self.spent.add((t.txid, o.index))
        self.txs[txid] = tx
        self.mempool.append(txid)
        return txid

    async def get_mempool_entry(self, txid: str) -> MempoolEntry:
        self.calls.append("getmempoolentry")
        if txid not in self.mempool:
            raise NodeRPCError("RPC error -5: Transaction not in mempool", code=-5, txid=txid)
        return MempoolEntry(txid=txid, vsize=FAKE_TX_VSIZE, fee=self.txs[txid].fee)

    def _raw(self, tx: FakeTx) -> RawTransaction:
        return RawTransaction(
            txid=tx.txid,
            inputs=list(tx.inputs),
            outputs=list(tx.outputs),
            vsize=FAKE_TX_VSIZE,
            blockhash=tx.block_hash,
            confirmations=self._confirmations(tx),
        )

    async def get_raw_transaction(self, txid: str, blockhash: str | None = None) -> RawTransaction:
        self.calls.append("getrawtransaction")
        if txid not in self.txs:
            raise NodeRPCError("RPC error -5: No such transaction", code=-5, txid=txid)
        return self._raw(self.txs[txid])

    async def decode_raw_transaction(self, tx_hex: str) -> RawTransaction:
        self.calls.append("decoderawtransaction")
        txid = bytes.fromhex(tx_hex).decode()
        if txid not in self.txs:
            raise NodeRPCError("RPC error -22: TX decode failed", code=-22)
        tx = self._raw(self.txs[txid])
        tx.blockhash = None
        tx.confirmations = 0
        return tx

    async def get_wallet_transaction(self, wallet: str, txid: str) -> WalletTransaction:
        self.calls.append("gettransaction")
        self._require_loaded(wallet)
        tx = self.txs.get(txid)
        if tx is None:
            raise NodeRPCError("RPC error -5: Invalid or non-wallet transaction id", code=-5)

        details = []
        received = 0
        sent = 0
        for out in tx.outputs:
            owner = self.address_owner.get(out.address or "")
            if tx.sender_wallet == wallet:
                # Change back to the sender is not listed, as in Bitcoin Core
                if owner != wallet:
                    details.append(
                        WalletTransactionDetail(out.address, "send", -out.amount, out.index)
                    )
                    sent += out.amount
            elif owner == wallet:
                category = "generate" if tx.coinbase else "receive"
                details.append(WalletTransactionDetail(out.address, category, out.amount, out.index))
                received += out.amount
        if not details and tx.sender_wallet != wallet:
            raise NodeRPCError("RPC error -5: Invalid or non-wallet transaction id", code=-5)

        block = next((b for b in self.blocks if b.hash == tx.block_hash), None)
        wallet_fee = None
        if tx.sender_wallet == wallet and self.report_wallet_fee:
            wallet_fee = -tx.fee
        return WalletTransaction(
            txid=txid,
            amount=received - sent if tx.sender_wallet != wallet else -sent,
            confirmations=self._confirmations(tx),
            hex=txid.encode().hex(),
            fee=wallet_fee,
            blockhash=tx.block_hash,
            blockheight=block.height if block else None,
            details=details,
        )

    async def get_block(self, block_hash: str) -> BlockInfo:
        self.calls.append("getblock")
        block = next((b for b in self.blocks if b.hash == block_hash), None)
        if block is None:
            raise NodeRPCError("RPC error -5: Block not found", code=-5)
        return BlockInfo(
            hash=block.hash,
            height=block.height,
            confirmations=self.height - block.height + 1,
            tx=list(block.txids),
        )

    async def get_block_count(self) -> int:
        self.calls.append("getblockcount")
        return self.height

    async def get_block_hash(self, block_height: int) -> str:
        self.calls.append("getblockhash")
        if not 0 <= block_height <= self.height:
            raise NodeRPCError("RPC error -8: Block height out of range", code=-8)
        return self.blocks[block_height].hash

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_node() -> FakeLedgerNode:
    return FakeLedgerNode()


@pytest.fixture
def make_fake_node():
    """Factory for nodes on a specific network."""

    def make(network: NetworkType = NetworkType.REGTEST) -> FakeLedgerNode:
        return FakeLedgerNode(network=network)

    return make


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings with defaults, writing the report into a temp dir."""
    return Settings(output_path=tmp_path / "out.txt", _env_file=None)


@pytest.fixture
def regtest_address(fake_node: FakeLedgerNode):
    """Factory for fresh regtest addresses owned by a named wallet."""

    def make(wallet: str = "Miner") -> str:
        return fake_node.new_address(wallet)

    return make


@pytest.fixture
def log_messages() -> Generator[list[str]]:
    """Capture loguru messages emitted during a test."""
    messages: list[str] = []
    handler_id = logger.add(lambda msg: messages.append(msg.record["message"]), level="DEBUG")
    yield messages
    logger.remove(handler_id)
