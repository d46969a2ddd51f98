"""
End-to-end settlement run against a ledger node.

Provision the miner and trader wallets, fund the miner from block rewards,
send the transfer, confirm it, then reconcile the confirmed transaction into
a settlement record and write the report. Every node call is awaited in
turn; any failure aborts the run, which is meant to be re-run from scratch
against a fresh regtest chain rather than resumed.
"""

from __future__ import annotations

from loguru import logger

from btcsettle.amounts import format_btc
from btcsettle.backends.base import LedgerNode, RawTransaction, TransactionInput
from btcsettle.backends.bitcoin_core import BitcoinCoreNode
from btcsettle.config import Settings
from btcsettle.errors import ProtocolDecodeError, WalletStateError
from btcsettle.models import (
    Address,
    AddressRole,
    FeeSource,
    NetworkType,
    SettlementRecord,
    TransactionOutput,
)
from btcsettle.reconcile.classifier import classify_outputs
from btcsettle.reconcile.fees import determine_fee
from btcsettle.reconcile.record import build_settlement_record
from btcsettle.reconcile.report import write_report
from btcsettle.wallet.address import resolve_address
from btcsettle.wallet.provisioner import WalletProvisioner


class SettlementPipeline:
    """Runs one funding transfer and reconciles it."""

    def __init__(self, node: LedgerNode, settings: Settings):
        self.node = node
        self.settings = settings
        self.network = settings.network
        self.provisioner = WalletProvisioner(node)

    async def run(self) -> SettlementRecord:
        s = self.settings
        await self._check_chain()

        await self.provisioner.ensure(s.miner_wallet)
        await self.provisioner.ensure(s.trader_wallet)

        miner_address = await self._new_address(s.miner_wallet, s.mining_label, AddressRole.SELF)
        logger.info(f"Miner address ({s.mining_label}): {miner_address}")

        await self._fund(miner_address)

        trader_address = await self._new_address(
            s.trader_wallet, s.receiving_label, AddressRole.COUNTERPARTY
        )
        logger.info(f"Trader address ({s.receiving_label}): {trader_address}")

        pre_transfer_height = await self.node.get_block_count()
        txid = await self.node.send_to_address(
            s.miner_wallet, trader_address.value, s.transfer_sats
        )
        logger.info(f"Sent {format_btc(s.transfer_sats)} BTC to {s.trader_wallet}: {txid}")

        mempool_entry = await self.node.get_mempool_entry(txid)
        mempool_fee = (
            f"{format_btc(mempool_entry.fee)} BTC" if mempool_entry.fee is not None else "unknown"
        )
        logger.info(f"Transaction in mempool: vsize {mempool_entry.vsize} vB, fee {mempool_fee}")

        await self.node.generate_to_address(s.confirmation_blocks, miner_address.value)
        logger.info(f"Mined {s.confirmation_blocks} block(s) to confirm {txid}")

        return await self._reconcile(
            txid, trader_address, pre_transfer_height, mempool_entry.fee
        )

    async def _check_chain(self) -> None:
        info = await self.node.get_blockchain_info()
        logger.info(f"Blockchain info: chain={info.chain} blocks={info.blocks}")
        try:
            chain_network = NetworkType.from_chain(info.chain)
        except ValueError:
            logger.warning(f"Node reports unknown chain {info.chain!r}")
            return
        if chain_network != self.network:
            logger.warning(
                f"Node is on {chain_network.value} but configured for {self.network.value}, "
                "address resolution will fail"
            )

    async def _new_address(self, wallet: str, label: str, role: AddressRole) -> Address:
        raw = await self.node.get_new_address(wallet, label, self.settings.address_type)
        return resolve_address(raw, self.network, label=label, role=role)

    async def _fund(self, miner_address: Address) -> None:
        s = self.settings
        await self.node.generate_to_address(s.funding_blocks, miner_address.value)
        logger.info(f"Generated {s.funding_blocks} blocks to miner address")

        # Coinbase outputs need 100 confirmations before they count as spendable,
        # so only the rewards of the first funding_blocks - 100 blocks show up here.
        miner_balance = await self.node.get_balance(s.miner_wallet)
        trader_balance = await self.node.get_balance(s.trader_wallet)
        logger.info(f"{s.miner_wallet} wallet balance: {format_btc(miner_balance)} BTC")
        logger.info(f"{s.trader_wallet} wallet balance: {format_btc(trader_balance)} BTC")

        if miner_balance < s.transfer_sats:
            raise WalletStateError(
                f"Spendable balance {format_btc(miner_balance)} BTC is below transfer amount "
                f"{format_btc(s.transfer_sats)} BTC",
                wallet=s.miner_wallet,
            )

    async def _reconcile(
        self,
        txid: str,
        counterparty: Address,
        pre_transfer_height: int,
        mempool_fee: int | None,
    ) -> SettlementRecord:
        s = self.settings
        wallet_tx = await self.node.get_wallet_transaction(s.miner_wallet, txid)
        if wallet_tx.confirmations < 1 or not wallet_tx.blockhash:
            raise WalletStateError("Transaction is not confirmed", txid=txid, wallet=s.miner_wallet)

        tx = await self.node.decode_raw_transaction(wallet_tx.hex)
        sender_address, input_amount = await self._resolve_inputs(tx)

        classified = classify_outputs(tx.outputs, counterparty, sender_address, self.network)
        if classified.resolution_errors:
            # An unresolved output would be reported as zero change
            error = classified.resolution_errors[0]
            error.txid = error.txid or txid
            raise error

        if wallet_tx.fee is not None:
            reported_fee, fee_source = wallet_tx.fee, FeeSource.WALLET
        else:
            reported_fee, fee_source = mempool_fee, FeeSource.MEMPOOL
        fee = determine_fee(
            reported_fee,
            input_amount,
            [output.amount for output in tx.outputs],
            reported_source=fee_source,
        )

        block = await self.node.get_block(wallet_tx.blockhash)
        if await self.node.get_block_hash(block.height) != block.hash:
            raise ProtocolDecodeError(
                f"Block {block.hash} is no longer on the active chain at height {block.height}",
                txid=txid,
            )
        if block.height != pre_transfer_height + 1:
            logger.warning(
                f"Transaction confirmed at height {block.height}, "
                f"expected {pre_transfer_height + 1}"
            )

        return build_settlement_record(
            txid=txid,
            sender_funding_address=sender_address.value,
            input_amount=input_amount,
            classified=classified,
            fee=fee,
            block_height=block.height,
            block_hash=block.hash,
        )

    async def _resolve_inputs(self, tx: RawTransaction) -> tuple[Address, int]:
        """Sender address (first input's prevout) and total input amount."""
        s = self.settings
        if not tx.inputs:
            raise ProtocolDecodeError("Transaction has no inputs", txid=tx.txid)

        prevouts = [await self._prevout(tx.txid, tx_input) for tx_input in tx.inputs]
        input_amount = sum(prevout.amount for prevout in prevouts)

        first = prevouts[0]
        if first.address is None:
            raise ProtocolDecodeError(
                f"Prevout {tx.inputs[0].txid}:{tx.inputs[0].vout} has no address", txid=tx.txid
            )
        sender_address = resolve_address(
            first.address, self.network, label=s.mining_label, role=AddressRole.SELF
        )

        logger.debug(f"Inputs total {format_btc(input_amount)} BTC from {sender_address}")
        return sender_address, input_amount

    async def _prevout(self, txid: str, tx_input: TransactionInput) -> TransactionOutput:
        if tx_input.coinbase or tx_input.txid is None or tx_input.vout is None:
            raise ProtocolDecodeError("Unexpected coinbase input", txid=txid)

        prev_tx = await self.node.fetch_transaction(self.settings.miner_wallet, tx_input.txid)
        prevout = next((o for o in prev_tx.outputs if o.index == tx_input.vout), None)
        if prevout is None:
            raise ProtocolDecodeError(
                f"Prevout {tx_input.txid}:{tx_input.vout} not found", txid=txid
            )
        return prevout


async def run_settlement(settings: Settings, node: LedgerNode | None = None) -> SettlementRecord:
    """
    Run the settlement pipeline and write the report.

    Creates a BitcoinCoreNode from settings unless a node is supplied; a node
    created here is closed before returning.
    """
    owned = node is None
    if node is None:
        node = BitcoinCoreNode(settings.node_config())

    try:
        record = await SettlementPipeline(node, settings).run()
        write_report(record, settings.output_path)
        return record
    finally:
        if owned:
            await node.close()
