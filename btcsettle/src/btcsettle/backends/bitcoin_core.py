"""
Bitcoin Core RPC ledger node.
Wallet-scoped calls are routed to <rpc_url>/wallet/<name>.
"""

from __future__ import annotations

import json
import os
from decimal import Decimal
from typing import Any
from urllib.parse import quote

import httpx
from loguru import logger

from btcsettle.amounts import btc_to_sats, rpc_amount
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
from btcsettle.config import NodeConfig
from btcsettle.errors import (
    AuthError,
    ConnectivityError,
    NodeRPCError,
    ProtocolDecodeError,
    WalletStateError,
)
from btcsettle.models import TransactionOutput

# Bitcoin Core RPC error codes that describe wallet state rather than a bad request
RPC_WALLET_ERROR = -4
RPC_WALLET_INSUFFICIENT_FUNDS = -6
RPC_WALLET_UNLOCK_NEEDED = -13
RPC_WALLET_NOT_FOUND = -18
RPC_WALLET_NOT_SPECIFIED = -19
RPC_WALLET_ALREADY_LOADED = -35

WALLET_ERROR_CODES = frozenset(
    {
        RPC_WALLET_ERROR,
        RPC_WALLET_INSUFFICIENT_FUNDS,
        RPC_WALLET_UNLOCK_NEEDED,
        RPC_WALLET_NOT_FOUND,
        RPC_WALLET_NOT_SPECIFIED,
        RPC_WALLET_ALREADY_LOADED,
    }
)

# Environment variable to enable sensitive logging (addresses, raw payloads)
SENSITIVE_LOGGING = os.environ.get("SENSITIVE_LOGGING", "").lower() in ("1", "true", "yes")


def _parse_output(vout_data: dict[str, Any]) -> TransactionOutput:
    script_pub_key = vout_data.get("scriptPubKey", {})
    address = script_pub_key.get("address")
    # Older Core versions report a list of addresses
    if not address and "addresses" in script_pub_key:
        addresses = script_pub_key.get("addresses", [])
        address = addresses[0] if addresses else None
    return TransactionOutput(
        index=vout_data["n"],
        amount=btc_to_sats(vout_data["value"]),
        address=address or None,
    )


def _parse_input(vin_data: dict[str, Any]) -> TransactionInput:
    if "coinbase" in vin_data:
        return TransactionInput(txid=None, vout=None, coinbase=True)
    return TransactionInput(txid=vin_data["txid"], vout=vin_data["vout"])


def _parse_raw_transaction(data: dict[str, Any]) -> RawTransaction:
    return RawTransaction(
        txid=data["txid"],
        inputs=[_parse_input(vin) for vin in data.get("vin", [])],
        outputs=[_parse_output(vout) for vout in data.get("vout", [])],
        vsize=data.get("vsize", 0),
        blockhash=data.get("blockhash"),
        confirmations=data.get("confirmations", 0),
    )


class BitcoinCoreNode(LedgerNode):
    """
    Ledger node backed by Bitcoin Core JSON-RPC.

    JSON responses are decoded with Decimal floats so BTC amounts convert to
    satoshis exactly.
    """

    def __init__(
        self,
        config: NodeConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.rpc_url = config.rpc_url.rstrip("/")
        self.client = httpx.AsyncClient(
            timeout=config.timeout,
            auth=(config.rpc_user, config.rpc_password),
            transport=transport,
        )
        self._request_id = 0

    def _wallet_url(self, wallet: str | None) -> str:
        if wallet is None:
            return self.rpc_url
        return f"{self.rpc_url}/wallet/{quote(wallet, safe='')}"

    async def _rpc_call(
        self,
        method: str,
        params: list | None = None,
        wallet: str | None = None,
    ) -> Any:
        """
        Make an RPC call to Bitcoin Core.

        Args:
            method: RPC method name
            params: Method parameters
            wallet: Wallet name for wallet-scoped calls

        Returns:
            RPC result

        Raises:
            ConnectivityError: On connection/timeout errors
            AuthError: On rejected credentials
            WalletStateError: On wallet related RPC errors
            NodeRPCError: On any other RPC error
            ProtocolDecodeError: On malformed responses
        """
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params or [],
        }

        try:
            response = await self.client.post(self._wallet_url(wallet), json=payload)
        except httpx.TimeoutException as e:
            logger.error(f"RPC call timed out: {method} - {e}")
            raise ConnectivityError(
                f"RPC call timed out after {self.config.timeout}s", method=method, wallet=wallet
            ) from e
        except httpx.TransportError as e:
            logger.error(f"RPC call failed: {method} - {e}")
            raise ConnectivityError(
                f"Node unreachable at {self.rpc_url}: {e}", method=method, wallet=wallet
            ) from e

        if response.status_code in (401, 403):
            logger.error(f"RPC authentication failed: {method} (HTTP {response.status_code})")
            raise AuthError(
                f"Node rejected credentials for user {self.config.rpc_user!r}",
                method=method,
                code=response.status_code,
            )

        # Core answers RPC errors with HTTP 404/500 and a JSON error body
        try:
            data = json.loads(response.text, parse_float=Decimal)
        except ValueError as e:
            raise ProtocolDecodeError(
                f"Non-JSON response (HTTP {response.status_code})",
                method=method,
                code=response.status_code,
            ) from e

        if not isinstance(data, dict):
            raise ProtocolDecodeError("RPC response is not a JSON object", method=method)

        if "error" in data and data["error"]:
            error_info = data["error"]
            error_code = error_info.get("code")
            error_msg = error_info.get("message", str(error_info))
            error_cls = WalletStateError if error_code in WALLET_ERROR_CODES else NodeRPCError
            logger.debug(f"RPC error {error_code} from {method}: {error_msg}")
            raise error_cls(
                f"RPC error {error_code}: {error_msg}",
                method=method,
                code=error_code,
                wallet=wallet,
            )

        if response.is_error:
            raise ProtocolDecodeError(
                f"HTTP {response.status_code} without RPC error", method=method
            )

        if SENSITIVE_LOGGING:
            logger.debug(f"RPC {method} result: {data.get('result')}")
        return data.get("result")

    def _decode(self, method: str, parser: Any, result: Any, **context: Any) -> Any:
        try:
            return parser(result)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise ProtocolDecodeError(
                f"Malformed {method} result: {type(e).__name__}: {e}", method=method, **context
            ) from e

    async def get_blockchain_info(self) -> ChainInfo:
        result = await self._rpc_call("getblockchaininfo")
        return self._decode(
            "getblockchaininfo",
            lambda r: ChainInfo(
                chain=r["chain"], blocks=r["blocks"], best_block_hash=r["bestblockhash"]
            ),
            result,
        )

    async def list_wallets(self) -> list[str]:
        result = await self._rpc_call("listwallets")
        if not isinstance(result, list):
            raise ProtocolDecodeError("listwallets did not return a list", method="listwallets")
        return [str(name) for name in result]

    async def load_wallet(self, name: str) -> None:
        await self._rpc_call("loadwallet", [name])
        logger.debug(f"loadwallet succeeded: {name}")

    async def create_wallet(self, name: str) -> None:
        await self._rpc_call("createwallet", [name])
        logger.debug(f"createwallet succeeded: {name}")

    async def get_new_address(self, wallet: str, label: str, address_type: str) -> str:
        address = await self._rpc_call("getnewaddress", [label, address_type], wallet=wallet)
        if not isinstance(address, str) or not address:
            raise ProtocolDecodeError(
                "getnewaddress returned no address", method="getnewaddress", wallet=wallet
            )
        return address

    async def generate_to_address(self, num_blocks: int, address: str) -> list[str]:
        block_hashes = await self._rpc_call("generatetoaddress", [num_blocks, address])
        if not isinstance(block_hashes, list) or len(block_hashes) != num_blocks:
            raise ProtocolDecodeError(
                f"generatetoaddress returned unexpected result for {num_blocks} blocks",
                method="generatetoaddress",
                address=address,
            )
        logger.debug(f"Generated {num_blocks} blocks to {address}")
        return block_hashes

    async def get_balance(self, wallet: str) -> int:
        result = await self._rpc_call("getbalance", wallet=wallet)
        return self._decode("getbalance", btc_to_sats, result, wallet=wallet)

    async def send_to_address(self, wallet: str, address: str, amount: int) -> str:
        txid = await self._rpc_call("sendtoaddress", [address, rpc_amount(amount)], wallet=wallet)
        if not isinstance(txid, str) or not txid:
            raise ProtocolDecodeError(
                "sendtoaddress returned no txid", method="sendtoaddress", wallet=wallet
            )
        logger.info(f"Broadcast transaction: {txid}")
        return txid

    async def get_mempool_entry(self, txid: str) -> MempoolEntry:
        result = await self._rpc_call("getmempoolentry", [txid])

        def parse(r: dict[str, Any]) -> MempoolEntry:
            fees = r.get("fees", {})
            base_fee = fees.get("base", r.get("fee"))
            return MempoolEntry(
                txid=txid,
                vsize=r["vsize"],
                fee=btc_to_sats(base_fee) if base_fee is not None else None,
                time=r.get("time"),
            )

        return self._decode("getmempoolentry", parse, result, txid=txid)

    async def get_raw_transaction(self, txid: str, blockhash: str | None = None) -> RawTransaction:
        params: list[Any] = [txid, True]
        if blockhash:
            params.append(blockhash)
        result = await self._rpc_call("getrawtransaction", params)
        return self._decode("getrawtransaction", _parse_raw_transaction, result, txid=txid)

    async def decode_raw_transaction(self, tx_hex: str) -> RawTransaction:
        result = await self._rpc_call("decoderawtransaction", [tx_hex])
        return self._decode("decoderawtransaction", _parse_raw_transaction, result)

    async def get_wallet_transaction(self, wallet: str, txid: str) -> WalletTransaction:
        result = await self._rpc_call("gettransaction", [txid], wallet=wallet)

        def parse(r: dict[str, Any]) -> WalletTransaction:
            return WalletTransaction(
                txid=r["txid"],
                amount=btc_to_sats(r["amount"]),
                confirmations=r.get("confirmations", 0),
                hex=r["hex"],
                fee=btc_to_sats(r["fee"]) if "fee" in r else None,
                blockhash=r.get("blockhash"),
                blockheight=r.get("blockheight"),
                details=[
                    WalletTransactionDetail(
                        address=d.get("address"),
                        category=d["category"],
                        amount=btc_to_sats(d["amount"]),
                        vout=d["vout"],
                    )
                    for d in r.get("details", [])
                ],
            )

        return self._decode("gettransaction", parse, result, txid=txid, wallet=wallet)

    async def get_block(self, block_hash: str) -> BlockInfo:
        result = await self._rpc_call("getblock", [block_hash, 1])
        return self._decode(
            "getblock",
            lambda r: BlockInfo(
                hash=r["hash"],
                height=r["height"],
                confirmations=r["confirmations"],
                tx=list(r.get("tx", [])),
                time=r.get("time"),
            ),
            result,
        )

    async def get_block_count(self) -> int:
        height = await self._rpc_call("getblockcount")
        if not isinstance(height, int):
            raise ProtocolDecodeError("getblockcount returned a non-integer", method="getblockcount")
        logger.debug(f"Current block height: {height}")
        return height

    async def get_block_hash(self, block_height: int) -> str:
        block_hash = await self._rpc_call("getblockhash", [block_height])
        if not isinstance(block_hash, str):
            raise ProtocolDecodeError("getblockhash returned a non-string", method="getblockhash")
        logger.debug(f"Block hash for height {block_height}: {block_hash}")
        return block_hash

    async def close(self) -> None:
        await self.client.aclose()
