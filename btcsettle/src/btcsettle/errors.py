"""
Error taxonomy for settlement runs.

Every failure raised by btcsettle is a SettlementError tagged with an
ErrorKind and carrying structured context (wallet, address, txid, RPC method
and code) so an operator can tell which step failed without re-running.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    CONNECTIVITY = "connectivity"
    AUTH = "auth"
    WALLET_STATE = "wallet_state"
    ADDRESS_NETWORK_MISMATCH = "address_network_mismatch"
    IO_FAILURE = "io_failure"
    PROTOCOL_DECODE = "protocol_decode"
    RPC = "rpc"
    UNSUPPORTED_TX_SHAPE = "unsupported_tx_shape"


class SettlementError(Exception):
    """Base class for all settlement errors."""

    kind: ErrorKind = ErrorKind.PROTOCOL_DECODE

    def __init__(
        self,
        message: str,
        *,
        wallet: str | None = None,
        address: str | None = None,
        txid: str | None = None,
        method: str | None = None,
        code: int | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.wallet = wallet
        self.address = address
        self.txid = txid
        self.method = method
        self.code = code

    @property
    def context(self) -> dict[str, str | int]:
        """Populated context fields only."""
        fields = {
            "wallet": self.wallet,
            "address": self.address,
            "txid": self.txid,
            "method": self.method,
            "code": self.code,
        }
        return {k: v for k, v in fields.items() if v is not None}

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ConnectivityError(SettlementError):
    """Node unreachable or the request timed out."""

    kind = ErrorKind.CONNECTIVITY


class AuthError(SettlementError):
    """Node rejected the RPC credentials."""

    kind = ErrorKind.AUTH


class WalletStateError(SettlementError):
    """Wallet could not be loaded, created or used in its current state."""

    kind = ErrorKind.WALLET_STATE


class AddressNetworkMismatchError(SettlementError):
    """Address is valid but belongs to a different network than configured."""

    kind = ErrorKind.ADDRESS_NETWORK_MISMATCH


class ReportIOError(SettlementError):
    """Settlement report could not be written or read."""

    kind = ErrorKind.IO_FAILURE


class ProtocolDecodeError(SettlementError):
    """Node response or address could not be decoded."""

    kind = ErrorKind.PROTOCOL_DECODE


class NodeRPCError(SettlementError):
    """Node returned a JSON-RPC error not related to wallet state."""

    kind = ErrorKind.RPC


class UnsupportedTransactionShapeError(SettlementError):
    """Transaction outputs cannot be split into one payment and at most one change."""

    kind = ErrorKind.UNSUPPORTED_TX_SHAPE
