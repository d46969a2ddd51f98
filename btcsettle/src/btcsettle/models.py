"""
Settlement data models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from btcsettle.errors import SettlementError


class NetworkType(str, Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    SIGNET = "signet"
    REGTEST = "regtest"

    @classmethod
    def from_chain(cls, chain: str) -> NetworkType:
        """Map the `chain` field of getblockchaininfo to a NetworkType."""
        chains = {
            "main": cls.MAINNET,
            "test": cls.TESTNET,
            "testnet4": cls.TESTNET,
            "signet": cls.SIGNET,
            "regtest": cls.REGTEST,
        }
        if chain not in chains:
            raise ValueError(f"Unknown chain: {chain}")
        return chains[chain]


class AddressRole(str, Enum):
    SELF = "self"
    COUNTERPARTY = "counterparty"


class AddressEncoding(str, Enum):
    BECH32 = "bech32"
    BECH32M = "bech32m"
    BASE58 = "base58"


@dataclass(frozen=True)
class Address:
    """A network-validated address. Build with wallet.address.resolve_address()."""

    value: str
    network: NetworkType
    encoding: AddressEncoding
    label: str = ""
    role: AddressRole = AddressRole.SELF

    @property
    def normalized(self) -> str:
        # bech32 is case-insensitive, base58 is not
        if self.encoding == AddressEncoding.BASE58:
            return self.value
        return self.value.lower()

    def matches(self, other: Address) -> bool:
        return self.normalized == other.normalized

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class TransactionOutput:
    """A transaction output as reported by the node"""

    index: int
    amount: int
    address: str | None = None  # None for OP_RETURN and non-standard scripts


@dataclass(frozen=True)
class ClassifiedOutput:
    index: int
    address: Address
    amount: int


@dataclass(frozen=True)
class ClassifiedOutputs:
    """
    Result of splitting transaction outputs into payment and change.

    When the transaction has no change output, change is None and the change
    address falls back to the sender's own address with a zero amount.
    """

    payment: ClassifiedOutput
    change: ClassifiedOutput | None
    self_fallback: Address
    resolution_errors: tuple[SettlementError, ...] = field(default=())

    @property
    def change_address(self) -> Address:
        return self.change.address if self.change is not None else self.self_fallback

    @property
    def change_amount(self) -> int:
        return self.change.amount if self.change is not None else 0


class FeeSource(str, Enum):
    WALLET = "wallet"
    MEMPOOL = "mempool"
    DERIVED = "derived"
    UNAVAILABLE = "unavailable"


@dataclass(frozen=True)
class FeeResult:
    amount: int
    source: FeeSource

    @property
    def low_confidence(self) -> bool:
        return self.source == FeeSource.UNAVAILABLE


@dataclass(frozen=True)
class SettlementRecord:
    """Audit record of one confirmed transfer. Amounts are in satoshis."""

    txid: str
    sender_funding_address: str
    input_amount: int
    counterparty_address: str
    payment_amount: int
    change_address: str
    change_amount: int
    fee: int
    block_height: int
    block_hash: str
