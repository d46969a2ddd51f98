"""
Configuration management using pydantic-settings.
"""

from __future__ import annotations

from decimal import Decimal
from pathlib import Path

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from btcsettle.amounts import btc_to_sats
from btcsettle.constants import (
    COINBASE_MATURITY,
    DEFAULT_ADDRESS_TYPE,
    DEFAULT_CONFIRMATION_BLOCKS,
    DEFAULT_FUNDING_BLOCKS,
    DEFAULT_MINER_WALLET,
    DEFAULT_MINING_LABEL,
    DEFAULT_RECEIVING_LABEL,
    DEFAULT_REPORT_PATH,
    DEFAULT_RPC_PASSWORD,
    DEFAULT_RPC_URL,
    DEFAULT_RPC_USER,
    DEFAULT_TRADER_WALLET,
    DEFAULT_TRANSFER_BTC,
)
from btcsettle.models import NetworkType

# Timeout for RPC calls (seconds)
DEFAULT_RPC_TIMEOUT = 30.0

LOG_LEVELS = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")


class NodeConfig(BaseModel):
    """Connection settings handed to the node client."""

    rpc_url: str = DEFAULT_RPC_URL
    rpc_user: str = DEFAULT_RPC_USER
    rpc_password: str = DEFAULT_RPC_PASSWORD
    network: NetworkType = NetworkType.REGTEST
    timeout: float = Field(default=DEFAULT_RPC_TIMEOUT, gt=0)

    @field_validator("rpc_url")
    @classmethod
    def validate_rpc_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("rpc_url must start with http:// or https://")
        return v.rstrip("/")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="BTCSETTLE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    rpc_url: str = DEFAULT_RPC_URL
    rpc_user: str = DEFAULT_RPC_USER
    rpc_password: str = DEFAULT_RPC_PASSWORD
    network: NetworkType = NetworkType.REGTEST
    rpc_timeout: float = Field(default=DEFAULT_RPC_TIMEOUT, gt=0)

    miner_wallet: str = Field(default=DEFAULT_MINER_WALLET, min_length=1)
    trader_wallet: str = Field(default=DEFAULT_TRADER_WALLET, min_length=1)
    mining_label: str = DEFAULT_MINING_LABEL
    receiving_label: str = DEFAULT_RECEIVING_LABEL
    address_type: str = DEFAULT_ADDRESS_TYPE

    funding_blocks: int = Field(
        default=DEFAULT_FUNDING_BLOCKS,
        gt=COINBASE_MATURITY,
        description="Blocks mined to the miner; must exceed coinbase maturity",
    )
    confirmation_blocks: int = Field(default=DEFAULT_CONFIRMATION_BLOCKS, ge=1)
    transfer_amount: Decimal = Field(
        default=Decimal(DEFAULT_TRANSFER_BTC), gt=0, description="Amount to transfer in BTC"
    )

    output_path: Path = Path(DEFAULT_REPORT_PATH)
    log_level: str = "INFO"

    @field_validator("transfer_amount")
    @classmethod
    def validate_transfer_amount(cls, v: Decimal) -> Decimal:
        # Raises on sub-satoshi precision
        btc_to_sats(v)
        return v

    @field_validator("trader_wallet")
    @classmethod
    def validate_distinct_wallets(cls, v: str, info: ValidationInfo) -> str:
        if v == info.data.get("miner_wallet"):
            raise ValueError("trader_wallet must differ from miner_wallet")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}")
        return level

    @property
    def transfer_sats(self) -> int:
        return btc_to_sats(self.transfer_amount)

    def node_config(self) -> NodeConfig:
        return NodeConfig(
            rpc_url=self.rpc_url,
            rpc_user=self.rpc_user,
            rpc_password=self.rpc_password,
            network=self.network,
            timeout=self.rpc_timeout,
        )


def get_settings(**overrides: object) -> Settings:
    """Load settings from the environment, with explicit overrides taking precedence."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})
