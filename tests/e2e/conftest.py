"""
E2E test configuration and fixtures.

These tests drive a real regtest Bitcoin Core node, e.g. one started with
`docker compose --profile e2e up -d`. They are excluded from the default
run; select them with `-m e2e` or `-m docker`.
"""

from __future__ import annotations

import os
import socket
import uuid
from collections.abc import AsyncGenerator
from pathlib import Path
from urllib.parse import urlparse

import pytest
import pytest_asyncio
from loguru import logger

from btcsettle.backends.bitcoin_core import BitcoinCoreNode
from btcsettle.config import Settings
from btcsettle.constants import REGTEST_BLOCK_SUBSIDY, REGTEST_HALVING_INTERVAL


def pytest_collection_modifyitems(
    config: pytest.Config,
    items: list[pytest.Item],
) -> None:
    """Auto-add the docker marker to e2e tests so they are excluded by default."""
    docker_marker = pytest.mark.docker

    for item in items:
        item_markers = {marker.name for marker in item.iter_markers()}
        if "e2e" in item_markers and "docker" not in item_markers:
            item.add_marker(docker_marker)


@pytest.fixture(scope="session")
def bitcoin_rpc_config() -> dict[str, str]:
    """Bitcoin Core RPC configuration from environment or defaults."""
    return {
        "rpc_url": os.environ.get("BITCOIN_RPC_URL", "http://127.0.0.1:18443"),
        "rpc_user": os.environ.get("BITCOIN_RPC_USER", "alice"),
        "rpc_password": os.environ.get("BITCOIN_RPC_PASSWORD", "password"),
    }


def is_port_open(host: str, port: int, timeout: float = 1.0) -> bool:
    """Check if a TCP port is open."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.settimeout(timeout)
    try:
        return sock.connect_ex((host, port)) == 0
    finally:
        sock.close()


@pytest.fixture(scope="session")
def require_bitcoin_node(bitcoin_rpc_config: dict[str, str]) -> None:
    """Skip when no node is listening on the configured RPC port."""
    parsed = urlparse(bitcoin_rpc_config["rpc_url"])
    host = parsed.hostname or "127.0.0.1"
    port = parsed.port or 18443
    if not is_port_open(host, port):
        logger.warning(f"Bitcoin Core not accessible on {host}:{port}")
        pytest.skip("Bitcoin Core not running. Start with: docker compose --profile e2e up -d")


@pytest.fixture
def e2e_settings(
    require_bitcoin_node: None, bitcoin_rpc_config: dict[str, str], tmp_path: Path
) -> Settings:
    """Settings with per-test wallet names so runs do not share wallet state."""
    suffix = uuid.uuid4().hex[:8]
    return Settings(
        **bitcoin_rpc_config,
        miner_wallet=f"Miner-{suffix}",
        trader_wallet=f"Trader-{suffix}",
        output_path=tmp_path / "out.txt",
        _env_file=None,
    )


@pytest_asyncio.fixture
async def bitcoin_node(e2e_settings: Settings) -> AsyncGenerator[BitcoinCoreNode, None]:
    node = BitcoinCoreNode(e2e_settings.node_config())
    yield node
    await node.close()


def regtest_subsidy(height: int) -> int:
    """Coinbase subsidy in sats for a regtest block at the given height."""
    halvings = height // REGTEST_HALVING_INTERVAL
    return REGTEST_BLOCK_SUBSIDY >> halvings if halvings < 64 else 0


@pytest_asyncio.fixture
async def funded_chain(bitcoin_node: BitcoinCoreNode, e2e_settings: Settings) -> None:
    """
    Skip when the chain is too long for one block reward to cover the transfer.

    Only the first funding block matures during a run, and regtest halves the
    subsidy every 150 blocks, so a long-lived node eventually runs dry.
    """
    height = await bitcoin_node.get_block_count()
    if regtest_subsidy(height + 1) < e2e_settings.transfer_sats:
        pytest.skip(f"Block subsidy at height {height + 1} is below the transfer amount")
