"""
Bitcoin and regtest settlement constants.

Coinbase outputs only become spendable after COINBASE_MATURITY further blocks,
so funding a fresh regtest wallet from block rewards needs one block more than
that before the first reward can be spent.
"""

from __future__ import annotations

SATS_PER_BTC = 100_000_000

# Number of decimal places in a BTC amount
BTC_DECIMALS = 8

# Blocks on top of a coinbase before it can be spent
COINBASE_MATURITY = 100

# Blocks mined to the funding address so exactly one reward is mature
DEFAULT_FUNDING_BLOCKS = COINBASE_MATURITY + 1

# Blocks mined after broadcast to confirm the transfer
DEFAULT_CONFIRMATION_BLOCKS = 1

# Regtest block subsidy before the first halving (150 blocks on regtest)
REGTEST_BLOCK_SUBSIDY = 50 * SATS_PER_BTC
REGTEST_HALVING_INTERVAL = 150

DEFAULT_RPC_URL = "http://127.0.0.1:18443"  # Default regtest RPC port
DEFAULT_RPC_USER = "alice"
DEFAULT_RPC_PASSWORD = "password"

DEFAULT_MINER_WALLET = "Miner"
DEFAULT_TRADER_WALLET = "Trader"
DEFAULT_MINING_LABEL = "Mining Reward"
DEFAULT_RECEIVING_LABEL = "Received"
DEFAULT_ADDRESS_TYPE = "bech32"

DEFAULT_TRANSFER_BTC = "20"
DEFAULT_REPORT_PATH = "out.txt"

# Number of lines in a settlement report
REPORT_FIELD_COUNT = 10
