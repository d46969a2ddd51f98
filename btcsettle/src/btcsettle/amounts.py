"""
Conversions between satoshis and decimal BTC.

Amounts are integer satoshis everywhere inside btcsettle. Decimal BTC only
appears at the RPC boundary (Bitcoin Core speaks BTC) and in the report.
"""

from __future__ import annotations

from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation

from btcsettle.constants import BTC_DECIMALS, SATS_PER_BTC

_SAT = Decimal(1).scaleb(-BTC_DECIMALS)


def btc_to_sats(value: Decimal | str | int) -> int:
    """
    Convert a BTC amount to satoshis.

    Floats are rejected: Bitcoin Core JSON is parsed with Decimal so an
    amount never passes through binary floating point.

    Raises:
        ValueError: If the value is not a valid amount or has sub-satoshi precision
    """
    if isinstance(value, float):
        raise ValueError(f"Refusing float BTC amount {value!r}, use Decimal or str")
    try:
        btc = Decimal(value)
    except (InvalidOperation, TypeError) as e:
        raise ValueError(f"Invalid BTC amount: {value!r}") from e

    if not btc.is_finite():
        raise ValueError(f"Invalid BTC amount: {value!r}")

    sats = btc * SATS_PER_BTC
    if sats != sats.to_integral_value():
        raise ValueError(f"BTC amount {value} has sub-satoshi precision")
    return int(sats)


def sats_to_btc(sats: int) -> Decimal:
    """Convert satoshis to a Decimal BTC amount with 8 decimal places."""
    return (Decimal(sats) / SATS_PER_BTC).quantize(_SAT, rounding=ROUND_HALF_EVEN)


def format_btc(sats: int) -> str:
    """
    Format satoshis as a human readable BTC value.

    Trailing zeros are dropped but one fractional digit is always kept,
    e.g. 12_100_000_000 -> "121.0" and 10_000 -> "0.0001".
    """
    text = f"{sats_to_btc(sats):.{BTC_DECIMALS}f}".rstrip("0")
    if text.endswith("."):
        text += "0"
    return text


def rpc_amount(sats: int) -> str:
    """Amount argument for Bitcoin Core RPC calls (accepted as a JSON string)."""
    return f"{sats_to_btc(sats):.{BTC_DECIMALS}f}"
