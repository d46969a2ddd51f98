"""
Network fee calculation.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from btcsettle.models import FeeResult, FeeSource


def compute_fee(input_amount: int, output_amounts: Sequence[int]) -> int:
    """
    Fee paid by a transaction in satoshis.

    Args:
        input_amount: Sum of all spent prevouts (sats)
        output_amounts: Amounts of all outputs (sats)

    Returns:
        |inputs - outputs|, never negative
    """
    return abs(input_amount - sum(output_amounts))


def determine_fee(
    reported_fee: int | None,
    input_amount: int | None,
    output_amounts: Sequence[int],
    reported_source: FeeSource = FeeSource.WALLET,
) -> FeeResult:
    """
    Pick the fee for a settlement record.

    The node-reported fee is preferred. Bitcoin Core reports it negative from
    the sender wallet's point of view, so its absolute value is used. Without
    it the fee is derived from raw input and output amounts. If neither is
    available the fee is zero and flagged low confidence.
    """
    derived = compute_fee(input_amount, output_amounts) if input_amount is not None else None

    if reported_fee is not None:
        fee = abs(reported_fee)
        if derived is not None and derived != fee:
            logger.warning(
                f"Reported fee {fee} sats differs from derived fee {derived} sats, "
                f"using {reported_source.value} value"
            )
        return FeeResult(amount=fee, source=reported_source)

    if derived is not None:
        logger.debug(f"No reported fee, derived {derived} sats from input/output amounts")
        return FeeResult(amount=derived, source=FeeSource.DERIVED)

    logger.warning("Fee unavailable (transaction not indexed?), defaulting to 0 (low confidence)")
    return FeeResult(amount=0, source=FeeSource.UNAVAILABLE)
