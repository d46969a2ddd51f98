"""
Settlement record assembly.
"""

from __future__ import annotations

from loguru import logger

from btcsettle.models import ClassifiedOutputs, FeeResult, SettlementRecord


def build_settlement_record(
    txid: str,
    sender_funding_address: str,
    input_amount: int,
    classified: ClassifiedOutputs,
    fee: FeeResult,
    block_height: int,
    block_hash: str,
) -> SettlementRecord:
    """
    Combine classified outputs, fee and confirmation data into a record.

    Pure aggregation. A missing field here means an earlier step never ran.

    Raises:
        ValueError: If a required field is empty
    """
    required = {
        "txid": txid,
        "sender_funding_address": sender_funding_address,
        "block_hash": block_hash,
    }
    for field_name, value in required.items():
        if not value:
            raise ValueError(f"Settlement record field {field_name} was never populated")
    if block_height is None or block_height < 0:
        raise ValueError(f"Invalid block height: {block_height}")
    if input_amount is None or input_amount < 0:
        raise ValueError(f"Invalid input amount: {input_amount}")

    record = SettlementRecord(
        txid=txid,
        sender_funding_address=sender_funding_address,
        input_amount=input_amount,
        counterparty_address=classified.payment.address.value,
        payment_amount=classified.payment.amount,
        change_address=classified.change_address.value,
        change_amount=classified.change_amount,
        fee=fee.amount,
        block_height=block_height,
        block_hash=block_hash,
    )

    accounted = record.payment_amount + record.change_amount + record.fee
    if accounted != record.input_amount:
        logger.warning(
            f"Settlement {txid} does not balance: payment {record.payment_amount} + "
            f"change {record.change_amount} + fee {record.fee} = {accounted} sats, "
            f"inputs {record.input_amount} sats"
        )
    if fee.low_confidence:
        logger.warning(f"Settlement {txid} fee is low confidence ({fee.source.value})")

    return record
