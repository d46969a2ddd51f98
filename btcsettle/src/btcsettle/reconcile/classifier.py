"""
Split a confirmed transaction's outputs into payment and change.

A simple send has one output paying the counterparty and at most one output
returning the rest to the sender. Anything else (several counterparty
outputs, several candidate change outputs) is rejected instead of guessing
which output is which.
"""

from __future__ import annotations

from collections.abc import Sequence

from loguru import logger

from btcsettle.errors import SettlementError, UnsupportedTransactionShapeError
from btcsettle.models import (
    Address,
    AddressRole,
    ClassifiedOutput,
    ClassifiedOutputs,
    NetworkType,
    TransactionOutput,
)
from btcsettle.wallet.address import resolve_address

MAX_SETTLEMENT_OUTPUTS = 2

MISSING_CHANGE_DIAGNOSTIC = (
    "No change output found. Possible causes: "
    "(1) inputs exactly matched payment plus fee, "
    "(2) change address comparison is broken, "
    "(3) transaction has an unexpected output count"
)


def classify_outputs(
    outputs: Sequence[TransactionOutput],
    counterparty: Address,
    self_fallback: Address,
    network: NetworkType,
) -> ClassifiedOutputs:
    """
    Classify transaction outputs.

    Args:
        outputs: Outputs in node order
        counterparty: Address the payment was sent to
        self_fallback: Sender address reported as change when there is no change output
        network: Network every output address must belong to

    Returns:
        ClassifiedOutputs with the payment and optional change

    Raises:
        UnsupportedTransactionShapeError: If outputs don't fit payment + optional change
        AddressNetworkMismatchError: If an unresolvable output could have been the payment
        ProtocolDecodeError: Same, for malformed addresses
    """
    if not outputs:
        raise UnsupportedTransactionShapeError("Transaction has no outputs")
    if len(outputs) > MAX_SETTLEMENT_OUTPUTS:
        raise UnsupportedTransactionShapeError(
            f"Transaction has {len(outputs)} outputs, expected at most "
            f"{MAX_SETTLEMENT_OUTPUTS} (payment and change)"
        )

    payments: list[ClassifiedOutput] = []
    change: ClassifiedOutput | None = None
    errors: list[SettlementError] = []

    for output in outputs:
        if output.address is None:
            errors.append(
                UnsupportedTransactionShapeError(
                    f"Output {output.index} has no address (non-standard or OP_RETURN)"
                )
            )
            continue

        try:
            address = resolve_address(output.address, network)
        except SettlementError as e:
            # Attributed to this output only; the rest are still classified
            logger.warning(f"Could not resolve output {output.index}: {e}")
            errors.append(e)
            continue

        if address.normalized == counterparty.normalized:
            payments.append(
                ClassifiedOutput(
                    index=output.index,
                    address=Address(
                        value=address.value,
                        network=address.network,
                        encoding=address.encoding,
                        label=counterparty.label,
                        role=AddressRole.COUNTERPARTY,
                    ),
                    amount=output.amount,
                )
            )
        elif change is None:
            change = ClassifiedOutput(
                index=output.index,
                address=Address(
                    value=address.value,
                    network=address.network,
                    encoding=address.encoding,
                    label="change",
                    role=AddressRole.SELF,
                ),
                amount=output.amount,
            )

    if len(payments) > 1:
        raise UnsupportedTransactionShapeError(
            f"{len(payments)} outputs pay the counterparty", address=counterparty.value
        )

    if not payments:
        if errors:
            # An output we could not resolve may have been the payment
            raise errors[0]
        raise UnsupportedTransactionShapeError(
            "No output pays the counterparty", address=counterparty.value
        )

    payment = payments[0]
    logger.debug(f"Payment output {payment.index}: {payment.amount} sats to {payment.address}")

    if change is None and errors:
        logger.warning(f"No change output resolved, {len(errors)} output(s) failed resolution")
    elif change is None:
        logger.warning(MISSING_CHANGE_DIAGNOSTIC)
    else:
        logger.debug(f"Change output {change.index}: {change.amount} sats to {change.address}")

    return ClassifiedOutputs(
        payment=payment,
        change=change,
        self_fallback=self_fallback,
        resolution_errors=tuple(errors),
    )
