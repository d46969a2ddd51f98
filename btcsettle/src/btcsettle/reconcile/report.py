"""
Settlement report serialization.

The report is ten newline-separated values with no trailing newline. The
field order is consumed by downstream tooling and must not change:

    txid
    sender funding address
    input amount (BTC)
    counterparty address
    payment amount (BTC)
    change address
    change amount (BTC)
    fee (BTC)
    block height
    block hash
"""

from __future__ import annotations

from pathlib import Path

from loguru import logger

from btcsettle.amounts import btc_to_sats, format_btc
from btcsettle.constants import REPORT_FIELD_COUNT
from btcsettle.errors import ReportIOError
from btcsettle.models import SettlementRecord

REPORT_FIELDS = (
    "txid",
    "sender_funding_address",
    "input_amount",
    "counterparty_address",
    "payment_amount",
    "change_address",
    "change_amount",
    "fee",
    "block_height",
    "block_hash",
)

AMOUNT_FIELDS = frozenset({"input_amount", "payment_amount", "change_amount", "fee"})


def report_lines(record: SettlementRecord) -> list[str]:
    """Report values in field order, amounts formatted as decimal BTC."""
    lines = []
    for name in REPORT_FIELDS:
        value = getattr(record, name)
        lines.append(format_btc(value) if name in AMOUNT_FIELDS else str(value))
    return lines


def format_report(record: SettlementRecord) -> str:
    return "\n".join(report_lines(record))


def write_report(record: SettlementRecord, destination: Path | str) -> Path:
    """
    Write a settlement report, replacing any existing file.

    Raises:
        ReportIOError: If the file cannot be written
    """
    path = Path(destination)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(format_report(record), encoding="utf-8")
    except OSError as e:
        logger.error(f"Failed to write settlement report to {path}: {e}")
        raise ReportIOError(f"Cannot write report to {path}: {e}", txid=record.txid) from e

    logger.info(f"Wrote settlement report for {record.txid} to {path}")
    return path


def read_report(source: Path | str) -> SettlementRecord:
    """
    Parse a settlement report back into a record.

    Raises:
        ReportIOError: If the file cannot be read or is not a valid report
    """
    path = Path(source)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ReportIOError(f"Cannot read report {path}: {e}") from e

    lines = text.split("\n")
    if len(lines) != REPORT_FIELD_COUNT:
        raise ReportIOError(
            f"Report {path} has {len(lines)} lines, expected {REPORT_FIELD_COUNT}"
        )

    values: dict[str, str | int] = {}
    try:
        for name, line in zip(REPORT_FIELDS, lines, strict=True):
            if name in AMOUNT_FIELDS:
                values[name] = btc_to_sats(line)
            elif name == "block_height":
                values[name] = int(line)
            else:
                values[name] = line
    except ValueError as e:
        raise ReportIOError(f"Report {path} is malformed: {e}") from e

    return SettlementRecord(**values)  # type: ignore[arg-type]
