"""
Settlement reconciliation: output classification, fees, records and reports.
"""

from btcsettle.reconcile.classifier import classify_outputs
from btcsettle.reconcile.fees import compute_fee, determine_fee
from btcsettle.reconcile.record import build_settlement_record
from btcsettle.reconcile.report import format_report, read_report, write_report

__all__ = [
    "build_settlement_record",
    "classify_outputs",
    "compute_fee",
    "determine_fee",
    "format_report",
    "read_report",
    "write_report",
]
