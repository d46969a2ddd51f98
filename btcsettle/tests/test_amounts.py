"""
Tests for satoshi/BTC conversions.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from btcsettle.amounts import btc_to_sats, format_btc, rpc_amount, sats_to_btc


class TestBtcToSats:
    def test_decimal(self) -> None:
        assert btc_to_sats(Decimal("20")) == 2_000_000_000
        assert btc_to_sats(Decimal("0.00014100")) == 14_100

    def test_string(self) -> None:
        assert btc_to_sats("100.9999") == 10_099_990_000

    def test_rejects_float(self) -> None:
        with pytest.raises(ValueError, match="float"):
            btc_to_sats(0.1)  # type: ignore[arg-type]

    def test_rejects_sub_satoshi(self) -> None:
        with pytest.raises(ValueError, match="sub-satoshi"):
            btc_to_sats("0.000000001")

    def test_rejects_garbage(self) -> None:
        with pytest.raises(ValueError, match="Invalid BTC amount"):
            btc_to_sats("twenty")


class TestFormatting:
    @pytest.mark.parametrize(
        "sats,expected",
        [
            (12_100_000_000, "121.0"),
            (2_000_000_000, "20.0"),
            (10_099_990_000, "100.9999"),
            (10_000, "0.0001"),
            (1, "0.00000001"),
            (0, "0.0"),
        ],
    )
    def test_format_btc(self, sats: int, expected: str) -> None:
        assert format_btc(sats) == expected

    def test_sats_to_btc_has_eight_places(self) -> None:
        assert sats_to_btc(2_000_000_000) == Decimal("20.00000000")
        assert str(sats_to_btc(14_100)) == "0.00014100"

    def test_rpc_amount(self) -> None:
        assert rpc_amount(2_000_000_000) == "20.00000000"
