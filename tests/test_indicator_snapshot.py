"""Tests for IndicatorSnapshot parsing and validation."""

import math

import pytest
from pydantic import ValidationError

from quantgate.core.enums import AdxDirection
from quantgate.core.models import IndicatorSnapshot, as_utc, parse_reading


class TestParseReading:
    @pytest.mark.parametrize("raw,expected", [
        (42, 42.0),
        (3.5, 3.5),
        ("12.75", 12.75),
        (" -4 ", -4.0),
    ])
    def test_numbers(self, raw, expected):
        assert parse_reading(raw) == expected

    @pytest.mark.parametrize("raw", [None, "", "   ", "abc", True, math.nan, math.inf, "-inf", [1]])
    def test_absent(self, raw):
        assert parse_reading(raw) is None


class TestIndicatorSnapshot:
    def test_defaults_are_empty(self):
        snapshot = IndicatorSnapshot()
        assert snapshot.is_empty
        assert snapshot.adx_direction is None

    @pytest.mark.parametrize("rsi", [-1, 100.5])
    def test_rsi_out_of_domain(self, rsi):
        assert IndicatorSnapshot(rsi=rsi).rsi is None

    def test_rsi_domain_edges_kept(self):
        assert IndicatorSnapshot(rsi=0).rsi == 0
        assert IndicatorSnapshot(rsi=100).rsi == 100

    def test_negative_adx_and_atr_dropped(self):
        snapshot = IndicatorSnapshot(adx=-5, atr_pct=-0.1)
        assert snapshot.adx is None
        assert snapshot.atr_pct is None

    def test_signed_readings_kept(self):
        snapshot = IndicatorSnapshot(vwap_deviation_pct=-3.2, obv_zscore=-4, percent_b=-0.1)
        assert snapshot.vwap_deviation_pct == -3.2
        assert snapshot.obv_zscore == -4
        assert snapshot.percent_b == -0.1

    @pytest.mark.parametrize("raw,expected", [
        ("UP", AdxDirection.UP),
        ("down", AdxDirection.DOWN),
        (" Neutral ", AdxDirection.NEUTRAL),
        ("SIDEWAYS", None),
        (3, None),
    ])
    def test_adx_direction(self, raw, expected):
        assert IndicatorSnapshot(adx_direction=raw).adx_direction == expected

    def test_from_raw_accepts_column_names(self):
        row = {
            "rsi": "18.2",
            "vwap_deviation": "4.1",
            "percent_b": "0.05",
            "adx": "41",
            "adx_direction": "up",
            "atr_percent": "6.5",
            "obv_zscore": None,
            "token": "So11111111111111111111111111111111111111112",
        }
        snapshot = IndicatorSnapshot.from_raw(row)
        assert snapshot.rsi == pytest.approx(18.2)
        assert snapshot.vwap_deviation_pct == pytest.approx(4.1)
        assert snapshot.atr_pct == pytest.approx(6.5)
        assert snapshot.adx_direction == AdxDirection.UP
        assert snapshot.obv_zscore is None
        assert not snapshot.is_empty

    def test_is_frozen(self):
        snapshot = IndicatorSnapshot(rsi=50)
        with pytest.raises(ValidationError):
            snapshot.rsi = 10


def test_as_utc_handles_naive_and_aware(now):
    naive = now.replace(tzinfo=None)
    assert as_utc(naive) == now
    assert as_utc(now) == now
