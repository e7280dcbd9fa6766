"""
Unit tests for the streaming technical indicators.

Tests validate:
- EMA, ATR, ADX and Bollinger Band warmup lengths
- EMA and Bollinger values against pandas reference calculations
- Degenerate inputs (flat prices, zero range)
- Batch frame matches the streaming values
"""

import numpy as np
import pandas as pd
import pytest

from regime_router.models import TrendDirection
from regime_router.technical_indicators import (
    ADX,
    ATR,
    EMA,
    BollingerBands,
    compute_indicator_frame,
    true_range,
)


@pytest.fixture
def random_closes():
    rng = np.random.default_rng(7)
    return 100.0 * np.exp(np.cumsum(rng.normal(0, 0.01, 200)))


# =============================================================================
# EMA Tests
# =============================================================================

class TestEMA:
    """Tests for the exponential moving average."""

    def test_not_ready_before_period(self):
        ema = EMA(5)
        for price in [1.0, 2.0, 3.0, 4.0]:
            assert ema.update(price) is None
        assert not ema.is_ready
        assert ema.update(5.0) is not None
        assert ema.is_ready

    def test_matches_pandas_ewm(self, random_closes):
        period = 10
        ema = EMA(period)
        streamed = [ema.update(p) for p in random_closes]
        expected = pd.Series(random_closes).ewm(span=period, adjust=False).mean()

        for i in range(period - 1, len(random_closes)):
            assert streamed[i] == pytest.approx(expected.iloc[i], rel=1e-10)

    def test_constant_series(self):
        ema = EMA(3)
        for _ in range(10):
            ema.update(42.0)
        assert ema.value == pytest.approx(42.0)

    def test_reset(self):
        ema = EMA(2)
        ema.update(1.0)
        ema.update(2.0)
        ema.reset()
        assert ema.value is None
        assert not ema.is_ready

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            EMA(0)


# =============================================================================
# ATR Tests
# =============================================================================

class TestATR:
    """Tests for the Wilder-smoothed average true range."""

    def test_true_range_uses_previous_close(self):
        assert true_range(10.0, 9.0, None) == pytest.approx(1.0)
        assert true_range(10.0, 9.0, 12.0) == pytest.approx(3.0)
        assert true_range(10.0, 9.0, 7.0) == pytest.approx(3.0)

    def test_warmup_length(self):
        atr = ATR(14)
        values = [atr.update(101.0, 99.0, 100.0) for _ in range(14)]
        assert all(v is None for v in values[:13])
        assert values[13] == pytest.approx(2.0)

    def test_constant_range_is_stable(self):
        atr = ATR(5)
        for _ in range(50):
            atr.update(101.0, 99.0, 100.0)
        assert atr.value == pytest.approx(2.0)

    def test_wilder_smoothing_step(self):
        atr = ATR(4)
        for _ in range(4):
            atr.update(101.0, 99.0, 100.0)
        # TR of the wide bar is 10; (3 * 2 + 10) / 4
        assert atr.update(105.0, 95.0, 100.0) == pytest.approx(4.0)


# =============================================================================
# ADX Tests
# =============================================================================

class TestADX:
    """Tests for the average directional index."""

    def test_first_value_after_two_periods(self):
        period = 5
        adx = ADX(period)
        values = []
        for i in range(2 * period):
            close = 100.0 + i
            values.append(adx.update(close + 0.5, close - 0.5, close))
        assert all(v is None for v in values[:-1])
        assert values[-1] is not None

    def test_flat_market_has_zero_adx(self):
        adx = ADX(14)
        for _ in range(40):
            adx.update(100.5, 99.5, 100.0)
        assert adx.value == pytest.approx(0.0)
        assert adx.trend_direction() is None

    def test_steady_uptrend(self, trend_candles):
        adx = ADX(14)
        for c in trend_candles:
            adx.update(c.high, c.low, c.close)
        assert adx.value > 90.0
        assert adx.plus_di > adx.minus_di
        assert adx.trend_direction() == TrendDirection.BULLISH

    def test_steady_downtrend(self, trend_candle_factory):
        adx = ADX(14)
        for c in trend_candle_factory(60, start=100.0, growth=0.99):
            adx.update(c.high, c.low, c.close)
        assert adx.value > 90.0
        assert adx.trend_direction() == TrendDirection.BEARISH

    def test_adx_bounded(self, random_closes):
        adx = ADX(14)
        for p in random_closes:
            value = adx.update(p * 1.004, p * 0.996, p)
            if value is not None:
                assert 0.0 <= value <= 100.0


# =============================================================================
# Bollinger Band Tests
# =============================================================================

class TestBollingerBands:
    """Tests for the sliding-window Bollinger Bands."""

    def test_matches_pandas_rolling(self, random_closes):
        period = 20
        bb = BollingerBands(period, 2.0)
        snapshots = [bb.update(p) for p in random_closes]
        series = pd.Series(random_closes)
        mean = series.rolling(period).mean()
        std = series.rolling(period).std(ddof=0)

        assert all(s is None for s in snapshots[:period - 1])
        for i in range(period - 1, len(random_closes)):
            assert snapshots[i].middle == pytest.approx(mean.iloc[i], rel=1e-9)
            assert snapshots[i].upper == pytest.approx(mean.iloc[i] + 2 * std.iloc[i], rel=1e-9)
            assert snapshots[i].lower == pytest.approx(mean.iloc[i] - 2 * std.iloc[i], rel=1e-9)

    def test_flat_prices(self):
        bb = BollingerBands(10, 2.0)
        for _ in range(30):
            bands = bb.update(50.0)
        assert bands.std == pytest.approx(0.0)
        assert bands.upper == pytest.approx(bands.lower)
        assert bands.percent_b == 0.5
        assert bands.contains(50.0)

    def test_width_percentile_neutral_without_history(self):
        bb = BollingerBands(5, 2.0)
        for p in [1.0, 2.0, 3.0, 4.0, 5.0]:
            bands = bb.update(p)
        assert bands.width_percentile == 50.0

    def test_width_percentile_high_on_expansion(self):
        bb = BollingerBands(10, 2.0)
        for i in range(60):
            bb.update(100.0 + (0.1 if i % 2 else -0.1))
        bands = bb.update(120.0)
        assert bands.width_percentile == 100.0
        assert bands.is_high_volatility(90.0)

    def test_contains_is_inclusive(self):
        bb = BollingerBands(4, 1.0)
        for p in [99.0, 101.0, 99.0, 101.0]:
            bands = bb.update(p)
        assert bands.contains(bands.lower)
        assert bands.contains(bands.upper)
        assert not bands.contains(bands.upper + 1e-6)

    def test_invalid_std_dev(self):
        with pytest.raises(ValueError):
            BollingerBands(20, 0.0)


# =============================================================================
# Batch Frame Tests
# =============================================================================

class TestIndicatorFrame:
    """Tests for compute_indicator_frame."""

    def test_frame_matches_streaming(self, trend_candles):
        df = pd.DataFrame({
            'high': [c.high for c in trend_candles],
            'low': [c.low for c in trend_candles],
            'close': [c.close for c in trend_candles],
        })
        frame = compute_indicator_frame(df, ema_short=9, ema_long=21)

        assert len(frame) == len(df)
        assert np.isnan(frame['adx'].iloc[0])
        assert np.isnan(frame['ema_long'].iloc[19])
        assert not np.isnan(frame['ema_long'].iloc[20])

        adx = ADX(14)
        for c in trend_candles:
            adx.update(c.high, c.low, c.close)
        assert frame['adx'].iloc[-1] == pytest.approx(adx.value)
