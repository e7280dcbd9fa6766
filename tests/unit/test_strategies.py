"""
Unit tests for the mean-reversion and trend-following signal rules.
"""

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from regime_router.config import MeanReversionConfig, TrendFollowingConfig
from regime_router.models import Signal, TrendDirection
from regime_router.strategies import mean_reversion_signal, trend_following_signal
from regime_router.technical_indicators import BollingerBandsValues


def make_bands(lower: float, middle: float, upper: float) -> BollingerBandsValues:
    return BollingerBandsValues(
        upper=upper,
        middle=middle,
        lower=lower,
        std=(upper - middle) / 2.0,
        width=(upper - lower) / middle * 100.0,
        width_percentile=50.0,
        percent_b=0.5,
    )


@pytest.fixture
def bands():
    return make_bands(98.0, 100.0, 102.0)


# =============================================================================
# Mean Reversion Tests
# =============================================================================

class TestMeanReversion:
    """Tests for the Bollinger Band mean-reversion rule."""

    def test_hold_while_warming_up(self):
        decision = mean_reversion_signal(100.0, None, MeanReversionConfig())
        assert decision.signal == Signal.HOLD

    def test_buy_at_lower_band(self, bands):
        config = MeanReversionConfig()
        decision = mean_reversion_signal(98.0, bands, config)

        assert decision.signal == Signal.BUY
        assert decision.stop_loss == pytest.approx(98.0 * (1 - config.stop_loss_pct))
        assert decision.take_profit == pytest.approx(100.0)

    def test_buy_within_entry_threshold(self, bands):
        config = MeanReversionConfig(entry_threshold=0.002)
        entry_level = 98.0 * 1.002
        assert mean_reversion_signal(entry_level, bands, config).signal == Signal.BUY
        assert mean_reversion_signal(entry_level + 0.01, bands, config).signal == Signal.HOLD

    def test_sell_at_middle(self, bands):
        decision = mean_reversion_signal(100.0, bands, MeanReversionConfig(exit_at_middle=True))
        assert decision.signal == Signal.SELL

    def test_exit_at_upper_band(self, bands):
        config = MeanReversionConfig(exit_at_middle=False)
        assert mean_reversion_signal(101.0, bands, config).signal == Signal.HOLD
        assert mean_reversion_signal(102.0, bands, config).signal == Signal.SELL
        assert mean_reversion_signal(97.0, bands, config).take_profit == pytest.approx(102.0)

    def test_hold_inside_bands(self, bands):
        assert mean_reversion_signal(99.0, bands, MeanReversionConfig()).signal == Signal.HOLD

    @settings(max_examples=200, deadline=None)
    @given(
        lower=st.floats(min_value=1.0, max_value=1e5),
        half_width=st.floats(min_value=0.0, max_value=0.5),
        entry_threshold=st.floats(min_value=0.0, max_value=0.05),
        position=st.floats(min_value=0.5, max_value=2.0),
    )
    def test_never_buys_above_entry_level(self, lower, half_width, entry_threshold, position):
        middle = lower * (1 + half_width)
        upper = lower * (1 + 2 * half_width)
        price = lower * position
        config = MeanReversionConfig(entry_threshold=entry_threshold)

        decision = mean_reversion_signal(price, make_bands(lower, middle, upper), config)

        if price > lower * (1 + entry_threshold):
            assert decision.signal != Signal.BUY
        else:
            assert decision.signal == Signal.BUY
            assert decision.stop_loss < price


# =============================================================================
# Trend Following Tests
# =============================================================================

class TestTrendFollowing:
    """Tests for the ATR-bracketed trend rule."""

    def test_buy_with_atr_bracket(self):
        config = TrendFollowingConfig()
        decision = trend_following_signal(100.0, TrendDirection.BULLISH, 40.0, 2.0, config)

        assert decision.signal == Signal.BUY
        assert decision.stop_loss == pytest.approx(96.0)
        assert decision.take_profit == pytest.approx(106.0)

    def test_weak_trend_holds(self):
        decision = trend_following_signal(100.0, TrendDirection.BULLISH, 25.0, 2.0,
                                          TrendFollowingConfig(min_adx=25.0))
        assert decision.signal == Signal.HOLD

    def test_bearish_sells(self):
        decision = trend_following_signal(100.0, TrendDirection.BEARISH, 40.0, 2.0,
                                          TrendFollowingConfig())
        assert decision.signal == Signal.SELL

    @pytest.mark.parametrize("direction,adx,atr", [
        (None, 40.0, 2.0),
        (TrendDirection.BULLISH, None, 2.0),
        (TrendDirection.BULLISH, 40.0, None),
    ])
    def test_missing_inputs_hold(self, direction, adx, atr):
        decision = trend_following_signal(100.0, direction, adx, atr, TrendFollowingConfig())
        assert decision.signal == Signal.HOLD
