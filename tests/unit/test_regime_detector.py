"""
Unit tests for the indicator-based regime detector.

Tests validate:
- Warmup gating (Uncertain with zero confidence until ready)
- Trend, mean-reversion and volatility classification
- Hysteresis: stability bars and minimum regime duration
- Confidence stays in [0, 1]
"""

import pytest

from regime_router.config import RegimeConfig
from regime_router.market_data import Candle, generate_mixed_market
from regime_router.models import ActiveStrategy, MarketRegime
from regime_router.regime_detector import IndicatorRegimeDetector


def feed(detector, candles):
    result = None
    for c in candles:
        result = detector.update(c.high, c.low, c.close)
    return result


# =============================================================================
# Warmup Tests
# =============================================================================

class TestWarmup:
    """Tests for readiness and warmup length."""

    def test_required_warmup_bars(self, fast_regime_config):
        detector = IndicatorRegimeDetector(fast_regime_config)
        # 2 * adx_period and atr_period + atr_average_period both give 28
        assert detector.required_warmup_bars == 28

    def test_uncertain_until_ready(self, fast_regime_config, trend_candles):
        detector = IndicatorRegimeDetector(fast_regime_config)
        warmup = detector.required_warmup_bars

        for c in trend_candles[:warmup - 1]:
            result = detector.update(c.high, c.low, c.close)
            assert not detector.is_ready
            assert result.regime == MarketRegime.UNCERTAIN
            assert result.confidence == 0.0
            assert result.metadata['ready'] is False

        c = trend_candles[warmup - 1]
        detector.update(c.high, c.low, c.close)
        assert detector.is_ready

    def test_no_regime_committed_during_warmup(self, trend_candle_factory):
        # ADX and both EMAs are ready well before the 50-bar ATR mean
        config = RegimeConfig.crypto_optimized()
        detector = IndicatorRegimeDetector(config)
        assert detector.required_warmup_bars == 64

        for c in trend_candle_factory(80):
            result = detector.update(c.high, c.low, c.close)
            if not detector.is_ready:
                assert result.metadata['raw_regime'] == MarketRegime.UNCERTAIN
                assert result.regime == MarketRegime.UNCERTAIN
                assert detector.regime_history == []
            else:
                break

        # Still needs regime_stability_bars of the new reading
        assert result.regime == MarketRegime.UNCERTAIN

    def test_reset(self, fast_regime_config, trend_candles):
        detector = IndicatorRegimeDetector(fast_regime_config)
        feed(detector, trend_candles)
        detector.reset()
        assert not detector.is_ready
        assert detector.current_regime == MarketRegime.UNCERTAIN
        assert detector.regime_history == []


# =============================================================================
# Classification Tests
# =============================================================================

class TestClassification:
    """Tests for the rule precedence."""

    def test_uptrend_is_trending_bullish(self, fast_regime_config, trend_candles):
        detector = IndicatorRegimeDetector(fast_regime_config)
        result = feed(detector, trend_candles[:50])

        assert result.regime == MarketRegime.TRENDING_BULLISH
        assert result.confidence > 0.5
        assert result.metadata['adx'] > fast_regime_config.adx_trending_threshold
        assert detector.recommended_strategy == ActiveStrategy.TREND_FOLLOWING
        assert detector.regime_history == [MarketRegime.UNCERTAIN]

    def test_downtrend_is_trending_bearish(self, fast_regime_config, trend_candle_factory):
        detector = IndicatorRegimeDetector(fast_regime_config)
        result = feed(detector, trend_candle_factory(50, start=100.0, growth=0.99))
        assert result.regime == MarketRegime.TRENDING_BEARISH

    def test_tight_range_is_mean_reverting(self, range_regime_config, oscillating_candles):
        detector = IndicatorRegimeDetector(range_regime_config)
        result = feed(detector, oscillating_candles)

        assert result.regime == MarketRegime.MEAN_REVERTING
        assert result.metadata['adx'] < range_regime_config.adx_ranging_threshold
        assert 0.5 <= result.confidence <= 1.0

    def test_atr_expansion_is_volatile(self, calm_then_spike):
        config = RegimeConfig(
            ema_short_period=5,
            ema_long_period=10,
            atr_average_period=14,
            regime_stability_bars=1,
            min_regime_duration=1,
        )
        detector = IndicatorRegimeDetector(config)

        before = feed(detector, calm_then_spike[:-1])
        assert detector.is_ready
        assert before.regime != MarketRegime.VOLATILE

        spike = calm_then_spike[-1]
        result = detector.update(spike.high, spike.low, spike.close)
        assert result.regime == MarketRegime.VOLATILE
        assert result.metadata['atr_ratio'] > config.atr_expansion_threshold
        assert result.confidence > 0.5

    def test_confidence_bounded_on_mixed_market(self):
        detector = IndicatorRegimeDetector(RegimeConfig.crypto_optimized())
        for c in generate_mixed_market(800, 100.0, seed=3):
            result = detector.update(c.high, c.low, c.close)
            assert 0.0 <= result.confidence <= 1.0


# =============================================================================
# Hysteresis Tests
# =============================================================================

class TestHysteresis:
    """Tests for regime stability filtering."""

    @staticmethod
    def _spike_after(candles):
        last = candles[-1].close
        close = last * 1.01
        return Candle(0, last, close * 1.3, close * 0.7, close)

    def test_single_bar_does_not_flip_regime(self, fast_regime_config, trend_candle_factory):
        candles = trend_candle_factory(50)
        detector = IndicatorRegimeDetector(fast_regime_config)
        held = feed(detector, candles)
        assert held.regime == MarketRegime.TRENDING_BULLISH
        assert held.confidence == pytest.approx(1.0)

        spike = self._spike_after(candles)
        result = detector.update(spike.high, spike.low, spike.close)

        assert result.metadata['raw_regime'] == MarketRegime.VOLATILE
        assert result.regime == MarketRegime.TRENDING_BULLISH
        assert result.metadata['candidate_regime'] == MarketRegime.VOLATILE
        assert result.metadata['candidate_bars'] == 1
        # Decays a third of the way toward the transition floor
        assert result.confidence == pytest.approx(1.0 - 0.5 / 3)

    def test_switch_after_stability_bars(self, fast_regime_config, trend_candle_factory):
        candles = trend_candle_factory(53)
        detector = IndicatorRegimeDetector(fast_regime_config)
        feed(detector, candles[:50])

        spike = self._spike_after(candles[:50])
        detector.update(spike.high, spike.low, spike.close)
        result = feed(detector, candles[51:53])

        assert result.regime == MarketRegime.VOLATILE
        assert detector.bars_in_current_regime == 1
        assert detector.regime_history[-1] == MarketRegime.TRENDING_BULLISH

    def test_min_duration_blocks_switch(self, trend_candles):
        config = RegimeConfig(
            ema_short_period=9,
            ema_long_period=21,
            atr_average_period=14,
            regime_stability_bars=3,
            min_regime_duration=100,
        )
        detector = IndicatorRegimeDetector(config)
        result = feed(detector, trend_candles)

        assert result.metadata['raw_regime'] == MarketRegime.TRENDING_BULLISH
        assert result.regime == MarketRegime.UNCERTAIN
        assert detector.regime_history == []
