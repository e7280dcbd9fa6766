"""
Unit tests for configuration, shared models and synthetic market data.
"""

import dataclasses

import pandas as pd
import pytest

from regime_router.config import (
    HMMConfig,
    MeanReversionConfig,
    RegimeConfig,
    RouterConfig,
    Timeframe,
    apply_parameters,
)
from regime_router.market_data import (
    candles_from_dataframe,
    candles_to_dataframe,
    generate_mixed_market,
    generate_trending_market,
)
from regime_router.models import (
    ActiveStrategy,
    InsufficientDataError,
    MarketRegime,
    RegimeCategory,
    TrendDirection,
    safe_divide,
)


# =============================================================================
# Config Validation Tests
# =============================================================================

class TestConfigValidation:
    """Tests for config presets and validation."""

    @pytest.mark.parametrize("preset", [
        RegimeConfig.default, RegimeConfig.crypto_optimized, RegimeConfig.conservative,
    ])
    def test_regime_presets_valid(self, preset):
        config = preset()
        assert config.adx_ranging_threshold <= config.adx_trending_threshold
        assert config.ema_short_period < config.ema_long_period

    def test_rejects_inverted_adx_thresholds(self):
        with pytest.raises(ValueError):
            RegimeConfig(adx_trending_threshold=15.0, adx_ranging_threshold=20.0)

    def test_rejects_inverted_emas(self):
        with pytest.raises(ValueError):
            RegimeConfig(ema_short_period=50, ema_long_period=20)

    def test_hmm_transition_matrix_rows(self):
        A = HMMConfig(n_states=3, self_transition_prob=0.8).initial_transition_matrix()
        assert A.sum(axis=1) == pytest.approx([1.0, 1.0, 1.0])
        assert A[0, 0] == pytest.approx(0.8)
        assert A[0, 1] == pytest.approx(0.1)

    def test_hmm_parameter_lengths_checked(self):
        with pytest.raises(ValueError):
            HMMConfig(n_states=3, state_means=(0.0, 0.001))

    def test_router_defaults(self):
        config = RouterConfig()
        assert config.volatile_position_size_factor == 0.5
        assert config.min_regime_confidence == 0.5
        assert config.force_strategy is None

    def test_timeframe_annualization(self):
        assert Timeframe.MINUTE_15.bars_per_year == 35040
        assert Timeframe.from_minutes(60) == Timeframe.HOUR_1
        with pytest.raises(ValueError):
            Timeframe.from_minutes(7)


# =============================================================================
# Parameter Override Tests
# =============================================================================

class TestApplyParameters:
    """Tests for dotted parameter overrides."""

    def test_returns_new_config(self):
        base = RouterConfig()
        updated = apply_parameters(base, {
            "regime.adx_trending_threshold": 28.0,
            "router.min_regime_confidence": 0.4,
        })
        assert updated.regime.adx_trending_threshold == 28.0
        assert updated.min_regime_confidence == 0.4
        assert base.regime.adx_trending_threshold == RegimeConfig.crypto_optimized().adx_trending_threshold
        assert base.min_regime_confidence == 0.5

    def test_integer_fields_coerced(self):
        updated = apply_parameters(RouterConfig(), {"regime.adx_period": 10.6})
        assert updated.regime.adx_period == 11
        assert isinstance(updated.regime.adx_period, int)

    def test_empty_overrides_equal_base(self):
        base = RouterConfig()
        assert apply_parameters(base, {}) == base

    @pytest.mark.parametrize("name", ["nosection", "portfolio.size", "regime.not_a_field"])
    def test_unknown_names_rejected(self, name):
        with pytest.raises(ValueError):
            apply_parameters(RouterConfig(), {name: 1.0})

    def test_invalid_combination_rejected(self):
        with pytest.raises(ValueError):
            apply_parameters(RouterConfig(), {"regime.adx_ranging_threshold": 40.0})

    def test_mean_reversion_override(self):
        updated = apply_parameters(RouterConfig(), {"mean_reversion.exit_at_middle": False})
        assert updated.mean_reversion == dataclasses.replace(MeanReversionConfig(),
                                                            exit_at_middle=False)


# =============================================================================
# Model Tests
# =============================================================================

class TestModels:
    """Tests for regimes, strategies and errors."""

    def test_regime_display(self):
        assert str(MarketRegime.TRENDING_BULLISH) == "Trending(Bullish)"
        assert str(MarketRegime.MEAN_REVERTING) == "MeanReverting"

    def test_trending_constructor(self):
        regime = MarketRegime.trending(TrendDirection.BEARISH)
        assert regime == MarketRegime.TRENDING_BEARISH
        assert regime.is_trending
        assert regime.direction == TrendDirection.BEARISH
        assert regime.category == RegimeCategory.BEARISH

    @pytest.mark.parametrize("regime,strategy", [
        (MarketRegime.TRENDING_BULLISH, ActiveStrategy.TREND_FOLLOWING),
        (MarketRegime.TRENDING_BEARISH, ActiveStrategy.TREND_FOLLOWING),
        (MarketRegime.MEAN_REVERTING, ActiveStrategy.MEAN_REVERSION),
        (MarketRegime.VOLATILE, ActiveStrategy.MEAN_REVERSION),
        (MarketRegime.UNCERTAIN, ActiveStrategy.NO_TRADE),
    ])
    def test_strategy_for_regime(self, regime, strategy):
        assert ActiveStrategy.for_regime(regime) == strategy

    def test_insufficient_data_error(self):
        err = InsufficientDataError(100, 40, "candles")
        assert isinstance(err, ValueError)
        assert "60" in str(err)

    def test_safe_divide(self):
        assert safe_divide(1.0, 0.0) == 0.0
        assert safe_divide(1.0, float('inf'), default=-1.0) == -1.0
        assert safe_divide(6.0, 3.0) == 2.0


# =============================================================================
# Market Data Tests
# =============================================================================

class TestMarketData:
    """Tests for candle conversion and generators."""

    def test_generators_are_seeded(self):
        assert generate_mixed_market(400, 100.0, seed=3) == generate_mixed_market(400, 100.0, seed=3)
        assert generate_mixed_market(400, 100.0, seed=3) != generate_mixed_market(400, 100.0, seed=4)

    def test_candles_are_consistent(self):
        for c in generate_mixed_market(400, 100.0, seed=3):
            assert c.low <= c.open <= c.high
            assert c.low <= c.close <= c.high
            assert c.close > 0

    def test_trending_market_drifts(self):
        candles = generate_trending_market(200, 100.0, 0.5, seed=1)
        assert candles[-1].close > candles[0].close + 50

    def test_dataframe_round_trip(self):
        candles = generate_mixed_market(40, 100.0, seed=2)
        df = candles_to_dataframe(candles)
        assert list(df.columns) == ['open', 'high', 'low', 'close', 'volume']
        assert candles_from_dataframe(df.reset_index()) == candles

    def test_dataframe_missing_columns(self):
        with pytest.raises(ValueError):
            candles_from_dataframe(pd.DataFrame({'close': [1.0, 2.0]}))
