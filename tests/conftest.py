"""
Shared fixtures for the regime router test suite.

Candle series here are deterministic and shaped so that the regime each
one produces can be worked out by hand:

- trend_candles:       +1% per bar with a fixed 1% bar range
- oscillating_candles: closes alternating 99 / 101 with a 0.4% bar range
- calm_then_spike:     flat 100 closes, then one 20-point-wide bar
"""

import pytest

from regime_router.config import HMMConfig, RegimeConfig, RouterConfig
from regime_router.market_data import Candle


BAR_SECONDS = 900


def _candle(i: int, close: float, half_range: float, open_: float = None) -> Candle:
    return Candle(
        timestamp=i * BAR_SECONDS,
        open=close if open_ is None else open_,
        high=close * (1 + half_range),
        low=close * (1 - half_range),
        close=close,
        volume=100.0,
    )


def build_trend_candles(n: int, start: float = 100.0, growth: float = 1.01):
    return [_candle(i, start * growth ** i, 0.005) for i in range(n)]


def build_oscillating_candles(n: int):
    return [_candle(i, 99.0 if i % 2 == 0 else 101.0, 0.002) for i in range(n)]


# =============================================================================
# Candle Fixtures
# =============================================================================

@pytest.fixture
def trend_candles():
    """60 bars of a clean +1%/bar uptrend."""
    return build_trend_candles(60)


@pytest.fixture
def oscillating_candles():
    """40 bars oscillating inside a tight range."""
    return build_oscillating_candles(40)


@pytest.fixture
def calm_then_spike():
    """30 flat bars followed by one wide-range bar closing unchanged."""
    calm = [Candle(i * BAR_SECONDS, 100.0, 100.5, 99.5, 100.0, 100.0) for i in range(30)]
    spike = Candle(30 * BAR_SECONDS, 100.0, 110.0, 90.0, 100.0, 500.0)
    return calm + [spike]


@pytest.fixture
def trend_candle_factory():
    return build_trend_candles


@pytest.fixture
def oscillating_candle_factory():
    return build_oscillating_candles


# =============================================================================
# Config Fixtures
# =============================================================================

@pytest.fixture
def fast_regime_config() -> RegimeConfig:
    """Short periods so detectors warm up in 28 bars."""
    return RegimeConfig(
        ema_short_period=9,
        ema_long_period=21,
        atr_average_period=14,
        regime_stability_bars=3,
        min_regime_duration=5,
    )


@pytest.fixture
def range_regime_config() -> RegimeConfig:
    return RegimeConfig(
        ema_short_period=5,
        ema_long_period=10,
        atr_average_period=14,
        regime_stability_bars=3,
        min_regime_duration=5,
    )


@pytest.fixture
def fast_hmm_config() -> HMMConfig:
    return HMMConfig(min_observations=20)


@pytest.fixture
def fast_router_config(fast_regime_config) -> RouterConfig:
    return RouterConfig(regime=fast_regime_config, log_regime_changes=False)
