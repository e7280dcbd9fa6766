"""
Configuration for Regime Detection, Strategy Routing and Sizing
===============================================================

Centralized, immutable configuration for every detector and the router.
All configuration is supplied once at construction; nothing here is read
on the per-bar hot path other than plain attribute access.

Each configuration is a frozen dataclass that validates itself in
``__post_init__`` and exposes named presets as classmethods:

    RegimeConfig    default / crypto_optimized / conservative
    HMMConfig       default / crypto_optimized / conservative
    EnsembleConfig  default / balanced / hmm_focused / indicator_focused

Trading-cost and walk-forward configuration lives next to the engines that
consume it (``backtest_engine`` and ``walk_forward``).

PARAMETER OVERRIDES
-------------------
``apply_parameters`` builds a new ``RouterConfig`` from dotted names such
as ``"regime.adx_trending_threshold"`` so that parameter search never
mutates a shared configuration.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

import numpy as np

from regime_router.models import ActiveStrategy

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# TIMEFRAMES
# =============================================================================

class Timeframe(Enum):
    """
    Bar timeframe with its annualization factor.

    Crypto markets trade around the clock, so intraday factors assume
    365 days; ``EQUITY_DAILY`` uses the 252-day equity calendar.
    """
    MINUTE_1 = "1m"
    MINUTE_5 = "5m"
    MINUTE_15 = "15m"
    HOUR_1 = "1h"
    HOUR_4 = "4h"
    DAY_1 = "1d"
    EQUITY_DAILY = "1d_equity"

    @property
    def bars_per_year(self) -> float:
        return _BARS_PER_YEAR[self]

    @classmethod
    def from_minutes(cls, minutes: int) -> 'Timeframe':
        mapping = {1: cls.MINUTE_1, 5: cls.MINUTE_5, 15: cls.MINUTE_15,
                   60: cls.HOUR_1, 240: cls.HOUR_4, 1440: cls.DAY_1}
        if minutes not in mapping:
            raise ValueError(f"Unsupported timeframe: {minutes} minutes")
        return mapping[minutes]


_BARS_PER_YEAR: Dict[Timeframe, float] = {
    Timeframe.MINUTE_1: 365 * 24 * 60,
    Timeframe.MINUTE_5: 365 * 24 * 12,
    Timeframe.MINUTE_15: 365 * 24 * 4,
    Timeframe.HOUR_1: 365 * 24,
    Timeframe.HOUR_4: 365 * 6,
    Timeframe.DAY_1: 365,
    Timeframe.EQUITY_DAILY: 252,
}


class DetectionMethod(Enum):
    """Regime detector driving the router, chosen at construction."""
    INDICATORS = "INDICATORS"
    HMM = "HMM"
    ENSEMBLE = "ENSEMBLE"


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


# =============================================================================
# INDICATOR REGIME DETECTOR
# =============================================================================

@dataclass(frozen=True)
class RegimeConfig:
    """Thresholds and periods for the indicator-based regime detector."""

    # ADX trend strength
    adx_period: int = 14
    adx_trending_threshold: float = 25.0   # ADX above => trending
    adx_ranging_threshold: float = 20.0    # ADX below => ranging

    # Bollinger Bands
    bb_period: int = 20
    bb_std_dev: float = 2.0
    bb_width_volatility_threshold: float = 90.0  # Width percentile above => volatile

    # Trend confirmation
    ema_short_period: int = 50
    ema_long_period: int = 200

    # ATR expansion
    atr_period: int = 14
    atr_expansion_threshold: float = 1.5   # ATR / rolling mean above => volatile
    atr_average_period: int = 50           # Bars in the ATR rolling mean

    # Hysteresis
    regime_stability_bars: int = 3         # Consecutive bars a candidate must hold
    min_regime_duration: int = 5           # Bars the held regime must last

    def __post_init__(self):
        for name in ('adx_period', 'bb_period', 'ema_short_period',
                     'ema_long_period', 'atr_period', 'atr_average_period',
                     'regime_stability_bars'):
            _require(getattr(self, name) >= 1, f"{name} must be >= 1")
        _require(self.min_regime_duration >= 0, "min_regime_duration must be >= 0")
        _require(self.bb_std_dev > 0, "bb_std_dev must be positive")
        _require(self.atr_expansion_threshold > 0, "atr_expansion_threshold must be positive")
        _require(
            self.adx_ranging_threshold <= self.adx_trending_threshold,
            "adx_ranging_threshold must not exceed adx_trending_threshold"
        )
        _require(
            self.ema_short_period < self.ema_long_period,
            "ema_short_period must be shorter than ema_long_period"
        )

    @classmethod
    def default(cls) -> 'RegimeConfig':
        return cls()

    @classmethod
    def crypto_optimized(cls) -> 'RegimeConfig':
        """Faster periods and looser thresholds for 24/7 crypto markets."""
        return cls(
            adx_period=14,
            adx_trending_threshold=20.0,
            adx_ranging_threshold=15.0,
            bb_period=20,
            bb_std_dev=2.0,
            bb_width_volatility_threshold=85.0,
            ema_short_period=21,
            ema_long_period=50,
            atr_period=14,
            atr_expansion_threshold=1.3,
            atr_average_period=50,
            regime_stability_bars=2,
            min_regime_duration=3,
        )

    @classmethod
    def conservative(cls) -> 'RegimeConfig':
        """Fewer, stronger regime changes."""
        return cls(
            adx_period=14,
            adx_trending_threshold=30.0,
            adx_ranging_threshold=18.0,
            bb_period=20,
            bb_std_dev=2.0,
            bb_width_volatility_threshold=95.0,
            ema_short_period=50,
            ema_long_period=200,
            atr_period=14,
            atr_expansion_threshold=2.0,
            atr_average_period=50,
            regime_stability_bars=5,
            min_regime_duration=10,
        )


# =============================================================================
# HIDDEN MARKOV MODEL DETECTOR
# =============================================================================

def default_state_parameters(n_states: int) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
    """
    Seed emission parameters (mean, variance) per state for log-returns.

    Four states cover bull, bear, neutral and high volatility. Other state
    counts spread means evenly around zero with geometrically rising
    variances.
    """
    if n_states == 4:
        return (0.002, -0.002, 0.0, 0.0), (1e-4, 1e-4, 4e-4, 2.5e-3)
    if n_states == 3:
        return (0.002, -0.002, 0.0), (1e-4, 1e-4, 4e-4)
    if n_states == 2:
        return (0.001, -0.001), (1e-4, 4e-4)
    means = np.linspace(-0.002, 0.002, n_states)
    variances = np.geomspace(1e-4, 2.5e-3, n_states)
    return tuple(float(m) for m in means), tuple(float(v) for v in variances)


@dataclass(frozen=True)
class HMMConfig:
    """Gaussian HMM forward-filter configuration."""

    n_states: int = 4
    state_means: Optional[Tuple[float, ...]] = None      # None => seeded defaults
    state_variances: Optional[Tuple[float, ...]] = None
    self_transition_prob: float = 0.9      # Diagonal of the transition matrix
    min_observations: int = 100            # Returns before the posterior is trusted

    # State labelling from emission parameters
    volatility_threshold: float = 0.025    # Per-bar std above => volatile state
    drift_threshold: float = 0.0005        # |mean| above => trending state

    # Online emission adaptation (0 keeps parameters fixed)
    learning_rate: float = 0.0
    variance_floor: float = 1e-8

    def __post_init__(self):
        _require(self.n_states >= 2, "n_states must be >= 2")
        _require(0.0 < self.self_transition_prob <= 1.0,
                 "self_transition_prob must be in (0, 1]")
        _require(self.min_observations >= 1, "min_observations must be >= 1")
        _require(0.0 <= self.learning_rate < 1.0, "learning_rate must be in [0, 1)")
        _require(self.variance_floor > 0, "variance_floor must be positive")
        for name in ('state_means', 'state_variances'):
            values = getattr(self, name)
            if values is not None:
                _require(len(values) == self.n_states,
                         f"{name} must have {self.n_states} entries")
        if self.state_variances is not None:
            _require(all(v > 0 for v in self.state_variances),
                     "state_variances must be positive")

    def initial_parameters(self) -> Tuple[np.ndarray, np.ndarray]:
        """Emission means and variances as arrays."""
        means, variances = default_state_parameters(self.n_states)
        if self.state_means is not None:
            means = self.state_means
        if self.state_variances is not None:
            variances = self.state_variances
        return np.asarray(means, dtype=float), np.asarray(variances, dtype=float)

    def initial_transition_matrix(self) -> np.ndarray:
        """Sticky transition matrix; off-diagonal mass shared equally."""
        k = self.n_states
        off = (1.0 - self.self_transition_prob) / (k - 1)
        A = np.full((k, k), off)
        np.fill_diagonal(A, self.self_transition_prob)
        return A

    @classmethod
    def default(cls) -> 'HMMConfig':
        return cls()

    @classmethod
    def crypto_optimized(cls) -> 'HMMConfig':
        return cls(min_observations=50, self_transition_prob=0.85)

    @classmethod
    def conservative(cls) -> 'HMMConfig':
        return cls(min_observations=150, self_transition_prob=0.95)


# =============================================================================
# ENSEMBLE DETECTOR
# =============================================================================

@dataclass(frozen=True)
class EnsembleConfig:
    """Weights and confidence adjustments for combining detectors."""

    indicator_weight: float = 0.6
    hmm_weight: float = 0.4
    agreement_boost: float = 0.15          # Added to the weighted average on agreement
    disagreement_factor: float = 0.5       # Multiplies the weighted average on disagreement
    history_size: int = 100                # Updates kept for agreement_rate()

    def __post_init__(self):
        _require(self.indicator_weight >= 0 and self.hmm_weight >= 0,
                 "detector weights must be non-negative")
        _require(self.indicator_weight + self.hmm_weight > 0,
                 "detector weights must not both be zero")
        _require(0.0 <= self.disagreement_factor <= 1.0,
                 "disagreement_factor must be in [0, 1]")
        _require(self.agreement_boost >= 0, "agreement_boost must be non-negative")
        _require(self.history_size >= 1, "history_size must be >= 1")

    @classmethod
    def default(cls) -> 'EnsembleConfig':
        return cls()

    @classmethod
    def balanced(cls) -> 'EnsembleConfig':
        return cls(indicator_weight=0.5, hmm_weight=0.5)

    @classmethod
    def hmm_focused(cls) -> 'EnsembleConfig':
        return cls(indicator_weight=0.3, hmm_weight=0.7, agreement_boost=0.2)

    @classmethod
    def indicator_focused(cls) -> 'EnsembleConfig':
        return cls(indicator_weight=0.8, hmm_weight=0.2, agreement_boost=0.1)


# =============================================================================
# STRATEGIES
# =============================================================================

@dataclass(frozen=True)
class MeanReversionConfig:
    """Bollinger Band mean-reversion strategy parameters."""

    bb_period: int = 20
    bb_std_dev: float = 2.0
    entry_threshold: float = 0.002         # Buy within 0.2% above the lower band
    exit_at_middle: bool = True            # Exit at middle band, else upper band
    stop_loss_pct: float = 0.02            # Stop below entry

    def __post_init__(self):
        _require(self.bb_period >= 1, "bb_period must be >= 1")
        _require(self.bb_std_dev > 0, "bb_std_dev must be positive")
        _require(self.entry_threshold >= 0, "entry_threshold must be non-negative")
        _require(0.0 <= self.stop_loss_pct < 1.0, "stop_loss_pct must be in [0, 1)")


@dataclass(frozen=True)
class TrendFollowingConfig:
    """ATR-bracketed trend-following strategy parameters."""

    adx_period: int = 14
    atr_period: int = 14
    min_adx: float = 25.0                  # Trend must be at least this strong
    stop_atr_multiple: float = 2.0
    target_atr_multiple: float = 3.0       # 1.5 reward/risk with the default stop

    def __post_init__(self):
        _require(self.adx_period >= 1 and self.atr_period >= 1, "periods must be >= 1")
        _require(self.stop_atr_multiple > 0 and self.target_atr_multiple > 0,
                 "ATR multiples must be positive")


# =============================================================================
# STRATEGY ROUTER
# =============================================================================

@dataclass(frozen=True)
class RouterConfig:
    """
    Strategy router configuration.

    ``force_strategy`` pins every bar to one strategy variant regardless of
    regime, which turns the router into a static baseline (trend-only,
    mean-reversion-only, or never trade).
    """

    detection_method: DetectionMethod = DetectionMethod.INDICATORS
    regime: RegimeConfig = field(default_factory=RegimeConfig.crypto_optimized)
    hmm: HMMConfig = field(default_factory=HMMConfig)
    ensemble: EnsembleConfig = field(default_factory=EnsembleConfig)
    mean_reversion: MeanReversionConfig = field(default_factory=MeanReversionConfig)
    trend: TrendFollowingConfig = field(default_factory=TrendFollowingConfig)

    volatile_position_size_factor: float = 0.5   # Size multiplier in volatile regimes
    min_regime_confidence: float = 0.5           # Below => size factor 0
    log_regime_changes: bool = True
    force_strategy: Optional[ActiveStrategy] = None

    def __post_init__(self):
        _require(0.0 <= self.volatile_position_size_factor <= 1.0,
                 "volatile_position_size_factor must be in [0, 1]")
        _require(0.0 <= self.min_regime_confidence <= 1.0,
                 "min_regime_confidence must be in [0, 1]")


# =============================================================================
# PARAMETER OVERRIDES
# =============================================================================

_SECTIONS = ('regime', 'hmm', 'ensemble', 'mean_reversion', 'trend')


def _coerce(current: Any, value: Any) -> Any:
    """Cast a sampled value to the type of the field it replaces."""
    if isinstance(current, bool):
        return bool(value)
    if isinstance(current, int):
        return int(round(float(value)))
    if isinstance(current, float):
        return float(value)
    return value


def apply_parameters(config: RouterConfig, params: Mapping[str, Any]) -> RouterConfig:
    """
    Return a copy of ``config`` with dotted parameter overrides applied.

    Args:
        config: Base router configuration (left untouched)
        params: Mapping such as {"regime.adx_trending_threshold": 22.0,
                "router.min_regime_confidence": 0.4}

    Returns:
        New RouterConfig; nested configs are re-validated

    Raises:
        ValueError: Unknown section or field, or an invalid combination
    """
    section_updates: Dict[str, Dict[str, Any]] = {}
    router_updates: Dict[str, Any] = {}

    for name, value in params.items():
        section, _, attr = name.partition('.')
        if not attr:
            raise ValueError(f"Parameter name must be 'section.field': {name}")
        if section == 'router':
            target = config
            bucket = router_updates
        elif section in _SECTIONS:
            target = getattr(config, section)
            bucket = section_updates.setdefault(section, {})
        else:
            raise ValueError(f"Unknown parameter section: {section}")
        if attr not in {f.name for f in dataclasses.fields(target)}:
            raise ValueError(f"Unknown parameter: {name}")
        bucket[attr] = _coerce(getattr(target, attr), value)

    for section, updates in section_updates.items():
        router_updates[section] = dataclasses.replace(getattr(config, section), **updates)

    return dataclasses.replace(config, **router_updates)


__all__ = [
    'VERSION',
    'Timeframe',
    'DetectionMethod',
    'RegimeConfig',
    'HMMConfig',
    'EnsembleConfig',
    'MeanReversionConfig',
    'TrendFollowingConfig',
    'RouterConfig',
    'default_state_parameters',
    'apply_parameters',
]
