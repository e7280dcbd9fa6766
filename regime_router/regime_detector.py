"""
Indicator-Based Market Regime Detector
======================================

Rule-based regime classification over streaming ADX, ATR, Bollinger Band
and EMA readings, with a hysteresis filter that stops the reported regime
from whipsawing between adjacent bars.

CLASSIFICATION RULES
--------------------
Evaluated on every bar once all indicators are ready, first match wins:

    1. VOLATILE      ATR > atr_expansion_threshold x rolling mean of ATR,
                     or Bollinger width percentile > bb_width_volatility_threshold
    2. TRENDING      ADX > adx_trending_threshold and
                     close > EMA_short > EMA_long  (Bullish)
                     close < EMA_short < EMA_long  (Bearish)
    3. MEAN_REVERTING ADX < adx_ranging_threshold and close inside the bands
    4. UNCERTAIN     otherwise

Until then the raw classification is UNCERTAIN, so no regime can be
committed on a partial set of rules.

HYSTERESIS
----------
A candidate regime replaces the held regime only after it has been the
raw classification for ``regime_stability_bars`` consecutive bars AND the
held regime has lasted ``min_regime_duration`` bars. While a candidate is
pending the held regime is still reported, with its confidence decaying
linearly toward ``Config.TRANSITION_CONFIDENCE_FLOOR`` so callers can see
a flip coming before it commits.

ACADEMIC FOUNDATIONS
--------------------
Wilder, J.W. (1978). "New Concepts in Technical Trading Systems."
    ADX/DMI and ATR.
Bollinger, J. (2001). "Bollinger on Bollinger Bands."
    Band width as a volatility regime measure.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
import warnings
from collections import deque
from typing import Any, Deque, Dict, List, Optional, Tuple

from regime_router.config import RegimeConfig
from regime_router.models import (
    ActiveStrategy,
    MarketRegime,
    RegimeResult,
    TrendDirection,
    safe_divide,
)
from regime_router.technical_indicators import (
    ADX,
    ATR,
    EMA,
    BollingerBands,
    BollingerBandsValues,
)

warnings.filterwarnings('ignore', category=RuntimeWarning)

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: CONFIGURATION
# =============================================================================

class Config:
    """Internal constants for classification confidence and bookkeeping."""

    # -------------------------------------------------------------------------
    # Confidence
    # -------------------------------------------------------------------------
    BASE_CONFIDENCE: float = 0.5              # Confidence when a rule barely fires
    UNCERTAIN_CONFIDENCE: float = 0.25        # Warmed up, no rule fired
    TRANSITION_CONFIDENCE_FLOOR: float = 0.5  # Decay target while a flip is pending

    # -------------------------------------------------------------------------
    # Trend Strength
    # -------------------------------------------------------------------------
    TREND_STRENGTH_SCALE: float = 5.0         # EMA gap (%) giving full strength
    BETWEEN_EMAS_WEIGHT: float = 0.5          # Price position weight between EMAs

    # -------------------------------------------------------------------------
    # History
    # -------------------------------------------------------------------------
    REGIME_HISTORY_SIZE: int = 20


def _clip01(x: float) -> float:
    return min(max(x, 0.0), 1.0)


# =============================================================================
# SECTION 2: INDICATOR REGIME DETECTOR
# =============================================================================

class IndicatorRegimeDetector:
    """
    Streaming regime detector driven by technical indicators.

    Usage:
        detector = IndicatorRegimeDetector(RegimeConfig.crypto_optimized())
        for candle in candles:
            result = detector.update(candle.high, candle.low, candle.close)
            if detector.is_ready:
                print(result.regime, result.confidence)
    """

    def __init__(self, config: Optional[RegimeConfig] = None):
        """
        Initialize detector.

        Args:
            config: Periods and thresholds (RegimeConfig defaults if None)
        """
        self.config = config or RegimeConfig()
        self._build()

    def _build(self) -> None:
        cfg = self.config
        self._adx = ADX(cfg.adx_period)
        self._atr = ATR(cfg.atr_period)
        self._bb = BollingerBands(cfg.bb_period, cfg.bb_std_dev)
        self._ema_short = EMA(cfg.ema_short_period)
        self._ema_long = EMA(cfg.ema_long_period)

        # Rolling mean of past ATR readings
        self._atr_history: Deque[float] = deque()
        self._atr_history_sum = 0.0
        self._atr_ratio: Optional[float] = None

        # Hysteresis state
        self._held = MarketRegime.UNCERTAIN
        self._held_confidence = 0.0
        self._bars_held = 0
        self._candidate: Optional[MarketRegime] = None
        self._candidate_bars = 0
        self._history: Deque[MarketRegime] = deque(maxlen=Config.REGIME_HISTORY_SIZE)

    def reset(self) -> None:
        """Discard all indicator and hysteresis state."""
        self._build()

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update(self, high: float, low: float, close: float) -> RegimeResult:
        """
        Consume one bar and report the held regime.

        Args:
            high: Bar high
            low: Bar low
            close: Bar close

        Returns:
            RegimeResult with the hysteresis-filtered regime; metadata holds
            the indicator readings and the raw classification
        """
        adx = self._adx.update(high, low, close)
        atr = self._atr.update(high, low, close)
        bands = self._bb.update(close)
        ema_short = self._ema_short.update(close)
        ema_long = self._ema_long.update(close)
        self._update_atr_ratio(atr)

        if self.is_ready:
            raw, raw_confidence = self._classify(adx, bands, ema_short, ema_long, close)
        else:
            raw, raw_confidence = MarketRegime.UNCERTAIN, 0.0
        regime, confidence = self._apply_hysteresis(raw, raw_confidence)

        metadata: Dict[str, Any] = {
            'adx': adx,
            'plus_di': self._adx.plus_di,
            'minus_di': self._adx.minus_di,
            'atr': atr,
            'atr_ratio': self._atr_ratio,
            'bb_width': bands.width if bands else None,
            'bb_width_percentile': bands.width_percentile if bands else None,
            'percent_b': bands.percent_b if bands else None,
            'ema_short': ema_short,
            'ema_long': ema_long,
            'trend_strength': self._trend_strength(ema_short, ema_long, close),
            'raw_regime': raw,
            'raw_confidence': raw_confidence,
            'candidate_regime': self._candidate,
            'candidate_bars': self._candidate_bars,
            'bars_in_regime': self._bars_held,
            'ready': self.is_ready,
        }
        return RegimeResult(regime, confidence, metadata)

    def _update_atr_ratio(self, atr: Optional[float]) -> None:
        """Compare ATR with the mean of the preceding ATR readings, then record it."""
        if atr is None:
            return
        window = self.config.atr_average_period
        if len(self._atr_history) == window:
            mean = self._atr_history_sum / window
            self._atr_ratio = safe_divide(atr, mean, default=1.0)
            self._atr_history_sum -= self._atr_history.popleft()
        self._atr_history.append(atr)
        self._atr_history_sum += atr

    # -------------------------------------------------------------------------
    # Classification
    # -------------------------------------------------------------------------

    def _classify(
        self,
        adx: Optional[float],
        bands: Optional[BollingerBandsValues],
        ema_short: Optional[float],
        ema_long: Optional[float],
        close: float
    ) -> Tuple[MarketRegime, float]:
        """Apply the rule precedence to the current readings."""
        cfg = self.config

        # Rule 1: volatility expansion
        atr_excess = None
        if self._atr_ratio is not None and self._atr_ratio > cfg.atr_expansion_threshold:
            atr_excess = self._atr_ratio / cfg.atr_expansion_threshold - 1.0
        width_excess = None
        if bands is not None and bands.is_high_volatility(cfg.bb_width_volatility_threshold):
            width_excess = safe_divide(
                bands.width_percentile - cfg.bb_width_volatility_threshold,
                100.0 - cfg.bb_width_volatility_threshold,
                default=1.0
            )
        if atr_excess is not None or width_excess is not None:
            strength = max(x for x in (atr_excess, width_excess) if x is not None)
            return MarketRegime.VOLATILE, Config.BASE_CONFIDENCE + 0.5 * _clip01(strength)

        # Rule 2: directional trend
        if (adx is not None and adx > cfg.adx_trending_threshold
                and ema_short is not None and ema_long is not None):
            direction = None
            if close > ema_short > ema_long:
                direction = TrendDirection.BULLISH
            elif close < ema_short < ema_long:
                direction = TrendDirection.BEARISH
            if direction is not None:
                strength = safe_divide(adx - cfg.adx_trending_threshold,
                                       cfg.adx_trending_threshold, default=1.0)
                return (MarketRegime.trending(direction),
                        Config.BASE_CONFIDENCE + 0.5 * _clip01(strength))

        # Rule 3: range-bound
        if (adx is not None and adx < cfg.adx_ranging_threshold
                and bands is not None and bands.contains(close)):
            quietness = safe_divide(cfg.adx_ranging_threshold - adx,
                                    cfg.adx_ranging_threshold, default=0.0)
            centrality = 1.0 - min(abs(2.0 * bands.percent_b - 1.0), 1.0)
            return (MarketRegime.MEAN_REVERTING,
                    Config.BASE_CONFIDENCE + 0.25 * _clip01(quietness) + 0.25 * centrality)

        return MarketRegime.UNCERTAIN, Config.UNCERTAIN_CONFIDENCE

    def _apply_hysteresis(
        self,
        raw: MarketRegime,
        raw_confidence: float
    ) -> Tuple[MarketRegime, float]:
        """Hold the current regime until a candidate is stable and the hold is long enough."""
        cfg = self.config

        if raw == self._held:
            self._candidate = None
            self._candidate_bars = 0
            self._held_confidence = raw_confidence
            self._bars_held += 1
            return self._held, raw_confidence

        if raw == self._candidate:
            self._candidate_bars += 1
        else:
            self._candidate = raw
            self._candidate_bars = 1

        if (self._candidate_bars >= cfg.regime_stability_bars
                and self._bars_held >= cfg.min_regime_duration):
            logger.debug(
                f"Regime switch {self._held} -> {raw} after {self._bars_held} bars "
                f"(candidate held {self._candidate_bars} bars)"
            )
            self._history.append(self._held)
            self._held = raw
            self._held_confidence = raw_confidence
            self._bars_held = 1
            self._candidate = None
            self._candidate_bars = 0
            return raw, raw_confidence

        self._bars_held += 1
        floor = Config.TRANSITION_CONFIDENCE_FLOOR
        confidence = self._held_confidence
        if confidence > floor:
            progress = min(self._candidate_bars / cfg.regime_stability_bars, 1.0)
            confidence -= (confidence - floor) * progress
        return self._held, confidence

    def _trend_strength(
        self,
        ema_short: Optional[float],
        ema_long: Optional[float],
        close: float
    ) -> Optional[float]:
        """EMA separation (%) scaled by whether price sits beyond both EMAs."""
        if ema_short is None or ema_long is None:
            return None
        alignment = safe_divide(abs(ema_short - ema_long), ema_long) * 100.0
        beyond_both = (close > ema_short and close > ema_long) or \
                      (close < ema_short and close < ema_long)
        position = 1.0 if beyond_both else Config.BETWEEN_EMAS_WEIGHT
        return min(alignment * position / Config.TREND_STRENGTH_SCALE, 1.0)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """All indicators, including the ATR rolling mean, have warmed up."""
        return (self._adx.is_ready and self._atr.is_ready and self._bb.is_ready
                and self._ema_short.is_ready and self._ema_long.is_ready
                and self._atr_ratio is not None)

    @property
    def required_warmup_bars(self) -> int:
        """Bars needed before ``is_ready`` can become true."""
        cfg = self.config
        return max(
            cfg.ema_long_period,
            cfg.ema_short_period,
            cfg.bb_period,
            2 * cfg.adx_period,
            cfg.atr_period + cfg.atr_average_period,
        )

    @property
    def current_regime(self) -> MarketRegime:
        return self._held

    @property
    def bars_in_current_regime(self) -> int:
        return self._bars_held

    @property
    def regime_history(self) -> List[MarketRegime]:
        """Previously held regimes, oldest first."""
        return list(self._history)

    @property
    def recommended_strategy(self) -> ActiveStrategy:
        return ActiveStrategy.for_regime(self._held)

    @property
    def adx_value(self) -> Optional[float]:
        return self._adx.value

    @property
    def atr_value(self) -> Optional[float]:
        return self._atr.value

    @property
    def bands(self) -> Optional[BollingerBandsValues]:
        return self._bb.value


# =============================================================================
# SECTION 3: MODULE EXPORTS
# =============================================================================

__all__ = [
    'Config',
    'VERSION',
    'IndicatorRegimeDetector',
]
