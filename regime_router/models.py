"""
Shared Domain Types for Regime Detection and Routing
====================================================

Regime labels, detector results, strategy signals and the error taxonomy
shared by every layer of the package. Detectors produce ``RegimeResult``
values, the router consumes them, and nothing here holds mutable state.

REGIME TAXONOMY
---------------
    TRENDING_BULLISH / TRENDING_BEARISH
        Directional market; ADX above threshold with EMA alignment.
    MEAN_REVERTING
        Range-bound market; low ADX with price inside the bands.
    VOLATILE
        ATR expansion or extreme band width; trade small or not at all.
    UNCERTAIN
        No rule fired, detectors disagree, or warmup is incomplete.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: ENUMERATIONS
# =============================================================================

class TrendDirection(Enum):
    """Direction of a trending regime."""
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"


class RegimeCategory(Enum):
    """
    Coarse regime category used to compare detectors.

    Direction is part of the category, so a bullish indicator reading and
    a bearish HMM state do not count as agreement.
    """
    BULLISH = "BULLISH"
    BEARISH = "BEARISH"
    RANGING = "RANGING"
    VOLATILE = "VOLATILE"
    UNCERTAIN = "UNCERTAIN"


class MarketRegime(Enum):
    """
    Market regime classification.

    Trending regimes carry their direction in the member itself so the
    variant set stays closed: ``TRENDING_BULLISH`` is Trending(Bullish).
    """
    TRENDING_BULLISH = "TRENDING_BULLISH"
    TRENDING_BEARISH = "TRENDING_BEARISH"
    MEAN_REVERTING = "MEAN_REVERTING"
    VOLATILE = "VOLATILE"
    UNCERTAIN = "UNCERTAIN"

    @classmethod
    def trending(cls, direction: TrendDirection) -> 'MarketRegime':
        """Build the trending member for a direction."""
        if direction == TrendDirection.BULLISH:
            return cls.TRENDING_BULLISH
        return cls.TRENDING_BEARISH

    @property
    def is_trending(self) -> bool:
        return self in (MarketRegime.TRENDING_BULLISH, MarketRegime.TRENDING_BEARISH)

    @property
    def direction(self) -> Optional[TrendDirection]:
        """Trend direction, or None for non-trending regimes."""
        if self == MarketRegime.TRENDING_BULLISH:
            return TrendDirection.BULLISH
        if self == MarketRegime.TRENDING_BEARISH:
            return TrendDirection.BEARISH
        return None

    @property
    def category(self) -> RegimeCategory:
        return _REGIME_CATEGORIES[self]

    def __str__(self) -> str:
        labels = {
            MarketRegime.TRENDING_BULLISH: "Trending(Bullish)",
            MarketRegime.TRENDING_BEARISH: "Trending(Bearish)",
            MarketRegime.MEAN_REVERTING: "MeanReverting",
            MarketRegime.VOLATILE: "Volatile",
            MarketRegime.UNCERTAIN: "Uncertain",
        }
        return labels[self]


_REGIME_CATEGORIES: Dict[MarketRegime, RegimeCategory] = {
    MarketRegime.TRENDING_BULLISH: RegimeCategory.BULLISH,
    MarketRegime.TRENDING_BEARISH: RegimeCategory.BEARISH,
    MarketRegime.MEAN_REVERTING: RegimeCategory.RANGING,
    MarketRegime.VOLATILE: RegimeCategory.VOLATILE,
    MarketRegime.UNCERTAIN: RegimeCategory.UNCERTAIN,
}


class Signal(Enum):
    """Strategy-local trading decision."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class ActiveStrategy(Enum):
    """
    Strategy variant selected by the router.

    The set is closed; the router dispatches on it with an explicit
    if/elif chain rather than through strategy objects.
    """
    TREND_FOLLOWING = "TREND_FOLLOWING"
    MEAN_REVERSION = "MEAN_REVERSION"
    NO_TRADE = "NO_TRADE"

    @classmethod
    def for_regime(cls, regime: MarketRegime) -> 'ActiveStrategy':
        """Map a regime to the strategy variant suited to it."""
        if regime.is_trending:
            return cls.TREND_FOLLOWING
        if regime in (MarketRegime.MEAN_REVERTING, MarketRegime.VOLATILE):
            return cls.MEAN_REVERSION
        return cls.NO_TRADE


# =============================================================================
# SECTION 2: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class RegimeResult:
    """
    Output of a single detector update.

    ``metadata`` carries detector-specific diagnostics: indicator values
    for the indicator detector, the state-probability vector for the HMM,
    and both component results for the ensemble.
    """
    regime: MarketRegime
    confidence: float                 # 0.0 to 1.0
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def uncertain(cls, **metadata: Any) -> 'RegimeResult':
        """Result reported while a detector is still warming up."""
        return cls(MarketRegime.UNCERTAIN, 0.0, dict(metadata))

    @property
    def is_actionable(self) -> bool:
        return self.regime != MarketRegime.UNCERTAIN and self.confidence > 0.0


# =============================================================================
# SECTION 3: ERRORS
# =============================================================================

class RegimeRouterError(Exception):
    """Base class for errors raised by this package."""


class InsufficientDataError(RegimeRouterError, ValueError):
    """Fewer candles than a warmup period or a requested window needs."""

    def __init__(self, required: int, available: int, context: str = "data"):
        self.required = required
        self.available = available
        self.context = context
        super().__init__(
            f"Insufficient {context}: need at least {required} candles, "
            f"got {available} (short by {required - available})"
        )


class NotRegisteredError(RegimeRouterError, KeyError):
    """Routing call for a symbol that was never registered."""

    def __init__(self, symbol: str):
        self.symbol = symbol
        super().__init__(symbol)

    def __str__(self) -> str:
        return f"Symbol not registered with router: {self.symbol}"


# =============================================================================
# SECTION 4: UTILITY FUNCTIONS
# =============================================================================

def safe_divide(a: float, b: float, default: float = 0.0) -> float:
    """Safe division handling zero and invalid values."""
    try:
        if b == 0 or not np.isfinite(b):
            return default
        result = a / b
        return default if not np.isfinite(result) else result
    except (ZeroDivisionError, TypeError, ValueError):
        return default


# =============================================================================
# SECTION 5: MODULE EXPORTS
# =============================================================================

__all__ = [
    'VERSION',
    'TrendDirection',
    'RegimeCategory',
    'MarketRegime',
    'Signal',
    'ActiveStrategy',
    'RegimeResult',
    'RegimeRouterError',
    'InsufficientDataError',
    'NotRegisteredError',
    'safe_divide',
]
