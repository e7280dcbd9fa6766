"""
Regime Strategies
=================

Signal rules for the two tradable strategy variants. Both are pure
functions of the current price and indicator readings; the router owns
the indicator state and decides which rule applies.

MEAN REVERSION (Bollinger Bands)
--------------------------------
    BUY   price <= lower * (1 + entry_threshold)
    SELL  price >= middle   (exit_at_middle)
          price >= upper    (otherwise)
    HOLD  otherwise, or while the bands are warming up

    stop_loss   = price * (1 - stop_loss_pct)
    take_profit = middle (exit_at_middle) or upper

TREND FOLLOWING (ADX + ATR brackets)
------------------------------------
    BUY   bullish direction with ADX > min_adx
    SELL  bearish direction
    HOLD  otherwise

    stop_loss   = close - stop_atr_multiple * ATR
    take_profit = close + target_atr_multiple * ATR

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from regime_router.config import MeanReversionConfig, TrendFollowingConfig
from regime_router.models import Signal, TrendDirection
from regime_router.technical_indicators import BollingerBandsValues

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class StrategySignal:
    """Strategy decision with optional bracket levels."""
    signal: Signal
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    reason: str = ""

    @classmethod
    def hold(cls, reason: str = "") -> 'StrategySignal':
        return cls(Signal.HOLD, reason=reason)


# =============================================================================
# SECTION 2: MEAN REVERSION
# =============================================================================

def mean_reversion_signal(
    price: float,
    bands: Optional[BollingerBandsValues],
    config: MeanReversionConfig
) -> StrategySignal:
    """
    Bollinger Band mean-reversion rule.

    Args:
        price: Current close
        bands: Current band values (None while warming up)
        config: Entry tolerance, exit target and stop distance

    Returns:
        StrategySignal; BUY is never returned above the entry level
    """
    if bands is None:
        return StrategySignal.hold("bands warming up")

    entry_level = bands.lower * (1.0 + config.entry_threshold)
    exit_level = bands.middle if config.exit_at_middle else bands.upper

    if price <= entry_level:
        return StrategySignal(
            Signal.BUY,
            stop_loss=price * (1.0 - config.stop_loss_pct),
            take_profit=exit_level,
            reason=f"price {price:.4f} at lower band {bands.lower:.4f}",
        )
    if price >= exit_level:
        band = "middle" if config.exit_at_middle else "upper"
        return StrategySignal(
            Signal.SELL,
            reason=f"price {price:.4f} reached {band} band {exit_level:.4f}",
        )
    return StrategySignal.hold("inside bands")


# =============================================================================
# SECTION 3: TREND FOLLOWING
# =============================================================================

def trend_following_signal(
    close: float,
    direction: Optional[TrendDirection],
    adx: Optional[float],
    atr: Optional[float],
    config: TrendFollowingConfig
) -> StrategySignal:
    """
    ATR-bracketed trend entry on a confirmed bullish trend; exit on a
    bearish one.

    Args:
        close: Current close
        direction: Trend direction from the regime (or from +DI/-DI when
                   the strategy is forced)
        adx: Current ADX reading
        atr: Current ATR reading
        config: Minimum ADX and ATR bracket multiples
    """
    if direction == TrendDirection.BEARISH:
        return StrategySignal(Signal.SELL, reason="bearish trend")

    if direction != TrendDirection.BULLISH or adx is None or atr is None:
        return StrategySignal.hold("no bullish trend")
    if adx <= config.min_adx:
        return StrategySignal.hold(f"ADX {adx:.1f} below {config.min_adx:.1f}")

    return StrategySignal(
        Signal.BUY,
        stop_loss=close - config.stop_atr_multiple * atr,
        take_profit=close + config.target_atr_multiple * atr,
        reason=f"bullish trend, ADX {adx:.1f}",
    )


__all__ = [
    'VERSION',
    'StrategySignal',
    'mean_reversion_signal',
    'trend_following_signal',
]
