"""
Incremental Technical Indicator Library

Streaming implementations of the four indicators that drive regime
detection. Every indicator consumes one bar at a time and keeps O(1)
rolling state, so a detector can be updated tick-by-tick without
recomputing over its window.

INDICATORS
    EMA
        Exponential moving average, alpha = 2 / (period + 1), seeded with
        the first observation.

    ATR (Wilder, 1978)
        True range = max(high - low, |high - prev_close|, |low - prev_close|).
        First value is the simple mean of ``period`` true ranges, then
        Wilder smoothing: ATR_t = (ATR_{t-1} * (n - 1) + TR_t) / n.

    ADX / DMI (Wilder, 1978)
        +DM / -DM from up and down moves, Wilder-smoothed together with the
        true range into +DI / -DI. DX = |+DI - -DI| / (+DI + -DI) * 100.
        ADX is seeded with the mean of ``period`` DX values and then
        Wilder-smoothed.

    Bollinger Bands (Bollinger, 1983)
        Middle = mean of the last ``period`` closes, bands at +/- k population
        standard deviations. Mean and variance are maintained with a
        sliding-window Welford update. Band width is tracked against its
        own recent history to give a width percentile.

READINESS
    Each indicator returns None until it has consumed enough bars. Callers
    treat None as "absent", never as zero.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional

import numpy as np
import pandas as pd

from regime_router.models import TrendDirection

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

EMA_PERIOD: int = 20
ATR_PERIOD: int = 14
ADX_PERIOD: int = 14
BB_PERIOD: int = 20
BB_STD_DEV: float = 2.0

# Band-width history used for the width percentile
BB_WIDTH_HISTORY: int = 100
BB_WIDTH_MIN_HISTORY: int = 10
BB_SQUEEZE_PERCENTILE: float = 25.0

# Relative tolerance when comparing band widths
WIDTH_TOLERANCE: float = 1e-9

INDICATOR_VERSION: str = "2.0.0"


def _check_period(period: int) -> None:
    if period < 1:
        raise ValueError(f"Indicator period must be >= 1, got {period}")


# =============================================================================
# EXPONENTIAL MOVING AVERAGE
# =============================================================================

class EMA:
    """
    Exponential moving average.

    Parameters
    ----------
    period : int
        Smoothing period; the EMA reports ready after ``period`` updates
    """

    def __init__(self, period: int = EMA_PERIOD):
        _check_period(period)
        self.period = period
        self.multiplier = 2.0 / (period + 1)
        self._value: Optional[float] = None
        self._count = 0

    def update(self, price: float) -> Optional[float]:
        """
        Add one observation.

        Parameters
        ----------
        price : float
            New observation

        Returns
        -------
        Optional[float]
            Current EMA, or None while warming up
        """
        if self._value is None:
            self._value = price
        else:
            self._value = (price - self._value) * self.multiplier + self._value
        self._count += 1
        return self.value

    @property
    def value(self) -> Optional[float]:
        return self._value if self.is_ready else None

    @property
    def is_ready(self) -> bool:
        return self._count >= self.period

    def reset(self) -> None:
        self._value = None
        self._count = 0


# =============================================================================
# AVERAGE TRUE RANGE
# =============================================================================

def true_range(high: float, low: float, prev_close: Optional[float]) -> float:
    """True range of a bar; the first bar of a series uses high - low."""
    if prev_close is None:
        return high - low
    return max(high - low, abs(high - prev_close), abs(low - prev_close))


class ATR:
    """
    Average True Range with Wilder smoothing.

    Parameters
    ----------
    period : int
        Number of true ranges in the seed average
    """

    def __init__(self, period: int = ATR_PERIOD):
        _check_period(period)
        self.period = period
        self._prev_close: Optional[float] = None
        self._tr_sum = 0.0
        self._tr_count = 0
        self._value: Optional[float] = None

    def update(self, high: float, low: float, close: float) -> Optional[float]:
        tr = true_range(high, low, self._prev_close)
        self._prev_close = close

        if self._value is not None:
            self._value = (self._value * (self.period - 1) + tr) / self.period
        else:
            self._tr_sum += tr
            self._tr_count += 1
            if self._tr_count == self.period:
                self._value = self._tr_sum / self.period
        return self._value

    @property
    def value(self) -> Optional[float]:
        return self._value

    @property
    def is_ready(self) -> bool:
        return self._value is not None

    def reset(self) -> None:
        self._prev_close = None
        self._tr_sum = 0.0
        self._tr_count = 0
        self._value = None


# =============================================================================
# AVERAGE DIRECTIONAL INDEX
# =============================================================================

class ADX:
    """
    Average Directional Index with the +DI / -DI directional indicators.

    Needs ``2 * period`` bars before the first ADX value: one bar to seed the
    previous high/low/close, ``period`` bars for the smoothed DI, and
    ``period - 1`` more DX values for the ADX seed.

    Parameters
    ----------
    period : int
        Wilder smoothing period
    """

    def __init__(self, period: int = ADX_PERIOD):
        _check_period(period)
        self.period = period
        self.reset()

    def reset(self) -> None:
        self._prev_high: Optional[float] = None
        self._prev_low: Optional[float] = None
        self._prev_close: Optional[float] = None

        self._seed_count = 0
        self._tr_smooth = 0.0
        self._plus_dm_smooth = 0.0
        self._minus_dm_smooth = 0.0

        self._plus_di: Optional[float] = None
        self._minus_di: Optional[float] = None
        self._dx_sum = 0.0
        self._dx_count = 0
        self._value: Optional[float] = None

    def update(self, high: float, low: float, close: float) -> Optional[float]:
        if self._prev_high is None:
            self._prev_high, self._prev_low, self._prev_close = high, low, close
            return None

        up_move = high - self._prev_high
        down_move = self._prev_low - low
        plus_dm = up_move if up_move > down_move and up_move > 0 else 0.0
        minus_dm = down_move if down_move > up_move and down_move > 0 else 0.0
        tr = true_range(high, low, self._prev_close)
        self._prev_high, self._prev_low, self._prev_close = high, low, close

        # Wilder smoothing: seed with sums, then s = s - s/n + x
        n = self.period
        if self._seed_count < n:
            self._tr_smooth += tr
            self._plus_dm_smooth += plus_dm
            self._minus_dm_smooth += minus_dm
            self._seed_count += 1
            if self._seed_count < n:
                return None
        else:
            self._tr_smooth = self._tr_smooth - self._tr_smooth / n + tr
            self._plus_dm_smooth = self._plus_dm_smooth - self._plus_dm_smooth / n + plus_dm
            self._minus_dm_smooth = self._minus_dm_smooth - self._minus_dm_smooth / n + minus_dm

        if self._tr_smooth > 0:
            self._plus_di = 100.0 * self._plus_dm_smooth / self._tr_smooth
            self._minus_di = 100.0 * self._minus_dm_smooth / self._tr_smooth
        else:
            self._plus_di = 0.0
            self._minus_di = 0.0

        # No directional movement at all means no trend strength
        di_sum = self._plus_di + self._minus_di
        dx = 100.0 * abs(self._plus_di - self._minus_di) / di_sum if di_sum > 0 else 0.0

        if self._value is None:
            self._dx_sum += dx
            self._dx_count += 1
            if self._dx_count == n:
                self._value = self._dx_sum / n
        else:
            self._value = (self._value * (n - 1) + dx) / n
        return self._value

    @property
    def value(self) -> Optional[float]:
        return self._value

    @property
    def plus_di(self) -> Optional[float]:
        return self._plus_di

    @property
    def minus_di(self) -> Optional[float]:
        return self._minus_di

    @property
    def is_ready(self) -> bool:
        return self._value is not None

    def trend_direction(self) -> Optional[TrendDirection]:
        """Direction implied by +DI vs -DI, or None when level or unknown."""
        if self._plus_di is None or self._minus_di is None:
            return None
        if self._plus_di > self._minus_di:
            return TrendDirection.BULLISH
        if self._minus_di > self._plus_di:
            return TrendDirection.BEARISH
        return None


# =============================================================================
# BOLLINGER BANDS
# =============================================================================

@dataclass(frozen=True)
class BollingerBandsValues:
    """Snapshot of the bands after one update."""
    upper: float
    middle: float
    lower: float
    std: float
    width: float              # (upper - lower) / middle * 100
    width_percentile: float   # Width vs recent history [0-100]
    percent_b: float          # (price - lower) / (upper - lower)

    def is_squeeze(self, threshold: float = BB_SQUEEZE_PERCENTILE) -> bool:
        """Bands narrower than most of their recent history."""
        return self.width_percentile < threshold

    def is_high_volatility(self, threshold: float) -> bool:
        return self.width_percentile > threshold

    def contains(self, price: float) -> bool:
        """Price inside the band envelope, bounds inclusive."""
        return self.lower <= price <= self.upper


class BollingerBands:
    """
    Bollinger Bands over a fixed window with a sliding Welford update.

    Parameters
    ----------
    period : int
        Window length
    std_dev : float
        Band distance in population standard deviations
    width_history : int
        Number of past band widths kept for the width percentile
    """

    def __init__(
        self,
        period: int = BB_PERIOD,
        std_dev: float = BB_STD_DEV,
        width_history: int = BB_WIDTH_HISTORY
    ):
        _check_period(period)
        if std_dev <= 0:
            raise ValueError(f"std_dev must be positive, got {std_dev}")
        self.period = period
        self.std_dev = std_dev
        self._window: Deque[float] = deque()
        self._mean = 0.0
        self._m2 = 0.0
        self._widths: Deque[float] = deque(maxlen=width_history)
        self._last: Optional[BollingerBandsValues] = None

    def _push(self, price: float) -> None:
        if len(self._window) < self.period:
            self._window.append(price)
            delta = price - self._mean
            self._mean += delta / len(self._window)
            self._m2 += delta * (price - self._mean)
            return

        old = self._window.popleft()
        self._window.append(price)
        old_mean = self._mean
        self._mean += (price - old) / self.period
        self._m2 += (price - old) * (price - self._mean + old - old_mean)
        if self._m2 < 0:
            self._m2 = 0.0

    def _width_percentile(self, width: float) -> float:
        if len(self._widths) < BB_WIDTH_MIN_HISTORY:
            return 50.0
        history = np.fromiter(self._widths, dtype=float)
        tol = WIDTH_TOLERANCE * max(abs(width), 1.0)
        below = np.count_nonzero(history < width - tol)
        equal = np.count_nonzero(np.abs(history - width) <= tol)
        return (below + 0.5 * equal) / len(history) * 100.0

    def update(self, price: float) -> Optional[BollingerBandsValues]:
        """
        Add one close.

        Returns
        -------
        Optional[BollingerBandsValues]
            Band snapshot, or None until ``period`` closes have been seen
        """
        self._push(price)
        if len(self._window) < self.period:
            return None

        std = math.sqrt(self._m2 / self.period)
        middle = self._mean
        upper = middle + self.std_dev * std
        lower = middle - self.std_dev * std
        width = (upper - lower) / middle * 100.0 if middle != 0 else 0.0
        band = upper - lower
        percent_b = (price - lower) / band if band > 0 else 0.5

        percentile = self._width_percentile(width)
        self._widths.append(width)

        self._last = BollingerBandsValues(
            upper=upper,
            middle=middle,
            lower=lower,
            std=std,
            width=width,
            width_percentile=percentile,
            percent_b=percent_b,
        )
        return self._last

    @property
    def value(self) -> Optional[BollingerBandsValues]:
        return self._last

    @property
    def is_ready(self) -> bool:
        return self._last is not None

    def reset(self) -> None:
        self._window.clear()
        self._mean = 0.0
        self._m2 = 0.0
        self._widths.clear()
        self._last = None


# =============================================================================
# BATCH COMPUTATION
# =============================================================================

def compute_indicator_frame(
    df: pd.DataFrame,
    ema_short: int = 21,
    ema_long: int = 50,
    adx_period: int = ADX_PERIOD,
    atr_period: int = ATR_PERIOD,
    bb_period: int = BB_PERIOD,
    bb_std_dev: float = BB_STD_DEV
) -> pd.DataFrame:
    """
    Run the streaming indicators over an OHLC frame.

    The values match, bar for bar, what a detector sees when fed the same
    rows one at a time. Warmup rows are NaN.

    Parameters
    ----------
    df : pd.DataFrame
        Frame with high, low and close columns
    ema_short, ema_long, adx_period, atr_period, bb_period : int
        Indicator periods
    bb_std_dev : float
        Bollinger band multiplier

    Returns
    -------
    pd.DataFrame
        Indicator columns on the input index
    """
    fast, slow = EMA(ema_short), EMA(ema_long)
    atr, adx = ATR(atr_period), ADX(adx_period)
    bb = BollingerBands(bb_period, bb_std_dev)

    rows = []
    for high, low, close in zip(df['high'].to_numpy(float),
                                df['low'].to_numpy(float),
                                df['close'].to_numpy(float)):
        bands = bb.update(close)
        adx_value = adx.update(high, low, close)
        rows.append({
            'ema_short': fast.update(close),
            'ema_long': slow.update(close),
            'atr': atr.update(high, low, close),
            'adx': adx_value,
            'plus_di': adx.plus_di,
            'minus_di': adx.minus_di,
            'bb_upper': bands.upper if bands else None,
            'bb_middle': bands.middle if bands else None,
            'bb_lower': bands.lower if bands else None,
            'bb_width': bands.width if bands else None,
            'bb_width_percentile': bands.width_percentile if bands else None,
            'bb_percent_b': bands.percent_b if bands else None,
        })

    return pd.DataFrame(rows, index=df.index, dtype=float)


__all__ = [
    'EMA',
    'ATR',
    'ADX',
    'BollingerBands',
    'BollingerBandsValues',
    'true_range',
    'compute_indicator_frame',
    'INDICATOR_VERSION',
]
