"""
Market Data Structures and Synthetic Market Generators
======================================================

The ``Candle`` value type supplied to the detectors, router and backtester,
conversions to and from pandas OHLCV frames, and seeded generators for
trending, ranging, volatile and mixed synthetic markets.

BAR SUPPLIER CONTRACT
---------------------
Candles arrive ordered strictly by timestamp. Nothing in this package
reorders, deduplicates or validates monotonicity; that is the supplier's
responsibility.

SYNTHETIC MARKETS
-----------------
    trending : drift per bar plus noise, intrabar range ~1% of price
    ranging  : slow sine cycle around a center price
    volatile : bounded random walk with wide intrabar ranges
    mixed    : trending up, ranging, volatile, trending down

All generators take a ``numpy.random.Generator`` or a seed so backtests on
synthetic data are exactly reproducible.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

VERSION = "2.0.0"

SeedLike = Union[int, np.random.Generator, None]


# =============================================================================
# SECTION 1: CONFIGURATION
# =============================================================================

class Config:
    """Defaults for synthetic market generation."""

    BAR_SECONDS: int = 900            # 15-minute bars
    START_TIMESTAMP: int = 0
    BASE_VOLUME: float = 100.0
    VOLUME_JITTER: float = 50.0


# =============================================================================
# SECTION 2: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class Candle:
    """
    Single OHLCV bar.

    ``timestamp`` is an integer (epoch seconds by convention); it is only
    used for ordering and labelling, never for arithmetic.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def typical_price(self) -> float:
        return (self.high + self.low + self.close) / 3.0


# =============================================================================
# SECTION 3: DATAFRAME CONVERSION
# =============================================================================

def candles_from_dataframe(df: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLCV DataFrame into candles.

    Column names are matched case-insensitively. Timestamps come from a
    ``timestamp`` column when present, otherwise from a DatetimeIndex
    (converted to epoch seconds), otherwise from the positional index.

    Args:
        df: Frame with open/high/low/close and optional volume columns

    Returns:
        List of candles in frame order
    """
    columns = {c.lower(): c for c in df.columns}
    missing = [c for c in ('open', 'high', 'low', 'close') if c not in columns]
    if missing:
        raise ValueError(f"DataFrame missing required columns: {missing}")

    if 'timestamp' in columns:
        timestamps = df[columns['timestamp']].astype('int64').to_numpy()
    elif isinstance(df.index, pd.DatetimeIndex):
        timestamps = (df.index.asi8 // 10**9).astype('int64')
    else:
        timestamps = np.arange(len(df), dtype='int64')

    volume = df[columns['volume']].to_numpy(dtype=float) if 'volume' in columns else np.zeros(len(df))
    opens = df[columns['open']].to_numpy(dtype=float)
    highs = df[columns['high']].to_numpy(dtype=float)
    lows = df[columns['low']].to_numpy(dtype=float)
    closes = df[columns['close']].to_numpy(dtype=float)

    return [
        Candle(int(timestamps[i]), float(opens[i]), float(highs[i]),
               float(lows[i]), float(closes[i]), float(volume[i]))
        for i in range(len(df))
    ]


def candles_to_dataframe(candles: Iterable[Candle]) -> pd.DataFrame:
    """Convert candles to a DataFrame indexed by timestamp."""
    records = [
        {'timestamp': c.timestamp, 'open': c.open, 'high': c.high,
         'low': c.low, 'close': c.close, 'volume': c.volume}
        for c in candles
    ]
    df = pd.DataFrame.from_records(
        records, columns=['timestamp', 'open', 'high', 'low', 'close', 'volume']
    )
    return df.set_index('timestamp')


# =============================================================================
# SECTION 4: SYNTHETIC MARKET GENERATORS
# =============================================================================

def _rng(seed: SeedLike) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def _volume(rng: np.random.Generator, scale: float = 1.0) -> float:
    return Config.BASE_VOLUME + rng.random() * Config.VOLUME_JITTER * scale


def _bar(timestamp: int, open_: float, high: float, low: float, close: float, volume: float) -> Candle:
    # open is clamped into the bar range so gap fills stay inside [low, high]
    return Candle(timestamp, min(max(open_, low), high), high, low, close, volume)


def generate_trending_market(
    bars: int,
    start_price: float,
    trend_per_bar: float,
    seed: SeedLike = None,
    start_timestamp: int = Config.START_TIMESTAMP
) -> List[Candle]:
    """
    Generate a trending market.

    Args:
        bars: Number of candles
        start_price: Price before the first bar
        trend_per_bar: Absolute price drift per bar (negative for downtrend)
        seed: Seed or Generator for reproducibility
        start_timestamp: Timestamp of the first bar

    Returns:
        List of candles
    """
    rng = _rng(seed)
    candles = []
    price = start_price

    for i in range(bars):
        noise = (rng.random() - 0.5) * trend_per_bar * 0.5
        price = max(price + trend_per_bar + noise, 1e-6)
        volatility = price * 0.01
        candles.append(_bar(
            timestamp=start_timestamp + i * Config.BAR_SECONDS,
            open_=price - trend_per_bar / 2.0,
            high=price + rng.random() * volatility,
            low=price - rng.random() * volatility,
            close=price,
            volume=_volume(rng),
        ))

    return candles


def generate_ranging_market(
    bars: int,
    center_price: float,
    range_pct: float,
    seed: SeedLike = None,
    start_timestamp: int = Config.START_TIMESTAMP
) -> List[Candle]:
    """Generate a market cycling around ``center_price`` by ``range_pct`` percent."""
    rng = _rng(seed)
    candles = []

    for i in range(bars):
        cycle = np.sin(i * 0.05) * center_price * range_pct / 100.0
        noise = (rng.random() - 0.5) * center_price * 0.002
        price = center_price + cycle + noise
        volatility = center_price * 0.005
        candles.append(_bar(
            timestamp=start_timestamp + i * Config.BAR_SECONDS,
            open_=price - noise / 2.0,
            high=price + rng.random() * volatility,
            low=price - rng.random() * volatility,
            close=price,
            volume=_volume(rng),
        ))

    return candles


def generate_volatile_market(
    bars: int,
    center_price: float,
    volatility_pct: float,
    seed: SeedLike = None,
    start_timestamp: int = Config.START_TIMESTAMP
) -> List[Candle]:
    """Generate a bounded random walk (+/-10% of center) with wide bars."""
    rng = _rng(seed)
    candles = []
    price = center_price

    for i in range(bars):
        change = (rng.random() - 0.5) * center_price * volatility_pct / 100.0
        price = min(max(price + change, center_price * 0.9), center_price * 1.1)
        volatility = center_price * volatility_pct / 100.0 * 0.5
        candles.append(_bar(
            timestamp=start_timestamp + i * Config.BAR_SECONDS,
            open_=price - change / 2.0,
            high=price + rng.random() * volatility,
            low=price - rng.random() * volatility,
            close=price,
            volume=_volume(rng, scale=2.0),
        ))

    return candles


def generate_mixed_market(
    bars: int,
    start_price: float,
    seed: SeedLike = None
) -> List[Candle]:
    """
    Generate four equal segments: uptrend, range, volatile, downtrend.

    Trend sizes scale with ``start_price`` so the shape is price-invariant.
    """
    rng = _rng(seed)
    segment = bars // 4
    step = Config.BAR_SECONDS

    candles = generate_trending_market(segment, start_price, start_price * 0.001, rng)
    last_price = candles[-1].close if candles else start_price

    candles += generate_ranging_market(
        segment, last_price, 3.0, rng, start_timestamp=len(candles) * step
    )
    candles += generate_volatile_market(
        segment, last_price, 4.0, rng, start_timestamp=len(candles) * step
    )
    candles += generate_trending_market(
        segment, candles[-1].close if candles else last_price,
        -start_price * 0.0006, rng, start_timestamp=len(candles) * step
    )

    logger.debug(f"Generated mixed market: {len(candles)} bars from {start_price:.2f}")
    return candles


# =============================================================================
# SECTION 5: MODULE EXPORTS
# =============================================================================

__all__ = [
    'VERSION',
    'Candle',
    'candles_from_dataframe',
    'candles_to_dataframe',
    'generate_trending_market',
    'generate_ranging_market',
    'generate_volatile_market',
    'generate_mixed_market',
]
