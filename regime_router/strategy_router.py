"""
Regime-Adaptive Strategy Router
===============================

Routes every bar of every registered symbol through a regime detector and
on to the strategy suited to the detected regime.

ROUTING
-------
    Trending(dir)   => TREND_FOLLOWING   size 1.0
    MeanReverting   => MEAN_REVERSION    size 1.0
    Volatile        => MEAN_REVERSION    size volatile_position_size_factor
    Uncertain       => NO_TRADE          size 0.0

    Confidence below ``min_regime_confidence`` sets size to 0, except in a
    Volatile regime where the volatile factor always applies. Until the
    detector has warmed up every bar yields Hold with size 0.

A ``TradeAction`` is returned only when the strategy signal is not Hold
and the size factor is positive; otherwise ``update`` returns None and
only internal state advances.

POSITIONS
---------
Each context tracks the long it has signalled. BUY opens it and is
suppressed while one is held; SELL closes it and is suppressed while
flat. Callers that close a position elsewhere (stop, target, rejected
fill) report it through ``close_position``.

PER-ASSET STATE
---------------
Each symbol owns an ``AssetContext`` (detector, strategy indicators,
regime bookkeeping, open position). Contexts share nothing, so symbols
can be driven independently.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Union

from regime_router.config import DetectionMethod, RouterConfig
from regime_router.ensemble_detector import EnsembleRegimeDetector
from regime_router.hmm_detector import HMMRegimeDetector
from regime_router.market_data import Candle
from regime_router.models import (
    ActiveStrategy,
    MarketRegime,
    NotRegisteredError,
    RegimeResult,
    Signal,
)
from regime_router.regime_detector import IndicatorRegimeDetector
from regime_router.strategies import (
    StrategySignal,
    mean_reversion_signal,
    trend_following_signal,
)
from regime_router.technical_indicators import ADX, ATR, BollingerBands

logger = logging.getLogger(__name__)

VERSION = "2.0.0"

Detector = Union[IndicatorRegimeDetector, HMMRegimeDetector, EnsembleRegimeDetector]


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class TradeAction:
    """Routed trading decision for one symbol and bar."""
    symbol: str
    action: Signal
    price: float
    size_factor: float                 # 0.0 to 1.0, multiplies risk per trade
    stop_loss: Optional[float]
    take_profit: Optional[float]
    source_strategy: ActiveStrategy
    regime: MarketRegime
    confidence: float
    reason: str
    timestamp: Optional[int] = None


@dataclass(frozen=True)
class OpenPosition:
    """Long position opened by a routed BUY."""
    entry_price: float
    stop_loss: Optional[float]
    take_profit: Optional[float]
    strategy: ActiveStrategy
    timestamp: Optional[int] = None


@dataclass
class RouterStats:
    """Counters across all symbols."""
    total_updates: int = 0
    total_signals: int = 0             # Trade actions emitted
    trend_following_signals: int = 0
    mean_reversion_signals: int = 0
    no_trade_periods: int = 0          # Bars routed to NO_TRADE
    warmup_bars: int = 0               # Bars seen before the detector was ready
    regime_changes: int = 0

    def record_action(self, action: TradeAction) -> None:
        self.total_signals += 1
        if action.source_strategy == ActiveStrategy.TREND_FOLLOWING:
            self.trend_following_signals += 1
        elif action.source_strategy == ActiveStrategy.MEAN_REVERSION:
            self.mean_reversion_signals += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            'total_updates': self.total_updates,
            'total_signals': self.total_signals,
            'trend_following_signals': self.trend_following_signals,
            'mean_reversion_signals': self.mean_reversion_signals,
            'no_trade_periods': self.no_trade_periods,
            'warmup_bars': self.warmup_bars,
            'regime_changes': self.regime_changes,
        }


# =============================================================================
# SECTION 2: ASSET CONTEXT
# =============================================================================

class AssetContext:
    """
    Per-symbol state owned by the router.

    Holds the regime detector plus the indicators the strategies read
    (Bollinger Bands for mean reversion, ADX and ATR for trend brackets);
    all of them advance on every bar whichever strategy is active.
    """

    def __init__(self, symbol: str, config: RouterConfig):
        self.symbol = symbol
        self.method = config.detection_method
        self.detector = self._build_detector(config)

        self.bands_indicator = BollingerBands(config.mean_reversion.bb_period,
                                              config.mean_reversion.bb_std_dev)
        self.adx = ADX(config.trend.adx_period)
        self.atr = ATR(config.trend.atr_period)

        self.last_result = RegimeResult.uncertain()
        self.last_regime = MarketRegime.UNCERTAIN
        self.active_strategy = ActiveStrategy.NO_TRADE
        self.regime_changes = 0
        self.bars_in_regime = 0
        self.bars_processed = 0
        self.last_action: Optional[TradeAction] = None
        self.position: Optional[OpenPosition] = None

    @staticmethod
    def _build_detector(config: RouterConfig) -> Detector:
        if config.detection_method == DetectionMethod.INDICATORS:
            return IndicatorRegimeDetector(config.regime)
        if config.detection_method == DetectionMethod.HMM:
            return HMMRegimeDetector(config.hmm)
        return EnsembleRegimeDetector(config.regime, config.hmm, config.ensemble)

    def feed(self, high: float, low: float, close: float) -> RegimeResult:
        """Advance the detector and strategy indicators by one bar."""
        if self.method == DetectionMethod.HMM:
            result = self.detector.update(close)
        else:
            result = self.detector.update(high, low, close)

        self.bands_indicator.update(close)
        self.adx.update(high, low, close)
        self.atr.update(high, low, close)

        self.bars_processed += 1
        self.last_result = result
        return result

    @property
    def has_position(self) -> bool:
        return self.position is not None

    @property
    def is_ready(self) -> bool:
        return self.detector.is_ready

    @property
    def required_warmup_bars(self) -> int:
        return self.detector.required_warmup_bars


# =============================================================================
# SECTION 3: STRATEGY ROUTER
# =============================================================================

class StrategyRouter:
    """
    Regime-adaptive multi-asset strategy router.

    Usage:
        router = StrategyRouter(RouterConfig())
        router.register_asset("BTC/USD")
        action = router.update("BTC/USD", high, low, close)
        if action is not None:
            execute(action)
    """

    def __init__(self, config: Optional[RouterConfig] = None):
        self.config = config or RouterConfig()
        self._assets: Dict[str, AssetContext] = {}
        self.stats = RouterStats()

    # -------------------------------------------------------------------------
    # Registration
    # -------------------------------------------------------------------------

    def register_asset(self, symbol: str) -> AssetContext:
        """Create the context for a symbol; re-registering keeps existing state."""
        if symbol in self._assets:
            logger.debug(f"[{symbol}] Already registered")
            return self._assets[symbol]
        context = AssetContext(symbol, self.config)
        self._assets[symbol] = context
        logger.info(f"[{symbol}] Registered with {self.config.detection_method.value} detection")
        return context

    def unregister_asset(self, symbol: str) -> None:
        self._context(symbol)
        del self._assets[symbol]

    def assets(self) -> List[str]:
        return list(self._assets)

    def _context(self, symbol: str) -> AssetContext:
        try:
            return self._assets[symbol]
        except KeyError:
            raise NotRegisteredError(symbol) from None

    # -------------------------------------------------------------------------
    # Routing
    # -------------------------------------------------------------------------

    def update(
        self,
        symbol: str,
        high: float,
        low: float,
        close: float,
        timestamp: Optional[int] = None
    ) -> Optional[TradeAction]:
        """
        Route one bar.

        Args:
            symbol: Registered symbol
            high: Bar high
            low: Bar low
            close: Bar close
            timestamp: Optional bar timestamp carried onto the action

        Returns:
            TradeAction, or None when the signal is Hold or size is zero

        Raises:
            NotRegisteredError: Unknown symbol (no state is touched)
        """
        ctx = self._context(symbol)
        result = ctx.feed(high, low, close)
        self.stats.total_updates += 1
        self._track_regime(ctx, result)

        if not ctx.is_ready:
            self.stats.warmup_bars += 1
            ctx.active_strategy = ActiveStrategy.NO_TRADE
            return None

        strategy = self.config.force_strategy or ActiveStrategy.for_regime(result.regime)
        ctx.active_strategy = strategy

        if strategy == ActiveStrategy.NO_TRADE:
            self.stats.no_trade_periods += 1
            return None

        size_factor = self.size_factor(result.regime, result.confidence)
        if self.config.force_strategy is not None:
            size_factor = 1.0
        if size_factor <= 0:
            return None

        decision = self._strategy_signal(ctx, strategy, result.regime, close)
        if decision.signal == Signal.HOLD:
            return None
        # Buy only when flat, sell only when long
        if (decision.signal == Signal.BUY) == ctx.has_position:
            return None

        action = TradeAction(
            symbol=symbol,
            action=decision.signal,
            price=close,
            size_factor=size_factor,
            stop_loss=decision.stop_loss,
            take_profit=decision.take_profit,
            source_strategy=strategy,
            regime=result.regime,
            confidence=result.confidence,
            reason=decision.reason,
            timestamp=timestamp,
        )
        ctx.last_action = action
        if action.action == Signal.BUY:
            ctx.position = OpenPosition(close, action.stop_loss, action.take_profit,
                                        strategy, timestamp)
        else:
            ctx.position = None
        self.stats.record_action(action)
        return action

    def update_candle(self, symbol: str, candle: Candle) -> Optional[TradeAction]:
        return self.update(symbol, candle.high, candle.low, candle.close, candle.timestamp)

    def warmup(self, symbol: str, candles: Iterable[Candle]) -> int:
        """
        Preload history for a symbol without emitting actions.

        Returns:
            Number of candles consumed
        """
        ctx = self._context(symbol)
        count = 0
        for candle in candles:
            result = ctx.feed(candle.high, candle.low, candle.close)
            self._track_regime(ctx, result)
            count += 1
        logger.info(
            f"[{symbol}] Warmed up on {count} candles "
            f"(ready: {ctx.is_ready}, regime: {ctx.last_regime})"
        )
        return count

    def size_factor(self, regime: MarketRegime, confidence: float) -> float:
        """
        Position-size multiplier for a regime reading.

        Volatile sizing takes precedence over the confidence floor.
        """
        if regime == MarketRegime.UNCERTAIN:
            return 0.0
        if regime == MarketRegime.VOLATILE:
            return self.config.volatile_position_size_factor
        if confidence < self.config.min_regime_confidence:
            return 0.0
        return 1.0

    def _strategy_signal(
        self,
        ctx: AssetContext,
        strategy: ActiveStrategy,
        regime: MarketRegime,
        close: float
    ) -> StrategySignal:
        if strategy == ActiveStrategy.MEAN_REVERSION:
            return mean_reversion_signal(close, ctx.bands_indicator.value,
                                         self.config.mean_reversion)
        if strategy == ActiveStrategy.TREND_FOLLOWING:
            direction = regime.direction
            if self.config.force_strategy is not None:
                direction = ctx.adx.trend_direction()
            return trend_following_signal(close, direction, ctx.adx.value,
                                          ctx.atr.value, self.config.trend)
        return StrategySignal.hold("no trade")

    def _track_regime(self, ctx: AssetContext, result: RegimeResult) -> None:
        if result.regime == ctx.last_regime:
            ctx.bars_in_regime += 1
            return

        old = ctx.last_regime
        ctx.last_regime = result.regime
        ctx.bars_in_regime = 1
        ctx.regime_changes += 1
        self.stats.regime_changes += 1
        if self.config.log_regime_changes:
            logger.info(
                f"[{ctx.symbol}] Regime change #{ctx.regime_changes}: {old} -> "
                f"{result.regime} (confidence: {result.confidence:.2f})"
            )

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    def get_regime(self, symbol: str) -> RegimeResult:
        return self._context(symbol).last_result

    def get_active_strategy(self, symbol: str) -> ActiveStrategy:
        return self._context(symbol).active_strategy

    def regime_changes(self, symbol: str) -> int:
        return self._context(symbol).regime_changes

    def bars_in_regime(self, symbol: str) -> int:
        return self._context(symbol).bars_in_regime

    def is_ready(self, symbol: str) -> bool:
        return self._context(symbol).is_ready

    def get_position(self, symbol: str) -> Optional[OpenPosition]:
        return self._context(symbol).position

    def close_position(self, symbol: str) -> Optional[OpenPosition]:
        """Forget the open position after an exit the router did not signal."""
        ctx = self._context(symbol)
        position, ctx.position = ctx.position, None
        return position

    def context(self, symbol: str) -> AssetContext:
        return self._context(symbol)

    @property
    def required_warmup_bars(self) -> int:
        """Bars a fresh asset needs before the detector can be ready."""
        return AssetContext._build_detector(self.config).required_warmup_bars


__all__ = [
    'VERSION',
    'TradeAction',
    'OpenPosition',
    'RouterStats',
    'AssetContext',
    'StrategyRouter',
]
