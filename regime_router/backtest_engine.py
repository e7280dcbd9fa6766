"""
Regime Router Backtesting Engine
================================

Deterministic bar-by-bar simulation of the strategy router over a fixed
candle sequence, with exchange fees, size-dependent slippage, bracket
exits and end-of-run performance metrics.

SIMULATION LOOP
---------------
For every bar, in order:
    1. An open position is checked against its stop-loss and take-profit
       using the bar's low and high. The stop is checked first. A bar that
       gaps through a level fills at the open.
    2. The bar is routed. BUY with no open position opens one; SELL with
       an open position closes it.
    3. Equity (cash + position marked at the close) is recorded.
Any position still open after the last bar is closed at the last close.

TRANSACTION COSTS
-----------------
Kissell, R. (2013). "The Science of Algorithmic Trading and Portfolio Management."

    slippage % = clamp((base_spread + impact_coefficient * size^impact_exponent)
                       * (1 + U(-randomness, +randomness)), min_pct, max_pct)

    Buys fill at price * (1 + slippage), sells at price * (1 - slippage);
    every fill pays the taker fee on its notional plus the fixed fee.

POSITION SIZING
---------------
    size = min(max(risk_per_trade * equity * size_factor, min_size), max_size)
    capped to available cash; skipped when that falls below min_size.

METRICS
-------
Sharpe, W.F. (1994). "The Sharpe Ratio."
Sortino, F.A. & van der Meer, R. (1991). "Downside Risk."
Young, T.W. (1991). "Calmar Ratio: A Smoother Tool."

    Annualized with the timeframe's bars-per-year factor. A return series
    with no variance reports zero rather than NaN.

REPRODUCIBILITY
---------------
Every run builds a fresh router and a fresh numpy Generator from the
configured seed, so repeated runs over the same candles are identical.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import dataclasses
import logging
import warnings
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from regime_router.config import RouterConfig, Timeframe
from regime_router.market_data import Candle
from regime_router.models import (
    ActiveStrategy,
    InsufficientDataError,
    MarketRegime,
    Signal,
    safe_divide,
)
from regime_router.strategy_router import StrategyRouter, TradeAction

warnings.filterwarnings('ignore', category=RuntimeWarning)

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: CONFIGURATION
# =============================================================================

class Config:
    """Backtest constants."""

    # -------------------------------------------------------------------------
    # Capital and Sizing
    # -------------------------------------------------------------------------
    INITIAL_CAPITAL: float = 10_000.0
    RISK_PER_TRADE: float = 0.10      # Fraction of equity per position
    MIN_POSITION_SIZE: float = 10.0   # USD
    MAX_POSITION_SIZE: float = 5_000.0

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------
    VARIANCE_EPSILON: float = 1e-12   # Std below => ratio reported as 0
    MAX_PROFIT_FACTOR: float = 100.0  # Reported when there are no losing trades
    MAX_CALMAR_RATIO: float = 1000.0  # Reported when there is no drawdown
    MAX_CAGR: float = 1e6             # Short, steep curves annualize past this

    # -------------------------------------------------------------------------
    # Identification
    # -------------------------------------------------------------------------
    DEFAULT_SYMBOL: str = "BACKTEST"


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ValueError(message)


@dataclass(frozen=True)
class SlippageModel:
    """
    Spread plus power-law market impact, with bounded random noise.

    Reference:
        Almgren et al. (2005) "Direct Estimation of Equity Market Impact"
    """
    base_spread: float = 0.0005        # Half-spread paid on every fill
    impact_coefficient: float = 1e-5   # Impact per USD^exponent
    impact_exponent: float = 0.5       # Square-root impact
    min_pct: float = 0.0
    max_pct: float = 0.01
    randomness: float = 0.2            # +/- fraction applied to the estimate

    def __post_init__(self):
        _require(self.base_spread >= 0 and self.impact_coefficient >= 0,
                 "slippage components must be non-negative")
        _require(self.impact_exponent >= 0, "impact_exponent must be non-negative")
        _require(0.0 <= self.min_pct <= self.max_pct, "need 0 <= min_pct <= max_pct")
        _require(0.0 <= self.randomness < 1.0, "randomness must be in [0, 1)")

    def slippage_pct(self, size_usd: float, rng: np.random.Generator) -> float:
        """Slippage fraction for an order of ``size_usd``."""
        estimate = self.base_spread + self.impact_coefficient * max(size_usd, 0.0) ** self.impact_exponent
        if self.randomness > 0 and estimate > 0:
            estimate *= 1.0 + rng.uniform(-self.randomness, self.randomness)
        return float(np.clip(estimate, self.min_pct, self.max_pct))

    @classmethod
    def zero(cls) -> 'SlippageModel':
        return cls(base_spread=0.0, impact_coefficient=0.0, min_pct=0.0,
                   max_pct=0.0, randomness=0.0)


@dataclass(frozen=True)
class TradingCosts:
    """Exchange fees and slippage applied to every simulated fill."""
    maker_fee: float = 0.0016
    taker_fee: float = 0.0026          # Market orders pay taker
    fixed_fee: float = 0.0             # USD per fill
    slippage: SlippageModel = field(default_factory=SlippageModel)

    def __post_init__(self):
        _require(self.maker_fee >= 0 and self.taker_fee >= 0 and self.fixed_fee >= 0,
                 "fees must be non-negative")

    def fee(self, notional: float) -> float:
        return notional * self.taker_fee + self.fixed_fee

    @classmethod
    def zero(cls) -> 'TradingCosts':
        """Frictionless fills; useful for isolating strategy behaviour."""
        return cls(maker_fee=0.0, taker_fee=0.0, fixed_fee=0.0, slippage=SlippageModel.zero())

    @classmethod
    def kraken_spot(cls) -> 'TradingCosts':
        """Kraken spot entry-tier fees."""
        return cls(maker_fee=0.0016, taker_fee=0.0026, slippage=SlippageModel())

    @classmethod
    def conservative(cls) -> 'TradingCosts':
        """Pessimistic fees and wider slippage for stress testing."""
        return cls(
            maker_fee=0.0025,
            taker_fee=0.004,
            slippage=SlippageModel(base_spread=0.001, impact_coefficient=2e-5,
                                   max_pct=0.02, randomness=0.3),
        )


@dataclass(frozen=True)
class BacktestConfig:
    """Capital, sizing and annualization settings for one simulation."""
    initial_capital: float = Config.INITIAL_CAPITAL
    risk_per_trade: float = Config.RISK_PER_TRADE
    min_position_size: float = Config.MIN_POSITION_SIZE
    max_position_size: float = Config.MAX_POSITION_SIZE
    timeframe: Timeframe = Timeframe.MINUTE_15
    risk_free_rate: float = 0.0        # Annual
    seed: Optional[int] = 42

    def __post_init__(self):
        _require(self.initial_capital > 0, "initial_capital must be positive")
        _require(0.0 < self.risk_per_trade <= 1.0, "risk_per_trade must be in (0, 1]")
        _require(0.0 <= self.min_position_size <= self.max_position_size,
                 "need 0 <= min_position_size <= max_position_size")


# =============================================================================
# SECTION 2: ENUMERATIONS
# =============================================================================

class BacktestStatus(Enum):
    """Backtest execution status."""
    SUCCESS = "SUCCESS"
    NO_TRADES = "NO_TRADES"


class ExitReason(Enum):
    """Why a position was closed."""
    SIGNAL = "SIGNAL"
    STOP_LOSS = "STOP_LOSS"
    TAKE_PROFIT = "TAKE_PROFIT"
    END_OF_DATA = "END_OF_DATA"


class TradeStatus(Enum):
    """Trade outcome status."""
    WIN = "WIN"
    LOSS = "LOSS"
    BREAKEVEN = "BREAKEVEN"


# =============================================================================
# SECTION 3: DATA STRUCTURES
# =============================================================================

@dataclass
class Trade:
    """
    Long position from entry fill to exit fill.

    While ``is_open`` the record is the backtest's open position: entry
    fill, notional, and the bracket levels checked on every bar.
    """
    trade_id: int
    symbol: str
    entry_timestamp: int
    entry_price: float                 # Fill price after slippage
    units: float
    size_usd: float                    # Notional at entry
    stop_loss: Optional[float] = None
    take_profit: Optional[float] = None
    strategy: ActiveStrategy = ActiveStrategy.NO_TRADE
    regime: MarketRegime = MarketRegime.UNCERTAIN
    size_factor: float = 1.0
    entry_bar: int = 0

    # Costs
    entry_fee: float = 0.0
    entry_slippage: float = 0.0
    exit_fee: float = 0.0
    exit_slippage: float = 0.0

    # Exit
    exit_timestamp: Optional[int] = None
    exit_price: Optional[float] = None
    exit_reason: Optional[ExitReason] = None
    bars_held: int = 0

    # P&L
    gross_pnl: float = 0.0
    net_pnl: float = 0.0
    return_pct: float = 0.0

    status: TradeStatus = TradeStatus.BREAKEVEN
    is_open: bool = True

    @property
    def total_fees(self) -> float:
        return self.entry_fee + self.exit_fee

    @property
    def total_slippage(self) -> float:
        return self.entry_slippage + self.exit_slippage

    def close(
        self,
        timestamp: int,
        bar_index: int,
        exit_price: float,
        exit_fee: float,
        exit_slippage: float,
        reason: ExitReason
    ) -> None:
        """Close the trade and calculate P&L."""
        self.exit_timestamp = timestamp
        self.exit_price = exit_price
        self.exit_fee = exit_fee
        self.exit_slippage = exit_slippage
        self.exit_reason = reason
        self.bars_held = bar_index - self.entry_bar
        self.is_open = False

        self.gross_pnl = (exit_price - self.entry_price) * self.units
        self.net_pnl = self.gross_pnl - self.total_fees
        self.return_pct = safe_divide(self.net_pnl, self.size_usd)

        if self.net_pnl > 0:
            self.status = TradeStatus.WIN
        elif self.net_pnl < 0:
            self.status = TradeStatus.LOSS
        else:
            self.status = TradeStatus.BREAKEVEN


@dataclass(frozen=True)
class PerformanceMetrics:
    """Performance summary of one completed simulation."""
    total_return: float                # Fraction, 0.05 = +5%
    cagr: float
    sharpe_ratio: float
    sortino_ratio: float
    calmar_ratio: float
    annual_volatility: float
    max_drawdown: float                # Fraction, positive
    max_drawdown_duration: int         # Bars
    win_rate: float
    profit_factor: float
    total_trades: int
    winning_trades: int
    losing_trades: int
    avg_trade_return: float
    total_fees: float
    total_slippage: float
    exposure: float                    # Fraction of bars with an open position

    def to_dict(self) -> Dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class BacktestResult:
    """Complete backtest result container."""
    status: BacktestStatus
    symbol: str
    strategy_name: str
    n_bars: int
    initial_capital: float
    final_capital: float
    metrics: PerformanceMetrics
    trades: List[Trade] = field(default_factory=list)
    equity_curve: Optional[pd.Series] = None
    regime_distribution: Dict[str, float] = field(default_factory=dict)
    router_stats: Dict[str, int] = field(default_factory=dict)
    version: str = VERSION

    def trades_frame(self) -> pd.DataFrame:
        """Trade log as a DataFrame, one row per closed trade."""
        rows = [
            {
                'trade_id': t.trade_id,
                'entry_timestamp': t.entry_timestamp,
                'exit_timestamp': t.exit_timestamp,
                'strategy': t.strategy.value,
                'regime': str(t.regime),
                'entry_price': t.entry_price,
                'exit_price': t.exit_price,
                'size_usd': t.size_usd,
                'net_pnl': t.net_pnl,
                'return_pct': t.return_pct,
                'bars_held': t.bars_held,
                'exit_reason': t.exit_reason.value if t.exit_reason else None,
            }
            for t in self.trades
        ]
        return pd.DataFrame(rows)


# =============================================================================
# SECTION 4: METRICS CALCULATOR
# =============================================================================

class MetricsCalculator:
    """
    Performance metrics from an equity curve and a trade log.

    Formulas:
        Sharpe  = mean(r - rf) / std(r) * sqrt(bars_per_year)
        Sortino = mean(r - rf) / downside_deviation * sqrt(bars_per_year)
        Calmar  = CAGR / max_drawdown
    """

    @staticmethod
    def drawdown_series(equity_curve: pd.Series) -> pd.Series:
        """Drawdown at each point = (current - running max) / running max."""
        rolling_max = equity_curve.expanding().max()
        return (equity_curve - rolling_max) / rolling_max

    @staticmethod
    def max_drawdown_duration(drawdown: pd.Series) -> int:
        """Longest run of bars spent below a previous equity peak."""
        longest = current = 0
        for in_dd in (drawdown < 0):
            current = current + 1 if in_dd else 0
            longest = max(longest, current)
        return longest

    @staticmethod
    def cagr(initial: float, final: float, n_bars: int, bars_per_year: float) -> float:
        years = n_bars / bars_per_year
        if years <= 0 or initial <= 0:
            return 0.0
        if final <= 0:
            return -1.0
        try:
            growth = float((final / initial) ** (1.0 / years) - 1.0)
        except OverflowError:
            return Config.MAX_CAGR
        return min(growth, Config.MAX_CAGR)

    @staticmethod
    def calmar(cagr: float, max_dd: float) -> float:
        """CAGR over max drawdown, clamped to +/-MAX_CALMAR_RATIO."""
        if max_dd <= 0:
            return Config.MAX_CALMAR_RATIO if cagr > 0 else 0.0
        return float(np.clip(cagr / max_dd, -Config.MAX_CALMAR_RATIO, Config.MAX_CALMAR_RATIO))

    @staticmethod
    def calculate(
        equity_curve: pd.Series,
        trades: Sequence[Trade],
        bars_per_year: float,
        risk_free_rate: float = 0.0,
        exposure: float = 0.0
    ) -> PerformanceMetrics:
        """
        Calculate all metrics.

        Args:
            equity_curve: Equity per bar, initial capital first
            trades: Closed trades
            bars_per_year: Annualization factor
            risk_free_rate: Annual risk-free rate
            exposure: Fraction of bars in the market

        Returns:
            PerformanceMetrics (never NaN)
        """
        initial = float(equity_curve.iloc[0])
        final = float(equity_curve.iloc[-1])
        n_bars = len(equity_curve) - 1

        total_return = safe_divide(final - initial, initial)
        cagr = MetricsCalculator.cagr(initial, final, n_bars, bars_per_year)

        returns = equity_curve.pct_change().dropna()
        excess = returns - risk_free_rate / bars_per_year
        annualizer = float(np.sqrt(bars_per_year))

        sharpe = 0.0
        volatility = 0.0
        if len(returns) >= 2:
            std = float(returns.std())
            volatility = std * annualizer
            if std >= Config.VARIANCE_EPSILON:
                sharpe = float(excess.mean()) / std * annualizer

        sortino = 0.0
        if len(excess) > 0:
            downside = float(np.sqrt(np.mean(np.minimum(excess.to_numpy(), 0.0) ** 2)))
            if downside >= Config.VARIANCE_EPSILON:
                sortino = float(excess.mean()) / downside * annualizer

        drawdown = MetricsCalculator.drawdown_series(equity_curve)
        max_dd = abs(float(drawdown.min())) if len(drawdown) else 0.0
        calmar = MetricsCalculator.calmar(cagr, max_dd)

        closed = [t for t in trades if not t.is_open]
        winners = [t for t in closed if t.status == TradeStatus.WIN]
        losers = [t for t in closed if t.status == TradeStatus.LOSS]
        gross_profit = sum(t.net_pnl for t in winners)
        gross_loss = abs(sum(t.net_pnl for t in losers))
        if gross_loss > 0:
            profit_factor = min(gross_profit / gross_loss, Config.MAX_PROFIT_FACTOR)
        else:
            profit_factor = Config.MAX_PROFIT_FACTOR if gross_profit > 0 else 0.0

        return PerformanceMetrics(
            total_return=total_return,
            cagr=cagr,
            sharpe_ratio=sharpe,
            sortino_ratio=sortino,
            calmar_ratio=calmar,
            annual_volatility=volatility,
            max_drawdown=max_dd,
            max_drawdown_duration=MetricsCalculator.max_drawdown_duration(drawdown),
            win_rate=safe_divide(len(winners), len(closed)),
            profit_factor=profit_factor,
            total_trades=len(closed),
            winning_trades=len(winners),
            losing_trades=len(losers),
            avg_trade_return=float(np.mean([t.return_pct for t in closed])) if closed else 0.0,
            total_fees=sum(t.total_fees for t in closed),
            total_slippage=sum(t.total_slippage for t in closed),
            exposure=exposure,
        )


# =============================================================================
# SECTION 5: BACKTEST ENGINE
# =============================================================================

class BacktestEngine:
    """
    Event-driven backtester for the strategy router.

    Usage:
        engine = BacktestEngine(RouterConfig(), TradingCosts.kraken_spot())
        result = engine.run(candles)
        print(result.metrics.sharpe_ratio)
    """

    def __init__(
        self,
        router_config: Optional[RouterConfig] = None,
        costs: Optional[TradingCosts] = None,
        config: Optional[BacktestConfig] = None
    ):
        self.router_config = router_config or RouterConfig()
        self.costs = costs or TradingCosts()
        self.config = config or BacktestConfig()

    def run(
        self,
        candles: Sequence[Candle],
        symbol: str = Config.DEFAULT_SYMBOL,
        strategy_name: str = "adaptive"
    ) -> BacktestResult:
        """
        Simulate the router over ``candles``.

        Raises:
            InsufficientDataError: Not more candles than the router's warmup
        """
        router = StrategyRouter(self.router_config)
        router.register_asset(symbol)
        warmup = router.required_warmup_bars
        if len(candles) <= warmup:
            raise InsufficientDataError(warmup + 1, len(candles), "candles for backtest")

        rng = np.random.default_rng(self.config.seed)
        cash = self.config.initial_capital
        position: Optional[Trade] = None
        trades: List[Trade] = []
        equity = [cash]
        regimes: Counter = Counter()
        bars_in_market = 0
        last_index = len(candles) - 1

        for i, candle in enumerate(candles):
            if position is not None:
                exit_fill = self._bracket_exit(position, candle)
                if exit_fill is not None:
                    price, reason = exit_fill
                    cash += self._close(position, candle, i, price, reason, rng)
                    position = None
                    router.close_position(symbol)

            action = router.update_candle(symbol, candle)
            regimes[str(router.get_regime(symbol).regime)] += 1

            if action is not None:
                if action.action == Signal.BUY and position is None:
                    position, cost = self._open(action, candle, i, cash, len(trades) + 1, rng)
                    if position is not None:
                        cash -= cost
                        trades.append(position)
                    else:
                        router.close_position(symbol)
                elif action.action == Signal.SELL and position is not None:
                    cash += self._close(position, candle, i, candle.close, ExitReason.SIGNAL, rng)
                    position = None

            if position is not None and i == last_index:
                cash += self._close(position, candle, i, candle.close, ExitReason.END_OF_DATA, rng)
                position = None

            if position is not None:
                bars_in_market += 1
                equity.append(cash + position.units * candle.close)
            else:
                equity.append(cash)

        equity_curve = pd.Series(equity, name='equity', dtype=float)

        metrics = MetricsCalculator.calculate(
            equity_curve,
            trades,
            self.config.timeframe.bars_per_year,
            self.config.risk_free_rate,
            exposure=bars_in_market / len(candles),
        )
        total = sum(regimes.values())
        result = BacktestResult(
            status=BacktestStatus.SUCCESS if trades else BacktestStatus.NO_TRADES,
            symbol=symbol,
            strategy_name=strategy_name,
            n_bars=len(candles),
            initial_capital=self.config.initial_capital,
            final_capital=float(equity[-1]),
            metrics=metrics,
            trades=trades,
            equity_curve=equity_curve,
            regime_distribution={k: v / total for k, v in regimes.items()},
            router_stats=router.stats.to_dict(),
        )
        logger.debug(
            f"Backtest {strategy_name} on {symbol}: {len(candles)} bars, "
            f"{metrics.total_trades} trades, return {metrics.total_return:.2%}"
        )
        return result

    # -------------------------------------------------------------------------
    # Fills
    # -------------------------------------------------------------------------

    @staticmethod
    def _bracket_exit(position: Trade, candle: Candle) -> Optional[Tuple[float, ExitReason]]:
        """Stop first, then target; a gap through the level fills at the open."""
        if position.stop_loss is not None and candle.low <= position.stop_loss:
            price = candle.open if candle.open < position.stop_loss else position.stop_loss
            return price, ExitReason.STOP_LOSS
        if position.take_profit is not None and candle.high >= position.take_profit:
            price = candle.open if candle.open > position.take_profit else position.take_profit
            return price, ExitReason.TAKE_PROFIT
        return None

    def _position_size(self, cash: float, size_factor: float) -> float:
        """Flat at entry, so equity equals cash."""
        cfg = self.config
        size = min(max(cfg.risk_per_trade * cash * size_factor, cfg.min_position_size),
                   cfg.max_position_size)
        affordable = (cash - self.costs.fixed_fee) / (1.0 + self.costs.taker_fee)
        return min(size, affordable)

    def _open(
        self,
        action: TradeAction,
        candle: Candle,
        bar_index: int,
        cash: float,
        trade_id: int,
        rng: np.random.Generator
    ) -> Tuple[Optional[Trade], float]:
        """Open a long at the action price; returns (trade, cash spent) or (None, 0)."""
        size = self._position_size(cash, action.size_factor)
        if size < self.config.min_position_size or size <= 0:
            logger.debug(
                f"Skipping {action.symbol} entry at bar {bar_index}: size {size:.2f} "
                f"below minimum {self.config.min_position_size:.2f}"
            )
            return None, 0.0

        slip = self.costs.slippage.slippage_pct(size, rng)
        fill = action.price * (1.0 + slip)
        units = size / fill
        fee = self.costs.fee(size)

        trade = Trade(
            trade_id=trade_id,
            symbol=action.symbol,
            entry_timestamp=candle.timestamp,
            entry_price=fill,
            units=units,
            size_usd=size,
            stop_loss=action.stop_loss,
            take_profit=action.take_profit,
            strategy=action.source_strategy,
            regime=action.regime,
            size_factor=action.size_factor,
            entry_bar=bar_index,
            entry_fee=fee,
            entry_slippage=units * (fill - action.price),
        )
        return trade, size + fee

    def _close(
        self,
        position: Trade,
        candle: Candle,
        bar_index: int,
        price: float,
        reason: ExitReason,
        rng: np.random.Generator
    ) -> float:
        """Close the position at ``price``; returns the cash received."""
        notional = position.units * price
        slip = self.costs.slippage.slippage_pct(notional, rng)
        fill = price * (1.0 - slip)
        proceeds = position.units * fill
        fee = self.costs.fee(proceeds)
        position.close(candle.timestamp, bar_index, fill, fee,
                       position.units * (price - fill), reason)
        if reason in (ExitReason.STOP_LOSS, ExitReason.TAKE_PROFIT):
            logger.debug(
                f"{position.symbol} {reason.value} at {fill:.4f} "
                f"(trade #{position.trade_id}, pnl {position.net_pnl:.2f})"
            )
        return proceeds - fee


# =============================================================================
# SECTION 6: STRATEGY COMPARISON
# =============================================================================

def compare_strategies(
    candles: Sequence[Candle],
    router_config: Optional[RouterConfig] = None,
    costs: Optional[TradingCosts] = None,
    config: Optional[BacktestConfig] = None,
    symbol: str = Config.DEFAULT_SYMBOL
) -> Dict[str, BacktestResult]:
    """
    Run the adaptive router and static single-strategy baselines on the
    same candles with the same costs and seed.

    Returns:
        Results keyed 'adaptive', 'trend_following', 'mean_reversion'
    """
    base = router_config or RouterConfig()
    variants = {
        'adaptive': base,
        'trend_following': dataclasses.replace(base, force_strategy=ActiveStrategy.TREND_FOLLOWING),
        'mean_reversion': dataclasses.replace(base, force_strategy=ActiveStrategy.MEAN_REVERSION),
    }
    results = {}
    for name, router_config_variant in variants.items():
        engine = BacktestEngine(router_config_variant, costs, config)
        results[name] = engine.run(candles, symbol=symbol, strategy_name=name)
    return results


def results_frame(results: Dict[str, BacktestResult]) -> pd.DataFrame:
    """One row of headline metrics per named result."""
    rows = []
    for name, result in results.items():
        m = result.metrics
        rows.append({
            'strategy': name,
            'total_return': m.total_return,
            'sharpe_ratio': m.sharpe_ratio,
            'sortino_ratio': m.sortino_ratio,
            'max_drawdown': m.max_drawdown,
            'win_rate': m.win_rate,
            'profit_factor': m.profit_factor,
            'trades': m.total_trades,
            'fees': m.total_fees,
            'slippage': m.total_slippage,
        })
    return pd.DataFrame(rows).set_index('strategy')


__all__ = [
    'Config',
    'VERSION',
    'SlippageModel',
    'TradingCosts',
    'BacktestConfig',
    'BacktestStatus',
    'ExitReason',
    'TradeStatus',
    'Trade',
    'PerformanceMetrics',
    'BacktestResult',
    'MetricsCalculator',
    'BacktestEngine',
    'compare_strategies',
    'results_frame',
]
