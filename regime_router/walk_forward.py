"""
Walk-Forward Analysis
=====================

Rolling train/test validation of the strategy router with seeded random
parameter search on each training slice.

Reference:
    Pardo, R. (2008). "The Evaluation and Optimization of Trading Strategies."

PROCEDURE
---------
    1. Split the candles into windows of (train_size, test_size), each
       starting step_size bars after the previous one.
    2. On each training slice, backtest ``optimization_trials`` parameter
       sets drawn from ``parameter_space`` and score each by the target.
    3. Pick the best score; ties go to the lower max drawdown, then to the
       earlier trial.
    4. Backtest the chosen parameters unchanged on the test slice.

AGGREGATES
----------
    Efficiency Ratio  = mean OOS score / mean IS score
                        (1.0 when they are equal, 0.0 when IS is zero)
    Consistency Score = share of windows with positive OOS total return
    Robust            = Efficiency Ratio > 0.5

Trial sampling uses a Generator seeded from (seed, window index), so a
window's trials do not depend on how many windows precede it or on how
trials are scheduled. Trials may be evaluated through any
``concurrent.futures.Executor``; results are reduced in trial order.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from regime_router.backtest_engine import (
    BacktestConfig,
    BacktestEngine,
    PerformanceMetrics,
    TradingCosts,
)
from regime_router.config import RouterConfig, apply_parameters
from regime_router.market_data import Candle
from regime_router.models import InsufficientDataError, safe_divide

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: CONFIGURATION
# =============================================================================

class Config:
    """Walk-forward defaults."""

    TRAIN_SIZE: int = 2000            # ~3 weeks of 15m bars
    TEST_SIZE: int = 500
    OPTIMIZATION_TRIALS: int = 20
    ROBUST_EFFICIENCY: float = 0.5    # Efficiency above => robust
    DEFAULT_SEED: int = 42


class OptimizationTarget(Enum):
    """Metric maximized on each training slice."""
    SHARPE = "SHARPE"
    SORTINO = "SORTINO"
    CALMAR = "CALMAR"
    TOTAL_RETURN = "TOTAL_RETURN"
    PROFIT_FACTOR = "PROFIT_FACTOR"
    WIN_RATE = "WIN_RATE"

    def score(self, metrics: PerformanceMetrics) -> float:
        return float(getattr(metrics, _TARGET_FIELDS[self]))


_TARGET_FIELDS: Dict[OptimizationTarget, str] = {
    OptimizationTarget.SHARPE: 'sharpe_ratio',
    OptimizationTarget.SORTINO: 'sortino_ratio',
    OptimizationTarget.CALMAR: 'calmar_ratio',
    OptimizationTarget.TOTAL_RETURN: 'total_return',
    OptimizationTarget.PROFIT_FACTOR: 'profit_factor',
    OptimizationTarget.WIN_RATE: 'win_rate',
}


@dataclass(frozen=True)
class ParameterRange:
    """
    Search range for one dotted router parameter.

    Either ``choices`` or a [low, high] interval; ``integer`` draws whole
    numbers from the closed interval.
    """
    name: str                                  # e.g. "regime.adx_trending_threshold"
    low: Optional[float] = None
    high: Optional[float] = None
    integer: bool = False
    choices: Optional[Tuple[Any, ...]] = None

    def __post_init__(self):
        if '.' not in self.name:
            raise ValueError(f"Parameter name must be 'section.field': {self.name}")
        if self.choices is not None:
            if len(self.choices) == 0:
                raise ValueError(f"{self.name}: choices must not be empty")
        elif self.low is None or self.high is None or self.low > self.high:
            raise ValueError(f"{self.name}: need low <= high or choices")

    def sample(self, rng: np.random.Generator) -> Any:
        if self.choices is not None:
            return self.choices[int(rng.integers(len(self.choices)))]
        if self.integer:
            return int(rng.integers(int(self.low), int(self.high) + 1))
        return float(rng.uniform(self.low, self.high))


def default_parameter_space() -> Tuple[ParameterRange, ...]:
    """Thresholds worth tuning; periods are left alone so warmup stays fixed."""
    return (
        ParameterRange("regime.adx_trending_threshold", 18.0, 30.0),
        ParameterRange("regime.adx_ranging_threshold", 12.0, 20.0),
        ParameterRange("regime.atr_expansion_threshold", 1.2, 2.0),
        ParameterRange("mean_reversion.entry_threshold", 0.0, 0.005),
        ParameterRange("mean_reversion.stop_loss_pct", 0.01, 0.04),
        ParameterRange("router.min_regime_confidence", 0.3, 0.7),
    )


@dataclass(frozen=True)
class WalkForwardConfig:
    """Window geometry, trial count and target."""
    train_size: int = Config.TRAIN_SIZE
    test_size: int = Config.TEST_SIZE
    step_size: Optional[int] = None            # None => test_size
    optimization_trials: int = Config.OPTIMIZATION_TRIALS
    target: OptimizationTarget = OptimizationTarget.SHARPE
    seed: Optional[int] = Config.DEFAULT_SEED
    parameter_space: Tuple[ParameterRange, ...] = field(default_factory=default_parameter_space)
    include_base_trial: bool = True            # Trial 0 = the unmodified config

    def __post_init__(self):
        if self.train_size < 1 or self.test_size < 1:
            raise ValueError("train_size and test_size must be >= 1")
        if self.step_size is not None and self.step_size < 1:
            raise ValueError("step_size must be >= 1")
        if self.optimization_trials < 1:
            raise ValueError("optimization_trials must be >= 1")

    @property
    def step(self) -> int:
        return self.step_size if self.step_size is not None else self.test_size


# =============================================================================
# SECTION 2: DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class WalkForwardWindow:
    """Half-open bar ranges [start, end) for one train/test split."""
    index: int
    train_start: int
    train_end: int
    test_start: int
    test_end: int

    @property
    def train_range(self) -> range:
        return range(self.train_start, self.train_end)

    @property
    def test_range(self) -> range:
        return range(self.test_start, self.test_end)


@dataclass
class TrialResult:
    """One parameter set scored on a training slice."""
    trial_index: int
    parameters: Dict[str, Any]
    score: float
    max_drawdown: float
    metrics: Optional[PerformanceMetrics] = None
    error: Optional[str] = None

    @property
    def selection_key(self) -> Tuple[float, float, int]:
        """Sort key: highest score, then lowest drawdown, then earliest trial."""
        score = -math.inf if math.isnan(self.score) else self.score
        return (-score, self.max_drawdown, self.trial_index)


@dataclass
class WindowResult:
    """Best in-sample trial and its out-of-sample replay."""
    window: WalkForwardWindow
    best_parameters: Dict[str, Any]
    in_sample_score: float
    out_of_sample_score: float
    in_sample: PerformanceMetrics
    out_of_sample: PerformanceMetrics
    trials: List[TrialResult] = field(default_factory=list)


@dataclass
class WalkForwardReport:
    """Complete walk-forward analysis results."""
    windows: List[WindowResult]
    target: OptimizationTarget
    avg_is_score: float
    avg_oos_score: float
    avg_oos_return: float
    efficiency_ratio: float           # Avg OOS / Avg IS score
    consistency_score: float          # Share of windows with OOS return > 0

    @property
    def n_windows(self) -> int:
        return len(self.windows)

    @property
    def is_robust(self) -> bool:
        return self.efficiency_ratio > Config.ROBUST_EFFICIENCY

    def to_frame(self) -> pd.DataFrame:
        """One row per window."""
        rows = []
        for w in self.windows:
            rows.append({
                'window': w.window.index,
                'train_start': w.window.train_start,
                'train_end': w.window.train_end,
                'test_start': w.window.test_start,
                'test_end': w.window.test_end,
                'is_score': w.in_sample_score,
                'oos_score': w.out_of_sample_score,
                'is_return': w.in_sample.total_return,
                'oos_return': w.out_of_sample.total_return,
                'oos_trades': w.out_of_sample.total_trades,
                **{f'param.{k}': v for k, v in w.best_parameters.items()},
            })
        return pd.DataFrame(rows)


# =============================================================================
# SECTION 3: HELPERS
# =============================================================================

def build_windows(n_bars: int, config: WalkForwardConfig) -> List[WalkForwardWindow]:
    """
    Lay out rolling windows over ``n_bars`` candles.

    A configuration whose train and test sizes both equal the series
    length yields one window that tests on its own training data.

    Raises:
        InsufficientDataError: Series shorter than one train + test window
    """
    train, test = config.train_size, config.test_size
    if train == test == n_bars:
        return [WalkForwardWindow(0, 0, n_bars, 0, n_bars)]
    if n_bars < train + test:
        raise InsufficientDataError(train + test, n_bars, "candles for walk-forward")

    windows = []
    start = 0
    while start + train + test <= n_bars:
        windows.append(WalkForwardWindow(
            index=len(windows),
            train_start=start,
            train_end=start + train,
            test_start=start + train,
            test_end=start + train + test,
        ))
        start += config.step
    return windows


def efficiency_ratio(is_score: float, oos_score: float) -> float:
    """Out-of-sample over in-sample score; 1.0 when identical."""
    if oos_score == is_score:
        return 1.0
    return safe_divide(oos_score, is_score, default=0.0)


def _evaluate_trial(args: Tuple) -> TrialResult:
    """Backtest one parameter set on one slice (module-level so executors can pickle it)."""
    trial_index, params, candles, router_config, costs, backtest_config, target = args
    try:
        trial_config = apply_parameters(router_config, params)
        result = BacktestEngine(trial_config, costs, backtest_config).run(candles)
    except InsufficientDataError:
        raise
    except ValueError as exc:
        logger.warning(f"Trial {trial_index} rejected ({exc}); parameters: {params}")
        return TrialResult(trial_index, params, -math.inf, math.inf, error=str(exc))

    return TrialResult(
        trial_index=trial_index,
        parameters=params,
        score=target.score(result.metrics),
        max_drawdown=result.metrics.max_drawdown,
        metrics=result.metrics,
    )


# =============================================================================
# SECTION 4: WALK-FORWARD ANALYZER
# =============================================================================

class WalkForwardAnalyzer:
    """
    Rolling-window optimizer and out-of-sample validator.

    Usage:
        analyzer = WalkForwardAnalyzer(RouterConfig(), TradingCosts.kraken_spot(),
                                       config=WalkForwardConfig(train_size=1500, test_size=500))
        report = analyzer.run(candles)
        print(report.efficiency_ratio, report.consistency_score)
    """

    def __init__(
        self,
        router_config: Optional[RouterConfig] = None,
        costs: Optional[TradingCosts] = None,
        backtest_config: Optional[BacktestConfig] = None,
        config: Optional[WalkForwardConfig] = None,
        executor: Optional[Executor] = None
    ):
        """
        Initialize analyzer.

        Args:
            router_config: Base configuration every trial starts from
            costs: Trading costs for every backtest
            backtest_config: Capital, sizing and slippage seed
            config: Window geometry, trial count and target
            executor: Optional executor for trial evaluation
        """
        self.router_config = router_config or RouterConfig()
        self.costs = costs or TradingCosts()
        self.backtest_config = backtest_config or BacktestConfig()
        self.config = config or WalkForwardConfig()
        self.executor = executor

    def sample_parameters(self, window_index: int) -> List[Dict[str, Any]]:
        """Trial parameter sets for one window, in trial order."""
        cfg = self.config
        if cfg.seed is None:
            rng = np.random.default_rng()
        else:
            rng = np.random.default_rng([cfg.seed, window_index])

        trials: List[Dict[str, Any]] = []
        if cfg.include_base_trial:
            trials.append({})
        while len(trials) < cfg.optimization_trials:
            trials.append({p.name: p.sample(rng) for p in cfg.parameter_space})
        return trials

    def run(self, candles: Sequence[Candle]) -> WalkForwardReport:
        """
        Run every window.

        Raises:
            InsufficientDataError: Series shorter than one window, or a
                slice shorter than the router warmup
        """
        windows = build_windows(len(candles), self.config)
        logger.info(
            f"Walk-forward: {len(windows)} windows over {len(candles)} bars "
            f"(train {self.config.train_size}, test {self.config.test_size}, "
            f"{self.config.optimization_trials} trials, target {self.config.target.value})"
        )

        results = [self._run_window(window, candles, len(windows)) for window in windows]

        avg_is = float(np.mean([r.in_sample_score for r in results]))
        avg_oos = float(np.mean([r.out_of_sample_score for r in results]))
        positive = sum(1 for r in results if r.out_of_sample.total_return > 0)

        report = WalkForwardReport(
            windows=results,
            target=self.config.target,
            avg_is_score=avg_is,
            avg_oos_score=avg_oos,
            avg_oos_return=float(np.mean([r.out_of_sample.total_return for r in results])),
            efficiency_ratio=efficiency_ratio(avg_is, avg_oos),
            consistency_score=positive / len(results),
        )
        logger.info(
            f"Walk-forward complete: efficiency {report.efficiency_ratio:.2f}, "
            f"consistency {report.consistency_score:.0%}, robust: {report.is_robust}"
        )
        return report

    def _run_window(
        self,
        window: WalkForwardWindow,
        candles: Sequence[Candle],
        n_windows: int
    ) -> WindowResult:
        train = list(candles[window.train_start:window.train_end])
        test = list(candles[window.test_start:window.test_end])
        target = self.config.target

        args = [
            (i, params, train, self.router_config, self.costs, self.backtest_config, target)
            for i, params in enumerate(self.sample_parameters(window.index))
        ]
        mapper = self.executor.map if self.executor is not None else map
        trials = list(mapper(_evaluate_trial, args))

        best = min(trials, key=lambda t: t.selection_key)
        if best.metrics is None:
            raise ValueError(f"Window {window.index}: every trial configuration was rejected")

        oos_config = apply_parameters(self.router_config, best.parameters)
        oos = BacktestEngine(oos_config, self.costs, self.backtest_config).run(
            test, strategy_name=f"wf_window_{window.index}"
        )
        oos_score = target.score(oos.metrics)

        logger.info(
            f"Window {window.index + 1}/{n_windows}: trial {best.trial_index} "
            f"IS {best.score:.3f} OOS {oos_score:.3f} "
            f"(OOS return {oos.metrics.total_return:.2%})"
        )
        return WindowResult(
            window=window,
            best_parameters=dict(best.parameters),
            in_sample_score=best.score,
            out_of_sample_score=oos_score,
            in_sample=best.metrics,
            out_of_sample=oos.metrics,
            trials=trials,
        )


__all__ = [
    'Config',
    'VERSION',
    'OptimizationTarget',
    'ParameterRange',
    'WalkForwardConfig',
    'WalkForwardWindow',
    'TrialResult',
    'WindowResult',
    'WalkForwardReport',
    'default_parameter_space',
    'build_windows',
    'efficiency_ratio',
    'WalkForwardAnalyzer',
]
