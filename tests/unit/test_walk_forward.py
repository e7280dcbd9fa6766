"""
Unit tests for walk-forward analysis.

Tests validate:
- Window layout and insufficient data handling
- Efficiency ratio definition
- Trial selection order (score, drawdown, trial index)
- Seeded runs are reproducible, including through an executor
"""

import math
from concurrent.futures import ThreadPoolExecutor

import numpy as np
import pytest

from regime_router.backtest_engine import TradingCosts
from regime_router.market_data import generate_mixed_market
from regime_router.models import InsufficientDataError
from regime_router.walk_forward import (
    OptimizationTarget,
    ParameterRange,
    TrialResult,
    WalkForwardAnalyzer,
    WalkForwardConfig,
    build_windows,
    efficiency_ratio,
)


@pytest.fixture
def candles():
    return generate_mixed_market(300, 100.0, seed=1)


def make_analyzer(router_config, **overrides):
    params = dict(train_size=150, test_size=50, optimization_trials=4, seed=7)
    params.update(overrides.pop('wf', {}))
    return WalkForwardAnalyzer(
        router_config,
        TradingCosts.kraken_spot(),
        config=WalkForwardConfig(**params),
        **overrides,
    )


# =============================================================================
# Window Layout Tests
# =============================================================================

class TestWindows:
    """Tests for build_windows."""

    def test_rolling_windows(self):
        windows = build_windows(300, WalkForwardConfig(train_size=150, test_size=50))

        assert [w.train_start for w in windows] == [0, 50, 100]
        for w in windows:
            assert w.train_end == w.test_start
            assert len(w.train_range) == 150
            assert len(w.test_range) == 50
            assert w.test_end <= 300

    def test_custom_step(self):
        windows = build_windows(300, WalkForwardConfig(train_size=150, test_size=50, step_size=25))
        assert len(windows) == 5

    def test_insufficient_data(self):
        with pytest.raises(InsufficientDataError) as exc_info:
            build_windows(100, WalkForwardConfig(train_size=80, test_size=40))
        assert exc_info.value.required == 120

    def test_full_sample_window(self):
        windows = build_windows(200, WalkForwardConfig(train_size=200, test_size=200))
        assert len(windows) == 1
        assert windows[0].train_range == windows[0].test_range

    def test_invalid_config(self):
        with pytest.raises(ValueError):
            WalkForwardConfig(train_size=0)


# =============================================================================
# Scoring Tests
# =============================================================================

class TestScoring:
    """Tests for efficiency ratio and trial ordering."""

    @pytest.mark.parametrize("is_score,oos_score,expected", [
        (1.5, 1.5, 1.0),
        (0.0, 0.0, 1.0),
        (2.0, 1.0, 0.5),
        (0.0, 1.0, 0.0),
        (-1.0, -1.0, 1.0),
    ])
    def test_efficiency_ratio(self, is_score, oos_score, expected):
        assert efficiency_ratio(is_score, oos_score) == pytest.approx(expected)

    def test_best_score_wins(self):
        trials = [TrialResult(0, {}, 1.0, 0.1), TrialResult(1, {}, 2.0, 0.5)]
        assert min(trials, key=lambda t: t.selection_key).trial_index == 1

    def test_tie_broken_by_drawdown_then_index(self):
        trials = [
            TrialResult(0, {}, 1.0, 0.2),
            TrialResult(1, {}, 1.0, 0.1),
            TrialResult(2, {}, 1.0, 0.1),
        ]
        assert min(trials, key=lambda t: t.selection_key).trial_index == 1

    def test_nan_score_ranks_last(self):
        trials = [TrialResult(0, {}, math.nan, 0.0), TrialResult(1, {}, -5.0, 0.9)]
        assert min(trials, key=lambda t: t.selection_key).trial_index == 1


# =============================================================================
# Parameter Sampling Tests
# =============================================================================

class TestSampling:
    """Tests for seeded parameter sampling."""

    def test_parameter_range_validation(self):
        with pytest.raises(ValueError):
            ParameterRange("regime.adx_period", 10, 5)
        with pytest.raises(ValueError):
            ParameterRange("adx_period", 5, 10)
        with pytest.raises(ValueError):
            ParameterRange("regime.adx_period", choices=())

    def test_integer_and_choice_sampling(self):
        rng = np.random.default_rng(0)
        integer = ParameterRange("regime.adx_period", 10, 12, integer=True)
        choice = ParameterRange("mean_reversion.exit_at_middle", choices=(True, False))
        for _ in range(20):
            assert integer.sample(rng) in (10, 11, 12)
            assert choice.sample(rng) in (True, False)

    def test_base_trial_first(self, fast_router_config):
        trials = make_analyzer(fast_router_config).sample_parameters(0)
        assert len(trials) == 4
        assert trials[0] == {}
        assert all(len(t) == 6 for t in trials[1:])

    def test_samples_depend_on_seed_and_window(self, fast_router_config):
        analyzer = make_analyzer(fast_router_config)
        assert analyzer.sample_parameters(1) == make_analyzer(fast_router_config).sample_parameters(1)
        assert analyzer.sample_parameters(0) != analyzer.sample_parameters(1)


# =============================================================================
# Analyzer Tests
# =============================================================================

class TestWalkForwardAnalyzer:
    """Tests for full walk-forward runs."""

    def test_full_sample_efficiency_is_one(self, fast_router_config):
        data = generate_mixed_market(200, 100.0, seed=1)
        analyzer = make_analyzer(
            fast_router_config,
            wf={'train_size': 200, 'test_size': 200, 'optimization_trials': 3},
        )
        report = analyzer.run(data)

        assert report.n_windows == 1
        window = report.windows[0]
        assert window.in_sample_score == window.out_of_sample_score
        assert report.efficiency_ratio == 1.0
        assert report.is_robust

    def test_report_shape(self, fast_router_config, candles):
        report = make_analyzer(fast_router_config).run(candles)

        assert report.n_windows == 3
        assert report.target == OptimizationTarget.SHARPE
        assert 0.0 <= report.consistency_score <= 1.0
        assert all(len(w.trials) == 4 for w in report.windows)
        frame = report.to_frame()
        assert len(frame) == 3
        assert {'is_score', 'oos_score', 'oos_return'} <= set(frame.columns)

    def test_seeded_runs_are_reproducible(self, fast_router_config, candles):
        first = make_analyzer(fast_router_config).run(candles)
        second = make_analyzer(fast_router_config).run(candles)

        assert [w.best_parameters for w in first.windows] == \
               [w.best_parameters for w in second.windows]
        assert first.efficiency_ratio == second.efficiency_ratio
        assert first.consistency_score == second.consistency_score

    def test_executor_matches_sequential(self, fast_router_config, candles):
        sequential = make_analyzer(fast_router_config).run(candles)
        with ThreadPoolExecutor(max_workers=2) as pool:
            parallel = make_analyzer(fast_router_config, executor=pool).run(candles)

        assert [w.best_parameters for w in sequential.windows] == \
               [w.best_parameters for w in parallel.windows]
        assert [w.out_of_sample_score for w in sequential.windows] == \
               [w.out_of_sample_score for w in parallel.windows]

    def test_slice_shorter_than_warmup(self, fast_router_config):
        data = generate_mixed_market(40, 100.0, seed=1)
        analyzer = make_analyzer(fast_router_config, wf={'train_size': 20, 'test_size': 20})
        with pytest.raises(InsufficientDataError):
            analyzer.run(data)

    def test_insufficient_series(self, fast_router_config):
        with pytest.raises(InsufficientDataError):
            make_analyzer(fast_router_config).run(generate_mixed_market(100, 100.0, seed=1))
