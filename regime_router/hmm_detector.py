"""
Hidden Markov Model Regime Detector
===================================

Online K-state Gaussian HMM over per-bar log-returns. Each bar advances a
forward filter by one step, so the posterior belief over hidden states is
always current without re-running inference over the whole history.

ACADEMIC FOUNDATIONS
--------------------
Hamilton, J.D. (1989). "A New Approach to the Economic Analysis of
Nonstationary Time Series and the Business Cycle." Econometrica, 57(2).

    Financial returns exhibit regime-switching behavior where the
    data-generating process alternates between distinct states.

Rabiner, L.R. (1989). "A Tutorial on Hidden Markov Models."

MATHEMATICAL FRAMEWORK
----------------------
Hidden state X_t in {0..K-1}, observed log-return Y_t.

    Transition:  P(X_t = j | X_{t-1} = i) = A[i, j]
    Emission:    Y_t | X_t = k  ~  N(mu_k, sigma2_k)

Forward step (filtering, no backward smoothing):

    prior_t     = belief_{t-1} @ A
    belief_t(k) ∝ prior_t(k) * N(Y_t; mu_k, sigma2_k)

Expected holding time in state k is geometric: 1 / (1 - A[k, k]).

STATE LABELS
------------
States are labelled from their emission parameters, so seeded and fitted
models are read the same way:

    sigma_k > volatility_threshold   => VOLATILE
    mu_k    > drift_threshold        => TRENDING_BULLISH
    mu_k    < -drift_threshold       => TRENDING_BEARISH
    otherwise                        => MEAN_REVERTING

CALIBRATION
-----------
``fit`` runs Baum-Welch (EM) over a historical return series to calibrate
the seed parameters before streaming. The streaming filter itself never
re-estimates; the optional ``learning_rate`` only nudges emission
parameters toward each new observation.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
import math
import warnings
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from regime_router.config import HMMConfig
from regime_router.models import InsufficientDataError, MarketRegime, RegimeResult

warnings.filterwarnings('ignore', category=RuntimeWarning)

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: CONFIGURATION
# =============================================================================

class Config:
    """Numerical constants for filtering and EM calibration."""

    # -------------------------------------------------------------------------
    # Filtering
    # -------------------------------------------------------------------------
    PROBABILITY_FLOOR: float = 1e-300      # Guards log(0) on the prior
    MAX_EXPECTED_DURATION: float = math.inf

    # -------------------------------------------------------------------------
    # Baum-Welch Calibration
    # -------------------------------------------------------------------------
    EM_N_ITER: int = 100                   # Maximum EM iterations
    EM_CONVERGENCE_TOL: float = 1e-4       # Log-likelihood change to stop
    EM_MIN_SAMPLES: int = 50               # Minimum returns for calibration


# =============================================================================
# SECTION 2: HMM REGIME DETECTOR
# =============================================================================

class HMMRegimeDetector:
    """
    Streaming Gaussian HMM regime detector.

    Feed closes with ``update(close)`` (log-returns are computed internally)
    or returns directly with ``update_return(r)``. Results are UNCERTAIN
    with zero confidence until ``warmed_up``.
    """

    def __init__(self, config: Optional[HMMConfig] = None):
        """
        Initialize detector.

        Args:
            config: State count, seed parameters and warmup length
        """
        self.config = config or HMMConfig()
        self.n_states = self.config.n_states

        self.means, self.variances = self.config.initial_parameters()
        self.A = self.config.initial_transition_matrix()
        self.pi = np.full(self.n_states, 1.0 / self.n_states)

        self._belief = self.pi.copy()
        self._n_observations = 0
        self._prev_close: Optional[float] = None
        self._log_likelihood = 0.0

    def reset(self) -> None:
        """Restart filtering from the uniform belief; parameters are kept."""
        self._belief = self.pi.copy()
        self._n_observations = 0
        self._prev_close = None
        self._log_likelihood = 0.0

    # -------------------------------------------------------------------------
    # Streaming Update
    # -------------------------------------------------------------------------

    def update(self, close: float) -> RegimeResult:
        """
        Consume one close.

        The first close only seeds the return calculation. Non-positive
        closes are skipped since their log-return is undefined.
        """
        if close <= 0:
            logger.warning(f"Skipping non-positive close {close} in HMM update")
            return self._result()

        prev, self._prev_close = self._prev_close, close
        if prev is None:
            return self._result()
        return self.update_return(math.log(close / prev))

    def update_return(self, log_return: float) -> RegimeResult:
        """Advance the forward filter by one log-return observation."""
        prior = self._belief @ self.A
        log_emission = stats.norm.logpdf(log_return, loc=self.means,
                                         scale=np.sqrt(self.variances))
        log_post = np.log(np.maximum(prior, Config.PROBABILITY_FLOOR)) + log_emission

        peak = np.max(log_post)
        posterior = np.exp(log_post - peak)
        total = posterior.sum()

        if not np.isfinite(total) or total <= 0:
            # Posterior collapsed (e.g. an extreme outlier); restart from uniform
            logger.warning(f"HMM posterior collapsed on return {log_return:.6f}; resetting belief")
            self._belief = np.full(self.n_states, 1.0 / self.n_states)
        else:
            self._belief = posterior / total
            self._log_likelihood += peak + math.log(total)

        self._n_observations += 1

        if self.config.learning_rate > 0 and self.warmed_up:
            self._adapt_emissions(log_return)

        return self._result()

    def _adapt_emissions(self, x: float) -> None:
        """Move each state's emission toward x in proportion to its posterior."""
        weight = self.config.learning_rate * self._belief
        self.means = self.means + weight * (x - self.means)
        self.variances = self.variances + weight * ((x - self.means) ** 2 - self.variances)
        self.variances = np.maximum(self.variances, self.config.variance_floor)

    def _result(self) -> RegimeResult:
        probabilities = self.state_probabilities()
        metadata: Dict[str, Any] = {
            'state_probabilities': probabilities,
            'n_observations': self._n_observations,
            'warmed_up': self.warmed_up,
        }
        if not self.warmed_up:
            return RegimeResult(MarketRegime.UNCERTAIN, 0.0, metadata)

        state = int(np.argmax(probabilities))
        metadata['state'] = state
        metadata['expected_duration'] = self.expected_regime_duration(state)
        return RegimeResult(self.state_regime(state), float(probabilities[state]), metadata)

    # -------------------------------------------------------------------------
    # Inspection
    # -------------------------------------------------------------------------

    @property
    def warmed_up(self) -> bool:
        return self._n_observations >= self.config.min_observations

    @property
    def is_ready(self) -> bool:
        return self.warmed_up

    @property
    def n_observations(self) -> int:
        return self._n_observations

    @property
    def required_warmup_bars(self) -> int:
        """Closes needed; the first close yields no return."""
        return self.config.min_observations + 1

    @property
    def log_likelihood(self) -> float:
        """Log-likelihood of the streamed returns under the model."""
        return self._log_likelihood

    def state_probabilities(self) -> np.ndarray:
        """Posterior belief over states (sums to 1)."""
        return self._belief.copy()

    @property
    def current_state(self) -> int:
        return int(np.argmax(self._belief))

    def state_regime(self, state: int) -> MarketRegime:
        """Regime label of a state, read from its emission parameters."""
        cfg = self.config
        if math.sqrt(self.variances[state]) > cfg.volatility_threshold:
            return MarketRegime.VOLATILE
        if self.means[state] > cfg.drift_threshold:
            return MarketRegime.TRENDING_BULLISH
        if self.means[state] < -cfg.drift_threshold:
            return MarketRegime.TRENDING_BEARISH
        return MarketRegime.MEAN_REVERTING

    def state_regimes(self) -> List[MarketRegime]:
        return [self.state_regime(k) for k in range(self.n_states)]

    def expected_regime_duration(self, state: Optional[int] = None) -> float:
        """
        Expected bars spent in a state before leaving it.

        Expected duration in state k = 1 / (1 - A[k,k]); infinite when the
        state is absorbing.

        Args:
            state: State index (current most likely state if None)
        """
        if state is None:
            state = self.current_state
        self_trans = self.A[state, state]
        if self_trans >= 1.0:
            return Config.MAX_EXPECTED_DURATION
        return 1.0 / (1.0 - self_trans)

    def expected_durations(self) -> List[float]:
        return [self.expected_regime_duration(k) for k in range(self.n_states)]

    def stationary_distribution(self) -> np.ndarray:
        """
        Long-run state distribution.

        This is the left eigenvector of A corresponding to eigenvalue 1.
        """
        eigenvalues, eigenvectors = np.linalg.eig(self.A.T)
        idx = np.argmin(np.abs(eigenvalues - 1.0))
        stationary = np.real(eigenvectors[:, idx])
        stationary = np.maximum(stationary / stationary.sum(), 0.0)
        return stationary / stationary.sum()

    def predict_next_state(self) -> Tuple[int, float]:
        """Most likely state at the next bar and its one-step probability."""
        next_belief = self._belief @ self.A
        state = int(np.argmax(next_belief))
        return state, float(next_belief[state])

    # -------------------------------------------------------------------------
    # Baum-Welch Calibration
    # -------------------------------------------------------------------------

    def _emission_probs(self, X: np.ndarray) -> np.ndarray:
        """Emission probabilities P(Y_t | X_t = k), shape (T, K)."""
        B = stats.norm.pdf(X[:, None], loc=self.means[None, :],
                           scale=np.sqrt(self.variances)[None, :])
        return np.clip(B, Config.PROBABILITY_FLOOR, None)

    def _forward(self, B: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        T = B.shape[0]
        alpha = np.zeros((T, self.n_states))
        scale = np.zeros(T)

        alpha[0] = self.pi * B[0]
        scale[0] = alpha[0].sum()
        alpha[0] /= scale[0]
        for t in range(1, T):
            alpha[t] = B[t] * (alpha[t - 1] @ self.A)
            scale[t] = alpha[t].sum()
            alpha[t] /= scale[t]
        return alpha, scale

    def _backward(self, B: np.ndarray, scale: np.ndarray) -> np.ndarray:
        T = B.shape[0]
        beta = np.ones((T, self.n_states))
        for t in range(T - 2, -1, -1):
            beta[t] = (self.A @ (B[t + 1] * beta[t + 1])) / scale[t + 1]
        return beta

    def fit(self, returns: Sequence[float]) -> 'HMMRegimeDetector':
        """
        Calibrate emission and transition parameters with Baum-Welch.

        Seeds EM from the current parameters, so state order (and therefore
        labelling) follows the configured seeds. Resets the filter belief
        to the fitted initial distribution.

        Args:
            returns: Historical log-returns

        Returns:
            self (calibrated detector)

        Raises:
            InsufficientDataError: Fewer than Config.EM_MIN_SAMPLES returns
        """
        X = np.asarray(returns, dtype=float).flatten()
        X = X[np.isfinite(X)]
        if len(X) < Config.EM_MIN_SAMPLES:
            raise InsufficientDataError(Config.EM_MIN_SAMPLES, len(X), "returns for HMM calibration")

        prev_ll = -np.inf
        iteration = 0
        for iteration in range(1, Config.EM_N_ITER + 1):
            B = self._emission_probs(X)
            alpha, scale = self._forward(B)
            beta = self._backward(B, scale)

            # E-step
            gamma = alpha * beta
            gamma /= gamma.sum(axis=1, keepdims=True)
            xi = (alpha[:-1, :, None] * self.A[None, :, :]
                  * (B[1:] * beta[1:])[:, None, :]) / scale[1:, None, None]

            # M-step
            self.pi = gamma[0] / gamma[0].sum()
            A = xi.sum(axis=0) / np.maximum(gamma[:-1].sum(axis=0), Config.PROBABILITY_FLOOR)[:, None]
            self.A = A / A.sum(axis=1, keepdims=True)
            weights = np.maximum(gamma.sum(axis=0), Config.PROBABILITY_FLOOR)
            self.means = (gamma * X[:, None]).sum(axis=0) / weights
            self.variances = (gamma * (X[:, None] - self.means) ** 2).sum(axis=0) / weights
            self.variances = np.maximum(self.variances, self.config.variance_floor)

            ll = float(np.sum(np.log(scale)))
            if abs(ll - prev_ll) < Config.EM_CONVERGENCE_TOL:
                break
            prev_ll = ll

        self._belief = self.pi.copy()
        logger.info(
            f"HMM calibrated on {len(X)} returns in {iteration} iterations; "
            f"states: {[str(r) for r in self.state_regimes()]}"
        )
        return self


# =============================================================================
# SECTION 3: MODULE EXPORTS
# =============================================================================

__all__ = [
    'Config',
    'VERSION',
    'HMMRegimeDetector',
]
