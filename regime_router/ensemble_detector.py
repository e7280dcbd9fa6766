"""
Ensemble Regime Detector
========================

Combines the indicator detector and the HMM detector. Both are updated on
every bar; their regimes are compared by coarse category and their
confidences blended with configurable weights.

COMBINATION RULES
-----------------
    weighted = (w_ind * c_ind + w_hmm * c_hmm) / (w_ind + w_hmm)

    Agreement    regime = indicator regime
                 confidence = min(1, weighted + agreement_boost)
    Disagreement regime = UNCERTAIN
                 confidence = weighted * disagreement_factor

Disagreement is not arbitrated: two methods reading the market differently
is itself the signal to stand aside.

Author: Tamer
Version: 2.0.0
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, Optional

import numpy as np

from regime_router.config import EnsembleConfig, HMMConfig, RegimeConfig
from regime_router.hmm_detector import HMMRegimeDetector
from regime_router.models import MarketRegime, RegimeResult
from regime_router.regime_detector import IndicatorRegimeDetector

logger = logging.getLogger(__name__)

VERSION = "2.0.0"


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass
class EnsembleStatus:
    """Snapshot of the ensemble and both component detectors."""
    indicator_regime: MarketRegime
    indicator_confidence: float
    hmm_regime: MarketRegime
    hmm_confidence: float
    methods_agree: bool
    combined_regime: MarketRegime
    combined_confidence: float
    agreement_rate: float              # Share of recent warmed-up updates in agreement
    hmm_state_probabilities: np.ndarray
    hmm_expected_duration: float       # Bars, for the most likely HMM state
    is_ready: bool


# =============================================================================
# SECTION 2: ENSEMBLE DETECTOR
# =============================================================================

class EnsembleRegimeDetector:
    """
    Indicator + HMM ensemble.

    Usage:
        ensemble = EnsembleRegimeDetector()
        result = ensemble.update(high, low, close)
        if result.metadata['methods_agree']:
            ...
    """

    def __init__(
        self,
        regime_config: Optional[RegimeConfig] = None,
        hmm_config: Optional[HMMConfig] = None,
        config: Optional[EnsembleConfig] = None
    ):
        self.config = config or EnsembleConfig()
        self.indicator = IndicatorRegimeDetector(regime_config)
        self.hmm = HMMRegimeDetector(hmm_config)

        self._agreement: Deque[bool] = deque(maxlen=self.config.history_size)
        self._last_indicator = RegimeResult.uncertain()
        self._last_hmm = RegimeResult.uncertain()
        self._last = RegimeResult.uncertain()

    def reset(self) -> None:
        self.indicator.reset()
        self.hmm.reset()
        self._agreement.clear()
        self._last_indicator = RegimeResult.uncertain()
        self._last_hmm = RegimeResult.uncertain()
        self._last = RegimeResult.uncertain()

    # -------------------------------------------------------------------------
    # Update
    # -------------------------------------------------------------------------

    def update(self, high: float, low: float, close: float) -> RegimeResult:
        """
        Feed one bar to both detectors and combine their results.

        Returns:
            RegimeResult whose metadata holds both component results, the
            agreement flag and the weighted confidence before adjustment
        """
        ind = self.indicator.update(high, low, close)
        hmm = self.hmm.update(close)
        self._last_indicator, self._last_hmm = ind, hmm

        agree = self.methods_agree(ind.regime, hmm.regime)
        weighted = self._weighted_confidence(ind.confidence, hmm.confidence)

        if not self.is_ready:
            regime, confidence = MarketRegime.UNCERTAIN, 0.0
        else:
            self._agreement.append(agree)
            if agree:
                regime = ind.regime
                confidence = min(1.0, weighted + self.config.agreement_boost)
            else:
                logger.debug(f"Detectors disagree: indicator {ind.regime} vs HMM {hmm.regime}")
                regime = MarketRegime.UNCERTAIN
                confidence = weighted * self.config.disagreement_factor

        metadata: Dict[str, Any] = {
            'indicator': ind,
            'hmm': hmm,
            'methods_agree': agree,
            'indicator_category': ind.regime.category,
            'hmm_category': hmm.regime.category,
            'weighted_confidence': weighted,
            'ready': self.is_ready,
        }
        self._last = RegimeResult(regime, confidence, metadata)
        return self._last

    @staticmethod
    def methods_agree(indicator_regime: MarketRegime, hmm_regime: MarketRegime) -> bool:
        """True when both regimes fall in the same coarse category."""
        return indicator_regime.category == hmm_regime.category

    def _weighted_confidence(self, c_ind: float, c_hmm: float) -> float:
        w_ind, w_hmm = self.config.indicator_weight, self.config.hmm_weight
        return (w_ind * c_ind + w_hmm * c_hmm) / (w_ind + w_hmm)

    # -------------------------------------------------------------------------
    # Accessors
    # -------------------------------------------------------------------------

    @property
    def is_ready(self) -> bool:
        """Both component detectors have warmed up."""
        return self.indicator.is_ready and self.hmm.warmed_up

    @property
    def warmed_up(self) -> bool:
        return self.is_ready

    @property
    def required_warmup_bars(self) -> int:
        return max(self.indicator.required_warmup_bars, self.hmm.required_warmup_bars)

    def agreement_rate(self) -> float:
        """Fraction of recent warmed-up updates where the detectors agreed."""
        if not self._agreement:
            return 0.0
        return sum(self._agreement) / len(self._agreement)

    def status(self) -> EnsembleStatus:
        ind, hmm = self._last_indicator, self._last_hmm
        return EnsembleStatus(
            indicator_regime=ind.regime,
            indicator_confidence=ind.confidence,
            hmm_regime=hmm.regime,
            hmm_confidence=hmm.confidence,
            methods_agree=self.methods_agree(ind.regime, hmm.regime),
            combined_regime=self._last.regime,
            combined_confidence=self._last.confidence,
            agreement_rate=self.agreement_rate(),
            hmm_state_probabilities=self.hmm.state_probabilities(),
            hmm_expected_duration=self.hmm.expected_regime_duration(),
            is_ready=self.is_ready,
        )


__all__ = [
    'VERSION',
    'EnsembleStatus',
    'EnsembleRegimeDetector',
]
