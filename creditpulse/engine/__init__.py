"""Credit-scoring engine.

Public API:
  compute_credit_score   Score a persona and append to history -> ScoreExplanation
  simulate_credit_score  Before/after comparison with feature overrides
  simulate_scenarios     One simulation per named scenario
  get_score_trend        Monthly average score over trailing months
  extract_features       Persona activity -> FeatureSet
"""

from creditpulse.engine.features import FeatureSet, extract_features
from creditpulse.engine.scorer import (
    ScoreExplanation,
    SimulationResult,
    compute_credit_score,
    get_score_trend,
    simulate_credit_score,
    simulate_scenarios,
)

__all__ = [
    "FeatureSet",
    "ScoreExplanation",
    "SimulationResult",
    "compute_credit_score",
    "extract_features",
    "get_score_trend",
    "simulate_credit_score",
    "simulate_scenarios",
]
