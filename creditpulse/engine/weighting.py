"""Weighted sum of features against a model's score factors."""

from __future__ import annotations

import logging
from numbers import Real
from typing import Any, Iterable, Mapping, TypedDict

from creditpulse.engine.features import FeatureSet
from creditpulse.engine.model import ScoreFactor, load_score_factors
from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)


class Contribution(TypedDict):
    raw_value: float
    weight: float
    contribution: float
    description: str


class WeightedResult(TypedDict):
    raw_score: float
    contributions: dict[str, Contribution]


def _numeric_value(key: str, value: Any) -> float:
    """Booleans become 0/1; missing and non-numeric values become 0."""
    if value is None:
        return 0.0
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, Real):
        return float(value)
    logger.warning("Feature %s has non-numeric value %r; using 0", key, value)
    return 0.0


def apply_weights(
    features: FeatureSet | Mapping[str, Any],
    factors: Iterable[ScoreFactor],
) -> WeightedResult:
    """Accumulate value x weight over ``factors`` in feature_key order."""
    values = features.feature_values() if isinstance(features, FeatureSet) else features

    raw_score = 0.0
    contributions: dict[str, Contribution] = {}
    for factor in sorted(factors, key=lambda f: f.feature_key):
        value = _numeric_value(factor.feature_key, values.get(factor.feature_key))
        contribution = value * factor.weight
        raw_score += contribution
        contributions[factor.feature_key] = Contribution(
            raw_value=value,
            weight=factor.weight,
            contribution=contribution,
            description=factor.description,
        )

    return WeightedResult(raw_score=raw_score, contributions=contributions)


def weigh_features(
    db: Database,
    features: FeatureSet | Mapping[str, Any],
    model_id: str,
) -> WeightedResult:
    """Load the model's factors and apply them.

    Raises ModelNotFoundError when the model has neither factors nor a record.
    """
    return apply_weights(features, load_score_factors(db, model_id))
