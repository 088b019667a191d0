"""Tests for factor weighting."""

from __future__ import annotations

import pytest

from creditpulse.config.defaults import BASELINE_MODEL_ID
from creditpulse.engine.features import FeatureSet
from creditpulse.engine.model import ScoreFactor
from creditpulse.engine.weighting import apply_weights, weigh_features
from creditpulse.errors import ModelNotFoundError


class TestApplyWeights:

    def test_weighted_sum(self):
        result = apply_weights(
            {"tx_6m_count": 10, "bills_paid_ratio": 0.8},
            [ScoreFactor("tx_6m_count", 0.5), ScoreFactor("bills_paid_ratio", 0.7)],
        )
        assert result["raw_score"] == pytest.approx(5.56)
        assert result["contributions"]["tx_6m_count"]["contribution"] == pytest.approx(5.0)
        assert result["contributions"]["bills_paid_ratio"]["raw_value"] == pytest.approx(0.8)

    def test_contributions_in_key_order(self):
        result = apply_weights(
            {}, [ScoreFactor("tx_6m_sum", 1.0), ScoreFactor("account_age_days", 1.0)]
        )
        assert list(result["contributions"]) == ["account_age_days", "tx_6m_sum"]

    def test_booleans_count_as_one_and_zero(self):
        factors = [ScoreFactor("micro_active", 0.09)]
        assert apply_weights({"micro_active": True}, factors)["raw_score"] == pytest.approx(0.09)
        assert apply_weights({"micro_active": False}, factors)["raw_score"] == 0.0

    def test_missing_and_non_numeric_are_zero(self):
        factors = [ScoreFactor("tx_6m_count", 2.0), ScoreFactor("avg_bill_amount", 3.0)]
        result = apply_weights({"avg_bill_amount": "n/a"}, factors)
        assert result["raw_score"] == 0.0
        assert result["contributions"]["tx_6m_count"]["raw_value"] == 0.0

    def test_negative_weights(self):
        result = apply_weights(
            {"days_since_last_tx": 100}, [ScoreFactor("days_since_last_tx", -0.1)]
        )
        assert result["raw_score"] == pytest.approx(-10.0)

    def test_no_factors(self):
        assert apply_weights(FeatureSet(), []) == {"raw_score": 0.0, "contributions": {}}

    def test_description_carried(self):
        result = apply_weights({}, [ScoreFactor("tx_6m_count", 1.0, "Frequency")])
        assert result["contributions"]["tx_6m_count"]["description"] == "Frequency"


class TestWeighFeatures:

    def test_loads_model_factors(self, seeded_db, example_model):
        result = weigh_features(
            seeded_db, FeatureSet(tx_6m_count=10, bills_paid_ratio=0.8), example_model.id
        )
        assert result["raw_score"] == pytest.approx(5.56)
        assert len(result["contributions"]) == 2

    def test_baseline_model_uses_fifteen_factors(self, seeded_db):
        result = weigh_features(seeded_db, FeatureSet(), BASELINE_MODEL_ID)
        assert len(result["contributions"]) == 15
        # Defaults: 365 days since last tx is the only nonzero weighted input.
        assert result["raw_score"] == pytest.approx(-36.5)

    def test_unknown_model(self, seeded_db):
        with pytest.raises(ModelNotFoundError):
            weigh_features(seeded_db, FeatureSet(), "no-such-model")
