"""Tests for feature extraction and simulation overrides."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as SchemaError

from creditpulse.config.schema import CreditPulseConfig
from creditpulse.engine.features import (
    DERIVED_FEATURES,
    FEATURE_KEYS,
    PRIMARY_FEATURES,
    FeatureSet,
    apply_overrides,
    derive_secondary_features,
    extract_features,
    months_before,
)
from creditpulse.storage import queries


class TestFeatureSet:

    def test_defaults(self):
        fs = FeatureSet.defaults("p1")
        assert fs.persona_id == "p1"
        assert fs.days_since_last_tx == 365
        assert fs.recency_risk == 1.0
        assert fs.micro_active is False
        assert fs.extraction_error is None

    def test_feature_keys_exclude_metadata(self):
        assert "persona_id" not in FEATURE_KEYS
        assert "feature_version" not in FEATURE_KEYS
        assert len(FEATURE_KEYS) == 18
        assert set(PRIMARY_FEATURES) | set(DERIVED_FEATURES) == set(FEATURE_KEYS)

    def test_unknown_field_rejected(self):
        with pytest.raises(SchemaError):
            FeatureSet(bogus=1)

    def test_ratio_bounded(self):
        with pytest.raises(SchemaError):
            FeatureSet(bills_paid_ratio=1.5)

    def test_assignment_validated(self):
        fs = FeatureSet()
        with pytest.raises(SchemaError):
            fs.tx_6m_count = -1

    def test_payload_is_json_friendly(self):
        fs = FeatureSet.defaults("p1", datetime(2026, 1, 1, tzinfo=timezone.utc))
        payload = fs.to_payload()
        assert payload["extracted_at"].startswith("2026-01-01T00:00:00")
        assert payload["feature_version"] == "1.0"


class TestDerivedFeatures:

    def test_payment_consistency_capped(self):
        assert derive_secondary_features({"bills_paid_ratio": 0.5})["payment_consistency"] == pytest.approx(0.6)
        assert derive_secondary_features({"bills_paid_ratio": 0.9})["payment_consistency"] == 1.0

    def test_transaction_velocity(self):
        assert derive_secondary_features({"tx_6m_count": 0})["transaction_velocity"] == 0.0
        assert derive_secondary_features({"tx_6m_count": 25})["transaction_velocity"] == 0.5
        assert derive_secondary_features({"tx_6m_count": 500})["transaction_velocity"] == 1.0

    @pytest.mark.parametrize("count,expected", [(0, 0.0), (1, 0.4), (3, 0.7), (6, 1.0), (12, 1.0)])
    def test_remittance_stability_buckets(self, count, expected):
        assert derive_secondary_features({"remittance_12m_count": count})["remittance_stability"] == expected

    @pytest.mark.parametrize("days,expected", [(0, 0.0), (30, 0.0), (31, 0.3), (90, 0.3), (180, 0.6), (181, 1.0)])
    def test_recency_risk_buckets(self, days, expected):
        assert derive_secondary_features({"days_since_last_tx": days})["recency_risk"] == expected

    def test_credit_risk_clamped(self):
        assert derive_secondary_features({"credit_utilization_ratio": 1.7})["credit_risk"] == 1.0
        assert derive_secondary_features({"credit_utilization_ratio": -0.2})["credit_risk"] == 0.0

    def test_missing_primaries_use_defaults(self):
        derived = derive_secondary_features({})
        assert derived["recency_risk"] == 1.0
        assert derived["payment_consistency"] == 0.0


class TestMonthsBefore:

    def test_end_of_month_clamps(self):
        result = months_before(datetime(2026, 3, 31, tzinfo=timezone.utc), 1)
        assert (result.year, result.month, result.day) == (2026, 2, 28)

    def test_naive_taken_as_utc(self):
        result = months_before(datetime(2026, 6, 15), 6)
        assert result.tzinfo is not None
        assert (result.year, result.month, result.day) == (2025, 12, 15)


class TestExtraction:

    def test_example_persona(self, persona, seeded_db, now):
        fs = extract_features(seeded_db, persona, now=now)
        assert fs.persona_id == persona
        assert fs.tx_6m_count == 10
        assert fs.tx_6m_sum == pytest.approx(5500.0)
        assert fs.tx_6m_avg_amount == pytest.approx(550.0)
        assert fs.days_since_last_tx == 10
        assert fs.account_age_days == 100
        assert fs.bills_paid_ratio == pytest.approx(0.8)
        assert fs.avg_bill_amount == pytest.approx(50.0)
        assert fs.payment_consistency == pytest.approx(0.96)
        assert fs.transaction_velocity == pytest.approx(0.2)
        assert fs.recency_risk == 0.0
        assert fs.extraction_error is None

    def test_windows_exclude_old_activity(self, memory_db, now):
        pid = queries.upsert_persona(memory_db, "p1")
        queries.add_transaction(memory_db, pid, 50.0, now - timedelta(days=30))
        queries.add_transaction(memory_db, pid, 70.0, now - timedelta(days=300))
        queries.add_remittance(memory_db, pid, 200.0, now - timedelta(days=300))
        queries.add_remittance(memory_db, pid, 200.0, now - timedelta(days=500))

        fs = extract_features(memory_db, pid, now=now)
        assert fs.tx_6m_count == 1
        assert fs.remittance_12m_count == 1
        assert fs.remittance_stability == 0.4
        assert fs.account_age_days == 300

    def test_configured_window(self, memory_db, now):
        pid = queries.upsert_persona(memory_db, "p1")
        queries.add_transaction(memory_db, pid, 70.0, now - timedelta(days=300))
        config = CreditPulseConfig(scoring={"windows": {"transactions_months": 12}})
        assert extract_features(memory_db, pid, now=now, config=config).tx_6m_count == 1

    def test_no_activity_gives_sentinels(self, memory_db, now):
        pid = queries.upsert_persona(memory_db, "p1")
        fs = extract_features(memory_db, pid, now=now)
        assert fs.days_since_last_tx == 365
        assert fs.recency_risk == 1.0
        assert fs.bills_paid_ratio == 0.0
        assert fs.account_age_days == 0

    def test_microcredit_and_utilization(self, memory_db, now):
        pid = queries.upsert_persona(memory_db, "p1")
        queries.add_microcredit(memory_db, pid, 300.0)
        queries.add_microcredit(memory_db, pid, 900.0, status="repaid")
        queries.add_credit_account(memory_db, pid, 250.0, 1000.0)
        queries.add_account_balance(memory_db, pid, 100.0, now - timedelta(days=10))
        queries.add_account_balance(memory_db, pid, 300.0, now - timedelta(days=20))

        fs = extract_features(memory_db, pid, now=now)
        assert fs.micro_active is True
        assert fs.micro_active_sum == pytest.approx(300.0)
        assert fs.credit_utilization_ratio == pytest.approx(0.25)
        assert fs.credit_risk == pytest.approx(0.25)
        assert fs.avg_monthly_balance == pytest.approx(200.0)

    def test_failure_returns_defaults(self, memory_db, now, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("store offline")

        monkeypatch.setattr(queries, "aggregate_transactions", broken)
        fs = extract_features(memory_db, "p1", now=now)
        assert fs.extraction_error == "store offline"
        assert fs.tx_6m_count == 0
        assert fs.days_since_last_tx == 365


class TestApplyOverrides:

    def test_derived_recomputed(self):
        fs = FeatureSet(bills_paid_ratio=0.8, payment_consistency=0.96)
        modified = apply_overrides(fs, {"bills_paid_ratio": 0.5})
        assert modified.payment_consistency == pytest.approx(0.6)
        assert fs.bills_paid_ratio == 0.8

    def test_explicit_derived_override_wins(self):
        modified = apply_overrides(
            FeatureSet(), {"bills_paid_ratio": 0.5, "payment_consistency": 0.1}
        )
        assert modified.payment_consistency == 0.1

    def test_recompute_disabled(self):
        fs = FeatureSet(bills_paid_ratio=0.8, payment_consistency=0.96)
        modified = apply_overrides(fs, {"bills_paid_ratio": 0.5}, recompute_derived=False)
        assert modified.payment_consistency == pytest.approx(0.96)

    def test_invalid_value_raises(self):
        with pytest.raises(SchemaError):
            apply_overrides(FeatureSet(), {"bills_paid_ratio": 2.0})
