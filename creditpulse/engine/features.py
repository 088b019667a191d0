"""Feature extraction: a persona's raw activity history -> a flat FeatureSet.

Primary features are SQL aggregates over fixed trailing windows. Derived
features are pure formulas over the primaries and are recomputed whenever the
primaries change (extraction, or a simulation override).

Extraction never raises: any failure yields the all-defaults feature set with
``extraction_error`` set, so the scoring pipeline keeps going.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

import pandas as pd
from pydantic import BaseModel, ConfigDict, Field

from creditpulse.config.defaults import (
    FEATURE_VERSION,
    PAYMENT_CONSISTENCY_MULTIPLIER,
    RECENCY_RISK_BUCKETS,
    RECENCY_RISK_MAX,
    RECENCY_SENTINEL_DAYS,
    REMITTANCE_STABILITY_BUCKETS,
    TRANSACTION_VELOCITY_SATURATION,
)
from creditpulse.config.schema import CreditPulseConfig, ScoringConfig
from creditpulse.storage import queries
from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Feature record
# ---------------------------------------------------------------------------

METADATA_FIELDS = ("feature_version", "persona_id", "extracted_at", "extraction_error")

DERIVED_FEATURES = (
    "payment_consistency",
    "transaction_velocity",
    "remittance_stability",
    "recency_risk",
    "credit_risk",
)


class FeatureSet(BaseModel):
    """Versioned feature vector for one persona.

    Metadata fields are carried along for the explanation payload and are
    never weighted.
    """

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    feature_version: str = FEATURE_VERSION
    persona_id: str | None = None
    extracted_at: datetime | None = None
    extraction_error: str | None = None

    # Primary
    tx_6m_count: int = Field(0, ge=0)
    tx_6m_avg_amount: float = 0.0
    tx_6m_sum: float = 0.0
    days_since_last_tx: int = Field(RECENCY_SENTINEL_DAYS, ge=0)
    remittance_12m_count: int = Field(0, ge=0)
    remittance_12m_sum: float = 0.0
    bills_paid_ratio: float = Field(0.0, ge=0.0, le=1.0)
    avg_bill_amount: float = 0.0
    micro_active: bool = False
    micro_active_sum: float = 0.0
    account_age_days: int = Field(0, ge=0)
    avg_monthly_balance: float = 0.0
    credit_utilization_ratio: float = 0.0

    # Derived
    payment_consistency: float = Field(0.0, ge=0.0, le=1.0)
    transaction_velocity: float = Field(0.0, ge=0.0, le=1.0)
    remittance_stability: float = Field(0.0, ge=0.0, le=1.0)
    recency_risk: float = Field(RECENCY_RISK_MAX, ge=0.0, le=1.0)
    credit_risk: float = Field(0.0, ge=0.0, le=1.0)

    @classmethod
    def defaults(
        cls,
        persona_id: str | None = None,
        extracted_at: datetime | None = None,
        error: str | None = None,
    ) -> "FeatureSet":
        """The safe all-defaults feature set."""
        return cls(persona_id=persona_id, extracted_at=extracted_at, extraction_error=error)

    def feature_values(self) -> dict[str, Any]:
        """Weighted features only, without metadata."""
        return {k: getattr(self, k) for k in FEATURE_KEYS}

    def to_payload(self) -> dict[str, Any]:
        """JSON-friendly dump including metadata."""
        return self.model_dump(mode="json")


FEATURE_KEYS: tuple[str, ...] = tuple(
    k for k in FeatureSet.model_fields if k not in METADATA_FIELDS
)
PRIMARY_FEATURES: tuple[str, ...] = tuple(
    k for k in FEATURE_KEYS if k not in DERIVED_FEATURES
)


# ---------------------------------------------------------------------------
# Time helpers
# ---------------------------------------------------------------------------

def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def months_before(now: datetime, months: int) -> datetime:
    """Calendar-month subtraction (Mar 31 - 1 month = Feb 28/29)."""
    return (pd.Timestamp(as_utc(now)) - pd.DateOffset(months=months)).to_pydatetime()


# ---------------------------------------------------------------------------
# Derived features
# ---------------------------------------------------------------------------

def _remittance_stability(count: float) -> float:
    for threshold, score in REMITTANCE_STABILITY_BUCKETS:
        if count >= threshold:
            return score
    return 0.0


def _recency_risk(days: float) -> float:
    for threshold, score in RECENCY_RISK_BUCKETS:
        if days <= threshold:
            return score
    return RECENCY_RISK_MAX


def derive_secondary_features(primary: Mapping[str, Any]) -> dict[str, float]:
    """Compute the derived features from primary feature values.

    Missing primaries take their FeatureSet defaults.
    """
    bills_paid_ratio = float(primary.get("bills_paid_ratio", 0.0))
    tx_count = float(primary.get("tx_6m_count", 0))
    remittance_count = float(primary.get("remittance_12m_count", 0))
    days = float(primary.get("days_since_last_tx", RECENCY_SENTINEL_DAYS))
    utilization = float(primary.get("credit_utilization_ratio", 0.0))

    return {
        "payment_consistency": min(1.0, bills_paid_ratio * PAYMENT_CONSISTENCY_MULTIPLIER),
        "transaction_velocity": (
            min(1.0, tx_count / TRANSACTION_VELOCITY_SATURATION) if tx_count > 0 else 0.0
        ),
        "remittance_stability": _remittance_stability(remittance_count),
        "recency_risk": _recency_risk(days),
        "credit_risk": min(1.0, max(0.0, utilization)),
    }


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------

def _extract_primary(
    db: Database, persona_id: str, now: datetime, scoring: ScoringConfig,
) -> dict[str, Any]:
    windows = scoring.windows

    tx = queries.aggregate_transactions(
        db, persona_id, months_before(now, windows.transactions_months)
    )
    first_tx, last_tx = queries.transaction_span(db, persona_id)
    remit = queries.aggregate_remittances(
        db, persona_id, months_before(now, windows.remittances_months)
    )
    bills = queries.aggregate_utility_bills(
        db, persona_id, months_before(now, windows.utility_bills_months)
    )
    micro = queries.aggregate_active_microcredits(db, persona_id)
    balance = queries.average_balance(
        db, persona_id, months_before(now, windows.balances_months)
    )
    utilization = queries.average_credit_utilization(db, persona_id)

    return {
        "tx_6m_count": int(tx["count"]),
        "tx_6m_avg_amount": float(tx["avg"]),
        "tx_6m_sum": float(tx["sum"]),
        "days_since_last_tx": (
            max(0, (now - last_tx).days) if last_tx else scoring.recency_sentinel_days
        ),
        "remittance_12m_count": int(remit["count"]),
        "remittance_12m_sum": float(remit["sum"]),
        "bills_paid_ratio": bills["paid"] / bills["total"] if bills["total"] else 0.0,
        "avg_bill_amount": float(bills["avg"]),
        "micro_active": micro["count"] > 0,
        "micro_active_sum": float(micro["sum"]),
        "account_age_days": max(0, (now - first_tx).days) if first_tx else 0,
        "avg_monthly_balance": float(balance),
        "credit_utilization_ratio": float(utilization),
    }


def extract_features(
    db: Database,
    persona_id: str,
    *,
    now: datetime | None = None,
    config: CreditPulseConfig | None = None,
) -> FeatureSet:
    """Extract the feature vector for one persona as of ``now``."""
    now = as_utc(now) if now is not None else queries.utc_now()
    scoring = config.scoring if config is not None else ScoringConfig()

    try:
        primary = _extract_primary(db, persona_id, now, scoring)
        return FeatureSet(
            persona_id=persona_id,
            extracted_at=now,
            **primary,
            **derive_secondary_features(primary),
        )
    except Exception as e:
        logger.warning("Feature extraction failed for persona %s: %s", persona_id, e)
        return FeatureSet.defaults(persona_id, now, error=str(e))


def apply_overrides(
    features: FeatureSet,
    overrides: Mapping[str, Any],
    *,
    recompute_derived: bool = True,
) -> FeatureSet:
    """Return a copy of ``features`` with ``overrides`` merged in.

    Derived features that are not overridden explicitly are recomputed from
    the merged primaries when ``recompute_derived`` is set. Raises
    pydantic's ValidationError when a value does not fit its field.
    """
    merged = features.model_dump()
    merged.update(overrides)
    if recompute_derived:
        derived = derive_secondary_features(merged)
        for key, value in derived.items():
            if key not in overrides:
                merged[key] = value
    return FeatureSet.model_validate(merged)
