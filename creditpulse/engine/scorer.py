"""Scoring orchestrator: compute, simulate, trend, and batch simulation.

Every operation runs the same pipeline:
  1. Extract features for the persona
  2. Apply the model's factor weights -> raw score
  3. Normalize the raw score onto 0-1000
  4. Classify the normalized score into a risk band

``compute`` appends the result to the score history. ``simulate`` runs the
pipeline twice (as-is and with feature overrides) and never touches the
history. Audit entries are a secondary effect: a failed audit write is
logged and reported as an absent reference, never raised.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Mapping, TypedDict

import pandas as pd
from pydantic import ValidationError as SchemaError

from creditpulse.config.schema import CreditPulseConfig, SimulationConfig
from creditpulse.engine.bands import RiskBandResult, band_rank, classify_score
from creditpulse.engine.features import (
    FEATURE_KEYS,
    FeatureSet,
    apply_overrides,
    as_utc,
    extract_features,
    months_before,
)
from creditpulse.engine.model import ScoringModel, load_scoring_model
from creditpulse.engine.normalizer import normalize_score, resolve_bounds
from creditpulse.engine.weighting import Contribution, apply_weights
from creditpulse.errors import NotFoundError, ValidationError
from creditpulse.storage import queries
from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)

AUDIT_SCORE_COMPUTED = "CREDIT_SCORE_COMPUTED"
AUDIT_SCORE_SIMULATED = "CREDIT_SCORE_SIMULATED"

NO_CHANGE = "NO_CHANGE"
IMPROVED = "IMPROVED"
DEGRADED = "DEGRADED"


# ---------------------------------------------------------------------------
# Type definitions
# ---------------------------------------------------------------------------

class ScoreExplanation(TypedDict, total=False):
    """Return type for compute_credit_score() and each side of a simulation."""
    id: str
    persona_id: str
    model_id: str
    raw_score: float
    normalized_score: int
    features: dict[str, Any]
    weighted_contributions: dict[str, Contribution]
    risk_band: RiskBandResult
    computed_at: str
    computation_metadata: dict[str, Any]
    audit_log_id: str | None


class ImpactAnalysis(TypedDict):
    score_change: int
    band_change: dict[str, str]
    risk_level_change: str


class SimulationResult(TypedDict, total=False):
    simulation_id: str
    persona_id: str
    model_id: str
    simulated_at: str
    original: ScoreExplanation
    simulated: ScoreExplanation
    feature_overrides: dict[str, Any]
    overrides_applied: int
    rejected_overrides: list[str]
    impact_analysis: ImpactAnalysis
    simulation_metadata: dict[str, Any]
    audit_log_id: str | None
    audit_warning: str


class TrendPoint(TypedDict):
    month: str
    avg_score: float
    count: int


class BatchResult(TypedDict):
    batch_id: str
    persona_id: str
    model_id: str
    batch_timestamp: str
    scenarios_processed: int
    results: dict[str, dict[str, Any]]


# ---------------------------------------------------------------------------
# Pipeline helpers
# ---------------------------------------------------------------------------

def _require_persona(db: Database, persona_id: str) -> None:
    if queries.get_persona(db, persona_id) is None:
        raise NotFoundError(f"Persona {persona_id} does not exist", code="persona_not_found")


def _load_model(db: Database, model_id: str, cfg: CreditPulseConfig) -> ScoringModel:
    return load_scoring_model(
        db, model_id, enforce_partition=cfg.scoring.enforce_band_partition
    )


def _explain(
    features: FeatureSet,
    model: ScoringModel,
    cfg: CreditPulseConfig,
    now: datetime,
) -> ScoreExplanation:
    """Weight, normalize, and classify one feature set. Pure."""
    weighted = apply_weights(features, model.factors)
    defaults = cfg.scoring.default_bounds
    lo, hi = resolve_bounds(model, defaults=(defaults.min, defaults.max))
    normalized = normalize_score(weighted["raw_score"], lo, hi)
    band = classify_score(normalized, model.bands)

    return ScoreExplanation(
        persona_id=features.persona_id,
        model_id=model.id,
        raw_score=weighted["raw_score"],
        normalized_score=normalized,
        features=features.to_payload(),
        weighted_contributions=weighted["contributions"],
        risk_band=band,
        computed_at=queries.to_db_time(now),
        computation_metadata={
            "model_version": model.version,
            "feature_version": features.feature_version,
            "feature_count": len(FEATURE_KEYS),
            "factors_applied": len(weighted["contributions"]),
            "bounds": {"min": lo, "max": hi},
            "extraction_error": features.extraction_error,
        },
    )


def _write_audit(
    db: Database,
    persona_id: str,
    action: str,
    details: dict[str, Any],
    now: datetime,
) -> str | None:
    """Best-effort audit insert. Returns the entry id, or None on failure."""
    try:
        return queries.insert_audit_log(db, persona_id, action, details, now)
    except Exception as e:
        logger.warning("Audit log write failed (%s) for persona %s: %s", action, persona_id, e)
        return None


def risk_level_change(from_band: str, to_band: str, model: ScoringModel) -> str:
    """NO_CHANGE for the same label, else compare bands by min_score."""
    if from_band == to_band:
        return NO_CHANGE
    if band_rank(to_band, model.bands) > band_rank(from_band, model.bands):
        return IMPROVED
    return DEGRADED


# ---------------------------------------------------------------------------
# compute
# ---------------------------------------------------------------------------

def compute_credit_score(
    db: Database,
    persona_id: str,
    model_id: str,
    *,
    config: CreditPulseConfig | None = None,
    now: datetime | None = None,
) -> ScoreExplanation:
    """Score a persona and append the result to the score history."""
    cfg = config or CreditPulseConfig()
    now = as_utc(now) if now is not None else queries.utc_now()

    _require_persona(db, persona_id)
    model = _load_model(db, model_id, cfg)
    features = extract_features(db, persona_id, now=now, config=cfg)

    explanation = _explain(features, model, cfg, now)
    explanation["computation_metadata"]["computation_method"] = "weighted_sum"

    audit_log_id = _write_audit(
        db,
        persona_id,
        AUDIT_SCORE_COMPUTED,
        {
            "model_id": model_id,
            "score": explanation["normalized_score"],
            "raw_score": explanation["raw_score"],
            "risk_band": explanation["risk_band"]["band"],
        },
        now,
    )
    explanation["audit_log_id"] = audit_log_id

    explanation["id"] = queries.insert_credit_score(
        db,
        persona_id,
        model_id,
        explanation["normalized_score"],
        dict(explanation),
        computed_at=now,
        risk_band=explanation["risk_band"]["band"],
        audit_log_id=audit_log_id,
    )

    logger.info(
        "Scored persona %s with model %s: %d (%s)",
        persona_id, model_id, explanation["normalized_score"],
        explanation["risk_band"]["band"],
    )
    return explanation


# ---------------------------------------------------------------------------
# simulate
# ---------------------------------------------------------------------------

def _coerce_override_value(value: Any) -> Any:
    """'true'/'false' -> bool, numeric strings -> int/float."""
    if not isinstance(value, str):
        return value
    text = value.strip()
    if text.lower() == "true":
        return True
    if text.lower() == "false":
        return False
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


def _filter_overrides(
    overrides: Mapping[str, Any], sim: SimulationConfig,
) -> tuple[dict[str, Any], list[str]]:
    """Split overrides into (accepted, rejected keys)."""
    allowed = set(sim.allowed_overrides or FEATURE_KEYS) & set(FEATURE_KEYS)
    accepted: dict[str, Any] = {}
    rejected: list[str] = []
    for key, value in overrides.items():
        if key in allowed:
            accepted[key] = _coerce_override_value(value)
        else:
            logger.warning("Dropping feature override for unknown key: %s", key)
            rejected.append(key)
    return accepted, rejected


def simulate_credit_score(
    db: Database,
    persona_id: str,
    model_id: str,
    overrides: Mapping[str, Any],
    *,
    config: CreditPulseConfig | None = None,
    now: datetime | None = None,
) -> SimulationResult:
    """Score a persona as-is and with ``overrides`` merged into its features.

    Nothing is written to the score history.
    """
    if not isinstance(overrides, Mapping):
        raise ValidationError(
            "feature_overrides must be an object",
            code="invalid_overrides",
            field="feature_overrides",
        )
    cfg = config or CreditPulseConfig()
    now = as_utc(now) if now is not None else queries.utc_now()

    _require_persona(db, persona_id)
    model = _load_model(db, model_id, cfg)
    features = extract_features(db, persona_id, now=now, config=cfg)

    accepted, rejected = _filter_overrides(overrides, cfg.simulation)
    try:
        modified = apply_overrides(
            features, accepted, recompute_derived=cfg.simulation.recompute_derived
        )
    except SchemaError as e:
        fields = sorted({str(err["loc"][0]) for err in e.errors() if err["loc"]})
        raise ValidationError(
            "Feature overrides failed validation",
            code="invalid_override",
            field="feature_overrides",
            details={"invalid_fields": fields},
        ) from e
    except (TypeError, ValueError) as e:
        raise ValidationError(
            str(e), code="invalid_override", field="feature_overrides"
        ) from e

    original = _explain(features, model, cfg, now)
    simulated = _explain(modified, model, cfg, now)

    from_band = original["risk_band"]["band"]
    to_band = simulated["risk_band"]["band"]
    simulation_id = str(uuid.uuid4())

    result = SimulationResult(
        simulation_id=simulation_id,
        persona_id=persona_id,
        model_id=model_id,
        simulated_at=queries.to_db_time(now),
        original=original,
        simulated=simulated,
        feature_overrides=accepted,
        overrides_applied=len(accepted),
        rejected_overrides=rejected,
        impact_analysis=ImpactAnalysis(
            score_change=simulated["normalized_score"] - original["normalized_score"],
            band_change={"from": from_band, "to": to_band},
            risk_level_change=risk_level_change(from_band, to_band, model),
        ),
        simulation_metadata={
            "is_simulation": True,
            "persisted": False,
            "computation_method": "scenario_simulation",
            "feature_version": modified.feature_version,
        },
    )

    audit_log_id = _write_audit(
        db,
        persona_id,
        AUDIT_SCORE_SIMULATED,
        {
            "simulation_id": simulation_id,
            "model_id": model_id,
            "original_score": original["normalized_score"],
            "simulated_score": simulated["normalized_score"],
            "feature_overrides": accepted,
            "risk_band_change": result["impact_analysis"]["band_change"],
        },
        now,
    )
    result["audit_log_id"] = audit_log_id
    if audit_log_id is None:
        result["audit_warning"] = "Audit log write failed; simulation result is unaffected"

    logger.debug(
        "Simulated persona %s with %d override(s): %d -> %d",
        persona_id, len(accepted), original["normalized_score"],
        simulated["normalized_score"],
    )
    return result


# ---------------------------------------------------------------------------
# batch simulate
# ---------------------------------------------------------------------------

def simulate_scenarios(
    db: Database,
    persona_id: str,
    model_id: str,
    scenarios: Mapping[str, Mapping[str, Any]],
    *,
    config: CreditPulseConfig | None = None,
    now: datetime | None = None,
) -> BatchResult:
    """Run one simulation per named scenario.

    A failing scenario is reported under its name; the others still run.
    """
    if not isinstance(scenarios, Mapping):
        raise ValidationError(
            "scenarios must be an object", code="invalid_scenarios", field="scenarios"
        )
    now = as_utc(now) if now is not None else queries.utc_now()

    results: dict[str, dict[str, Any]] = {}
    for name, overrides in scenarios.items():
        try:
            outcome = simulate_credit_score(
                db, persona_id, model_id, overrides, config=config, now=now
            )
            results[name] = {**outcome, "scenario_name": name}
        except Exception as e:
            code = getattr(e, "code", "internal_error")
            logger.error("  %s: scenario simulation error: %s", name, e)
            results[name] = {
                "error": f"Scenario simulation failed: {code}",
                "scenario_name": name,
            }

    return BatchResult(
        batch_id=str(uuid.uuid4()),
        persona_id=persona_id,
        model_id=model_id,
        batch_timestamp=queries.to_db_time(now),
        scenarios_processed=len(scenarios),
        results=results,
    )


# ---------------------------------------------------------------------------
# trend
# ---------------------------------------------------------------------------

def get_score_trend(
    db: Database,
    persona_id: str,
    model_id: str,
    months: int = 12,
    *,
    now: datetime | None = None,
) -> list[TrendPoint]:
    """Monthly average score over the trailing ``months``, oldest first."""
    if isinstance(months, bool) or not isinstance(months, int) or months < 1:
        raise ValidationError(
            f"months must be a positive integer, got {months!r}",
            code="invalid_months",
            field="months",
        )
    now = as_utc(now) if now is not None else queries.utc_now()

    rows = queries.list_credit_scores(
        db, persona_id, model_id, since=months_before(now, months)
    )
    if not rows:
        return []

    df = pd.DataFrame(rows)
    df["month"] = pd.to_datetime(df["computed_at"]).dt.to_period("M").dt.to_timestamp()
    grouped = df.groupby("month")["score"].agg(["mean", "count"]).sort_index()

    return [
        TrendPoint(
            month=month.strftime("%Y-%m-01"),
            avg_score=round(float(row["mean"]), 2),
            count=int(row["count"]),
        )
        for month, row in grouped.iterrows()
    ]
