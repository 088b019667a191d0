"""Scoring model records: the model, its score factors, and its risk bands.

Models are administrator-configured. The engine reads them; the CLI's
``model seed`` writes the baseline model from config.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from creditpulse.config.schema import ModelConfig
from creditpulse.engine.bands import RiskBand, validate_band_partition
from creditpulse.errors import ModelNotFoundError, ValidationError
from creditpulse.storage import queries
from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScoreFactor:
    feature_key: str
    weight: float
    description: str = ""


@dataclass
class ScoringModel:
    id: str
    name: str
    version: str
    description: str = ""
    min_raw_score: float | None = None
    max_raw_score: float | None = None
    factors: list[ScoreFactor] = field(default_factory=list)
    bands: list[RiskBand] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "version": self.version,
            "description": self.description,
            "min_raw_score": self.min_raw_score,
            "max_raw_score": self.max_raw_score,
            "factors": {
                f.feature_key: {"weight": f.weight, "description": f.description}
                for f in sorted(self.factors, key=lambda f: f.feature_key)
            },
            "bands": {
                b.band: {
                    "min_score": b.min_score,
                    "max_score": b.max_score,
                    "recommendation": b.recommendation,
                }
                for b in sorted(self.bands, key=lambda b: -b.min_score)
            },
        }


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

def load_score_factors(db: Database, model_id: str) -> list[ScoreFactor]:
    """Factors for ``model_id`` in feature_key order.

    An empty list is returned for a model that exists but has no factors.
    """
    rows = queries.list_score_factors(db, model_id)
    if not rows and queries.get_scoring_model(db, model_id) is None:
        raise ModelNotFoundError(model_id)
    return [
        ScoreFactor(r["feature_key"], float(r["weight"]), r["description"] or "")
        for r in rows
    ]


def load_risk_bands(db: Database, model_id: str) -> list[RiskBand]:
    return [
        RiskBand(r["band"], int(r["min_score"]), int(r["max_score"]), r["recommendation"])
        for r in queries.list_risk_bands(db, model_id)
    ]


def load_scoring_model(
    db: Database, model_id: str, *, enforce_partition: bool = True,
) -> ScoringModel:
    """Load a model with its factors and bands.

    With ``enforce_partition`` the bands must tile [0, 1000]
    (BandConfigurationError otherwise).
    """
    factors = load_score_factors(db, model_id)
    row = queries.get_scoring_model(db, model_id)
    bands = load_risk_bands(db, model_id)

    if enforce_partition:
        validate_band_partition(bands)

    if row is None:
        return ScoringModel(id=model_id, name=model_id, version="unknown",
                            factors=factors, bands=bands)
    return ScoringModel(
        id=row["id"],
        name=row["name"],
        version=row["version"],
        description=row["description"] or "",
        min_raw_score=row["min_raw_score"],
        max_raw_score=row["max_raw_score"],
        factors=factors,
        bands=bands,
    )


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------

def model_from_config(cfg: ModelConfig) -> ScoringModel:
    return ScoringModel(
        id=cfg.id,
        name=cfg.name,
        version=cfg.version,
        description=cfg.description,
        min_raw_score=cfg.min_raw_score,
        max_raw_score=cfg.max_raw_score,
        factors=[
            ScoreFactor(key, f.weight, f.description) for key, f in cfg.factors.items()
        ],
        bands=[
            RiskBand(label, b.min_score, b.max_score, b.recommendation)
            for label, b in cfg.bands.items()
        ],
    )


def save_scoring_model(db: Database, model: ScoringModel) -> None:
    """Validate and persist a model, replacing its factors and bands."""
    validate_band_partition(model.bands)
    if (
        model.min_raw_score is not None
        and model.max_raw_score is not None
        and model.max_raw_score <= model.min_raw_score
    ):
        raise ValidationError(
            f"max_raw_score ({model.max_raw_score}) must exceed "
            f"min_raw_score ({model.min_raw_score})",
            code="invalid_bounds",
            field="max_raw_score",
        )
    keys = [f.feature_key for f in model.factors]
    if len(keys) != len(set(keys)):
        raise ValidationError("Duplicate feature_key in factors", code="duplicate_factor")

    with db.transaction():
        queries.upsert_scoring_model(
            db,
            model.id,
            model.name,
            model.version,
            description=model.description,
            min_raw_score=model.min_raw_score,
            max_raw_score=model.max_raw_score,
        )
        queries.replace_score_factors(
            db, model.id, [(f.feature_key, f.weight, f.description) for f in model.factors]
        )
        queries.replace_risk_bands(
            db,
            model.id,
            [(b.band, b.min_score, b.max_score, b.recommendation) for b in model.bands],
        )
    logger.info(
        "Saved scoring model %s v%s (%d factors, %d bands)",
        model.id, model.version, len(model.factors), len(model.bands),
    )


def seed_baseline_model(db: Database, cfg: ModelConfig | None = None) -> ScoringModel:
    """Write the baseline model from config (defaults when ``cfg`` is None)."""
    model = model_from_config(cfg or ModelConfig())
    save_scoring_model(db, model)
    return model
