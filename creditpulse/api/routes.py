"""HTTP routes: scoring (/v1/scores), runs (/v1/runs), and the token pair."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Body, Depends, Query, Request

from creditpulse import __version__
from creditpulse.api.deps import (
    database_path,
    get_broker,
    get_checker,
    get_config,
    get_correlation_id,
    get_db,
)
from creditpulse.api.schemas import (
    BatchSimulateRequest,
    ComputeRequest,
    RunRequest,
    SimulateRequest,
)
from creditpulse.config.schema import CreditPulseConfig
from creditpulse.engine import runs
from creditpulse.engine.scorer import (
    compute_credit_score,
    get_score_trend,
    simulate_credit_score,
    simulate_scenarios,
)
from creditpulse.errors import AuthzError
from creditpulse.storage import queries
from creditpulse.storage.database import Database
from creditpulse.tokens.broker import TokenBroker, pii_hash, validate_identity
from creditpulse.tokens.checker import MODE_SECURE, TokenChecker

logger = logging.getLogger(__name__)

scores_router = APIRouter(prefix="/v1/scores", tags=["Scores"])
runs_router = APIRouter(prefix="/v1/runs", tags=["Runs"])
gateway_router = APIRouter(tags=["Token gateway"])


def _model_id(requested: str | None, config: CreditPulseConfig) -> str:
    return requested or config.scoring.default_model_id


# ---------------------------------------------------------------------------
# /v1/scores
# ---------------------------------------------------------------------------

@scores_router.post("/compute")
def compute(
    body: ComputeRequest,
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    explanation = compute_credit_score(
        db, body.persona_id, _model_id(body.model_id, config), config=config
    )
    return {**explanation, "correlation_id": correlation_id}


@scores_router.post("/simulate")
def simulate(
    body: SimulateRequest,
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    result = simulate_credit_score(
        db,
        body.persona_id,
        _model_id(body.model_id, config),
        body.feature_overrides,
        config=config,
    )
    return {**result, "correlation_id": correlation_id}


@scores_router.post("/simulate/batch")
def simulate_batch(
    body: BatchSimulateRequest,
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    result = simulate_scenarios(
        db,
        body.persona_id,
        _model_id(body.model_id, config),
        body.scenarios,
        config=config,
    )
    return {**result, "correlation_id": correlation_id}


@scores_router.get("/trend")
def trend(
    persona_id: str = Query(..., min_length=1),
    model_id: str | None = Query(None),
    months: int | None = Query(None),
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    resolved_model = _model_id(model_id, config)
    window = months if months is not None else config.scoring.trend_months
    points = get_score_trend(db, persona_id, resolved_model, window)
    return {
        "persona_id": persona_id,
        "model_id": resolved_model,
        "months": window,
        "trend": points,
        "correlation_id": correlation_id,
    }


# ---------------------------------------------------------------------------
# /v1/runs
# ---------------------------------------------------------------------------

def _execute_run(config: CreditPulseConfig, run_id: str) -> None:
    """Background task: score a run on its own connection."""
    with Database(database_path(config), check_same_thread=False) as db:
        runs.execute_run(db, run_id, config=config)


@runs_router.post("", status_code=202)
def start_run(
    body: RunRequest,
    background: BackgroundTasks,
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    run = runs.start_run(
        db, body.owner_id, body.persona_id, _model_id(body.model_id, config)
    )
    background.add_task(_execute_run, config, run.run_id)
    return {**run.to_dict(), "correlation_id": correlation_id}


@runs_router.get("")
def list_runs(
    owner_id: str = Query(..., min_length=1),
    limit: int = Query(20, ge=1, le=100),
    db: Database = Depends(get_db),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    """Most recent runs for an owner, newest first."""
    found = runs.list_runs(db, owner_id, limit)
    return {
        "owner_id": owner_id,
        "runs": [r.to_dict() for r in found],
        "correlation_id": correlation_id,
    }


@runs_router.get("/{run_id}")
def get_run(
    run_id: str,
    db: Database = Depends(get_db),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    return {**runs.get_run(db, run_id).to_dict(), "correlation_id": correlation_id}


@runs_router.post("/{run_id}/cancel")
def cancel_run(
    run_id: str,
    db: Database = Depends(get_db),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    return {**runs.cancel_run(db, run_id).to_dict(), "correlation_id": correlation_id}


# ---------------------------------------------------------------------------
# Token gateway
# ---------------------------------------------------------------------------

@gateway_router.post("/token")
def issue_token(
    request: Request,
    payload: Any = Body(None),
    broker: TokenBroker = Depends(get_broker),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    return dict(
        broker.issue(
            payload,
            correlation_id=correlation_id,
            user_agent=request.headers.get("user-agent"),
        )
    )


@gateway_router.post("/score")
def score(
    request: Request,
    payload: Any = Body(None),
    checker: TokenChecker = Depends(get_checker),
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    """Score one borrower. Requires a token from POST /token."""
    admission = checker.admit(request.headers.get("authorization"), correlation_id)
    identity = validate_identity(payload, config.broker)
    borrower_hash = pii_hash(identity["national_id"])

    if admission.mode == MODE_SECURE and admission.pii_hash != borrower_hash:
        logger.warning(
            "token_validation_failed reason=pii_mismatch correlation_id=%s", correlation_id
        )
        raise AuthzError("pii_mismatch")

    persona_id = queries.upsert_persona(
        db,
        full_name=identity["full_name"],
        email=identity["email"],
        phone=identity.get("phone"),
        pii_hash=borrower_hash,
    )
    persona = queries.get_persona(db, persona_id)
    explanation = compute_credit_score(
        db, persona_id, config.scoring.default_model_id, config=config
    )
    band = explanation["risk_band"]

    return {
        "borrower": {
            "borrower_id": persona_id,
            "full_name": persona["full_name"],
            "email": persona["email"],
            "phone": persona["phone"],
            "created_at": persona["created_at"],
        },
        "score": {
            "score_id": explanation["id"],
            "score": explanation["normalized_score"],
            "risk_band": band["band"],
            "recommendation": band["recommendation"],
            "model_id": explanation["model_id"],
            "computed_at": explanation["computed_at"],
        },
        "enrichment": {
            "source": "creditpulse",
            "mode": admission.mode,
            "feature_version": explanation["features"]["feature_version"],
            "features": explanation["features"],
            "audit_log_id": explanation["audit_log_id"],
        },
        "correlation_id": correlation_id,
    }


@gateway_router.get("/health")
def health(
    db: Database = Depends(get_db),
    config: CreditPulseConfig = Depends(get_config),
    correlation_id: str = Depends(get_correlation_id),
) -> dict[str, Any]:
    return {
        "status": "ok",
        "version": __version__,
        "schema_version": db.schema_version(),
        "demo_mode": config.checker.demo_mode_enabled,
        "correlation_id": correlation_id,
    }
