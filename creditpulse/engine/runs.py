"""AltScoreRun: a polled, longer-lived scoring execution.

Status machine::

    running -> completed | failed | cancelled

Terminal states are immutable. The store enforces this as well (a trigger
aborts any UPDATE of a terminal row), so a cancel racing a completion
resolves to whichever write lands first and the loser gets RunStateError.
"""

from __future__ import annotations

import json
import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any

from creditpulse.config.schema import CreditPulseConfig
from creditpulse.engine.features import as_utc
from creditpulse.engine.model import load_scoring_model
from creditpulse.engine.scorer import compute_credit_score
from creditpulse.errors import NotFoundError, RunStateError
from creditpulse.storage import queries
from creditpulse.storage.database import Database

logger = logging.getLogger(__name__)


class RunStatus(Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self is not RunStatus.RUNNING


ALLOWED_TRANSITIONS: dict[RunStatus, frozenset[RunStatus]] = {
    RunStatus.RUNNING: frozenset(
        {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED}
    ),
    RunStatus.COMPLETED: frozenset(),
    RunStatus.FAILED: frozenset(),
    RunStatus.CANCELLED: frozenset(),
}


@dataclass
class AltScoreRun:
    run_id: str
    owner_id: str
    model_id: str
    model_version: str
    status: RunStatus
    started_at: str
    persona_id: str | None = None
    finished_at: str | None = None
    score_result: int | None = None
    risk_band: str | None = None
    explanation: dict[str, Any] | None = None
    error_message: str | None = None

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "AltScoreRun":
        return cls(
            run_id=row["run_id"],
            owner_id=row["owner_id"],
            model_id=row["model_id"],
            model_version=row["model_version"],
            status=RunStatus(row["status"]),
            started_at=row["started_at"],
            persona_id=row.get("persona_id"),
            finished_at=row.get("finished_at"),
            score_result=row.get("score_result"),
            risk_band=row.get("risk_band"),
            explanation=row.get("explanation"),
            error_message=row.get("error_message"),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "owner_id": self.owner_id,
            "persona_id": self.persona_id,
            "model_id": self.model_id,
            "model_version": self.model_version,
            "status": self.status.value,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "score_result": self.score_result,
            "risk_band": self.risk_band,
            "explanation": self.explanation,
            "error_message": self.error_message,
        }


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

def get_run(db: Database, run_id: str) -> AltScoreRun:
    row = queries.get_alt_score_run(db, run_id)
    if row is None:
        raise NotFoundError(f"Run {run_id} does not exist", code="run_not_found")
    return AltScoreRun.from_row(row)


def start_run(
    db: Database,
    owner_id: str,
    persona_id: str,
    model_id: str,
    *,
    now: datetime | None = None,
) -> AltScoreRun:
    """Record a new run in ``running`` state, pinned to the model's version."""
    now = as_utc(now) if now is not None else queries.utc_now()
    if queries.get_persona(db, persona_id) is None:
        raise NotFoundError(f"Persona {persona_id} does not exist", code="persona_not_found")
    model = load_scoring_model(db, model_id, enforce_partition=False)
    run_id = str(uuid.uuid4())
    queries.insert_alt_score_run(
        db,
        run_id,
        owner_id=owner_id,
        persona_id=persona_id,
        model_id=model_id,
        model_version=model.version,
        started_at=now,
    )
    logger.info("Started run %s for persona %s (model %s v%s)",
                run_id, persona_id, model_id, model.version)
    return get_run(db, run_id)


def transition(
    db: Database,
    run_id: str,
    target: RunStatus,
    *,
    now: datetime | None = None,
    score_result: int | None = None,
    risk_band: str | None = None,
    explanation: dict[str, Any] | None = None,
    error_message: str | None = None,
) -> AltScoreRun:
    """Move a run to ``target``. Raises RunStateError on an illegal move."""
    current = get_run(db, run_id)
    if target not in ALLOWED_TRANSITIONS[current.status]:
        raise RunStateError(
            f"Run {run_id} cannot move from {current.status.value} to {target.value}"
        )

    now = as_utc(now) if now is not None else queries.utc_now()
    moved = queries.finish_alt_score_run(
        db,
        run_id,
        target.value,
        finished_at=now,
        score_result=score_result,
        risk_band=risk_band,
        explanation=explanation,
        error_message=error_message,
    )
    if not moved:
        # Lost a race with another terminal write.
        latest = get_run(db, run_id)
        raise RunStateError(
            f"Run {run_id} cannot move from {latest.status.value} to {target.value}"
        )
    logger.info("Run %s: %s -> %s", run_id, current.status.value, target.value)
    return get_run(db, run_id)


def cancel_run(db: Database, run_id: str, *, now: datetime | None = None) -> AltScoreRun:
    return transition(db, run_id, RunStatus.CANCELLED, now=now)


def execute_run(
    db: Database,
    run_id: str,
    *,
    config: CreditPulseConfig | None = None,
    now: datetime | None = None,
) -> AltScoreRun:
    """Compute the score for a running run and record the outcome.

    A run cancelled before the computation finishes stays cancelled.
    """
    run = get_run(db, run_id)
    if run.status.is_terminal:
        logger.info("Run %s already %s; not executing", run_id, run.status.value)
        return run

    try:
        explanation = compute_credit_score(
            db, run.persona_id, run.model_id, config=config, now=now
        )
    except Exception as e:
        logger.error("  %s: run scoring error: %s", run_id, e)
        try:
            return transition(
                db, run_id, RunStatus.FAILED, now=now,
                error_message=getattr(e, "code", "internal_error"),
            )
        except RunStateError:
            return get_run(db, run_id)

    try:
        return transition(
            db,
            run_id,
            RunStatus.COMPLETED,
            now=now,
            score_result=explanation["normalized_score"],
            risk_band=explanation["risk_band"]["band"],
            explanation=json.loads(json.dumps(explanation, default=str)),
        )
    except RunStateError as e:
        logger.info("Run %s finished after a terminal transition: %s", run_id, e)
        return get_run(db, run_id)


def list_runs(db: Database, owner_id: str, limit: int = 20) -> list[AltScoreRun]:
    return [AltScoreRun.from_row(r) for r in queries.list_alt_score_runs(db, owner_id, limit)]
