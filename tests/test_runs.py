"""Tests for the AltScoreRun lifecycle."""

from __future__ import annotations

import pytest

from creditpulse.engine import runs
from creditpulse.engine.runs import (
    ALLOWED_TRANSITIONS,
    RunStatus,
    cancel_run,
    execute_run,
    get_run,
    list_runs,
    start_run,
    transition,
)
from creditpulse.errors import ModelNotFoundError, NotFoundError, RunStateError


class TestRunStatus:

    def test_only_running_is_live(self):
        assert not RunStatus.RUNNING.is_terminal
        assert all(s.is_terminal for s in RunStatus if s is not RunStatus.RUNNING)

    def test_terminal_states_have_no_exits(self):
        for status in RunStatus:
            if status.is_terminal:
                assert ALLOWED_TRANSITIONS[status] == frozenset()


class TestStartRun:

    def test_pins_model_version(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        assert run.status is RunStatus.RUNNING
        assert run.model_version == "1.0"
        assert run.persona_id == persona
        assert run.finished_at is None

    def test_unknown_persona(self, seeded_db, example_model):
        with pytest.raises(NotFoundError) as exc:
            start_run(seeded_db, "owner-1", "ghost", example_model.id)
        assert exc.value.code == "persona_not_found"

    def test_unknown_model(self, persona, seeded_db):
        with pytest.raises(ModelNotFoundError):
            start_run(seeded_db, "owner-1", persona, "no-such-model")

    def test_get_missing_run(self, seeded_db):
        with pytest.raises(NotFoundError) as exc:
            get_run(seeded_db, "nope")
        assert exc.value.code == "run_not_found"


class TestExecuteRun:

    def test_completes_with_score(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        done = execute_run(seeded_db, run.run_id, now=now)
        assert done.status is RunStatus.COMPLETED
        assert done.score_result == 527
        assert done.risk_band == "C"
        assert done.explanation["normalized_score"] == 527
        assert done.finished_at is not None
        assert seeded_db.count("credit_scores") == 1

    def test_failure_records_error_code(self, persona, seeded_db, example_model, now, monkeypatch):
        def broken(*args, **kwargs):
            raise NotFoundError("gone", code="persona_not_found")

        monkeypatch.setattr(runs, "compute_credit_score", broken)
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        failed = execute_run(seeded_db, run.run_id, now=now)
        assert failed.status is RunStatus.FAILED
        assert failed.error_message == "persona_not_found"
        assert failed.score_result is None

    def test_unexpected_failure_is_internal_error(self, persona, seeded_db, example_model, now, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr(runs, "compute_credit_score", broken)
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        assert execute_run(seeded_db, run.run_id, now=now).error_message == "internal_error"

    def test_cancelled_run_stays_cancelled(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        cancel_run(seeded_db, run.run_id, now=now)
        result = execute_run(seeded_db, run.run_id, now=now)
        assert result.status is RunStatus.CANCELLED
        assert seeded_db.count("credit_scores") == 0

    def test_cancel_during_compute_wins(self, persona, seeded_db, example_model, now, monkeypatch):
        real_compute = runs.compute_credit_score
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)

        def compute_then_cancel(db, *args, **kwargs):
            result = real_compute(db, *args, **kwargs)
            cancel_run(db, run.run_id, now=now)
            return result

        monkeypatch.setattr(runs, "compute_credit_score", compute_then_cancel)
        result = execute_run(seeded_db, run.run_id, now=now)
        assert result.status is RunStatus.CANCELLED
        assert result.score_result is None


class TestTransitions:

    def test_cancel_twice_rejected(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        assert cancel_run(seeded_db, run.run_id, now=now).status is RunStatus.CANCELLED
        with pytest.raises(RunStateError) as exc:
            cancel_run(seeded_db, run.run_id, now=now)
        assert exc.value.http_status == 409

    def test_completed_cannot_fail(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        execute_run(seeded_db, run.run_id, now=now)
        with pytest.raises(RunStateError):
            transition(seeded_db, run.run_id, RunStatus.FAILED, error_message="late")
        assert get_run(seeded_db, run.run_id).status is RunStatus.COMPLETED

    def test_to_dict(self, persona, seeded_db, example_model, now):
        run = start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        data = run.to_dict()
        assert data["status"] == "running"
        assert data["owner_id"] == "owner-1"
        assert data["started_at"] == "2026-06-15 12:00:00"

    def test_list_runs_by_owner(self, persona, seeded_db, example_model, now):
        start_run(seeded_db, "owner-1", persona, example_model.id, now=now)
        start_run(seeded_db, "owner-2", persona, example_model.id, now=now)
        assert [r.owner_id for r in list_runs(seeded_db, "owner-1")] == ["owner-1"]
