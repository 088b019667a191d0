"""Tests for the click command-line interface."""

from __future__ import annotations

import json

import pytest
import yaml
from click.testing import CliRunner

from creditpulse.cli.main import cli
from creditpulse.config.defaults import BASELINE_MODEL_ID
from creditpulse.engine import runs
from creditpulse.storage import queries


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path, test_config):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump({"database": {"path": test_config.database.path}}))
    return str(path)


@pytest.fixture(autouse=True)
def frozen_store_clock(monkeypatch, now):
    monkeypatch.setattr(queries, "utc_now", lambda: now)


@pytest.fixture
def invoke(runner, config_file):
    def _invoke(*args):
        return runner.invoke(cli, ["--config", config_file, *args])
    return _invoke


class TestInit:

    def test_init_creates_db_and_seeds(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        db_path = tmp_path / "fresh.db"
        config_path = tmp_path / "cfg.yaml"
        config_path.write_text(yaml.safe_dump({"database": {"path": str(db_path)}}))

        result = runner.invoke(cli, ["--config", str(config_path), "init"])
        assert result.exit_code == 0, result.output
        assert db_path.exists()
        assert "Seeded model Baseline Inclusion Model v1.0 (15 factors, 4 bands)" in result.output
        assert (tmp_path / ".creditpulse" / "config.yaml").exists()

    def test_init_no_seed(self, runner, tmp_path, monkeypatch):
        monkeypatch.setenv("HOME", str(tmp_path))
        config_path = tmp_path / "cfg.yaml"
        config_path.write_text(yaml.safe_dump({"database": {"path": str(tmp_path / "x.db")}}))
        result = runner.invoke(cli, ["--config", str(config_path), "init", "--no-seed"])
        assert result.exit_code == 0
        assert "Seeded" not in result.output


class TestConfigCommands:

    def test_show(self, invoke):
        result = invoke("config", "show")
        assert result.exit_code == 0
        assert json.loads(result.output)["broker"]["ttl_seconds"] == 45

    def test_validate(self, invoke):
        result = invoke("config", "validate")
        assert result.exit_code == 0
        assert "Config is valid." in result.output
        assert "Demo mode: disabled" in result.output

    def test_validate_rejects_gappy_bands(self, runner, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({"baseline_model": {
            "bands": {"HI": {"min_score": 500, "max_score": 1000, "recommendation": "x"}},
        }}))
        result = runner.invoke(cli, ["--config", str(path), "config", "validate"])
        assert result.exit_code == 1
        assert "Config validation failed" in result.output


class TestModelCommands:

    def test_show_baseline(self, invoke, seeded_db):
        result = invoke("model", "show")
        assert result.exit_code == 0
        assert "Baseline Inclusion Model v1.0" in result.output
        assert "credit_utilization_ratio" in result.output

    def test_list(self, invoke, seeded_db, example_model):
        result = invoke("model", "list")
        assert result.exit_code == 0
        assert f"* {BASELINE_MODEL_ID}" in result.output
        assert example_model.id in result.output

    def test_show_unknown(self, invoke, seeded_db):
        result = invoke("model", "show", "no-such-model")
        assert result.exit_code == 1
        assert "model_not_found" in result.output

    def test_seed_from_file(self, invoke, tmp_path, test_db):
        model_file = tmp_path / "model.yaml"
        model_file.write_text(yaml.safe_dump({
            "id": "custom", "name": "Custom", "version": "2",
            "factors": {"tx_6m_count": {"weight": 1.0}},
            "bands": {"ALL": {"min_score": 0, "max_score": 1000, "recommendation": "ok"}},
        }))
        result = invoke("model", "seed", "--file", str(model_file))
        assert result.exit_code == 0, result.output
        assert "Saved model custom (Custom v2)" in result.output
        assert queries.get_scoring_model(test_db, "custom")["version"] == "2"

    def test_seed_rejects_overlap(self, invoke, tmp_path):
        model_file = tmp_path / "model.yaml"
        model_file.write_text(yaml.safe_dump({
            "id": "overlap", "name": "Overlap", "version": "1",
            "factors": {"tx_6m_count": {"weight": 1.0}},
            "bands": {
                "LO": {"min_score": 0, "max_score": 600, "recommendation": "lo"},
                "HI": {"min_score": 500, "max_score": 1000, "recommendation": "hi"},
            },
        }))
        result = invoke("model", "seed", "--file", str(model_file))
        assert result.exit_code == 1
        assert "invalid_risk_bands" in result.output

    def test_validate(self, invoke, seeded_db):
        result = invoke("model", "validate", BASELINE_MODEL_ID)
        assert result.exit_code == 0
        assert "is valid" in result.output


class TestScoreCommands:

    def test_compute(self, invoke, persona, example_model):
        result = invoke("score", "compute", persona, "--model", example_model.id)
        assert result.exit_code == 0, result.output
        assert "Score: 527" in result.output
        assert "Band:  C" in result.output

    def test_compute_json(self, invoke, persona, example_model):
        result = invoke("score", "compute", persona, "--model", example_model.id, "--json")
        assert result.exit_code == 0
        assert json.loads(result.output)["normalized_score"] == 527

    def test_compute_unknown_persona(self, invoke, seeded_db):
        result = invoke("score", "compute", "ghost")
        assert result.exit_code == 1
        assert "persona_not_found" in result.output

    def test_simulate_set(self, invoke, persona, example_model):
        result = invoke(
            "score", "simulate", persona, "--model", example_model.id,
            "--set", "tx_6m_count=100",
        )
        assert result.exit_code == 0, result.output
        assert "Simulated: 752 (B)" in result.output
        assert "+225  IMPROVED" in result.output

    def test_simulate_json_overrides(self, invoke, persona, example_model):
        result = invoke(
            "score", "simulate", persona, "--model", example_model.id,
            "--overrides", '{"bogus": 1}', "--json",
        )
        assert result.exit_code == 0
        assert json.loads(result.output)["rejected_overrides"] == ["bogus"]

    def test_simulate_bad_assignment(self, invoke, persona):
        result = invoke("score", "simulate", persona, "--set", "no-equals-sign")
        assert result.exit_code == 2

    def test_batch(self, invoke, persona, example_model, tmp_path):
        scenarios = tmp_path / "scenarios.yaml"
        scenarios.write_text(yaml.safe_dump({
            "busy": {"tx_6m_count": 100},
            "broken": {"bills_paid_ratio": 3},
        }))
        result = invoke("score", "batch", persona, str(scenarios), "--model", example_model.id)
        assert result.exit_code == 0, result.output
        assert "2 scenario(s)" in result.output
        assert "ERROR  Scenario simulation failed: invalid_override" in result.output

    def test_trend(self, invoke, persona, example_model):
        invoke("score", "compute", persona, "--model", example_model.id)
        result = invoke("score", "trend", persona, "--model", example_model.id)
        assert result.exit_code == 0
        assert "2026-06-01" in result.output
        assert "527.00" in result.output

    def test_trend_zero_months(self, invoke, persona):
        result = invoke("score", "trend", persona, "--months", "0")
        assert result.exit_code == 1
        assert "invalid_months" in result.output


class TestRunCommands:

    def test_start_executes(self, invoke, persona, example_model):
        result = invoke("runs", "start", persona, "--owner", "o1", "--model", example_model.id)
        assert result.exit_code == 0, result.output
        assert "Status:  completed" in result.output
        assert "Score:   527 (C)" in result.output

    def test_detach_then_cancel(self, invoke, persona, example_model, seeded_db):
        result = invoke(
            "runs", "start", persona, "--owner", "o1", "--model", example_model.id, "--detach",
        )
        assert "Status:  running" in result.output
        run_id = runs.list_runs(seeded_db, "o1")[0].run_id

        assert "Status:  cancelled" in invoke("runs", "cancel", run_id).output
        again = invoke("runs", "cancel", run_id)
        assert again.exit_code == 1
        assert "invalid_run_transition" in again.output

    def test_list(self, invoke, persona, example_model):
        invoke("runs", "start", persona, "--owner", "o1", "--model", example_model.id)
        result = invoke("runs", "list", "--owner", "o1")
        assert result.exit_code == 0
        assert "completed" in result.output
        assert "527 C" in result.output
        assert "No runs" in invoke("runs", "list", "--owner", "nobody").output

    def test_show_missing(self, invoke, seeded_db):
        result = invoke("runs", "show", "nope")
        assert result.exit_code == 1
        assert "run_not_found" in result.output


class TestTokenCommands:

    def test_keygen_to_file(self, invoke, tmp_path):
        out = tmp_path / "keys.env"
        result = invoke("token", "keygen", "--out", str(out))
        assert result.exit_code == 0
        lines = out.read_text().splitlines()
        assert lines[0].startswith("CREDITPULSE_BROKER_ED25519_JWK=")
        assert lines[1].startswith("CREDITPULSE_CHECKER_ED25519_PUBLIC_JWK=")
        assert oct(out.stat().st_mode & 0o777) == "0o600"

    def test_issue_and_verify(self, invoke, keypair_jwk, identity, monkeypatch):
        monkeypatch.setenv("CREDITPULSE_BROKER_ED25519_JWK", json.dumps(keypair_jwk[0]))
        monkeypatch.setenv("CREDITPULSE_CHECKER_ED25519_PUBLIC_JWK", json.dumps(keypair_jwk[1]))

        issued = invoke(
            "token", "issue",
            "--full-name", identity["full_name"],
            "--email", identity["email"],
            "--national-id", identity["national_id"],
        )
        assert issued.exit_code == 0, issued.output
        token = json.loads(issued.output)["token"]

        verified = invoke("token", "verify", token)
        assert verified.exit_code == 0
        assert "Token accepted (secure mode)" in verified.output

    def test_issue_without_key(self, invoke, identity, monkeypatch):
        monkeypatch.delenv("CREDITPULSE_BROKER_ED25519_JWK", raising=False)
        result = invoke(
            "token", "issue",
            "--full-name", identity["full_name"],
            "--email", identity["email"],
            "--national-id", identity["national_id"],
        )
        assert result.exit_code == 1
        assert "internal_error" in result.output

    def test_verify_garbage(self, invoke, keypair_jwk, monkeypatch):
        monkeypatch.setenv("CREDITPULSE_CHECKER_ED25519_PUBLIC_JWK", json.dumps(keypair_jwk[1]))
        result = invoke("token", "verify", "not-a-jwt")
        assert result.exit_code == 1
        assert "Token rejected: malformed_token" in result.output


class TestServeCommand:

    def test_refuses_in_memory_database(self, runner, tmp_path):
        path = tmp_path / "mem.yaml"
        path.write_text(yaml.safe_dump({"database": {"path": ":memory:"}}))
        result = runner.invoke(cli, ["--config", str(path), "serve"])
        assert result.exit_code == 2
        assert ":memory:" in result.output
