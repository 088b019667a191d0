"""Shared test fixtures for creditpulse.

Provides databases with the schema applied, a seeded baseline model, a
persona with known activity, and an in-memory Ed25519 keypair for the token
tests.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
from jwt.algorithms import OKPAlgorithm

from creditpulse.config.defaults import BASELINE_BANDS
from creditpulse.config.schema import CreditPulseConfig
from creditpulse.engine.bands import RiskBand
from creditpulse.engine.model import (
    ScoreFactor,
    ScoringModel,
    save_scoring_model,
    seed_baseline_model,
)
from creditpulse.storage import queries
from creditpulse.storage.database import Database
from creditpulse.storage.migrations import ensure_schema
from creditpulse.tokens.broker import TokenBroker
from creditpulse.tokens.checker import TokenChecker
from creditpulse.tokens.keys import StaticSecretStore, generate_keypair_jwk

NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)
EXAMPLE_MODEL_ID = "example-model"
PERSONA_ID = "persona-1"


def baseline_bands() -> list[RiskBand]:
    return [RiskBand(label, lo, hi, rec) for label, (lo, hi, rec) in BASELINE_BANDS.items()]


# ---------------------------------------------------------------------------
# Core infrastructure
# ---------------------------------------------------------------------------

@pytest.fixture
def test_config(tmp_path: Path) -> CreditPulseConfig:
    """Default config with a temp database path."""
    return CreditPulseConfig(database={"path": str(tmp_path / "test.db")})


@pytest.fixture
def test_db(tmp_path: Path) -> Database:
    """Database with schema applied, using temp file."""
    db = Database(tmp_path / "test.db")
    ensure_schema(db)
    yield db
    db.close()


@pytest.fixture
def memory_db() -> Database:
    """In-memory database for fast unit tests."""
    db = Database(":memory:")
    ensure_schema(db)
    yield db
    db.close()


# ---------------------------------------------------------------------------
# Models and personas
# ---------------------------------------------------------------------------

@pytest.fixture
def example_model() -> ScoringModel:
    """Two-factor model with explicit raw bounds [-100, 100]."""
    return ScoringModel(
        id=EXAMPLE_MODEL_ID,
        name="Example",
        version="1.0",
        min_raw_score=-100.0,
        max_raw_score=100.0,
        factors=[
            ScoreFactor("tx_6m_count", 0.5, "Transaction count"),
            ScoreFactor("bills_paid_ratio", 0.7, "Bills paid ratio"),
        ],
        bands=baseline_bands(),
    )


@pytest.fixture
def risk_bands() -> list[RiskBand]:
    """The baseline A-D bands tiling 0-1000."""
    return baseline_bands()


@pytest.fixture
def seeded_db(test_db: Database, example_model: ScoringModel) -> Database:
    """Database with the baseline model and the two-factor example model."""
    seed_baseline_model(test_db)
    save_scoring_model(test_db, example_model)
    return test_db


def add_example_activity(db: Database, persona_id: str, now: datetime = NOW) -> None:
    """10 transactions in the last 100 days and 4 of 5 bills paid."""
    for i in range(1, 11):
        queries.add_transaction(db, persona_id, 100.0 * i, now - timedelta(days=10 * i))
    for i in range(1, 6):
        status = "paid" if i < 5 else "unpaid"
        queries.add_utility_bill(db, persona_id, 50.0, status, now - timedelta(days=30 * i))


@pytest.fixture
def now() -> datetime:
    """Fixed clock for extraction windows and score timestamps."""
    return NOW


@pytest.fixture
def add_activity():
    return add_example_activity


@pytest.fixture
def persona(seeded_db: Database) -> str:
    """Persona whose example-model score is 527 (band C)."""
    persona_id = queries.upsert_persona(
        seeded_db, PERSONA_ID, full_name="Ana Lopez", email="ana@example.com",
    )
    add_example_activity(seeded_db, persona_id)
    return persona_id


# ---------------------------------------------------------------------------
# Token keys
# ---------------------------------------------------------------------------

@pytest.fixture(scope="session")
def keypair_jwk() -> tuple[dict, dict]:
    return generate_keypair_jwk()


@pytest.fixture
def secret_store(keypair_jwk, test_config: CreditPulseConfig) -> StaticSecretStore:
    private_jwk, public_jwk = keypair_jwk
    return StaticSecretStore({
        test_config.broker.private_jwk_secret: json.dumps(private_jwk),
        test_config.checker.public_jwk_secret: json.dumps(public_jwk),
    })


@pytest.fixture
def private_key(keypair_jwk):
    return OKPAlgorithm.from_jwk(json.dumps(keypair_jwk[0]))


@pytest.fixture
def public_key(keypair_jwk):
    return OKPAlgorithm.from_jwk(json.dumps(keypair_jwk[1]))


@pytest.fixture
def broker(test_config: CreditPulseConfig, secret_store: StaticSecretStore) -> TokenBroker:
    return TokenBroker(test_config.broker, secrets_store=secret_store)


@pytest.fixture
def checker(test_config: CreditPulseConfig, secret_store: StaticSecretStore) -> TokenChecker:
    return TokenChecker(test_config.checker, test_config.broker, secrets_store=secret_store)


@pytest.fixture
def identity() -> dict[str, str]:
    return {
        "full_name": "Ana Lopez",
        "email": "ana@example.com",
        "national_id": "0801199012345",
        "phone": "+50499990000",
    }
