"""Named query functions for database operations."""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any

from creditpulse.storage.database import Database

DB_TIME_FORMAT = "%Y-%m-%d %H:%M:%S"


# ---------------------------------------------------------------------------
# Timestamps (stored as naive UTC text so lexical order == time order)
# ---------------------------------------------------------------------------

def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_db_time(value: datetime) -> str:
    """Format a datetime for storage. Naive values are taken as UTC."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.strftime(DB_TIME_FORMAT)


def from_db_time(value: str) -> datetime:
    """Parse a stored timestamp back into an aware UTC datetime."""
    return datetime.strptime(value[:19], DB_TIME_FORMAT).replace(tzinfo=timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Personas
# ---------------------------------------------------------------------------

def upsert_persona(
    db: Database,
    persona_id: str | None = None,
    *,
    full_name: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    pii_hash: str | None = None,
) -> str:
    """Insert or update a persona. Returns the persona id.

    When ``pii_hash`` matches an existing persona, that persona is updated
    and its id returned.
    """
    if pii_hash is not None:
        existing = get_persona_by_pii_hash(db, pii_hash)
        if existing is not None:
            persona_id = existing["id"]
    persona_id = persona_id or _new_id()
    db.execute(
        """INSERT INTO personas (id, full_name, email, phone, pii_hash)
        VALUES (?, ?, ?, ?, ?)
        ON CONFLICT(id) DO UPDATE SET
            full_name=COALESCE(excluded.full_name, full_name),
            email=COALESCE(excluded.email, email),
            phone=COALESCE(excluded.phone, phone),
            pii_hash=COALESCE(excluded.pii_hash, pii_hash)
        """,
        (persona_id, full_name, email, phone, pii_hash),
    )
    db.conn.commit()
    return persona_id


def get_persona(db: Database, persona_id: str) -> dict[str, Any] | None:
    row = db.fetchone("SELECT * FROM personas WHERE id = ?", (persona_id,))
    return dict(row) if row else None


def get_persona_by_pii_hash(db: Database, pii_hash: str) -> dict[str, Any] | None:
    row = db.fetchone("SELECT * FROM personas WHERE pii_hash = ?", (pii_hash,))
    return dict(row) if row else None


# ---------------------------------------------------------------------------
# Raw activity (writes)
# ---------------------------------------------------------------------------

def add_transaction(db: Database, persona_id: str, amount: float, created_at: datetime) -> None:
    db.execute(
        "INSERT INTO transactions (persona_id, amount, created_at) VALUES (?, ?, ?)",
        (persona_id, amount, to_db_time(created_at)),
    )
    db.conn.commit()


def add_remittance(db: Database, persona_id: str, amount: float, created_at: datetime) -> None:
    db.execute(
        "INSERT INTO remittances (persona_id, amount, created_at) VALUES (?, ?, ?)",
        (persona_id, amount, to_db_time(created_at)),
    )
    db.conn.commit()


def add_utility_bill(
    db: Database, persona_id: str, amount: float, status: str, due_date: datetime
) -> None:
    db.execute(
        "INSERT INTO utility_bills (persona_id, amount, status, due_date) VALUES (?, ?, ?, ?)",
        (persona_id, amount, status, to_db_time(due_date)),
    )
    db.conn.commit()


def add_microcredit(db: Database, persona_id: str, amount: float, status: str = "active") -> None:
    db.execute(
        "INSERT INTO microcredits (persona_id, amount, status) VALUES (?, ?, ?)",
        (persona_id, amount, status),
    )
    db.conn.commit()


def add_account_balance(
    db: Database, persona_id: str, balance: float, recorded_at: datetime
) -> None:
    db.execute(
        "INSERT INTO account_balances (persona_id, balance, recorded_at) VALUES (?, ?, ?)",
        (persona_id, balance, to_db_time(recorded_at)),
    )
    db.conn.commit()


def add_credit_account(
    db: Database,
    persona_id: str,
    current_balance: float,
    credit_limit: float,
    status: str = "active",
) -> None:
    db.execute(
        """INSERT INTO credit_accounts (persona_id, current_balance, credit_limit, status)
        VALUES (?, ?, ?, ?)""",
        (persona_id, current_balance, credit_limit, status),
    )
    db.conn.commit()


# ---------------------------------------------------------------------------
# Raw activity (aggregates read by the feature extractor)
# ---------------------------------------------------------------------------

def aggregate_transactions(
    db: Database, persona_id: str, since: datetime
) -> dict[str, float]:
    """Count, average, and sum of transactions after ``since``."""
    row = db.fetchone(
        """SELECT COUNT(*) AS cnt,
                  COALESCE(AVG(amount), 0) AS avg_amount,
                  COALESCE(SUM(amount), 0) AS total
        FROM transactions WHERE persona_id = ? AND created_at > ?""",
        (persona_id, to_db_time(since)),
    )
    return {"count": row["cnt"], "avg": row["avg_amount"], "sum": row["total"]}


def transaction_span(db: Database, persona_id: str) -> tuple[datetime | None, datetime | None]:
    """(first, last) transaction timestamps over all history."""
    row = db.fetchone(
        "SELECT MIN(created_at) AS first, MAX(created_at) AS last "
        "FROM transactions WHERE persona_id = ?",
        (persona_id,),
    )
    if row is None or row["first"] is None:
        return None, None
    return from_db_time(row["first"]), from_db_time(row["last"])


def aggregate_remittances(
    db: Database, persona_id: str, since: datetime
) -> dict[str, float]:
    row = db.fetchone(
        """SELECT COUNT(*) AS cnt, COALESCE(SUM(amount), 0) AS total
        FROM remittances WHERE persona_id = ? AND created_at > ?""",
        (persona_id, to_db_time(since)),
    )
    return {"count": row["cnt"], "sum": row["total"]}


def aggregate_utility_bills(
    db: Database, persona_id: str, since: datetime
) -> dict[str, float]:
    """Paid count, total count, and average amount of bills due after ``since``."""
    row = db.fetchone(
        """SELECT COALESCE(SUM(CASE WHEN status = 'paid' THEN 1 ELSE 0 END), 0) AS paid,
                  COUNT(*) AS total,
                  COALESCE(AVG(amount), 0) AS avg_amount
        FROM utility_bills WHERE persona_id = ? AND due_date > ?""",
        (persona_id, to_db_time(since)),
    )
    return {"paid": row["paid"], "total": row["total"], "avg": row["avg_amount"]}


def aggregate_active_microcredits(db: Database, persona_id: str) -> dict[str, float]:
    row = db.fetchone(
        """SELECT COUNT(*) AS cnt, COALESCE(SUM(amount), 0) AS total
        FROM microcredits WHERE persona_id = ? AND status = 'active'""",
        (persona_id,),
    )
    return {"count": row["cnt"], "sum": row["total"]}


def average_balance(db: Database, persona_id: str, since: datetime) -> float:
    row = db.fetchone(
        """SELECT COALESCE(AVG(balance), 0) AS avg_balance
        FROM account_balances WHERE persona_id = ? AND recorded_at > ?""",
        (persona_id, to_db_time(since)),
    )
    return row["avg_balance"]


def average_credit_utilization(db: Database, persona_id: str) -> float:
    """Mean balance/limit over active credit accounts; zero limits are skipped."""
    row = db.fetchone(
        """SELECT COALESCE(AVG(current_balance / NULLIF(credit_limit, 0)), 0) AS ratio
        FROM credit_accounts WHERE persona_id = ? AND status = 'active'""",
        (persona_id,),
    )
    return row["ratio"]


# ---------------------------------------------------------------------------
# Scoring model configuration
# ---------------------------------------------------------------------------

def upsert_scoring_model(
    db: Database,
    model_id: str,
    name: str,
    version: str,
    *,
    description: str | None = None,
    min_raw_score: float | None = None,
    max_raw_score: float | None = None,
) -> None:
    with db.transaction() as cur:
        cur.execute(
            """INSERT INTO scoring_models (id, name, version, description, min_raw_score, max_raw_score)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                name=excluded.name, version=excluded.version,
                description=excluded.description,
                min_raw_score=excluded.min_raw_score,
                max_raw_score=excluded.max_raw_score,
                updated_at=datetime('now')
            """,
            (model_id, name, version, description, min_raw_score, max_raw_score),
        )


def replace_score_factors(
    db: Database, model_id: str, factors: list[tuple[str, float, str]]
) -> None:
    """Replace a model's factors with (feature_key, weight, description) rows."""
    with db.transaction() as cur:
        cur.execute("DELETE FROM score_factors WHERE model_id = ?", (model_id,))
        cur.executemany(
            "INSERT INTO score_factors (model_id, feature_key, weight, description) "
            "VALUES (?, ?, ?, ?)",
            [(model_id, key, weight, desc) for key, weight, desc in factors],
        )


def replace_risk_bands(
    db: Database, model_id: str, bands: list[tuple[str, int, int, str]]
) -> None:
    """Replace a model's bands with (band, min_score, max_score, recommendation) rows."""
    with db.transaction() as cur:
        cur.execute("DELETE FROM risk_bands WHERE model_id = ?", (model_id,))
        cur.executemany(
            "INSERT INTO risk_bands (model_id, band, min_score, max_score, recommendation) "
            "VALUES (?, ?, ?, ?, ?)",
            [(model_id, band, lo, hi, rec) for band, lo, hi, rec in bands],
        )


def get_scoring_model(db: Database, model_id: str) -> dict[str, Any] | None:
    row = db.fetchone("SELECT * FROM scoring_models WHERE id = ?", (model_id,))
    return dict(row) if row else None


def list_scoring_models(db: Database) -> list[dict[str, Any]]:
    rows = db.fetchall("SELECT * FROM scoring_models ORDER BY name, version")
    return [dict(r) for r in rows]


def list_score_factors(db: Database, model_id: str) -> list[dict[str, Any]]:
    rows = db.fetchall(
        "SELECT feature_key, weight, description FROM score_factors "
        "WHERE model_id = ? ORDER BY feature_key",
        (model_id,),
    )
    return [dict(r) for r in rows]


def list_risk_bands(db: Database, model_id: str) -> list[dict[str, Any]]:
    rows = db.fetchall(
        "SELECT band, min_score, max_score, recommendation FROM risk_bands "
        "WHERE model_id = ? ORDER BY min_score DESC",
        (model_id,),
    )
    return [dict(r) for r in rows]


# ---------------------------------------------------------------------------
# Audit log
# ---------------------------------------------------------------------------

def insert_audit_log(
    db: Database,
    persona_id: str | None,
    action: str,
    details: dict[str, Any],
    created_at: datetime | None = None,
) -> str:
    """Insert an audit entry. Returns its id."""
    audit_id = _new_id()
    db.execute(
        "INSERT INTO audit_logs (id, persona_id, action, details_json, created_at) "
        "VALUES (?, ?, ?, ?, ?)",
        (
            audit_id,
            persona_id,
            action,
            json.dumps(details, default=str),
            to_db_time(created_at or utc_now()),
        ),
    )
    db.conn.commit()
    return audit_id


def list_audit_logs(
    db: Database, persona_id: str, action: str | None = None
) -> list[dict[str, Any]]:
    sql = "SELECT * FROM audit_logs WHERE persona_id = ?"
    params: tuple = (persona_id,)
    if action is not None:
        sql += " AND action = ?"
        params += (action,)
    rows = db.fetchall(sql + " ORDER BY created_at", params)
    result = []
    for row in rows:
        entry = dict(row)
        entry["details"] = json.loads(entry.pop("details_json") or "{}")
        result.append(entry)
    return result


# ---------------------------------------------------------------------------
# Credit scores (append-only history)
# ---------------------------------------------------------------------------

def insert_credit_score(
    db: Database,
    persona_id: str,
    model_id: str,
    score: int,
    explanation: dict[str, Any],
    *,
    computed_at: datetime,
    risk_band: str | None = None,
    audit_log_id: str | None = None,
) -> str:
    """Append a score run. Returns its id."""
    score_id = _new_id()
    db.execute(
        """INSERT INTO credit_scores (
            id, persona_id, model_id, score, risk_band, explanation_json,
            computed_at, audit_log_id
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
        (
            score_id,
            persona_id,
            model_id,
            score,
            risk_band,
            json.dumps(explanation, default=str),
            to_db_time(computed_at),
            audit_log_id,
        ),
    )
    db.conn.commit()
    return score_id


def list_credit_scores(
    db: Database,
    persona_id: str,
    model_id: str,
    since: datetime | None = None,
) -> list[dict[str, Any]]:
    """Score history for a persona under one model, oldest first."""
    sql = (
        "SELECT id, score, risk_band, computed_at, audit_log_id FROM credit_scores "
        "WHERE persona_id = ? AND model_id = ?"
    )
    params: tuple = (persona_id, model_id)
    if since is not None:
        sql += " AND computed_at > ?"
        params += (to_db_time(since),)
    rows = db.fetchall(sql + " ORDER BY computed_at", params)
    return [dict(r) for r in rows]


def get_credit_score(db: Database, score_id: str) -> dict[str, Any] | None:
    row = db.fetchone("SELECT * FROM credit_scores WHERE id = ?", (score_id,))
    if row is None:
        return None
    record = dict(row)
    record["explanation"] = json.loads(record.pop("explanation_json"))
    return record


# ---------------------------------------------------------------------------
# Alt score runs
# ---------------------------------------------------------------------------

def insert_alt_score_run(
    db: Database,
    run_id: str,
    *,
    owner_id: str,
    model_id: str,
    model_version: str,
    started_at: datetime,
    persona_id: str | None = None,
) -> str:
    db.execute(
        """INSERT INTO alt_score_runs (
            run_id, owner_id, persona_id, model_id, model_version, status, started_at
        ) VALUES (?, ?, ?, ?, ?, 'running', ?)""",
        (run_id, owner_id, persona_id, model_id, model_version, to_db_time(started_at)),
    )
    db.conn.commit()
    return run_id


def finish_alt_score_run(
    db: Database,
    run_id: str,
    status: str,
    *,
    finished_at: datetime,
    score_result: int | None = None,
    risk_band: str | None = None,
    explanation: dict[str, Any] | None = None,
    error_message: str | None = None,
) -> bool:
    """Move a running run to ``status``. Returns False if it was not running."""
    cursor = db.execute(
        """UPDATE alt_score_runs SET
            status = ?, finished_at = ?, score_result = ?, risk_band = ?,
            explanation_json = ?, error_message = ?
        WHERE run_id = ? AND status = 'running'""",
        (
            status,
            to_db_time(finished_at),
            score_result,
            risk_band,
            json.dumps(explanation, default=str) if explanation is not None else None,
            error_message,
            run_id,
        ),
    )
    db.conn.commit()
    return cursor.rowcount > 0


def get_alt_score_run(db: Database, run_id: str) -> dict[str, Any] | None:
    row = db.fetchone("SELECT * FROM alt_score_runs WHERE run_id = ?", (run_id,))
    if row is None:
        return None
    record = dict(row)
    raw = record.pop("explanation_json")
    record["explanation"] = json.loads(raw) if raw else None
    return record


def list_alt_score_runs(db: Database, owner_id: str, limit: int = 20) -> list[dict[str, Any]]:
    rows = db.fetchall(
        "SELECT * FROM alt_score_runs WHERE owner_id = ? ORDER BY started_at DESC LIMIT ?",
        (owner_id, limit),
    )
    result = []
    for row in rows:
        record = dict(row)
        raw = record.pop("explanation_json")
        record["explanation"] = json.loads(raw) if raw else None
        result.append(record)
    return result
