"""Helpers shared by CLI commands."""

from __future__ import annotations

import json
from typing import Any, NoReturn

import click

from creditpulse.config.loader import load_config, resolve_path
from creditpulse.config.schema import CreditPulseConfig
from creditpulse.errors import CreditPulseError
from creditpulse.storage.database import Database
from creditpulse.storage.migrations import ensure_schema


def context_config(ctx: click.Context) -> CreditPulseConfig:
    return load_config(ctx.obj.get("config_path"))


def open_database(config: CreditPulseConfig) -> Database:
    """Open the configured database with migrations applied."""
    db = Database(resolve_path(config.database.path))
    ensure_schema(db)
    return db


def echo_json(payload: Any) -> None:
    click.echo(json.dumps(payload, indent=2, default=str))


def fail(exc: CreditPulseError) -> NoReturn:
    click.echo(f"Error [{exc.code}]: {exc}", err=True)
    raise SystemExit(1)


def parse_json_option(value: str | None, name: str) -> Any:
    """Parse a JSON command-line value, or raise click.BadParameter."""
    if value is None:
        return {}
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"not valid JSON: {e}", param_hint=name) from None
