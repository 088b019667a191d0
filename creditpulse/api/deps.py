"""Request-scoped dependencies."""

from __future__ import annotations

from typing import Generator

from fastapi import Request

from creditpulse.config.loader import resolve_path
from creditpulse.config.schema import CreditPulseConfig
from creditpulse.storage.database import MEMORY, Database
from creditpulse.tokens.broker import TokenBroker
from creditpulse.tokens.checker import TokenChecker


def get_config(request: Request) -> CreditPulseConfig:
    return request.app.state.config


def get_broker(request: Request) -> TokenBroker:
    return request.app.state.broker


def get_checker(request: Request) -> TokenChecker:
    return request.app.state.checker


def get_correlation_id(request: Request) -> str:
    """Set by the correlation middleware for every request."""
    return request.state.correlation_id


def database_path(config: CreditPulseConfig) -> str:
    path = config.database.path
    return path if path == MEMORY else str(resolve_path(path))


def get_db(request: Request) -> Generator[Database, None, None]:
    """One connection per request; the endpoint may run on another thread."""
    db = Database(database_path(request.app.state.config), check_same_thread=False)
    try:
        yield db
    finally:
        db.close()
