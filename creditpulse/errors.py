"""Error taxonomy shared by the scoring engine, token protocol, and HTTP layer.

Each error carries a machine-readable ``code`` and the HTTP status the API
maps it to. Messages on ``InternalError`` and configuration errors are for
server-side logs only; the HTTP layer never returns them to callers.
"""

from __future__ import annotations

from typing import Any


class CreditPulseError(Exception):
    """Base class for all creditpulse errors."""

    code = "internal_error"
    http_status = 500

    def __init__(self, message: str = "", *, code: str | None = None) -> None:
        super().__init__(message or self.code)
        if code is not None:
            self.code = code

    def to_payload(self) -> dict[str, Any]:
        """Public JSON body for this error (without correlation id)."""
        return {"error": self.code}


# ---------------------------------------------------------------------------
# Caller errors
# ---------------------------------------------------------------------------

class ValidationError(CreditPulseError):
    """Malformed or missing input. Terminal, user-visible."""

    code = "validation_error"
    http_status = 400

    def __init__(
        self,
        message: str = "",
        *,
        code: str | None = None,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, code=code)
        self.field = field
        self.details = details or {}

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"error": self.code}
        if self.field:
            payload["field"] = self.field
        payload.update(self.details)
        return payload


class NotFoundError(CreditPulseError):
    """A referenced record does not exist."""

    code = "not_found"
    http_status = 404


class ModelNotFoundError(NotFoundError):
    """No scoring model record and no factors exist for a model id."""

    code = "model_not_found"

    def __init__(self, model_id: str) -> None:
        super().__init__(f"Scoring model {model_id} does not exist")
        self.model_id = model_id


class AuthzError(CreditPulseError):
    """Invalid, expired, or replayed token.

    ``reason`` names the failed check for server logs. The public ``code`` is
    the same for every reason.
    """

    code = "invalid_token"
    http_status = 401

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class RunStateError(CreditPulseError):
    """Illegal AltScoreRun status transition."""

    code = "invalid_run_transition"
    http_status = 409


# ---------------------------------------------------------------------------
# Server errors
# ---------------------------------------------------------------------------

class ScoringConfigurationError(CreditPulseError):
    """Model configuration cannot produce a score."""

    code = "invalid_configuration"


class InvalidBoundsError(ScoringConfigurationError):
    """Normalization bounds with max <= min."""

    code = "invalid_bounds"

    def __init__(self, min_score: float, max_score: float) -> None:
        super().__init__(
            f"Invalid score bounds: min_score ({min_score}) must be less than "
            f"max_score ({max_score})"
        )
        self.min_score = min_score
        self.max_score = max_score


class BandConfigurationError(ScoringConfigurationError):
    """Risk bands overlap or leave gaps in [0, 1000]."""

    code = "invalid_risk_bands"


class InternalError(CreditPulseError):
    """Unexpected failure. Details stay in server logs."""

    code = "internal_error"
