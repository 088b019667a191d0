"""Pydantic models for config.yaml validation."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator

from creditpulse.config.defaults import (
    API_DEFAULTS,
    BASELINE_BANDS,
    BASELINE_FACTORS,
    BASELINE_MODEL,
    BASELINE_MODEL_ID,
    CHECKER_DEFAULTS,
    DEFAULT_RAW_BOUNDS,
    FEATURE_WINDOWS,
    IDENTITY_MIN_LENGTHS,
    RATE_LIMITS,
    RECENCY_SENTINEL_DAYS,
    TOKEN_DEFAULTS,
    TREND_DEFAULT_MONTHS,
)


# ---------------------------------------------------------------------------
# Database Config
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    path: str = "~/.creditpulse/creditpulse.db"


# ---------------------------------------------------------------------------
# Scoring Configs
# ---------------------------------------------------------------------------

class RawBoundsConfig(BaseModel):
    min: float = DEFAULT_RAW_BOUNDS["min"]
    max: float = DEFAULT_RAW_BOUNDS["max"]


class FeatureWindowsConfig(BaseModel):
    transactions_months: int = FEATURE_WINDOWS["transactions_months"]
    remittances_months: int = FEATURE_WINDOWS["remittances_months"]
    utility_bills_months: int = FEATURE_WINDOWS["utility_bills_months"]
    balances_months: int = FEATURE_WINDOWS["balances_months"]

    @field_validator("*")
    @classmethod
    def positive_window(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"Feature windows must be at least 1 month, got {v}")
        return v


class ScoringConfig(BaseModel):
    default_model_id: str = BASELINE_MODEL_ID
    default_bounds: RawBoundsConfig = Field(default_factory=RawBoundsConfig)
    enforce_band_partition: bool = True
    windows: FeatureWindowsConfig = Field(default_factory=FeatureWindowsConfig)
    recency_sentinel_days: int = RECENCY_SENTINEL_DAYS
    trend_months: int = TREND_DEFAULT_MONTHS


class SimulationConfig(BaseModel):
    allowed_overrides: list[str] = Field(default_factory=list)
    """Feature keys a simulation may override. Empty means every known feature."""
    recompute_derived: bool = True


# ---------------------------------------------------------------------------
# Token Configs
# ---------------------------------------------------------------------------

class RateLimitsConfig(BaseModel):
    pii_per_minute: int = RATE_LIMITS["pii_per_minute"]
    requester_per_hour: int = RATE_LIMITS["requester_per_hour"]


class BrokerConfig(BaseModel):
    ttl_seconds: int = TOKEN_DEFAULTS["ttl_seconds"]
    issuer: str = TOKEN_DEFAULTS["issuer"]
    audience: str = TOKEN_DEFAULTS["audience"]
    scope: str = TOKEN_DEFAULTS["scope"]
    key_id: str = TOKEN_DEFAULTS["key_id"]
    private_jwk_secret: str = TOKEN_DEFAULTS["private_jwk_secret"]
    """Name of the secret (environment variable) holding the private JWK."""
    min_full_name_length: int = IDENTITY_MIN_LENGTHS["full_name"]
    min_national_id_length: int = IDENTITY_MIN_LENGTHS["national_id"]
    rate_limits: RateLimitsConfig = Field(default_factory=RateLimitsConfig)

    @field_validator("ttl_seconds")
    @classmethod
    def positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError(f"Token TTL must be positive, got {v}")
        return v


class CheckerConfig(BaseModel):
    demo_mode_enabled: bool = CHECKER_DEFAULTS["demo_mode_enabled"]
    demo_token_prefix: str = CHECKER_DEFAULTS["demo_token_prefix"]
    public_jwk_secret: str = TOKEN_DEFAULTS["public_jwk_secret"]
    sweep_interval_seconds: float = CHECKER_DEFAULTS["sweep_interval_seconds"]
    leeway_seconds: int = CHECKER_DEFAULTS["leeway_seconds"]


# ---------------------------------------------------------------------------
# API Config
# ---------------------------------------------------------------------------

class ApiConfig(BaseModel):
    allowed_origin: str = API_DEFAULTS["allowed_origin"]
    correlation_header: str = API_DEFAULTS["correlation_header"]
    host: str = API_DEFAULTS["host"]
    port: int = API_DEFAULTS["port"]


# ---------------------------------------------------------------------------
# Baseline Model Config
# ---------------------------------------------------------------------------

class FactorConfig(BaseModel):
    weight: float
    description: str = ""


class BandConfig(BaseModel):
    min_score: int
    max_score: int
    recommendation: str

    @model_validator(mode="after")
    def ordered_range(self) -> "BandConfig":
        if not 0 <= self.min_score <= self.max_score <= 1000:
            raise ValueError(
                f"Band range must satisfy 0 <= min <= max <= 1000, "
                f"got [{self.min_score}, {self.max_score}]"
            )
        return self


class ModelConfig(BaseModel):
    id: str = BASELINE_MODEL["id"]
    name: str = BASELINE_MODEL["name"]
    version: str = BASELINE_MODEL["version"]
    description: str = BASELINE_MODEL["description"]
    min_raw_score: float | None = None
    max_raw_score: float | None = None
    factors: dict[str, FactorConfig] = Field(default_factory=dict)
    bands: dict[str, BandConfig] = Field(default_factory=dict)

    @model_validator(mode="after")
    def set_baseline_defaults(self) -> "ModelConfig":
        if not self.factors:
            self.factors = {
                key: FactorConfig(weight=weight, description=desc)
                for key, (weight, desc) in BASELINE_FACTORS.items()
            }
        if not self.bands:
            self.bands = {
                label: BandConfig(min_score=lo, max_score=hi, recommendation=rec)
                for label, (lo, hi, rec) in BASELINE_BANDS.items()
            }
        return self


# ---------------------------------------------------------------------------
# Top-Level Config
# ---------------------------------------------------------------------------

class CreditPulseConfig(BaseModel):
    """Root configuration model for creditpulse."""

    version: int = 1
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    scoring: ScoringConfig = Field(default_factory=ScoringConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    broker: BrokerConfig = Field(default_factory=BrokerConfig)
    checker: CheckerConfig = Field(default_factory=CheckerConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)
    baseline_model: ModelConfig = Field(default_factory=ModelConfig)

    @model_validator(mode="before")
    @classmethod
    def coerce_none_to_defaults(cls, data: Any) -> Any:
        """YAML parses empty keys as None. Drop them so defaults apply."""
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data
