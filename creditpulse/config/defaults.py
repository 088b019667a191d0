"""Default values for the scoring engine and token protocol.

The baseline model below is the reference configuration the demo dashboard
ships with. Factor weights are unitless multipliers on raw feature values;
risk bands are inclusive ranges on the normalized 0-1000 scale.
"""

# ---------------------------------------------------------------------------
# Score scale
# ---------------------------------------------------------------------------
SCORE_SCALE = {
    "min": 0,
    "max": 1000,
}

# Raw-score bounds used when neither the caller, the model, nor its risk
# bands supply any.
DEFAULT_RAW_BOUNDS = {
    "min": -100.0,
    "max": 100.0,
}

# ---------------------------------------------------------------------------
# Feature extraction windows
# ---------------------------------------------------------------------------
FEATURE_WINDOWS = {
    "transactions_months": 6,
    "remittances_months": 12,
    "utility_bills_months": 12,
    "balances_months": 6,
}

FEATURE_VERSION = "1.0"

# Days since last activity reported when a persona has no transactions.
RECENCY_SENTINEL_DAYS = 365

# ---------------------------------------------------------------------------
# Derived feature formulas
# ---------------------------------------------------------------------------
PAYMENT_CONSISTENCY_MULTIPLIER = 1.2

TRANSACTION_VELOCITY_SATURATION = 50.0

# (minimum remittance count, stability score), checked top-down
REMITTANCE_STABILITY_BUCKETS = [
    (6, 1.0),
    (3, 0.7),
    (1, 0.4),
]

# (maximum days since last transaction, risk score), checked top-down
RECENCY_RISK_BUCKETS = [
    (30, 0.0),
    (90, 0.3),
    (180, 0.6),
]
RECENCY_RISK_MAX = 1.0

# ---------------------------------------------------------------------------
# Risk classification
# ---------------------------------------------------------------------------
UNCLASSIFIED_BAND = "UNCLASSIFIED"
UNCLASSIFIED_RECOMMENDATION = (
    "Score falls outside defined risk bands - manual review required"
)

# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------
TREND_DEFAULT_MONTHS = 12

# ---------------------------------------------------------------------------
# Baseline scoring model
# ---------------------------------------------------------------------------
BASELINE_MODEL_ID = "00000000-0000-4000-8000-000000000001"

BASELINE_MODEL = {
    "id": BASELINE_MODEL_ID,
    "name": "Baseline Inclusion Model",
    "version": "1.0",
    "description": "Baseline credit scoring model for financial inclusion",
}

BASELINE_FACTORS = {
    "tx_6m_count": (0.05, "Transaction frequency in last 6 months"),
    "tx_6m_avg_amount": (0.15, "Average transaction amount in last 6 months"),
    "tx_6m_sum": (0.20, "Total transaction volume in last 6 months"),
    "days_since_last_tx": (-0.10, "Days since last transaction (negative impact)"),
    "remittance_12m_count": (0.08, "Remittance frequency in last 12 months"),
    "remittance_12m_sum": (0.12, "Total remittance volume in last 12 months"),
    "bills_paid_ratio": (0.18, "Ratio of utility bills paid on time"),
    "avg_bill_amount": (0.07, "Average utility bill amount"),
    "micro_active": (0.09, "Has active microcredit (binary indicator)"),
    "micro_active_sum": (0.06, "Sum of active microcredit amounts"),
    "payment_consistency": (0.14, "Consistency in payment behavior"),
    "account_age_days": (0.11, "Length of relationship (account age)"),
    "transaction_velocity": (0.08, "Normalized transaction activity level"),
    "remittance_stability": (0.10, "Stability of remittance patterns"),
    "credit_utilization_ratio": (-0.13, "Credit utilization ratio (negative impact if high)"),
}

BASELINE_BANDS = {
    "A": (800, 1000, "Eligible for premium credit products with lowest interest rates and highest limits"),
    "B": (650, 799, "Eligible for standard credit products with competitive rates and moderate limits"),
    "C": (450, 649, "Eligible for basic credit products with standard rates and lower limits"),
    "D": (0, 449, "Limited eligibility - consider secured credit options, financial education, or alternative products"),
}

# ---------------------------------------------------------------------------
# Token protocol
# ---------------------------------------------------------------------------
TOKEN_DEFAULTS = {
    "ttl_seconds": 45,
    "issuer": "score-broker",
    "audience": "score-checker",
    "scope": "score:single",
    "key_id": "score-broker-ed25519-v1",
    "algorithm": "EdDSA",
    "private_jwk_secret": "CREDITPULSE_BROKER_ED25519_JWK",
    "public_jwk_secret": "CREDITPULSE_CHECKER_ED25519_PUBLIC_JWK",
}

# Soft limits: exceeding them is logged, never enforced.
RATE_LIMITS = {
    "pii_per_minute": 1,
    "requester_per_hour": 10,
}

IDENTITY_MIN_LENGTHS = {
    "full_name": 3,
    "national_id": 5,
}

CHECKER_DEFAULTS = {
    "demo_mode_enabled": False,
    "demo_token_prefix": "demo.",
    "sweep_interval_seconds": 60.0,
    "leeway_seconds": 0,
}

# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------
API_DEFAULTS = {
    "allowed_origin": "http://localhost:5173",
    "correlation_header": "X-Correlation-Id",
    "host": "127.0.0.1",
    "port": 8000,
}
