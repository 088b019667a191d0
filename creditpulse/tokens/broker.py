"""Token broker: validates identity input and issues short-lived signed tokens.

Each token is an EdDSA (Ed25519) JWT good for one scoring request:

    {nonce, correlation_id, requester_id, pii_hash, scope, jti,
     iss, aud, iat, exp = iat + ttl}

The national id never leaves the broker in clear text; only its SHA-256
hash is signed and logged (truncated). Rate limits are soft: breaches are
logged and the token is still issued.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import re
import secrets
import time
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, TypedDict

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from creditpulse.config.defaults import TOKEN_DEFAULTS
from creditpulse.config.schema import BrokerConfig
from creditpulse.errors import ValidationError
from creditpulse.tokens.keys import EnvSecretStore, SecretStore, load_private_key
from creditpulse.tokens.ratelimit import SoftRateLimiter

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("full_name", "email", "national_id")
EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
NONCE_BYTES = 16
LOG_HASH_CHARS = 16

PII_WINDOW_SECONDS = 60
REQUESTER_WINDOW_SECONDS = 3600


class IssuedToken(TypedDict):
    token: str
    ttl_seconds: int
    correlation_id: str
    issued_at: str


# ---------------------------------------------------------------------------
# Hashing helpers
# ---------------------------------------------------------------------------

def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


def pii_hash(national_id: str) -> str:
    """One-way hash of the national id, used as a rate-limit and log key."""
    return sha256_hex(national_id.strip())


def requester_id(email: str) -> str:
    """Coarse requester identity: hash of the email domain."""
    domain = email.strip().rsplit("@", 1)[-1].lower()
    return sha256_hex(domain)


def new_nonce() -> str:
    """128 random bits, base64url without padding."""
    return base64.urlsafe_b64encode(secrets.token_bytes(NONCE_BYTES)).rstrip(b"=").decode("ascii")


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------

def validate_identity(payload: Any, config: BrokerConfig) -> dict[str, str]:
    """Check the identity payload. Returns the stripped fields.

    Failure codes, checked in order: missing_fields, invalid_email,
    invalid_full_name, invalid_national_id.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError(
            "Request body must be an object",
            code="missing_fields",
            details={"missing_fields": list(REQUIRED_FIELDS)},
        )

    fields = {
        key: str(payload[key]).strip()
        for key in (*REQUIRED_FIELDS, "phone")
        if payload.get(key) is not None
    }
    missing = [key for key in REQUIRED_FIELDS if not fields.get(key)]
    if missing:
        raise ValidationError(
            f"Missing required fields: {', '.join(missing)}",
            code="missing_fields",
            details={"missing_fields": missing},
        )
    if not EMAIL_PATTERN.match(fields["email"]):
        raise ValidationError("Invalid email", code="invalid_email", field="email")
    if len(fields["full_name"]) < config.min_full_name_length:
        raise ValidationError("Full name too short", code="invalid_full_name", field="full_name")
    if len(fields["national_id"]) < config.min_national_id_length:
        raise ValidationError(
            "National id too short", code="invalid_national_id", field="national_id"
        )
    return fields


# ---------------------------------------------------------------------------
# Broker
# ---------------------------------------------------------------------------

class TokenBroker:
    """Issues single-use scoring tokens.

    The private key is loaded lazily from the secret store on first issue,
    so a misconfigured deployment fails per request rather than at import.
    """

    def __init__(
        self,
        config: BrokerConfig | None = None,
        *,
        secrets_store: SecretStore | None = None,
        private_key: Ed25519PrivateKey | None = None,
        limiter: SoftRateLimiter | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config or BrokerConfig()
        self._secrets = secrets_store or EnvSecretStore()
        self._private_key = private_key
        self.limiter = limiter or SoftRateLimiter()
        self._clock = clock

    @property
    def private_key(self) -> Ed25519PrivateKey:
        if self._private_key is None:
            self._private_key = load_private_key(self._secrets, self.config.private_jwk_secret)
        return self._private_key

    def _check_soft_limits(self, pii: str, requester: str, correlation_id: str) -> None:
        limits = self.config.rate_limits
        checks = (
            (f"pii:{pii}", limits.pii_per_minute, PII_WINDOW_SECONDS),
            (f"requester:{requester}", limits.requester_per_hour, REQUESTER_WINDOW_SECONDS),
        )
        for key, limit, window in checks:
            if not self.limiter.hit(key, limit, window):
                kind, digest = key.split(":", 1)
                logger.warning(
                    "rate_limit_exceeded key=%s:%s limit=%d window=%ds "
                    "action=log_only correlation_id=%s",
                    kind, digest[:LOG_HASH_CHARS], limit, window, correlation_id,
                )

    def issue(
        self,
        payload: Any,
        correlation_id: str | None = None,
        user_agent: str | None = None,
    ) -> IssuedToken:
        """Validate ``payload`` and issue a token.

        Raises ValidationError (nothing issued) or InternalError when the
        signing key is unavailable.
        """
        correlation_id = correlation_id or str(uuid.uuid4())
        identity = validate_identity(payload, self.config)

        pii = pii_hash(identity["national_id"])
        requester = requester_id(identity["email"])
        self._check_soft_limits(pii, requester, correlation_id)

        iat = int(self._clock())
        ttl = self.config.ttl_seconds
        jti = str(uuid.uuid4())
        claims = {
            "nonce": new_nonce(),
            "correlation_id": correlation_id,
            "requester_id": requester,
            "scope": self.config.scope,
            "pii_hash": pii,
            "jti": jti,
            "iss": self.config.issuer,
            "aud": self.config.audience,
            "iat": iat,
            "exp": iat + ttl,
        }
        token = jwt.encode(
            claims,
            self.private_key,
            algorithm=TOKEN_DEFAULTS["algorithm"],
            headers={"kid": self.config.key_id, "typ": "JWT"},
        )

        logger.info(
            "token_issued jti=%s pii_hash=%s requester_id=%s ttl=%ds "
            "correlation_id=%s user_agent=%s",
            jti, pii[:LOG_HASH_CHARS], requester[:LOG_HASH_CHARS], ttl,
            correlation_id, user_agent or "-",
        )
        return IssuedToken(
            token=token,
            ttl_seconds=ttl,
            correlation_id=correlation_id,
            issued_at=datetime.fromtimestamp(iat, tz=timezone.utc).isoformat(),
        )
