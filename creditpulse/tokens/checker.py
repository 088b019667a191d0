"""Token checker: admits one scoring request per valid, unused token.

Secure mode verifies the Ed25519 signature against the broker's public key,
pins algorithm, issuer and audience, enforces ``exp``, requires the
``nonce``/``correlation_id``/``jti`` claims, and redeems the nonce exactly
once. Every failure surfaces as AuthzError with the public code
``invalid_token``; the specific reason goes to the log only.

Demo mode (unsigned ``demo.`` tokens or no Authorization header) exists
only when ``checker.demo_mode_enabled`` is set.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

import jwt
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PublicKey

from creditpulse.config.defaults import TOKEN_DEFAULTS
from creditpulse.config.schema import BrokerConfig, CheckerConfig
from creditpulse.errors import AuthzError
from creditpulse.tokens.keys import EnvSecretStore, SecretStore, load_public_key
from creditpulse.tokens.nonces import NonceRegistry

logger = logging.getLogger(__name__)

REQUIRED_CLAIMS = ("nonce", "correlation_id", "jti")
BEARER_SCHEME = "bearer"

MODE_DEMO = "demo"
MODE_SECURE = "secure"


@dataclass(frozen=True)
class Admission:
    """A request the checker let through."""
    mode: str
    correlation_id: str
    claims: dict[str, Any] = field(default_factory=dict)

    @property
    def pii_hash(self) -> str | None:
        return self.claims.get("pii_hash")


def bearer_token(authorization: str | None) -> str | None:
    """Token from an ``Authorization: Bearer <token>`` value, else None."""
    if not authorization:
        return None
    value = authorization.strip()
    scheme, _, rest = value.partition(" ")
    if scheme.lower() == BEARER_SCHEME:
        value = rest.strip()
    return value or None


class TokenChecker:
    def __init__(
        self,
        config: CheckerConfig | None = None,
        broker_config: BrokerConfig | None = None,
        *,
        secrets_store: SecretStore | None = None,
        public_key: Ed25519PublicKey | None = None,
        nonces: NonceRegistry | None = None,
    ):
        self.config = config or CheckerConfig()
        self.broker_config = broker_config or BrokerConfig()
        self._secrets = secrets_store or EnvSecretStore()
        self._public_key = public_key
        self.nonces = nonces or NonceRegistry()

    @property
    def public_key(self) -> Ed25519PublicKey:
        if self._public_key is None:
            self._public_key = load_public_key(self._secrets, self.config.public_jwk_secret)
        return self._public_key

    def _reject(self, reason: str, correlation_id: str, detail: str = "") -> AuthzError:
        logger.warning(
            "token_validation_failed reason=%s correlation_id=%s%s",
            reason, correlation_id, f" detail={detail}" if detail else "",
        )
        return AuthzError(reason)

    def _decode(self, token: str, correlation_id: str) -> dict[str, Any]:
        try:
            return jwt.decode(
                token,
                self.public_key,
                algorithms=[TOKEN_DEFAULTS["algorithm"]],
                audience=self.broker_config.audience,
                issuer=self.broker_config.issuer,
                leeway=self.config.leeway_seconds,
                options={"require": ["exp", "iat", "iss", "aud"]},
            )
        except jwt.ExpiredSignatureError as e:
            raise self._reject("token_expired", correlation_id) from e
        except jwt.InvalidSignatureError as e:
            raise self._reject("invalid_signature", correlation_id) from e
        except jwt.InvalidAlgorithmError as e:
            raise self._reject("invalid_signature", correlation_id, str(e)) from e
        except jwt.MissingRequiredClaimError as e:
            raise self._reject("missing_claims", correlation_id, str(e)) from e
        except (jwt.InvalidAudienceError, jwt.InvalidIssuerError) as e:
            raise self._reject("invalid_claims", correlation_id, str(e)) from e
        except jwt.DecodeError as e:
            raise self._reject("malformed_token", correlation_id, str(e)) from e
        except jwt.InvalidTokenError as e:
            raise self._reject("invalid_token", correlation_id, str(e)) from e

    def admit(self, authorization: str | None, correlation_id: str | None = None) -> Admission:
        """Verify and consume the presented token, or raise AuthzError."""
        correlation_id = correlation_id or str(uuid.uuid4())
        token = bearer_token(authorization)

        if self.config.demo_mode_enabled and (
            token is None or token.startswith(self.config.demo_token_prefix)
        ):
            logger.info(
                "token_validation_success mode=%s correlation_id=%s", MODE_DEMO, correlation_id
            )
            return Admission(mode=MODE_DEMO, correlation_id=correlation_id)

        if token is None:
            raise self._reject("missing_token", correlation_id)

        claims = self._decode(token, correlation_id)

        missing = [c for c in REQUIRED_CLAIMS if not claims.get(c)]
        if missing:
            raise self._reject("missing_claims", correlation_id, ",".join(missing))
        if claims.get("scope") != self.broker_config.scope:
            raise self._reject("invalid_scope", correlation_id, str(claims.get("scope")))

        # Held until the token stops verifying, leeway included.
        if not self.nonces.redeem(claims["nonce"], claims["exp"] + self.config.leeway_seconds):
            raise self._reject("token_replay", correlation_id, f"jti={claims['jti']}")

        logger.info(
            "token_validation_success mode=%s jti=%s correlation_id=%s",
            MODE_SECURE, claims["jti"], correlation_id,
        )
        return Admission(mode=MODE_SECURE, correlation_id=correlation_id, claims=claims)
