"""Ed25519 signing keys, stored as JWK JSON in a secret store.

The default store is the process environment: the broker reads its private
JWK from ``CREDITPULSE_BROKER_ED25519_JWK`` and the checker reads the public
JWK from ``CREDITPULSE_CHECKER_ED25519_PUBLIC_JWK`` (names are configurable).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Any, Mapping, Protocol

from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from jwt.algorithms import OKPAlgorithm
from jwt.exceptions import InvalidKeyError

from creditpulse.config.defaults import TOKEN_DEFAULTS
from creditpulse.errors import InternalError

logger = logging.getLogger(__name__)


class SecretStore(Protocol):
    def get(self, name: str) -> str | None: ...


class EnvSecretStore:
    """Secrets read from environment variables."""

    def __init__(self, environ: Mapping[str, str] | None = None):
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> str | None:
        value = self._environ.get(name)
        return value or None


class StaticSecretStore:
    """Secrets held in memory (CLI one-shots and tests)."""

    def __init__(self, secrets: Mapping[str, str] | None = None):
        self._secrets = dict(secrets or {})

    def get(self, name: str) -> str | None:
        return self._secrets.get(name)

    def put(self, name: str, value: str) -> None:
        self._secrets[name] = value


# ---------------------------------------------------------------------------
# Key generation
# ---------------------------------------------------------------------------

def generate_keypair_jwk(
    key_id: str = TOKEN_DEFAULTS["key_id"],
) -> tuple[dict[str, Any], dict[str, Any]]:
    """New Ed25519 keypair as (private JWK, public JWK) dicts."""
    private_key = Ed25519PrivateKey.generate()
    private_jwk = json.loads(OKPAlgorithm.to_jwk(private_key))
    public_jwk = json.loads(OKPAlgorithm.to_jwk(private_key.public_key()))
    for jwk in (private_jwk, public_jwk):
        jwk.update({"kid": key_id, "alg": TOKEN_DEFAULTS["algorithm"], "use": "sig"})
    return private_jwk, public_jwk


# ---------------------------------------------------------------------------
# Key loading
# ---------------------------------------------------------------------------

def _load_jwk(store: SecretStore, secret_name: str) -> Any:
    raw = store.get(secret_name)
    if raw is None:
        raise InternalError(f"Signing key secret {secret_name} is not set")
    try:
        return OKPAlgorithm.from_jwk(raw)
    except (InvalidKeyError, ValueError, TypeError) as e:
        raise InternalError(f"Secret {secret_name} is not a valid OKP JWK: {e}") from e


def load_private_key(store: SecretStore, secret_name: str) -> Ed25519PrivateKey:
    key = _load_jwk(store, secret_name)
    if not isinstance(key, Ed25519PrivateKey):
        raise InternalError(f"Secret {secret_name} does not hold an Ed25519 private key")
    return key


def load_public_key(store: SecretStore, secret_name: str) -> Ed25519PublicKey:
    """Public key for verification. A private JWK is accepted and reduced."""
    key = _load_jwk(store, secret_name)
    if isinstance(key, Ed25519PrivateKey):
        logger.warning("Secret %s holds a private key; using its public half", secret_name)
        return key.public_key()
    if not isinstance(key, Ed25519PublicKey):
        raise InternalError(f"Secret {secret_name} does not hold an Ed25519 public key")
    return key
