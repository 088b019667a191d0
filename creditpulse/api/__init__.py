"""HTTP surface over the scoring engine and the token gateway."""

from creditpulse.api.app import create_app

__all__ = ["create_app"]
