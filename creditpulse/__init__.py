"""creditpulse -- explainable credit scoring with token-gated access."""

__version__ = "0.1.0"
