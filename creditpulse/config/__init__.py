"""Configuration loading, validation, and defaults."""

from creditpulse.config.loader import load_config
from creditpulse.config.schema import CreditPulseConfig

__all__ = ["load_config", "CreditPulseConfig"]
