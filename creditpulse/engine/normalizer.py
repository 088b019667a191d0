"""Raw score -> integer on the 0-1000 scale."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from creditpulse.config.defaults import DEFAULT_RAW_BOUNDS, SCORE_SCALE
from creditpulse.errors import InvalidBoundsError, ScoringConfigurationError

if TYPE_CHECKING:
    from creditpulse.engine.model import ScoringModel


def normalize_score(
    raw: float,
    min_score: float,
    max_score: float,
    scale: int = SCORE_SCALE["max"],
) -> int:
    """clamp(floor((raw - min) / (max - min) * scale), 0, scale).

    Raises InvalidBoundsError when max_score <= min_score.
    """
    if max_score <= min_score:
        raise InvalidBoundsError(min_score, max_score)
    if not np.isfinite(raw):
        raise ScoringConfigurationError(f"Raw score is not finite: {raw}")
    scaled = np.floor((raw - min_score) / (max_score - min_score) * scale)
    return int(np.clip(scaled, 0, scale))


def resolve_bounds(
    model: ScoringModel | None,
    explicit: tuple[float | None, float | None] | None = None,
    defaults: tuple[float, float] = (DEFAULT_RAW_BOUNDS["min"], DEFAULT_RAW_BOUNDS["max"]),
) -> tuple[float, float]:
    """Pick (min, max) raw bounds for normalization.

    Each side resolves independently: explicit argument, then the model's
    own raw bounds, then the envelope of its risk bands, then ``defaults``.
    """
    lo, hi = explicit if explicit is not None else (None, None)

    if model is not None:
        if lo is None:
            lo = model.min_raw_score
        if hi is None:
            hi = model.max_raw_score
        if model.bands:
            if lo is None:
                lo = min(b.min_score for b in model.bands)
            if hi is None:
                hi = max(b.max_score for b in model.bands)

    return (
        float(lo) if lo is not None else float(defaults[0]),
        float(hi) if hi is not None else float(defaults[1]),
    )
