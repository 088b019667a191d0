"""Risk band classification on the normalized 0-1000 scale."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, TypedDict

from creditpulse.config.defaults import (
    SCORE_SCALE,
    UNCLASSIFIED_BAND,
    UNCLASSIFIED_RECOMMENDATION,
)
from creditpulse.errors import BandConfigurationError

logger = logging.getLogger(__name__)


class RiskBandResult(TypedDict):
    """Classifier output. Range fields are None for UNCLASSIFIED."""
    band: str
    min_score: int | None
    max_score: int | None
    recommendation: str


@dataclass(frozen=True)
class RiskBand:
    """Inclusive score range [min_score, max_score] with a recommendation."""
    band: str
    min_score: int
    max_score: int
    recommendation: str

    def contains(self, score: int) -> bool:
        return self.min_score <= score <= self.max_score

    def to_result(self) -> RiskBandResult:
        return RiskBandResult(
            band=self.band,
            min_score=self.min_score,
            max_score=self.max_score,
            recommendation=self.recommendation,
        )


UNCLASSIFIED = RiskBandResult(
    band=UNCLASSIFIED_BAND,
    min_score=None,
    max_score=None,
    recommendation=UNCLASSIFIED_RECOMMENDATION,
)


def classify_score(score: int, bands: Iterable[RiskBand]) -> RiskBandResult:
    """Return the band containing ``score``.

    Overlapping matches resolve to the band with the highest min_score.
    No match returns the UNCLASSIFIED sentinel rather than failing.
    """
    matches = [b for b in bands if b.contains(score)]
    if not matches:
        logger.debug("Score %d matched no risk band", score)
        return dict(UNCLASSIFIED)  # type: ignore[return-value]
    best = max(matches, key=lambda b: (b.min_score, b.band))
    return best.to_result()


def band_rank(label: str, bands: Iterable[RiskBand]) -> int:
    """Ordering key for a band label: its min_score, or -1 if unknown."""
    for b in bands:
        if b.band == label:
            return b.min_score
    return -1


def validate_band_partition(bands: Iterable[RiskBand]) -> None:
    """Raise BandConfigurationError unless bands tile [0, 1000] exactly.

    An empty band list is accepted; every score then classifies as
    UNCLASSIFIED.
    """
    ordered = sorted(bands, key=lambda b: (b.min_score, b.max_score))
    if not ordered:
        logger.warning("No risk bands configured; all scores will be UNCLASSIFIED")
        return

    lo, hi = SCORE_SCALE["min"], SCORE_SCALE["max"]
    problems: list[str] = []

    for b in ordered:
        if not lo <= b.min_score <= b.max_score <= hi:
            problems.append(f"band {b.band} range [{b.min_score}, {b.max_score}] is invalid")

    if ordered[0].min_score > lo:
        problems.append(f"gap [{lo}, {ordered[0].min_score - 1}]")
    for prev, cur in zip(ordered, ordered[1:]):
        if cur.min_score <= prev.max_score:
            problems.append(f"bands {prev.band} and {cur.band} overlap")
        elif cur.min_score > prev.max_score + 1:
            problems.append(f"gap [{prev.max_score + 1}, {cur.min_score - 1}]")
    top = max(b.max_score for b in ordered)
    if top < hi:
        problems.append(f"gap [{top + 1}, {hi}]")

    if problems:
        raise BandConfigurationError("Risk bands do not partition [0, 1000]: " + "; ".join(problems))
