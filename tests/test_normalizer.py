"""Tests for raw score normalization and bounds resolution."""

from __future__ import annotations

import math

import pytest

from creditpulse.engine.bands import RiskBand
from creditpulse.engine.model import ScoringModel
from creditpulse.engine.normalizer import normalize_score, resolve_bounds
from creditpulse.errors import InvalidBoundsError, ScoringConfigurationError


class TestNormalizeScore:

    def test_example_values(self):
        assert normalize_score(5.56, -100, 100) == 527
        assert normalize_score(50.56, -100, 100) == 752

    def test_floor_not_round(self):
        assert normalize_score(0.0999, 0, 1) == 99

    def test_endpoints(self):
        assert normalize_score(-100, -100, 100) == 0
        assert normalize_score(100, -100, 100) == 1000

    def test_clamped(self):
        assert normalize_score(-1e9, -100, 100) == 0
        assert normalize_score(1e9, -100, 100) == 1000

    def test_returns_python_int(self):
        assert type(normalize_score(3.0, 0, 10)) is int

    @pytest.mark.parametrize("lo,hi", [(0, 0), (10, 5)])
    def test_invalid_bounds(self, lo, hi):
        with pytest.raises(InvalidBoundsError) as exc:
            normalize_score(1.0, lo, hi)
        assert exc.value.code == "invalid_bounds"
        assert exc.value.http_status == 500

    def test_non_finite_raw(self):
        with pytest.raises(ScoringConfigurationError):
            normalize_score(math.nan, 0, 1)


class TestResolveBounds:

    def _model(self, lo=None, hi=None, bands=None):
        return ScoringModel(id="m", name="m", version="1", min_raw_score=lo,
                            max_raw_score=hi, bands=bands or [])

    def test_no_model_uses_defaults(self):
        assert resolve_bounds(None) == (-100.0, 100.0)

    def test_model_bounds(self):
        assert resolve_bounds(self._model(-5, 5)) == (-5.0, 5.0)

    def test_band_envelope(self):
        bands = [RiskBand("L", 100, 499, ""), RiskBand("H", 500, 900, "")]
        assert resolve_bounds(self._model(bands=bands)) == (100.0, 900.0)

    def test_sides_resolve_independently(self):
        bands = [RiskBand("ALL", 0, 1000, "")]
        assert resolve_bounds(self._model(lo=-50, bands=bands)) == (-50.0, 1000.0)

    def test_explicit_wins(self):
        assert resolve_bounds(self._model(-5, 5), explicit=(None, 20)) == (-5.0, 20.0)

    def test_configured_defaults(self):
        assert resolve_bounds(self._model(), defaults=(-10, 10)) == (-10.0, 10.0)
