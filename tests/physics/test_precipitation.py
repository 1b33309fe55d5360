"""
Tests for gauge correction and the rain/snow partition.
"""
import numpy as np
import pytest

from landcell.core.types import FailureKind
from landcell.physics.precipitation import calc_rainonly, correct_precip


class TestGaugeCorrection:

    def test_calm_wind_no_correction(self):
        assert correct_precip(0.0, 10.0, 0.001, 0.0005) == (1.0, 1.0)

    def test_factors_at_least_one(self):
        rain, snow = correct_precip(5.0, 10.0, 0.001, 0.0005)
        assert rain >= 1.0
        assert snow >= 1.0
        assert snow > rain

    def test_factors_grow_with_wind(self):
        low = correct_precip(2.0, 10.0, 0.001, 0.0005)
        high = correct_precip(8.0, 10.0, 0.001, 0.0005)
        assert high[1] > low[1]


class TestRainOnly:

    @pytest.mark.parametrize("air_temp,expected", [(5.0, 10.0), (-5.0, 0.0), (0.0, 5.0), (0.5, 10.0)])
    def test_partition(self, air_temp, expected):
        assert calc_rainonly(air_temp, 10.0, 0.5, -0.5).value == pytest.approx(expected)

    @pytest.mark.parametrize("max_snow_temp,min_rain_temp", [(0.0, 0.0), (-1.0, 1.0)])
    def test_unordered_thresholds_fail(self, max_snow_temp, min_rain_temp):
        result = calc_rainonly(0.0, 10.0, max_snow_temp, min_rain_temp)
        assert result.failure == FailureKind.PRECIP_PARTITION

    def test_invalid_precipitation_fails(self):
        assert not calc_rainonly(0.0, np.nan, 0.5, -0.5).ok
        assert not calc_rainonly(0.0, -1.0, 0.5, -0.5).ok
