"""
Tests for vegetation classes, tiles and the root distribution.
"""
import numpy as np
import pytest

from conftest import make_class, make_tile
from landcell.core.exceptions import ParameterError
from landcell.physics.vegetation import VegetationTile, calc_root_fractions


class TestRootFractions:

    def test_split_by_overlap(self):
        root = calc_root_fractions([0.3, 0.7], [0.7, 0.3], [0.1, 0.4, 1.0])
        # top zone 0-0.3 m, bottom zone 0.3-1.0 m
        expected = [0.7 / 3, 0.7 * 2 / 3 + 0.3 * 0.2 / 0.7, 0.3 * 0.5 / 0.7]
        np.testing.assert_allclose(root, expected)

    def test_deep_roots_go_to_bottom_layer(self):
        root = calc_root_fractions([2.0], [1.0], [0.1, 0.4, 1.0])
        assert root.sum() == pytest.approx(1.0)
        assert root[-1] == pytest.approx(1.0 - 0.25)

    def test_sum_preserved(self):
        root = calc_root_fractions([0.2, 0.5, 0.3], [0.5, 0.3, 0.2], [0.05, 0.25, 0.7])
        assert root.sum() == pytest.approx(1.0)


class TestVegetationClass:

    def test_scalar_expanded_to_months(self):
        veg = make_class(LAI=3.0)
        assert veg.LAI.shape == (12,)

    def test_monthly_values_checked(self):
        with pytest.raises(ParameterError):
            make_class(LAI=[1.0, 2.0])

    def test_surface_attenuation(self):
        veg = make_class(LAI=2.0)
        assert veg.surface_attenuation(6) == pytest.approx(np.exp(-1.0))


class TestVegetationTile:

    def test_branch_weights(self, soil):
        tile = make_tile(0, 0.5, soil, mu=0.6)
        assert tile.branch_weights(True) == pytest.approx((0.6, 0.4))

    def test_single_branch_without_distributed_precipitation(self, soil):
        tile = make_tile(0, 0.5, soil, mu=0.6)
        assert tile.wet_fraction(False) == 1.0
        assert tile.branch_weights(False) == (1.0, 0.0)

    def test_inactive_at_zero_cover(self, soil):
        assert not make_tile(0, 0.0, soil).active

    @pytest.mark.parametrize("cv,mu", [(1.2, 1.0), (-0.1, 1.0), (0.5, 0.0)])
    def test_invalid_fractions(self, cv, mu):
        with pytest.raises(ParameterError):
            VegetationTile(index=0, cv=cv, veg_class=make_class(), root_depth=[0.3],
                           root_fract=[1.0], bands=[], mu=mu)
