"""
Tests for the soil column parameters.
"""
import numpy as np
import pytest

from conftest import make_soil
from landcell.core.config import BaseflowMode
from landcell.core.exceptions import ParameterError


class TestSoilColumn:

    def test_derived_parameters(self, soil):
        np.testing.assert_allclose(soil.max_moist, [45.0, 180.0, 450.0])
        np.testing.assert_allclose(soil.Wcr, 0.7 * soil.max_moist)
        np.testing.assert_allclose(soil.Wpwp, 0.5 * soil.max_moist)
        np.testing.assert_allclose(soil.bulk_density, 0.55 * 2650.0)
        assert soil.max_infil == pytest.approx(1.2 * (45.0 + 180.0))

    def test_two_layer_infiltration_capacity(self):
        soil = make_soil(
            depth=[0.3, 1.0], porosity=[0.45, 0.45], soil_density=[2650.0, 2650.0],
            Wcr_fract=[0.7, 0.7], Wpwp_fract=[0.5, 0.5], resid_moist=[0.02, 0.02],
            ksat=[300.0, 100.0], expt=[10.0, 10.0],
        )
        assert soil.max_infil == pytest.approx(1.2 * soil.max_moist[0])

    def test_no_excess_ice_by_default(self, soil):
        assert not soil.has_excess_ice.any()
        np.testing.assert_allclose(soil.min_depth, soil.depth)

    def test_wilting_above_critical_point_rejected(self):
        with pytest.raises(ParameterError, match="greater than"):
            make_soil(Wpwp_fract=[0.8, 0.5, 0.5])

    def test_wilting_below_residual_rejected(self):
        with pytest.raises(ParameterError, match="less than"):
            make_soil(resid_moist=[0.3, 0.02, 0.02])

    def test_layer_count_mismatch_rejected(self):
        with pytest.raises(ParameterError):
            make_soil(ksat=[500.0, 300.0])

    def test_band_fractions_must_sum_to_one(self):
        with pytest.raises(ParameterError):
            make_soil(area_fract=[0.5, 0.4], pfactor=[1.0, 1.0], tfactor=[0.0, 0.0])

    def test_nijssen_baseflow_conversion(self):
        soil = make_soil(baseflow=BaseflowMode.NIJSSEN2001, Ds=0.02, Dsmax=5.0, Ws=150.0)
        bottom = soil.max_moist[-1]
        assert soil.Ws == pytest.approx(150.0 / bottom)
        assert soil.Ds == pytest.approx(0.02 * 150.0 / 5.0)
        assert soil.Dsmax == pytest.approx(5.0 * (bottom - 150.0) ** 2 + 0.02 * bottom)

    def test_node_depths(self, soil):
        assert soil.node_depths[0] == 0.0
        assert soil.node_depths[-1] == pytest.approx(soil.dp)
        assert np.all(np.diff(soil.node_depths) > 0)
