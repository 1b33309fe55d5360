"""
Tests for the pre-step moisture snapshot.
"""
import numpy as np
import pytest

from conftest import make_tile
from landcell.core.constants import DRY, WET
from landcell.physics.state import LayerState, PriorStateSnapshot


class TestPriorStateSnapshot:

    @pytest.fixture
    def tiles(self, soil):
        return [make_tile(0, 0.5, soil), make_tile(1, 0.5, soil, mu=0.5)]

    def test_captures_every_branch(self, tiles):
        snapshot = PriorStateSnapshot.capture(tiles)
        assert set(snapshot.moist) == {(t, 0, d) for t in (0, 1) for d in (WET, DRY)}

    def test_deep_copy(self, tiles):
        snapshot = PriorStateSnapshot.capture(tiles)
        before = snapshot.moist[(0, 0, WET)].copy()

        tiles[0].bands[0].wet.layers[0].moist += 50.0

        np.testing.assert_array_equal(snapshot.moist[(0, 0, WET)], before)

    def test_read_only(self, tiles):
        snapshot = PriorStateSnapshot.capture(tiles)
        with pytest.raises(ValueError):
            snapshot.moist[(0, 0, WET)][0] = 0.0
        with pytest.raises(TypeError):
            snapshot.moist[(0, 0, WET)] = np.zeros(3)

    def test_restore(self, tiles):
        snapshot = PriorStateSnapshot.capture(tiles)
        original = tiles[1].bands[0].dry.moisture()
        band = tiles[1].bands[0]
        for layer in band.dry.layers:
            layer.evap = 2.0
        snapshot.record_evaporation(1, 0, band)
        for layer in band.dry.layers:
            layer.moist = 0.0
            layer.evap = 0.0

        snapshot.restore(tiles)

        np.testing.assert_array_equal(band.dry.moisture(), original)
        assert [layer.evap for layer in band.dry.layers] == [2.0, 2.0, 2.0]
        # Bands without a recorded solve roll back to zero evaporation
        assert tiles[0].bands[0].wet.layers[0].evap == 0.0


class TestLayerState:

    def test_frost_weighted_ice(self):
        layer = LayerState(moist=10.0, ice=np.array([0.0, 4.0, 8.0]))
        frost = np.array([0.25, 0.5, 0.25])
        assert layer.mean_ice(frost) == pytest.approx(4.0)
        assert layer.total_moist(frost) == pytest.approx(14.0)
