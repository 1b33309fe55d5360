"""
Shared builders for landcell tests.
"""
import numpy as np
import pytest

from landcell.core.config import GlobalParameters, LandcellConfig, ModelOptions, set_config
from landcell.core.types import Result, SurfaceFluxOutput
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.soil import SoilColumn
from landcell.physics.state import BandState
from landcell.physics.vegetation import VegetationClass, VegetationTile


def make_config(**options) -> LandcellConfig:
    global_params = options.pop("global_params", GlobalParameters())
    return LandcellConfig(options=ModelOptions(**options), global_params=global_params)


def make_soil(**kwargs) -> SoilColumn:
    params = dict(
        depth=[0.1, 0.4, 1.0],
        porosity=[0.45, 0.45, 0.45],
        soil_density=[2650.0, 2650.0, 2650.0],
        Wcr_fract=[0.7, 0.7, 0.7],
        Wpwp_fract=[0.5, 0.5, 0.5],
        resid_moist=[0.02, 0.02, 0.02],
        ksat=[500.0, 300.0, 100.0],
        expt=[10.0, 10.0, 10.0],
    )
    params.update(kwargs)
    return SoilColumn.build(**params)


def make_class(name: str = "grass", **kwargs) -> VegetationClass:
    params = dict(LAI=2.0, albedo=0.2, roughness=0.02, displacement=0.1, wind_h=2.0, rmin=100.0)
    params.update(kwargs)
    return VegetationClass(name, **params)


def make_tile(index: int, cv: float, soil: SoilColumn, moist=None, ice=None, mu: float = 1.0,
              is_lake: bool = False, veg_class: VegetationClass = None) -> VegetationTile:
    moist = moist if moist is not None else list(0.6 * soil.max_moist)
    tile = VegetationTile(
        index=index,
        cv=cv,
        veg_class=veg_class or make_class(),
        root_depth=np.array([0.3, 0.7]),
        root_fract=np.array([0.7, 0.3]),
        bands=[BandState.initial(moist, soil.n_frost, ice) for _ in range(soil.n_bands)],
        mu=mu,
        is_lake=is_lake,
    )
    tile.update_root_fractions(soil)
    return tile


def make_forcing(**kwargs) -> AtmosphereForcing:
    params = dict(
        air_temp=15.0, prec=8.0, wind=3.0, shortwave=200.0, longwave=320.0,
        vp=1200.0, vpd=500.0, pressure=95000.0, density=1.2, month=6,
    )
    params.update(kwargs)
    return AtmosphereForcing(**params)


class StubSurfaceSolver:
    """Surface flux solver returning fixed values and recording calls"""

    def __init__(self, prec=5.0, runoff=None, fail_on_tile=None, moist_delta=0.0, evap=0.0, inflow=0.0):
        self.prec = prec
        self.runoff = runoff or {}
        self.fail_on_tile = fail_on_tile
        self.moist_delta = moist_delta
        self.evap = evap
        self.inflow = inflow
        self.calls = []

    def solve(self, tile, band_index, band, forcing, soil, aero_resist, surface,
              gauge_correction, surf_atten, moist0, ice0, config):
        self.calls.append((tile.index, band_index))
        if tile.index == self.fail_on_tile:
            from landcell.core.types import FailureKind
            return Result.failed(FailureKind.SURFACE_FLUX, "stub failure")
        for state in band.branches():
            state.inflow = self.inflow
            state.runoff = self.runoff.get(tile.index, 0.0)
            state.baseflow = 0.0
            for layer in state.layers:
                layer.moist += self.moist_delta
                layer.evap = self.evap
        return Result.success(SurfaceFluxOutput(prec=self.prec, rain=self.prec, snow=0.0))


class RecordingRunoffSolver:
    """Runoff solver recording layer moisture and evaporation at call time"""

    def __init__(self):
        self.calls = []

    def solve(self, wet, dry, soil, ppt, mu, config):
        self.calls.append({
            "ppt": tuple(ppt),
            "moist": [np.array([layer.moist for layer in s.layers]) for s in (wet, dry)],
            "evap": [np.array([layer.evap for layer in s.layers]) for s in (wet, dry)],
        })
        return Result.success()


class StubThermalSolver:
    def __init__(self):
        self.updates = 0

    def prepare_full_energy(self, tile, soil, config):
        return np.zeros(soil.n_bands), np.zeros(soil.n_bands)

    def update_thermal_nodes(self, tiles, soil, config):
        self.updates += 1
        return Result.success()


@pytest.fixture(autouse=True)
def reset_global_config():
    """Keep the configuration singleton isolated between tests"""
    set_config(None)
    yield
    set_config(None)


@pytest.fixture
def soil():
    return make_soil()


@pytest.fixture
def forcing():
    return make_forcing()
