"""
Surface flux solver for one (tile, band) pair.

A compact energy/water solver that keeps the interface of a full
snow/canopy/soil scheme:

1. Band-adjusted forcing (temperature lapse, precipitation factor)
2. Rain/snow partition with gauge correction
3. Degree-day snowpack accumulation and melt
4. Net radiation and Penman-Monteith potential evaporation for every
   reference surface type
5. Root-weighted layer evaporation limited by plant-available water
6. Wet/dry precipitation split and the infiltration/runoff solve
"""
import logging
from typing import Optional, Tuple

import numpy as np

from landcell.core.config import LandcellConfig
from landcell.core.constants import (
    CURRENT_VEG, DRY, HOURS_PER_DAY, KELVIN, LATENT_HEAT_VAPORIZATION, N_PET_TYPES,
    N_PET_TYPES_NON_NAT, RAIN, SEC_PER_HOUR, SNOW, SNOW_ALBEDO, SPECIFIC_HEAT_AIR,
    STEFAN_BOLTZMANN, WET,
)
from landcell.core.types import AeroSurface, FailureKind, Result, RunoffSolver, SurfaceFluxOutput
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.precipitation import calc_rainonly
from landcell.physics.runoff import ArnoRunoffSolver
from landcell.physics.soil import SoilColumn
from landcell.physics.state import BandState, CellState
from landcell.physics.thermal import soil_conductivity
from landcell.physics.vegetation import REFERENCE_CLASSES, VegetationTile

logger = logging.getLogger(__name__)

SNOW_DENSITY = 250.0  # kg/m³


def saturation_vapor_pressure(temp_c: float) -> float:
    """Saturation vapor pressure (kPa)"""
    return 0.6108 * np.exp(17.27 * temp_c / (temp_c + 237.3))


def penman_monteith(
    net_rad: float, temp_c: float, vpd_kpa: float, pressure_kpa: float,
    density: float, ra: float, rs: float,
) -> float:
    """Latent heat flux (W/m²) from the Penman-Monteith combination equation"""
    es = saturation_vapor_pressure(temp_c)
    slope = 4098.0 * es / (temp_c + 237.3) ** 2
    gamma = 0.665e-3 * pressure_kpa
    if ra <= 0:
        return 0.0
    le = (slope * net_rad + density * SPECIFIC_HEAT_AIR * vpd_kpa / ra) / (
        slope + gamma * (1.0 + rs / ra)
    )
    return max(0.0, le)


class SimpleSurfaceFluxSolver:
    """Advances one (tile, band) pair by one time step"""

    def __init__(self, runoff_solver: Optional[RunoffSolver] = None):
        self.runoff_solver = runoff_solver or ArnoRunoffSolver()

    def solve(
        self,
        tile: VegetationTile,
        band_index: int,
        band: BandState,
        forcing: AtmosphereForcing,
        soil: SoilColumn,
        aero_resist: np.ndarray,
        surface: AeroSurface,
        gauge_correction: Tuple[float, float],
        surf_atten: float,
        moist0: float,
        ice0: float,
        config: LandcellConfig,
    ) -> Result[SurfaceFluxOutput]:
        if not forcing.is_finite():
            return Result.failed(FailureKind.SURFACE_FLUX, "non-finite forcing")

        gp = config.global_params
        dt_sec = gp.dt_hours * SEC_PER_HOUR
        month = forcing.month
        veg_class = tile.veg_class

        # Band forcing
        air_temp = forcing.air_temp + soil.tfactor[band_index]
        prec = forcing.prec * soil.pfactor[band_index]
        partition = calc_rainonly(air_temp, prec, gp.max_snow_temp, gp.min_rain_temp)
        if not partition.ok:
            return Result.failed(FailureKind.SURFACE_FLUX, partition.message)
        rain = partition.value * gauge_correction[RAIN]
        snowfall = (prec - partition.value) * gauge_correction[SNOW]

        # Snowpack
        snow = band.snow
        snow.swq += snowfall
        melt = min(snow.swq, gp.melt_factor_mm_day_c * max(air_temp, 0.0) * gp.dt_hours / HOURS_PER_DAY)
        snow.swq -= melt
        snow.melt = melt
        snow.coverage = 1.0 if snow.swq > 0 else 0.0
        snow.depth = snow.swq / SNOW_DENSITY
        snow.albedo = SNOW_ALBEDO if snow.swq > 0 else 0.0
        snow.surf_temp = min(air_temp, 0.0) if snow.swq > 0 else air_temp
        liquid = rain + melt

        # Radiation
        energy = band.energy
        albedo = snow.albedo if snow.coverage > 0 else float(veg_class.albedo[month - 1])
        energy.albedo = albedo
        energy.shortwave = forcing.shortwave * surf_atten
        energy.longwave = forcing.longwave
        energy.net_short = (1.0 - albedo) * forcing.shortwave
        energy.T_surf = snow.surf_temp
        energy.net_long = forcing.longwave - STEFAN_BOLTZMANN * (energy.T_surf + KELVIN) ** 4
        net_rad = energy.net_short + energy.net_long

        pressure_kpa = forcing.pressure / 1000.0
        vpd_kpa = forcing.vpd / 1000.0

        # Potential evaporation for each reference surface
        for p in range(N_PET_TYPES):
            rs = REFERENCE_CLASSES[p].rmin if p < N_PET_TYPES_NON_NAT else veg_class.rmin
            le = penman_monteith(net_rad, air_temp, vpd_kpa, pressure_kpa, forcing.density,
                                 aero_resist[p][0], rs)
            pet = le / LATENT_HEAT_VAPORIZATION * dt_sec
            band.wet.pot_evap[p] = pet
            band.dry.pot_evap[p] = pet

        # Actual evaporation demand from the tile's own surface
        lai = float(veg_class.LAI[month - 1])
        rs_veg = veg_class.rmin / lai if lai > 0 else 0.0
        ra_veg = aero_resist[CURRENT_VEG][1 if surface.overstory else 0]
        if snow.coverage > 0:
            demand = 0.0
        else:
            le = penman_monteith(net_rad, air_temp, vpd_kpa, pressure_kpa, forcing.density, ra_veg, rs_veg)
            demand = le / LATENT_HEAT_VAPORIZATION * dt_sec

        weights = tile.branch_weights(config.options.dist_prcp)
        total_evap = 0.0
        for dist, cell in enumerate(band.branches()):
            total_evap += weights[dist] * self._layer_evaporation(cell, tile, soil, demand)

        energy.latent = total_evap * LATENT_HEAT_VAPORIZATION / dt_sec
        energy.sensible = net_rad - energy.latent
        kappa = energy.kappa_top or soil_conductivity(soil.effective_porosity[0], moist0, ice0)
        if len(energy.T) > 1 and len(soil.node_depths) > 1:
            energy.T[0] = energy.T_surf
            energy.grnd_flux = kappa * (energy.T[0] - energy.T[1]) / soil.node_depths[1]

        # Distributed precipitation: the wet fraction receives all water
        mu = weights[WET]
        if mu < 1.0:
            ppt = (liquid / mu, 0.0)
        else:
            ppt = (liquid, liquid)
        band.veg_wet.throughfall = ppt[WET]
        band.veg_dry.throughfall = ppt[DRY]

        result = self.runoff_solver.solve(band.wet, band.dry, soil, ppt, mu, config)
        if not result.ok:
            return Result.failed(result.failure, result.message)

        return Result.success(SurfaceFluxOutput(
            prec=rain + snowfall,
            rain=rain,
            snow=snowfall,
            melt=melt,
            snow_inflow=snowfall,
        ))

    def _layer_evaporation(self, cell: CellState, tile: VegetationTile, soil: SoilColumn, demand: float) -> float:
        """Distribute evaporation demand over layers; stores and returns the total (mm)"""
        root = tile.root if len(tile.root) == soil.n_layers else np.zeros(soil.n_layers)
        if root.sum() > 0:
            weights = root / root.sum()
        else:
            weights = np.zeros(soil.n_layers)
            weights[0] = 1.0

        total = 0.0
        for lidx, layer in enumerate(cell.layers):
            available = max(0.0, layer.moist - soil.Wpwp[lidx])
            span = soil.Wcr[lidx] - soil.Wpwp[lidx]
            stress = min(1.0, available / span) if span > 0 else 1.0
            layer.evap = min(demand * weights[lidx] * stress, available)
            total += layer.evap
        return total
