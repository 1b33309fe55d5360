"""
Lake energy and water balance solvers.

The energy solver treats the lake as a single mixed layer with a
degree-hour ice model and open-water Penman evaporation. The water balance
solver closes the lake volume budget and releases outflow over a broad
crested weir once the stage exceeds the outlet depth.
"""
import logging

import numpy as np

from landcell.core.config import LandcellConfig
from landcell.core.constants import (
    FRACMIN, HOURS_PER_DAY, ICE_GROWTH_MM_PER_DEGREE_HOUR, KELVIN, LAKE_ALBEDO,
    LAKE_ICE_ALBEDO, LATENT_HEAT_VAPORIZATION, MM_PER_M, SEC_PER_HOUR, SNOW_ALBEDO,
    STEFAN_BOLTZMANN, VON_KARMAN,
)
from landcell.core.types import FailureKind, Result
from landcell.lake.stage import LakeParameters, LakeState, get_depth, get_sarea, get_volume
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.soil import SoilColumn
from landcell.physics.surface_fluxes import penman_monteith

logger = logging.getLogger(__name__)

WATER_ROUGHNESS = 0.001  # m
WEIR_COEFFICIENT = 1.6  # m^0.5/s
MIXED_LAYER_DEPTH = 2.0  # m
WATER_HEAT_CAPACITY = 4.186e6  # J/m³/K


class SimpleLakeEnergySolver:
    """Ice, snow-on-ice and open-water evaporation for one lake step"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def solve(
        self,
        snowprec: float,
        rainprec: float,
        forcing: AtmosphereForcing,
        lake: LakeState,
        params: LakeParameters,
        soil: SoilColumn,
        fraci: float,
        config: LandcellConfig,
    ) -> Result[None]:
        if not (forcing.is_finite() and np.isfinite(snowprec) and np.isfinite(rainprec)):
            return Result.failed(FailureKind.LAKE_ENERGY, "non-finite lake forcing")
        if not 0.0 <= fraci <= 1.0:
            return Result.failed(FailureKind.LAKE_ENERGY, f"ice fraction {fraci} outside [0, 1]")

        gp = config.global_params
        dt_hours = gp.dt_hours
        dt_sec = dt_hours * SEC_PER_HOUR
        air_temp = forcing.air_temp

        # Snow collects on ice; on open water it melts into the lake
        snow = lake.snow
        snow.swq += snowprec * fraci
        melt = 0.0
        if snow.swq > 0 and air_temp > 0:
            melt = min(snow.swq, gp.melt_factor_mm_day_c * air_temp * dt_hours / HOURS_PER_DAY)
            snow.swq -= melt
        snow.melt = melt
        snow.coverage = fraci if snow.swq > 0 else 0.0
        snow.albedo = SNOW_ALBEDO if snow.swq > 0 else 0.0
        lake.snowmlt = melt

        # Ice thickness from freezing/thawing degree hours
        degree_hours = -air_temp * dt_hours
        lake.hice = max(0.0, lake.hice + degree_hours * ICE_GROWTH_MM_PER_DEGREE_HOUR / MM_PER_M)
        if lake.hice > 0 and lake.sarea > 0:
            ice_fract = 1.0 if air_temp < 0 else max(fraci, FRACMIN)
            lake.new_ice_area = ice_fract * lake.sarea
        else:
            lake.hice = 0.0
            lake.new_ice_area = 0.0

        # Surface energy over open water and ice
        energy = lake.energy
        open_fract = 1.0 - fraci
        if snow.swq > 0:
            albedo = SNOW_ALBEDO
        else:
            albedo = open_fract * LAKE_ALBEDO + fraci * LAKE_ICE_ALBEDO
        energy.albedo = albedo
        energy.shortwave = forcing.shortwave
        energy.longwave = forcing.longwave
        energy.net_short = (1.0 - albedo) * forcing.shortwave
        surf_temp = lake.temp if fraci < 1.0 else min(0.0, air_temp)
        energy.T_surf = surf_temp
        energy.net_long = forcing.longwave - STEFAN_BOLTZMANN * (surf_temp + KELVIN) ** 4
        net_rad = energy.net_short + energy.net_long

        wind = max(forcing.wind, 0.1)
        z = gp.wind_h
        ra = np.log(z / WATER_ROUGHNESS) ** 2 / (VON_KARMAN ** 2 * wind)
        le = penman_monteith(net_rad, surf_temp, forcing.vpd / 1000.0, forcing.pressure / 1000.0,
                             forcing.density, ra, 0.0)
        lake.evapw = open_fract * le / LATENT_HEAT_VAPORIZATION * dt_sec
        energy.latent = open_fract * le
        energy.sensible = (net_rad - le) * open_fract
        energy.grnd_flux = 0.0

        # Mixed layer temperature relaxes with the residual heat
        if open_fract > 0:
            heat = (net_rad - le) * dt_sec
            lake.temp = max(0.0, lake.temp + heat / (WATER_HEAT_CAPACITY * MIXED_LAYER_DEPTH))
        else:
            lake.temp = 0.0

        if not np.isfinite(lake.evapw) or not np.isfinite(lake.temp):
            return Result.failed(FailureKind.LAKE_ENERGY, "lake energy balance did not close")
        return Result.success()


class SimpleLakeWaterBalanceSolver:
    """Closes the lake volume budget for one step"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def solve(
        self,
        lake: LakeState,
        params: LakeParameters,
        soil: SoilColumn,
        lakefrac: float,
        prec: float,
        oldvolume: float,
        delta_snow: float,
        meltwater_mm: float,
        config: LandcellConfig,
    ) -> Result[None]:
        """
        Update lake volume, stage, area and outflows.

        Args:
            lake: Lake state; ``runoff_in``/``baseflow_in`` in mm over the cell
            params: Lake basin parameters
            soil: Soil column (cell area)
            lakefrac: Open water fraction of the lake tile at the step start
            prec: Precipitation on the lake surface (mm)
            oldvolume: Lake volume at the start of the step (m³)
            delta_snow: Snow water released from the lake snowpack (mm)
            meltwater_mm: Excess ice meltwater released under the lake (mm)
        """
        values = (prec, oldvolume, delta_snow, meltwater_mm, lake.runoff_in, lake.baseflow_in)
        if not all(np.isfinite(v) for v in values):
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, f"non-finite lake budget term in {values}")

        dt_sec = config.global_params.dt_hours * SEC_PER_HOUR
        area = lake.sarea

        inflow = (lake.runoff_in + lake.baseflow_in) / MM_PER_M * soil.cell_area
        direct = (prec + delta_snow + meltwater_mm) / MM_PER_M * area
        evap = lake.evapw / MM_PER_M * area

        volume = oldvolume + inflow + direct
        if evap > volume:
            lake.evapw = volume / area * MM_PER_M if area > 0 else 0.0
            evap = volume
        volume -= evap

        # Baseflow passes through the lake bottom
        lake.baseflow_out = min(volume, params.bpercent * lake.baseflow_in / MM_PER_M * soil.cell_area)
        volume -= lake.baseflow_out

        # Weir outflow above the outlet, then spill above the basin rim
        depth = get_depth(params, volume)
        if not depth.ok:
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, depth.message)
        runoff_out = 0.0
        head = depth.value - params.mindepth
        if head > 0 and area > 0:
            width = params.wfrac * 2.0 * np.sqrt(np.pi * area)
            threshold = get_volume(params, params.mindepth)
            if not threshold.ok:
                return Result.failed(FailureKind.LAKE_WATER_BALANCE, threshold.message)
            runoff_out = min(WEIR_COEFFICIENT * width * head ** 1.5 * dt_sec, volume - threshold.value)
        if volume - runoff_out > params.max_volume:
            runoff_out = volume - params.max_volume
        lake.runoff_out = max(0.0, runoff_out)
        volume -= lake.runoff_out

        if volume < 0 or not np.isfinite(volume):
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, f"lake volume became {volume}")

        depth = get_depth(params, volume)
        if not depth.ok:
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, depth.message)
        sarea = get_sarea(params, depth.value)
        if not sarea.ok:
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, sarea.message)

        lake.volume = volume
        lake.ldepth = depth.value
        lake.sarea = sarea.value
        lake.areai = min(lake.new_ice_area, lake.sarea)

        self.logger.debug(
            f"Lake volume {oldvolume:.1f} -> {volume:.1f} m³ "
            f"(in {inflow:.1f}, direct {direct:.1f}, evap {evap:.1f}, "
            f"out {lake.runoff_out + lake.baseflow_out:.1f})"
        )
        return Result.success()
