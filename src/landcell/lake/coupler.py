"""
Coupling of the lake with the rest of the grid cell.

Runoff and baseflow from the land tiles are partly routed into the lake,
the wetland part of the lake tile drains into it completely, the lake
energy and water budgets are solved, and the result is redistributed
between the open water and the wetland remainder of the lake tile.
"""
import logging
from typing import Optional

from landcell.core.config import LandcellConfig
from landcell.core.constants import EPSILON, MM_PER_M, SNOW
from landcell.core.types import FailureKind, LakeEnergySolver, LakeWaterBalanceSolver, Result
from landcell.lake.solvers import SimpleLakeEnergySolver, SimpleLakeWaterBalanceSolver
from landcell.lake.stage import LakeParameters, LakeState, get_depth, get_sarea
from landcell.physics.cell import CellStepOutputs, GridCell, StepContext
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.precipitation import calc_rainonly
from landcell.physics.soil import SoilColumn
from landcell.physics.vegetation import VegetationTile

logger = logging.getLogger(__name__)

_BLENDED_ENERGY = (
    "shortwave", "longwave", "net_short", "net_long", "latent", "sensible",
    "grnd_flux", "albedo", "T_surf",
)
_BLENDED_SNOW = ("swq", "depth", "coverage", "melt", "albedo", "vapor_flux")


def update_prcp(
    tile: VegetationTile,
    lake: LakeState,
    params: LakeParameters,
    soil: SoilColumn,
    lakefrac: float,
    dist_prcp: bool = False,
) -> Result[float]:
    """
    Reallocate the solved lake fluxes between the open water and the
    wetland remainder of the lake tile.

    Exposed lake bed enters the wetland saturated. Wetland drowned by a
    growing lake is brought to saturation with lake water. Lake outflow is
    stored on band 0 as runoff/baseflow depth over the tile, and band 0
    energy and snow become the lake-fraction weighted blend.

    Args:
        tile: The lake tile
        lake: Lake state after the water balance solve
        params: Lake parameters
        soil: Soil column
        lakefrac: Open water fraction at the start of the step
        dist_prcp: Whether the wet/dry branches are distributed

    Returns:
        Result holding the new lake fraction
    """
    new_lakefrac = min(1.0, lake.sarea / params.basin_area)
    band = tile.bands[0]
    weights = tile.branch_weights(dist_prcp)
    tile_area = tile.cv * soil.cell_area

    drowned_volume = 0.0
    for dist, state in enumerate(band.branches()):
        for lidx, layer in enumerate(state.layers):
            liq_max = max(0.0, soil.max_moist[lidx] - layer.mean_ice(soil.frost_fract))
            if new_lakefrac < lakefrac:
                if 1.0 - lakefrac <= EPSILON:
                    layer.moist = liq_max
                else:
                    layer.moist = (layer.moist * (1.0 - lakefrac) + liq_max * (lakefrac - new_lakefrac)) / (
                        1.0 - new_lakefrac
                    )
            elif new_lakefrac > lakefrac:
                deficit = max(0.0, liq_max - layer.moist)
                drowned_volume += weights[dist] * deficit / MM_PER_M * (new_lakefrac - lakefrac) * tile_area

    if drowned_volume > 0:
        lake.volume = max(0.0, lake.volume - drowned_volume)
        depth = get_depth(params, lake.volume)
        if not depth.ok:
            return Result.failed(depth.failure, depth.message)
        sarea = get_sarea(params, depth.value)
        if not sarea.ok:
            return Result.failed(sarea.failure, sarea.message)
        lake.ldepth = depth.value
        lake.sarea = sarea.value
        lake.areai = min(lake.areai, lake.sarea)

    # Lake outflow as depth over the lake tile
    if tile_area > 0:
        for state in band.branches():
            state.runoff = lake.runoff_out / tile_area * MM_PER_M
            state.baseflow = lake.baseflow_out / tile_area * MM_PER_M

    for name in _BLENDED_ENERGY:
        blended = new_lakefrac * getattr(lake.energy, name) + (1.0 - new_lakefrac) * getattr(band.energy, name)
        setattr(band.energy, name, blended)
    for name in _BLENDED_SNOW:
        blended = new_lakefrac * getattr(lake.snow, name) + (1.0 - new_lakefrac) * getattr(band.snow, name)
        setattr(band.snow, name, blended)

    logger.debug(f"Lake fraction {lakefrac:.4f} -> {new_lakefrac:.4f}")
    return Result.success(float(new_lakefrac))


class LakeCoupler:
    """Routes cell runoff into the lake and solves the lake for one step"""

    def __init__(
        self,
        energy_solver: Optional[LakeEnergySolver] = None,
        water_solver: Optional[LakeWaterBalanceSolver] = None,
    ):
        self.energy_solver = energy_solver or SimpleLakeEnergySolver()
        self.water_solver = water_solver or SimpleLakeWaterBalanceSolver()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def collect_inflow(self, cell: GridCell, ctx: StepContext) -> None:
        """
        Sum the runoff and baseflow routed to the lake.

        Land tiles keep ``1 - rpercent`` of their runoff and baseflow; the
        wetland part of the lake tile drains into the lake entirely.
        """
        params = cell.lake_params
        sum_runoff = sum_baseflow = 0.0
        wetland_runoff = wetland_baseflow = 0.0

        for tile in cell.tiles:
            if not tile.active:
                continue
            cv = ctx.weight(tile)
            weights = ctx.branch_weights(tile)
            for b, frac in enumerate(cell.band_fractions(tile)):
                if frac <= 0:
                    continue
                for dist, state in enumerate(tile.bands[b].branches()):
                    w = weights[dist] * cv * frac
                    if tile.is_lake:
                        wetland_runoff += state.runoff * w
                        wetland_baseflow += state.baseflow * w
                        state.runoff = 0.0
                        state.baseflow = 0.0
                    else:
                        sum_runoff += state.runoff * w
                        sum_baseflow += state.baseflow * w
                        state.runoff *= 1.0 - params.rpercent
                        state.baseflow *= 1.0 - params.rpercent

        cell.lake.runoff_in = sum_runoff * params.rpercent + wetland_runoff
        cell.lake.baseflow_in = sum_baseflow * params.rpercent + wetland_baseflow

    def couple(
        self,
        cell: GridCell,
        forcing: AtmosphereForcing,
        ctx: StepContext,
        outputs: CellStepOutputs,
        meltwater_mm: float,
        config: LandcellConfig,
    ) -> Result[None]:
        """
        Run the lake for one step.

        Any partition or solver failure is returned as is; lake results are
        only redistributed when every solve succeeded.
        """
        lake = cell.lake
        params = cell.lake_params
        gp = config.global_params

        self.collect_inflow(cell, ctx)
        outputs.lake_runoff_in = lake.runoff_in
        outputs.lake_baseflow_in = lake.baseflow_in

        rainonly = calc_rainonly(forcing.air_temp, forcing.prec, gp.max_snow_temp, gp.min_rain_temp)
        if not rainonly.ok:
            return Result.failed(rainonly.failure, rainonly.message)

        oldvolume = lake.volume
        oldsnow = lake.snow.swq
        snowprec = ctx.gauge_correction[SNOW] * (forcing.prec - rainonly.value)
        rainprec = ctx.gauge_correction[SNOW] * rainonly.value
        outputs.prec += (snowprec + rainprec) * params.Cl[0] * ctx.lakefrac

        result = self.energy_solver.solve(
            snowprec, rainprec, forcing, lake, params, cell.soil, ctx.fraci, config
        )
        if not result.ok:
            return result

        result = self.water_solver.solve(
            lake, params, cell.soil, ctx.lakefrac, snowprec + rainprec, oldvolume,
            oldsnow - lake.snow.swq, meltwater_mm, config,
        )
        if not result.ok:
            return result

        lakefrac = update_prcp(cell.lake_tile, lake, params, cell.soil, ctx.lakefrac, ctx.dist_prcp)
        if not lakefrac.ok:
            return Result.failed(FailureKind.LAKE_WATER_BALANCE, lakefrac.message)

        outputs.lakefrac = lakefrac.value
        outputs.lake_runoff_out = lake.runoff_out
        outputs.lake_baseflow_out = lake.baseflow_out
        self.logger.debug(
            f"Lake inflow runoff={lake.runoff_in:.3f} mm baseflow={lake.baseflow_in:.3f} mm, "
            f"volume {oldvolume:.1f} -> {lake.volume:.1f} m³"
        )
        return Result.success()
