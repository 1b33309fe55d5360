"""
Excess ice subsidence.

Soil layers holding excess ice (effective porosity above the natural
porosity) collapse once the cell-average ice content of the layer falls to
a threshold fraction of its capacity. The collapse shrinks the layer,
re-derives every soil parameter that depends on layer depth, and replaces
the first runoff pass of the step with a re-solve from the pre-step
moisture.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from landcell.core.config import BaseflowMode, LandcellConfig
from landcell.core.constants import MM_PER_M, WET, DRY
from landcell.core.types import Result, RunoffSolver, ThermalSolver
from landcell.physics.cell import GridCell, StepContext
from landcell.physics.runoff import ArnoRunoffSolver
from landcell.physics.thermal import ThermalNodeSolver

logger = logging.getLogger(__name__)


@dataclass
class SubsidenceOutcome:
    """Result of one subsidence pass"""
    triggered: bool = False
    subsidence_mm: np.ndarray = field(default_factory=lambda: np.zeros(0))
    total_subsidence_m: float = 0.0
    total_meltwater_mm: float = 0.0

    @property
    def applied(self) -> bool:
        """True when at least one layer actually lost depth"""
        return self.total_subsidence_m > 0


def round_to_mm(depth: float) -> float:
    """Round a depth in m to whole millimetres"""
    return int(depth * MM_PER_M + 0.5) / MM_PER_M


class SubsidenceAdjuster:
    """Detects and applies excess ice subsidence for one cell step"""

    def __init__(
        self,
        runoff_solver: Optional[RunoffSolver] = None,
        thermal_solver: Optional[ThermalSolver] = None,
    ):
        self.runoff_solver = runoff_solver or ArnoRunoffSolver()
        self.thermal_solver = thermal_solver or ThermalNodeSolver()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def layer_ice(self, cell: GridCell, ctx: StepContext, lidx: int, config: LandcellConfig) -> Tuple[float, float]:
        """
        Weighted ice content of a layer and the largest single ice value.

        Returns:
            (sum of ice * frost_fract * Cv * mu * AreaFract, max ice in mm)
        """
        soil = cell.soil
        branches = (WET, DRY)[:config.options.n_dist]
        ave_ice = 0.0
        max_ice = 0.0
        for tile in cell.tiles:
            if not tile.active:
                continue
            cv = ctx.weight(tile)
            weights = ctx.branch_weights(tile)
            for b, frac in enumerate(cell.band_fractions(tile)):
                if frac <= 0:
                    continue
                band = tile.bands[b]
                for dist in branches:
                    ice = band.branch(dist).layers[lidx].ice
                    max_ice = max(max_ice, float(np.max(ice)))
                    ave_ice += float(np.dot(ice, soil.frost_fract)) * cv * weights[dist] * frac
        return ave_ice, max_ice

    def detect(self, cell: GridCell, ctx: StepContext, config: LandcellConfig) -> np.ndarray:
        """
        Layers whose average ice fraction is at or below the threshold.

        Layers without excess ice are never flagged. Nothing is mutated.
        """
        soil = cell.soil
        flagged = np.zeros(soil.n_layers, dtype=bool)
        for lidx in range(soil.n_layers):
            if soil.effective_porosity[lidx] <= soil.porosity[lidx]:
                continue
            ave_ice, _ = self.layer_ice(cell, ctx, lidx, config)
            flagged[lidx] = ave_ice / soil.max_moist[lidx] <= config.options.ice_at_subsidence
        return flagged

    def adjust(self, cell: GridCell, ctx: StepContext, config: LandcellConfig) -> Result[SubsidenceOutcome]:
        """
        Apply subsidence to the soil column and re-solve runoff if any layer
        lost depth.

        Raises:
            ParameterError: if the re-derived wilting point violates its
                bounds (see ``SoilColumn.update_critical_moisture``)
        """
        soil = cell.soil
        opts = config.options
        outcome = SubsidenceOutcome(subsidence_mm=np.zeros(soil.n_layers))

        for lidx in range(soil.n_layers):
            if soil.effective_porosity[lidx] <= soil.porosity[lidx]:
                continue
            ave_ice, max_ice = self.layer_ice(cell, ctx, lidx, config)
            if ave_ice / soil.max_moist[lidx] > opts.ice_at_subsidence:
                continue

            outcome.triggered = True
            depth_prior = float(soil.depth[lidx])
            loss_mm = min(MM_PER_M * depth_prior - max_ice, opts.max_subsidence_mm)
            new_depth = depth_prior - loss_mm / MM_PER_M
            at_floor = new_depth <= soil.min_depth[lidx]
            if at_floor:
                new_depth = float(soil.min_depth[lidx])
            soil.depth[lidx] = max(round_to_mm(new_depth), float(soil.min_depth[lidx]))
            outcome.subsidence_mm[lidx] = (depth_prior - soil.depth[lidx]) * MM_PER_M
            outcome.total_subsidence_m += depth_prior - soil.depth[lidx]

            if outcome.subsidence_mm[lidx] > 0:
                old_porosity = soil.effective_porosity[lidx]
                soil.effective_porosity[lidx] = 1.0 - (1.0 - old_porosity) * depth_prior / soil.depth[lidx]
                if at_floor:
                    soil.effective_porosity[lidx] = soil.porosity[lidx]
                soil.bulk_density[lidx] = (1.0 - soil.effective_porosity[lidx]) * soil.soil_density[lidx]
                new_max_moist = soil.depth[lidx] * soil.effective_porosity[lidx] * MM_PER_M
                outcome.total_meltwater_mm += soil.max_moist[lidx] - new_max_moist
                soil.max_moist[lidx] = new_max_moist
                self.logger.info(
                    f"Subsidence of {outcome.subsidence_mm[lidx] / MM_PER_M:.3f} m in layer {lidx + 1} "
                    f"(depth {depth_prior:.3f} -> {soil.depth[lidx]:.3f} m, "
                    f"effective porosity {old_porosity:.3f} -> {soil.effective_porosity[lidx]:.3f})"
                )

        if outcome.applied:
            result = self._rederive_and_resolve(cell, ctx, outcome, config)
            if not result.ok:
                return Result.failed(result.failure, result.message)

        soil.subsidence = outcome.subsidence_mm.copy()
        return Result.success(outcome)

    def _rederive_and_resolve(
        self, cell: GridCell, ctx: StepContext, outcome: SubsidenceOutcome, config: LandcellConfig
    ) -> Result[None]:
        soil = cell.soil
        self.logger.info(
            f"Damping depth decreased from {soil.dp:.3f} m to {soil.dp - outcome.total_subsidence_m:.3f} m"
        )
        soil.dp -= outcome.total_subsidence_m
        soil.update_max_infil()
        soil.update_critical_moisture()
        if config.options.baseflow == BaseflowMode.NIJSSEN2001:
            soil.convert_baseflow_parameters()
        for tile in cell.tiles:
            tile.update_root_fractions(soil)

        # Replace the first runoff pass with a solve from the pre-step state
        ctx.snapshot.restore(cell.tiles)
        for tile in cell.tiles:
            if not tile.active:
                continue
            for b, frac in enumerate(cell.band_fractions(tile)):
                if frac <= 0:
                    continue
                band = tile.bands[b]
                ppt = (band.wet.inflow, band.dry.inflow)
                result = self.runoff_solver.solve(
                    band.wet, band.dry, soil, ppt, tile.wet_fraction(config.options.dist_prcp), config
                )
                if not result.ok:
                    return result

        return self.thermal_solver.update_thermal_nodes(cell.tiles, soil, config)
