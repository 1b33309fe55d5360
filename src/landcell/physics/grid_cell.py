"""
Grid cell time step.

Composes the independent sub-area solves (vegetation tiles, elevation
bands, wet/dry precipitation branches) into one cell-level result:

1. Gauge undercatch correction, once per cell
2. Pre-step moisture snapshot when excess ice is enabled
3. Per active tile: lake fraction, accumulator reset, canopy attenuation,
   thermal preparation, aerodynamic resistances, then one surface flux
   solve per band with cell-level aggregation
4. Excess ice subsidence (may roll back and re-solve runoff)
5. Lake coupling
6. Cell outputs and status

Every aggregate is weighted by ``Cv * AreaFract`` (and ``mu`` for the
wet/dry branches when precipitation is distributed, otherwise the wet
branch carries the whole tile), with the lake tile's ``Cv`` reduced by
``1 - lakefrac``.
"""
import logging
from typing import NamedTuple, Optional

import numpy as np
import pandas as pd

from landcell.core.config import LandcellConfig, get_config
from landcell.core.constants import (
    CURRENT_VEG, MM_PER_M, N_PET_TYPES, N_PET_TYPES_NON_NAT, WATER_BALANCE_TOLERANCE,
)
from landcell.core.exceptions import ErrorContext, ParameterError
from landcell.core.types import (
    AeroSurface, AerodynamicProvider, Record, Result, RunoffSolver,
    SurfaceFluxSolver, ThermalSolver,
)
from landcell.lake.coupler import LakeCoupler
from landcell.lake.stage import get_depth, get_sarea, initialize_lake_fraction
from landcell.physics.aerodynamics import AerodynamicResistanceProvider, build_surface
from landcell.physics.cell import CellStepOutputs, GridCell, StepContext, weighted_sum
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.precipitation import correct_precip
from landcell.physics.runoff import ArnoRunoffSolver
from landcell.physics.soil import SoilColumn
from landcell.physics.state import CellState, PriorStateSnapshot
from landcell.physics.subsidence import SubsidenceAdjuster
from landcell.physics.surface_fluxes import SimpleSurfaceFluxSolver
from landcell.physics.thermal import ThermalNodeSolver
from landcell.physics.vegetation import REFERENCE_CLASSES, VegetationTile

logger = logging.getLogger(__name__)


class CellStepResult(NamedTuple):
    outputs: CellStepOutputs
    status: Result


def moisture_indices(state: CellState, root: np.ndarray, soil: SoilColumn, excess_ice: bool):
    """
    Root zone moisture and layer-averaged wetness of one branch.

    Wetness is the mean over layers of the plant-available fraction
    ``(moist + ice - Wpwp) / (porosity * depth * 1000 - Wpwp)``, using the
    effective porosity when excess ice is modelled. Layers below the
    wilting point contribute zero.

    Returns:
        (rootmoist in mm, wetness)
    """
    rootmoist = 0.0
    wetness = 0.0
    for lidx, layer in enumerate(state.layers):
        total = layer.total_moist(soil.frost_fract)
        if root[lidx] > 0:
            rootmoist += total
        porosity = soil.effective_porosity[lidx] if excess_ice else soil.porosity[lidx]
        capacity = porosity * soil.depth[lidx] * MM_PER_M - soil.Wpwp[lidx]
        if capacity > 0:
            wetness += max(0.0, total - soil.Wpwp[lidx]) / capacity
    return rootmoist, wetness / len(state.layers)


class GridCellModel:
    """
    Advances grid cells one time step at a time.

    Collaborators are injectable; by default the reference solvers of this
    package are used.
    """

    def __init__(
        self,
        config: Optional[LandcellConfig] = None,
        aerodynamics: Optional[AerodynamicProvider] = None,
        surface_solver: Optional[SurfaceFluxSolver] = None,
        runoff_solver: Optional[RunoffSolver] = None,
        thermal_solver: Optional[ThermalSolver] = None,
        lake_coupler: Optional[LakeCoupler] = None,
    ):
        self.config = config or get_config()
        self.aerodynamics = aerodynamics or AerodynamicResistanceProvider()
        self.runoff_solver = runoff_solver or ArnoRunoffSolver()
        self.surface_solver = surface_solver or SimpleSurfaceFluxSolver(self.runoff_solver)
        self.thermal_solver = thermal_solver or ThermalNodeSolver()
        self.subsidence = SubsidenceAdjuster(self.runoff_solver, self.thermal_solver)
        self.lake_coupler = lake_coupler or LakeCoupler()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def advance_cell(self, cell: GridCell, forcing: AtmosphereForcing, record: Record = 0) -> CellStepResult:
        """
        Advance one grid cell by one time step.

        A failed step returns immediately with the failure as status; cell
        state is left as mutated up to that point.

        Raises:
            ParameterError: if the cell layout disagrees with the configured
                structure, or subsidence drives the soil parameters out of
                their valid range
        """
        opts = self.config.options
        gp = self.config.global_params
        soil = cell.soil
        self.check_structure(cell)
        outputs = CellStepOutputs(subsidence=np.zeros(soil.n_layers))
        ctx = StepContext(record=record, dist_prcp=opts.dist_prcp)

        # Step 1: gauge undercatch correction
        if opts.corr_prec and forcing.prec > 0:
            ctx.gauge_correction = correct_precip(forcing.wind, gp.wind_h, soil.rough, soil.snow_rough)

        # Step 2: snapshot for a possible subsidence rollback
        if opts.excess_ice:
            ctx.snapshot = PriorStateSnapshot.capture(cell.tiles)

        # Step 3: solve every active tile
        for tile in cell.tiles:
            if not tile.active:
                continue
            result = self._solve_tile(cell, tile, forcing, ctx, outputs)
            if not result.ok:
                return self._fail(cell, ctx, outputs, result, f"tile {tile.index}")

        # Step 4: excess ice subsidence
        meltwater = 0.0
        if opts.excess_ice:
            subsided = self.subsidence.adjust(cell, ctx, self.config)
            if not subsided.ok:
                return self._fail(cell, ctx, outputs, subsided, "subsidence")
            outcome = subsided.value
            outputs.subsidence = outcome.subsidence_mm
            outputs.total_subsidence = outcome.total_subsidence_m
            if outcome.triggered:
                meltwater = outcome.total_meltwater_mm

        self._summarize_land(cell, ctx, outputs)

        # Step 5: lake coupling
        outputs.lakefrac = ctx.lakefrac
        if opts.lakes and cell.lake_params is not None and cell.lake_params.Cl[0] > 0:
            result = self.lake_coupler.couple(cell, forcing, ctx, outputs, meltwater, self.config)
            if not result.ok:
                return self._fail(cell, ctx, outputs, result, "lake")

        # Step 6: outputs
        self.logger.debug(
            f"Cell {cell.cell_id} record {record}: prec={outputs.prec:.3f} mm, "
            f"runoff={outputs.runoff:.3f} mm, baseflow={outputs.baseflow:.3f} mm, "
            f"WB_error={outputs.water_balance_error:.2e} mm"
        )
        return CellStepResult(outputs, Result.success())

    def check_structure(self, cell: GridCell):
        """Layer, band, frost subarea and node counts must match the options"""
        opts = self.config.options
        soil = cell.soil
        expected = (
            ("soil moisture layers", soil.n_layers, opts.n_layers),
            ("elevation bands", soil.n_bands, opts.snow_bands),
            ("frost subareas", soil.n_frost, opts.frost_subareas),
            ("thermal nodes", len(soil.node_depths), opts.n_nodes),
        )
        for name, found, configured in expected:
            if found != configured:
                raise ParameterError(
                    f"Cell has {found} {name}, configuration expects {configured}",
                    ErrorContext(cell_id=cell.cell_id, component=self.__class__.__name__),
                )

    def _fail(self, cell: GridCell, ctx: StepContext, outputs: CellStepOutputs,
              result: Result, where: str) -> CellStepResult:
        self.logger.error(
            f"Cell {cell.cell_id} record {ctx.record}: {result.failure.value} failure in {where}: "
            f"{result.message}"
        )
        return CellStepResult(outputs, Result.failed(result.failure, result.message))

    def _solve_tile(
        self,
        cell: GridCell,
        tile: VegetationTile,
        forcing: AtmosphereForcing,
        ctx: StepContext,
        outputs: CellStepOutputs,
    ) -> Result[None]:
        opts = self.config.options
        soil = cell.soil
        month = forcing.month

        # a. lake fraction and effective coverage
        cv = tile.cv
        if tile.is_lake and opts.lakes:
            result = self._initialize_lake(cell, ctx)
            if not result.ok:
                return result
            cv *= 1.0 - ctx.lakefrac
        ctx.cv[tile.index] = cv
        fractions = cell.band_fractions(tile)

        tile_storage = self._tile_storage(cell, tile)
        outputs.storage_before += cv * tile_storage

        # b. reset per-step accumulators
        for b, band in enumerate(tile.bands):
            band.energy.shortwave = 0.0
            band.energy.longwave = 0.0
            band.snow.vapor_flux = 0.0
            band.snow.canopy_vapor_flux = 0.0
            band.snow.melt = 0.0
            for state in band.branches():
                state.inflow = 0.0
                state.pot_evap[:] = 0.0
            band.veg_wet.throughfall = 0.0
            band.veg_dry.throughfall = 0.0

        # c. shortwave attenuation through the canopy
        surf_atten = tile.veg_class.surface_attenuation(month)

        # d. top layer thermal state
        if opts.full_energy or opts.frozen_soil:
            moist0, ice0 = self.thermal_solver.prepare_full_energy(tile, soil, self.config)
        else:
            moist0 = np.zeros(soil.n_bands)
            ice0 = np.zeros(soil.n_bands)

        # e. aerodynamic resistance for every reference surface
        aero_resist = np.zeros((N_PET_TYPES + 1, 3))
        surface: Optional[AeroSurface] = None
        for p in range(N_PET_TYPES + 1):
            if p < N_PET_TYPES_NON_NAT:
                veg_class = REFERENCE_CLASSES[p]
            else:
                veg_class = tile.veg_class
            candidate = build_surface(veg_class, month, veg_class.wind_h, soil, use_soil_rough=p >= N_PET_TYPES_NON_NAT)
            resist = self.aerodynamics.resistance(candidate, forcing.wind, soil)
            if not resist.ok:
                return resist
            aero_resist[p] = resist.value[0]
            if p == CURRENT_VEG:
                surface = candidate
        for b, band in enumerate(tile.bands):
            if fractions[b] > 0:
                band.wet.aero_resist = aero_resist[CURRENT_VEG][:2].copy()

        # f. surface flux solve per band
        for b, frac in enumerate(fractions):
            if frac <= 0:
                continue
            band = tile.bands[b]
            solved = self.surface_solver.solve(
                tile, b, band, forcing, soil, aero_resist, surface, ctx.gauge_correction,
                surf_atten, float(moist0[b]), float(ice0[b]), self.config,
            )
            if not solved.ok:
                return solved
            out = solved.value
            outputs.prec += out.prec * cv * frac
            outputs.rain += out.rain * cv * frac
            outputs.snow += out.snow * cv * frac

            for state in band.branches():
                state.rootmoist, state.wetness = moisture_indices(state, tile.root, soil, opts.excess_ice)
            if ctx.snapshot is not None:
                ctx.snapshot.record_evaporation(tile.index, b, band)

        self.logger.debug(
            f"Tile {tile.index}: Cv={cv:.4f}, storage before {tile_storage:.3f} mm, "
            f"after {self._tile_storage(cell, tile):.3f} mm"
        )
        return Result.success()

    def _initialize_lake(self, cell: GridCell, ctx: StepContext) -> Result[None]:
        """Lake depth, area and fractions from the previous step's volume"""
        lake = cell.lake
        params = cell.lake_params
        depth = get_depth(params, lake.volume)
        if not depth.ok:
            return depth
        lake.ldepth = depth.value
        sarea = get_sarea(params, lake.ldepth)
        if not sarea.ok:
            return sarea
        lake.sarea = sarea.value
        lake.areai = lake.new_ice_area
        fractions = initialize_lake_fraction(lake, params)
        if not fractions.ok:
            return fractions
        ctx.lakefrac, ctx.fraci = fractions.value
        return Result.success()

    def _tile_storage(self, cell: GridCell, tile: VegetationTile) -> float:
        """Soil and snow water of one tile (mm over the tile)"""
        frost = cell.soil.frost_fract
        weights = tile.branch_weights(self.config.options.dist_prcp)
        storage = 0.0
        for b, frac in enumerate(cell.band_fractions(tile)):
            if frac <= 0:
                continue
            band = tile.bands[b]
            soil_water = sum(w * state.storage(frost) for w, state in zip(weights, band.branches()))
            storage += frac * (soil_water + band.snow.swq)
        return storage

    def _summarize_land(self, cell: GridCell, ctx: StepContext, outputs: CellStepOutputs):
        """Land surface runoff, evaporation and water balance before lake coupling"""
        outputs.cv_total = ctx.total_cv()
        outputs.runoff = weighted_sum(cell, ctx, lambda state, band: state.runoff)
        outputs.baseflow = weighted_sum(cell, ctx, lambda state, band: state.baseflow)
        outputs.evap = weighted_sum(cell, ctx, lambda state, band: sum(layer.evap for layer in state.layers))
        outputs.storage_after = sum(
            ctx.weight(tile) * self._tile_storage(cell, tile) for tile in cell.tiles if tile.active
        )
        outputs.water_balance_error = (
            outputs.storage_before + outputs.prec
            - outputs.evap - outputs.runoff - outputs.baseflow
            - outputs.storage_after
        )
        if abs(outputs.water_balance_error) > WATER_BALANCE_TOLERANCE:
            self.logger.warning(
                f"Cell {cell.cell_id} record {ctx.record}: land water balance error "
                f"{outputs.water_balance_error:.2e} mm"
            )

    def run_period(self, cell: GridCell, forcings: pd.DataFrame) -> pd.DataFrame:
        """
        Advance a cell over consecutive forcing records.

        Args:
            cell: Grid cell to advance (mutated in place)
            forcings: One row per record with the AtmosphereForcing fields;
                the month comes from a DatetimeIndex or a ``month`` column

        Returns:
            DataFrame of step outputs, one row per successful record. The run
            stops at the first failed step.
        """
        self.logger.info(f"Running cell {cell.cell_id} for {len(forcings)} records")
        results = []
        index = []

        for record, (idx, row) in enumerate(forcings.iterrows()):
            month = idx.month if isinstance(idx, pd.Timestamp) else int(row.get("month", 1))
            forcing = AtmosphereForcing.from_mapping(row, month)
            step = self.advance_cell(cell, forcing, record)
            if not step.status.ok:
                self.logger.error(
                    f"Run of cell {cell.cell_id} stopped at record {record} ({step.status.failure.value})"
                )
                break
            results.append(step.outputs.as_record())
            index.append(idx)

        df = pd.DataFrame(results, index=index)
        if len(df):
            self.logger.info(
                f"Run complete. Max |WB error|: {df['water_balance_error'].abs().max():.2e} mm"
            )
        return df
