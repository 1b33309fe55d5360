"""
Tests for the grid cell time step: aggregation weights, failure
propagation, lake coverage discount and water balance closure.
"""
import numpy as np
import pandas as pd
import pytest

from conftest import (
    RecordingRunoffSolver, StubSurfaceSolver, make_config, make_forcing, make_soil, make_tile,
)
from landcell.core.constants import ERROR, SUCCESS
from landcell.core.exceptions import ParameterError
from landcell.core.types import FailureKind, Result
from landcell.lake.stage import LakeParameters, LakeState
from landcell.physics.cell import GridCell
from landcell.physics.grid_cell import GridCellModel, moisture_indices
from landcell.physics.state import CellState


class RecordingLakeCoupler:
    def __init__(self):
        self.calls = 0

    def couple(self, cell, forcing, ctx, outputs, meltwater_mm, config):
        self.calls += 1
        return Result.success()


def lake_cell(soil, volume=5.0e7, mindepth=3.0):
    """Land tile at Cv 0.7 and a lake tile at Cv 0.3"""
    tiles = [
        make_tile(0, 0.7, soil),
        make_tile(1, 0.3, soil, is_lake=True),
    ]
    params = LakeParameters(
        lake_idx=1, depths=[0.0, 2.0, 5.0], areas=[0.0, 2.0e7, 3.0e7],
        cell_area=soil.cell_area, mindepth=mindepth, rpercent=0.5,
    )
    return GridCell(tiles=tiles, soil=soil, lake=LakeState(volume=volume), lake_params=params)


class TestAggregation:
    """Cell totals are coverage and band weighted sums of the tile solves"""

    def test_single_tile_precipitation(self, soil, forcing):
        """A full-cover tile passes its precipitation straight through"""
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        model = GridCellModel(config=make_config(), surface_solver=StubSurfaceSolver(prec=7.3))

        step = model.advance_cell(cell, forcing)

        assert step.status.ok
        assert step.status.code == SUCCESS
        assert step.outputs.prec == pytest.approx(7.3)
        assert step.outputs.cv_total == pytest.approx(1.0)

    @pytest.mark.parametrize("coverage", [(0.6, 0.4), (0.4, 0.6)])
    def test_runoff_weighted_by_coverage(self, soil, forcing, coverage):
        """Equal tile runoff gives the same cell runoff whatever the tile order"""
        r = 4.2
        tiles = [make_tile(i, cv, soil) for i, cv in enumerate(coverage)]
        cell = GridCell(tiles=tiles, soil=soil)
        stub = StubSurfaceSolver(runoff={0: r, 1: r})
        model = GridCellModel(config=make_config(), surface_solver=stub)

        step = model.advance_cell(cell, forcing)

        assert step.status.ok
        assert step.outputs.runoff == pytest.approx(r)

    def test_elevation_band_weights(self, forcing):
        """Band area fractions weight precipitation"""
        soil = make_soil(area_fract=[0.25, 0.75], pfactor=[1.0, 1.0], tfactor=[0.0, 0.0])
        cell = GridCell(tiles=[make_tile(0, 0.8, soil)], soil=soil)
        stub = StubSurfaceSolver(prec=10.0)
        model = GridCellModel(config=make_config(snow_bands=2), surface_solver=stub)

        step = model.advance_cell(cell, forcing)

        assert step.outputs.prec == pytest.approx(8.0)
        assert stub.calls == [(0, 0), (0, 1)]

    def test_zero_area_band_not_solved(self, forcing):
        soil = make_soil(area_fract=[1.0, 0.0], pfactor=[1.0, 1.0], tfactor=[0.0, 0.0])
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        stub = StubSurfaceSolver()
        model = GridCellModel(config=make_config(snow_bands=2), surface_solver=stub)

        model.advance_cell(cell, forcing)

        assert stub.calls == [(0, 0)]

    def test_inactive_tile_skipped(self, soil, forcing):
        tiles = [make_tile(0, 0.0, soil), make_tile(1, 1.0, soil)]
        cell = GridCell(tiles=tiles, soil=soil)
        stub = StubSurfaceSolver()
        model = GridCellModel(config=make_config(), surface_solver=stub)

        model.advance_cell(cell, forcing)

        assert [call[0] for call in stub.calls] == [1]


class TestDistributedPrecipitation:
    """The wet/dry split follows mu only when precipitation is distributed"""

    @pytest.mark.parametrize("dist_prcp,expected", [(True, (8.0 / 0.6, 0.0)), (False, (8.0, 8.0))])
    def test_branch_inflow(self, soil, dist_prcp, expected):
        cell = GridCell(tiles=[make_tile(0, 1.0, soil, mu=0.6)], soil=soil)
        runoff = RecordingRunoffSolver()
        model = GridCellModel(config=make_config(dist_prcp=dist_prcp), runoff_solver=runoff)

        step = model.advance_cell(cell, make_forcing(air_temp=15.0, prec=8.0))

        assert step.status.ok, step.status.message
        assert runoff.calls[0]["ppt"] == pytest.approx(expected)

    def test_dry_branch_unweighted_without_distribution(self, soil):
        """Dry branch storage does not enter the cell totals"""
        cell = GridCell(tiles=[make_tile(0, 1.0, soil, mu=0.6)], soil=soil)
        stub = StubSurfaceSolver(runoff={0: 3.0})
        model = GridCellModel(config=make_config(dist_prcp=False), surface_solver=stub)

        step = model.advance_cell(cell, make_forcing())

        assert step.outputs.runoff == pytest.approx(3.0)
        assert step.outputs.storage_after == pytest.approx(cell.tiles[0].bands[0].wet.storage(soil.frost_fract))


class TestStructureCheck:
    """The soil column layout must match the configured structure"""

    @pytest.mark.parametrize("options,match", [
        ({"snow_bands": 2}, "elevation bands"),
        ({"n_layers": 4}, "soil moisture layers"),
        ({"spatial_frost": True, "frost_subareas": 3}, "frost subareas"),
        ({"n_nodes": 8}, "thermal nodes"),
    ])
    def test_mismatch_rejected(self, soil, forcing, options, match):
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        stub = StubSurfaceSolver()
        model = GridCellModel(config=make_config(**options), surface_solver=stub)

        with pytest.raises(ParameterError, match=match):
            model.advance_cell(cell, forcing)
        assert stub.calls == []

    def test_frost_subareas_accepted(self, forcing):
        soil = make_soil(frost_fract=[0.25, 0.5, 0.25])
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        model = GridCellModel(
            config=make_config(spatial_frost=True, frost_subareas=3), surface_solver=StubSurfaceSolver(),
        )

        assert model.advance_cell(cell, forcing).status.ok


class TestFailurePropagation:
    """A failing sub-area solve ends the step without touching later work"""

    def test_failure_stops_remaining_tiles(self, soil, forcing):
        tiles = [make_tile(i, 1.0 / 3.0, soil) for i in range(3)]
        cell = GridCell(tiles=tiles, soil=soil)
        stub = StubSurfaceSolver(fail_on_tile=1)
        coupler = RecordingLakeCoupler()
        model = GridCellModel(config=make_config(), surface_solver=stub, lake_coupler=coupler)

        step = model.advance_cell(cell, forcing)

        assert not step.status.ok
        assert step.status.code == ERROR
        assert step.status.failure == FailureKind.SURFACE_FLUX
        assert 2 not in [call[0] for call in stub.calls]
        assert coupler.calls == 0

    def test_run_period_stops_at_failure(self, soil):
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        model = GridCellModel(config=make_config(), surface_solver=StubSurfaceSolver(fail_on_tile=0))
        forcings = pd.DataFrame(
            [vars(make_forcing())] * 3,
            index=pd.date_range("2001-06-01", periods=3, freq="D"),
        ).drop(columns="month")

        df = model.run_period(cell, forcings)

        assert len(df) == 0


class TestLakeCoverage:
    """The lake tile's coverage is reduced by its open water fraction"""

    def test_coverage_and_fraction_bounds(self, forcing):
        soil = make_soil()
        cell = lake_cell(soil)
        model = GridCellModel(config=make_config(lakes=True))

        step = model.advance_cell(cell, forcing)

        assert step.status.ok, step.status.message
        assert 0.0 <= step.outputs.cv_total <= 1.0
        assert step.outputs.cv_total < 1.0
        assert 0.0 <= step.outputs.lakefrac <= 1.0
        assert step.outputs.lake_runoff_out >= 0.0

    def test_lake_skipped_when_disabled(self, forcing):
        soil = make_soil()
        cell = lake_cell(soil)
        coupler = RecordingLakeCoupler()
        model = GridCellModel(config=make_config(lakes=False), lake_coupler=coupler)

        step = model.advance_cell(cell, forcing)

        assert step.status.ok
        assert coupler.calls == 0
        assert step.outputs.cv_total == pytest.approx(1.0)

    def test_invalid_lake_volume_fails(self, forcing):
        soil = make_soil()
        cell = lake_cell(soil, volume=-1.0)
        model = GridCellModel(config=make_config(lakes=True))

        step = model.advance_cell(cell, forcing)

        assert step.status.failure == FailureKind.STAGE_INVERSION


class TestMoistureIndices:
    """Root zone moisture and wetness of a branch"""

    def test_wetness_zero_at_wilting_point(self, soil):
        state = CellState.initial(soil.Wpwp)
        root = np.array([0.5, 0.5, 0.0])

        rootmoist, wetness = moisture_indices(state, root, soil, excess_ice=False)

        assert wetness == pytest.approx(0.0)
        assert rootmoist == pytest.approx(soil.Wpwp[0] + soil.Wpwp[1])

    def test_wetness_below_wilting_point_clamped(self, soil):
        state = CellState.initial(0.5 * soil.Wpwp)
        _, wetness = moisture_indices(state, np.ones(3) / 3, soil, excess_ice=False)
        assert wetness == 0.0

    def test_wetness_increases_with_moisture(self, soil):
        root = np.ones(3) / 3
        values = []
        for fraction in (0.5, 0.6, 0.8, 1.0):
            state = CellState.initial(fraction * soil.max_moist)
            values.append(moisture_indices(state, root, soil, excess_ice=False)[1])

        assert np.all(np.diff(values) > 0)
        assert values[-1] == pytest.approx(1.0)

    def test_ice_counts_toward_wetness(self, soil):
        root = np.ones(3) / 3
        liquid = CellState.initial(soil.Wpwp + 10.0)
        frozen = CellState.initial(soil.Wpwp, ice=[10.0, 10.0, 10.0])

        assert moisture_indices(frozen, root, soil, False)[1] == pytest.approx(
            moisture_indices(liquid, root, soil, False)[1]
        )


class TestWaterBalance:
    """Full step with the reference solvers"""

    @pytest.fixture
    def forcings(self):
        index = pd.date_range("2001-03-01", periods=10, freq="D")
        air_temp = [-5.0, -3.0, -1.0, 0.0, 2.0, 6.0, 10.0, 12.0, 8.0, 4.0]
        prec = [6.0, 0.0, 4.0, 12.0, 0.0, 25.0, 0.0, 3.0, 40.0, 0.0]
        return pd.DataFrame({
            "air_temp": air_temp,
            "prec": prec,
            "wind": 3.0,
            "shortwave": 180.0,
            "longwave": 300.0,
            "vp": 800.0,
            "vpd": 400.0,
            "pressure": 95000.0,
            "density": 1.25,
        }, index=index)

    def test_closure_over_period(self, forcings):
        soil = make_soil()
        tiles = [make_tile(0, 0.55, soil), make_tile(1, 0.45, soil, mu=0.6)]
        cell = GridCell(tiles=tiles, soil=soil)
        model = GridCellModel(config=make_config(dist_prcp=True))

        df = model.run_period(cell, forcings)

        assert len(df) == len(forcings)
        assert (df["water_balance_error"].abs() < 1e-6).all()
        assert (df["runoff"] >= 0).all()
        assert (df["baseflow"] >= 0).all()
        assert df["prec"].sum() == pytest.approx(sum(forcings["prec"]))

    def test_outputs_indexed_by_date(self, forcings):
        soil = make_soil()
        cell = GridCell(tiles=[make_tile(0, 1.0, soil)], soil=soil)
        df = GridCellModel(config=make_config()).run_period(cell, forcings)

        assert list(df.index) == list(forcings.index)
        assert "subsidence_2" in df.columns
