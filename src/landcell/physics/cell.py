"""
Grid cell container, per-step context and step outputs.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import numpy as np

from landcell.core.constants import EPSILON
from landcell.core.exceptions import ErrorContext, ParameterError
from landcell.core.types import CellID, Record
from landcell.lake.stage import LakeParameters, LakeState
from landcell.physics.soil import SoilColumn
from landcell.physics.state import PriorStateSnapshot
from landcell.physics.vegetation import VegetationTile

logger = logging.getLogger(__name__)


@dataclass
class GridCell:
    """
    The unit of simulation.

    Owns the vegetation tiles (in index order), the soil column shared by
    every tile and, optionally, one lake.
    """
    tiles: List[VegetationTile]
    soil: SoilColumn
    lake: Optional[LakeState] = None
    lake_params: Optional[LakeParameters] = None
    cell_id: CellID = "cell"

    def __post_init__(self):
        context = ErrorContext(cell_id=self.cell_id, component="GridCell")
        indices = [tile.index for tile in self.tiles]
        if indices != list(range(len(self.tiles))):
            raise ParameterError(f"Tile indices must run 0..N in order, got {indices}", context)
        total_cv = sum(tile.cv for tile in self.tiles)
        if total_cv > 1.0 + 1e-6:
            raise ParameterError(f"Tile coverage sums to {total_cv:.6f} > 1", context)
        for tile in self.tiles:
            if len(tile.bands) != self.soil.n_bands:
                raise ParameterError(
                    f"Tile {tile.index} has {len(tile.bands)} bands, soil has {self.soil.n_bands}", context
                )
            if len(tile.root) != self.soil.n_layers:
                tile.update_root_fractions(self.soil)
        if (self.lake is None) != (self.lake_params is None):
            raise ParameterError("Lake state and lake parameters must be given together", context)
        if self.lake_params is not None:
            idx = self.lake_params.lake_idx
            if not 0 <= idx < len(self.tiles) or not self.tiles[idx].is_lake:
                raise ParameterError(f"Lake index {idx} does not refer to a lake tile", context)
            if self.soil.n_bands != 1:
                raise ParameterError(
                    f"Lake cells are solved as a single elevation band, soil has {self.soil.n_bands}", context
                )
            if not np.isclose(self.tiles[idx].cv, self.lake_params.Cl[0]):
                raise ParameterError(
                    f"Lake tile coverage {self.tiles[idx].cv:.6f} differs from the basin fraction "
                    f"{self.lake_params.Cl[0]:.6f}", context
                )
        elif any(tile.is_lake for tile in self.tiles):
            raise ParameterError("Lake tile present without lake parameters", context)

    @property
    def lake_tile(self) -> Optional[VegetationTile]:
        if self.lake_params is None:
            return None
        return self.tiles[self.lake_params.lake_idx]

    def band_fractions(self, tile: VegetationTile) -> np.ndarray:
        """Area fraction of each band for a tile"""
        return self.soil.area_fract


@dataclass
class StepContext:
    """Values local to one cell time step"""
    record: Record
    gauge_correction: Tuple[float, float] = (1.0, 1.0)
    dist_prcp: bool = False
    cv: Dict[int, float] = field(default_factory=dict)  # effective coverage by tile index
    lakefrac: float = 0.0
    fraci: float = 0.0
    snapshot: Optional[PriorStateSnapshot] = None

    def weight(self, tile: VegetationTile) -> float:
        return self.cv.get(tile.index, tile.cv)

    def branch_weights(self, tile: VegetationTile) -> Tuple[float, float]:
        return tile.branch_weights(self.dist_prcp)

    def total_cv(self) -> float:
        return float(sum(self.cv.values()))


@dataclass
class CellStepOutputs:
    """Cell-level totals of one time step (mm over the cell unless noted)"""
    prec: float = 0.0
    rain: float = 0.0
    snow: float = 0.0
    evap: float = 0.0
    runoff: float = 0.0
    baseflow: float = 0.0
    subsidence: np.ndarray = field(default_factory=lambda: np.zeros(0))  # mm per layer
    total_subsidence: float = 0.0  # m
    lakefrac: float = 0.0
    cv_total: float = 0.0  # active coverage after the lake discount
    lake_runoff_in: float = 0.0
    lake_baseflow_in: float = 0.0
    lake_runoff_out: float = 0.0  # m³
    lake_baseflow_out: float = 0.0  # m³
    storage_before: float = 0.0
    storage_after: float = 0.0
    water_balance_error: float = 0.0

    def as_record(self) -> Dict[str, Any]:
        """Flat mapping for tabular output"""
        row = {
            "prec": self.prec,
            "rain": self.rain,
            "snow": self.snow,
            "evap": self.evap,
            "runoff": self.runoff,
            "baseflow": self.baseflow,
            "total_subsidence": self.total_subsidence,
            "lakefrac": self.lakefrac,
            "cv_total": self.cv_total,
            "lake_runoff_in": self.lake_runoff_in,
            "lake_baseflow_in": self.lake_baseflow_in,
            "lake_runoff_out": self.lake_runoff_out,
            "lake_baseflow_out": self.lake_baseflow_out,
            "water_balance_error": self.water_balance_error,
        }
        for lidx, value in enumerate(self.subsidence):
            row[f"subsidence_{lidx}"] = float(value)
        return row


def weighted_sum(cell: GridCell, ctx: StepContext, value, include_lake: bool = True) -> float:
    """
    Coverage, band and branch weighted sum of ``value(cell_state, band)``
    over every active tile.
    """
    total = 0.0
    for tile in cell.tiles:
        if not tile.active or (tile.is_lake and not include_lake):
            continue
        cv = ctx.weight(tile)
        weights = ctx.branch_weights(tile)
        for b, frac in enumerate(cell.band_fractions(tile)):
            if frac <= 0:
                continue
            band = tile.bands[b]
            for dist, state in enumerate(band.branches()):
                if weights[dist] <= EPSILON:
                    continue
                total += value(state, band) * cv * frac * weights[dist]
    return total
