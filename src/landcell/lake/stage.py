"""
Lake parameters, lake state and the stage-area-volume relationship.

The basin is described by a table of water depths (above the lake bottom)
and the surface area at each depth. Area varies linearly between table
entries, so volume is piecewise quadratic in depth and can be inverted
exactly segment by segment.
"""
import logging
from dataclasses import dataclass, field
from typing import Tuple

import numpy as np
from scipy.integrate import cumulative_trapezoid

from landcell.core.exceptions import ErrorContext, ParameterError
from landcell.core.types import FailureKind, Result
from landcell.physics.state import EnergyState, SnowState

logger = logging.getLogger(__name__)


@dataclass
class LakeParameters:
    """Static lake basin parameters"""
    lake_idx: int
    depths: np.ndarray  # m, increasing from 0
    areas: np.ndarray  # m², surface area at each depth
    cell_area: float  # m²
    mindepth: float = 0.0  # outflow threshold depth (m)
    rpercent: float = 0.0  # fraction of cell runoff routed to the lake
    bpercent: float = 1.0  # fraction of lake baseflow leaving the cell
    wfrac: float = 0.1  # outlet width as fraction of lake perimeter
    Cl: np.ndarray = field(init=False)

    def __post_init__(self):
        self.depths = np.asarray(self.depths, dtype=float)
        self.areas = np.asarray(self.areas, dtype=float)
        context = ErrorContext(component="LakeParameters")
        if len(self.depths) != len(self.areas) or len(self.depths) < 2:
            raise ParameterError("Lake stage table needs matching depth and area entries (>= 2)", context)
        if self.depths[0] != 0.0 or np.any(np.diff(self.depths) <= 0):
            raise ParameterError("Lake depths must start at 0 and increase strictly", context)
        if np.any(np.diff(self.areas) < 0) or self.areas[0] < 0:
            raise ParameterError("Lake areas must be non-negative and non-decreasing with depth", context)
        if self.areas[-1] > self.cell_area:
            raise ParameterError("Lake basin area exceeds the grid cell area", context)
        if not 0.0 <= self.rpercent <= 1.0:
            raise ParameterError(f"rpercent {self.rpercent} outside [0, 1]", context)
        # Area coefficients from the top of the basin downward
        self.Cl = self.areas[::-1] / self.cell_area

    @property
    def maxdepth(self) -> float:
        return float(self.depths[-1])

    @property
    def basin_area(self) -> float:
        """Surface area at maximum depth (m²)"""
        return float(self.areas[-1])

    def segment_volumes(self) -> np.ndarray:
        """Cumulative volume at each table depth (m³)"""
        return cumulative_trapezoid(self.areas, self.depths, initial=0.0)

    @property
    def max_volume(self) -> float:
        return float(self.segment_volumes()[-1])


@dataclass
class LakeState:
    """Lake water and energy state carried between time steps"""
    volume: float  # m³
    ldepth: float = 0.0  # m
    sarea: float = 0.0  # m²
    areai: float = 0.0  # ice covered area (m²)
    new_ice_area: float = 0.0
    hice: float = 0.0  # ice thickness (m)
    temp: float = 4.0  # surface water temperature (C)
    runoff_in: float = 0.0  # mm over the cell
    baseflow_in: float = 0.0  # mm over the cell
    runoff_out: float = 0.0  # m³
    baseflow_out: float = 0.0  # m³
    evapw: float = 0.0  # mm over the lake
    snowmlt: float = 0.0
    snow: SnowState = field(default_factory=SnowState)
    energy: EnergyState = field(default_factory=EnergyState)


def get_volume(params: LakeParameters, depth: float) -> Result[float]:
    """Lake volume (m³) for a water depth"""
    if not np.isfinite(depth) or depth < 0:
        return Result.failed(FailureKind.STAGE_INVERSION, f"invalid lake depth {depth}")
    volumes = params.segment_volumes()
    if depth >= params.maxdepth:
        return Result.success(float(volumes[-1] + (depth - params.maxdepth) * params.basin_area))
    i = int(np.searchsorted(params.depths, depth, side="right") - 1)
    x = depth - params.depths[i]
    slope = (params.areas[i + 1] - params.areas[i]) / (params.depths[i + 1] - params.depths[i])
    return Result.success(float(volumes[i] + params.areas[i] * x + slope * x * x / 2.0))


def get_depth(params: LakeParameters, volume: float) -> Result[float]:
    """
    Invert the stage-volume relationship.

    Volumes above the basin capacity spill over the full basin area.

    Returns:
        Result holding the depth (m), or STAGE_INVERSION when the volume is
        negative, not finite, or the inversion has no root in the segment
    """
    if not np.isfinite(volume) or volume < 0:
        return Result.failed(FailureKind.STAGE_INVERSION, f"invalid lake volume {volume}")
    volumes = params.segment_volumes()
    if volume >= volumes[-1]:
        if params.basin_area <= 0:
            return Result.failed(FailureKind.STAGE_INVERSION, "lake basin has no surface area")
        return Result.success(float(params.maxdepth + (volume - volumes[-1]) / params.basin_area))

    i = int(np.searchsorted(volumes, volume, side="right") - 1)
    remaining = volume - volumes[i]
    a0 = params.areas[i]
    slope = (params.areas[i + 1] - a0) / (params.depths[i + 1] - params.depths[i])
    if abs(slope) < 1e-12:
        if a0 <= 0:
            return Result.failed(FailureKind.STAGE_INVERSION, f"zero area segment at depth {params.depths[i]}")
        x = remaining / a0
    else:
        disc = a0 * a0 + 2.0 * slope * remaining
        if disc < 0:
            return Result.failed(FailureKind.STAGE_INVERSION,
                                 f"no depth for volume {volume:.3f} in segment {i}")
        x = (-a0 + np.sqrt(disc)) / slope
    return Result.success(float(params.depths[i] + x))


def get_sarea(params: LakeParameters, depth: float) -> Result[float]:
    """Surface area (m²) at a water depth"""
    if not np.isfinite(depth) or depth < 0:
        return Result.failed(FailureKind.SURFACE_AREA, f"invalid lake depth {depth}")
    if depth >= params.maxdepth:
        return Result.success(params.basin_area)
    return Result.success(float(np.interp(depth, params.depths, params.areas)))


def initialize_lake_fraction(lake: LakeState, params: LakeParameters) -> Result[Tuple[float, float]]:
    """
    Fraction of the lake tile covered by open water, and the ice fraction
    of that water surface.

    Returns:
        Result holding (lakefrac, fraci), both within [0, 1]
    """
    if params.basin_area <= 0:
        return Result.failed(FailureKind.LAKE_INITIALIZATION, "lake basin has no surface area")
    if not np.isfinite(lake.sarea) or lake.sarea < 0:
        return Result.failed(FailureKind.LAKE_INITIALIZATION, f"invalid lake surface area {lake.sarea}")
    lakefrac = min(1.0, lake.sarea / params.basin_area)
    fraci = min(1.0, lake.areai / lake.sarea) if lake.sarea > 0 else 0.0
    return Result.success((float(lakefrac), float(max(0.0, fraci))))

