"""
Variable infiltration capacity runoff with ARNO baseflow.

Surface runoff follows the variable infiltration curve

    i = i_m * [1 - (1 - A)^(1/b)]

where A is the saturated fraction of the upper layers and
i_m = (1 + b) * W_max their maximum infiltration capacity. Infiltrated water
drains downward with a Brooks-Corey conductivity and the bottom layer
releases baseflow following the ARNO non-linear recession:

    Q_b = Ds*Dsmax/(Ws*W_max) * W                               W <= Ws*W_max
    Q_b = ... + (Dsmax - Ds*Dsmax/Ws) * ((W - Ws*W_max)/(W_max - Ws*W_max))^c

Ice in a layer reduces the capacity available to liquid water.
"""
import logging
from typing import Tuple

import numpy as np

from landcell.core.config import LandcellConfig
from landcell.core.constants import DRY, HOURS_PER_DAY, MM_PER_M, MOISTURE_TOLERANCE, WET
from landcell.core.types import FailureKind, Result
from landcell.physics.soil import SoilColumn
from landcell.physics.state import CellState

logger = logging.getLogger(__name__)


def surface_runoff(inflow: float, top_moist: float, top_max: float, b_infilt: float) -> Tuple[float, float]:
    """
    Runoff generated by the variable infiltration curve.

    Args:
        inflow: Water reaching the soil surface (mm)
        top_moist: Liquid moisture of the upper layers (mm)
        top_max: Liquid capacity of the upper layers (mm)
        b_infilt: Infiltration shape parameter

    Returns:
        (runoff in mm, saturated area fraction)
    """
    if top_max <= 0:
        return inflow, 1.0

    max_infil = (1.0 + b_infilt) * top_max
    ratio = min(1.0, max(0.0, top_moist / top_max))
    asat = 1.0 - (1.0 - ratio) ** (b_infilt / (1.0 + b_infilt))
    if inflow <= 0:
        return 0.0, asat

    i0 = max_infil * (1.0 - (1.0 - asat) ** (1.0 / b_infilt))
    if i0 + inflow > max_infil:
        runoff = inflow - top_max + top_moist
    else:
        basis = 1.0 - (i0 + inflow) / max_infil
        runoff = inflow - top_max + top_moist + top_max * basis ** (1.0 + b_infilt)
    return float(min(inflow, max(0.0, runoff))), asat


def arno_baseflow(moist: float, max_moist: float, soil: SoilColumn, dt_hours: float) -> float:
    """Baseflow released by the bottom layer during one step (mm)"""
    if max_moist <= 0:
        return 0.0
    ws_moist = soil.Ws * max_moist
    baseflow = soil.Ds * soil.Dsmax / ws_moist * moist if ws_moist > 0 else 0.0
    if moist > ws_moist and max_moist > ws_moist:
        frac = (moist - ws_moist) / (max_moist - ws_moist)
        baseflow += (soil.Dsmax - soil.Ds * soil.Dsmax / soil.Ws) * frac ** soil.c
    return max(0.0, baseflow) * dt_hours / HOURS_PER_DAY


class ArnoRunoffSolver:
    """Partitions inflow into runoff, baseflow and layer moisture"""

    def __init__(self):
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def solve(
        self,
        wet: CellState,
        dry: CellState,
        soil: SoilColumn,
        ppt: Tuple[float, float],
        mu: float,
        config: LandcellConfig,
    ) -> Result[None]:
        """
        Solve both distributed-precipitation branches in place.

        Layer evaporation already stored on each layer is removed before
        infiltration; this keeps a re-solve from a rolled-back state
        identical to the first pass.
        """
        dt = config.global_params.dt_hours
        for dist, cell in ((WET, wet), (DRY, dry)):
            result = self._solve_branch(cell, soil, ppt[dist], dt)
            if not result.ok:
                return result
        return Result.success()

    def _solve_branch(self, cell: CellState, soil: SoilColumn, inflow: float, dt: float) -> Result[None]:
        if not np.isfinite(inflow) or inflow < 0:
            return Result.failed(FailureKind.RUNOFF, f"invalid inflow {inflow}")

        n = soil.n_layers
        cell.inflow = inflow
        ice = np.array([layer.mean_ice(soil.frost_fract) for layer in cell.layers])
        liq_max = np.maximum(0.0, soil.max_moist - ice)
        resid = soil.resid_moist * soil.depth * MM_PER_M
        moist = np.array([layer.moist for layer in cell.layers], dtype=float)

        # Evaporation demand cannot exceed the liquid water in the layer
        for lidx, layer in enumerate(cell.layers):
            moist[lidx] -= layer.evap
            if moist[lidx] < 0:
                layer.evap += moist[lidx]
                moist[lidx] = 0.0

        n_top = 1 if n == 2 else 2
        runoff, asat = surface_runoff(
            inflow, float(moist[:n_top].sum()), float(liq_max[:n_top].sum()), soil.b_infilt
        )
        moist[0] += inflow - runoff

        # Gravity drainage, excess cascades downward
        for lidx in range(n - 1):
            if moist[lidx] > resid[lidx] and liq_max[lidx] > resid[lidx]:
                rel = min(1.0, (moist[lidx] - resid[lidx]) / (liq_max[lidx] - resid[lidx]))
                drain = soil.ksat[lidx] * dt / HOURS_PER_DAY * rel ** soil.expt[lidx]
                drain = min(drain, moist[lidx] - resid[lidx])
                moist[lidx] -= drain
                moist[lidx + 1] += drain
            if moist[lidx] > liq_max[lidx]:
                moist[lidx + 1] += moist[lidx] - liq_max[lidx]
                moist[lidx] = liq_max[lidx]

        bottom = n - 1
        baseflow = arno_baseflow(moist[bottom], soil.max_moist[bottom], soil, dt)
        baseflow = min(baseflow, max(0.0, moist[bottom] - resid[bottom]))
        moist[bottom] -= baseflow
        if moist[bottom] > liq_max[bottom]:
            baseflow += moist[bottom] - liq_max[bottom]
            moist[bottom] = liq_max[bottom]

        if not np.all(np.isfinite(moist)) or np.any(moist < -MOISTURE_TOLERANCE):
            return Result.failed(FailureKind.RUNOFF, f"layer moisture out of bounds: {moist}")

        for lidx, layer in enumerate(cell.layers):
            layer.moist = float(max(0.0, moist[lidx]))
        cell.runoff = runoff
        cell.baseflow = float(baseflow)
        cell.asat = float(asat)
        return Result.success()
