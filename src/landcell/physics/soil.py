"""
Cell-wide soil column parameters shared by every tile and band.

The column is read by every sub-area solve and mutated in place only by the
subsidence adjuster, between the first and the second runoff pass.
"""
import logging
from dataclasses import dataclass, field
from typing import Optional, Sequence

import numpy as np

from landcell.core.config import BaseflowMode
from landcell.core.constants import MM_PER_M
from landcell.core.exceptions import ErrorContext, ParameterError

logger = logging.getLogger(__name__)


@dataclass
class SoilColumn:
    """
    Soil parameters for one grid cell.

    Layer arrays have length ``n_layers``; band arrays have length
    ``n_bands``. Moisture capacities are in mm, depths in m, densities in
    kg/m³.
    """
    depth: np.ndarray
    porosity: np.ndarray
    effective_porosity: np.ndarray
    bulk_density: np.ndarray
    soil_density: np.ndarray
    max_moist: np.ndarray
    Wcr: np.ndarray
    Wpwp: np.ndarray
    Wcr_fract: np.ndarray
    Wpwp_fract: np.ndarray
    resid_moist: np.ndarray  # volumetric
    min_depth: np.ndarray
    ksat: np.ndarray  # mm/day
    expt: np.ndarray  # Brooks-Corey exponent

    # Infiltration and baseflow
    b_infilt: float = 0.2
    max_infil: float = 0.0
    Ds: float = 0.001
    Dsmax: float = 10.0
    Ws: float = 0.9
    c: float = 2.0
    Ds_orig: float = 0.001
    Dsmax_orig: float = 10.0
    Ws_orig: float = 0.9

    # Thermal
    dp: float = 4.0  # damping depth (m)
    avg_temp: float = 5.0  # bottom boundary temperature (C)
    node_depths: np.ndarray = field(default_factory=lambda: np.zeros(0))

    # Sub-grid structure
    frost_fract: np.ndarray = field(default_factory=lambda: np.ones(1))
    area_fract: np.ndarray = field(default_factory=lambda: np.ones(1))
    pfactor: np.ndarray = field(default_factory=lambda: np.ones(1))
    tfactor: np.ndarray = field(default_factory=lambda: np.zeros(1))

    # Surface
    rough: float = 0.001  # bare soil roughness (m)
    snow_rough: float = 0.0005  # snow roughness (m)
    cell_area: float = 1.0e8  # m²

    subsidence: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self):
        n = len(self.depth)
        for name in ("porosity", "effective_porosity", "bulk_density", "soil_density",
                     "max_moist", "Wcr", "Wpwp", "Wcr_fract", "Wpwp_fract",
                     "resid_moist", "min_depth", "ksat", "expt"):
            if len(getattr(self, name)) != n:
                raise ParameterError(
                    f"Soil parameter '{name}' has {len(getattr(self, name))} layers, expected {n}",
                    ErrorContext(component="SoilColumn"),
                )
        if len(self.subsidence) != n:
            self.subsidence = np.zeros(n)
        if self.b_infilt <= 0:
            raise ParameterError(f"b_infilt must be positive, got {self.b_infilt}",
                                 ErrorContext(component="SoilColumn"))
        if not np.isclose(self.area_fract.sum(), 1.0):
            raise ParameterError(
                f"Band area fractions sum to {self.area_fract.sum():.4f}, expected 1",
                ErrorContext(component="SoilColumn"),
            )
        if not np.isclose(self.frost_fract.sum(), 1.0):
            raise ParameterError(
                f"Frost subarea fractions sum to {self.frost_fract.sum():.4f}, expected 1",
                ErrorContext(component="SoilColumn"),
            )

    @property
    def n_layers(self) -> int:
        return len(self.depth)

    @property
    def n_bands(self) -> int:
        return len(self.area_fract)

    @property
    def n_frost(self) -> int:
        return len(self.frost_fract)

    @property
    def has_excess_ice(self) -> np.ndarray:
        return self.effective_porosity > self.porosity

    @classmethod
    def build(
        cls,
        depth: Sequence[float],
        porosity: Sequence[float],
        soil_density: Sequence[float],
        Wcr_fract: Sequence[float],
        Wpwp_fract: Sequence[float],
        resid_moist: Sequence[float],
        ksat: Sequence[float],
        expt: Sequence[float],
        effective_porosity: Optional[Sequence[float]] = None,
        min_depth: Optional[Sequence[float]] = None,
        baseflow: BaseflowMode = BaseflowMode.ARNO,
        n_nodes: int = 5,
        **kwargs,
    ) -> "SoilColumn":
        """
        Create a soil column and derive the dependent parameters.

        Args:
            depth: Layer depths (m)
            porosity: Natural porosity per layer
            soil_density: Mineral soil particle density (kg/m³)
            Wcr_fract: Critical point as fraction of max moisture
            Wpwp_fract: Wilting point as fraction of max moisture
            resid_moist: Residual volumetric moisture
            ksat: Saturated hydraulic conductivity (mm/day)
            expt: Brooks-Corey exponent
            effective_porosity: Porosity including excess ice (defaults to porosity)
            min_depth: Floor for subsidence (defaults to the depth at which the
                effective porosity falls back to the natural porosity)
            baseflow: Form in which Ds/Dsmax/Ws are given in kwargs
            n_nodes: Number of thermal nodes when node_depths is not given
        """
        depth = np.asarray(depth, dtype=float)
        porosity = np.asarray(porosity, dtype=float)
        eff = porosity.copy() if effective_porosity is None else np.asarray(effective_porosity, dtype=float)
        soil_density = np.asarray(soil_density, dtype=float)
        n = len(depth)
        if min_depth is None:
            # Solid fraction is conserved as the layer collapses
            min_depth = np.ceil(depth * (1.0 - eff) / (1.0 - porosity) * MM_PER_M - 1e-9) / MM_PER_M
        min_depth = np.asarray(min_depth, dtype=float)

        for key in ("area_fract", "pfactor", "tfactor", "frost_fract", "node_depths"):
            if key in kwargs:
                kwargs[key] = np.asarray(kwargs[key], dtype=float)

        column = cls(
            depth=depth,
            porosity=porosity,
            effective_porosity=eff,
            bulk_density=(1.0 - eff) * soil_density,
            soil_density=soil_density,
            max_moist=depth * eff * MM_PER_M,
            Wcr=np.zeros(n),
            Wpwp=np.zeros(n),
            Wcr_fract=np.asarray(Wcr_fract, dtype=float),
            Wpwp_fract=np.asarray(Wpwp_fract, dtype=float),
            resid_moist=np.asarray(resid_moist, dtype=float),
            min_depth=min_depth,
            ksat=np.asarray(ksat, dtype=float),
            expt=np.asarray(expt, dtype=float),
            **kwargs,
        )
        column.Ds_orig = column.Ds
        column.Dsmax_orig = column.Dsmax
        column.Ws_orig = column.Ws
        column.update_max_infil()
        column.update_critical_moisture()
        if baseflow == BaseflowMode.NIJSSEN2001:
            column.convert_baseflow_parameters()
        if len(column.node_depths) == 0:
            column.node_depths = column.default_node_depths(n_nodes)
        return column

    def update_max_infil(self):
        """Maximum infiltration capacity of the upper layers"""
        if self.n_layers == 2:
            self.max_infil = (1.0 + self.b_infilt) * self.max_moist[0]
        else:
            self.max_infil = (1.0 + self.b_infilt) * (self.max_moist[0] + self.max_moist[1])

    def update_critical_moisture(self):
        """
        Critical and wilting point moisture from their fractions.

        Raises:
            ParameterError: if the wilting point exceeds the critical point or
                falls below residual moisture for any layer
        """
        self.Wcr = self.Wcr_fract * self.max_moist
        self.Wpwp = self.Wpwp_fract * self.max_moist
        for lidx in range(self.n_layers):
            if self.Wpwp[lidx] > self.Wcr[lidx]:
                raise ParameterError(
                    f"Updated wilting point moisture ({self.Wpwp[lidx]:f} mm) is greater than "
                    f"updated critical point moisture ({self.Wcr[lidx]:f} mm) for layer {lidx}. "
                    f"Wpwp_fract must be <= Wcr_fract.",
                    ErrorContext(component="SoilColumn", operation="update_critical_moisture"),
                )
            resid_mm = self.resid_moist[lidx] * self.depth[lidx] * MM_PER_M
            if self.Wpwp[lidx] < resid_mm:
                raise ParameterError(
                    f"Updated wilting point moisture ({self.Wpwp[lidx]:f} mm) is less than "
                    f"updated residual moisture ({resid_mm:f} mm) for layer {lidx}. "
                    f"Wpwp_fract must be >= resid_moist / (1 - bulk_density / soil_density).",
                    ErrorContext(component="SoilColumn", operation="update_critical_moisture"),
                )

    def convert_baseflow_parameters(self):
        """Convert NIJSSEN2001 baseflow parameters to Ds, Dsmax and Ws"""
        bottom = self.max_moist[-1]
        self.Dsmax = (
            self.Dsmax_orig * (1.0 / (bottom - self.Ws_orig)) ** (-self.c)
            + self.Ds_orig * bottom
        )
        self.Ds = self.Ds_orig * self.Ws_orig / self.Dsmax_orig
        self.Ws = self.Ws_orig / bottom

    def default_node_depths(self, n_nodes: int) -> np.ndarray:
        """
        Thermal node depths: surface, the bottom of the top layer, then
        evenly spaced down to the damping depth.
        """
        top = min(self.depth[0], self.dp / 2)
        rest = np.linspace(top, self.dp, n_nodes - 1)
        return np.concatenate(([0.0], rest))
