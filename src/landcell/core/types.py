"""
Type definitions, result type and collaborator protocols for landcell.
"""
from enum import Enum
from dataclasses import dataclass
from typing import (
    TYPE_CHECKING, Generic, Optional, Protocol, Sequence, Tuple, TypeVar,
    runtime_checkable,
)
from typing_extensions import TypeAlias
import numpy as np

from landcell.core.constants import SUCCESS, ERROR

if TYPE_CHECKING:
    from landcell.core.config import LandcellConfig
    from landcell.physics.forcing import AtmosphereForcing
    from landcell.physics.soil import SoilColumn
    from landcell.physics.state import BandState, CellState
    from landcell.physics.vegetation import VegetationTile
    from landcell.lake.stage import LakeParameters, LakeState


# Type aliases for clarity
CellID: TypeAlias = str
Record: TypeAlias = int

T = TypeVar("T")


class FailureKind(str, Enum):
    """Kinds of step-level failure a collaborator can report"""
    STAGE_INVERSION = "stage_inversion"
    SURFACE_AREA = "surface_area"
    LAKE_INITIALIZATION = "lake_initialization"
    AERODYNAMIC = "aerodynamic"
    SURFACE_FLUX = "surface_flux"
    RUNOFF = "runoff"
    THERMAL_NODES = "thermal_nodes"
    PRECIP_PARTITION = "precip_partition"
    LAKE_ENERGY = "lake_energy"
    LAKE_WATER_BALANCE = "lake_water_balance"


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Success with an optional value, or a failure with its kind.

    ``code`` maps onto the classic status integers so callers that only
    check for ``ERROR`` keep working.
    """
    value: Optional[T] = None
    failure: Optional[FailureKind] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.failure is None

    @property
    def code(self) -> int:
        return SUCCESS if self.ok else ERROR

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failed(cls, failure: FailureKind, message: str = "") -> "Result[T]":
        return cls(failure=failure, message=message)


@dataclass(frozen=True)
class AeroSurface:
    """Descriptive variables of the surface used for a resistance solve"""
    overstory: bool
    height: float
    displacement: Tuple[float, float, float]
    roughness: Tuple[float, float, float]
    ref_height: Tuple[float, float, float]
    trunk_ratio: float
    wind_atten: float


# Protocol definitions for collaborator injection
@runtime_checkable
class AerodynamicProvider(Protocol):
    """Computes aerodynamic resistance for one reference surface"""

    def resistance(
        self, surface: AeroSurface, wind: float, soil: "SoilColumn"
    ) -> Result[Tuple[np.ndarray, np.ndarray]]:
        """Return (resistance[3], wind[3]) for surface/overstory/snow"""
        ...


@runtime_checkable
class SurfaceFluxSolver(Protocol):
    """Advances one (tile, band) pair by one time step"""

    def solve(
        self,
        tile: "VegetationTile",
        band_index: int,
        band: "BandState",
        forcing: "AtmosphereForcing",
        soil: "SoilColumn",
        aero_resist: np.ndarray,
        surface: AeroSurface,
        gauge_correction: Tuple[float, float],
        surf_atten: float,
        moist0: float,
        ice0: float,
        config: "LandcellConfig",
    ) -> Result["SurfaceFluxOutput"]:
        ...


@dataclass
class SurfaceFluxOutput:
    """Band precipitation terms returned by a surface flux solve (mm)"""
    prec: float = 0.0
    rain: float = 0.0
    snow: float = 0.0
    melt: float = 0.0
    snow_inflow: float = 0.0


@runtime_checkable
class RunoffSolver(Protocol):
    """Partitions inflow into runoff, baseflow and layer moisture"""

    def solve(
        self,
        wet: "CellState",
        dry: "CellState",
        soil: "SoilColumn",
        ppt: Tuple[float, float],
        mu: float,
        config: "LandcellConfig",
    ) -> Result[None]:
        ...


@runtime_checkable
class ThermalSolver(Protocol):
    """Frozen-soil thermal node preparation and re-derivation"""

    def prepare_full_energy(
        self, tile: "VegetationTile", soil: "SoilColumn", config: "LandcellConfig"
    ) -> Tuple[np.ndarray, np.ndarray]:
        ...

    def update_thermal_nodes(
        self, tiles: Sequence["VegetationTile"], soil: "SoilColumn", config: "LandcellConfig"
    ) -> Result[None]:
        ...


@runtime_checkable
class LakeEnergySolver(Protocol):
    def solve(
        self,
        snowprec: float,
        rainprec: float,
        forcing: "AtmosphereForcing",
        lake: "LakeState",
        params: "LakeParameters",
        soil: "SoilColumn",
        fraci: float,
        config: "LandcellConfig",
    ) -> Result[None]:
        ...


@runtime_checkable
class LakeWaterBalanceSolver(Protocol):
    def solve(
        self,
        lake: "LakeState",
        params: "LakeParameters",
        soil: "SoilColumn",
        lakefrac: float,
        prec: float,
        oldvolume: float,
        delta_snow: float,
        meltwater_mm: float,
        config: "LandcellConfig",
    ) -> Result[None]:
        ...
