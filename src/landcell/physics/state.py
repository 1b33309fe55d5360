"""
Per tile/band state containers and the pre-step snapshot used for the
subsidence rollback.
"""
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Dict, List, Mapping, Sequence, Tuple

import numpy as np

from landcell.core.constants import DRY, N_PET_TYPES, WET

if TYPE_CHECKING:
    from landcell.physics.vegetation import VegetationTile


@dataclass
class LayerState:
    """Moisture state of one soil layer (mm)"""
    moist: float
    ice: np.ndarray  # one entry per frost subarea
    evap: float = 0.0

    def mean_ice(self, frost_fract: np.ndarray) -> float:
        """Frost-area weighted ice content"""
        return float(np.dot(self.ice, frost_fract))

    def total_moist(self, frost_fract: np.ndarray) -> float:
        """Liquid plus frozen water"""
        return self.moist + self.mean_ice(frost_fract)


@dataclass
class CellState:
    """Soil water state of one wet or dry branch of a (tile, band) pair"""
    layers: List[LayerState]
    rootmoist: float = 0.0
    wetness: float = 0.0
    aero_resist: np.ndarray = field(default_factory=lambda: np.zeros(2))
    inflow: float = 0.0
    runoff: float = 0.0
    baseflow: float = 0.0
    asat: float = 0.0
    pot_evap: np.ndarray = field(default_factory=lambda: np.zeros(N_PET_TYPES))

    @classmethod
    def initial(cls, moist: Sequence[float], n_frost: int = 1, ice: Sequence[float] = None) -> "CellState":
        ice = ice if ice is not None else [0.0] * len(moist)
        return cls(layers=[
            LayerState(moist=float(m), ice=np.full(n_frost, float(i)))
            for m, i in zip(moist, ice)
        ])

    def moisture(self) -> np.ndarray:
        return np.array([layer.moist for layer in self.layers])

    def storage(self, frost_fract: np.ndarray) -> float:
        """Total column water (mm)"""
        return float(sum(layer.total_moist(frost_fract) for layer in self.layers))


@dataclass
class SnowState:
    """Snowpack state of a (tile, band) pair, shared by both branches"""
    swq: float = 0.0  # snow water equivalent (mm)
    depth: float = 0.0  # m
    coverage: float = 0.0
    melt: float = 0.0
    vapor_flux: float = 0.0
    canopy_vapor_flux: float = 0.0
    albedo: float = 0.0
    surf_temp: float = 0.0


@dataclass
class EnergyState:
    """Surface energy terms and thermal node profile of a (tile, band) pair"""
    shortwave: float = 0.0
    longwave: float = 0.0
    net_short: float = 0.0
    net_long: float = 0.0
    latent: float = 0.0
    sensible: float = 0.0
    grnd_flux: float = 0.0
    albedo: float = 0.0
    T_surf: float = 0.0
    T: np.ndarray = field(default_factory=lambda: np.zeros(0))  # node temperatures (C)
    kappa_node: np.ndarray = field(default_factory=lambda: np.zeros(0))
    Cs_node: np.ndarray = field(default_factory=lambda: np.zeros(0))
    moist_node: np.ndarray = field(default_factory=lambda: np.zeros(0))
    ice_node: np.ndarray = field(default_factory=lambda: np.zeros(0))
    kappa_top: float = 0.0
    Cs_top: float = 0.0


@dataclass
class CanopyState:
    """Canopy interception state of one branch"""
    Wdew: float = 0.0
    throughfall: float = 0.0
    canopyevap: float = 0.0


@dataclass
class BandState:
    """State of one elevation band of one tile"""
    wet: CellState
    dry: CellState
    snow: SnowState = field(default_factory=SnowState)
    energy: EnergyState = field(default_factory=EnergyState)
    veg_wet: CanopyState = field(default_factory=CanopyState)
    veg_dry: CanopyState = field(default_factory=CanopyState)

    @classmethod
    def initial(cls, moist: Sequence[float], n_frost: int = 1, ice: Sequence[float] = None,
                node_temps: Sequence[float] = None) -> "BandState":
        band = cls(
            wet=CellState.initial(moist, n_frost, ice),
            dry=CellState.initial(moist, n_frost, ice),
        )
        if node_temps is not None:
            band.energy.T = np.asarray(node_temps, dtype=float)
        return band

    def branches(self) -> Tuple[CellState, CellState]:
        return (self.wet, self.dry)

    def branch(self, dist: int) -> CellState:
        return self.wet if dist == WET else self.dry


SnapshotKey = Tuple[int, int, int]  # (tile index, band index, branch)


class PriorStateSnapshot:
    """
    Layer moisture captured before the first runoff pass.

    The moisture record is a deep copy held in a read-only mapping; the
    evaporation record starts at zero and is filled with the first-pass
    layer evaporation so a rollback restores both exactly.
    """

    def __init__(self, moist: Mapping[SnapshotKey, np.ndarray]):
        frozen = {}
        for key, values in moist.items():
            arr = np.array(values, dtype=float, copy=True)
            arr.setflags(write=False)
            frozen[key] = arr
        self._moist = MappingProxyType(frozen)
        self._evap: Dict[SnapshotKey, np.ndarray] = {
            key: np.zeros_like(arr) for key, arr in frozen.items()
        }

    @classmethod
    def capture(cls, tiles: Sequence["VegetationTile"]) -> "PriorStateSnapshot":
        moist = {}
        for tile in tiles:
            for b, band in enumerate(tile.bands):
                for dist in (WET, DRY):
                    moist[(tile.index, b, dist)] = band.branch(dist).moisture()
        return cls(moist)

    @property
    def moist(self) -> Mapping[SnapshotKey, np.ndarray]:
        return self._moist

    @property
    def evap(self) -> Mapping[SnapshotKey, np.ndarray]:
        return MappingProxyType(self._evap)

    def record_evaporation(self, tile_index: int, band_index: int, band: BandState):
        """Store the layer evaporation of a first-pass band solve"""
        for dist in (WET, DRY):
            key = (tile_index, band_index, dist)
            self._evap[key] = np.array(
                [layer.evap for layer in band.branch(dist).layers], dtype=float
            )

    def restore(self, tiles: Sequence["VegetationTile"]):
        """Roll every layer's moisture and evaporation back to the snapshot"""
        for tile in tiles:
            for b, band in enumerate(tile.bands):
                for dist in (WET, DRY):
                    key = (tile.index, b, dist)
                    moist = self._moist[key]
                    evap = self._evap[key]
                    for lidx, layer in enumerate(band.branch(dist).layers):
                        layer.moist = float(moist[lidx])
                        layer.evap = float(evap[lidx])
