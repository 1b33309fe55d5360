"""Sub-area physics and the grid cell time step."""
from landcell.physics.forcing import AtmosphereForcing
from landcell.physics.soil import SoilColumn
from landcell.physics.state import (
    BandState,
    CellState,
    EnergyState,
    LayerState,
    PriorStateSnapshot,
    SnowState,
)
from landcell.physics.vegetation import (
    VegetationClass,
    VegetationTile,
    calc_root_fractions,
)

# The grid cell model depends on landcell.lake; import it from
# landcell.physics.grid_cell directly.

__all__ = [
    "AtmosphereForcing",
    "SoilColumn",
    "BandState",
    "CellState",
    "EnergyState",
    "LayerState",
    "PriorStateSnapshot",
    "SnowState",
    "VegetationClass",
    "VegetationTile",
    "calc_root_fractions",
]
