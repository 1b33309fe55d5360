"""
Physical constants, default values, and system-wide constants.
"""
from typing import Final, Tuple

# Status codes
SUCCESS: Final[int] = 0
ERROR: Final[int] = -999

# Wet/dry distributed precipitation branches
WET: Final[int] = 0
DRY: Final[int] = 1

# Gauge correction indices
RAIN: Final[int] = 0
SNOW: Final[int] = 1

# Physical constants
VON_KARMAN: Final[float] = 0.4
LATENT_HEAT_VAPORIZATION: Final[float] = 2.45e6  # J/kg
SPECIFIC_HEAT_AIR: Final[float] = 1013.0  # J/kg/K
STEFAN_BOLTZMANN: Final[float] = 5.669e-8  # W/m²/K⁴
KELVIN: Final[float] = 273.15

# Thermal properties (W/m/K, J/m³/K)
K_WATER: Final[float] = 0.57
K_ICE: Final[float] = 2.2
K_MINERAL: Final[float] = 2.9
CH_WATER: Final[float] = 4.186e6
CH_ICE: Final[float] = 2.108e6
CH_MINERAL: Final[float] = 2.0e6

# Unit conversions
MM_PER_M: Final[float] = 1000.0
SEC_PER_HOUR: Final[float] = 3600.0
HOURS_PER_DAY: Final[float] = 24.0

# Aerodynamics
HEIGHT_FROM_DISPLACEMENT: Final[float] = 1.0 / 0.67
MIN_WIND_SPEED: Final[float] = 0.1  # m/s
MAX_AERO_RESIST: Final[float] = 1.0e6  # s/m

# Snow
SNOW_ALBEDO: Final[float] = 0.85

# Lake
LAKE_ALBEDO: Final[float] = 0.08
LAKE_ICE_ALBEDO: Final[float] = 0.4
FRACMIN: Final[float] = 0.10  # minimum ice fraction considered covering
ICE_GROWTH_MM_PER_DEGREE_HOUR: Final[float] = 0.1

# Potential evaporation reference surfaces.
# The first PET_TYPES_NON_NAT entries come from the reference library,
# the remaining ones use the tile's own vegetation class.
PET_TYPES: Final[Tuple[str, ...]] = (
    "satsoil",
    "h2osurf",
    "short",
    "tall",
    "natveg",
    "vegnocr",
)
N_PET_TYPES: Final[int] = len(PET_TYPES)
N_PET_TYPES_NON_NAT: Final[int] = 4
# Index of the current-vegetation entry in the resistance table
CURRENT_VEG: Final[int] = N_PET_TYPES

# Numerical stability
EPSILON: Final[float] = 1e-10
MOISTURE_TOLERANCE: Final[float] = 1e-6
WATER_BALANCE_TOLERANCE: Final[float] = 1e-3  # mm
