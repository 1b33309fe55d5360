"""
Vegetation classes, vegetation tiles and root distribution.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

import numpy as np

from landcell.core.constants import HEIGHT_FROM_DISPLACEMENT
from landcell.core.exceptions import ErrorContext, ParameterError
from landcell.physics.soil import SoilColumn
from landcell.physics.state import BandState

logger = logging.getLogger(__name__)


def _monthly(values, name: str) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    if arr.ndim == 0:
        arr = np.full(12, float(arr))
    if arr.shape != (12,):
        raise ParameterError(f"{name} must be a scalar or have 12 monthly values",
                             ErrorContext(component="VegetationClass"))
    return arr


@dataclass
class VegetationClass:
    """Static library parameters for one land cover class"""
    name: str
    LAI: np.ndarray
    albedo: np.ndarray
    roughness: np.ndarray
    displacement: np.ndarray
    overstory: bool = False
    rad_atten: float = 0.5
    trunk_ratio: float = 0.2
    wind_atten: float = 0.5
    wind_h: float = 2.0
    rmin: float = 100.0  # minimum stomatal resistance (s/m)

    def __post_init__(self):
        self.LAI = _monthly(self.LAI, "LAI")
        self.albedo = _monthly(self.albedo, "albedo")
        self.roughness = _monthly(self.roughness, "roughness")
        self.displacement = _monthly(self.displacement, "displacement")

    def surface_attenuation(self, month: int) -> float:
        """Shortwave attenuation through the canopy for the month"""
        return float(np.exp(-self.rad_atten * self.LAI[month - 1]))


# Reference surfaces used for potential evaporation, in PET type order
REFERENCE_CLASSES: List[VegetationClass] = [
    VegetationClass("satsoil", LAI=0.0, albedo=0.2, roughness=0.001, displacement=0.0,
                    rad_atten=0.0, wind_h=2.0, rmin=0.0),
    VegetationClass("h2osurf", LAI=0.0, albedo=0.08, roughness=0.0001, displacement=0.0,
                    rad_atten=0.0, wind_h=2.0, rmin=0.0),
    VegetationClass("short", LAI=2.88, albedo=0.23, roughness=0.0148, displacement=0.08,
                    rad_atten=0.5, wind_h=2.0, rmin=70.0),
    VegetationClass("tall", LAI=4.32, albedo=0.23, roughness=0.0615, displacement=0.3333,
                    rad_atten=0.5, wind_h=2.0, rmin=45.0),
]


def calc_veg_height(displacement: float) -> float:
    """Vegetation height estimated from displacement height"""
    return HEIGHT_FROM_DISPLACEMENT * displacement


def calc_root_fractions(
    root_depth: Sequence[float],
    root_fract: Sequence[float],
    layer_depth: Sequence[float],
) -> np.ndarray:
    """
    Distribute root zone fractions over soil layers.

    Each root zone's fraction is split between the layers it overlaps in
    proportion to the overlapping thickness. Roots extending below the soil
    column are assigned to the bottom layer.

    Args:
        root_depth: Thickness of each root zone (m)
        root_fract: Fraction of roots in each root zone
        layer_depth: Thickness of each soil layer (m)

    Returns:
        Root fraction per soil layer (sums to the total root fraction)
    """
    layer_depth = np.asarray(layer_depth, dtype=float)
    layer_bottom = np.cumsum(layer_depth)
    layer_top = layer_bottom - layer_depth
    root = np.zeros(len(layer_depth))

    zone_top = 0.0
    for zdepth, zfract in zip(root_depth, root_fract):
        zone_bottom = zone_top + zdepth
        if zdepth <= 0:
            continue
        overlap = np.clip(np.minimum(layer_bottom, zone_bottom) - np.maximum(layer_top, zone_top), 0.0, None)
        below = max(0.0, zone_bottom - layer_bottom[-1])
        root += zfract * overlap / zdepth
        root[-1] += zfract * below / zdepth
        zone_top = zone_bottom

    total = float(np.sum(root_fract))
    if total > 0 and not np.isclose(root.sum(), total):
        root *= total / root.sum()
    return root


@dataclass
class VegetationTile:
    """
    One vegetation-cover sub-area of a grid cell.

    ``bands`` holds one BandState per elevation band; bands with zero area
    fraction are kept but never solved.
    """
    index: int
    cv: float
    veg_class: VegetationClass
    root_depth: np.ndarray
    root_fract: np.ndarray
    bands: List[BandState]
    mu: float = 1.0
    is_lake: bool = False
    root: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def __post_init__(self):
        if not 0.0 <= self.cv <= 1.0:
            raise ParameterError(f"Tile {self.index} coverage {self.cv} outside [0, 1]",
                                 ErrorContext(component="VegetationTile"))
        if not 0.0 < self.mu <= 1.0:
            raise ParameterError(f"Tile {self.index} wet fraction mu={self.mu} outside (0, 1]",
                                 ErrorContext(component="VegetationTile"))
        self.root_depth = np.asarray(self.root_depth, dtype=float)
        self.root_fract = np.asarray(self.root_fract, dtype=float)

    @property
    def active(self) -> bool:
        return self.cv > 0.0

    def wet_fraction(self, dist_prcp: bool) -> float:
        """Wet branch fraction, 1 when precipitation is not distributed"""
        return self.mu if dist_prcp else 1.0

    def branch_weights(self, dist_prcp: bool):
        """Probability weights of the wet and dry branches"""
        mu = self.wet_fraction(dist_prcp)
        return (mu, 1.0 - mu)

    def update_root_fractions(self, soil: SoilColumn):
        """Recompute the per-layer root profile for the current layer depths"""
        self.root = calc_root_fractions(self.root_depth, self.root_fract, soil.depth)
