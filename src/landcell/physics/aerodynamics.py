"""
Aerodynamic resistance over vegetated, bare and snow covered surfaces.

Resistances follow a neutral logarithmic wind profile:

    r_a = ln((z - d) / z0)^2 / (k^2 * U)

For overstory vegetation the wind is attenuated exponentially through the
trunk space below the canopy before computing the resistance to the ground.
Index 0 of the returned arrays is the ground surface, index 1 the overstory
(equal to the surface for short vegetation) and index 2 the snow surface.
"""
import logging
from typing import Tuple

import numpy as np

from landcell.core.constants import MAX_AERO_RESIST, MIN_WIND_SPEED, VON_KARMAN
from landcell.core.types import AeroSurface, FailureKind, Result
from landcell.physics.soil import SoilColumn
from landcell.physics.vegetation import VegetationClass, calc_veg_height

logger = logging.getLogger(__name__)

K2 = VON_KARMAN * VON_KARMAN
SNOW_REF_HEIGHT = 2.0  # m


def build_surface(
    veg_class: VegetationClass,
    month: int,
    wind_h: float,
    soil: SoilColumn,
    use_soil_rough: bool,
) -> AeroSurface:
    """
    Collect the descriptive variables of a surface for one month.

    Args:
        veg_class: Library class describing the surface
        month: Calendar month (1-12)
        wind_h: Wind measurement height above the displacement (m)
        soil: Soil column (for bare soil roughness)
        use_soil_rough: Replace zero roughness with the soil roughness
    """
    displacement = float(veg_class.displacement[month - 1])
    roughness = float(veg_class.roughness[month - 1])
    if use_soil_rough and roughness == 0:
        roughness = soil.rough
    height = calc_veg_height(displacement)
    if displacement < wind_h:
        ref_height = wind_h
    else:
        ref_height = displacement + wind_h + roughness
    return AeroSurface(
        overstory=veg_class.overstory,
        height=height,
        displacement=(displacement, displacement, 0.0),
        roughness=(roughness, roughness, soil.snow_rough),
        ref_height=(ref_height, ref_height, SNOW_REF_HEIGHT),
        trunk_ratio=veg_class.trunk_ratio,
        wind_atten=veg_class.wind_atten,
    )


def _log_resist(z: float, d: float, z0: float, wind: float) -> float:
    if wind <= MIN_WIND_SPEED:
        return MAX_AERO_RESIST
    return min(MAX_AERO_RESIST, np.log((z - d) / z0) ** 2 / (K2 * wind))


class AerodynamicResistanceProvider:
    """Computes aerodynamic resistance for one reference surface"""

    def resistance(
        self, surface: AeroSurface, wind: float, soil: SoilColumn
    ) -> Result[Tuple[np.ndarray, np.ndarray]]:
        """
        Compute resistances and wind speeds for the surface.

        Returns:
            Result holding (resistance[3] in s/m, wind[3] in m/s), or an
            AERODYNAMIC failure if the profile is undefined
        """
        z0 = surface.roughness[0]
        d = surface.displacement[0]
        z = surface.ref_height[0]
        z0_snow = surface.roughness[2]

        if z0 <= 0 or z0_snow <= 0:
            return Result.failed(FailureKind.AERODYNAMIC,
                                 f"non-positive roughness (z0={z0}, snow z0={z0_snow})")
        if z - d <= z0:
            return Result.failed(FailureKind.AERODYNAMIC,
                                 f"reference height {z} m not above displacement + roughness ({d} + {z0})")
        if wind < 0 or not np.isfinite(wind):
            return Result.failed(FailureKind.AERODYNAMIC, f"invalid wind speed {wind}")

        ra = np.zeros(3)
        U = np.zeros(3)

        if not surface.overstory:
            U[0] = wind
            ra[0] = _log_resist(z, d, z0, wind)
            U[1] = U[0]
            ra[1] = ra[0]
        else:
            height = surface.height
            if height <= d + z0:
                return Result.failed(FailureKind.AERODYNAMIC,
                                     f"canopy height {height} m not above displacement + roughness")
            # Overstory: resistance from the reference height to the canopy
            U[1] = wind
            ra[1] = _log_resist(z, d, z0, wind)
            # Wind at canopy top, then attenuated down to the trunk space
            u_top = wind * np.log((height - d) / z0) / np.log((z - d) / z0)
            u_trunk = u_top * np.exp(surface.wind_atten * (surface.trunk_ratio - 1.0))
            U[0] = u_trunk
            ra[0] = _log_resist(SNOW_REF_HEIGHT + soil.rough, 0.0, soil.rough, u_trunk)

        # Snow surface below the reference height
        if surface.overstory:
            U[2] = U[0]
        else:
            U[2] = U[0] * np.log((SNOW_REF_HEIGHT + z0_snow) / z0_snow) / np.log(
                (z - d + z0_snow) / z0_snow
            )
        ra[2] = _log_resist(SNOW_REF_HEIGHT + z0_snow, 0.0, z0_snow, U[2])

        return Result.success((ra, U))
