"""
Soil thermal node preparation and re-derivation after subsidence.
"""
import logging
from typing import Sequence, Tuple

import numpy as np

from landcell.core.config import LandcellConfig
from landcell.core.constants import (
    CH_ICE, CH_MINERAL, CH_WATER, K_ICE, K_MINERAL, K_WATER, MM_PER_M,
)
from landcell.core.types import FailureKind, Result
from landcell.physics.soil import SoilColumn
from landcell.physics.vegetation import VegetationTile

logger = logging.getLogger(__name__)


def soil_conductivity(porosity: float, theta_liq: float, theta_ice: float) -> float:
    """Volume-weighted thermal conductivity (W/m/K)"""
    return (1.0 - porosity) * K_MINERAL + theta_liq * K_WATER + theta_ice * K_ICE


def soil_heat_capacity(porosity: float, theta_liq: float, theta_ice: float) -> float:
    """Volumetric heat capacity (J/m³/K)"""
    return (1.0 - porosity) * CH_MINERAL + theta_liq * CH_WATER + theta_ice * CH_ICE


class ThermalNodeSolver:
    """Frozen-soil thermal node preparation and re-derivation"""

    def prepare_full_energy(
        self, tile: VegetationTile, soil: SoilColumn, config: LandcellConfig
    ) -> Tuple[np.ndarray, np.ndarray]:
        """
        Top-layer volumetric moisture and ice for every band of the tile.

        Also stores the top-layer thermal conductivity and heat capacity on
        each band's energy state.

        Returns:
            (moist0, ice0), one value per elevation band
        """
        n_bands = soil.n_bands
        moist0 = np.zeros(n_bands)
        ice0 = np.zeros(n_bands)
        top_mm = soil.depth[0] * MM_PER_M
        weights = tile.branch_weights(config.options.dist_prcp)

        for b, band in enumerate(tile.bands):
            if soil.area_fract[b] <= 0:
                continue
            for dist, cell in enumerate(band.branches()):
                layer = cell.layers[0]
                moist0[b] += weights[dist] * layer.moist / top_mm
                ice0[b] += weights[dist] * layer.mean_ice(soil.frost_fract) / top_mm
            band.energy.kappa_top = soil_conductivity(soil.effective_porosity[0], moist0[b], ice0[b])
            band.energy.Cs_top = soil_heat_capacity(soil.effective_porosity[0], moist0[b], ice0[b])

        return moist0, ice0

    def update_thermal_nodes(
        self, tiles: Sequence[VegetationTile], soil: SoilColumn, config: LandcellConfig
    ) -> Result[None]:
        """
        Move thermal nodes to the new damping depth and re-derive properties.

        Node temperatures are linearly interpolated from the old node depths
        to the new ones; node moisture, ice, conductivity and heat capacity
        are recomputed from the layer containing each node.
        """
        old_depths = soil.node_depths
        new_depths = soil.default_node_depths(config.options.n_nodes)
        if np.any(np.diff(new_depths) <= 0):
            return Result.failed(
                FailureKind.THERMAL_NODES,
                f"thermal nodes not increasing with depth after subsidence (dp={soil.dp:.3f} m)",
            )

        layer_bottom = np.cumsum(soil.depth)
        node_layer = np.minimum(np.searchsorted(layer_bottom, new_depths, side="left"), soil.n_layers - 1)
        layer_mm = soil.depth * MM_PER_M

        for tile in tiles:
            if not tile.active:
                continue
            weights = tile.branch_weights(config.options.dist_prcp)
            for b, band in enumerate(tile.bands):
                if soil.area_fract[b] <= 0:
                    continue
                energy = band.energy
                if len(energy.T) == len(old_depths) and len(old_depths) > 0:
                    energy.T = np.interp(new_depths, old_depths, energy.T)
                else:
                    energy.T = np.full(len(new_depths), soil.avg_temp)

                theta_liq = np.zeros(soil.n_layers)
                theta_ice = np.zeros(soil.n_layers)
                for dist, cell in enumerate(band.branches()):
                    for lidx, layer in enumerate(cell.layers):
                        theta_liq[lidx] += weights[dist] * layer.moist / layer_mm[lidx]
                        theta_ice[lidx] += weights[dist] * layer.mean_ice(soil.frost_fract) / layer_mm[lidx]

                energy.moist_node = theta_liq[node_layer]
                energy.ice_node = theta_ice[node_layer]
                porosity = soil.effective_porosity[node_layer]
                energy.kappa_node = soil_conductivity(porosity, energy.moist_node, energy.ice_node)
                energy.Cs_node = soil_heat_capacity(porosity, energy.moist_node, energy.ice_node)

        logger.debug(f"Thermal nodes moved to {np.round(new_depths, 3).tolist()} m")
        soil.node_depths = new_depths
        return Result.success()
