"""
Precipitation gauge correction and rain/snow partitioning.
"""
import logging
from typing import Tuple

import numpy as np

from landcell.core.types import FailureKind, Result

logger = logging.getLogger(__name__)

# Height of the gauge orifice (m)
GAUGE_HEIGHT = 1.0


def correct_precip(wind: float, wind_h: float, rough: float, snow_rough: float) -> Tuple[float, float]:
    """
    Gauge undercatch correction factors for rain and snow.

    The wind speed is transferred from the measurement height to the gauge
    height with a log profile, then the WMO catch ratio regressions for an
    unshielded gauge are applied. Factors are always >= 1.

    Returns:
        (rain_factor, snow_factor)
    """
    if wind <= 0 or wind_h <= max(rough, snow_rough):
        return (1.0, 1.0)

    # Wind at gauge height over snow and over bare soil
    gauge_wind_snow = wind * np.log((GAUGE_HEIGHT + snow_rough) / snow_rough) / np.log(wind_h / snow_rough)
    gauge_wind_rain = wind * np.log((GAUGE_HEIGHT + rough) / rough) / np.log(wind_h / rough)

    rain_catch = 100.0 - 4.37 * gauge_wind_rain + 0.35 * gauge_wind_rain ** 2
    snow_catch = np.exp(4.606 - 0.157 * gauge_wind_snow ** 1.28)

    rain_factor = max(1.0, 100.0 / max(rain_catch, 1.0))
    snow_factor = max(1.0, 100.0 / max(snow_catch, 1.0))
    return (float(rain_factor), float(snow_factor))


def calc_rainonly(air_temp: float, prec: float, max_snow_temp: float, min_rain_temp: float) -> Result[float]:
    """
    Rain portion of precipitation from air temperature.

    All precipitation falls as rain above ``max_snow_temp`` and as snow below
    ``min_rain_temp``; the rain fraction is linear in between.

    Returns:
        Result holding the rain amount (mm), or a PRECIP_PARTITION failure
        when the thresholds are not strictly ordered or the inputs are not finite
    """
    if max_snow_temp <= min_rain_temp:
        return Result.failed(
            FailureKind.PRECIP_PARTITION,
            f"max_snow_temp ({max_snow_temp}) must exceed min_rain_temp ({min_rain_temp})",
        )
    if not (np.isfinite(air_temp) and np.isfinite(prec)) or prec < 0:
        return Result.failed(
            FailureKind.PRECIP_PARTITION,
            f"invalid forcing for rain/snow partition (T={air_temp}, prec={prec})",
        )

    if air_temp < max_snow_temp and air_temp > min_rain_temp:
        rainonly = (air_temp - min_rain_temp) / (max_snow_temp - min_rain_temp) * prec
    elif air_temp >= max_snow_temp:
        rainonly = prec
    else:
        rainonly = 0.0

    return Result.success(float(rainonly))
