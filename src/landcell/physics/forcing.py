"""Atmospheric forcing for one model time step."""
from dataclasses import dataclass, fields
from typing import Any, Mapping

import numpy as np


@dataclass(frozen=True)
class AtmosphereForcing:
    """Grid-cell forcing for one record (values for the whole step)"""
    air_temp: float  # C
    prec: float  # mm per step
    wind: float  # m/s
    shortwave: float  # W/m²
    longwave: float  # W/m²
    vp: float  # Pa
    vpd: float  # Pa
    pressure: float  # Pa
    density: float  # kg/m³
    month: int = 1

    def __post_init__(self):
        if not 1 <= self.month <= 12:
            raise ValueError(f"month must be in 1..12, got {self.month}")

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any], month: int) -> "AtmosphereForcing":
        """Build forcing from a pandas row or dict of column values"""
        values = {}
        for f in fields(cls):
            if f.name == "month":
                continue
            values[f.name] = float(row[f.name])
        return cls(month=month, **values)

    def is_finite(self) -> bool:
        return bool(np.all(np.isfinite([
            self.air_temp, self.prec, self.wind, self.shortwave, self.longwave,
            self.vp, self.vpd, self.pressure, self.density,
        ])))
