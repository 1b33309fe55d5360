"""
Run configuration: model options, global parameters and logging.

Settings validate on construction, load from YAML files and accept
LANDCELL_* environment overrides.
"""
import logging
from enum import Enum
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseflowMode(str, Enum):
    """How baseflow curve parameters are expressed in the soil file"""
    ARNO = "arno"
    NIJSSEN2001 = "nijssen2001"


class ModelOptions(BaseSettings):
    """Run options consumed by the cell step (never mutated by it)"""

    # Structure
    n_layers: int = Field(3, ge=2, description="Number of soil moisture layers")
    n_nodes: int = Field(5, ge=3, description="Number of soil thermal nodes")
    snow_bands: int = Field(1, ge=1, description="Number of elevation bands")

    # Process switches
    dist_prcp: bool = Field(False, description="Wet/dry distributed precipitation")
    spatial_frost: bool = Field(False, description="Split layer ice into frost subareas")
    frost_subareas: int = Field(1, ge=1, description="Number of frost subareas")
    excess_ice: bool = Field(False, description="Enable excess ice and subsidence")
    lakes: bool = Field(False, description="Enable the lake/wetland model")
    corr_prec: bool = Field(False, description="Apply gauge undercatch correction")
    full_energy: bool = Field(False, description="Solve the full energy balance")
    frozen_soil: bool = Field(False, description="Solve frozen soil thermal nodes")
    baseflow: BaseflowMode = BaseflowMode.ARNO

    # Excess ice parameters
    max_subsidence_mm: float = Field(1000.0, gt=0, description="Maximum subsidence per step (mm)")
    ice_at_subsidence: float = Field(
        0.8, ge=0, le=1,
        description="Average ice fraction of max moisture at or below which subsidence occurs"
    )

    model_config = SettingsConfigDict(env_prefix="LANDCELL_OPTIONS_", case_sensitive=False, frozen=True)

    @model_validator(mode="after")
    def validate_options(self):
        """Cross-field validation"""
        if not self.spatial_frost and self.frost_subareas != 1:
            raise ValueError("frost_subareas must be 1 unless spatial_frost is enabled")
        return self

    @property
    def n_dist(self) -> int:
        return 2 if self.dist_prcp else 1


class GlobalParameters(BaseSettings):
    """Time step and forcing-height parameters"""

    dt_hours: float = Field(24.0, gt=0, le=24, description="Model time step (hours)")
    wind_h: float = Field(10.0, gt=0, description="Wind measurement height (m)")
    max_snow_temp: float = Field(0.5, description="Maximum temperature at which snow falls (C)")
    min_rain_temp: float = Field(-0.5, description="Minimum temperature at which rain falls (C)")
    melt_factor_mm_day_c: float = Field(3.0, ge=0, description="Degree-day snowmelt factor")

    model_config = SettingsConfigDict(env_prefix="LANDCELL_GLOBAL_", case_sensitive=False, frozen=True)

    @model_validator(mode="after")
    def validate_temperatures(self):
        if self.max_snow_temp <= self.min_rain_temp:
            raise ValueError("max_snow_temp must exceed min_rain_temp")
        return self


class LandcellConfig(BaseSettings):
    """Main configuration for a landcell run"""

    project_name: str = "landcell"
    options: ModelOptions = Field(default_factory=ModelOptions)
    global_params: GlobalParameters = Field(default_factory=GlobalParameters)

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: str = Field(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    model_config = SettingsConfigDict(
        env_prefix="LANDCELL_",
        env_nested_delimiter="__",
        case_sensitive=False,
        frozen=True,
    )

    @classmethod
    def from_yaml(cls, yaml_path: Union[str, Path]) -> "LandcellConfig":
        """Load configuration from YAML file"""
        yaml_path = Path(yaml_path)
        if not yaml_path.exists():
            raise FileNotFoundError(f"Config file not found: {yaml_path}")

        with open(yaml_path, encoding="utf-8") as f:
            yaml_config = yaml.safe_load(f) or {}

        return cls(**yaml_config)

    def to_yaml(self, yaml_path: Union[str, Path]):
        """Save configuration to YAML file"""
        yaml_path = Path(yaml_path)
        yaml_path.parent.mkdir(parents=True, exist_ok=True)

        with open(yaml_path, "w", encoding="utf-8") as f:
            yaml.dump(self.model_dump(mode="json"), f, default_flow_style=False)


def configure_logging(config: LandcellConfig):
    """Apply the configured log level and format to the root logger"""
    logging.basicConfig(level=config.log_level, format=config.log_format)
    logging.getLogger().setLevel(config.log_level)


# Global configuration instance
_config: Optional[LandcellConfig] = None


def get_config(config_path: Optional[Path] = None) -> LandcellConfig:
    """Get or create configuration instance (singleton pattern)"""
    global _config

    if _config is None:
        if config_path and config_path.exists():
            _config = LandcellConfig.from_yaml(config_path)
        else:
            # Try to load from environment
            _config = LandcellConfig()

    return _config


def set_config(config: Optional[LandcellConfig]):
    """Set configuration (useful for testing)"""
    global _config
    _config = config
