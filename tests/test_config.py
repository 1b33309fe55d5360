"""
Tests for the configuration layer.
"""
import logging

import pytest
from pydantic import ValidationError

from landcell.core.config import (
    BaseflowMode, GlobalParameters, LandcellConfig, ModelOptions, configure_logging,
    get_config, set_config,
)


class TestModelOptions:

    def test_defaults(self):
        options = ModelOptions()
        assert options.n_layers == 3
        assert not options.excess_ice
        assert options.baseflow == BaseflowMode.ARNO
        assert options.n_dist == 1

    def test_distributed_precipitation_branches(self):
        assert ModelOptions(dist_prcp=True).n_dist == 2

    def test_frost_subareas_require_spatial_frost(self):
        with pytest.raises(ValidationError):
            ModelOptions(frost_subareas=3)
        assert ModelOptions(spatial_frost=True, frost_subareas=3).frost_subareas == 3

    def test_threshold_bounds(self):
        with pytest.raises(ValidationError):
            ModelOptions(ice_at_subsidence=1.5)
        with pytest.raises(ValidationError):
            ModelOptions(max_subsidence_mm=0.0)

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("LANDCELL_OPTIONS_EXCESS_ICE", "true")
        assert ModelOptions().excess_ice

    def test_options_are_frozen(self):
        options = ModelOptions()
        with pytest.raises(ValidationError):
            options.lakes = True


class TestGlobalParameters:

    @pytest.mark.parametrize("max_snow_temp,min_rain_temp", [(-1.0, 1.0), (0.0, 0.0)])
    def test_temperature_thresholds(self, max_snow_temp, min_rain_temp):
        with pytest.raises(ValidationError):
            GlobalParameters(max_snow_temp=max_snow_temp, min_rain_temp=min_rain_temp)

    def test_time_step_bounds(self):
        with pytest.raises(ValidationError):
            GlobalParameters(dt_hours=48.0)


class TestLandcellConfig:

    def test_yaml_roundtrip(self, tmp_path):
        config = LandcellConfig(
            options=ModelOptions(excess_ice=True, max_subsidence_mm=250.0, baseflow="nijssen2001"),
            global_params=GlobalParameters(dt_hours=3.0),
            log_level="DEBUG",
        )
        path = tmp_path / "config" / "landcell.yaml"

        config.to_yaml(path)
        loaded = LandcellConfig.from_yaml(path)

        assert loaded.options.excess_ice
        assert loaded.options.max_subsidence_mm == 250.0
        assert loaded.options.baseflow == BaseflowMode.NIJSSEN2001
        assert loaded.global_params.dt_hours == 3.0
        assert loaded.log_level == "DEBUG"

    def test_missing_yaml(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            LandcellConfig.from_yaml(tmp_path / "absent.yaml")

    def test_empty_yaml_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert LandcellConfig.from_yaml(path).options.n_layers == 3


class TestGlobalConfig:

    def test_singleton(self):
        assert get_config() is get_config()

    def test_set_config(self):
        config = LandcellConfig(options=ModelOptions(lakes=True))
        set_config(config)
        assert get_config() is config
        assert get_config().options.lakes

    def test_loaded_from_path(self, tmp_path):
        path = tmp_path / "landcell.yaml"
        LandcellConfig(options=ModelOptions(corr_prec=True)).to_yaml(path)
        assert get_config(path).options.corr_prec


class TestLogging:

    def test_configure_logging_sets_level(self):
        root = logging.getLogger()
        level = root.level
        try:
            configure_logging(LandcellConfig(log_level="WARNING"))
            assert root.level == logging.WARNING
        finally:
            root.setLevel(level)
