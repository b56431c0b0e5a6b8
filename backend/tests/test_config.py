"""
Tests for run configuration.
"""

import pytest

from eafgeo.config import PipelineConfig
from eafgeo.errors import InvalidDownsampleOrGeometryParameter
from eafgeo.models.geometry import GeoshapeMode


class TestPipelineConfig:
    """Tests for PipelineConfig."""

    def test_defaults(self):
        config = PipelineConfig()

        assert config.mode == GeoshapeMode.ALL_POINTS
        assert config.downsample == 1
        assert config.min_lock == 3
        assert config.max_dop is None
        assert not config.overwrite

    def test_overrides_skip_none(self):
        config = PipelineConfig().with_overrides(downsample=4, max_dop=None, radius=3.5)

        assert config.downsample == 4
        assert config.max_dop is None
        assert config.geometry.radius == 3.5

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("EAFGEO_MODE", "broken-line")
        monkeypatch.setenv("EAFGEO_DOWNSAMPLE", "5")
        monkeypatch.setenv("EAFGEO_MIN_LOCK", "2")
        monkeypatch.setenv("EAFGEO_MAX_DOP", "4.5")
        monkeypatch.setenv("EAFGEO_TIME_OFFSET", "-2")
        monkeypatch.setenv("EAFGEO_OVERWRITE", "1")

        config = PipelineConfig.from_env()

        assert config.mode == GeoshapeMode.BROKEN_LINE
        assert config.downsample == 5
        assert config.min_lock == 2
        assert config.max_dop == 4.5
        assert config.time_offset_hours == -2.0
        assert config.overwrite

    def test_from_env_blank_values(self, monkeypatch):
        monkeypatch.setenv("EAFGEO_MAX_DOP", "")
        monkeypatch.delenv("EAFGEO_MODE", raising=False)

        config = PipelineConfig.from_env()

        assert config.max_dop is None
        assert config.mode == GeoshapeMode.ALL_POINTS

    def test_from_env_unknown_mode(self, monkeypatch):
        monkeypatch.setenv("EAFGEO_MODE", "spirals")

        with pytest.raises(InvalidDownsampleOrGeometryParameter):
            PipelineConfig.from_env()

    def test_from_env_flags(self, monkeypatch):
        monkeypatch.setenv("EAFGEO_GROUP_POINTS", "true")
        monkeypatch.setenv("EAFGEO_HTML_DESCRIPTIONS", "1")

        config = PipelineConfig.from_env()

        assert config.group_points
        assert config.html_descriptions
        assert config.geometry.group_points


class TestValidate:
    """Tests for PipelineConfig.validate."""

    def test_defaults_are_valid(self):
        config = PipelineConfig()

        assert config.validate() is config

    @pytest.mark.parametrize(
        "overrides",
        [
            {"min_lock": 1},
            {"min_lock": True},
            {"max_dop": 0.0},
            {"max_dop": -1.0},
            {"downsample": 0},
            {"vertices": 2},
            {"radius": 0.0},
        ],
    )
    def test_invalid(self, overrides):
        with pytest.raises(InvalidDownsampleOrGeometryParameter) as exc:
            PipelineConfig(**overrides).validate()

        assert exc.value.name == next(iter(overrides))

    @pytest.mark.parametrize("min_lock", [0, 2, 3])
    def test_lock_levels(self, min_lock):
        PipelineConfig(min_lock=min_lock, max_dop=2.5).validate()
