"""Tests for the project.yaml loader and Project seeding.

Validates that:
    - the packaged project.yaml loads with the current schema
    - validation failures raise ConfigError naming the offending key
    - Project.from_config carries every setting onto the program
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from gcam.blocks import Tool
from gcam.configs import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    ProjectConfig,
    load_config,
)
from gcam.constants import Driver, DrillingMotion, MachineOption, Material, Units
from gcam.project import Project
from gcam.utils.fs import atomic_yaml_dump


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def config() -> ProjectConfig:
    """Load the default project.yaml shipped with the package."""
    return load_config()


@pytest.fixture()
def write_config(tmp_path: Path):
    """Write a YAML document to a temporary file and return its path."""

    def _write(doc) -> Path:
        path = tmp_path / "project.yaml"
        atomic_yaml_dump(doc, path)
        return path

    return _write


# ---------------------------------------------------------------------------
# Packaged defaults
# ---------------------------------------------------------------------------


class TestDefaults:
    def test_default_path_exists(self) -> None:
        assert DEFAULT_CONFIG_PATH.exists()

    def test_types(self, config: ProjectConfig) -> None:
        assert isinstance(config.units, Units)
        assert isinstance(config.material.type, Material)
        assert isinstance(config.machine.driver, Driver)
        assert isinstance(config.machine.drilling_motion, DrillingMotion)

    def test_decimals_in_range(self, config: ProjectConfig) -> None:
        assert 0 <= config.machine.decimals <= 9

    def test_material_size_positive(self, config: ProjectConfig) -> None:
        assert all(d > 0 for d in config.material.size)

    def test_frozen(self, config: ProjectConfig) -> None:
        with pytest.raises(dataclasses.FrozenInstanceError):
            config.units = Units.INCH  # type: ignore[misc]


# ---------------------------------------------------------------------------
# Overrides and validation
# ---------------------------------------------------------------------------


class TestLoader:
    def test_partial_document_uses_defaults(self, write_config) -> None:
        cfg = load_config(write_config({
            "schema": "project.v1",
            "machine": {"driver": "haas", "decimals": 4, "options": {"coolant": True}},
        }))
        assert cfg.machine.driver == Driver.HAAS
        assert cfg.machine.options == int(MachineOption.COOLANT)
        assert cfg.units == Units.MM

    def test_inch_project(self, write_config) -> None:
        cfg = load_config(write_config({"project": {"units": "inch", "ztraverse": 0.25}}))
        assert cfg.units == Units.INCH
        assert cfg.ztraverse == 0.25

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.yaml")

    def test_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yaml"
        path.write_text("")
        with pytest.raises(ConfigError, match="Empty"):
            load_config(path)

    def test_top_level_must_be_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "list.yaml"
        path.write_text("- 1\n- 2\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    @pytest.mark.parametrize(
        "doc, key",
        [
            ({"project": {"units": "furlong"}}, "project.units"),
            ({"material": {"size": [1.0, 0.0, 1.0]}}, "material.size"),
            ({"machine": {"decimals": 12}}, "machine.decimals"),
            ({"machine": {"driver": "fanuc"}}, "machine.driver"),
            ({"tool": {"plunge_ratio": 1.5}}, "tool.plunge_ratio"),
            ({"bogus": 1}, "bogus"),
            ({"schema": "project.v0"}, "schema"),
        ],
    )
    def test_invalid_values_name_the_key(self, write_config, doc: dict, key: str) -> None:
        with pytest.raises(ConfigError, match=key):
            load_config(write_config(doc))

    def test_name_too_long(self, write_config) -> None:
        with pytest.raises(ConfigError, match="project.name"):
            load_config(write_config({"project": {"name": "x" * 40}}))

    def test_negative_ztraverse(self, write_config) -> None:
        with pytest.raises(ConfigError, match="ztraverse"):
            load_config(write_config({"project": {"ztraverse": -1.0}}))

    def test_haas_decimals_warning(self, write_config, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING", logger="gcam.configs.loader"):
            load_config(write_config({"machine": {"driver": "haas", "decimals": 6}}))
        assert "HAAS" in caplog.text


# ---------------------------------------------------------------------------
# Project seeding
# ---------------------------------------------------------------------------


class TestProjectFromConfig:
    def test_defaults_match_plain_project(self, config: ProjectConfig) -> None:
        seeded = Project.from_config(config)
        plain = Project()
        for attr in ("units", "material_type", "material_size", "decimals", "driver", "crlf"):
            assert getattr(seeded, attr) == getattr(plain, attr)

    def test_settings_carried(self, write_config) -> None:
        cfg = load_config(write_config({
            "project": {"name": "plate", "units": "inch", "project_number": 7},
            "material": {"type": "aluminum", "size": [4.0, 3.0, 0.5]},
            "machine": {"driver": "turbocnc", "drilling_motion": "simple",
                        "options": {"spindle_control": True}},
            "output": {"crlf": True},
            "tool": {"spindle_rpm": 12000, "plunge_ratio": 0.3},
        }))
        project = Project.from_config(cfg)
        assert project.name == "plate"
        assert project.units == Units.INCH
        assert project.material_type == Material.ALUMINUM
        assert project.material_size == (4.0, 3.0, 0.5)
        assert project.driver == Driver.TURBOCNC
        assert project.drilling_motion == DrillingMotion.SIMPLE
        assert project.machine_options & MachineOption.SPINDLE_CONTROL
        assert project.crlf is True

        tool = Tool(project)
        assert tool.spindle_rpm == 12000
        assert tool.plunge_ratio == pytest.approx(0.3)
        assert tool.feed == pytest.approx(3.0)
