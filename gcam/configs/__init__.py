"""Project default configuration: loading and validation."""

from gcam.configs.loader import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    MachineConfig,
    MaterialConfig,
    OutputConfig,
    ProjectConfig,
    ToolDefaultsConfig,
    load_config,
)

__all__ = [
    "DEFAULT_CONFIG_PATH",
    "ConfigError",
    "MachineConfig",
    "MaterialConfig",
    "OutputConfig",
    "ProjectConfig",
    "ToolDefaultsConfig",
    "load_config",
]
