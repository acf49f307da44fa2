"""Configuration models and loaders."""

from .config import (
    Config,
    DetectionConfig,
    LLMConfig,
    MonitoringConfig,
    OrchestratorConfig,
    SanitizerConfig,
    find_config_file,
    load_config,
)

__all__ = [
    "Config",
    "DetectionConfig",
    "LLMConfig",
    "MonitoringConfig",
    "OrchestratorConfig",
    "SanitizerConfig",
    "find_config_file",
    "load_config",
]
