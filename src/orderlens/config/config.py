"""
Configuration management for orderlens using Pydantic.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal, Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..exceptions import ConfigurationError

# --- Setup Logging ---
log = logging.getLogger(__name__)

# --- Nested Configuration Models ---


class SanitizerConfig(BaseModel):
    """Configuration for the HTML sanitizer."""

    max_html_chars: int = Field(default=60_000, gt=100, description="Cap for the structured-HTML projection.")
    max_text_chars: int = Field(default=30_000, gt=100, description="Cap for the plain-text projection.")
    strip_layout_chrome: bool = Field(
        default=True,
        description="Remove site-wide header/footer/nav/aside blocks whose class mentions main/site/global.",
    )


class DetectionConfig(BaseModel):
    """Thresholds for the URL and page classifiers."""

    url_threshold: float = Field(default=0.6, ge=0.0, le=1.0, description="Confirmation URL decision threshold.")
    details_threshold: float = Field(default=0.7, ge=0.0, le=1.0, description="Order-details URL decision threshold.")
    strong_signal_threshold: float = Field(
        default=0.4,
        ge=0.0,
        le=1.0,
        description="Page threshold when a URL or title signal fired.",
    )
    content_only_threshold: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Page threshold when only content signals fired.",
    )
    llm_invoke_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Minimum page confidence for calling the LLM when no trigger fired.",
    )

    @model_validator(mode="after")
    def check_threshold_order(self) -> "DetectionConfig":
        if self.strong_signal_threshold > self.content_only_threshold:
            raise ValueError("strong_signal_threshold must not exceed content_only_threshold")
        return self


class LLMConfig(BaseModel):
    """Configuration for the model endpoint."""

    provider: Literal["openai", "anthropic", "gemini"] = Field(default="openai")
    api_key: Optional[str] = Field(default=None, description="API credential. None disables the LLM path.")
    model: Optional[str] = Field(default=None, description="Model name. None picks the provider default.")
    endpoint: Optional[str] = Field(default=None, description="Override for the provider endpoint URL.")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0)
    max_output_tokens: int = Field(default=2000, gt=0)
    max_prompt_chars: int = Field(default=50_000, gt=0, description="Text characters embedded in the prompt.")
    timeout_seconds: float = Field(default=30.0, gt=0)
    heuristic_override_threshold: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Heuristic confidence that overrides a negative model answer.",
    )

    @field_validator("api_key", mode="before")
    @classmethod
    def blank_key_is_none(cls, v: Any) -> Any:
        if isinstance(v, str) and not v.strip():
            return None
        return v


class OrchestratorConfig(BaseModel):
    """Timing and trust policy for the per-page pipeline."""

    debounce_ms: int = Field(default=2000, ge=0, description="Skip a URL processed within this window.")
    min_wait_seconds: float = Field(default=1.0, ge=0, description="Minimum wait for client-side rendering.")
    stability_window_seconds: float = Field(default=0.5, gt=0, description="Quiet period that ends the wait.")
    max_wait_seconds: float = Field(default=5.0, gt=0, description="Hard bound on the dynamic-content wait.")
    poll_interval_seconds: float = Field(default=0.25, gt=0)
    navigation_settle_seconds: float = Field(default=0.5, ge=0)
    heuristic_trust_threshold: float = Field(
        default=0.8,
        ge=0.0,
        le=1.0,
        description="Page confidence at which heuristics are trusted over a negative model answer.",
    )
    placeholder_product_name: str = Field(default="Items from this order")

    @model_validator(mode="after")
    def check_wait_bounds(self) -> "OrchestratorConfig":
        if self.min_wait_seconds > self.max_wait_seconds:
            raise ValueError("min_wait_seconds must not exceed max_wait_seconds")
        return self


class MonitoringConfig(BaseModel):
    """Configuration for logging and metrics."""

    log_level: str = Field(default="INFO", description="Logging level (e.g., DEBUG, INFO, WARNING).")
    log_file: str | None = Field(default=None, description="Path to log file. If None, logs to console.")

    @field_validator("log_file", mode="before")
    @classmethod
    def create_parent_dir(cls, v: str | Path | None) -> str | None:
        if v is None:
            return None
        path = Path(v)
        path.parent.mkdir(parents=True, exist_ok=True)
        return str(path)


# --- Main Configuration Class ---


class Config(BaseSettings):
    project_name: str = "orderlens"
    version: str = "0.1.0"
    sanitizer: SanitizerConfig = Field(default_factory=SanitizerConfig)
    detection: DetectionConfig = Field(default_factory=DetectionConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    monitoring: MonitoringConfig = Field(default_factory=MonitoringConfig)

    model_config = SettingsConfigDict(env_prefix="ORDERLENS_", env_nested_delimiter="__", case_sensitive=False)

    @classmethod
    def from_yaml(cls, path: Path) -> Config:
        log.debug("Loading configuration from YAML file: %s", path)
        if not path.is_file():
            raise FileNotFoundError(f"Configuration file not found or is not a file: {path}")
        with open(path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f)
        if not yaml_data:
            log.warning("Configuration file is empty: %s. Using default settings.", path)
            return cls.model_validate({})
        return cls.model_validate(yaml_data)


def find_config_file() -> Path | None:
    current_dir = Path.cwd()
    for name in ("orderlens.yaml", "orderlens.yml", "config.yaml", "config.yml"):
        path = current_dir / name
        if path.exists():
            return path
    return None


def load_config(path: Path | None = None) -> Config:
    """Load an explicit file, else a discovered one, else defaults; invalid files raise ConfigurationError."""
    path = path or find_config_file()
    if path is None:
        return Config()
    try:
        return Config.from_yaml(path)
    except (ValidationError, FileNotFoundError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Invalid configuration file '{path}': {e}") from e
