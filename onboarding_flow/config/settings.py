"""
Configuration system using Pydantic for type-safe settings management.

Settings can come from defaults, ``ONBOARDING_*`` environment variables
(nested sections use ``__``, e.g. ``ONBOARDING_RESILIENCE__FAILURE_THRESHOLD``)
or a YAML file loaded with :meth:`OnboardingSettings.from_yaml`.
"""

from __future__ import annotations

import os
import re
import sys
from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from onboarding_flow.exceptions import ConfigurationError


class PersistenceConfig(BaseModel):
    """Where saved session state lives."""

    backend: Literal["memory", "file"] = Field(default="file", description="State backend")
    state_directory: str = Field(
        default=".onboarding/state", description="Directory for saved session files"
    )


class ResilienceConfig(BaseModel):
    """Circuit breaker and health thresholds."""

    failure_threshold: int = Field(default=3, ge=1, description="Failures before a breaker opens")
    cooldown_seconds: float = Field(
        default=60.0, ge=0.0, description="Seconds an open breaker waits before half-open"
    )
    degradation_threshold: float = Field(
        default=0.7, ge=0.0, le=1.0, description="Health score below which a component is degraded"
    )


class SessionConfig(BaseModel):
    """Session lifecycle behaviour."""

    interruption_threshold_minutes: int = Field(
        default=60, ge=1, description="Inactivity after which a recovered session counts as interrupted"
    )
    default_platform: str = Field(
        default_factory=lambda: sys.platform, description="Platform used for platform instructions"
    )


class OnboardingSettings(BaseSettings):
    """Main onboarding settings.

    Combines all configuration sections and supports loading from YAML
    files with environment variable interpolation.
    """

    model_config = SettingsConfigDict(
        env_prefix="ONBOARDING_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    resilience: ResilienceConfig = Field(default_factory=ResilienceConfig)
    session: SessionConfig = Field(default_factory=SessionConfig)
    log_level: str = Field(default="INFO", description="structlog minimum level")

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.persistence.state_directory)

    @classmethod
    def from_yaml(cls, config_path: str) -> OnboardingSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ``${VAR_NAME}`` and ``${VAR_NAME:-default}`` substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            OnboardingSettings instance

        Raises:
            ConfigurationError: If the file is missing, unreadable, not a YAML
                mapping, references an unset variable, or fails validation
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Replace ``${VAR}`` placeholders outside of YAML comment lines.

        Raises:
            ValueError: If a variable without default is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            if default_value is not None:
                return default_value
            raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
