"""Configuration loading for the Tally test runner.

This module provides centralized configuration management:
- Load settings from TALLY_* environment variables and .env files
- Validate configuration using pydantic
- Merge overrides from config modules and command-line flags
- Build the immutable RunConfig handed to the run controller
"""

from collections.abc import Mapping
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tally.core.exceptions import ConfigurationError
from tally.core.models import RunConfig

# Config module attribute name -> Settings field
CONFIG_MODULE_FIELDS = {
    "timeout": "timeout_ms",
    "max_errors": "max_errors",
    "max_stack": "max_stack",
    "pattern": "pattern",
    "verbose": "verbose",
    "quiet": "quiet",
}


class Settings(BaseSettings):
    """Runner configuration loaded from environment.

    Uses pydantic-settings for environment variable handling with
    .env file support via python-dotenv.
    """

    model_config = SettingsConfigDict(
        env_prefix="TALLY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Discovery
    directory: str = Field(
        default="test",
        description="Directory searched for setup, config, and test files",
    )

    # Run options
    timeout_ms: int = Field(
        default=5000,
        description="Time limit in milliseconds for each hook, before(), after(), and it() block",
    )
    max_errors: int = Field(
        default=-1,
        description="Maximum errors allowed before exiting; -1 means unbounded",
    )
    max_stack: int = Field(
        default=5,
        description="Maximum number of lines in reported stack traces",
    )
    pattern: str | None = Field(
        default=None,
        description="Regular expression selecting tests by their full name",
    )
    verbose: bool = Field(
        default=False,
        description="Report before()/after() durations",
    )
    quiet: bool = Field(
        default=False,
        description="Suppress block headers and setup/teardown/pending sections",
    )

    # Logging configuration
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="WARNING",
        description="Log level",
    )
    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log format",
    )

    @field_validator("timeout_ms")
    @classmethod
    def validate_timeout(cls, v: int) -> int:
        """Ensure timeout is positive."""
        if v <= 0:
            raise ValueError("timeout_ms must be positive")
        return v

    @field_validator("max_errors")
    @classmethod
    def validate_max_errors(cls, v: int) -> int:
        """Ensure max_errors is non-negative or -1 (unbounded)."""
        if v < -1:
            raise ValueError("max_errors must be non-negative, or -1 for unbounded")
        return v

    @field_validator("max_stack")
    @classmethod
    def validate_max_stack(cls, v: int) -> int:
        """Ensure stack line limit is non-negative."""
        if v < 0:
            raise ValueError("max_stack must be non-negative")
        return v

    def with_overrides(self, overrides: Mapping[str, Any]) -> "Settings":
        """Return validated settings with non-None overrides applied.

        Raises:
            ConfigurationError: If an override fails validation.
        """
        updates = {k: v for k, v in overrides.items() if v is not None}
        if not updates:
            return self
        try:
            return type(self)(**{**self.model_dump(), **updates})
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def to_run_config(self) -> RunConfig:
        """Build the immutable per-run config."""
        return RunConfig(
            timeout_ms=self.timeout_ms,
            max_errors=None if self.max_errors < 0 else self.max_errors,
            max_stack_lines=self.max_stack,
            pattern=self.pattern,
            verbose=self.verbose,
            quiet=self.quiet,
        )


def config_module_overrides(module: Any) -> dict[str, Any]:
    """Read run option overrides from a config module's attributes."""
    return {
        setting: getattr(module, attribute)
        for attribute, setting in CONFIG_MODULE_FIELDS.items()
        if hasattr(module, attribute)
    }


def load_settings(env_file: str | None = None) -> Settings:
    """Load runner settings from environment.

    Args:
        env_file: Optional path to .env file. If not provided,
                 uses the default .env in the current directory.

    Returns:
        Validated Settings instance.

    Raises:
        ConfigurationError: If settings validation fails.
    """
    try:
        if env_file:
            return Settings(_env_file=env_file)  # type: ignore[call-arg]
        return Settings()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


__all__ = ["Settings", "config_module_overrides", "load_settings"]
