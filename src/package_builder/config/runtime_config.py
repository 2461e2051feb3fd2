"""Runtime configuration management with environment variable and file support.

This module provides the RuntimeConfig system for managing application configuration
from multiple sources: defaults, config files (YAML/TOML), environment variables,
and CLI flags. Configuration precedence: CLI flags > env vars > config file > defaults.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any

import yaml

from package_builder.config.exceptions import ConfigError
from package_builder.llm.config import RateLimitConfig
from package_builder.llm.constants import (
    DEFAULT_ANTHROPIC_MODEL,
    DEFAULT_API_TIMEOUT_SECONDS,
    DEFAULT_CLI_TIMEOUT_SECONDS,
    DEFAULT_GEMINI_MODEL,
    VALID_CLI_PROVIDERS,
)

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

# Keys accepted in config files; nested rate-limit settings live under "rate_limit"
_FILE_KEYS = {
    "log_level",
    "log_file",
    "primary_provider",
    "fallback_enabled",
    "anthropic_api_key",
    "anthropic_model",
    "gemini_api_key",
    "gemini_model",
    "cli_timeout",
    "api_timeout",
    "max_tokens",
}


@dataclass(frozen=True, slots=True)
class RuntimeConfig:
    """Runtime configuration for the package builder.

    This immutable configuration dataclass manages application settings from multiple
    sources with proper precedence. All fields are validated during initialization.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Optional path to log file. If None, logs to stderr only.
        primary_provider: CLI agent tried first ("gemini" or "claude").
        fallback_enabled: Allow switching to the other CLI agent on recoverable errors.
        anthropic_api_key: Key for the Anthropic Messages API.
        anthropic_model: Anthropic model identifier.
        gemini_api_key: Key for the Gemini generateContent API.
        gemini_model: Gemini model identifier.
        cli_timeout: Timeout in seconds for one CLI agent run.
        api_timeout: Timeout in seconds for one HTTP API request.
        max_tokens: Maximum tokens requested from API providers.
        rate_limit: Retry-delay settings for rate-limited calls.

    Example:
        >>> config = RuntimeConfig.from_env()
        >>> config = config.merge_with_cli(primary_provider="claude")
        >>> config.primary_provider
        'claude'
    """

    log_level: str = "INFO"
    log_file: str | None = None
    primary_provider: str = "gemini"
    fallback_enabled: bool = True
    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    gemini_api_key: str | None = None
    gemini_model: str = DEFAULT_GEMINI_MODEL
    cli_timeout: int = DEFAULT_CLI_TIMEOUT_SECONDS
    api_timeout: int = DEFAULT_API_TIMEOUT_SECONDS
    max_tokens: int = 8192
    rate_limit: RateLimitConfig = RateLimitConfig()

    def __post_init__(self) -> None:
        """Validate configuration after initialization.

        Raises:
            ConfigError: If any configuration value is invalid.
        """
        if self.log_level not in VALID_LOG_LEVELS:
            raise ConfigError(
                f"Invalid log level: {self.log_level}. Must be one of {VALID_LOG_LEVELS}"
            )

        if self.primary_provider not in VALID_CLI_PROVIDERS:
            raise ConfigError(
                f"Invalid primary_provider: {self.primary_provider}. "
                f"Must be one of {sorted(VALID_CLI_PROVIDERS)}"
            )

        if self.cli_timeout < 1:
            raise ConfigError(f"cli_timeout must be >= 1, got {self.cli_timeout}")
        if self.api_timeout < 1:
            raise ConfigError(f"api_timeout must be >= 1, got {self.api_timeout}")
        if self.max_tokens < 1:
            raise ConfigError(f"max_tokens must be >= 1, got {self.max_tokens}")

        if not isinstance(self.rate_limit, RateLimitConfig):
            raise ConfigError(
                f"rate_limit must be RateLimitConfig, got {type(self.rate_limit).__name__}"
            )

    @classmethod
    def from_defaults(cls) -> "RuntimeConfig":
        """Create configuration with default values.

        Returns:
            RuntimeConfig with defaults.
        """
        return cls()

    @classmethod
    def from_env(cls) -> "RuntimeConfig":
        """Create configuration from environment variables.

        Loads configuration from the following variables:
        - ANTHROPIC_API_KEY: Anthropic API key (default: None)
        - GEMINI_API_KEY: Gemini API key (default: None)
        - GEMINI_MODEL: Gemini model (default: "gemini-2.5-flash")
        - GEMINI_DEFAULT_RETRY_DELAY_SEC / GEMINI_RETRY_DELAY_BUFFER_SEC /
          GEMINI_MAX_RETRY_DELAY_SEC: rate-limit delays (default: 35 / 5 / 120)
        - PB_LOG_LEVEL: Logging level (default: "INFO")
        - PB_LOG_FILE: Log file path (default: None)
        - PB_PRIMARY_PROVIDER: First CLI agent to try (default: "gemini")
        - PB_FALLBACK_ENABLED: Allow provider fallback (default: "true")
        - PB_ANTHROPIC_MODEL: Anthropic model (default: "claude-sonnet-4-5")
        - PB_CLI_TIMEOUT: CLI agent timeout in seconds (default: "600")
        - PB_API_TIMEOUT: API request timeout in seconds (default: "60")
        - PB_MAX_TOKENS: Max tokens per API request (default: "8192")

        Returns:
            RuntimeConfig loaded from environment variables.

        Raises:
            ConfigError: If environment variable has invalid value.

        Example:
            >>> os.environ["PB_PRIMARY_PROVIDER"] = "claude"
            >>> config = RuntimeConfig.from_env()
            >>> assert config.primary_provider == "claude"
        """
        defaults = cls.from_defaults()

        def parse_bool(env_var: str, default: bool) -> bool:
            """Parse boolean environment variable."""
            value = os.getenv(env_var, str(default)).lower()
            if value in ("true", "1", "yes", "on"):
                return True
            if value in ("false", "0", "no", "off"):
                return False
            raise ConfigError(
                f"Invalid {env_var}='{value}'. Must be true/false, 1/0, yes/no, or on/off"
            )

        def parse_int(env_var: str, default: int, min_value: int = 1) -> int:
            """Parse integer environment variable."""
            value_str = os.getenv(env_var, str(default))
            try:
                value = int(value_str)
            except ValueError as e:
                raise ConfigError(f"Invalid {env_var}='{value_str}'. Must be an integer") from e
            if value < min_value:
                raise ConfigError(f"{env_var}={value} must be >= {min_value}")
            return value

        return cls(
            log_level=os.getenv("PB_LOG_LEVEL", defaults.log_level).upper(),
            log_file=os.getenv("PB_LOG_FILE") or defaults.log_file,
            primary_provider=os.getenv("PB_PRIMARY_PROVIDER", defaults.primary_provider).lower(),
            fallback_enabled=parse_bool("PB_FALLBACK_ENABLED", defaults.fallback_enabled),
            anthropic_api_key=os.getenv("ANTHROPIC_API_KEY") or defaults.anthropic_api_key,
            anthropic_model=os.getenv("PB_ANTHROPIC_MODEL", defaults.anthropic_model),
            gemini_api_key=os.getenv("GEMINI_API_KEY") or defaults.gemini_api_key,
            gemini_model=os.getenv("GEMINI_MODEL") or defaults.gemini_model,
            cli_timeout=parse_int("PB_CLI_TIMEOUT", defaults.cli_timeout),
            api_timeout=parse_int("PB_API_TIMEOUT", defaults.api_timeout),
            max_tokens=parse_int("PB_MAX_TOKENS", defaults.max_tokens),
            rate_limit=RateLimitConfig.from_env(),
        )

    @classmethod
    def from_file(cls, config_path: Path) -> "RuntimeConfig":
        """Load configuration from YAML or TOML file.

        Supports both YAML (.yaml, .yml) and TOML (.toml) formats.

        Args:
            config_path: Path to configuration file (YAML or TOML).

        Returns:
            RuntimeConfig loaded from file.

        Raises:
            ConfigError: If file doesn't exist, has invalid format, or contains invalid values.

        Example:
            >>> config = RuntimeConfig.from_file(Path("package-builder.yaml"))
        """
        try:
            config_path = Path(config_path).resolve()
        except (OSError, ValueError) as e:
            raise ConfigError(f"Invalid config file path: {e}") from e

        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_path}")

        if not config_path.is_file():
            raise ConfigError(f"Config path is not a file: {config_path}")

        suffix = config_path.suffix.lower()

        if suffix in (".yaml", ".yml"):
            return cls._load_from_yaml(config_path)
        elif suffix == ".toml":
            return cls._load_from_toml(config_path)
        else:
            raise ConfigError(
                f"Unsupported config file format: {suffix}. Must be .yaml, .yml, or .toml"
            )

    @classmethod
    def _load_from_yaml(cls, config_path: Path) -> "RuntimeConfig":
        """Load configuration from YAML file.

        Args:
            config_path: Path to YAML file.

        Returns:
            RuntimeConfig loaded from YAML.

        Raises:
            ConfigError: If YAML is malformed or contains invalid values.
        """
        try:
            with config_path.open("r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e

        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a mapping/dict, got {type(data).__name__}")

        return cls._from_dict(data, config_path)

    @classmethod
    def _load_from_toml(cls, config_path: Path) -> "RuntimeConfig":
        """Load configuration from TOML file.

        Args:
            config_path: Path to TOML file.

        Returns:
            RuntimeConfig loaded from TOML.

        Raises:
            ConfigError: If TOML is malformed or contains invalid values.
        """
        try:
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
        except OSError as e:
            raise ConfigError(f"Failed to read {config_path}: {e}") from e

        return cls._from_dict(data, config_path)

    @classmethod
    def _from_dict(cls, data: dict[str, Any], source: Path) -> "RuntimeConfig":
        """Create RuntimeConfig from dictionary (internal helper).

        Args:
            data: Parsed file contents.
            source: Path the data was loaded from, used in error messages.

        Returns:
            RuntimeConfig built from file values layered over defaults.

        Raises:
            ConfigError: If the data contains unknown keys or invalid values.
        """
        unknown = set(data) - _FILE_KEYS - {"rate_limit"}
        if unknown:
            raise ConfigError(f"Unknown configuration keys in {source}: {sorted(unknown)}")

        values = {key: data[key] for key in _FILE_KEYS if key in data}
        if "log_level" in values:
            values["log_level"] = str(values["log_level"]).upper()

        rate_limit_data = data.get("rate_limit")
        if rate_limit_data is not None:
            if not isinstance(rate_limit_data, dict):
                raise ConfigError(f"'rate_limit' in {source} must be a mapping")
            try:
                values["rate_limit"] = RateLimitConfig(**rate_limit_data)
            except TypeError as e:
                raise ConfigError(f"Invalid rate_limit settings in {source}: {e}") from e

        logger.debug(f"Loaded configuration keys from {source}: {sorted(values)}")
        return cls(**values)

    def merge_with_cli(self, **overrides: Any) -> "RuntimeConfig":  # noqa: ANN401
        """Create a new configuration with CLI overrides applied.

        CLI flags take precedence over environment variables and config files.
        Overrides whose value is None are ignored.

        Args:
            **overrides: Field names mapped to override values.

        Returns:
            New RuntimeConfig with overrides applied.

        Raises:
            ConfigError: If an override names an unknown field or has an invalid value.
        """
        valid_fields = {f.name for f in fields(self)}
        filtered = {k: v for k, v in overrides.items() if v is not None}
        unknown = set(filtered) - valid_fields
        if unknown:
            raise ConfigError(f"Unknown configuration overrides: {sorted(unknown)}")
        if not filtered:
            return self
        return replace(self, **filtered)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to a dictionary with secrets redacted.

        Returns:
            Dictionary representation suitable for display or logging.
        """
        result: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name.endswith("_api_key"):
                value = "***" if value else None
            elif isinstance(value, RateLimitConfig):
                value = {
                    "default_retry_delay_sec": value.default_retry_delay_sec,
                    "retry_delay_buffer_sec": value.retry_delay_buffer_sec,
                    "max_retry_delay_sec": value.max_retry_delay_sec,
                }
            result[f.name] = value
        return result

    @classmethod
    def load(cls, config_path: Path | None = None, **cli_overrides: Any) -> "RuntimeConfig":  # noqa: ANN401
        """Load configuration with full precedence applied.

        File values override defaults, environment variables override file values
        for the variables that are actually set, and CLI overrides win over all.

        Args:
            config_path: Optional YAML/TOML file.
            **cli_overrides: Values from CLI flags (None means "not given").

        Returns:
            Fully resolved RuntimeConfig.

        Raises:
            ConfigError: If any source contains invalid values.
        """
        base = cls.from_file(config_path) if config_path else cls.from_defaults()
        env_config = cls.from_env()

        env_overrides: dict[str, Any] = {}
        env_var_map = {
            "log_level": "PB_LOG_LEVEL",
            "log_file": "PB_LOG_FILE",
            "primary_provider": "PB_PRIMARY_PROVIDER",
            "fallback_enabled": "PB_FALLBACK_ENABLED",
            "anthropic_api_key": "ANTHROPIC_API_KEY",
            "anthropic_model": "PB_ANTHROPIC_MODEL",
            "gemini_api_key": "GEMINI_API_KEY",
            "gemini_model": "GEMINI_MODEL",
            "cli_timeout": "PB_CLI_TIMEOUT",
            "api_timeout": "PB_API_TIMEOUT",
            "max_tokens": "PB_MAX_TOKENS",
        }
        for field_name, env_var in env_var_map.items():
            if os.getenv(env_var):
                env_overrides[field_name] = getattr(env_config, field_name)

        rate_limit_vars = (
            "GEMINI_DEFAULT_RETRY_DELAY_SEC",
            "GEMINI_RETRY_DELAY_BUFFER_SEC",
            "GEMINI_MAX_RETRY_DELAY_SEC",
        )
        if any(os.getenv(var) for var in rate_limit_vars):
            env_overrides["rate_limit"] = env_config.rate_limit

        return base.merge_with_cli(**env_overrides).merge_with_cli(**cli_overrides)
