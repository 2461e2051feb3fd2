"""Unit tests for RuntimeConfig in package_builder.config.runtime_config."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from package_builder.config.exceptions import ConfigError
from package_builder.config.runtime_config import RuntimeConfig
from package_builder.llm.config import RateLimitConfig


class TestRuntimeConfigDefaults:
    """Test RuntimeConfig default values."""

    def test_from_defaults(self) -> None:
        config = RuntimeConfig.from_defaults()
        assert config.log_level == "INFO"
        assert config.log_file is None
        assert config.primary_provider == "gemini"
        assert config.fallback_enabled is True
        assert config.cli_timeout == 600
        assert config.api_timeout == 60
        assert config.max_tokens == 8192
        assert config.rate_limit == RateLimitConfig()

    def test_is_frozen(self) -> None:
        config = RuntimeConfig.from_defaults()
        with pytest.raises(AttributeError):
            config.log_level = "DEBUG"  # type: ignore[misc]


class TestRuntimeConfigValidation:
    """Test RuntimeConfig field validation."""

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ConfigError, match="Invalid log level"):
            RuntimeConfig(log_level="VERBOSE")

    def test_invalid_primary_provider(self) -> None:
        with pytest.raises(ConfigError, match="Invalid primary_provider"):
            RuntimeConfig(primary_provider="openai")

    @pytest.mark.parametrize("field_name", ["cli_timeout", "api_timeout", "max_tokens"])
    def test_non_positive_numbers(self, field_name: str) -> None:
        with pytest.raises(ConfigError, match=f"{field_name} must be >= 1"):
            RuntimeConfig(**{field_name: 0})

    def test_rate_limit_type_checked(self) -> None:
        with pytest.raises(ConfigError, match="rate_limit must be RateLimitConfig"):
            RuntimeConfig(rate_limit={"default_retry_delay_sec": 1})  # type: ignore[arg-type]


class TestRuntimeConfigFromEnv:
    """Test environment variable loading."""

    def test_reads_variables(self) -> None:
        env = {
            "PB_LOG_LEVEL": "debug",
            "PB_PRIMARY_PROVIDER": "Claude",
            "PB_FALLBACK_ENABLED": "no",
            "ANTHROPIC_API_KEY": "sk-ant-test",
            "GEMINI_API_KEY": "AIza-test",
            "GEMINI_MODEL": "gemini-2.5-pro",
            "PB_CLI_TIMEOUT": "300",
            "GEMINI_DEFAULT_RETRY_DELAY_SEC": "10",
        }
        with patch.dict(os.environ, env, clear=True):
            config = RuntimeConfig.from_env()

        assert config.log_level == "DEBUG"
        assert config.primary_provider == "claude"
        assert config.fallback_enabled is False
        assert config.anthropic_api_key == "sk-ant-test"
        assert config.gemini_api_key == "AIza-test"
        assert config.gemini_model == "gemini-2.5-pro"
        assert config.cli_timeout == 300
        assert config.rate_limit.default_retry_delay_sec == 10

    def test_empty_env_gives_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert RuntimeConfig.from_env() == RuntimeConfig.from_defaults()

    def test_invalid_boolean(self) -> None:
        with patch.dict(os.environ, {"PB_FALLBACK_ENABLED": "maybe"}, clear=True):
            with pytest.raises(ConfigError, match="PB_FALLBACK_ENABLED"):
                RuntimeConfig.from_env()

    def test_invalid_integer(self) -> None:
        with patch.dict(os.environ, {"PB_MAX_TOKENS": "lots"}, clear=True):
            with pytest.raises(ConfigError, match="Must be an integer"):
                RuntimeConfig.from_env()

    def test_invalid_rate_limit_integer(self) -> None:
        with patch.dict(os.environ, {"GEMINI_MAX_RETRY_DELAY_SEC": "soon"}, clear=True):
            with pytest.raises(ConfigError, match="GEMINI_MAX_RETRY_DELAY_SEC"):
                RuntimeConfig.from_env()


class TestRuntimeConfigFromFile:
    """Test YAML and TOML loading."""

    def test_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text(
            "log_level: warning\n"
            "primary_provider: claude\n"
            "cli_timeout: 120\n"
            "rate_limit:\n"
            "  default_retry_delay_sec: 20\n"
            "  max_retry_delay_sec: 60\n"
        )
        config = RuntimeConfig.from_file(config_file)
        assert config.log_level == "WARNING"
        assert config.primary_provider == "claude"
        assert config.cli_timeout == 120
        assert config.rate_limit == RateLimitConfig(
            default_retry_delay_sec=20, max_retry_delay_sec=60
        )

    def test_toml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.toml"
        config_file.write_text('fallback_enabled = false\ngemini_model = "gemini-2.5-pro"\n')
        config = RuntimeConfig.from_file(config_file)
        assert config.fallback_enabled is False
        assert config.gemini_model == "gemini-2.5-pro"

    def test_empty_yaml_gives_defaults(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yml"
        config_file.write_text("")
        assert RuntimeConfig.from_file(config_file) == RuntimeConfig.from_defaults()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="Config file not found"):
            RuntimeConfig.from_file(tmp_path / "nope.yaml")

    def test_unsupported_suffix(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.ini"
        config_file.write_text("[x]")
        with pytest.raises(ConfigError, match="Unsupported config file format"):
            RuntimeConfig.from_file(config_file)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("log_level: [unclosed")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            RuntimeConfig.from_file(config_file)

    def test_non_mapping_yaml(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="must contain a mapping"):
            RuntimeConfig.from_file(config_file)

    def test_unknown_keys(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("provider_zoo: true\n")
        with pytest.raises(ConfigError, match="Unknown configuration keys"):
            RuntimeConfig.from_file(config_file)

    def test_invalid_rate_limit_keys(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("rate_limit:\n  jitter: 3\n")
        with pytest.raises(ConfigError, match="Invalid rate_limit settings"):
            RuntimeConfig.from_file(config_file)


class TestRuntimeConfigMerge:
    """Test precedence and CLI overrides."""

    def test_merge_with_cli_ignores_none(self) -> None:
        config = RuntimeConfig.from_defaults()
        assert config.merge_with_cli(log_level=None) is config

    def test_merge_with_cli_overrides(self) -> None:
        config = RuntimeConfig.from_defaults().merge_with_cli(primary_provider="claude")
        assert config.primary_provider == "claude"

    def test_merge_with_cli_unknown_field(self) -> None:
        with pytest.raises(ConfigError, match="Unknown configuration overrides"):
            RuntimeConfig.from_defaults().merge_with_cli(colour="blue")

    def test_merge_with_cli_validates(self) -> None:
        with pytest.raises(ConfigError):
            RuntimeConfig.from_defaults().merge_with_cli(log_level="LOUD")

    def test_load_precedence(self, tmp_path: Path) -> None:
        config_file = tmp_path / "config.yaml"
        config_file.write_text("log_level: WARNING\nprimary_provider: claude\ncli_timeout: 120\n")

        with patch.dict(os.environ, {"PB_CLI_TIMEOUT": "240"}, clear=True):
            config = RuntimeConfig.load(config_file, log_level="ERROR")

        assert config.log_level == "ERROR"  # CLI beats file
        assert config.cli_timeout == 240  # env beats file
        assert config.primary_provider == "claude"  # file beats default

    def test_load_without_file(self) -> None:
        with patch.dict(os.environ, {"GEMINI_RETRY_DELAY_BUFFER_SEC": "9"}, clear=True):
            config = RuntimeConfig.load()
        assert config.rate_limit.retry_delay_buffer_sec == 9


class TestRuntimeConfigToDict:
    """Test to_dict output."""

    def test_api_keys_are_redacted(self) -> None:
        data = RuntimeConfig(anthropic_api_key="sk-ant-secret").to_dict()
        assert data["anthropic_api_key"] == "***"
        assert data["gemini_api_key"] is None
        assert "sk-ant-secret" not in str(data)

    def test_rate_limit_is_a_dict(self) -> None:
        data = RuntimeConfig.from_defaults().to_dict()
        assert data["rate_limit"] == {
            "default_retry_delay_sec": 35,
            "retry_delay_buffer_sec": 5,
            "max_retry_delay_sec": 120,
        }
