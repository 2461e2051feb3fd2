"""Configuration management.

Runtime settings live in :mod:`package_builder.config.runtime_config`. Only
the exception is re-exported here because the LLM settings module depends on it.
"""

from package_builder.config.exceptions import ConfigError

__all__ = ["ConfigError"]
