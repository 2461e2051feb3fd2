"""LLM provider implementations.

Available providers:
- anthropic_api.py: Anthropic Messages API
- gemini_api.py: Gemini generateContent REST API
- claude_cli.py: Claude Code CLI agent
- gemini_cli.py: Gemini CLI agent
"""

from package_builder.llm.providers.anthropic_api import AnthropicAPIProvider
from package_builder.llm.providers.claude_cli import ClaudeCLIProvider
from package_builder.llm.providers.gemini_api import GeminiAPIProvider
from package_builder.llm.providers.gemini_cli import GeminiCLIProvider

__all__: list[str] = [
    "AnthropicAPIProvider",
    "ClaudeCLIProvider",
    "GeminiAPIProvider",
    "GeminiCLIProvider",
]
