"""Package Builder Agent.

LLM-driven scaffolding of TypeScript packages: hybrid response parsing, safe
file application and provider fallback between coding-agent CLIs.
"""

__version__ = "0.1.0"

from .config.runtime_config import RuntimeConfig
from .core.applier import FileApplier, FileOperationsError
from .core.commands import AgentCommand, CommandType, parse_agent_command
from .core.models import FileAction, FileOperation, ParsedHybridResponse
from .llm.fallback import ProviderRegistry
from .protocol.hybrid import parse_hybrid_response
from .security.path_safety import UnsafePathError, validate_path_safety

__all__ = [
    "AgentCommand",
    "CommandType",
    "FileAction",
    "FileApplier",
    "FileOperation",
    "FileOperationsError",
    "ParsedHybridResponse",
    "ProviderRegistry",
    "RuntimeConfig",
    "UnsafePathError",
    "parse_agent_command",
    "parse_hybrid_response",
    "validate_path_safety",
]
