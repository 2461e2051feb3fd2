"""Parsers for LLM responses: the hybrid JSON/content protocol and the legacy JSON format."""

from package_builder.protocol.hybrid import (
    generate_protocol_instructions,
    parse_hybrid_response,
)
from package_builder.protocol.response_parser import parse_agent_response

__all__ = ["generate_protocol_instructions", "parse_agent_response", "parse_hybrid_response"]
