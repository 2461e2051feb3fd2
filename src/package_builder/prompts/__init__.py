"""Prompt templates for agent turns."""

from package_builder.prompts.builder import build_next_action_prompt, validate_prompt

__all__ = ["build_next_action_prompt", "validate_prompt"]
