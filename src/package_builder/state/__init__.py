"""Persistent build state and log artifacts."""

from package_builder.state.generation_state import (
    GenerationContext,
    GenerationPhase,
    GenerationStep,
    load_generation_state,
    save_generation_state,
)

__all__ = [
    "GenerationContext",
    "GenerationPhase",
    "GenerationStep",
    "load_generation_state",
    "save_generation_state",
]
