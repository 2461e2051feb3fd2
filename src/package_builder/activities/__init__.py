"""Units of work invoked by the build orchestrator."""
