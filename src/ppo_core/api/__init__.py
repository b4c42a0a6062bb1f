"""REST API for the orchestrator."""
