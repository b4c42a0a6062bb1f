"""API routers for the orchestrator."""

from . import projects, operations, templates, prd

__all__ = ["projects", "operations", "templates", "prd"]
