"""PRD-first project bootstrap orchestrator.

Turns a Project Requirements Document into a work-tracking project, an
identity registration and low-code platform resources, then closes the
technical stories whose infrastructure was provisioned.
"""

__version__ = "1.0.0"
