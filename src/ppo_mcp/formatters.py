"""Response envelopes for MCP tool results."""
import json
from typing import Any

import httpx
from mcp.types import TextContent


def envelope(success: bool, data: Any = None, error: Any = None) -> dict:
    """Build the ``{success, data | error}`` envelope."""
    if success:
        return {"success": True, "data": data}
    return {"success": False, "error": error}


def to_content(payload: dict) -> list[TextContent]:
    return [TextContent(type="text", text=json.dumps(payload, indent=2, default=str))]


def ok(data: Any) -> list[TextContent]:
    return to_content(envelope(True, data=data))


def fail(error: Any) -> list[TextContent]:
    return to_content(envelope(False, error=error))


def error_detail(response: httpx.Response) -> Any:
    """Pull FastAPI's ``detail`` out of an error response, falling back to the raw text."""
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


def format_operation_summary(status: dict) -> str:
    """One-line progress summary for an operation status payload."""
    progress = status.get("progress") or {}
    step = progress.get("currentStep")
    step_info = f", current step: {step}" if step else ""
    return (
        f"Operation {status.get('operationId')} is {status.get('status')} "
        f"({progress.get('completedSteps', 0)}/{progress.get('totalSteps', 0)} steps{step_info})"
    )
