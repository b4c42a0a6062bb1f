"""MCP tool handlers.

All handlers follow a consistent pattern:
- Accept: arguments dict and an httpx.AsyncClient bound to the REST API
- Return: list[TextContent] holding a JSON envelope from ``formatters``
- Raise httpx errors; the transport turns them into error envelopes
"""
from typing import Any
import logging

import httpx
from mcp.types import TextContent

from . import formatters

logger = logging.getLogger("ppo-mcp.handlers")


def _without_none(arguments: dict, *keys: str) -> dict[str, Any]:
    return {k: arguments[k] for k in keys if arguments.get(k) is not None}


# ============================================================================
# Project Handlers
# ============================================================================

async def handle_create_project(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    """Start a project bootstrap run.

    Errors: 400 (PRD source unusable), 404 (unknown template), 422 (invalid PRD).
    """
    body = _without_none(arguments, "projectName", "templateName", "description", "customization", "prd", "options")
    response = await client.post("/projects/", json=body)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Started operation {result['operationId']} for project {body.get('projectName')}")

    return formatters.ok(result)


async def handle_get_project_status(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    operation_id = arguments["operationId"]
    response = await client.get(f"/operations/{operation_id}")
    response.raise_for_status()
    result = response.json()
    logger.info(formatters.format_operation_summary(result))

    return formatters.ok(result)


async def handle_cancel_project(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    operation_id = arguments["operationId"]
    response = await client.post(f"/operations/{operation_id}/cancel")
    response.raise_for_status()
    result = response.json()
    logger.info(f"Cancel requested: {formatters.format_operation_summary(result)}")

    return formatters.ok(result)


# ============================================================================
# Template Handlers
# ============================================================================

async def handle_list_templates(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    params = _without_none(arguments, "category")
    response = await client.get("/templates/", params=params)
    response.raise_for_status()
    result = response.json()
    logger.info(f"Successfully listed {result['totalCount']} templates")

    return formatters.ok(result)


async def handle_get_template_details(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    template_name = arguments["templateName"]
    response = await client.get(f"/templates/{template_name}")
    response.raise_for_status()

    return formatters.ok(response.json())


# ============================================================================
# PRD Handlers
# ============================================================================

async def handle_validate_prd(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    """Validate a PRD.

    A PRD that fails validation is still a successful call: the envelope's
    data carries ``valid: false`` and the error list.
    """
    body = _without_none(arguments, "prd", "templateName")
    response = await client.post("/prd/validate", json=body)
    response.raise_for_status()
    result = response.json()
    logger.info(f"PRD validation: valid={result['valid']} ({len(result['errors'])} errors)")

    return formatters.ok(result)


async def handle_preview_work_breakdown(
    arguments: dict,
    client: httpx.AsyncClient,
) -> list[TextContent]:
    response = await client.post("/prd/work-breakdown", json={"prd": arguments["prd"]})
    response.raise_for_status()
    result = response.json()
    logger.info(
        f"Previewed work breakdown: {len(result['epics'])} epics, "
        f"{len(result['userStories'])} user stories, {len(result['sprints'])} sprints"
    )

    return formatters.ok(result)


HANDLERS = {
    "create_project": handle_create_project,
    "get_project_status": handle_get_project_status,
    "cancel_project": handle_cancel_project,
    "list_templates": handle_list_templates,
    "get_template_details": handle_get_template_details,
    "validate_prd": handle_validate_prd,
    "preview_work_breakdown": handle_preview_work_breakdown,
}
