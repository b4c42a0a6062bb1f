"""MCP tool definitions for the project bootstrap orchestrator.

Argument names use the same camelCase keys as the REST API bodies so that
handlers can forward them unchanged.
"""

from mcp.types import Tool


PRD_SCHEMA = {
    "description": "PRD as JSON/YAML/markdown text or as a structured object "
                   "with product, features, technical and project sections",
    "anyOf": [{"type": "string"}, {"type": "object"}],
}


def get_tools() -> list[Tool]:
    """Get the list of all MCP tools exposed by the orchestrator."""
    return [
        Tool(
            name="create_project",
            description="Bootstrap a project from a PRD: creates the app registration, a work-tracking "
                        "project with epics/features/stories/sprints, and low-code platform environments, "
                        "publisher, solution and tables. Returns an operationId immediately; poll "
                        "get_project_status(operationId) for progress. "
                        "When prd is omitted the PRD is generated from templateName. "
                        "An explicit PRD is validated first and rejected with its errors if invalid.",
            inputSchema={
                "type": "object",
                "properties": {
                    "projectName": {
                        "type": "string",
                        "description": "Name of the project to create"
                    },
                    "templateName": {
                        "type": "string",
                        "description": "Template to generate the PRD from (default: standard-project)"
                    },
                    "description": {
                        "type": "string",
                        "description": "Short project description used by the template"
                    },
                    "customization": {
                        "type": "object",
                        "description": "Extra template answers; 'region' selects the environment region"
                    },
                    "prd": {
                        "type": "object",
                        "description": "Explicit PRD source: {source: manual|file|template|claude|copilot, "
                                       "content?, filePath?, templateName?, answers?, conversationId?, gistUrl?}"
                    },
                    "options": {
                        "type": "object",
                        "description": "Execution options",
                        "properties": {
                            "dryRun": {"type": "boolean", "description": "Use simulated clients only"},
                            "skipAppRegistration": {"type": "boolean"},
                            "skipAzureDevOps": {"type": "boolean"},
                            "skipPowerPlatform": {"type": "boolean"},
                            "enableParallelExecution": {"type": "boolean"}
                        }
                    }
                },
                "required": ["projectName"]
            }
        ),
        Tool(
            name="get_project_status",
            description="Get the state, progress and phase log of a project bootstrap run. "
                        "Errors: 404 (unknown operation).",
            inputSchema={
                "type": "object",
                "properties": {
                    "operationId": {
                        "type": "string",
                        "description": "Operation id returned by create_project"
                    }
                },
                "required": ["operationId"]
            }
        ),
        Tool(
            name="cancel_project",
            description="Request cancellation of a run. Only a flag is recorded; phases already "
                        "in flight are not interrupted and finished runs are unchanged.",
            inputSchema={
                "type": "object",
                "properties": {
                    "operationId": {
                        "type": "string",
                        "description": "Operation id returned by create_project"
                    }
                },
                "required": ["operationId"]
            }
        ),
        Tool(
            name="list_templates",
            description="List available project templates.",
            inputSchema={
                "type": "object",
                "properties": {
                    "category": {
                        "type": "string",
                        "description": "Filter by category or tag: standard, enterprise, quickstart or all",
                        "enum": ["standard", "enterprise", "quickstart", "all"]
                    }
                }
            }
        ),
        Tool(
            name="get_template_details",
            description="Get a template's parameters, phases, requirements and PRD skeleton. "
                        "Errors: 404 (unknown template).",
            inputSchema={
                "type": "object",
                "properties": {
                    "templateName": {
                        "type": "string",
                        "description": "Template name, e.g. standard-project"
                    }
                },
                "required": ["templateName"]
            }
        ),
        Tool(
            name="validate_prd",
            description="Parse and validate a PRD without starting a run. "
                        "Returns {valid, errors} with every violation listed.",
            inputSchema={
                "type": "object",
                "properties": {
                    "prd": PRD_SCHEMA,
                    "templateName": {
                        "type": "string",
                        "description": "Optional template the PRD is meant for"
                    }
                },
                "required": ["prd"]
            }
        ),
        Tool(
            name="preview_work_breakdown",
            description="Generate the epics, features, stories, technical stories and sprints a run "
                        "would create for a PRD, without creating anything. "
                        "Errors: 422 (invalid PRD).",
            inputSchema={
                "type": "object",
                "properties": {
                    "prd": PRD_SCHEMA
                },
                "required": ["prd"]
            }
        ),
    ]
