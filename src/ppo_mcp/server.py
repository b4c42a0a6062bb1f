"""PPO MCP Server - Expose project bootstrap orchestration to AI assistants."""
import os
import sys
import asyncio
import logging
import traceback
from typing import Any, Optional

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import Tool, TextContent

from . import formatters
from . import tools
from . import handlers


# Configure logging to stderr; stdout carries the protocol
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stderr,
    force=True
)
logger = logging.getLogger("ppo-mcp")

# API Configuration
API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:8000/api/v1")
PPO_API_KEY = os.getenv("PPO_API_KEY")

logger.info(f"MCP Server starting with API_BASE_URL: {API_BASE_URL}")


# MCP Server instance
app = Server("ppo-mcp")


@app.list_tools()
async def list_tools() -> list[Tool]:
    """List available MCP tools for project bootstrap."""
    return tools.get_tools()


def build_client(base_url: str = API_BASE_URL, api_key: Optional[str] = PPO_API_KEY) -> httpx.AsyncClient:
    headers = {}
    if api_key:
        headers["X-API-Key"] = api_key
    return httpx.AsyncClient(base_url=base_url, timeout=30.0, headers=headers)


async def execute_tool(name: str, arguments: Any, client: httpx.AsyncClient) -> list[TextContent]:
    """Run one tool against the REST API, converting every failure into an error envelope."""
    handler = handlers.HANDLERS.get(name)
    if not handler:
        logger.warning(f"Unknown tool requested: {name}")
        return formatters.fail(f"Unknown tool: {name}")

    try:
        return await handler(arguments or {}, client)

    except httpx.HTTPStatusError as e:
        logger.error(f"HTTP error during {name} call:")
        logger.error(f"  Status: {e.response.status_code}")
        logger.error(f"  URL: {e.request.url}")
        error_detail = formatters.error_detail(e.response)
        logger.error(f"  Detail: {error_detail}")
        return formatters.fail(error_detail)

    except httpx.RequestError as e:
        logger.error(f"Request error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Error message: {str(e)}")
        return formatters.fail(f"Connection failed - {str(e)}")

    except Exception as e:
        logger.error(f"Unexpected error during {name} call:")
        logger.error(f"  Error type: {type(e).__name__}")
        logger.error(f"  Arguments: {arguments}")
        logger.error(f"  Traceback:\n{traceback.format_exc()}")
        return formatters.fail(f"{type(e).__name__}: {str(e)}")


@app.call_tool()
async def call_tool(name: str, arguments: Any) -> list[TextContent]:
    """Handle MCP tool calls by delegating to the handlers."""
    logger.info(f"Tool call: {name} with arguments: {arguments}")

    async with build_client() as client:
        return await execute_tool(name, arguments, client)


async def main():
    """Run the MCP server."""
    async with stdio_server() as (read_stream, write_stream):
        await app.run(read_stream, write_stream, app.create_initialization_options())


def run():
    """Console script entry point."""
    asyncio.run(main())


if __name__ == "__main__":
    run()
