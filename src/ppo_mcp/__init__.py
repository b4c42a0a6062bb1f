"""PPO MCP Server - Model Context Protocol integration.

Exposes the project bootstrap orchestrator to AI assistants. Every tool
calls the REST API and answers with a JSON envelope
``{"success": true, "data": ...}`` or ``{"success": false, "error": ...}``.

Modules:
- server: stdio MCP server implementation
- formatters: Response envelope helpers
- tools: MCP tool definitions
- handlers: Tool implementation handlers
"""

__version__ = "1.0.0"

from . import formatters
from . import tools
from . import handlers

__all__ = ["formatters", "tools", "handlers", "__version__"]
