"""Tests for the MCP tool surface, run against the REST API in-process."""
import json
from datetime import date

import httpx
import pytest
from ppo_core.api.dependencies import get_operation_service
from ppo_core.api.main import app
from ppo_core.config import Settings
from ppo_core.integrations import simulated_collaborators
from ppo_core.operations import OperationService
from ppo_mcp import formatters, handlers, tools
from ppo_mcp.server import execute_tool


VALID_PRD = {
    "name": "Shop",
    "features": [
        {"name": "Catalog", "userStories": ["As a buyer I want to view products so that I can choose"]},
    ],
}


@pytest.fixture
def service():
    service = OperationService(
        settings=Settings(),
        collaborator_factory=lambda dry_run: simulated_collaborators(),
        start_date=date(2026, 1, 5),
    )
    app.dependency_overrides[get_operation_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


def _api_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test/api/v1")


def _envelope(content) -> dict:
    assert len(content) == 1
    return json.loads(content[0].text)


class TestToolDefinitions:
    """Test the advertised tool list."""

    def test_every_tool_has_a_handler(self):
        names = [tool.name for tool in tools.get_tools()]
        assert names == [
            "create_project",
            "get_project_status",
            "cancel_project",
            "list_templates",
            "get_template_details",
            "validate_prd",
            "preview_work_breakdown",
        ]
        assert set(names) == set(handlers.HANDLERS)

    def test_required_arguments(self):
        required = {tool.name: tool.inputSchema.get("required", []) for tool in tools.get_tools()}
        assert required["create_project"] == ["projectName"]
        assert required["get_project_status"] == ["operationId"]
        assert required["validate_prd"] == ["prd"]
        assert required["list_templates"] == []


class TestFormatters:
    """Test response envelopes."""

    def test_envelopes(self):
        assert formatters.envelope(True, data={"a": 1}) == {"success": True, "data": {"a": 1}}
        assert formatters.envelope(False, error="boom") == {"success": False, "error": "boom"}

    def test_error_detail(self):
        assert formatters.error_detail(httpx.Response(404, json={"detail": "Not here"})) == "Not here"
        assert formatters.error_detail(httpx.Response(502, text="Bad gateway")) == "Bad gateway"

    def test_operation_summary(self):
        summary = formatters.format_operation_summary({
            "operationId": "op-1",
            "status": "wbs_generation",
            "progress": {"totalSteps": 6, "completedSteps": 2, "currentStep": "wbs_generation"},
        })
        assert summary == "Operation op-1 is wbs_generation (2/6 steps, current step: wbs_generation)"


class TestProjectTools:
    """Test project tools end to end."""

    @pytest.mark.asyncio
    async def test_create_and_poll(self, service):
        async with _api_client() as client:
            created = _envelope(await execute_tool("create_project", {"projectName": "Contoso"}, client))
            assert created["success"] is True
            operation_id = created["data"]["operationId"]

            await service.wait(operation_id)
            status = _envelope(await execute_tool("get_project_status", {"operationId": operation_id}, client))

        assert status["success"] is True
        assert status["data"]["status"] == "completed"
        assert status["data"]["progress"]["completedSteps"] == 6

    @pytest.mark.asyncio
    async def test_invalid_prd_returns_error_envelope(self, service):
        async with _api_client() as client:
            content = await execute_tool("create_project", {
                "projectName": "Shop",
                "prd": {"source": "manual", "content": {"name": "Shop"}},
            }, client)

        envelope = _envelope(content)
        assert envelope["success"] is False
        assert envelope["error"]["errors"] == ["features: at least one feature is required"]
        assert service.list_operations() == []

    @pytest.mark.asyncio
    async def test_cancel_project(self, service):
        async with _api_client() as client:
            created = _envelope(await execute_tool("create_project", {"projectName": "Contoso"}, client))
            operation_id = created["data"]["operationId"]
            cancelled = _envelope(await execute_tool("cancel_project", {"operationId": operation_id}, client))
            await service.wait(operation_id)

        assert cancelled["success"] is True
        assert service.get(operation_id).cancel_requested

    @pytest.mark.asyncio
    async def test_unknown_operation(self, service):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("get_project_status", {"operationId": "missing"}, client))
        assert envelope == {"success": False, "error": "Operation missing not found"}


class TestTemplateTools:
    """Test template tools."""

    @pytest.mark.asyncio
    async def test_list_templates(self, service):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("list_templates", {"category": "enterprise"}, client))
        assert envelope["success"] is True
        assert envelope["data"]["totalCount"] == 1

    @pytest.mark.asyncio
    async def test_get_template_details(self, service):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("get_template_details", {"templateName": "quickstart"}, client))
        assert envelope["data"]["prd"]["technical"]["environments"] == ["dev"]

    @pytest.mark.asyncio
    async def test_unknown_template(self, service):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("get_template_details", {"templateName": "nope"}, client))
        assert envelope["success"] is False
        assert "not found" in envelope["error"]


class TestPrdTools:
    """Test PRD tools."""

    @pytest.mark.asyncio
    async def test_validate_prd(self, service):
        async with _api_client() as client:
            valid = _envelope(await execute_tool("validate_prd", {"prd": VALID_PRD}, client))
            invalid = _envelope(await execute_tool("validate_prd", {"prd": {"name": "Shop"}}, client))

        assert valid == {"success": True, "data": {"valid": True, "errors": []}}
        assert invalid["success"] is True
        assert invalid["data"]["valid"] is False

    @pytest.mark.asyncio
    async def test_preview_work_breakdown(self, service):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("preview_work_breakdown", {"prd": VALID_PRD}, client))
        assert envelope["success"] is True
        assert envelope["data"]["userStories"][0]["key"] == "US-001"
        assert len(envelope["data"]["sprints"]) == 6


class TestErrorHandling:
    """Test error envelopes for transport-level failures."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("drop_database", {}, client))
        assert envelope == {"success": False, "error": "Unknown tool: drop_database"}

    @pytest.mark.asyncio
    async def test_connection_error(self):
        def refuse(request):
            raise httpx.ConnectError("refused", request=request)

        async with httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://api/api/v1") as client:
            envelope = _envelope(await execute_tool("list_templates", {}, client))
        assert envelope["success"] is False
        assert envelope["error"].startswith("Connection failed")

    @pytest.mark.asyncio
    async def test_missing_argument(self):
        async with _api_client() as client:
            envelope = _envelope(await execute_tool("get_project_status", {}, client))
        assert envelope == {"success": False, "error": "KeyError: 'operationId'"}
