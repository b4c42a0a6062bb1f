"""Work-tracking client (Azure DevOps REST API)."""
import base64
import logging
from datetime import date
from typing import Any, Optional

import httpx

from ..schemas import WorkItemId
from .base import ClientResult, HttpServiceClient

logger = logging.getLogger("ppo-core.integrations.devops")

API_VERSION = "7.0"
JSON_PATCH = {"Content-Type": "application/json-patch+json"}

# Process template ids are fixed across Azure DevOps organizations
PROCESS_TEMPLATE_IDS = {
    "Agile": "adcc42ab-9882-485e-a3ed-7678f01f66bc",
    "Scrum": "6b724908-ef14-45cf-84f8-768b5384da45",
    "Basic": "b8a3a935-7e91-48b8-a94c-606d37c3e9f2",
}


class AzureDevOpsClient(HttpServiceClient):
    service_name = "Azure DevOps"

    def __init__(
        self,
        organization: str,
        personal_access_token: str,
        base_url: str = "https://dev.azure.com",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        token = base64.b64encode(f":{personal_access_token}".encode()).decode()
        super().__init__(
            base_url=f"{base_url.rstrip('/')}/{organization}",
            headers={"Authorization": f"Basic {token}", "Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def create_project(
        self,
        name: str,
        description: str = "",
        process_template: str = "Agile",
        visibility: str = "private",
    ) -> ClientResult:
        logger.info(f"Creating project: {name}")
        template_id = PROCESS_TEMPLATE_IDS.get(process_template, PROCESS_TEMPLATE_IDS["Agile"])
        result = await self._request("POST", "/_apis/projects", params={"api-version": API_VERSION}, json={
            "name": name,
            "description": description,
            "visibility": visibility,
            "capabilities": {
                "versioncontrol": {"sourceControlType": "Git"},
                "processTemplate": {"templateTypeId": template_id},
            },
        })
        if result.success:
            # Project creation is queued; the operation id stands in until it completes
            result.data = {"name": name, "operationId": result.data.get("id"), **result.data}
        return result

    async def create_work_item(
        self,
        project: str,
        work_item_type: str,
        title: str,
        description: str = "",
        priority: Optional[int] = None,
        parent_id: Optional[WorkItemId] = None,
        story_points: Optional[int] = None,
        tags: Optional[str] = None,
    ) -> ClientResult:
        operations: list[dict[str, Any]] = [{"op": "add", "path": "/fields/System.Title", "value": title}]
        if description:
            operations.append({"op": "add", "path": "/fields/System.Description", "value": description})
        if priority is not None:
            operations.append({"op": "add", "path": "/fields/Microsoft.VSTS.Common.Priority", "value": priority})
        if story_points is not None:
            operations.append({
                "op": "add",
                "path": "/fields/Microsoft.VSTS.Scheduling.StoryPoints",
                "value": story_points,
            })
        if tags:
            operations.append({"op": "add", "path": "/fields/System.Tags", "value": tags})
        if parent_id is not None:
            operations.append({
                "op": "add",
                "path": "/relations/-",
                "value": {
                    "rel": "System.LinkTypes.Hierarchy-Reverse",
                    "url": f"{self._client.base_url}/_apis/wit/workItems/{parent_id}",
                },
            })

        return await self._request(
            "POST",
            f"/{project}/_apis/wit/workitems/${work_item_type}",
            params={"api-version": API_VERSION},
            json=operations,
            headers=JSON_PATCH,
        )

    async def create_iteration(self, project: str, name: str, start_date: date, finish_date: date) -> ClientResult:
        return await self._request(
            "POST",
            f"/{project}/_apis/wit/classificationnodes/Iterations",
            params={"api-version": API_VERSION},
            json={
                "name": name,
                "attributes": {
                    "startDate": start_date.isoformat(),
                    "finishDate": finish_date.isoformat(),
                },
            },
        )

    async def update_work_item(self, work_item_id: WorkItemId, fields: dict[str, Any]) -> ClientResult:
        operations = [
            {"op": "add", "path": f"/fields/{field}", "value": value}
            for field, value in fields.items()
        ]
        return await self._request(
            "PATCH",
            f"/_apis/wit/workitems/{work_item_id}",
            params={"api-version": API_VERSION},
            json=operations,
            headers=JSON_PATCH,
        )
