"""Collaborator protocols and the shared HTTP plumbing.

Every collaborator call returns a ``ClientResult`` instead of raising;
transport and HTTP errors are converted here so the orchestrator only ever
inspects ``success``.
"""
import logging
from datetime import date
from typing import Any, Optional, Protocol, runtime_checkable

import httpx
from pydantic import BaseModel

from ..schemas import WorkItemId

logger = logging.getLogger("ppo-core.integrations")


class ClientResult(BaseModel):
    """Outcome of one collaborator call."""

    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ClientResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(cls, error: str) -> "ClientResult":
        return cls(success=False, error=error)

    @property
    def id(self) -> Optional[Any]:
        """The ``id`` field of the returned data, when there is one."""
        if isinstance(self.data, dict):
            return self.data.get("id")
        return None


@runtime_checkable
class IdentityClient(Protocol):
    """Identity provider that can register applications."""

    async def create_app_registration(self, display_name: str, description: str = "") -> ClientResult:
        """Returns data ``{clientId, objectId}`` on success."""
        ...


@runtime_checkable
class WorkTrackingClient(Protocol):
    """Work-tracking system: projects, work items and iterations."""

    async def create_project(
        self,
        name: str,
        description: str = "",
        process_template: str = "Agile",
        visibility: str = "private",
    ) -> ClientResult:
        ...

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
        """Returns data ``{id}`` on success."""
        ...

    async def create_iteration(self, project: str, name: str, start_date: date, finish_date: date) -> ClientResult:
        """Returns data ``{id}`` on success."""
        ...

    async def update_work_item(self, work_item_id: WorkItemId, fields: dict[str, Any]) -> ClientResult:
        ...


@runtime_checkable
class PlatformClient(Protocol):
    """Low-code application platform: environments, solutions, tables and records."""

    async def create_environment(
        self,
        name: str,
        display_name: str,
        environment_type: str,
        region: str,
        description: str = "",
    ) -> ClientResult:
        ...

    async def create_publisher(self, publisher: dict[str, Any]) -> ClientResult:
        ...

    async def create_solution(self, solution: dict[str, Any]) -> ClientResult:
        ...

    async def create_table(self, metadata: dict[str, Any]) -> ClientResult:
        ...

    async def create_one_to_many_relationship(self, metadata: dict[str, Any]) -> ClientResult:
        ...

    async def create_record(self, entity_set: str, record: dict[str, Any]) -> ClientResult:
        ...

    async def create_multiple_records(self, entity_set: str, records: list[dict[str, Any]]) -> list[ClientResult]:
        ...

    async def add_table_to_solution(self, table_logical_name: str, solution_unique_name: str) -> ClientResult:
        ...


class HttpServiceClient:
    """Base for the live collaborators: one ``httpx.AsyncClient`` per service.

    ``transport`` lets tests swap in ``httpx.MockTransport``.
    """

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        headers: Optional[dict[str, str]] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers=headers or {},
            timeout=timeout,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        url: str,
        json: Any = None,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> ClientResult:
        try:
            response = await self._client.request(method, url, json=json, params=params, headers=headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            detail = e.response.text or str(e)
            logger.warning(
                f"{self.service_name} request failed [{method} {url}]: {e.response.status_code} {detail}"
            )
            return ClientResult.fail(f"{e.response.status_code}: {detail}")
        except httpx.RequestError as e:
            logger.warning(f"{self.service_name} request error [{method} {url}]: {type(e).__name__}: {e}")
            return ClientResult.fail(f"Connection failed - {e}")

        if not response.content:
            return ClientResult.ok({"headers": dict(response.headers)})
        try:
            return ClientResult.ok(response.json())
        except ValueError:
            return ClientResult.ok({"text": response.text})
