"""In-memory collaborators for dry runs and tests.

They satisfy the same protocols as the live clients, record every call and
can be told to fail (or raise) for chosen operations:

    SimulatedPlatformClient(failures={"create_publisher": True})
    SimulatedPlatformClient(failures={"create_environment": lambda args: args["name"].endswith("-prod")})
    SimulatedIdentityClient(raise_on={"create_app_registration"})
"""
import asyncio
import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Optional, Union

from ..schemas import WorkItemId
from .base import ClientResult

logger = logging.getLogger("ppo-core.integrations.simulated")

FailureRule = Union[bool, Callable[[dict[str, Any]], bool]]


class SimulatedClientError(Exception):
    """Raised by a simulated client for operations listed in ``raise_on``."""


@dataclass
class SimulatedCall:
    """Record of a simulated collaborator call."""
    operation: str
    arguments: dict[str, Any]
    success: bool
    timestamp: float = field(default_factory=time.time)


class SimulatedClient:
    def __init__(
        self,
        failures: Optional[dict[str, FailureRule]] = None,
        raise_on: Optional[set[str]] = None,
        latency_seconds: float = 0.0,
    ):
        self._failures = failures or {}
        self._raise_on = raise_on or set()
        self._latency_seconds = latency_seconds
        self.calls: list[SimulatedCall] = []

    def calls_to(self, operation: str) -> list[SimulatedCall]:
        return [call for call in self.calls if call.operation == operation]

    def set_failure(self, operation: str, rule: FailureRule = True) -> None:
        self._failures[operation] = rule

    def _should_fail(self, operation: str, arguments: dict[str, Any]) -> bool:
        rule = self._failures.get(operation, False)
        return rule(arguments) if callable(rule) else bool(rule)

    async def _call(self, operation: str, arguments: dict[str, Any], data: Any) -> ClientResult:
        if self._latency_seconds:
            await asyncio.sleep(self._latency_seconds)
        if operation in self._raise_on:
            self.calls.append(SimulatedCall(operation, arguments, success=False))
            raise SimulatedClientError(f"Simulated {operation} crashed")
        if self._should_fail(operation, arguments):
            self.calls.append(SimulatedCall(operation, arguments, success=False))
            logger.debug(f"Simulated failure: {operation}")
            return ClientResult.fail(f"Simulated {operation} failure")
        self.calls.append(SimulatedCall(operation, arguments, success=True))
        return ClientResult.ok(data)


class SimulatedIdentityClient(SimulatedClient):

    async def create_app_registration(self, display_name: str, description: str = "") -> ClientResult:
        return await self._call(
            "create_app_registration",
            {"display_name": display_name, "description": description},
            {"clientId": str(uuid.uuid4()), "objectId": str(uuid.uuid4()), "displayName": display_name},
        )


class SimulatedWorkTrackingClient(SimulatedClient):
    """Hands out sequential integer work item ids and remembers field updates."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self._ids = itertools.count(1)
        self.work_items: dict[WorkItemId, dict[str, Any]] = {}

    async def create_project(
        self,
        name: str,
        description: str = "",
        process_template: str = "Agile",
        visibility: str = "private",
    ) -> ClientResult:
        arguments = {
            "name": name,
            "description": description,
            "process_template": process_template,
            "visibility": visibility,
        }
        return await self._call("create_project", arguments, {"id": str(uuid.uuid4()), **arguments})

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
        arguments = {
            "project": project,
            "work_item_type": work_item_type,
            "title": title,
            "description": description,
            "priority": priority,
            "parent_id": parent_id,
            "story_points": story_points,
            "tags": tags,
        }
        result = await self._call("create_work_item", arguments, None)
        if result.success:
            work_item_id = next(self._ids)
            self.work_items[work_item_id] = {**arguments, "fields": {"System.State": "New"}}
            result.data = {"id": work_item_id}
        return result

    async def create_iteration(self, project: str, name: str, start_date: date, finish_date: date) -> ClientResult:
        arguments = {"project": project, "name": name, "start_date": start_date, "finish_date": finish_date}
        return await self._call("create_iteration", arguments, {"id": str(uuid.uuid4()), "name": name})

    async def update_work_item(self, work_item_id: WorkItemId, fields: dict[str, Any]) -> ClientResult:
        arguments = {"work_item_id": work_item_id, "fields": fields}
        if work_item_id not in self.work_items:
            self.calls.append(SimulatedCall("update_work_item", arguments, success=False))
            return ClientResult.fail(f"Work item {work_item_id} does not exist")
        result = await self._call("update_work_item", arguments, {"id": work_item_id})
        if result.success:
            self.work_items[work_item_id]["fields"].update(fields)
        return result


class SimulatedPlatformClient(SimulatedClient):

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.tables: dict[str, dict[str, Any]] = {}
        self.records: dict[str, list[dict[str, Any]]] = {}

    async def create_environment(
        self,
        name: str,
        display_name: str,
        environment_type: str,
        region: str,
        description: str = "",
    ) -> ClientResult:
        arguments = {
            "name": name,
            "display_name": display_name,
            "environment_type": environment_type,
            "region": region,
            "description": description,
        }
        return await self._call("create_environment", arguments, {
            "id": str(uuid.uuid4()),
            "name": name,
            "displayName": display_name,
            "type": environment_type,
            "location": region,
        })

    async def create_publisher(self, publisher: dict[str, Any]) -> ClientResult:
        return await self._call("create_publisher", publisher, {"id": str(uuid.uuid4()), **publisher})

    async def create_solution(self, solution: dict[str, Any]) -> ClientResult:
        return await self._call("create_solution", solution, {"id": str(uuid.uuid4()), **solution})

    async def create_table(self, metadata: dict[str, Any]) -> ClientResult:
        result = await self._call("create_table", metadata, {"id": str(uuid.uuid4())})
        if result.success:
            self.tables[metadata["LogicalName"]] = metadata
        return result

    async def create_one_to_many_relationship(self, metadata: dict[str, Any]) -> ClientResult:
        return await self._call("create_one_to_many_relationship", metadata, {"id": str(uuid.uuid4())})

    async def create_record(self, entity_set: str, record: dict[str, Any]) -> ClientResult:
        result = await self._call("create_record", {"entity_set": entity_set, "record": record}, None)
        if result.success:
            record_id = str(uuid.uuid4())
            self.records.setdefault(entity_set, []).append({**record, "id": record_id})
            result.data = {"id": record_id}
        return result

    async def create_multiple_records(self, entity_set: str, records: list[dict[str, Any]]) -> list[ClientResult]:
        return [await self.create_record(entity_set, record) for record in records]

    async def add_table_to_solution(self, table_logical_name: str, solution_unique_name: str) -> ClientResult:
        arguments = {"table": table_logical_name, "solution": solution_unique_name}
        if table_logical_name not in self.tables:
            self.calls.append(SimulatedCall("add_table_to_solution", arguments, success=False))
            return ClientResult.fail(f"Table {table_logical_name} not found")
        return await self._call("add_table_to_solution", arguments, arguments)
