"""Low-code platform client.

Environments go through the Power Platform admin API; publishers,
solutions, tables and records go through the Dataverse Web API of the
configured environment.
"""
import logging
import re
from typing import Any, Optional

import httpx

from .base import ClientResult, HttpServiceClient

logger = logging.getLogger("ppo-core.integrations.power_platform")

ADMIN_API_VERSION = "2020-10-01"
DATAVERSE_API_PATH = "/api/data/v9.2"
ENTITY_COMPONENT_TYPE = 1

_ENTITY_ID_PATTERN = re.compile(r"\(([0-9a-fA-F-]{36})\)\s*$")


def entity_id_from_headers(headers: dict[str, str]) -> Optional[str]:
    """Dataverse answers creates with 204 and the new id in ``OData-EntityId``."""
    for key, value in headers.items():
        if key.lower() == "odata-entityid":
            match = _ENTITY_ID_PATTERN.search(value)
            if match:
                return match.group(1)
    return None


class PowerPlatformClient(HttpServiceClient):
    service_name = "Power Platform"

    def __init__(
        self,
        access_token: str,
        environment_url: str,
        admin_url: str = "https://api.bap.microsoft.com/providers/Microsoft.BusinessAppPlatform",
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            base_url=f"{environment_url.rstrip('/')}{DATAVERSE_API_PATH}",
            headers={
                "Authorization": f"Bearer {access_token}",
                "Content-Type": "application/json",
                "Accept": "application/json",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
            },
            timeout=timeout,
            transport=transport,
        )
        self.admin_url = admin_url.rstrip("/")

    async def _create(self, path: str, payload: dict[str, Any]) -> ClientResult:
        result = await self._request("POST", path, json=payload)
        if not result.success:
            return result
        data = dict(result.data or {})
        headers = data.pop("headers", {})
        data.setdefault("id", entity_id_from_headers(headers))
        return ClientResult.ok(data)

    # -------------------------------------------------------------------------
    # Admin API
    # -------------------------------------------------------------------------

    async def create_environment(
        self,
        name: str,
        display_name: str,
        environment_type: str,
        region: str,
        description: str = "",
    ) -> ClientResult:
        logger.info(f"Creating environment: {display_name} ({environment_type})")
        result = await self._request(
            "POST",
            f"{self.admin_url}/environments",
            params={"api-version": ADMIN_API_VERSION},
            json={
                "location": region,
                "properties": {
                    "displayName": display_name,
                    "description": description,
                    "environmentSku": environment_type,
                    "databaseType": "CommonDataService",
                },
            },
        )
        if not result.success:
            return result
        return ClientResult.ok({"name": name, "displayName": display_name, **(result.data or {})})

    # -------------------------------------------------------------------------
    # Dataverse Web API
    # -------------------------------------------------------------------------

    async def create_publisher(self, publisher: dict[str, Any]) -> ClientResult:
        logger.info(f"Creating publisher: {publisher.get('uniquename')}")
        result = await self._create("/publishers", publisher)
        if result.success:
            result.data = {**publisher, **result.data}
        return result

    async def create_solution(self, solution: dict[str, Any]) -> ClientResult:
        logger.info(f"Creating solution: {solution.get('uniquename')}")
        result = await self._create("/solutions", solution)
        if result.success:
            result.data = {**solution, **result.data}
        return result

    async def create_table(self, metadata: dict[str, Any]) -> ClientResult:
        logger.info(f"Creating table: {metadata.get('LogicalName')}")
        return await self._create("/EntityDefinitions", metadata)

    async def create_one_to_many_relationship(self, metadata: dict[str, Any]) -> ClientResult:
        logger.info(f"Creating relationship: {metadata.get('SchemaName')}")
        return await self._create("/RelationshipDefinitions", metadata)

    async def create_record(self, entity_set: str, record: dict[str, Any]) -> ClientResult:
        return await self._create(f"/{entity_set}", record)

    async def create_multiple_records(self, entity_set: str, records: list[dict[str, Any]]) -> list[ClientResult]:
        return [await self.create_record(entity_set, record) for record in records]

    async def add_table_to_solution(self, table_logical_name: str, solution_unique_name: str) -> ClientResult:
        lookup = await self._request(
            "GET",
            "/EntityDefinitions",
            params={"$filter": f"LogicalName eq '{table_logical_name}'", "$select": "MetadataId"},
        )
        if not lookup.success:
            return lookup
        rows = (lookup.data or {}).get("value") or []
        if not rows:
            return ClientResult.fail(f"Table {table_logical_name} not found")

        result = await self._request("POST", "/AddSolutionComponent", json={
            "ComponentId": rows[0]["MetadataId"],
            "ComponentType": ENTITY_COMPONENT_TYPE,
            "SolutionUniqueName": solution_unique_name,
            "AddRequiredComponents": True,
        })
        if not result.success:
            return result
        return ClientResult.ok({"table": table_logical_name, "solution": solution_unique_name})
