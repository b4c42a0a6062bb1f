"""Platform client wrapper that names tables by display name only.

Identifiers, metadata payloads and lookup bindings all come from the
``SchemaRegistry``; linkage errors are returned as failed results naming
the missing registration.
"""
import logging
from typing import Any, Optional

from ..schema_registry import SchemaRegistry, SchemaRegistryError
from .base import ClientResult, PlatformClient

logger = logging.getLogger("ppo-core.integrations.schema_aware")


class SchemaAwarePlatformClient:

    def __init__(self, client: PlatformClient, registry: Optional[SchemaRegistry] = None):
        self.client = client
        self.registry = registry or SchemaRegistry()

    async def create_table(self, display_name: str) -> ClientResult:
        try:
            table = self.registry.register_table(display_name)
        except SchemaRegistryError as e:
            return ClientResult.fail(str(e))

        result = await self.client.create_table(self.registry.table_metadata(table.logical_name))
        if not result.success:
            return result
        self.registry.mark_table_created(table.logical_name)
        return ClientResult.ok({
            **(result.data or {}),
            "displayName": table.display_name,
            "logicalName": table.logical_name,
            "schemaName": table.schema_name,
        })

    async def create_relationship(
        self,
        parent: str,
        child: str,
        lookup_display_name: Optional[str] = None,
    ) -> ClientResult:
        try:
            relationship = self.registry.create_relationship(parent, child, lookup_display_name)
            metadata = self.registry.relationship_metadata(child, parent)
        except SchemaRegistryError as e:
            logger.warning(f"Relationship {parent} -> {child} rejected: {e}")
            return ClientResult.fail(str(e))

        not_created = [name for name in (parent, child) if not self.registry.is_table_created(name)]
        if not_created:
            error = f"Tables must be created before creating relationships; not created: {', '.join(not_created)}"
            logger.warning(f"Relationship {parent} -> {child} rejected: {error}")
            return ClientResult.fail(error)

        result = await self.client.create_one_to_many_relationship(metadata)
        if not result.success:
            return result
        self.registry.mark_relationship_created(child, parent)
        return ClientResult.ok({
            **(result.data or {}),
            "schemaName": relationship.schema_name,
            "navigationProperty": relationship.navigation_property,
        })

    async def create_child_record(
        self,
        child: str,
        parent: str,
        record: dict[str, Any],
        parent_id: str,
    ) -> ClientResult:
        try:
            bound = self.registry.build_record_with_lookup(record, child, parent, parent_id)
            entity_set = self.registry.get_table(child).entity_set_name
        except SchemaRegistryError as e:
            return ClientResult.fail(str(e))
        return await self.client.create_record(entity_set, bound)

    async def create_child_records(
        self,
        child: str,
        parent: str,
        records: list[tuple[dict[str, Any], str]],
    ) -> list[ClientResult]:
        """Create several child records; ``records`` pairs each record with its parent id."""
        try:
            bound = [
                self.registry.build_record_with_lookup(record, child, parent, parent_id)
                for record, parent_id in records
            ]
            entity_set = self.registry.get_table(child).entity_set_name
        except SchemaRegistryError as e:
            return [ClientResult.fail(str(e)) for _ in records]
        return await self.client.create_multiple_records(entity_set, bound)

    async def add_table_to_solution(self, table: str, solution_unique_name: str) -> ClientResult:
        try:
            logical_name = self.registry.get_table(table).logical_name
        except SchemaRegistryError as e:
            return ClientResult.fail(str(e))
        return await self.client.add_table_to_solution(logical_name, solution_unique_name)

    def get_navigation_property(self, child: str, parent: str) -> str:
        return self.registry.get_navigation_property(child, parent)
