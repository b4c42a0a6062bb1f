"""Schema registry for low-code platform tables and relationships.

Platform identifiers are derived deterministically from display names:

    "Parent Table" -> logical name  jr_parenttable
                   -> schema name   jr_ParentTable

A child record binds to its parent through the lookup's navigation property,
``<lookup schema name>@odata.bind``, whose value is the parent's entity-set
path ``/<parent logical name>s(<id>)``. Callers only ever name tables; the
registry works out every identifier.
"""
import logging
import re
from typing import Any, Optional

from .schemas import TableDefinition, RelationshipDefinition

logger = logging.getLogger("ppo-core.schema_registry")

DEFAULT_PUBLISHER_PREFIX = "jr"
LANGUAGE_CODE = 1033
PRIMARY_NAME_MAX_LENGTH = 100
ODATA_BIND_SUFFIX = "@odata.bind"


class SchemaRegistryError(Exception):
    """Raised for unregistered tables, unknown relationships and conflicting registrations."""


def _label(text: str) -> dict[str, Any]:
    return {"UserLocalizedLabel": {"Label": text, "LanguageCode": LANGUAGE_CODE}}


class SchemaRegistry:
    """Per-run registry of table and relationship definitions.

    Definitions are immutable once registered; registering the same thing
    again returns the existing definition. Registration only plans a name;
    a definition counts as created once the platform has confirmed it, and
    lookups bind only through created relationships.
    """

    def __init__(self, publisher_prefix: str = DEFAULT_PUBLISHER_PREFIX):
        self.publisher_prefix = publisher_prefix
        self._tables: dict[str, TableDefinition] = {}
        self._relationships: dict[str, RelationshipDefinition] = {}
        self._created: set[str] = set()

    # -------------------------------------------------------------------------
    # Name derivation
    # -------------------------------------------------------------------------

    def logical_name(self, display_name: str) -> str:
        compact = re.sub(r"\s+", "", display_name.lower())
        return f"{self.publisher_prefix}_{compact}"

    def schema_name(self, display_name: str) -> str:
        words = display_name.split()
        return f"{self.publisher_prefix}_" + "".join(w[:1].upper() + w[1:].lower() for w in words)

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    def register_table(self, display_name: str) -> TableDefinition:
        """Register a table by display name and return its definition.

        Raises:
            SchemaRegistryError: If the name is blank or its logical name is
                already taken by a table with a different schema name
        """
        display_name = display_name.strip()
        if not display_name:
            raise SchemaRegistryError("Table display name must not be empty")

        table = TableDefinition(
            display_name=display_name,
            logical_name=self.logical_name(display_name),
            schema_name=self.schema_name(display_name),
            publisher_prefix=self.publisher_prefix,
        )
        existing = self._tables.get(table.logical_name)
        if existing is not None:
            if existing.schema_name != table.schema_name:
                raise SchemaRegistryError(
                    f"Table '{display_name}' conflicts with registered table "
                    f"'{existing.display_name}' (logical name {existing.logical_name})"
                )
            return existing

        self._tables[table.logical_name] = table
        logger.debug(f"Registered table {table.display_name} as {table.logical_name}")
        return table

    def find_table(self, name: str) -> Optional[TableDefinition]:
        """Look a table up by logical name or display name."""
        if name in self._tables:
            return self._tables[name]
        for table in self._tables.values():
            if table.display_name == name:
                return table
        return self._tables.get(self.logical_name(name))

    def get_table(self, name: str) -> TableDefinition:
        table = self.find_table(name)
        if table is None:
            raise SchemaRegistryError(f"Table not registered: {name}")
        return table

    @property
    def tables(self) -> list[TableDefinition]:
        return list(self._tables.values())

    def mark_table_created(self, name: str) -> None:
        self._created.add(self.get_table(name).logical_name)

    def is_table_created(self, name: str) -> bool:
        table = self.find_table(name)
        return table is not None and table.logical_name in self._created

    # -------------------------------------------------------------------------
    # Relationships
    # -------------------------------------------------------------------------

    def create_relationship(
        self,
        parent: str,
        child: str,
        lookup_display_name: Optional[str] = None,
    ) -> RelationshipDefinition:
        """Register a one-to-many relationship from ``parent`` to ``child``.

        The lookup on the child defaults to the parent's display name, so its
        schema name defaults to the parent's schema name.

        Raises:
            SchemaRegistryError: If either table is unregistered, or the
                relationship exists with a different lookup
        """
        missing = [name for name in (parent, child) if self.find_table(name) is None]
        if missing:
            raise SchemaRegistryError(
                f"Tables must be registered before creating relationships; not registered: {', '.join(missing)}"
            )
        parent_table = self.get_table(parent)
        child_table = self.get_table(child)

        lookup_name = lookup_display_name or parent_table.display_name
        lookup_schema_name = self.schema_name(lookup_name)
        relationship = RelationshipDefinition(
            parent_table=parent_table,
            child_table=child_table,
            schema_name=f"{parent_table.logical_name}_{child_table.logical_name}",
            lookup_schema_name=lookup_schema_name,
            lookup_logical_name=self.logical_name(lookup_name),
            lookup_display_name=lookup_name,
            navigation_property=f"{lookup_schema_name}{ODATA_BIND_SUFFIX}",
        )

        existing = self._relationships.get(relationship.schema_name)
        if existing is not None:
            if existing.lookup_schema_name != relationship.lookup_schema_name:
                raise SchemaRegistryError(
                    f"Relationship {existing.schema_name} is already registered with lookup "
                    f"{existing.lookup_schema_name}"
                )
            return existing

        self._relationships[relationship.schema_name] = relationship
        logger.debug(f"Registered relationship {relationship.schema_name} ({relationship.navigation_property})")
        return relationship

    def get_relationship(self, child: str, parent: str) -> RelationshipDefinition:
        parent_table = self.get_table(parent)
        child_table = self.get_table(child)
        key = f"{parent_table.logical_name}_{child_table.logical_name}"
        relationship = self._relationships.get(key)
        if relationship is None:
            raise SchemaRegistryError(f"Relationship not found: {key}. Register the relationship first.")
        return relationship

    @property
    def relationships(self) -> list[RelationshipDefinition]:
        return list(self._relationships.values())

    def mark_relationship_created(self, child: str, parent: str) -> None:
        self._created.add(self.get_relationship(child, parent).schema_name)

    def is_relationship_created(self, child: str, parent: str) -> bool:
        try:
            return self.get_relationship(child, parent).schema_name in self._created
        except SchemaRegistryError:
            return False

    def get_navigation_property(self, child: str, parent: str) -> str:
        return self.get_relationship(child, parent).navigation_property

    def build_record_with_lookup(
        self,
        record: dict[str, Any],
        child: str,
        parent: str,
        parent_id: str,
    ) -> dict[str, Any]:
        """Return a copy of ``record`` with the parent lookup bound.

        Raises:
            SchemaRegistryError: If the relationship is unknown or the platform
                never confirmed creating it
        """
        relationship = self.get_relationship(child, parent)
        if relationship.schema_name not in self._created:
            raise SchemaRegistryError(
                f"Relationship {relationship.schema_name} was registered but never created on the platform; "
                f"cannot bind {relationship.navigation_property}"
            )
        bound = dict(record)
        bound[relationship.navigation_property] = f"/{relationship.parent_table.entity_set_name}({parent_id})"
        return bound

    # -------------------------------------------------------------------------
    # Metadata payloads
    # -------------------------------------------------------------------------

    def table_metadata(self, name: str) -> dict[str, Any]:
        """EntityMetadata payload for creating a registered table."""
        table = self.get_table(name)
        primary_name = f"{self.publisher_prefix}_name"
        return {
            "LogicalName": table.logical_name,
            "SchemaName": table.schema_name,
            "DisplayName": _label(table.display_name),
            "DisplayCollectionName": _label(f"{table.display_name}s"),
            "OwnershipType": "UserOwned",
            "PrimaryNameAttribute": primary_name,
            "HasNotes": False,
            "HasActivities": False,
            "Attributes": [
                {
                    "@odata.type": "Microsoft.Dynamics.CRM.StringAttributeMetadata",
                    "LogicalName": primary_name,
                    "SchemaName": f"{self.publisher_prefix}_Name",
                    "AttributeType": "String",
                    "IsPrimaryName": True,
                    "DisplayName": _label("Name"),
                    "RequiredLevel": {"Value": "ApplicationRequired"},
                    "MaxLength": PRIMARY_NAME_MAX_LENGTH,
                }
            ],
        }

    def relationship_metadata(self, child: str, parent: str) -> dict[str, Any]:
        """OneToManyRelationshipMetadata payload for a registered relationship."""
        relationship = self.get_relationship(child, parent)
        return {
            "@odata.type": "Microsoft.Dynamics.CRM.OneToManyRelationshipMetadata",
            "SchemaName": relationship.schema_name,
            "ReferencedEntity": relationship.parent_table.logical_name,
            "ReferencingEntity": relationship.child_table.logical_name,
            "ReferencedAttribute": f"{relationship.parent_table.logical_name}id",
            "Lookup": {
                "@odata.type": "Microsoft.Dynamics.CRM.LookupAttributeMetadata",
                "AttributeType": "Lookup",
                "SchemaName": relationship.lookup_schema_name,
                "LogicalName": relationship.lookup_logical_name,
                "DisplayName": _label(relationship.lookup_display_name),
                "RequiredLevel": {"Value": "None"},
            },
        }
