"""
Per-entity schema metadata.

A Schema is derived once per entity when connections are initialized:
table name, ordered field metadata, primary key, relationships keyed by the
related table, the dialect in use and a back-reference to the owning
connection. After publication a schema is only read.

Functions in this module handle:
- Building schemas from entity declarations (`build_schema`)
- Applying relationship defaults (`resolve_relationships`)
- Reflective access to entity values by column
"""
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlentity.dialect import Dialect
from sqlentity.entity import configurator_for
from sqlentity.exceptions import ConfigurationError, OperationError
from sqlentity.field import FieldMetadata, fields_of
from sqlentity.relations import Relationship, RelationshipDeclaration
from sqlentity.relations import resolve_relationship
from sqlentity.types import to_db_value

if TYPE_CHECKING:
    from sqlentity.connection import Connection

logger = logging.getLogger(__name__)


class Schema:
    """Cached metadata about one entity.
    """

    def __init__(self, entity: type, table: str, fields: list[FieldMetadata],
                 dialect: Dialect | None = None, connection_name: str = 'default',
                 declarations: list[RelationshipDeclaration] | None = None,
                 declared_connection: str | None = None) -> None:
        self.entity = entity
        self.table = table
        self.fields = tuple(fields)
        self.dialect = dialect
        self.connection_name = connection_name
        self.declared_connection = declared_connection
        self.declarations = tuple(declarations or ())
        self.relationships: dict[str, Relationship] = {}
        self.connection: 'Connection | None' = None
        self._by_attribute = {f.attribute: f for f in self.fields}
        self._by_column = {f.column: f for f in self.fields}

    def __repr__(self) -> str:
        return f'Schema(entity={self.entity.__name__}, table={self.table!r})'

    def columns(self, include_pk: bool = True) -> list[str]:
        """Return non-virtual column names in declaration order.

        Args:
            include_pk: Whether the primary key column is included
        """
        return [f.column for f in self.fields
                if not f.is_virtual and (include_pk or not f.is_pk)]

    def pk_field(self) -> FieldMetadata:
        """Return the primary key field.

        Raises
            OperationError: If the entity has no primary key
        """
        for f in self.fields:
            if f.is_pk:
                return f
        raise OperationError(f'Entity {self.entity.__name__} has no primary key field')

    def has_pk(self) -> bool:
        return any(f.is_pk for f in self.fields)

    def pk_column_name(self) -> str:
        return self.pk_field().column

    def pk_value(self, obj: Any) -> Any:
        """Read the primary key value of an entity instance."""
        return getattr(obj, self.pk_field().attribute)

    def set_pk(self, obj: Any, value: Any) -> None:
        """Write the primary key value of an entity instance."""
        setattr(obj, self.pk_field().attribute, value)

    def values_of(self, obj: Any, include_pk: bool = True) -> list[Any]:
        """Return driver values of all non-virtual fields in column order.
        """
        return [to_db_value(getattr(obj, f.attribute)) for f in self.fields
                if not f.is_virtual and (include_pk or not f.is_pk)]

    def get_field(self, attribute: str) -> FieldMetadata | None:
        return self._by_attribute.get(attribute)

    def field_for_column(self, column: str) -> FieldMetadata | None:
        return self._by_column.get(column)

    def value_of_column(self, obj: Any, column: str) -> Any:
        """Read an entity value by column name.

        Raises
            OperationError: If no field maps to `column`
        """
        fm = self.field_for_column(column)
        if fm is None:
            raise OperationError(f'Entity {self.entity.__name__} has no field for column {column!r}')
        return to_db_value(getattr(obj, fm.attribute))

    def relationship_to(self, table: str) -> Relationship | None:
        return self.relationships.get(table)


def build_schema(entity: type, dialect: Dialect | None = None) -> Schema:
    """Build the schema of an entity from its configurator declarations.

    Relationships are recorded but not resolved; see `resolve_relationships`.

    Raises
        ConfigurationError: If the table is missing or a column is duplicated
    """
    if not isinstance(entity, type):
        entity = type(entity)

    ec = configurator_for(entity)
    if not ec.resolved_table:
        raise ConfigurationError(f'Table name is mandatory for entity {entity.__name__}')

    fields = fields_of(entity, ec.field_overrides)

    seen: dict[str, str] = {}
    for f in fields:
        if f.column in seen:
            raise ConfigurationError(
                f'Entity {entity.__name__}: column {f.column!r} is declared by both '
                f'{seen[f.column]!r} and {f.attribute!r}')
        seen[f.column] = f.attribute

    pks = [f.attribute for f in fields if f.is_pk]
    if len(pks) > 1:
        raise ConfigurationError(f'Entity {entity.__name__} declares more than one primary key: {pks}')

    schema = Schema(entity, ec.resolved_table, fields, dialect=dialect,
                    connection_name=ec.resolved_connection,
                    declarations=ec.relationships,
                    declared_connection=ec.declared_connection)
    logger.debug(f'Built schema for {entity.__name__}: table={schema.table} '
                 f'columns={schema.columns()}')
    return schema


def resolve_relationships(schema: Schema, lookup: Callable[[type], Schema]) -> None:
    """Resolve the declared relationships of a schema with naming defaults.

    Args:
        schema: Schema whose declarations are resolved in place
        lookup: Returns the schema of a related entity class
    """
    relationships: dict[str, Relationship] = {}
    for declaration in schema.declarations:
        other = lookup(declaration.other)
        relationship = resolve_relationship(schema, other, declaration.config)
        relationships[other.table] = relationship
        logger.debug(f'{schema.table} -> {other.table}: {relationship}')
    schema.relationships = relationships
