"""
Entity base class and the fluent configurator entities declare their
schema with.

Usage:
    @dataclass
    class Post(Entity):
        id: int = 0
        body_text: str = ''

        @classmethod
        def configure_entity(cls, e: EntityConfigurator) -> None:
            e.table('posts') \
             .has_many(Comment) \
             .fields().field('body_text').column_name('body')
"""
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Self

from sqlentity.relations import BelongsToConfig, BelongsToManyConfig
from sqlentity.relations import HasManyConfig, HasOneConfig
from sqlentity.relations import RelationshipConfig, RelationshipDeclaration

logger = logging.getLogger(__name__)

DEFAULT_CONNECTION = 'default'


@dataclass
class FieldOverride:
    """Explicit per-field settings declared on the configurator."""
    column: str | None = None
    is_pk: bool = False
    is_virtual: bool = False


class FieldConfigurator:
    """Settings for one field, reached through `fields().field(name)`.
    """

    def __init__(self, fields: 'FieldsConfigurator', override: FieldOverride) -> None:
        self._fields = fields
        self._override = override

    def column_name(self, name: str) -> Self:
        self._override.column = name
        return self

    def is_primary_key(self) -> Self:
        self._override.is_pk = True
        return self

    def is_virtual(self) -> Self:
        self._override.is_virtual = True
        return self

    def also(self) -> 'FieldsConfigurator':
        """Return to the field list to configure another field."""
        return self._fields

    def field(self, name: str) -> 'FieldConfigurator':
        return self._fields.field(name)


class FieldsConfigurator:
    """Per-field overrides keyed by attribute name.
    """

    def __init__(self, entity: 'EntityConfigurator') -> None:
        self._entity = entity
        self.overrides: dict[str, FieldOverride] = {}

    def field(self, name: str) -> FieldConfigurator:
        override = self.overrides.setdefault(name, FieldOverride())
        return FieldConfigurator(self, override)

    def end(self) -> 'EntityConfigurator':
        return self._entity


class EntityConfigurator:
    """Collects an entity's schema declarations.

    A fresh configurator is handed to `Entity.configure_entity` once, when
    the schema registry builds the entity's schema.
    """

    def __init__(self) -> None:
        self.resolved_table: str = ''
        self.declared_connection: str | None = None
        self.relationships: list[RelationshipDeclaration] = []
        self._fields = FieldsConfigurator(self)

    @property
    def field_overrides(self) -> dict[str, FieldOverride]:
        return self._fields.overrides

    def table(self, name: str) -> Self:
        self.resolved_table = name
        return self

    @property
    def resolved_connection(self) -> str:
        return self.declared_connection or DEFAULT_CONNECTION

    def connection(self, name: str) -> Self:
        self.declared_connection = name
        return self

    def has_many(self, other: type, config: HasManyConfig | None = None) -> Self:
        return self._relate(other, config or HasManyConfig())

    def has_one(self, other: type, config: HasOneConfig | None = None) -> Self:
        return self._relate(other, config or HasOneConfig())

    def belongs_to(self, other: type, config: BelongsToConfig | None = None) -> Self:
        return self._relate(other, config or BelongsToConfig())

    def belongs_to_many(self, other: type, config: BelongsToManyConfig) -> Self:
        return self._relate(other, config)

    def fields(self) -> FieldsConfigurator:
        return self._fields

    def _relate(self, other: type, config: RelationshipConfig) -> Self:
        if not isinstance(other, type):
            other = type(other)
        self.relationships.append(RelationshipDeclaration(other=other, config=config))
        return self


class Entity(ABC):
    """Base class for record types that participate in ORM operations.

    Subclasses are normally dataclasses; every field needs a default so the
    binder can allocate fresh instances.
    """

    @classmethod
    @abstractmethod
    def configure_entity(cls, e: EntityConfigurator) -> None:
        """Declare table, connection, field overrides and relationships.
        """

    @classmethod
    def configure_relationships(cls, e: EntityConfigurator) -> None:
        """Optionally declare relationships separately from the schema.
        """


def configurator_for(entity: type) -> EntityConfigurator:
    """Run an entity's configuration hooks into a fresh configurator.
    """
    ec = EntityConfigurator()
    entity.configure_entity(ec)
    hook = getattr(entity, 'configure_relationships', None)
    if hook is not None:
        hook(ec)
    return ec
