"""
Relationship descriptors and their declaration configs.

Entities declare relationships on their configurator with a config whose
fields may be left empty. When the schema is registered the empty fields
are filled from table and primary-key naming conventions, producing one of
the four immutable descriptors below. Traversal never recomputes defaults.
"""
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from sqlentity.exceptions import ConfigurationError
from sqlentity.utils import singular

if TYPE_CHECKING:
    from sqlentity.schema import Schema

logger = logging.getLogger(__name__)


@dataclass
class HasManyConfig:
    """Declaration of a one-to-many relationship.

    Args:
        property_table: Table holding the related rows, by default the
            related entity's table
        property_foreign_key: Column in the related table pointing back to
            the owner, by default `singular(owner table) + '_id'`
    """
    property_table: str = ''
    property_foreign_key: str = ''


@dataclass
class HasOneConfig:
    """Declaration of a one-to-one relationship, owner side.
    """
    property_table: str = ''
    property_foreign_key: str = ''


@dataclass
class BelongsToConfig:
    """Declaration of the inverse of HasMany/HasOne.

    Args:
        owner_table: Table of the owner, by default the owner entity's table
        local_foreign_key: Column on this entity referring to the owner, by
            default `singular(owner table) + '_id'`
        foreign_column_name: Referenced column on the owner, by default `id`
    """
    owner_table: str = ''
    local_foreign_key: str = ''
    foreign_column_name: str = ''


@dataclass
class BelongsToManyConfig:
    """Declaration of a many-to-many relationship through a join table.

    Args:
        intermediate_table: Join table, required
        intermediate_local_column: Join table column selected to match the
            related rows, by default `singular(foreign table) + '_id'`
        intermediate_foreign_column: Join table column compared with this
            entity's primary key, by default `singular(this table) + '_id'`
        foreign_table: Table of the related entity
        foreign_lookup_column: Related table column matched against the
            join table, by default the related entity's primary key
    """
    intermediate_table: str = ''
    intermediate_local_column: str = ''
    intermediate_foreign_column: str = ''
    foreign_table: str = ''
    foreign_lookup_column: str = ''


@dataclass(frozen=True)
class HasMany:
    property_table: str
    property_foreign_key: str


@dataclass(frozen=True)
class HasOne:
    property_table: str
    property_foreign_key: str


@dataclass(frozen=True)
class BelongsTo:
    owner_table: str
    local_foreign_key: str
    foreign_column_name: str


@dataclass(frozen=True)
class BelongsToMany:
    intermediate_table: str
    intermediate_local_column: str
    intermediate_foreign_column: str
    foreign_table: str
    foreign_lookup_column: str


Relationship = Union[HasMany, HasOne, BelongsTo, BelongsToMany]

RelationshipConfig = Union[HasManyConfig, HasOneConfig, BelongsToConfig, BelongsToManyConfig]


@dataclass(frozen=True)
class RelationshipDeclaration:
    """A relationship as declared on the configurator, before defaults."""
    other: type
    config: RelationshipConfig


def resolve_relationship(this: 'Schema', other: 'Schema',
                         config: RelationshipConfig) -> Relationship:
    """Apply naming defaults to a declared relationship.

    Args:
        this: Schema of the declaring entity
        other: Schema of the related entity
        config: The declaration config, left unmodified

    Returns
        The resolved relationship descriptor
    """
    if isinstance(config, HasManyConfig):
        return HasMany(
            property_table=config.property_table or other.table,
            property_foreign_key=config.property_foreign_key or f'{singular(this.table)}_id',
        )

    if isinstance(config, HasOneConfig):
        return HasOne(
            property_table=config.property_table or other.table,
            property_foreign_key=config.property_foreign_key or f'{singular(this.table)}_id',
        )

    if isinstance(config, BelongsToConfig):
        owner_table = config.owner_table or other.table
        return BelongsTo(
            owner_table=owner_table,
            local_foreign_key=config.local_foreign_key or f'{singular(owner_table)}_id',
            foreign_column_name=config.foreign_column_name or 'id',
        )

    if isinstance(config, BelongsToManyConfig):
        if not config.intermediate_table:
            raise ConfigurationError(
                f'BelongsToMany from {this.table} to {other.table} requires an intermediate_table')
        foreign_table = config.foreign_table or other.table
        return BelongsToMany(
            intermediate_table=config.intermediate_table,
            intermediate_local_column=config.intermediate_local_column or f'{singular(foreign_table)}_id',
            intermediate_foreign_column=config.intermediate_foreign_column or f'{singular(this.table)}_id',
            foreign_table=foreign_table,
            foreign_lookup_column=config.foreign_lookup_column or other.pk_column_name(),
        )

    raise ConfigurationError(f'Unsupported relationship config: {type(config).__name__}')
