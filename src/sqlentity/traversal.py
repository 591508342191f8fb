"""
Relationship traversal.

Each function looks up the stored relationship descriptor on the source
entity's schema, keyed by the target entity's table, and returns a builder
that selects the related rows:

    comments = has_many(post, Comment).all()
    picture = has_one(post, HeaderPicture).one()
    post = belongs_to(comment, Post).one()
    categories = belongs_to_many(post, Category).all()

The returned builders can be narrowed further before running.
"""
import logging
from typing import Any, TypeVar

from sqlentity.connection import ExecResult
from sqlentity.exceptions import ConfigurationError, OperationError
from sqlentity.operations import insert_rows
from sqlentity.query import QueryBuilder, Raw
from sqlentity.registry import schema_for
from sqlentity.relations import BelongsTo, BelongsToMany, HasMany, HasOne
from sqlentity.schema import Schema

__all__ = ['add', 'belongs_to', 'belongs_to_many', 'has_many', 'has_one']

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _descriptor(source: Schema, target: Schema, kind: type) -> Any:
    relationship = source.relationship_to(target.table)
    if not isinstance(relationship, kind):
        raise ConfigurationError(f'no relationship configured for {target.entity.__name__}')
    return relationship


def _select_from(target: Schema) -> QueryBuilder:
    return QueryBuilder(target).select(*target.columns())


def has_many(owner: Any, target: type[T]) -> QueryBuilder[T]:
    """Builder selecting the `target` rows that point back at `owner`.

    Raises
        ConfigurationError: If `owner` declares no HasMany to `target`
    """
    source, other = schema_for(owner), schema_for(target)
    rel: HasMany = _descriptor(source, other, HasMany)
    return _select_from(other).table(rel.property_table) \
        .where(rel.property_foreign_key, source.pk_value(owner))


def has_one(owner: Any, target: type[T]) -> QueryBuilder[T]:
    """Builder selecting the single `target` row that points back at `owner`.

    Raises
        ConfigurationError: If `owner` declares no HasOne to `target`
    """
    source, other = schema_for(owner), schema_for(target)
    rel: HasOne = _descriptor(source, other, HasOne)
    return _select_from(other).table(rel.property_table) \
        .where(rel.property_foreign_key, source.pk_value(owner))


def belongs_to(prop: Any, target: type[T]) -> QueryBuilder[T]:
    """Builder selecting the `target` row that `prop` refers to.

    The key is read from `prop` by the descriptor's local foreign key column.

    Raises
        ConfigurationError: If `prop` declares no BelongsTo to `target`
    """
    source, other = schema_for(prop), schema_for(target)
    rel: BelongsTo = _descriptor(source, other, BelongsTo)
    return _select_from(other).table(rel.owner_table) \
        .where(rel.foreign_column_name, source.value_of_column(prop, rel.local_foreign_key))


def belongs_to_many(this: Any, target: type[T]) -> QueryBuilder[T]:
    """Builder selecting the `target` rows joined to `this` through the
    intermediate table, compiled as one statement with a sub-select.

    Raises
        ConfigurationError: If `this` declares no BelongsToMany to `target`
    """
    source, other = schema_for(this), schema_for(target)
    rel: BelongsToMany = _descriptor(source, other, BelongsToMany)
    lookup = Raw(f'SELECT {rel.intermediate_local_column} FROM {rel.intermediate_table} '
                 f'WHERE {rel.intermediate_foreign_column} = ?', source.pk_value(this))
    return _select_from(other).table(rel.foreign_table) \
        .where_in(rel.foreign_lookup_column, lookup)


def add(owner: Any, *items: Any) -> ExecResult:
    """Insert `items` as children of `owner` with one multi-row INSERT.

    The owner's key is written into the column named by the BelongsTo
    descriptor on the items' side, and into the matching item field when the
    item declares one.

    Raises
        OperationError: If no items are given, their types differ, or the
            relationship is BelongsToMany
        ConfigurationError: If the relationship or its inverse is missing
    """
    if not items:
        raise OperationError('add needs at least one item')
    types = {type(i) for i in items}
    if len(types) > 1:
        raise OperationError(f'Cannot add different entity types in one batch: '
                             f'{sorted(t.__name__ for t in types)}')

    source, other = schema_for(owner), schema_for(items[0])
    relationship = source.relationship_to(other.table)
    if isinstance(relationship, BelongsToMany):
        raise OperationError(f'Adding through BelongsToMany ({relationship.intermediate_table}) '
                             f'is not supported')
    if not isinstance(relationship, (HasMany, HasOne)):
        raise ConfigurationError(f'no relationship configured for {other.entity.__name__}')

    inverse = other.relationship_to(source.table)
    if not isinstance(inverse, BelongsTo):
        raise ConfigurationError(
            f'{other.entity.__name__} needs a BelongsTo {source.entity.__name__} '
            f'to be added through {type(relationship).__name__}')

    owner_key = source.pk_value(owner)
    fk_field = other.field_for_column(inverse.local_foreign_key)
    if fk_field is not None:
        for item in items:
            setattr(item, fk_field.attribute, owner_key)

    logger.debug(f'Adding {len(items)} {other.table} rows to {source.table} {owner_key!r}')
    return insert_rows(other, list(items), {inverse.local_foreign_key: owner_key})
