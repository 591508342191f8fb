"""
Typed persistence operations on registered entities.

These are thin wrappers that look up the entity's schema, assemble a
builder and run it on the entity's connection:

    post = Post(body='hello')
    insert(post)            # post.id now holds the generated key
    post = find(Post, post.id)
    post.body = 'changed'
    save(post)
    delete(post)

Every call is a single attempt; nothing is retried or rolled back here.
"""
import logging
import threading
from collections.abc import Mapping
from typing import Any, TypeVar

from sqlentity.binder import Binder
from sqlentity.connection import ExecResult
from sqlentity.exceptions import OperationError
from sqlentity.query import QueryBuilder
from sqlentity.registry import schema_for
from sqlentity.schema import Schema

__all__ = [
    'delete',
    'exec_raw',
    'fill',
    'find',
    'insert',
    'query',
    'query_raw',
    'save',
    'update',
]

logger = logging.getLogger(__name__)

T = TypeVar('T')


def _is_unset(value: Any) -> bool:
    return value is None or value == 0 or value == ''


def _assign_generated_ids(schema: Schema, objs: list, result: ExecResult) -> None:
    """Write generated keys back into freshly inserted entities.

    RETURNING rows carry no guaranteed order, but keys generated by one
    statement increase with insertion order, so integer keys are sorted
    before being matched to `objs`.
    """
    if result.returned:
        keys = [row[0] for row in result.returned]
        if all(isinstance(k, int) for k in keys):
            keys.sort()
        for obj, key in zip(objs, keys):
            schema.set_pk(obj, key)
        return
    last = result.lastrowid
    if last is None:
        logger.debug(f'No generated id reported for {schema.table}')
        return
    first = last if schema.dialect.batch_insert_id_is_first else last - len(objs) + 1
    for i, obj in enumerate(objs):
        schema.set_pk(obj, first + i)


def insert_rows(schema: Schema, objs: list, overrides: Mapping[str, Any] | None = None) -> ExecResult:
    """Insert entities of one schema with a single multi-row INSERT.

    The primary key column is included when every entity already has a
    key and left out when none has one, in which case generated keys are
    written back.

    Args:
        schema: Schema shared by all `objs`
        objs: Entities to insert
        overrides: Column values substituted in every row; columns not on
            the entity are appended

    Returns
        ExecResult of the INSERT

    Raises
        OperationError: If some entities have a key and others do not
    """
    overrides = overrides or {}
    has_pk = schema.has_pk()
    keyed = [not _is_unset(schema.pk_value(o)) for o in objs] if has_pk else []
    if any(keyed) and not all(keyed):
        raise OperationError(f'Cannot insert {schema.table} rows with and without a primary key '
                             'in one batch')
    include_pk = not has_pk or all(keyed)
    columns = schema.columns(include_pk=include_pk)
    extra = [c for c in overrides if c not in columns]

    q = QueryBuilder(schema).into(*columns, *extra)
    for obj in objs:
        row = [overrides.get(c, v) for c, v in zip(columns, schema.values_of(obj, include_pk=include_pk))]
        q.values(*row, *(overrides[c] for c in extra))

    generates_ids = has_pk and not include_pk
    if generates_ids and schema.dialect.supports_returning:
        q.returning(schema.pk_column_name())

    result = q.execute()
    if generates_ids:
        _assign_generated_ids(schema, objs, result)
    logger.debug(f'Inserted {len(objs)} rows into {schema.table}')
    return result


def insert(*objs: Any) -> ExecResult:
    """Insert one or more entities of the same type.

    Raises
        OperationError: If no entity is given, the entity types differ, or
            only some of the entities have a primary key
    """
    if not objs:
        raise OperationError('insert needs at least one entity')
    types = {type(o) for o in objs}
    if len(types) > 1:
        names = sorted(t.__name__ for t in types)
        raise OperationError(f'Cannot insert different entity types in one batch: {names}')
    return insert_rows(schema_for(objs[0]), list(objs))


def find(cls: type[T], pk: Any) -> T | None:
    """Load the entity with primary key `pk`, None if there is no such row.
    """
    return query(cls).where_pk(pk).one()


def fill(obj: T) -> T:
    """Reload every column of `obj` in place from its row.

    Raises
        OperationError: If no row has the entity's primary key
    """
    schema = schema_for(obj)
    sql, args = QueryBuilder(schema).where_pk(schema.pk_value(obj)).to_sql()
    result_set = schema.connection.query(sql, *args)
    if not Binder(schema=schema).bind(result_set, obj):
        raise OperationError(f'No {schema.table} row with {schema.pk_column_name()}={schema.pk_value(obj)!r}')
    return obj


def update(obj: Any) -> ExecResult:
    """Write every non-key column of `obj` to its row.
    """
    schema = schema_for(obj)
    q = QueryBuilder(schema)
    for column, value in zip(schema.columns(include_pk=False),
                             schema.values_of(obj, include_pk=False)):
        q.set(column, value)
    return q.where_pk(schema.pk_value(obj)).execute()


def save(obj: Any) -> ExecResult:
    """Insert `obj` if its primary key is unset, update it otherwise.
    """
    schema = schema_for(obj)
    if _is_unset(schema.pk_value(obj)):
        return insert(obj)
    return update(obj)


def delete(obj: Any) -> ExecResult:
    """Delete the row of `obj` by primary key.
    """
    schema = schema_for(obj)
    return QueryBuilder(schema).where_pk(schema.pk_value(obj)).delete()


def query(cls: type[T]) -> QueryBuilder[T]:
    """Start a builder bound to the entity's table, dialect and connection.
    """
    return QueryBuilder(schema_for(cls))


def query_raw(cls: type[T], sql: str, *args: Any,
              cancel: threading.Event | None = None) -> list[T]:
    """Run raw SQL on the entity's connection and bind rows into entities.
    """
    schema = schema_for(cls)
    out: list[T] = []
    result_set = schema.connection.query(sql, *args, cancel=cancel)
    Binder(schema=schema).bind(result_set, out, cancel=cancel)
    return out


def exec_raw(cls: type, sql: str, *args: Any,
             cancel: threading.Event | None = None) -> ExecResult:
    """Run a raw statement on the entity's connection.
    """
    return schema_for(cls).connection.execute(sql, *args, cancel=cancel)
