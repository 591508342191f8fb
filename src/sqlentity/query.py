"""
Dialect-aware query builder.

A single mutable builder emits SELECT, INSERT, UPDATE or DELETE statements.
Methods mutate the builder and return it so calls chain:

    sql, args = QueryBuilder(dialect=Dialects.PostgreSQL) \
        .table('users') \
        .where('age', 10) \
        .where('name', 'a') \
        .to_sql()
    # SELECT * FROM users WHERE age = $1 AND name = $2, [10, 'a']

Placeholders are numbered while the statement is rendered, in the order
they appear in the final SQL, so the argument list always lines up with
the placeholders. `to_sql()` does not modify the builder and can be called
repeatedly.

Builders created for an entity (see `sqlentity.query`) can also run
themselves against the entity's connection: `all`, `one`, `first`,
`latest`, `count`, `update`, `delete` and `execute`.
"""
import copy
import enum
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, Self, TypeVar

from more_itertools import collapse

from sqlentity.binder import Binder
from sqlentity.dialect import Dialect, Dialects
from sqlentity.dialect.base import count_markers, replace_markers
from sqlentity.exceptions import BuilderError, EmptyInListError
from sqlentity.types import to_db_value

if TYPE_CHECKING:
    from sqlentity.connection import Connection, ExecResult
    from sqlentity.schema import Schema

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Comparison operators
EQ = '='
NE = '<>'
GT = '>'
GE = '>='
LT = '<'
LE = '<='
LIKE = 'LIKE'
NOT_LIKE = 'NOT LIKE'

# Sort directions
ASC = 'ASC'
DESC = 'DESC'


class QueryKind(enum.Enum):
    SELECT = 'SELECT'
    INSERT = 'INSERT'
    UPDATE = 'UPDATE'
    DELETE = 'DELETE'


class JoinKind(enum.Enum):
    INNER = 'INNER'
    LEFT = 'LEFT'
    RIGHT = 'RIGHT'
    FULL_OUTER = 'FULL OUTER'


class Raw:
    """A verbatim SQL fragment with its own bound arguments.

    Mark parameters with `?` (or `$n`); markers are renumbered for the
    dialect when the fragment is emitted.

    >>> Raw('age < ?', 10)
    Raw('age < ?', 10)
    """

    __slots__ = ('sql', 'args')

    def __init__(self, sql: str, *args: Any) -> None:
        self.sql = sql
        self.args = args

    def __repr__(self) -> str:
        return f'Raw({", ".join(repr(a) for a in (self.sql, *self.args))})'

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Raw) and (self.sql, self.args) == (other.sql, other.args)

    def __hash__(self) -> int:
        return hash((self.sql, self.args))


class _Emitter:
    """Collects arguments and hands out placeholders left to right."""

    def __init__(self, dialect: Dialect) -> None:
        self.dialect = dialect
        self.args: list[Any] = []

    def bind(self, value: Any) -> str:
        if isinstance(value, Raw):
            return self.raw(value)
        self.args.append(to_db_value(value))
        return self.dialect.placeholder(len(self.args))

    def raw(self, raw: Raw) -> str:
        markers = count_markers(raw.sql)
        if markers != len(raw.args):
            raise BuilderError(f'Raw fragment {raw.sql!r} has {markers} placeholders '
                               f'but {len(raw.args)} arguments')
        args = iter(raw.args)
        sql, _ = replace_markers(raw.sql, lambda: self.bind(next(args)))
        return sql


@dataclass
class _Condition:
    connective: str
    column: str
    operator: str
    value: Any

    def render(self, emitter: _Emitter) -> str:
        if self.value is None and self.operator in {EQ, NE}:
            return f'{self.column} IS {"NOT " if self.operator == NE else ""}NULL'
        return f'{self.column} {self.operator} {emitter.bind(self.value)}'


@dataclass
class _InCondition:
    connective: str
    column: str
    values: tuple
    negate: bool = False

    def render(self, emitter: _Emitter) -> str:
        keyword = 'NOT IN' if self.negate else 'IN'
        if len(self.values) == 1 and isinstance(self.values[0], Raw):
            return f'{self.column} {keyword} ({emitter.raw(self.values[0])})'
        return f'{self.column} {keyword} ({",".join(emitter.bind(v) for v in self.values)})'


@dataclass
class _BetweenCondition:
    connective: str
    column: str
    low: Any
    high: Any
    negate: bool = False

    def render(self, emitter: _Emitter) -> str:
        keyword = 'NOT BETWEEN' if self.negate else 'BETWEEN'
        return f'{self.column} {keyword} {emitter.bind(self.low)} AND {emitter.bind(self.high)}'


@dataclass
class _NotCondition:
    connective: str
    inner: Any

    def render(self, emitter: _Emitter) -> str:
        return f'NOT ({self.inner.render(emitter)})'


@dataclass
class _RawCondition:
    connective: str
    raw: Raw

    def render(self, emitter: _Emitter) -> str:
        return emitter.raw(self.raw)


@dataclass(frozen=True)
class _Join:
    kind: JoinKind
    table: str
    left: str
    right: str

    def render(self) -> str:
        return f'{self.kind.value} JOIN {self.table} ON {self.left} = {self.right}'


class QueryBuilder(Generic[T]):
    """Mutable builder for one SQL statement.

    Args:
        schema: Entity schema; sets table and dialect and enables execution
        dialect: Overrides the dialect, by default the schema's or MySQL
    """

    def __init__(self, schema: 'Schema | None' = None, dialect: Dialect | None = None) -> None:
        self.schema = schema
        if dialect is None and schema is not None:
            dialect = schema.dialect
        self.dialect: Dialect = dialect or Dialects.MySQL
        self.kind: QueryKind | None = None
        self._table = schema.table if schema is not None else ''
        self._subquery: QueryBuilder | None = None
        self._projection: list[str] = []
        self._where: list[_Condition | _InCondition | _BetweenCondition | _NotCondition | _RawCondition] = []
        self._order_by: list[tuple[str, str]] = []
        self._group_by: list[str] = []
        self._limit: int | None = None
        self._offset: int | None = None
        self._joins: list[_Join] = []
        self._sets: list[tuple[str, Any]] = []
        self._insert_columns: list[str] = []
        self._insert_rows: list[tuple] = []
        self._returning: list[str] = []

    def __repr__(self) -> str:
        kind = self.kind.value if self.kind else None
        return f'QueryBuilder(kind={kind}, table={self._table!r}, dialect={self.dialect.name!r})'

    def _set_kind(self, kind: QueryKind) -> None:
        if self.kind is not None and self.kind is not kind:
            raise BuilderError(f'kind mismatch: builder is {self.kind.value}, not {kind.value}')
        self.kind = kind

    def clone(self) -> 'QueryBuilder[T]':
        """Return an independent copy of this builder."""
        other = copy.copy(self)
        for name in ('_projection', '_where', '_order_by', '_group_by', '_joins',
                     '_sets', '_insert_columns', '_insert_rows', '_returning'):
            setattr(other, name, list(getattr(self, name)))
        return other

    # Statement kind and source

    def set_select(self) -> Self:
        self._set_kind(QueryKind.SELECT)
        return self

    def set_delete(self) -> Self:
        self._set_kind(QueryKind.DELETE)
        return self

    def set_update(self) -> Self:
        self._set_kind(QueryKind.UPDATE)
        return self

    def set_insert(self) -> Self:
        self._set_kind(QueryKind.INSERT)
        return self

    def set_dialect(self, dialect: Dialect) -> Self:
        self.dialect = dialect
        return self

    def table(self, name: str) -> Self:
        self._table = name
        return self

    def from_query(self, subquery: 'QueryBuilder') -> Self:
        """Select from the result of another SELECT builder.

        The sub-query's arguments precede the outer query's.
        """
        self._set_kind(QueryKind.SELECT)
        self._subquery = subquery
        return self

    def select(self, *columns: str) -> Self:
        self._projection.extend(columns)
        return self

    # WHERE

    def _add_where(self, connective: str, args: tuple) -> Self:
        if len(args) == 1 and isinstance(args[0], Raw):
            self._where.append(_RawCondition(connective, args[0]))
        elif len(args) == 2:
            self._where.append(_Condition(connective, args[0], EQ, args[1]))
        elif len(args) == 3:
            self._where.append(_Condition(connective, args[0], args[1], args[2]))
        else:
            raise BuilderError('where expects (raw), (column, value) or (column, operator, value)')
        return self

    def where(self, *args: Any) -> Self:
        """Add a predicate joined with AND.

        Accepts `(Raw)`, `(column, value)` for equality or
        `(column, operator, value)`. Comparing with None emits IS [NOT] NULL.
        """
        return self._add_where('AND', args)

    def and_where(self, *args: Any) -> Self:
        return self._add_where('AND', args)

    def or_where(self, *args: Any) -> Self:
        return self._add_where('OR', args)

    def _add_in(self, connective: str, column: str, values: tuple, negate: bool) -> Self:
        flat = tuple(collapse(values))
        if not flat:
            raise EmptyInListError(f'empty IN list for column {column}')
        self._where.append(_InCondition(connective, column, flat, negate))
        return self

    def where_in(self, column: str, *values: Any) -> Self:
        """Add `column IN (...)` with one placeholder per value.

        Nested sequences are flattened. A single Raw value is emitted inside
        the parentheses as a sub-select.
        """
        return self._add_in('AND', column, values, negate=False)

    def or_where_in(self, column: str, *values: Any) -> Self:
        return self._add_in('OR', column, values, negate=False)

    def where_not_in(self, column: str, *values: Any) -> Self:
        return self._add_in('AND', column, values, negate=True)

    def where_between(self, column: str, low: Any, high: Any) -> Self:
        """Add `column BETWEEN low AND high`, both bounds inclusive."""
        self._where.append(_BetweenCondition('AND', column, low, high))
        return self

    def or_where_between(self, column: str, low: Any, high: Any) -> Self:
        self._where.append(_BetweenCondition('OR', column, low, high))
        return self

    def where_not_between(self, column: str, low: Any, high: Any) -> Self:
        self._where.append(_BetweenCondition('AND', column, low, high, negate=True))
        return self

    def where_not(self, *args: Any) -> Self:
        """Add a negated predicate joined with AND.

        Takes the same arguments as `where` and emits `NOT (...)`.
        """
        self._add_where('AND', args)
        condition = self._where.pop()
        self._where.append(_NotCondition('AND', condition))
        return self

    def where_pk(self, value: Any) -> Self:
        """Add equality on the entity's primary key column."""
        if self.schema is None:
            raise BuilderError('where_pk needs a builder bound to an entity')
        return self.where(self.schema.pk_column_name(), value)

    # Joins

    def _add_join(self, kind: JoinKind, table: str, left: str, right: str) -> Self:
        self._joins.append(_Join(kind, table, left, right))
        return self

    def join(self, table: str, left: str, right: str) -> Self:
        return self._add_join(JoinKind.INNER, table, left, right)

    def inner_join(self, table: str, left: str, right: str) -> Self:
        return self._add_join(JoinKind.INNER, table, left, right)

    def left_join(self, table: str, left: str, right: str) -> Self:
        return self._add_join(JoinKind.LEFT, table, left, right)

    def right_join(self, table: str, left: str, right: str) -> Self:
        return self._add_join(JoinKind.RIGHT, table, left, right)

    def full_outer_join(self, table: str, left: str, right: str) -> Self:
        return self._add_join(JoinKind.FULL_OUTER, table, left, right)

    # Ordering, grouping, paging

    def order_by(self, column: str, direction: str = ASC) -> Self:
        direction = direction.upper()
        if direction not in {ASC, DESC}:
            raise BuilderError(f'Unknown sort direction: {direction}')
        self._order_by.append((column, direction))
        return self

    def group_by(self, *columns: str) -> Self:
        self._group_by.extend(columns)
        return self

    def limit(self, n: int) -> Self:
        self._limit = int(n)
        return self

    def offset(self, n: int) -> Self:
        self._offset = int(n)
        return self

    # UPDATE and INSERT

    def set(self, column: str, value: Any) -> Self:
        """Add a `column=value` assignment; implies UPDATE."""
        self._set_kind(QueryKind.UPDATE)
        self._sets.append((column, value))
        return self

    def into(self, *columns: str) -> Self:
        """Set the INSERT column list; implies INSERT."""
        self._set_kind(QueryKind.INSERT)
        self._insert_columns.extend(columns)
        return self

    def values(self, *values: Any) -> Self:
        """Add one row of INSERT values; implies INSERT."""
        self._set_kind(QueryKind.INSERT)
        self._insert_rows.append(tuple(values))
        return self

    def returning(self, *columns: str) -> Self:
        self._returning.extend(columns)
        return self

    # Rendering

    def to_sql(self) -> tuple[str, list[Any]]:
        """Render the statement.

        Returns
            Tuple of SQL text and the argument list, in placeholder order

        Raises
            BuilderError: If the builder state is empty or incoherent
        """
        emitter = _Emitter(self.dialect)
        sql = self._render(emitter)
        return sql, emitter.args

    def _resolved_kind(self) -> QueryKind:
        if self.kind is not None:
            return self.kind
        if self._table or self._subquery is not None:
            return QueryKind.SELECT
        raise BuilderError('no kind: call set_select, set_delete, set or into')

    def _render(self, emitter: _Emitter) -> str:
        kind = self._resolved_kind()
        if kind is not QueryKind.SELECT:
            self._check_select_only(kind)
        if kind is QueryKind.SELECT:
            return self._render_select(emitter)
        if not self._table:
            raise BuilderError(f'no table for {kind.value}')
        if kind is QueryKind.INSERT:
            return self._render_insert(emitter)
        if kind is QueryKind.UPDATE:
            return self._render_update(emitter)
        return self._render_delete(emitter)

    def _check_select_only(self, kind: QueryKind) -> None:
        if self._subquery is not None:
            raise BuilderError(f'kind mismatch: sub-queries are supported on SELECT only, not {kind.value}')
        if self._joins or self._group_by or self._order_by or self._limit is not None \
                or self._offset is not None:
            raise BuilderError(f'kind mismatch: joins, grouping, ordering and paging are '
                               f'supported on SELECT only, not {kind.value}')
        if kind is QueryKind.INSERT and self._where:
            raise BuilderError('kind mismatch: INSERT does not take a WHERE clause')

    def _render_where(self, emitter: _Emitter) -> str:
        parts = []
        for i, condition in enumerate(self._where):
            text = condition.render(emitter)
            parts.append(text if i == 0 else f'{condition.connective} {text}')
        return ' '.join(parts)

    def _render_select(self, emitter: _Emitter) -> str:
        if self._sets or self._insert_columns or self._insert_rows:
            raise BuilderError('kind mismatch: SELECT with SET or INSERT values')
        if self._subquery is not None:
            if self._subquery._resolved_kind() is not QueryKind.SELECT:
                raise BuilderError('kind mismatch: sub-query must be a SELECT')
            source = f'({self._subquery._render(emitter)} )'
        elif self._table:
            source = self._table
        else:
            raise BuilderError('no table for SELECT')

        parts = [f'SELECT {",".join(self._projection) or "*"} FROM {source}']
        parts.extend(join.render() for join in self._joins)
        where = self._render_where(emitter)
        if where:
            parts.append(f'WHERE {where}')
        if self._group_by:
            parts.append(f'GROUP BY {",".join(self._group_by)}')
        if self._order_by:
            parts.append(f'ORDER BY {",".join(f"{c} {d}" for c, d in self._order_by)}')
        if self._limit is not None:
            parts.append(f'LIMIT {self._limit}')
        if self._offset is not None:
            parts.append(f'OFFSET {self._offset}')
        return ' '.join(parts)

    def _render_insert(self, emitter: _Emitter) -> str:
        if not self._insert_columns:
            raise BuilderError('INSERT needs a column list')
        if not self._insert_rows:
            raise BuilderError('INSERT needs at least one row of values')
        rows = []
        for row in self._insert_rows:
            if len(row) != len(self._insert_columns):
                raise BuilderError(f'INSERT row has {len(row)} values for '
                                   f'{len(self._insert_columns)} columns')
            rows.append(f'({",".join(emitter.bind(v) for v in row)})')
        sql = f'INSERT INTO {self._table} ({",".join(self._insert_columns)}) VALUES {", ".join(rows)}'
        if self._returning:
            sql += f' RETURNING {",".join(self._returning)}'
        return sql

    def _render_update(self, emitter: _Emitter) -> str:
        if not self._sets:
            raise BuilderError('kind mismatch: UPDATE without SET assignments')
        assignments = ', '.join(f'{column}={emitter.bind(value)}' for column, value in self._sets)
        sql = f'UPDATE {self._table} SET {assignments}'
        where = self._render_where(emitter)
        if where:
            sql += f' WHERE {where}'
        return sql

    def _render_delete(self, emitter: _Emitter) -> str:
        if self._sets or self._insert_rows:
            raise BuilderError('kind mismatch: DELETE with SET or INSERT values')
        sql = f'DELETE FROM {self._table}'
        where = self._render_where(emitter)
        if where:
            sql += f' WHERE {where}'
        return sql

    # Execution against the entity's connection

    def _connection(self) -> 'Connection':
        if self.schema is None or self.schema.connection is None:
            raise BuilderError('builder is not bound to a registered entity')
        return self.schema.connection

    def _require_select(self) -> None:
        if self._resolved_kind() is not QueryKind.SELECT:
            raise BuilderError(f'kind mismatch: {self.kind.value} does not return rows')

    def all(self, cancel: threading.Event | None = None) -> list[T]:
        """Run the SELECT and bind every row into a new entity."""
        self._require_select()
        connection = self._connection()
        sql, args = self.to_sql()
        out: list[T] = []
        result_set = connection.query(sql, *args, cancel=cancel)
        Binder(schema=self.schema).bind(result_set, out, cancel=cancel)
        return out

    def one(self, cancel: threading.Event | None = None) -> T | None:
        """Run the SELECT and bind into a single entity, None if no rows."""
        self._require_select()
        connection = self._connection()
        sql, args = self.to_sql()
        out = self.schema.entity()
        result_set = connection.query(sql, *args, cancel=cancel)
        if not Binder(schema=self.schema).bind(result_set, out, cancel=cancel):
            return None
        return out

    def first(self) -> T | None:
        """Return the row with the lowest primary key (or first by ordering)."""
        self._connection()
        q = self.clone()
        if not q._order_by:
            q.order_by(self.schema.pk_column_name(), ASC)
        return q.limit(1).one()

    def latest(self) -> T | None:
        """Return the row with the highest primary key."""
        self._connection()
        q = self.clone()
        q._order_by = [(self.schema.pk_column_name(), DESC)]
        return q.limit(1).one()

    def _aggregate(self, function: str, column: str) -> Any:
        q = self.clone()
        q._projection = [f'{function}({column})']
        q._order_by = []
        q._require_select()
        sql, args = q.to_sql()
        with q._connection().query(sql, *args) as result_set:
            for row in result_set:
                return row[0]
        return None

    def count(self, column: str = '*') -> int:
        return self._aggregate('COUNT', column) or 0

    def sum(self, column: str) -> Any:
        return self._aggregate('SUM', column)

    def avg(self, column: str) -> Any:
        return self._aggregate('AVG', column)

    def min(self, column: str) -> Any:
        return self._aggregate('MIN', column)

    def max(self, column: str) -> Any:
        return self._aggregate('MAX', column)

    def update(self, kv: Mapping[str, Any]) -> 'ExecResult':
        """Assign columns in `kv` on matching rows."""
        for column, value in kv.items():
            self.set(column, value)
        return self.execute()

    def delete(self) -> 'ExecResult':
        """Delete matching rows."""
        return self.set_delete().execute()

    def execute(self, cancel: threading.Event | None = None) -> 'ExecResult':
        """Run an INSERT, UPDATE or DELETE.

        Raises
            BuilderError: If the builder is a SELECT
        """
        if self._resolved_kind() is QueryKind.SELECT:
            raise BuilderError('kind mismatch: use all() or one() to run a SELECT')
        sql, args = self.to_sql()
        return self._connection().execute(sql, *args, cancel=cancel)


__all__ = [
    'ASC',
    'DESC',
    'EQ',
    'GE',
    'GT',
    'LE',
    'LIKE',
    'LT',
    'NE',
    'NOT_LIKE',
    'JoinKind',
    'QueryBuilder',
    'QueryKind',
    'Raw',
]
