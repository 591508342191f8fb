"""
Database connection handling with SQLAlchemy.

This module provides:
1. Engine creation and management through a thread-safe registry
2. The `Connection` class: a registered database handle plus its dialect
   plus its entity-schema map
3. `ResultSet` and `ExecResult`, the driver contract consumed by the
   binder and the typed operations

SQL reaching a Connection uses the dialect's placeholders (`?` or `$n`);
the dialect standardizes it to the DBAPI paramstyle just before execution.
"""
import atexit
import logging
import threading
import time
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from functools import wraps
from types import MappingProxyType
from typing import Any, Self

import sqlalchemy as sa
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool

from sqlentity.dialect import Dialect
from sqlentity.exceptions import ConfigurationError, QueryCancelled
from sqlentity.schema import Schema
from sqlentity.utils import get_raw_connection

__all__ = [
    'ColumnDescriptor',
    'Connection',
    'ExecResult',
    'ResultSet',
    'connect',
    'dispose_all_engines',
    'get_engine',
]

logger = logging.getLogger(__name__)

_engine_registry: dict[str, Engine] = {}
_engine_registry_lock = threading.RLock()

CANCEL_POLL_INTERVAL = 0.05


def get_engine(dialect: Dialect, connection_string: str) -> Engine:
    """Get or create a SQLAlchemy engine for a connection string.
    """
    key = f'{dialect.name}:{connection_string}'

    with _engine_registry_lock:
        if key in _engine_registry:
            logger.debug(f'Using existing engine for {dialect.name}')
            return _engine_registry[key]

        url = dialect.build_connection_url(connection_string)
        engine_kwargs: dict[str, Any] = {'echo': False, 'poolclass': NullPool}
        engine_kwargs.update(dialect.get_engine_kwargs(connection_string))

        engine = sa.create_engine(url, **engine_kwargs)
        _engine_registry[key] = engine
        logger.debug(f'Created new engine for {dialect.name}')

        return engine


def dispose_all_engines() -> None:
    """Dispose all engines in the registry.
    """
    with _engine_registry_lock:
        for engine in _engine_registry.values():
            engine.dispose()
        _engine_registry.clear()
        logger.debug('All database engines disposed')


atexit.register(dispose_all_engines)


def dumpsql(func):
    """Decorator for logging SQL statements, arguments and timing."""
    @wraps(func)
    def wrapper(self: 'Connection', sql: str, *args: Any, **kwargs: Any):
        start = time.time()
        logger.debug(f'SQL:\n{sql}\nargs: {args}')
        try:
            return func(self, sql, *args, **kwargs)
        except Exception:
            logger.error(f'Error with query:\nSQL:\n{sql}\nargs: {args}')
            raise
        finally:
            elapsed = time.time() - start
            self.addcall(elapsed)
            logger.debug(f'Query time: {elapsed:.4f}s')
    return wrapper


@dataclass(frozen=True, slots=True)
class ColumnDescriptor:
    """Result-set column name and driver type code."""
    name: str
    type_code: Any = None


class ResultSet:
    """Rows of an executed query.

    Iterating yields row tuples in the order the database returns them,
    fetched in chunks of `arraysize`. The result set owns its cursor and
    must be closed; it is a context manager.
    """

    def __init__(self, cursor: Any, arraysize: int = 100) -> None:
        self._cursor = cursor
        self.arraysize = arraysize
        self.columns = [ColumnDescriptor(d[0], d[1]) for d in (cursor.description or [])]
        self.closed = False

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def __iter__(self) -> Iterator[tuple]:
        while True:
            rows = self._cursor.fetchmany(self.arraysize)
            if not rows:
                return
            for row in rows:
                yield tuple(row)

    def column_names(self) -> list[str]:
        return [c.name for c in self.columns]

    def close(self) -> None:
        if not self.closed:
            self._cursor.close()
            self.closed = True


@dataclass
class ExecResult:
    """Outcome of a statement executed for its effect."""
    rowcount: int = -1
    lastrowid: Any = None
    returned: list[tuple] = field(default_factory=list)

    def last_insert_id(self) -> Any:
        """Id generated by the last inserted row.

        Taken from a RETURNING clause when present, else from the driver.
        """
        if self.returned:
            return self.returned[-1][0]
        return self.lastrowid

    def rows_affected(self) -> int:
        return self.rowcount


class Connection:
    """A named database handle with its dialect and entity schemas.

    Wraps either a SQLAlchemy connection or a preconfigured DBAPI
    connection. Statements are executed on DBAPI cursors; the dialect
    standardizes placeholders for the driver.
    """

    def __init__(self, name: str, dialect: Dialect, db: Any,
                 schemas: Mapping[str, Schema] | None = None) -> None:
        self.name = name
        self.dialect = dialect
        self.sa_connection = db if isinstance(db, sa.engine.Connection) else None
        self.dbapi_connection = get_raw_connection(db)
        self.schemas: Mapping[str, Schema] = MappingProxyType(dict(schemas or {}))
        self.calls = 0
        self.time = 0.0

    def __repr__(self) -> str:
        return f'Connection(name={self.name!r}, dialect={self.dialect.name!r})'

    def __enter__(self) -> Self:
        return self

    def __exit__(self, exc_type: type | None, exc_val: Exception | None,
                 exc_tb: Any | None) -> None:
        self.close()

    def addcall(self, elapsed: float) -> None:
        """Track execution statistics
        """
        self.time += elapsed
        self.calls += 1

    def get_schema(self, table: str) -> Schema | None:
        return self.schemas.get(table)

    def publish(self, schemas: Mapping[str, Schema]) -> None:
        """Attach the entity schemas owned by this connection.
        """
        for schema in schemas.values():
            schema.connection = self
            schema.dialect = self.dialect
        self.schemas = MappingProxyType(dict(schemas))

    @contextmanager
    def _cancellable(self, cancel: threading.Event | None):
        """Interrupt the driver if `cancel` is set while the block runs.
        """
        if cancel is None:
            yield
            return
        if cancel.is_set():
            raise QueryCancelled('Query cancelled before execution')

        done = threading.Event()

        def watch() -> None:
            while not done.wait(CANCEL_POLL_INTERVAL):
                if cancel.is_set():
                    self.dialect.interrupt(self.dbapi_connection)
                    return

        watcher = threading.Thread(target=watch, name=f'cancel-{self.name}', daemon=True)
        watcher.start()
        try:
            yield
        except Exception as exc:
            if cancel.is_set():
                raise QueryCancelled(f'Query cancelled: {exc}') from exc
            raise
        finally:
            done.set()
            watcher.join()

    def _execute_cursor(self, sql: str, args: tuple, cancel: threading.Event | None) -> Any:
        cursor = self.dbapi_connection.cursor()
        try:
            with self._cancellable(cancel):
                cursor.execute(self.dialect.standardize_sql(sql), args)
        except Exception:
            cursor.close()
            raise
        return cursor

    @dumpsql
    def execute(self, sql: str, *args: Any, cancel: threading.Event | None = None) -> ExecResult:
        """Execute a statement and return its affected row count and ids.

        Rows produced by a RETURNING clause are fetched into the result.
        """
        cursor = self._execute_cursor(sql, args, cancel)
        try:
            returned = [tuple(row) for row in cursor.fetchall()] if cursor.description else []
            result = ExecResult(rowcount=cursor.rowcount,
                                lastrowid=self.dialect.last_insert_id(cursor),
                                returned=returned)
        finally:
            cursor.close()
        logger.debug(f'Statement affected {result.rowcount} rows')
        return result

    @dumpsql
    def query(self, sql: str, *args: Any, cancel: threading.Event | None = None) -> ResultSet:
        """Execute a query and return its result set.
        """
        return ResultSet(self._execute_cursor(sql, args, cancel))

    def select(self, sql: str, *args: Any) -> list[dict[str, Any]]:
        """Execute a query and return rows as dictionaries.
        """
        from sqlentity.binder import bind_to_dicts
        return bind_to_dicts(self.query(sql, *args))

    def close(self) -> None:
        """Close the underlying connection.
        """
        if self.sa_connection is not None:
            self.sa_connection.close()
        elif self.dbapi_connection is not None:
            self.dbapi_connection.close()
        logger.debug(f'Closed connection {self.name}')


def connect(name: str, dialect: Dialect, connection_string: str | None = None,
            db: Any = None) -> Connection:
    """Open a Connection from a connection string or wrap an existing handle.

    Args:
        name: Registry name of the connection
        dialect: Dialect of the backend
        connection_string: Driver connection string, used when `db` is None
        db: A SQLAlchemy Connection, Engine or DBAPI connection

    Returns
        Connection with no schemas attached
    """
    if db is None:
        if connection_string is None:
            raise ConfigurationError(f'Connection {name!r} needs a connection_string or a db')
        db = get_engine(dialect, connection_string).connect()
    elif isinstance(db, Engine):
        db = db.connect()

    connection = Connection(name, dialect, db)
    dialect.configure_connection(connection.dbapi_connection)
    logger.debug(f'Opened connection {name} ({dialect.name})')
    return connection
