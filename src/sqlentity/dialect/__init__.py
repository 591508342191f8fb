"""
Dialect factory for per-backend SQL syntax.
"""
from functools import lru_cache

from sqlentity.dialect.base import _DIALECT_REGISTRY
from sqlentity.dialect.base import Dialect as Dialect
from sqlentity.dialect.base import register_dialect as register_dialect
from sqlentity.dialect.mysql import MySQLDialect as MySQLDialect
from sqlentity.dialect.postgres import PostgresDialect as PostgresDialect
from sqlentity.dialect.sqlite import SQLiteDialect as SQLiteDialect
from sqlentity.exceptions import ConfigurationError


@lru_cache(maxsize=8)
def _dialect_instance(dialect_cls: type[Dialect]) -> Dialect:
    """One shared instance per dialect class, whatever the driver alias."""
    return dialect_cls()


def _get_dialect(driver: str) -> Dialect:
    """Get cached dialect instance for a driver name."""
    if driver not in _DIALECT_REGISTRY:
        available = list(_DIALECT_REGISTRY.keys())
        raise ConfigurationError(f'No dialect matched driver {driver!r}. Available: {available}')
    return _dialect_instance(_DIALECT_REGISTRY[driver])


def get_dialect(driver: str | Dialect) -> Dialect:
    """Get the dialect for a driver name.

    Dialect instances are returned unchanged.
    """
    if isinstance(driver, Dialect):
        return driver
    return _get_dialect(str(driver).lower())


def get_available_drivers() -> list[str]:
    """Return list of registered driver names."""
    return list(_DIALECT_REGISTRY.keys())


class Dialects:
    """The shipped dialects.
    """
    MySQL = get_dialect('mysql')
    PostgreSQL = get_dialect('postgres')
    SQLite3 = get_dialect('sqlite3')


__all__ = [
    'Dialect',
    'Dialects',
    'MySQLDialect',
    'PostgresDialect',
    'SQLiteDialect',
    'get_available_drivers',
    'get_dialect',
    'register_dialect',
]
