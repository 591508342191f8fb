"""
ORM exception classes.
"""
import sqlite3

import psycopg
import sqlalchemy.exc


class DatabaseError(Exception):
    """Base class for all sqlentity errors.
    """


class ConfigurationError(DatabaseError):
    """Invalid entity, connection or relationship configuration.

    Raised for a missing table name, an unknown driver, duplicate column
    names and missing relationship descriptors.
    """


class BuilderError(DatabaseError):
    """Incoherent query builder state.
    """


class OperationError(DatabaseError):
    """An operation cannot run against the given entity or arguments.
    """


class EmptyInListError(BuilderError, OperationError):
    """An IN predicate was given zero values.
    """


class BindError(DatabaseError):
    """Error while iterating a result set during row binding.
    """

    def __init__(self, message: str, column: str | None = None) -> None:
        super().__init__(message)
        self.column = column


class ScanError(BindError):
    """A column value cannot be converted to the declared field type.
    """


class ContractError(BindError):
    """The binder output handle is not a record or a list of records.
    """


class QueryCancelled(OperationError):
    """Execution or binding stopped because the cancel signal was set.
    """


DriverError = (
    psycopg.Error,                   # Postgres driver errors
    sqlite3.Error,                   # SQLite driver errors
    sqlalchemy.exc.DBAPIError,       # Errors wrapped by SQLAlchemy
)

IntegrityError = (
    psycopg.IntegrityError,
    sqlite3.IntegrityError,
)

OperationalError = (
    psycopg.OperationalError,
    sqlite3.OperationalError,
)

__all__ = [
    'DatabaseError',
    'ConfigurationError',
    'BuilderError',
    'OperationError',
    'EmptyInListError',
    'BindError',
    'ScanError',
    'ContractError',
    'QueryCancelled',
    'DriverError',
    'IntegrityError',
    'OperationalError',
]
