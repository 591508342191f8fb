"""
SQLite dialect.

SQLite uses the `qmark` paramstyle natively, so emitted SQL is passed to
sqlite3 unchanged. The connection is switched to autocommit and adapters
are registered for values sqlite3 cannot store natively.
"""
import datetime
import decimal
import logging
import sqlite3
from typing import Any

from sqlentity.dialect.base import Dialect, register_dialect

logger = logging.getLogger(__name__)


def _adapt_datetime(value: datetime.datetime) -> str:
    return value.isoformat(' ')


def _adapt_date(value: datetime.date) -> str:
    return value.isoformat()


@register_dialect('sqlite', 'sqlite3')
class SQLiteDialect(Dialect):
    """SQLite syntax and sqlite3 driver behavior.
    """

    name = 'sqlite'
    placeholder_char = '?'
    include_index_in_placeholder = False
    supports_returning = sqlite3.sqlite_version_info >= (3, 35, 0)

    def build_connection_url(self, connection_string: str) -> Any:
        """Build the SQLAlchemy connection URL for SQLite."""
        if connection_string.startswith('sqlite:'):
            return connection_string
        return f'sqlite:///{connection_string}'

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure connection settings for SQLite.
        """
        self.register_type_adapters(raw_conn)
        raw_conn.execute('PRAGMA foreign_keys = ON')
        raw_conn.isolation_level = None

    def register_type_adapters(self, raw_conn: Any) -> None:
        """Register adapters for values sqlite3 cannot store natively.

        Dates are stored as ISO-8601 text and parsed back by the binder.
        """
        sqlite3.register_adapter(datetime.datetime, _adapt_datetime)
        sqlite3.register_adapter(datetime.date, _adapt_date)
        sqlite3.register_adapter(decimal.Decimal, str)

    def interrupt(self, raw_conn: Any) -> None:
        """Abort the query running on the connection.
        """
        logger.debug('Interrupting running SQLite statement')
        raw_conn.interrupt()
