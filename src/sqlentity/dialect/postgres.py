"""
PostgreSQL dialect.

Placeholders are rendered `$1, $2, ...` in strict left-to-right order. The
psycopg driver uses the `format` paramstyle, so emitted SQL is standardized
to `%s` markers just before execution.
"""
import functools
import logging
from typing import Any

import psycopg
from sqlalchemy.engine import make_url

from sqlentity.dialect.base import Dialect, register_dialect
from sqlentity.dialect.base import to_format_paramstyle

logger = logging.getLogger(__name__)


@register_dialect('postgres', 'postgresql')
class PostgresDialect(Dialect):
    """PostgreSQL syntax and psycopg driver behavior.
    """

    name = 'postgresql'
    placeholder_char = '$'
    include_index_in_placeholder = True
    supports_returning = True

    def standardize_sql(self, sql: str) -> str:
        """Convert `$n` placeholders to psycopg `%s` markers.
        """
        return to_format_paramstyle(sql)

    def build_connection_url(self, connection_string: str) -> Any:
        """Build the SQLAlchemy connection URL for PostgreSQL.

        URLs (`postgres://`, `postgresql://`) are rewritten to the psycopg
        driver. A libpq keyword DSN is handed to psycopg by an engine
        creator instead, see `get_engine_kwargs`.
        """
        if '://' in connection_string:
            return make_url(connection_string).set(drivername='postgresql+psycopg')
        return 'postgresql+psycopg://'

    def get_engine_kwargs(self, connection_string: str) -> dict[str, Any]:
        """Return SQLAlchemy create_engine kwargs for PostgreSQL."""
        if '://' in connection_string:
            return {}
        return {'creator': functools.partial(psycopg.connect, connection_string)}

    def configure_connection(self, raw_conn: Any) -> None:
        """Enable autocommit on a psycopg connection.
        """
        if not raw_conn.autocommit:
            raw_conn.rollback()
            raw_conn.autocommit = True

    def interrupt(self, raw_conn: Any) -> None:
        """Cancel the running statement on the server.
        """
        logger.debug('Cancelling running PostgreSQL statement')
        raw_conn.cancel()

    def last_insert_id(self, cursor: Any) -> Any:
        """psycopg has no lastrowid; ids come back through RETURNING."""
        return None
