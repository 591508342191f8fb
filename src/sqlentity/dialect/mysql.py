"""
MySQL dialect.

Placeholders are rendered as bare `?`. The PyMySQL driver loaded by
SQLAlchemy uses the `format` paramstyle, so SQL is standardized to `%s`
markers before execution.
"""
import logging
from typing import Any

from sqlalchemy.engine import make_url

from sqlentity.dialect.base import Dialect, register_dialect
from sqlentity.dialect.base import to_format_paramstyle

logger = logging.getLogger(__name__)


@register_dialect('mysql')
class MySQLDialect(Dialect):
    """MySQL syntax and PyMySQL driver behavior.
    """

    name = 'mysql'
    placeholder_char = '?'
    include_index_in_placeholder = False
    supports_returning = False
    batch_insert_id_is_first = True

    def standardize_sql(self, sql: str) -> str:
        """Convert `?` placeholders to PyMySQL `%s` markers.
        """
        return to_format_paramstyle(sql)

    def build_connection_url(self, connection_string: str) -> Any:
        """Build the SQLAlchemy connection URL for MySQL.

        Accepts either a full URL or the part after `mysql://`
        (`user:password@host:port/database`).
        """
        if '://' not in connection_string:
            connection_string = f'mysql://{connection_string}'
        return make_url(connection_string).set(drivername='mysql+pymysql')

    def configure_connection(self, raw_conn: Any) -> None:
        """Enable autocommit for MySQL.
        """
        raw_conn.autocommit(True)
