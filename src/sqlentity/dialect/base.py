"""
Base dialect interface for per-backend SQL syntax and driver behavior.

A dialect is a value object holding the syntactic choices of one backend:
the placeholder character, whether placeholders carry a 1-based position,
and how the SQL emitted by the query builder is handed to the DBAPI driver.

Concrete dialects register themselves under one or more driver names with
the `register_dialect` decorator.
"""
import logging
import re
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

# Registry of driver name -> dialect class
# Defined here to avoid circular imports (concrete dialects import from base)
_DIALECT_REGISTRY: dict[str, type['Dialect']] = {}

# Markers recognized in emitted SQL and raw fragments. String literals are
# matched first so markers inside them are left untouched.
_TOKENIZE = re.compile(r"""
    (?P<string>'(?:[^']|'')*'|"(?:[^"]|"")*")
    |(?P<marker>\$\d+|\?)
    |(?P<percent>%)
""", re.VERBOSE)


def register_dialect(*driver_names: str):
    """Decorator to register a dialect class for one or more driver names.

    Usage:
        @register_dialect('postgres', 'postgresql')
        class PostgresDialect(Dialect):
            ...
    """
    def decorator(cls: type['Dialect']) -> type['Dialect']:
        for driver_name in driver_names:
            _DIALECT_REGISTRY[driver_name] = cls
        return cls
    return decorator


def replace_markers(sql: str, replacement: Callable[[], str]) -> tuple[str, int]:
    """Replace every `?` or `$n` marker outside string literals.

    Args:
        sql: SQL text or raw fragment
        replacement: Called once per marker, in left-to-right order

    Returns
        Tuple of the rewritten SQL and the number of markers replaced
    """
    count = 0

    def substitute(match: re.Match) -> str:
        nonlocal count
        if match.group('marker'):
            count += 1
            return replacement()
        return match.group(0)

    return _TOKENIZE.sub(substitute, sql), count


def count_markers(sql: str) -> int:
    """Count `?` or `$n` markers outside string literals.
    """
    return sum(1 for m in _TOKENIZE.finditer(sql) if m.group('marker'))


def to_format_paramstyle(sql: str) -> str:
    """Convert `?`/`$n` markers to `%s` and escape literal percent signs.

    Used for drivers with the `format` paramstyle (psycopg, PyMySQL).
    Placeholders are already in argument order when emitted by the builder,
    so positional numbers can be dropped.
    """
    def substitute(match: re.Match) -> str:
        if match.group('marker'):
            return '%s'
        if match.group('percent'):
            return '%%'
        return match.group('string').replace('%', '%%')

    return _TOKENIZE.sub(substitute, sql)


class Dialect:
    """Per-backend SQL syntax policy.

    Subclasses set the class attributes and override the driver hooks they
    need. Instances are immutable and compare equal by name.
    """

    name: str = ''
    placeholder_char: str = '?'
    include_index_in_placeholder: bool = False
    supports_returning: bool = False
    # Multi-row INSERT reports the id of the first row rather than the last
    batch_insert_id_is_first: bool = False

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f'{type(self).__name__} is immutable')

    def __eq__(self, other: object) -> bool:
        return isinstance(other, Dialect) and other.name == self.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f'{type(self).__name__}(name={self.name!r})'

    def placeholder(self, index: int) -> str:
        """Render the placeholder for the 1-based argument position `index`.
        """
        if self.include_index_in_placeholder:
            return f'{self.placeholder_char}{index}'
        return self.placeholder_char

    def generate_placeholders(self, n: int, start: int = 1) -> list[str]:
        """Produce exactly `n` placeholder tokens numbered from `start`.

        >>> from sqlentity.dialect import Dialects
        >>> Dialects.PostgreSQL.generate_placeholders(3)
        ['$1', '$2', '$3']
        >>> Dialects.MySQL.generate_placeholders(2)
        ['?', '?']
        """
        return [self.placeholder(i) for i in range(start, start + n)]

    def standardize_sql(self, sql: str) -> str:
        """Convert emitted placeholders to the driver's paramstyle.

        Default implementation is a no-op, suitable for `qmark` drivers.
        """
        return sql

    def build_connection_url(self, connection_string: str) -> Any:
        """Build the SQLAlchemy connection URL for a connection string.
        """
        raise NotImplementedError

    def get_engine_kwargs(self, connection_string: str) -> dict[str, Any]:
        """Return additional SQLAlchemy create_engine kwargs.
        """
        return {}

    def configure_connection(self, raw_conn: Any) -> None:
        """Configure a raw DBAPI connection (autocommit, adapters).
        """

    def interrupt(self, raw_conn: Any) -> None:
        """Abort the statement currently running on `raw_conn`.
        """
        logger.warning(f'Cancellation is not supported by the {self.name} driver')

    def last_insert_id(self, cursor: Any) -> Any:
        """Return the id generated by the last INSERT on `cursor`.
        """
        return getattr(cursor, 'lastrowid', None)
