"""Tests for dialect selection, placeholders and driver paramstyle conversion.
"""
import sqlite3

import pytest
from sqlentity import ConfigurationError, Dialects, get_dialect
from sqlentity.dialect import MySQLDialect, PostgresDialect, SQLiteDialect
from sqlentity.dialect import get_available_drivers
from sqlentity.dialect.base import count_markers, replace_markers
from sqlentity.dialect.base import to_format_paramstyle


class TestDialectSelection:
    """Tests for looking up dialects by driver name."""

    @pytest.mark.parametrize(('driver', 'expected'), [
        ('mysql', MySQLDialect),
        ('sqlite', SQLiteDialect),
        ('sqlite3', SQLiteDialect),
        ('postgres', PostgresDialect),
        ('postgresql', PostgresDialect),
        ('POSTGRES', PostgresDialect),
    ], ids=['mysql', 'sqlite', 'sqlite3', 'postgres', 'postgresql', 'uppercase'])
    def test_known_drivers(self, driver, expected):
        assert isinstance(get_dialect(driver), expected)

    def test_unknown_driver(self):
        with pytest.raises(ConfigurationError, match='oracle'):
            get_dialect('oracle')

    def test_dialect_instance_passes_through(self):
        assert get_dialect(Dialects.MySQL) is Dialects.MySQL

    def test_available_drivers(self):
        assert {'mysql', 'sqlite', 'sqlite3', 'postgres', 'postgresql'} <= set(get_available_drivers())

    def test_dialects_are_shared_values(self):
        assert get_dialect('sqlite') is get_dialect('sqlite')
        assert get_dialect('sqlite') == get_dialect('sqlite3')
        assert Dialects.MySQL != Dialects.SQLite3

    def test_dialects_are_immutable(self):
        with pytest.raises(AttributeError):
            Dialects.MySQL.placeholder_char = '$'


class TestPlaceholders:
    """Tests for placeholder generation."""

    @pytest.mark.parametrize(('dialect', 'expected'), [
        (Dialects.MySQL, ['?', '?', '?']),
        (Dialects.SQLite3, ['?', '?', '?']),
        (Dialects.PostgreSQL, ['$1', '$2', '$3']),
    ], ids=['mysql', 'sqlite', 'postgres'])
    def test_generate_placeholders(self, dialect, expected):
        assert dialect.generate_placeholders(3) == expected

    def test_generate_from_offset(self):
        assert Dialects.PostgreSQL.generate_placeholders(2, start=4) == ['$4', '$5']

    def test_generate_none(self):
        assert Dialects.PostgreSQL.generate_placeholders(0) == []

    def test_syntax_flags(self):
        assert Dialects.PostgreSQL.placeholder_char == '$'
        assert Dialects.PostgreSQL.include_index_in_placeholder
        assert not Dialects.MySQL.include_index_in_placeholder
        assert Dialects.MySQL.batch_insert_id_is_first
        assert not Dialects.SQLite3.batch_insert_id_is_first


class TestMarkers:
    """Tests for marker scanning outside string literals."""

    def test_count_skips_literals(self):
        assert count_markers("SELECT '?', \"$1\" FROM t WHERE a = ? AND b = $2") == 2

    def test_replace_in_order(self):
        numbers = iter(range(1, 10))
        sql, count = replace_markers('a = ? AND b = $7', lambda: f':{next(numbers)}')
        assert sql == 'a = :1 AND b = :2'
        assert count == 2

    def test_escaped_quote_in_literal(self):
        assert count_markers("WHERE name = 'it''s ?' AND id = ?") == 1


class TestStandardizeSql:
    """Tests for converting emitted SQL to the driver paramstyle."""

    def test_postgres_to_format(self):
        sql = 'SELECT * FROM users WHERE age = $1 AND name = $2'
        assert Dialects.PostgreSQL.standardize_sql(sql) == 'SELECT * FROM users WHERE age = %s AND name = %s'

    def test_mysql_to_format(self):
        assert Dialects.MySQL.standardize_sql('DELETE FROM t WHERE id IN (?,?)') == 'DELETE FROM t WHERE id IN (%s,%s)'

    def test_sqlite_unchanged(self):
        sql = "SELECT * FROM t WHERE a LIKE '%x%' AND b = ?"
        assert Dialects.SQLite3.standardize_sql(sql) == sql

    def test_percent_is_escaped(self):
        sql = "SELECT * FROM t WHERE a LIKE 'x%' AND b = ? AND c % 2 = 0"
        assert to_format_paramstyle(sql) == "SELECT * FROM t WHERE a LIKE 'x%%' AND b = %s AND c %% 2 = 0"

    def test_literal_markers_kept(self):
        assert to_format_paramstyle("SELECT '?' WHERE a = ?") == "SELECT '?' WHERE a = %s"


class TestConnectionUrls:
    """Tests for SQLAlchemy connection URL construction."""

    def test_sqlite_path(self):
        assert Dialects.SQLite3.build_connection_url(':memory:') == 'sqlite:///:memory:'
        assert Dialects.SQLite3.build_connection_url('sqlite:///app.db') == 'sqlite:///app.db'

    def test_postgres_url(self):
        url = Dialects.PostgreSQL.build_connection_url('postgres://user:pw@localhost:5432/app')
        assert url.drivername == 'postgresql+psycopg'
        assert url.database == 'app'
        assert Dialects.PostgreSQL.get_engine_kwargs('postgres://user:pw@localhost:5432/app') == {}

    def test_postgres_keyword_dsn(self):
        dsn = 'host=localhost dbname=app'
        assert Dialects.PostgreSQL.build_connection_url(dsn) == 'postgresql+psycopg://'
        assert 'creator' in Dialects.PostgreSQL.get_engine_kwargs(dsn)

    def test_mysql_url(self):
        url = Dialects.MySQL.build_connection_url('user:pw@localhost:3306/app')
        assert url.drivername == 'mysql+pymysql'
        assert url.host == 'localhost'


class TestSQLiteConnection:
    """Tests for raw SQLite connection configuration."""

    def test_configure_connection(self):
        raw = sqlite3.connect(':memory:')
        try:
            Dialects.SQLite3.configure_connection(raw)
            assert raw.isolation_level is None
            assert raw.execute('PRAGMA foreign_keys').fetchone()[0] == 1
        finally:
            raw.close()
