"""Tests for the driver contract objects and the SQL logging decorator.
"""
import logging

import pytest
from sqlentity import EntityConfigurator
from sqlentity.connection import ExecResult, ResultSet, dumpsql
from sqlentity.relations import BelongsToConfig, BelongsToManyConfig

from tests.fixtures.entities import Category, Comment, Post


class FakeCursor:
    """DBAPI cursor over fixed rows, fetched with fetchmany."""

    def __init__(self, description, rows):
        self.description = description
        self.rows = list(rows)
        self.fetch_sizes = []
        self.closed = False

    def fetchmany(self, size):
        self.fetch_sizes.append(size)
        batch, self.rows = self.rows[:size], self.rows[size:]
        return batch

    def close(self):
        self.closed = True


class TestResultSet:
    """Tests for result set iteration."""

    def test_columns(self):
        rs = ResultSet(FakeCursor([('id', 23), ('name', 25)], []))
        assert rs.column_names() == ['id', 'name']
        assert rs.columns[0].type_code == 23

    def test_rows_fetched_in_chunks(self):
        cursor = FakeCursor([('id', None)], [[1], [2], [3]])
        rs = ResultSet(cursor, arraysize=2)
        assert list(rs) == [(1,), (2,), (3,)]
        assert cursor.fetch_sizes == [2, 2, 2]

    def test_close_once(self):
        cursor = FakeCursor(None, [])
        with ResultSet(cursor) as rs:
            assert rs.columns == []
        assert cursor.closed
        assert rs.closed


class TestExecResult:
    """Tests for statement results."""

    def test_returning_wins(self):
        result = ExecResult(rowcount=2, lastrowid=9, returned=[(4,), (5,)])
        assert result.last_insert_id() == 5
        assert result.rows_affected() == 2

    def test_driver_lastrowid(self):
        assert ExecResult(rowcount=1, lastrowid=7).last_insert_id() == 7


class TestDumpSql:
    """Tests for SQL logging around execution."""

    class Recorder:
        def __init__(self):
            self.calls = 0

        def addcall(self, elapsed):
            self.calls += 1

        @dumpsql
        def execute(self, sql, *args):
            if sql == 'fail':
                raise RuntimeError('boom')
            return len(args)

    def test_logs_and_counts(self, caplog):
        recorder = self.Recorder()
        with caplog.at_level(logging.DEBUG, logger='sqlentity.connection'):
            assert recorder.execute('SELECT ?', 1) == 1
        assert recorder.calls == 1
        assert 'SELECT ?' in caplog.text

    def test_errors_are_logged_and_raised(self, caplog):
        recorder = self.Recorder()
        with caplog.at_level(logging.ERROR, logger='sqlentity.connection'):
            with pytest.raises(RuntimeError):
                recorder.execute('fail')
        assert recorder.calls == 1
        assert 'Error with query' in caplog.text


class TestEntityConfigurator:
    """Tests for the fluent declaration API."""

    def test_declarations(self):
        e = EntityConfigurator()
        e.table('posts').connection('blog') \
         .has_many(Comment) \
         .belongs_to_many(Category, BelongsToManyConfig(intermediate_table='post_categories')) \
         .fields().field('body_text').column_name('body').also() \
         .field('slug').is_primary_key().field('cache').is_virtual()
        assert (e.resolved_table, e.resolved_connection) == ('posts', 'blog')
        assert [d.other for d in e.relationships] == [Comment, Category]
        overrides = e.field_overrides
        assert overrides['body_text'].column == 'body'
        assert overrides['slug'].is_pk
        assert overrides['cache'].is_virtual

    def test_relate_accepts_instances(self):
        e = EntityConfigurator().belongs_to(Post(), BelongsToConfig(owner_table='articles'))
        assert e.relationships[0].other is Post
        assert e.relationships[0].config.owner_table == 'articles'

    def test_fields_end_returns_entity(self):
        e = EntityConfigurator()
        assert e.fields().end() is e
        assert e.resolved_connection == 'default'
