"""Tests for writing generated keys back into inserted entities.
"""
import pytest
from sqlentity import Dialects
from sqlentity.connection import ExecResult
from sqlentity.operations import _assign_generated_ids
from sqlentity.schema import build_schema

from tests.fixtures.entities import Post


class TestGeneratedIds:
    """Tests for matching generated keys to entities."""

    def test_returning_rows_in_any_order(self):
        schema = build_schema(Post, Dialects.SQLite3)
        posts = [Post(body_text='a'), Post(body_text='b'), Post(body_text='c')]
        _assign_generated_ids(schema, posts, ExecResult(rowcount=3, returned=[(7,), (5,), (6,)]))
        assert [p.id for p in posts] == [5, 6, 7]

    @pytest.mark.parametrize(('dialect', 'lastrowid', 'expected'), [
        (Dialects.SQLite3, 12, [11, 12]),
        (Dialects.MySQL, 11, [11, 12]),
    ], ids=['last_id_reported', 'first_id_reported'])
    def test_lastrowid(self, dialect, lastrowid, expected):
        schema = build_schema(Post, dialect)
        posts = [Post(), Post()]
        _assign_generated_ids(schema, posts, ExecResult(rowcount=2, lastrowid=lastrowid))
        assert [p.id for p in posts] == expected

    def test_no_id_reported(self):
        schema = build_schema(Post, Dialects.MySQL)
        post = Post()
        _assign_generated_ids(schema, [post], ExecResult(rowcount=1))
        assert post.id == 0
