"""
Integration tests for typed persistence operations with SQLite.
"""
import datetime
import decimal

import pytest
import sqlentity as orm
from sqlentity import DriverError, OperationError

from tests.fixtures.entities import Article, Comment, Post, Status, Tags, Timestamps
from tests.fixtures.entities import User

T1 = datetime.datetime(2022, 1, 2, 3, 4, 5)


class TestInsert:
    """Test inserting entities."""

    def test_insert_assigns_id(self, sqlite_conn):
        post = Post(body_text='hello')
        result = orm.insert(post)
        assert post.id == 1
        assert result.last_insert_id() == 1

    def test_round_trip(self, sqlite_conn):
        """A freshly inserted entity reads back equal on every column."""
        article = Article(title='orm', status=Status.PUBLISHED, price=decimal.Decimal('9.99'),
                          tags=Tags(['python', 'sql']), published_at=T1, email='author@example.com')
        orm.insert(article)
        assert orm.find(Article, article.id) == article

    def test_batch_insert(self, sqlite_conn):
        posts = [Post(body_text='a'), Post(body_text='b'), Post(body_text='c')]
        orm.insert(*posts)
        assert [p.id for p in posts] == [1, 2, 3]
        assert [p.body_text for p in orm.query(Post).order_by('id').all()] == ['a', 'b', 'c']

    def test_explicit_primary_key(self, sqlite_conn):
        orm.insert(Post(id=10, body_text='ten'))
        assert orm.find(Post, 10).body_text == 'ten'

    def test_partly_keyed_batch_rejected(self, sqlite_conn):
        keyed = Post(id=10, body_text='ten')
        with pytest.raises(OperationError, match='primary key'):
            orm.insert(keyed, Post(body_text='generated'))
        assert keyed.id == 10
        assert orm.query(Post).count() == 0

    def test_mixed_types_rejected(self, sqlite_conn):
        with pytest.raises(OperationError):
            orm.insert(Post(), Comment())
        assert orm.query(Post).count() == 0

    def test_nothing_to_insert(self, sqlite_conn):
        with pytest.raises(OperationError):
            orm.insert()

    def test_driver_errors_surface(self, sqlite_conn):
        """Foreign keys are enforced and the driver error is not wrapped."""
        with pytest.raises(DriverError):
            orm.insert(Comment(post_id=999, body='orphan'))


class TestFindAndFill:
    """Test loading entities by primary key."""

    def test_find_missing(self, sqlite_conn):
        assert orm.find(Post, 42) is None

    def test_fill_reloads_in_place(self, sqlite_conn):
        post = Post(body_text='stored')
        orm.insert(post)
        post.body_text = 'local change'
        assert orm.fill(post) is post
        assert post.body_text == 'stored'

    def test_fill_missing_row(self, sqlite_conn):
        with pytest.raises(OperationError):
            orm.fill(Post(id=5))

    def test_nested_columns_bind_from_raw_query(self, sqlite_conn):
        sqlite_conn.execute(
            "INSERT INTO users (name, created_at, updated_at) VALUES ('amirreza', '2022-01-02 03:04:05', NULL)")
        users = orm.query_raw(User, 'SELECT * FROM users WHERE name = ?', 'amirreza')
        assert len(users) == 1
        assert users[0].timestamps == Timestamps(created_at=T1)


class TestUpdateSaveDelete:
    """Test writing and removing existing rows."""

    def test_update(self, sqlite_conn):
        post = Post(body_text='before')
        orm.insert(post)
        post.body_text = 'after'
        assert orm.update(post).rows_affected() == 1
        assert orm.find(Post, post.id).body_text == 'after'

    def test_save_inserts_then_updates(self, sqlite_conn):
        post = Post(body_text='draft')
        orm.save(post)
        assert post.id == 1
        post.body_text = 'final'
        orm.save(post)
        assert orm.query(Post).count() == 1
        assert orm.find(Post, 1).body_text == 'final'

    def test_delete(self, sqlite_conn):
        post = Post(body_text='bye')
        orm.insert(post)
        assert orm.delete(post).rows_affected() == 1
        assert orm.find(Post, post.id) is None

    def test_exec_raw(self, sqlite_conn):
        orm.insert(Post(body_text='a'), Post(body_text='b'))
        result = orm.exec_raw(Post, 'UPDATE posts SET body = ? WHERE id > ?', 'z', 0)
        assert result.rows_affected() == 2
        assert {p.body_text for p in orm.query(Post).all()} == {'z'}
