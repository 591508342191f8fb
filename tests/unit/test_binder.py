"""Tests for reflective row binding against an in-memory result set.
"""
import datetime
import decimal
import threading
from dataclasses import dataclass, field

import pytest
from sqlentity import BindError, ContractError, Dialects, QueryCancelled, ScanError
from sqlentity import bind, bind_to_dicts
from sqlentity.binder import Binder
from sqlentity.schema import build_schema

from tests.fixtures.entities import Article, Post, Status, Tags, Timestamps, User

T1 = datetime.datetime(2022, 1, 2, 3, 4, 5)
T2 = datetime.datetime(2022, 2, 3, 4, 5, 6)


class TestBindSingle:
    """Tests for binding into a single record."""

    def test_nested_record(self, fake_result_set):
        """Embedded record fields are scanned by their own column names."""
        rs = fake_result_set(['id', 'name', 'created_at', 'updated_at', 'deleted_at'],
                             [(1, 'amirreza', T1, T2, None)])
        user = User()
        assert bind(rs, user) == 1
        assert user.id == 1
        assert user.name == 'amirreza'
        assert user.timestamps == Timestamps(created_at=T1, updated_at=T2, deleted_at=None)
        assert rs.closed

    def test_nested_reference_is_allocated(self, fake_result_set):
        @dataclass
        class Audit:
            created_at: datetime.datetime | None = None

        @dataclass
        class Row:
            id: int = 0
            audit: Audit | None = None

        row = Row()
        bind(fake_result_set(['id', 'created_at'], [(5, '2022-01-02 03:04:05')]), row)
        assert row.audit == Audit(created_at=T1)

    def test_uncovered_fields_keep_defaults(self, fake_result_set):
        user = User(name='unchanged')
        bind(fake_result_set(['id'], [(7,)]), user)
        assert user.id == 7
        assert user.name == 'unchanged'
        assert user.timestamps == Timestamps()

    def test_unknown_columns_are_skipped(self, fake_result_set):
        user = User()
        bind(fake_result_set(['id', 'nickname', 'name'], [(1, 'ami', 'amirreza')]), user)
        assert (user.id, user.name) == (1, 'amirreza')

    def test_last_row_wins(self, fake_result_set):
        user = User()
        assert bind(fake_result_set(['id', 'name'], [(1, 'a'), (2, 'b')]), user) == 2
        assert (user.id, user.name) == (2, 'b')

    def test_no_rows(self, fake_result_set):
        user = User(name='x')
        assert bind(fake_result_set(['id', 'name'], []), user) == 0
        assert user.name == 'x'

    def test_schema_column_names(self, fake_result_set):
        """Column overrides from the schema are used for the root entity."""
        schema = build_schema(Post, Dialects.SQLite3)
        post = Post()
        bind(fake_result_set(['id', 'body'], [(1, 'hello')]), post, schema=schema)
        assert post.body_text == 'hello'

    def test_fallback_reads_configurator(self, fake_result_set):
        post = Post()
        bind(fake_result_set(['id', 'body'], [(1, 'hello')]), post)
        assert post.body_text == 'hello'

    def test_virtual_field_is_not_bound(self, fake_result_set):
        post = Post()
        bind(fake_result_set(['id', 'comments'], [(1, 'junk')]), post)
        assert post.comments == []


class TestBindMany:
    """Tests for binding into a list."""

    def test_rows_in_order(self, fake_result_set):
        users = []
        count = Binder(User).bind(fake_result_set(['id', 'name'], [(1, 'amirreza'), (2, 'milad')]), users)
        assert count == 2
        assert [u.name for u in users] == ['amirreza', 'milad']
        assert users[0] is not users[1]
        assert users[0].timestamps is not users[1].timestamps

    def test_appends_to_existing(self, fake_result_set):
        users = [User(name='existing')]
        bind(fake_result_set(['id', 'name'], [(1, 'new')]), users, entity=User)
        assert [u.name for u in users] == ['existing', 'new']

    def test_list_needs_entity(self, fake_result_set):
        rs = fake_result_set(['id'], [(1,)])
        with pytest.raises(ContractError):
            bind(rs, [])
        assert rs.closed


class TestConversion:
    """Tests for converting driver values to field types."""

    def test_declared_types(self, fake_result_set):
        article = Article()
        rs = fake_result_set(
            ['id', 'title', 'status', 'price', 'tags', 'published_at', 'contact_email'],
            [(1, b'title', 'published', '9.99', 'a,b', '2022-01-02T03:04:05', 'x@y.z')])
        bind(rs, article)
        assert article.title == 'title'
        assert article.status is Status.PUBLISHED
        assert article.price == decimal.Decimal('9.99')
        assert article.tags == Tags(['a', 'b'])
        assert article.published_at == T1
        assert article.email == 'x@y.z'

    def test_null_into_optional(self, fake_result_set):
        article = Article(published_at=T1)
        bind(fake_result_set(['published_at'], [(None,)]), article)
        assert article.published_at is None

    def test_null_into_required_field(self, fake_result_set):
        with pytest.raises(ScanError) as excinfo:
            bind(fake_result_set(['id', 'name'], [(1, None)]), User())
        assert excinfo.value.column == 'name'

    def test_type_mismatch(self, fake_result_set):
        with pytest.raises(ScanError, match='id'):
            bind(fake_result_set(['id'], [('not a number',)]), User())

    def test_bad_enum_value(self, fake_result_set):
        with pytest.raises(ScanError):
            bind(fake_result_set(['status'], [('archived',)]), Article())

    def test_whole_floats_scan_into_int(self, fake_result_set):
        user = User()
        bind(fake_result_set(['id'], [(3.0,)]), user)
        assert user.id == 3


class TestContract:
    """Tests for output handle validation and failures while reading."""

    @pytest.mark.parametrize('output', [
        None,
        42,
        {'id': 1},
        User,
    ], ids=['none', 'int', 'dict', 'class'])
    def test_invalid_output(self, fake_result_set, output):
        rs = fake_result_set(['id'], [(1,)])
        with pytest.raises(ContractError):
            Binder(User).bind(rs, output)
        assert rs.closed

    def test_unallocatable_entity(self, fake_result_set):
        @dataclass
        class NoDefaults:
            id: int
            name: str = ''

        with pytest.raises(ContractError):
            Binder(NoDefaults).bind(fake_result_set(['id'], [(1,)]), [])

    def test_iteration_error(self, fake_result_set):
        users = []
        rs = fake_result_set(['id', 'name'], [(1, 'a'), (2, 'b')], fail_after=1)
        with pytest.raises(BindError, match='connection lost'):
            Binder(User).bind(rs, users)
        assert len(users) == 1
        assert rs.closed

    def test_cancel_between_rows(self, fake_result_set):
        cancel = threading.Event()
        cancel.set()
        rs = fake_result_set(['id'], [(1,), (2,)])
        with pytest.raises(QueryCancelled):
            Binder(User).bind(rs, [], cancel=cancel)
        assert rs.fetched == 0

    def test_first_field_keeps_shared_column(self, fake_result_set):
        """A column claimed by the outer record is not rebound by a nested one."""
        @dataclass
        class Meta:
            id: int = 0
            note: str = ''

        @dataclass
        class Row:
            id: int = 0
            meta: Meta = field(default_factory=Meta)

        row = Row()
        bind(fake_result_set(['id', 'note'], [(4, 'n')]), row)
        assert row.id == 4
        assert row.meta == Meta(id=0, note='n')


def test_bind_to_dicts(fake_result_set):
    rs = fake_result_set(['id', 'name'], [(1, 'a'), (2, 'b')])
    assert bind_to_dicts(rs) == [{'id': 1, 'name': 'a'}, {'id': 2, 'name': 'b'}]
    assert rs.closed
