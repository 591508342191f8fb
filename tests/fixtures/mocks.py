"""
Fake driver objects for binder and builder tests.

Provides an in-memory result set so row binding can be tested without a
database connection.

Usage:
    def test_bind(fake_result_set):
        rs = fake_result_set(['id', 'name'], [(1, 'amirreza')])
"""
import pytest
from sqlentity.connection import ColumnDescriptor


class FakeResultSet:
    """Result set over a list of rows.

    Args:
        columns: Column names in result order
        rows: Row tuples
        fail_after: Raise while fetching the row at this index
    """

    def __init__(self, columns, rows, fail_after=None):
        self.columns = [ColumnDescriptor(name) for name in columns]
        self._rows = list(rows)
        self.fail_after = fail_after
        self.closed = False
        self.fetched = 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __iter__(self):
        for i, row in enumerate(self._rows):
            if self.fail_after is not None and i >= self.fail_after:
                raise RuntimeError('connection lost')
            self.fetched += 1
            yield tuple(row)

    def column_names(self):
        return [c.name for c in self.columns]

    def close(self):
        self.closed = True


@pytest.fixture
def fake_result_set():
    """
    Fixture that provides a factory for FakeResultSet instances.

    Returns
        Factory taking (columns, rows, fail_after=None)
    """
    return FakeResultSet
