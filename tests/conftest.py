import pathlib
import site

import pytest
import sqlentity

HERE = pathlib.Path(pathlib.Path(__file__).resolve()).parent
site.addsitedir(HERE)


@pytest.fixture(autouse=True)
def reset_registry():
    """Close registered connections after each test to ensure test isolation."""
    yield
    sqlentity.close_all()


pytest_plugins = [
    'tests.fixtures.mocks',
    'tests.fixtures.sqlite',
]
