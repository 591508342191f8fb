"""Low-level naming and connection utilities with no internal dependencies.

These helpers are safe to import from any module of the package without
circular dependency concerns.
"""
import logging
from typing import Any

import inflection

logger = logging.getLogger(__name__)


def snake_case(name: str) -> str:
    """Convert an identifier to snake_case.

    >>> snake_case('BodyText')
    'body_text'
    >>> snake_case('PostID')
    'post_id'
    >>> snake_case('HTTPServer')
    'http_server'
    >>> snake_case('created_at')
    'created_at'
    """
    return inflection.underscore(name.strip().replace(' ', '_'))


def singular(word: str) -> str:
    """Return the singular form of a (table) name.

    Only the trailing word is inflected.

    >>> singular('posts')
    'post'
    >>> singular('categories')
    'category'
    >>> singular('header_pictures')
    'header_picture'
    >>> singular('movies')
    'movie'
    """
    return inflection.singularize(word)


def get_raw_connection(connection: Any) -> Any:
    """Extract the raw DBAPI connection from a SQLAlchemy wrapper.
    """
    raw_conn = connection
    if hasattr(raw_conn, 'connection') and hasattr(raw_conn, 'engine'):
        raw_conn = raw_conn.connection
    if hasattr(raw_conn, 'dbapi_connection'):
        raw_conn = raw_conn.dbapi_connection
    elif hasattr(raw_conn, 'driver_connection'):
        raw_conn = raw_conn.driver_connection
    return raw_conn


if __name__ == '__main__':
    __import__('doctest').testmod(optionflags=4 | 8 | 32)
