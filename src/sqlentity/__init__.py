"""
Entity mapping for PostgreSQL, MySQL and SQLite.

Declare entities as dataclasses deriving from `Entity`, register them
with `initialize`, then query and persist them:

    @dataclass
    class Comment(Entity):
        id: int = 0
        post_id: int = 0
        body: str = ''

        @classmethod
        def configure_entity(cls, e):
            e.table('comments').belongs_to(Post)

    initialize(ConnectionConfig(driver='sqlite', connection_string='app.db',
                                entities=[Post, Comment]))
    comments = has_many(post, Comment).all()
"""
from sqlentity.binder import Binder, bind, bind_to_dicts
from sqlentity.connection import Connection, ExecResult, ResultSet
from sqlentity.dialect import Dialect, Dialects, get_dialect
from sqlentity.entity import Entity, EntityConfigurator
from sqlentity.exceptions import BindError, BuilderError, ConfigurationError
from sqlentity.exceptions import ContractError, DatabaseError, DriverError
from sqlentity.exceptions import EmptyInListError, OperationError
from sqlentity.exceptions import QueryCancelled, ScanError
from sqlentity.field import FieldMetadata
from sqlentity.operations import delete, exec_raw, fill, find, insert, query
from sqlentity.operations import query_raw, save, update
from sqlentity.query import ASC, DESC, EQ, GE, GT, LE, LIKE, LT, NE, NOT_LIKE
from sqlentity.query import QueryBuilder, QueryKind, Raw
from sqlentity.registry import ConnectionConfig, close_all, get_connection
from sqlentity.registry import initialize, schema_for, schematic
from sqlentity.relations import BelongsTo, BelongsToConfig, BelongsToMany
from sqlentity.relations import BelongsToManyConfig, HasMany, HasManyConfig
from sqlentity.relations import HasOne, HasOneConfig
from sqlentity.schema import Schema
from sqlentity.traversal import add, belongs_to, belongs_to_many, has_many
from sqlentity.traversal import has_one
from sqlentity.types import Valuer

__version__ = '0.1.0'

__all__ = [
    # Entities and schemas
    'Entity',
    'EntityConfigurator',
    'FieldMetadata',
    'Schema',
    'Valuer',
    'HasMany',
    'HasManyConfig',
    'HasOne',
    'HasOneConfig',
    'BelongsTo',
    'BelongsToConfig',
    'BelongsToMany',
    'BelongsToManyConfig',
    # Connections
    'Connection',
    'ConnectionConfig',
    'Dialect',
    'Dialects',
    'ExecResult',
    'ResultSet',
    'close_all',
    'get_connection',
    'get_dialect',
    'initialize',
    'schema_for',
    'schematic',
    # Query building
    'QueryBuilder',
    'QueryKind',
    'Raw',
    'ASC',
    'DESC',
    'EQ',
    'GE',
    'GT',
    'LE',
    'LIKE',
    'LT',
    'NE',
    'NOT_LIKE',
    # Binding
    'Binder',
    'bind',
    'bind_to_dicts',
    # Operations
    'add',
    'belongs_to',
    'belongs_to_many',
    'delete',
    'exec_raw',
    'fill',
    'find',
    'has_many',
    'has_one',
    'insert',
    'query',
    'query_raw',
    'save',
    'update',
    # Exceptions
    'BindError',
    'BuilderError',
    'ConfigurationError',
    'ContractError',
    'DatabaseError',
    'DriverError',
    'EmptyInListError',
    'OperationError',
    'QueryCancelled',
    'ScanError',
]
