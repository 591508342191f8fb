"""
Process-wide connection registry.

`initialize` opens one Connection per config, builds the schemas of its
entities and publishes everything at once. Readers afterwards see an
immutable snapshot:

    initialize(ConnectionConfig(driver='sqlite', connection_string=':memory:',
                                entities=[Post, Comment]))
    conn = get_connection()
    schema = schema_for(Post)
"""
import atexit
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from sqlentity.connection import Connection, connect
from sqlentity.dialect import Dialect, get_dialect
from sqlentity.entity import DEFAULT_CONNECTION
from sqlentity.exceptions import ConfigurationError
from sqlentity.schema import Schema, build_schema, resolve_relationships

__all__ = [
    'ConnectionConfig',
    'close_all',
    'get_connection',
    'initialize',
    'schema_for',
    'schematic',
]

logger = logging.getLogger(__name__)

_registry_lock = threading.RLock()
_connections: Mapping[str, Connection] = MappingProxyType({})
_schemas: Mapping[type, Schema] = MappingProxyType({})


@dataclass
class ConnectionConfig:
    """Connection settings

    Either `driver` plus `connection_string`, or a preconfigured `db`
    (SQLAlchemy Engine/Connection or DBAPI connection) plus its `dialect`.

    supported driver names: `mysql`, `postgres`, `postgresql`, `sqlite`, `sqlite3`
    """
    name: str = DEFAULT_CONNECTION
    driver: str | None = None
    connection_string: str | None = None
    db: Any = None
    dialect: Dialect | str | None = None
    entities: list[type] = field(default_factory=list)

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError('Connection name must not be empty')
        if self.db is None:
            if not self.driver:
                raise ConfigurationError(f'Connection {self.name!r} needs a driver or a db')
            if self.connection_string is None:
                raise ConfigurationError(f'Connection {self.name!r} needs a connection_string')
        elif self.dialect is None and self.driver is None:
            raise ConfigurationError(f'Connection {self.name!r} passes a db without a dialect')
        self.dialect = get_dialect(self.dialect or self.driver)
        self.entities = list(self.entities)

    @classmethod
    def coerce(cls, config: 'ConnectionConfig | Mapping[str, Any]') -> 'ConnectionConfig':
        if isinstance(config, ConnectionConfig):
            return config
        if isinstance(config, Mapping):
            return cls(**config)
        raise ConfigurationError(f'Expected ConnectionConfig or dict, got {type(config).__name__}')


def initialize(*configs: ConnectionConfig | Mapping[str, Any]) -> dict[str, Connection]:
    """Open connections and register the schemas of their entities.

    Schemas are built in two passes: fields for every entity first, then
    relationship defaults, which need the related entity's schema. An entity
    related to but not registered with any connection gets a schema built
    on the fly for default resolution only.

    Args:
        configs: ConnectionConfig instances or equivalent dicts

    Returns
        Mapping of connection name to Connection

    Raises
        ConfigurationError: On an unknown driver, a duplicate connection name,
            an invalid entity declaration or an entity listed under a
            connection other than the one it declares
    """
    global _connections, _schemas

    configs = [ConnectionConfig.coerce(c) for c in configs]
    names = [c.name for c in configs]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f'Duplicate connection names: {duplicates}')

    by_entity: dict[type, Schema] = {}
    per_connection: dict[str, dict[str, Schema]] = {}
    for config in configs:
        tables: dict[str, Schema] = {}
        for entity in config.entities:
            schema = build_schema(entity, config.dialect)
            if schema.declared_connection not in {None, config.name}:
                raise ConfigurationError(
                    f'{entity.__name__} declares connection {schema.declared_connection!r} '
                    f'but is registered with {config.name!r}')
            schema.connection_name = config.name
            if schema.table in tables:
                raise ConfigurationError(
                    f'Connection {config.name!r}: table {schema.table!r} is registered by '
                    f'{tables[schema.table].entity.__name__} and {entity.__name__}')
            tables[schema.table] = schema
            by_entity[schema.entity] = schema
        per_connection[config.name] = tables

    def lookup(entity: type) -> Schema:
        if entity not in by_entity:
            logger.debug(f'{entity.__name__} is not registered, building its schema for defaults')
            return build_schema(entity)
        return by_entity[entity]

    for schema in by_entity.values():
        resolve_relationships(schema, lookup)

    opened: dict[str, Connection] = {}
    try:
        for config in configs:
            opened[config.name] = connect(config.name, config.dialect,
                                          connection_string=config.connection_string,
                                          db=config.db)
            opened[config.name].publish(per_connection[config.name])
    except Exception:
        for connection in opened.values():
            connection.close()
        raise

    with _registry_lock:
        connections = dict(_connections)
        schemas = dict(_schemas)
        for name, connection in opened.items():
            if name in connections:
                logger.warning(f'Replacing registered connection {name}')
                connections[name].close()
            connections[name] = connection
        schemas.update(by_entity)
        _connections = MappingProxyType(connections)
        _schemas = MappingProxyType(schemas)

    logger.info(f'Initialized connections {names} with {len(by_entity)} entities')
    return opened


def get_connection(name: str = DEFAULT_CONNECTION) -> Connection:
    """Return a registered connection by name.

    Raises
        ConfigurationError: If no connection has that name
    """
    connection = _connections.get(name)
    if connection is None:
        raise ConfigurationError(f'No connection named {name!r}. Available: {list(_connections)}')
    return connection


def schema_for(entity: type | Any) -> Schema:
    """Return the registered schema of an entity class or instance.

    Raises
        ConfigurationError: If the entity is not registered
    """
    if not isinstance(entity, type):
        entity = type(entity)
    schema = _schemas.get(entity)
    if schema is None:
        raise ConfigurationError(f'Entity {entity.__name__} is not registered with any connection')
    return schema


def close_all() -> None:
    """Close and unregister every connection.
    """
    global _connections, _schemas
    with _registry_lock:
        for connection in _connections.values():
            connection.close()
        _connections = MappingProxyType({})
        _schemas = MappingProxyType({})


atexit.register(close_all)


def schematic() -> str:
    """Render a human-readable summary of every registered schema.
    """
    lines = []
    for name, connection in _connections.items():
        lines.append(f'{name} ({connection.dialect.name})')
        for table, schema in connection.schemas.items():
            lines.append(f'  {table} -> {schema.entity.__name__}')
            for f in schema.fields:
                flags = [flag for flag, on in (('pk', f.is_pk), ('virtual', f.is_virtual)) if on]
                suffix = f' [{", ".join(flags)}]' if flags else ''
                lines.append(f'    {f.column}: {f.attribute}{suffix}')
            for other, relationship in schema.relationships.items():
                lines.append(f'    => {other}: {relationship}')
    return '\n'.join(lines)
