"""
Type handling for entity fields.

This module provides:
- Valuer: the scalar driver protocol a user type implements to be stored
  in a single column
- Type classification: records, references to records, sequences of
  records and scalar leaves
- Value conversion in both directions (field value -> driver value, driver
  value -> declared field type)
"""
import dataclasses
import datetime
import decimal
import enum
import logging
import types
import typing
import uuid
from collections.abc import Sequence
from typing import Any, Protocol, runtime_checkable

import dateutil.parser

from sqlentity.exceptions import ScanError

logger = logging.getLogger(__name__)

_SEQUENCE_ORIGINS = (list, tuple, set, frozenset, Sequence)


@runtime_checkable
class Valuer(Protocol):
    """Scalar driver protocol.

    A type implementing `to_db_value` is stored as a single column value and
    is never treated as a nested record. It may also define a classmethod
    `from_db_value(value)` used when a column is scanned into it.
    """

    def to_db_value(self) -> Any:
        ...


def unwrap_optional(tp: Any) -> tuple[Any, bool]:
    """Strip `None` from a union type.

    Returns
        Tuple of the remaining type and whether `None` was allowed
    """
    origin = typing.get_origin(tp)
    if origin is typing.Union or origin is types.UnionType:
        args = [a for a in typing.get_args(tp) if a is not type(None)]
        optional = len(args) != len(typing.get_args(tp))
        if len(args) == 1:
            return args[0], optional
        return typing.Union[tuple(args)], optional
    return tp, False


def is_valuer(tp: Any) -> bool:
    """Check if a type implements the scalar driver protocol."""
    return isinstance(tp, type) and issubclass(tp, Valuer)


def is_record_type(tp: Any) -> bool:
    """Check if a type is a record (a dataclass or an entity class).

    Types implementing the scalar driver protocol are never records.
    """
    from sqlentity.entity import Entity

    if not isinstance(tp, type) or is_valuer(tp):
        return False
    return dataclasses.is_dataclass(tp) or issubclass(tp, Entity)


def record_type_of(tp: Any) -> type | None:
    """Return the record type of `tp` or of a reference to one, else None.
    """
    inner, _ = unwrap_optional(tp)
    if is_record_type(inner):
        return inner
    return None


def is_record_sequence(tp: Any) -> bool:
    """Check if a type is a sequence of records (or a reference to one)."""
    inner, _ = unwrap_optional(tp)
    origin = typing.get_origin(inner)
    if origin not in _SEQUENCE_ORIGINS:
        return False
    return any(is_record_type(unwrap_optional(a)[0]) for a in typing.get_args(inner))


def is_virtual_type(tp: Any) -> bool:
    """Check if a field type cannot be scanned from a single column.
    """
    return record_type_of(tp) is not None or is_record_sequence(tp)


def to_db_value(value: Any) -> Any:
    """Convert a field value to the value handed to the driver.
    """
    if isinstance(value, Valuer):
        return value.to_db_value()
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, uuid.UUID):
        return str(value)
    return value


def _parse_datetime(value: str, column: str) -> datetime.datetime:
    try:
        return dateutil.parser.parse(value)
    except (ValueError, OverflowError) as exc:
        raise ScanError(f'column {column!r}: cannot parse {value!r} as datetime', column) from exc


def convert_scanned(value: Any, tp: Any, column: str) -> Any:
    """Convert a driver value to the declared field type.

    Args:
        value: Value returned by the driver
        tp: Declared type of the destination field
        column: Column name, reported on failure

    Returns
        The converted value

    Raises
        ScanError: If the value cannot represent the declared type
    """
    inner, optional = unwrap_optional(tp)

    if inner is Any or inner is None or isinstance(inner, (str, typing.TypeVar)):
        return value

    if value is None:
        if optional:
            return None
        if isinstance(inner, type) and hasattr(inner, 'from_db_value'):
            return inner.from_db_value(None)
        raise ScanError(f'column {column!r}: NULL cannot be scanned into {_type_name(tp)}', column)

    if isinstance(inner, type) and hasattr(inner, 'from_db_value'):
        try:
            return inner.from_db_value(value)
        except (TypeError, ValueError) as exc:
            raise ScanError(f'column {column!r}: {exc}', column) from exc

    origin = typing.get_origin(inner)
    if origin is not None:
        if isinstance(origin, type) and not isinstance(value, origin):
            raise ScanError(f'column {column!r}: {type(value).__name__} is not {_type_name(tp)}', column)
        return value

    if not isinstance(inner, type):
        return value

    return _convert_to_class(value, inner, column)


def _convert_to_class(value: Any, cls: type, column: str) -> Any:
    """Convert a non-null driver value to a concrete class."""
    if cls is bool:
        if isinstance(value, (bool, int)):
            return bool(value)
    elif cls is int:
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        if isinstance(value, (float, decimal.Decimal)) and value == int(value):
            return int(value)
    elif cls is float:
        if isinstance(value, (int, float, decimal.Decimal)) and not isinstance(value, bool):
            return float(value)
    elif cls is decimal.Decimal:
        if isinstance(value, (int, float, str, decimal.Decimal)) and not isinstance(value, bool):
            try:
                return decimal.Decimal(str(value))
            except decimal.InvalidOperation as exc:
                raise ScanError(f'column {column!r}: cannot parse {value!r} as Decimal', column) from exc
    elif cls is str:
        if isinstance(value, str):
            return value
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value).decode('utf-8')
    elif cls is bytes:
        if isinstance(value, (bytes, bytearray, memoryview)):
            return bytes(value)
        if isinstance(value, str):
            return value.encode('utf-8')
    elif cls is datetime.datetime:
        if isinstance(value, datetime.datetime):
            return value
        if isinstance(value, datetime.date):
            return datetime.datetime.combine(value, datetime.time())
        if isinstance(value, str):
            return _parse_datetime(value, column)
    elif cls is datetime.date:
        if isinstance(value, datetime.datetime):
            return value.date()
        if isinstance(value, datetime.date):
            return value
        if isinstance(value, str):
            return _parse_datetime(value, column).date()
    elif cls is datetime.time:
        if isinstance(value, datetime.time):
            return value
        if isinstance(value, str):
            return _parse_datetime(value, column).time()
    elif cls is uuid.UUID:
        if isinstance(value, uuid.UUID):
            return value
        if isinstance(value, (str, bytes)):
            try:
                return uuid.UUID(value) if isinstance(value, str) else uuid.UUID(bytes=value)
            except ValueError as exc:
                raise ScanError(f'column {column!r}: cannot parse {value!r} as UUID', column) from exc
    elif issubclass(cls, enum.Enum):
        try:
            return cls(value)
        except ValueError as exc:
            raise ScanError(f'column {column!r}: {value!r} is not a valid {cls.__name__}', column) from exc
    elif isinstance(value, cls):
        return value

    raise ScanError(f'column {column!r}: {type(value).__name__} value {value!r} cannot be scanned '
                    f'into {cls.__name__}', column)


def _type_name(tp: Any) -> str:
    return getattr(tp, '__name__', None) or str(tp)


__all__ = [
    'Valuer',
    'convert_scanned',
    'is_record_sequence',
    'is_record_type',
    'is_valuer',
    'is_virtual_type',
    'record_type_of',
    'to_db_value',
    'unwrap_optional',
]
