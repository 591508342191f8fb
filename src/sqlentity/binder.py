"""
Reflective row binding.

The binder fills a caller's output handle from a result set:

- a list receives one freshly allocated entity per row, appended in the
  order the database returns them
- a single entity instance is overwritten by every row (callers expect at
  most one)

For every record the binder walks the declared fields depth first and
collects one pointer per column. Nested records (and references to them)
are entered transparently unless their type implements the scalar driver
protocol, so reusable field groups such as timestamps need no schema of
their own. Inner column names share the entity's namespace.
"""
import logging
import threading
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from sqlentity.entity import configurator_for
from sqlentity.exceptions import BindError, ContractError, QueryCancelled
from sqlentity.field import FieldMetadata, declared_fields, field_metadata
from sqlentity.types import convert_scanned, is_record_type, record_type_of

if TYPE_CHECKING:
    from sqlentity.connection import ResultSet
    from sqlentity.entity import FieldOverride
    from sqlentity.schema import Schema

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class FieldPointer:
    """Scan destination: one attribute of one object."""
    owner: Any
    attribute: str
    type: Any
    column: str

    def scan(self, value: Any) -> None:
        setattr(self.owner, self.attribute, convert_scanned(value, self.type, self.column))


class Binder:
    """Binds result sets into instances of one entity class.

    Column names come from the entity's schema when one is available and
    from the default naming rules otherwise.
    """

    def __init__(self, entity: type | None = None, schema: 'Schema | None' = None) -> None:
        if entity is None and schema is not None:
            entity = schema.entity
        self.entity = entity
        self.schema = schema
        self._overrides: dict[str, 'FieldOverride'] | None = None

    def _fallback_overrides(self) -> dict[str, 'FieldOverride']:
        if self._overrides is None:
            self._overrides = {}
            if self.entity is not None and hasattr(self.entity, 'configure_entity'):
                self._overrides = configurator_for(self.entity).field_overrides
        return self._overrides

    def _metadata(self, owner_cls: type, attribute: str, tp: Any, tag: str | None) -> FieldMetadata:
        if self.schema is not None and owner_cls is self.schema.entity:
            fm = self.schema.get_field(attribute)
            if fm is not None:
                return fm
        return field_metadata(attribute, tp, tag, self._fallback_overrides().get(attribute))

    def pointers_of(self, record: Any, _path: frozenset = frozenset()) -> dict[str, FieldPointer]:
        """Map column name to scan pointer for a record, recursively.

        Nested records that are still None are allocated on the way down. The
        first field registered for a column keeps it, and a record type is
        not entered again below itself.
        """
        pointers: dict[str, FieldPointer] = {}
        record_cls = type(record)
        path = _path | {record_cls}
        for attribute, tp, tag in declared_fields(record_cls):
            nested_cls = record_type_of(tp)
            if nested_cls is not None:
                if nested_cls in path:
                    continue
                nested = getattr(record, attribute, None)
                if nested is None:
                    nested = _allocate(nested_cls)
                    setattr(record, attribute, nested)
                for column, pointer in self.pointers_of(nested, path).items():
                    pointers.setdefault(column, pointer)
                continue
            fm = self._metadata(record_cls, attribute, tp, tag)
            if fm.is_virtual:
                continue
            pointers.setdefault(fm.column, FieldPointer(record, attribute, tp, fm.column))
        return pointers

    def pointers_for(self, record: Any, columns: list[str]) -> list[FieldPointer | None]:
        """Return one pointer per result column, None for unbound columns.
        """
        by_column = self.pointers_of(record)
        return [by_column.get(name) for name in columns]

    def _scan(self, row: tuple, pointers: list[FieldPointer | None]) -> None:
        if len(row) != len(pointers):
            raise BindError(f'Row has {len(row)} values for {len(pointers)} columns')
        for value, pointer in zip(row, pointers):
            if pointer is not None:
                pointer.scan(value)

    def bind(self, result_set: 'ResultSet', output: Any,
             cancel: threading.Event | None = None) -> int:
        """Fill `output` from `result_set` and close the result set.

        Args:
            result_set: Rows to consume
            output: A list to append entities to, or an entity to fill
            cancel: Checked between rows

        Returns
            Number of rows bound

        Raises
            ContractError: If output is neither a list nor a record instance
            ScanError: If a value does not fit its field type
            BindError: If iterating the result set fails
        """
        try:
            if isinstance(output, list):
                if self.entity is None:
                    raise ContractError('Binding into a list needs the entity class')
                return self._bind_many(result_set, output, cancel)
            if isinstance(output, type) or not is_record_type(type(output)):
                raise ContractError(
                    f'Output must be a list or a record instance, got {type(output).__name__}')
            return self._bind_one(result_set, output, cancel)
        finally:
            result_set.close()

    def _rows(self, result_set: 'ResultSet', cancel: threading.Event | None):
        iterator = iter(result_set)
        while True:
            if cancel is not None and cancel.is_set():
                raise QueryCancelled('Binding cancelled between rows')
            try:
                row = next(iterator)
            except StopIteration:
                return
            except (BindError, QueryCancelled):
                raise
            except Exception as exc:
                raise BindError(f'Error reading result set: {exc}') from exc
            yield row

    def _bind_many(self, result_set: 'ResultSet', output: list,
                   cancel: threading.Event | None) -> int:
        columns = [c.name for c in result_set.columns]
        count = 0
        for row in self._rows(result_set, cancel):
            record = _allocate(self.entity)
            self._scan(row, self.pointers_for(record, columns))
            output.append(record)
            count += 1
        logger.debug(f'Bound {count} rows into list of {self.entity.__name__}')
        return count

    def _bind_one(self, result_set: 'ResultSet', output: Any,
                  cancel: threading.Event | None) -> int:
        columns = [c.name for c in result_set.columns]
        pointers = self.pointers_for(output, columns)
        count = 0
        for row in self._rows(result_set, cancel):
            self._scan(row, pointers)
            count += 1
        if count > 1:
            logger.debug(f'Single {type(output).__name__} overwritten by {count} rows')
        return count


def _allocate(cls: type) -> Any:
    try:
        return cls()
    except TypeError as exc:
        raise ContractError(f'Cannot allocate {cls.__name__}: every field needs a default') from exc


def bind(result_set: 'ResultSet', output: Any, schema: 'Schema | None' = None,
         entity: type | None = None, cancel: threading.Event | None = None) -> int:
    """Bind a result set into a list of entities or a single entity.

    The entity class is taken from `schema`, `entity` or the output
    instance, in that order.
    """
    if entity is None and schema is None and not isinstance(output, (list, type)):
        entity = type(output)
    return Binder(entity=entity, schema=schema).bind(result_set, output, cancel=cancel)


def bind_to_dicts(result_set: 'ResultSet') -> list[dict[str, Any]]:
    """Bind every row of a result set to a column-name dictionary.
    """
    with result_set:
        names = result_set.column_names()
        return [dict(zip(names, row)) for row in result_set]


__all__ = ['Binder', 'FieldPointer', 'bind', 'bind_to_dicts']
