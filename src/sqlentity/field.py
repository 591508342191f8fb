"""
Field metadata derived from an entity's declared layout.

Rules, evaluated per field in declaration order:
1. A declared column (configurator override, then inline tag) wins over the
   inferred name.
2. Otherwise the column name is the snake_case of the attribute name.
3. Primary key: an explicit flag anywhere on the entity disables
   inference; otherwise the attribute named `id` (case-insensitive) is the
   primary key.
4. Virtual: nested records, sequences of records and references to either
   are virtual unless the type implements the scalar driver protocol.
"""
import dataclasses
import logging
import typing
from dataclasses import dataclass
from typing import Any, ClassVar

from sqlentity.entity import FieldOverride
from sqlentity.types import is_virtual_type
from sqlentity.utils import snake_case

logger = logging.getLogger(__name__)

TAG_KEY = 'orm'

_TRUE_VALUES = {'true', '1', 'yes', 'y', 'on'}


@dataclass(slots=True)
class FieldMetadata:
    """Metadata about one entity field."""
    attribute: str
    column: str
    is_pk: bool = False
    is_virtual: bool = False
    type: Any = Any


@dataclass(slots=True)
class FieldTag:
    """Parsed inline field tag."""
    name: str = ''
    pk: bool = False
    virtual: bool = False


def parse_field_tag(tag: str | None) -> FieldTag:
    """Parse a tag of space separated `key=value` pairs.

    Recognized keys are `name`, `pk` and `virtual`. A key without a value is
    read as true.

    >>> parse_field_tag('name=email pk=true')
    FieldTag(name='email', pk=True, virtual=False)
    >>> parse_field_tag('virtual')
    FieldTag(name='', pk=False, virtual=True)
    """
    parsed = FieldTag()
    if not tag:
        return parsed
    for pair in tag.split():
        key, sep, value = pair.partition('=')
        truthy = not sep or value.lower() in _TRUE_VALUES
        if key == 'name':
            parsed.name = value
        elif key == 'pk':
            parsed.pk = truthy
        elif key == 'virtual':
            parsed.virtual = truthy
        else:
            logger.debug(f'Ignoring unknown field tag key {key!r}')
    return parsed


def _type_hints(cls: type) -> dict[str, Any]:
    """Resolve annotations, falling back to raw annotations per class."""
    try:
        return typing.get_type_hints(cls)
    except (NameError, TypeError) as e:
        logger.debug(f'Could not resolve type hints of {cls.__name__}: {e}')
    hints: dict[str, Any] = {}
    for klass in reversed(cls.__mro__):
        hints.update(getattr(klass, '__annotations__', {}))
    return hints


def declared_fields(cls: type) -> list[tuple[str, Any, str | None]]:
    """List `(attribute, type, tag)` for each declared field, in order.

    Dataclasses are read through `dataclasses.fields`; other classes through
    their annotations along the MRO.
    """
    hints = _type_hints(cls)
    if dataclasses.is_dataclass(cls):
        return [(f.name, hints.get(f.name, Any), f.metadata.get(TAG_KEY))
                for f in dataclasses.fields(cls)]

    out = []
    seen = set()
    for klass in reversed(cls.__mro__):
        for name in getattr(klass, '__annotations__', {}):
            if name in seen or name.startswith('_'):
                continue
            tp = hints.get(name, Any)
            if typing.get_origin(tp) is ClassVar or tp is ClassVar:
                continue
            seen.add(name)
            out.append((name, tp, None))
    return out


def field_metadata(attribute: str, tp: Any, tag: str | None,
                   override: FieldOverride | None = None) -> FieldMetadata:
    """Derive metadata for a single field.

    Primary-key inference by name is applied here; `fields_of` removes it
    again when another field is an explicit primary key.
    """
    parsed = parse_field_tag(tag)
    override = override or FieldOverride()
    column = override.column or parsed.name or snake_case(attribute)
    is_pk = override.is_pk or parsed.pk or attribute.lower() == 'id'
    is_virtual = override.is_virtual or parsed.virtual or is_virtual_type(tp)
    return FieldMetadata(attribute=attribute, column=column, is_pk=is_pk,
                         is_virtual=is_virtual, type=tp)


def fields_of(cls: type, overrides: dict[str, FieldOverride] | None = None) -> list[FieldMetadata]:
    """Collect field metadata for an entity class.

    An entity may provide its own list through a classmethod
    `entity_fields()`, which replaces reflection.
    """
    explicit = getattr(cls, 'entity_fields', None)
    if callable(explicit):
        return list(explicit())

    overrides = overrides or {}
    declared = declared_fields(cls)
    fms = [field_metadata(name, tp, tag, overrides.get(name)) for name, tp, tag in declared]

    explicit_pks = {
        name for name, _, tag in declared
        if overrides.get(name, FieldOverride()).is_pk or parse_field_tag(tag).pk
    }
    if explicit_pks:
        for fm in fms:
            fm.is_pk = fm.attribute in explicit_pks

    unknown = set(overrides) - {name for name, _, _ in declared}
    if unknown:
        logger.warning(f'{cls.__name__}: field overrides for unknown attributes {sorted(unknown)}')
    return fms
