"""
Declarative mapping markers.

Example:

    @entity(table='users')
    @dataclass
    class User:
        id: Annotated[int | None, Id()] = None
        user_name: Annotated[str, Column(nullable=False, length=100)] = ''
        rating: Annotated[Decimal, Column(type='DECIMAL', precision=5, scale=2)] = Decimal(0)
        cached: Annotated[str, NotMapped()] = ''
"""
from dataclasses import dataclass
from typing import Any

ENTITY_ATTR = '__entitydb_entity__'


@dataclass(frozen=True)
class Column:
    """Per-field column overrides.

    ``length`` defaults to 255 and ``precision``/``scale`` to 0 (unset).
    ``ignore`` keeps the field readable but drops it from DDL and DML.
    """
    name: str = ''
    nullable: bool = True
    type: str = ''
    length: int = 255
    precision: int = 0
    scale: int = 0
    default: Any = None
    ignore: bool = False


@dataclass(frozen=True)
class Id:
    """Primary-key marker; ``auto`` means the database assigns the value."""
    name: str = ''
    auto: bool = True


@dataclass(frozen=True)
class NotMapped:
    """Excludes a field from mapping entirely."""


@dataclass(frozen=True)
class EntityInfo:
    table: str = ''


def entity(cls=None, *, table: str = ''):
    """Mark a class as a declaratively mapped entity.

    Supports both ``@entity`` and ``@entity(table='name')``.
    """
    def decorator(target):
        setattr(target, ENTITY_ATTR, EntityInfo(table=table))
        return target

    if cls is None:
        return decorator
    return decorator(cls)


def entity_info(cls) -> EntityInfo | None:
    """Return the marker declared on cls itself, ignoring inherited markers."""
    return cls.__dict__.get(ENTITY_ATTR)
