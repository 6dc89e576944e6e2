from __future__ import annotations

from typing import Any, Protocol, TypeVar

from .batch.models import RowEntity

T = TypeVar("T")


class EntityMapper(Protocol):
    """
    Converts caller objects to and from row entities.

    Used by the typed TableContext operations. ``encode`` may raise, or
    return None, when an object cannot be represented as a row; either is
    reported to the caller as SerializationError.
    """

    def table_name(self, obj_type: type) -> str:
        """Name of the table holding objects of ``obj_type``."""
        ...

    def encode(self, obj: Any) -> RowEntity:
        ...

    def decode(self, entity: RowEntity, obj_type: type[T]) -> T:
        ...
