"""Partial-update primitives.

A request field is either left alone (:data:`KEEP`) or replaced with a value,
and that value may legitimately be ``None`` for nullable columns. Relying on
``None`` to mean "absent" would make clearing such a column impossible.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Generic, TypeVar, Union

from pydantic import BaseModel

T = TypeVar("T")


class Keep:
    """Leave the current value untouched."""

    _instance: "Keep | None" = None

    def __new__(cls) -> "Keep":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "KEEP"


KEEP = Keep()


@dataclass(frozen=True)
class SetValue(Generic[T]):
    """Replace the current value, possibly with ``None``."""

    value: T


FieldUpdate = Union[Keep, SetValue[T]]


def field_update(model: BaseModel, name: str) -> FieldUpdate[Any]:
    """Build a :data:`FieldUpdate` from whether ``name`` was sent in ``model``."""

    if name not in model.model_fields_set:
        return KEEP
    return SetValue(getattr(model, name))


__all__ = ["FieldUpdate", "KEEP", "Keep", "SetValue", "field_update"]
