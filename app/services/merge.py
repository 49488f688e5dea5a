"""
Merge primitives over the canonical pydantic sections.

The pydantic field declarations are the schema: nested models are merged
recursively, list fields (the wheel variants) are never touched here and are
managed only through upsert_wheel_variant.
"""

from typing import AbstractSet, List

from pydantic import BaseModel

from schemas.vehicle import CanonicalVehicle, WheelVariant


def merge_preserve(
    existing: BaseModel,
    incoming: BaseModel,
    exclude: AbstractSet[str] = frozenset(),
) -> BaseModel:
    """
    Deep-merge incoming onto existing in place.

    A non-null incoming leaf overwrites, a null incoming leaf never does.
    Fields unknown to the existing model are ignored.
    """
    target_fields = type(existing).model_fields

    for name in type(incoming).model_fields:
        if name in exclude or name not in target_fields:
            continue

        value = getattr(incoming, name)

        if isinstance(value, BaseModel):
            current = getattr(existing, name)
            if current is None:
                setattr(existing, name, value.model_copy(deep=True))
            else:
                merge_preserve(current, value)
        elif isinstance(value, list):
            continue
        elif value is not None:
            setattr(existing, name, value)

    return existing


def fill_missing(existing: BaseModel, incoming: BaseModel) -> List[str]:
    """
    Field-level fill-only merge of flat sections.

    Writes an incoming value only where the existing field is None. Zero is a
    known value and is kept. Returns the names of the filled fields.
    """
    filled = []
    for name in type(incoming).model_fields:
        value = getattr(incoming, name)
        if value is None or name not in type(existing).model_fields:
            continue
        if getattr(existing, name) is None:
            setattr(existing, name, value)
            filled.append(name)
    return filled


def upsert_wheel_variant(vehicle: CanonicalVehicle, variant: WheelVariant) -> bool:
    """Merge onto the variant with the same size, or append. Returns True when a variant was added."""
    current = vehicle.find_wheel(variant.size)
    if current is not None:
        merge_preserve(current, variant)
        return False

    vehicle.wheels.append(variant.model_copy(deep=True))
    return True
