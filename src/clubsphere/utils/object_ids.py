"""Helpers for validating MongoDB ObjectId path parameters and serializing documents."""

from typing import Any

from bson import ObjectId

from clubsphere.exceptions import InvalidInputError


def parse_object_id(value: str, label: str = "ID") -> ObjectId:
    """
    Convert a path parameter to an `ObjectId`.

    Raises:
        InvalidInputError: If the value is not a well-formed ObjectId.
    """
    if not isinstance(value, str) or not ObjectId.is_valid(value):
        raise InvalidInputError(f"Invalid {label} format.")
    return ObjectId(value)


def serialize_document(value: Any) -> Any:
    """Recursively replace `ObjectId` values so a raw document can be returned as JSON."""
    if isinstance(value, ObjectId):
        return str(value)
    if isinstance(value, dict):
        return {key: serialize_document(item) for key, item in value.items()}
    if isinstance(value, list):
        return [serialize_document(item) for item in value]
    return value
