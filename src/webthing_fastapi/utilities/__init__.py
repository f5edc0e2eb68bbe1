"""Utility functions used by WebThing-FastAPI."""

from __future__ import annotations
from datetime import datetime, timezone
import re
from typing import Any, Mapping

from fastapi.encoders import jsonable_encoder
import jsonschema
from jsonschema.protocols import Validator

from ..exceptions import SerializationError


__all__ = [
    "timestamp",
    "compile_schema",
    "validate_against_schema",
    "serialize",
    "slugify",
]


def timestamp() -> str:
    """Get the current time as an ISO 8601 string.

    Timestamps are given in UTC with second precision, with an explicit
    ``+00:00`` offset, e.g. ``2024-01-31T12:00:00+00:00``. This is the format
    used for ``timeRequested``, ``timeCompleted`` and event timestamps.

    :return: the current time, formatted as a string.
    """
    now = datetime.now(timezone.utc).replace(microsecond=0, tzinfo=None)
    return now.isoformat() + "+00:00"


def compile_schema(schema: Mapping[str, Any]) -> Validator:
    """Check a JSON Schema and create a validator for it.

    Property metadata and action inputs are described with JSON Schema
    (draft 7). Keywords that are not part of JSON Schema (``unit``,
    ``@type``, ``links`` etc.) are ignored by the validator, so metadata
    dictionaries may be passed in directly.

    :param schema: the schema, as a dictionary.

    :return: a `jsonschema` validator that may be reused.

    :raise jsonschema.exceptions.SchemaError: if ``schema`` is not a valid
        JSON Schema.
    """
    jsonschema.Draft7Validator.check_schema(schema)
    return jsonschema.Draft7Validator(schema)


def validate_against_schema(schema: Mapping[str, Any] | Validator, value: Any) -> None:
    """Validate a value against a JSON Schema.

    :param schema: the schema, either as a dictionary or as a validator
        returned by `.compile_schema`.
    :param value: the value to check.

    :raise jsonschema.exceptions.ValidationError: if the value does not match.
    """
    if isinstance(schema, Mapping):
        schema = compile_schema(schema)
    schema.validate(value)


def slugify(text: str) -> str:
    """Convert a human-readable title into a name safe for loggers and URLs.

    :param text: the string to convert, e.g. "My Lamp".

    :return: a lower-case string with runs of other characters replaced
        by ``-``, e.g. "my-lamp".
    """
    slug = re.sub(r"[^a-zA-Z0-9_]+", "-", text).strip("-").lower()
    return slug or "thing"


def serialize(value: Any) -> Any:
    """Convert a value into something that may be sent as JSON.

    This uses `fastapi.encoders.jsonable_encoder`, so dates, enums,
    `pydantic.BaseModel` instances etc. are converted the same way as
    FastAPI responses.

    :param value: the value to convert.

    :return: a structure of dicts, lists, strings, numbers, booleans
        and ``None``.

    :raise SerializationError: if the value can't be converted.
    """
    try:
        return jsonable_encoder(value)
    except (TypeError, ValueError, RecursionError) as e:
        msg = f"Could not serialise {type(value).__name__} to JSON."
        raise SerializationError(msg) from e
