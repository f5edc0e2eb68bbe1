"""Tests for the utilities module."""

from datetime import datetime, timezone
import enum
import re

from jsonschema.exceptions import SchemaError, ValidationError
from pydantic import BaseModel
import pytest

from webthing_fastapi import utilities
from webthing_fastapi.exceptions import SerializationError


def test_timestamp():
    stamp = utilities.timestamp()
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\+00:00", stamp)
    parsed = datetime.fromisoformat(stamp)
    assert parsed.tzinfo is not None
    assert abs((datetime.now(timezone.utc) - parsed).total_seconds()) < 5


def test_timestamps_sort_in_time_order():
    first = utilities.timestamp()
    second = utilities.timestamp()
    assert first <= second


@pytest.mark.parametrize(
    ("text", "slug"),
    [
        ("My Lamp", "my-lamp"),
        ("My Humidity Sensor", "my-humidity-sensor"),
        ("lamp_1", "lamp_1"),
        ("  Lamp (kitchen)  ", "lamp-kitchen"),
        ("!!!", "thing"),
    ],
)
def test_slugify(text, slug):
    assert utilities.slugify(text) == slug


def test_compile_schema():
    validator = utilities.compile_schema(
        {"type": "integer", "minimum": 0, "unit": "percent", "@type": "Level"}
    )
    validator.validate(5)
    with pytest.raises(ValidationError):
        validator.validate(-1)
    with pytest.raises(SchemaError):
        utilities.compile_schema({"type": "percentage"})


def test_validate_against_schema():
    schema = {"type": "object", "required": ["x"]}
    utilities.validate_against_schema(schema, {"x": 1})
    utilities.validate_against_schema(utilities.compile_schema(schema), {"x": 1})
    with pytest.raises(ValidationError):
        utilities.validate_against_schema(schema, {})


class Colour(enum.Enum):
    RED = "red"


class Point(BaseModel):
    x: int
    y: int


def test_serialize():
    assert utilities.serialize({"a": [1, 2.5, None, True]}) == {
        "a": [1, 2.5, None, True]
    }
    assert utilities.serialize(Colour.RED) == "red"
    assert utilities.serialize(Point(x=1, y=2)) == {"x": 1, "y": 2}
    assert utilities.serialize((1, 2)) == [1, 2]


def test_serialize_failure():
    with pytest.raises(SerializationError, match="object"):
        utilities.serialize(object())
    with pytest.raises(SerializationError):
        utilities.serialize({"bad": object()})
