"""Test the `.Property` class, including validation and notification."""

import pytest
from jsonschema.exceptions import SchemaError

import webthing_fastapi as wt
from webthing_fastapi.exceptions import PropertyError, ReadOnlyPropertyError
from utilities import RecordingSubscriber


LEVEL_METADATA = {
    "type": "number",
    "minimum": 0,
    "maximum": 100,
    "unit": "percent",
    "@type": "LevelProperty",
}


@pytest.fixture
def thing():
    return wt.Thing("urn:test:thing", "Test Thing")


@pytest.fixture
def subscriber(thing):
    subscriber = RecordingSubscriber()
    thing.add_subscriber(subscriber)
    return subscriber


@pytest.fixture
def forwarded(mocker):
    return mocker.Mock()


@pytest.fixture
def level(thing, forwarded):
    prop = wt.Property(thing, "level", wt.Value(0, forwarded), LEVEL_METADATA)
    thing.add_property(prop)
    return prop


def test_valid_write(level, forwarded, subscriber):
    """An accepted write is forwarded, stored and notified exactly once."""
    level.set_value(42)
    assert level.get_value() == 42
    forwarded.assert_called_once_with(42)
    assert subscriber.messages == [
        {"messageType": "propertyStatus", "data": {"level": 42}}
    ]


@pytest.mark.parametrize("bad_value", [-1, 101, "fifty", None, [1]])
def test_invalid_write(level, forwarded, subscriber, bad_value):
    with pytest.raises(PropertyError, match="Invalid property value"):
        level.set_value(bad_value)
    assert level.get_value() == 0
    forwarded.assert_not_called()
    assert subscriber.messages == []


def test_read_only_metadata(thing, subscriber, mocker):
    forwarder = mocker.Mock()
    prop = wt.Property(
        thing, "ro", wt.Value(1, forwarder), {"type": "integer", "readOnly": True}
    )
    assert prop.read_only
    # The read-only check comes before any other validation.
    for value in [2, "not even an integer"]:
        with pytest.raises(ReadOnlyPropertyError, match="Read-only property"):
            prop.set_value(value)
    assert prop.get_value() == 1
    forwarder.assert_not_called()
    assert subscriber.messages == []


def test_value_without_forwarder_is_read_only(thing):
    prop = wt.Property(thing, "sensor", wt.Value(1.5), {"type": "number"})
    assert prop.read_only
    with pytest.raises(ReadOnlyPropertyError):
        prop.set_value(2.5)
    assert prop.get_value() == 1.5


def test_read_only_is_a_property_error():
    """Code that catches PropertyError also catches read-only writes."""
    assert issubclass(ReadOnlyPropertyError, PropertyError)


def test_external_update_skips_validation(thing, subscriber):
    """Device readings are ground truth, so they aren't validated."""
    value = wt.Value(50.0)
    thing.add_property(wt.Property(thing, "humidity", value, LEVEL_METADATA))
    value.notify_of_external_update(120.0)
    assert thing.get_property("humidity") == 120.0
    assert subscriber.of_type("propertyStatus") == [{"humidity": 120.0}]


def test_description(level):
    description = level.as_property_description()
    assert description["type"] == "number"
    assert description["unit"] == "percent"
    assert description["links"] == [{"rel": "property", "href": "/properties/level"}]
    # The metadata must not be changed by describing the property
    assert "links" not in level.get_metadata()
    assert level.as_property_description() == description


def test_description_keeps_existing_links(thing):
    metadata = {"type": "boolean", "links": [{"rel": "alternate", "href": "/x"}]}
    prop = wt.Property(thing, "on", wt.Value(True), metadata)
    assert prop.as_property_description()["links"] == [
        {"rel": "alternate", "href": "/x"},
        {"rel": "property", "href": "/properties/on"},
    ]
    assert len(metadata["links"]) == 1


def test_href_prefix(level):
    assert level.get_href() == "/properties/level"
    level.set_href_prefix("/2")
    assert level.get_href() == "/2/properties/level"


def test_accessors(thing, level):
    assert level.get_name() == "level"
    assert level.get_thing() is thing
    assert level.get_metadata() is LEVEL_METADATA


def test_metadata_must_be_a_schema(thing):
    with pytest.raises(SchemaError):
        wt.Property(thing, "bad", wt.Value(0), {"type": "not-a-type"})


def test_value_uses_thing_lock(thing, level):
    assert level.value.guard is thing.lock
