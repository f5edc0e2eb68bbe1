"""Properties of a `.Thing`.

A `.Property` gives a `.Value` a name and some metadata, and attaches it
to a `.Thing`. The metadata follows the Thing Description conventions, which
means it is also a JSON Schema: ``type``, ``minimum``, ``maximum``,
``enum`` etc. are used to validate new values, and ``readOnly`` stops
clients from writing to the property at all.

Device code that needs to report a reading should call
`.Value.notify_of_external_update` on the property's value, which skips
validation: it represents what the hardware is really doing.
"""

from __future__ import annotations
import copy
from typing import TYPE_CHECKING, Any, Optional

from jsonschema.exceptions import ValidationError
from jsonschema.protocols import Validator

from .exceptions import PropertyError, ReadOnlyPropertyError
from .utilities import compile_schema, validate_against_schema
from .value import Value

if TYPE_CHECKING:
    from .thing import Thing


class Property:
    """A named, observable value belonging to a `.Thing`."""

    def __init__(
        self,
        thing: Thing,
        name: str,
        value: Value,
        metadata: Optional[dict[str, Any]] = None,
    ) -> None:
        """Create a property.

        :param thing: the `.Thing` this property belongs to. Changes to the
            value are reported to it, and it provides the lock used to
            serialise them.
        :param name: the name of the property, unique within the `.Thing`.
        :param value: the `.Value` holding the property's state.
        :param metadata: a dictionary describing the property, e.g.
            ``{"type": "integer", "minimum": 0, "unit": "percent"}``.
            This is used both in the Thing Description and to validate
            new values.

        :raise jsonschema.exceptions.SchemaError: if ``metadata`` is not
            a valid JSON Schema.
        """
        self.thing = thing
        self.name = name
        self.value = value
        self.href_prefix = ""
        self.href = f"/properties/{self.name}"
        self.metadata: dict[str, Any] = metadata if metadata is not None else {}
        self._validator: Validator = compile_schema(self.metadata)

        # Changes to the value are serialised by the Thing's lock, and
        # reported to the Thing so it can notify subscribers.
        self.value.guard = thing.lock
        self.value.set_observer(self._value_changed)

    def _value_changed(self, _new_value: Any) -> None:
        """Tell the `.Thing` that our value has changed.

        :param _new_value: the new value. This is not used, as the
            `.Thing` reads it back from the property.
        """
        self.thing.property_notify(self)

    @property
    def read_only(self) -> bool:
        """Whether this property refuses requests to change it.

        This is true if the metadata sets ``readOnly``, or if the underlying
        `.Value` has no forwarder (i.e. it is a sensor reading).
        """
        if self.value.value_forwarder is None:
            return True
        return bool(self.metadata.get("readOnly", False))

    def validate_value(self, value: Any) -> None:
        """Check a value may be written to this property.

        :param value: the value to check.

        :raise ReadOnlyPropertyError: if the property is read-only.
        :raise PropertyError: if the value does not match the property's
            metadata.
        """
        if self.read_only:
            raise ReadOnlyPropertyError("Read-only property")
        try:
            validate_against_schema(self._validator, value)
        except ValidationError as e:
            raise PropertyError("Invalid property value") from e

    def as_property_description(self) -> dict[str, Any]:
        """Describe the property for a Thing Description.

        :return: a copy of the metadata, with a link to the property
            added to ``links``.
        """
        description = copy.deepcopy(self.metadata)
        link = {"rel": "property", "href": self.get_href()}
        description.setdefault("links", []).append(link)
        return description

    def set_href_prefix(self, prefix: str) -> None:
        """Set the prefix of any hrefs associated with this property.

        :param prefix: the prefix, e.g. ``/0`` when several Things are served.
        """
        self.href_prefix = prefix

    def get_href(self) -> str:
        """Get the href of this property.

        :return: the path of the property's HTTP endpoint.
        """
        return self.href_prefix + self.href

    def get_value(self) -> Any:
        """Get the current value of this property.

        :return: the stored value.
        """
        return self.value.get()

    def set_value(self, value: Any) -> None:
        """Validate and set a new value.

        If the value is accepted, subscribers of the `.Thing` are notified
        before this method returns. If it is rejected, nothing changes.

        :param value: the requested value.
        """
        with self.thing.lock:
            self.validate_value(value)
            self.value.set(value)

    def get_name(self) -> str:
        """Get the name of this property."""
        return self.name

    def get_thing(self) -> Thing:
        """Get the `.Thing` this property belongs to."""
        return self.thing

    def get_metadata(self) -> dict[str, Any]:
        """Get the metadata associated with this property."""
        return self.metadata
