"""Events emitted by a `.Thing`.

An `.Event` records that something happened, at a particular time. Events
are added to a `.Thing` with `.Thing.add_event`, which keeps them in an
in-memory log and pushes them to websocket clients that have subscribed
to that kind of event.

Event kinds must be declared with `.Thing.add_available_event` before
clients may subscribe to them. Events of undeclared kinds are still logged,
but they are never pushed to anyone.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Any, Optional

from .utilities import timestamp

if TYPE_CHECKING:
    from .thing import Thing
    from .websockets import Subscriber


class Event:
    """An event that has occurred on a `.Thing`.

    Subclasses may fix the name, e.g. ``OverheatedEvent(thing, 102)``.
    Events should not be modified after they are created.
    """

    def __init__(self, thing: Thing, name: str, data: Any = None) -> None:
        """Create an event, timestamped now.

        :param thing: the `.Thing` that generated the event.
        :param name: the name of the event kind.
        :param data: optional data associated with the event.
        """
        self._thing = thing
        self._name = name
        self._data = data
        self._time = timestamp()

    def as_event_description(self) -> dict[str, Any]:
        """Describe the event, as returned over HTTP and websockets.

        :return: a dictionary with one key (the event's name) whose value
            holds the timestamp and any data.
        """
        description: dict[str, Any] = {"timestamp": self._time}
        if self._data is not None:
            description["data"] = self._data
        return {self._name: description}

    @property
    def thing(self) -> Thing:
        """The `.Thing` that generated the event."""
        return self._thing

    @property
    def name(self) -> str:
        """The name of the event kind."""
        return self._name

    @property
    def data(self) -> Any:
        """The data associated with the event, if any."""
        return self._data

    @property
    def time(self) -> str:
        """When the event occurred, as an ISO 8601 string."""
        return self._time


class AvailableEvent:
    """A kind of event that clients may subscribe to.

    This holds the event's metadata for the Thing Description, and the set
    of websocket subscribers who asked to receive it.
    """

    def __init__(self, metadata: Optional[dict[str, Any]] = None) -> None:
        """Declare an event kind.

        :param metadata: the event's metadata, e.g. ``type`` and
            ``description``.
        """
        self.metadata: dict[str, Any] = metadata if metadata is not None else {}
        self.subscribers: set[Subscriber] = set()

    def add_subscriber(self, ws: Subscriber) -> None:
        """Add a subscriber to this event.

        :param ws: the subscriber.
        """
        self.subscribers.add(ws)

    def remove_subscriber(self, ws: Subscriber) -> None:
        """Remove a subscriber from this event, if it was subscribed.

        :param ws: the subscriber.
        """
        self.subscribers.discard(ws)
