"""A class to represent hardware or software Things.

The `.Thing` class enables most of the functionality of this library,
and is the way in to most of its features. A `.Thing` aggregates the
`.Property`, action and event definitions of one device, keeps track of the
actions that have been requested and the events that have occurred, and
notifies websocket subscribers when anything changes.

Concurrency
-----------

A `.Thing` is used from many threads at once: HTTP requests are handled in
a thread pool, each action runs in its own thread, and device code may
report new values from threads of its own. All of the state of a `.Thing`
is protected by a single re-entrant lock, ``thing.lock``. Notifications
are queued for each subscriber while the lock is held, so every subscriber
sees changes in the order they happened.
"""

from __future__ import annotations
import copy
from threading import RLock
from typing import TYPE_CHECKING, Any, Optional, Sequence

from .actions import Action, ActionFactory, AvailableAction
from .events import AvailableEvent, Event
from .exceptions import (
    InvalidActionInputError,
    PropertyNotFoundError,
    ThingConfigurationError,
    UnknownActionError,
)
from .logs import get_thing_logger
from .properties import Property
from .utilities import slugify
from .webthing_subprotocol import (
    action_status_message,
    event_message,
    property_status_message,
)

if TYPE_CHECKING:
    from .websockets import Subscriber


DEFAULT_CONTEXT = "https://webthings.io/schemas"
"""The default ``@context`` of a Thing Description."""


class Thing:
    r"""Represents a Thing, as defined by the Web of Things standard.

    This class should be set up with the properties, actions and events of a
    piece of hardware, and then served with a `.ThingServer`\ .

    * Properties are added with `.Thing.add_property`. Each one wraps a
      `.Value`, which device code can update from any thread.
    * Actions are declared with `.Thing.add_available_action`, supplying an
      `.Action` subclass (or another factory) that does the work.
    * Events are declared with `.Thing.add_available_event` and emitted
      with `.Thing.add_event`.
    """

    def __init__(
        self,
        id: str,
        title: str,
        type_: Optional[str | Sequence[str]] = None,
        description: Optional[str] = None,
        context: str = DEFAULT_CONTEXT,
    ) -> None:
        """Initialise the Thing.

        :param id: the Thing's unique ID, which should be a URI,
            e.g. ``urn:dev:ops:my-lamp-1234``.
        :param title: a human-readable title for the Thing.
        :param type_: the Thing's semantic type(s), e.g. ``["Light"]``.
        :param description: a human-readable description.
        :param context: the ``@context`` of the Thing Description.
        """
        self.id = id
        self.title = title
        self.context = context
        if type_ is None:
            type_ = []
        elif isinstance(type_, str):
            type_ = [type_]
        self.type = list(type_)
        self.description = description
        self.lock = RLock()
        self.logger = get_thing_logger(slugify(title))
        self.properties: dict[str, Property] = {}
        self.available_actions: dict[str, AvailableAction] = {}
        self.available_events: dict[str, AvailableEvent] = {}
        self.actions: dict[str, list[Action]] = {}
        self.events: list[Event] = []
        self.subscribers: set[Subscriber] = set()
        self.href_prefix = ""
        self.ui_href: Optional[str] = None

    def as_thing_description(self) -> dict[str, Any]:
        """Describe this Thing with a Thing Description.

        The server adds some further links (e.g. to the websocket) that
        depend on the request.

        :return: the Thing Description, as a dictionary.
        """
        with self.lock:
            actions = {}
            for name, available_action in self.available_actions.items():
                metadata = copy.deepcopy(available_action.metadata)
                metadata["links"] = [
                    {"rel": "action", "href": f"{self.href_prefix}/actions/{name}"}
                ]
                actions[name] = metadata

            events = {}
            for name, available_event in self.available_events.items():
                metadata = copy.deepcopy(available_event.metadata)
                metadata["links"] = [
                    {"rel": "event", "href": f"{self.href_prefix}/events/{name}"}
                ]
                events[name] = metadata

            td: dict[str, Any] = {
                "id": self.id,
                "title": self.title,
                "@context": self.context,
                "@type": list(self.type),
                "properties": self.get_property_descriptions(),
                "actions": actions,
                "events": events,
            }
        if self.description is not None:
            td["description"] = self.description
        td["links"] = [
            {"rel": "properties", "href": f"{self.href_prefix}/properties"},
            {"rel": "actions", "href": f"{self.href_prefix}/actions"},
            {"rel": "events", "href": f"{self.href_prefix}/events"},
        ]
        if self.ui_href is not None:
            td["links"].append(
                {"rel": "alternate", "mediaType": "text/html", "href": self.ui_href}
            )
        return td

    def get_href(self) -> str:
        """Get the path of this Thing, relative to the server.

        :return: the href prefix, or ``/`` if there is no prefix.
        """
        return self.href_prefix or "/"

    def set_href_prefix(self, prefix: str) -> None:
        """Set the prefix of any hrefs associated with this Thing.

        This is done by the server if more than one `.Thing` is served.
        The prefix is passed on to every property and action.

        :param prefix: the prefix, e.g. ``/0``.
        """
        with self.lock:
            self.href_prefix = prefix
            for prop in self.properties.values():
                prop.set_href_prefix(prefix)
            for action_list in self.actions.values():
                for action in action_list:
                    action.set_href_prefix(prefix)

    def set_ui_href(self, href: Optional[str]) -> None:
        """Set the href of a custom web interface for this Thing.

        :param href: the URL of the interface, or ``None`` to remove it.
        """
        self.ui_href = href

    def get_property_descriptions(self) -> dict[str, Any]:
        """Describe all the properties of this Thing.

        :return: a dictionary mapping names to property descriptions.
        """
        with self.lock:
            return {
                name: prop.as_property_description()
                for name, prop in self.properties.items()
            }

    def get_action_descriptions(
        self, action_name: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Describe the actions that have been requested from this Thing.

        :param action_name: only return actions of this kind, if given.

        :return: a list of action descriptions. Actions of one kind are
            in the order they were requested.
        """
        with self.lock:
            if action_name is None:
                return [
                    action.as_action_description()
                    for action_list in self.actions.values()
                    for action in action_list
                ]
            return [
                action.as_action_description()
                for action in self.actions.get(action_name, [])
            ]

    def get_event_descriptions(
        self, event_name: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Describe the events that have occurred on this Thing.

        :param event_name: only return events of this kind, if given.

        :return: a list of event descriptions, oldest first.
        """
        with self.lock:
            return [
                event.as_event_description()
                for event in self.events
                if event_name is None or event.name == event_name
            ]

    def add_property(self, prop: Property) -> None:
        """Add a property to this Thing.

        :param prop: the property. It should have been created with this
            `.Thing` as its ``thing``.
        """
        with self.lock:
            prop.set_href_prefix(self.href_prefix)
            self.properties[prop.get_name()] = prop

    def remove_property(self, prop: Property) -> None:
        """Remove a property from this Thing.

        :param prop: the property to remove.
        """
        with self.lock:
            self.properties.pop(prop.get_name(), None)

    def find_property(self, property_name: str) -> Optional[Property]:
        """Find a property by name.

        :param property_name: the name of the property.

        :return: the property if found, else ``None``.
        """
        return self.properties.get(property_name)

    def has_property(self, property_name: str) -> bool:
        """Determine whether this Thing has a given property.

        :param property_name: the name of the property.
        """
        return property_name in self.properties

    def get_property(self, property_name: str) -> Any:
        """Get the current value of a property.

        :param property_name: the name of the property.

        :return: the property's value.

        :raise PropertyNotFoundError: if there is no such property.
        """
        prop = self.find_property(property_name)
        if prop is None:
            raise PropertyNotFoundError(f"No property named '{property_name}'.")
        return prop.get_value()

    def get_properties(self) -> dict[str, Any]:
        """Get the current value of every property.

        :return: a dictionary mapping property names to values.
        """
        with self.lock:
            return {name: prop.get_value() for name, prop in self.properties.items()}

    def set_property(self, property_name: str, value: Any) -> None:
        """Set the value of a property.

        :param property_name: the name of the property.
        :param value: the requested value.

        :raise PropertyNotFoundError: if there is no such property.
        :raise PropertyError: if the value is not valid for the property.
        """
        prop = self.find_property(property_name)
        if prop is None:
            raise PropertyNotFoundError(f"No property named '{property_name}'.")
        prop.set_value(value)

    def add_available_action(
        self,
        name: str,
        metadata: Optional[dict[str, Any]] = None,
        factory: Optional[ActionFactory] = None,
    ) -> None:
        """Declare an action that may be requested from this Thing.

        :param name: the name of the action.
        :param metadata: the action's metadata, e.g. ``title``,
            ``description`` and an ``input`` JSON Schema.
        :param factory: called as ``factory(thing, input)`` to create each
            `.Action`. This is usually an `.Action` subclass whose
            ``__init__`` takes ``(thing, input)`` and passes ``name`` on to
            `.Action.__init__`. If omitted, a plain `.Action` that does
            nothing is created.
        """
        if factory is None:

            def factory(thing: Thing, input: Any) -> Action:
                return Action(thing, name, input)

        with self.lock:
            self.available_actions[name] = AvailableAction(metadata or {}, factory)
            self.actions.setdefault(name, [])

    def perform_action(self, action_name: str, input: Any = None) -> Action:
        """Create an action, ready to be run.

        The input is validated before anything is created. If it is valid,
        the `.Action` is created, added to this Thing's list of actions, and
        subscribers are notified that it has been ``created``.

        The action is **not** started: the caller should start it, normally
        with `.start_action`.

        :param action_name: the name of the action kind.
        :param input: the input to the action, if any.

        :return: the new `.Action`.

        :raise UnknownActionError: if there is no such action.
        :raise InvalidActionInputError: if the input does not match the
            action's schema.
        :raise ThingConfigurationError: if the factory creates an action
            with a different name.
        """
        with self.lock:
            try:
                action_type = self.available_actions[action_name]
            except KeyError as e:
                raise UnknownActionError(f"No action named '{action_name}'.") from e
            if not action_type.validate_action_input(input):
                raise InvalidActionInputError(
                    f"Invalid input for action '{action_name}'."
                )
            action = action_type.factory(self, input)
            if action.get_name() != action_name:
                raise ThingConfigurationError(
                    f"The factory for '{action_name}' created an action named "
                    f"{action.get_name()!r}. Action subclasses should take "
                    "(thing, input) and pass their name to Action.__init__."
                )
            action.set_href_prefix(self.href_prefix)
            self.actions[action_name].append(action)
            self.action_notify(action)
            return action

    def get_action(self, action_name: str, action_id: str) -> Optional[Action]:
        """Get an action instance.

        :param action_name: the name of the action kind.
        :param action_id: the ID of the action.

        :return: the action, or ``None`` if it was not found.
        """
        with self.lock:
            for action in self.actions.get(action_name, []):
                if action.get_id() == action_id:
                    return action
        return None

    def remove_action(self, action_name: str, action_id: str) -> bool:
        """Cancel an action and stop tracking it.

        Cancellation is advisory (see `.Action.cancel`). Once removed, the
        action no longer appears in the list of actions and no further
        notifications are sent about it.

        :param action_name: the name of the action kind.
        :param action_id: the ID of the action.

        :return: whether the action was found.
        """
        with self.lock:
            action = self.get_action(action_name, action_id)
            if action is None:
                return False
            action.cancel()
            self.actions[action_name].remove(action)
            return True

    def add_available_event(
        self, name: str, metadata: Optional[dict[str, Any]] = None
    ) -> None:
        """Declare an event that clients may subscribe to.

        :param name: the name of the event.
        :param metadata: the event's metadata, e.g. ``type`` and
            ``description``.
        """
        with self.lock:
            self.available_events[name] = AvailableEvent(metadata)

    def add_event(self, event: Event) -> None:
        """Log an event and notify its subscribers.

        :param event: the event that occurred.
        """
        with self.lock:
            self.events.append(event)
            self.event_notify(event)

    def add_subscriber(self, ws: Subscriber) -> None:
        """Add a subscriber, who will be told about property and action changes.

        :param ws: the subscriber, usually a websocket connection.
        """
        with self.lock:
            self.subscribers.add(ws)

    def remove_subscriber(self, ws: Subscriber) -> None:
        """Remove a subscriber, including from every event it subscribed to.

        :param ws: the subscriber.
        """
        with self.lock:
            self.subscribers.discard(ws)
            for available_event in self.available_events.values():
                available_event.remove_subscriber(ws)

    def add_event_subscriber(self, name: str, ws: Subscriber) -> None:
        """Subscribe to an event.

        Unknown event names are ignored.

        :param name: the name of the event.
        :param ws: the subscriber.
        """
        with self.lock:
            if name in self.available_events:
                self.available_events[name].add_subscriber(ws)

    def remove_event_subscriber(self, name: str, ws: Subscriber) -> None:
        """Unsubscribe from an event.

        :param name: the name of the event.
        :param ws: the subscriber.
        """
        with self.lock:
            if name in self.available_events:
                self.available_events[name].remove_subscriber(ws)

    def property_notify(self, prop: Property) -> None:
        """Notify all subscribers of a property change.

        :param prop: the property that changed.
        """
        with self.lock:
            message = property_status_message(prop.get_name(), prop.get_value())
            self._send_to(self.subscribers, message)

    def action_notify(self, action: Action) -> None:
        """Notify all subscribers of an action status change.

        Actions that have been removed are no longer reported.

        :param action: the action whose status changed.
        """
        with self.lock:
            if action not in self.actions.get(action.get_name(), []):
                return
            message = action_status_message(action.as_action_description())
            self._send_to(self.subscribers, message)

    def event_notify(self, event: Event) -> None:
        """Notify the subscribers of an event.

        Events of kinds that have not been declared are not sent to anyone.

        :param event: the event that occurred.
        """
        with self.lock:
            available_event = self.available_events.get(event.name)
            if available_event is None:
                return
            message = event_message(event.as_event_description())
            self._send_to(available_event.subscribers, message)

    def _send_to(self, subscribers: set[Subscriber], message: dict[str, Any]) -> None:
        """Send a message to each of a set of subscribers.

        Delivery is best-effort: if sending to one subscriber fails, the
        error is logged and the others still receive the message.

        :param subscribers: the subscribers to send to. This is copied
            before it is iterated over.
        :param message: the message to send.
        """
        for subscriber in list(subscribers):
            try:
                subscriber.send_message(message)
            except Exception:  # skipcq: PYL-W0703
                self.logger.warning(
                    "Failed to send %s message to %r.",
                    message["messageType"],
                    subscriber,
                    exc_info=True,
                )
