"""Actions module.

An action is a piece of work, requested by a client, that
runs in the background. Each request creates a new `.Action` instance with
its own ID, which may be polled over HTTP and whose progress is pushed to
websocket subscribers.

The kinds of action a `.Thing` supports are registered with
`.Thing.add_available_action`, which stores an `.AvailableAction`: the
metadata (including a JSON Schema for the input) and a factory that
creates the `.Action`. Usually the factory is an `.Action` subclass whose
``__init__`` takes ``(thing, input)`` and passes its own name to
`.Action.__init__`, and which overrides `.Action.perform_action`.

Lifecycle
---------

Every action goes through exactly three states, in order:

``created``
    The action has been validated, constructed and added to its `.Thing`.
``pending``
    The action's thread has started and `.Action.perform_action` is running.
``completed``
    `.Action.perform_action` has returned (or raised an exception, which
    is logged). ``timeCompleted`` is set.

Subscribers are notified of each transition. The body of the action runs
without holding the `.Thing`'s lock, so a slow action never blocks the
HTTP or websocket API.
"""

from __future__ import annotations
from enum import Enum
import logging
from threading import Event, Thread
from typing import TYPE_CHECKING, Any, Callable, Optional, Union
import uuid

from jsonschema.exceptions import ValidationError
from jsonschema.protocols import Validator

from .utilities import compile_schema, timestamp, validate_against_schema

if TYPE_CHECKING:
    # We only need these imports for type hints, so this avoids circular imports.
    from .thing import Thing


__all__ = [
    "ActionStatus",
    "Action",
    "ActionFactory",
    "AvailableAction",
    "ActionRunner",
    "start_action",
]

_LOGGER = logging.getLogger(__name__)


class ActionStatus(str, Enum):
    """The current status of an `.Action`."""

    CREATED = "created"
    """The `.Action` has been created but not started."""
    PENDING = "pending"
    """The `.Action` is running in its thread."""
    COMPLETED = "completed"
    """The `.Action` has finished."""


class Action:
    """An action that runs in the background.

    Subclass this and override `.Action.perform_action` to define what the
    action does. To be used as a factory with `.Thing.add_available_action`,
    a subclass must also define ``__init__(self, thing, input)`` and pass the
    registered name on, e.g. ``super().__init__(thing, "fade", input)``.
    The input supplied by the client is available as
    ``self.input`` and the `.Thing` as ``self.thing``.

    If the action may run for a long time, it should check
    ``self.cancel_requested`` periodically and stop early if it is set.
    Cancellation is advisory: nothing forces the action to stop.
    """

    def __init__(
        self,
        thing: Thing,
        name: str,
        input: Any = None,
        id: Optional[str] = None,
    ) -> None:
        """Initialise an action.

        :param thing: the `.Thing` this action belongs to.
        :param name: the name of the action kind.
        :param input: the (already validated) input to the action.
        :param id: a unique ID. A new UUID will be generated if this
            is omitted.
        """
        self.id = id if id is not None else str(uuid.uuid4())
        self.thing = thing
        self.name = name
        self.input = input
        self.href_prefix = ""
        self.href = f"/actions/{self.name}/{self.id}"
        self.status = ActionStatus.CREATED
        self.time_requested = timestamp()
        self.time_completed: Optional[str] = None
        self.cancel_requested = Event()

    def as_action_description(self) -> dict[str, Any]:
        """Describe the action, as returned over HTTP and websockets.

        :return: a dictionary with one key (the action's name) whose value
            holds the ``href``, ``status``, times, and ``input``.
        """
        description: dict[str, Any] = {
            "href": self.get_href(),
            "timeRequested": self.time_requested,
            "status": self.status.value,
        }
        if self.input is not None:
            description["input"] = self.input
        if self.time_completed is not None:
            description["timeCompleted"] = self.time_completed
        return {self.name: description}

    def set_href_prefix(self, prefix: str) -> None:
        """Set the prefix of any hrefs associated with this action.

        :param prefix: the prefix, e.g. ``/0`` when several Things are served.
        """
        self.href_prefix = prefix

    def get_href(self) -> str:
        """Get the href of this action instance."""
        return self.href_prefix + self.href

    def get_id(self) -> str:
        """Get the unique ID of this action instance."""
        return self.id

    def get_name(self) -> str:
        """Get the name of the action kind."""
        return self.name

    def get_status(self) -> ActionStatus:
        """Get the current status of the action."""
        return self.status

    def get_thing(self) -> Thing:
        """Get the `.Thing` this action belongs to."""
        return self.thing

    def get_input(self) -> Any:
        """Get the input supplied when the action was requested."""
        return self.input

    def start(self) -> None:
        """Run the action, updating its status as it goes.

        This is normally called in a dedicated thread by `.ActionRunner`.
        The status moves to ``pending``, `.Action.perform_action` is run,
        and then `.Action.finish` marks it ``completed``.

        Exceptions raised by `.Action.perform_action` are logged to the
        `.Thing`'s logger and do not stop the action completing.

        :raise RuntimeError: if the action has already been started.
        """
        with self.thing.lock:
            if self.status is not ActionStatus.CREATED:
                raise RuntimeError(f"Action {self.id} has already been started.")
            self.status = ActionStatus.PENDING
            self.thing.action_notify(self)
        try:
            self.perform_action()
        except Exception:  # skipcq: PYL-W0703
            self.thing.logger.exception(
                "Action %s (%s) raised an exception.", self.name, self.id
            )
        finally:
            self.finish()

    def perform_action(self) -> None:
        """Do the work of the action.

        This does nothing by default: override it in a subclass. It runs
        in its own thread, without holding the `.Thing`'s lock.
        """

    def cancel(self) -> None:
        """Ask the action to stop.

        This sets ``self.cancel_requested``. The action will only stop
        early if `.Action.perform_action` checks for it. Subclasses may
        override this to interrupt hardware, but should call
        ``super().cancel()``.
        """
        self.cancel_requested.set()

    def finish(self) -> None:
        """Mark the action as completed and notify subscribers."""
        with self.thing.lock:
            self.status = ActionStatus.COMPLETED
            self.time_completed = timestamp()
            self.thing.action_notify(self)


ActionFactory = Union[type[Action], Callable[["Thing", Any], Action]]
"""Something that creates an `.Action`, given a `.Thing` and the input."""


class AvailableAction:
    """A kind of action that may be requested from a `.Thing`."""

    def __init__(self, metadata: dict[str, Any], factory: ActionFactory) -> None:
        """Describe an action that may be requested.

        :param metadata: the action's metadata, as it will appear in the
            Thing Description. If it contains ``input``, that is used as a
            JSON Schema to validate the input of each request.
        :param factory: called as ``factory(thing, input)`` to create each
            `.Action` instance. The actions it creates must have the name
            the action is registered under.
        """
        self.metadata = metadata
        self.factory = factory
        self.schema: Optional[Validator] = None
        if "input" in metadata:
            self.schema = compile_schema(metadata["input"])

    def validate_action_input(self, action_input: Any) -> bool:
        """Check whether an input is acceptable for this action.

        :param action_input: the input supplied by the client, or ``None``
            if none was supplied. Missing input is treated as an empty
            object if there is a schema.

        :return: whether the input is valid.
        """
        if self.schema is None:
            return True
        if action_input is None:
            action_input = {}
        try:
            validate_against_schema(self.schema, action_input)
        except ValidationError as e:
            _LOGGER.debug("Rejected action input %r: %s", action_input, e.message)
            return False
        return True


class ActionRunner(Thread):
    """A daemon thread that runs a single `.Action`."""

    def __init__(self, action: Action) -> None:
        """Prepare to run an action.

        :param action: the action to run. It should have been created by
            `.Thing.perform_action`.
        """
        Thread.__init__(self, daemon=True, name=f"action-{action.name}-{action.id}")
        self.action = action

    def run(self) -> None:
        """Run the action."""
        self.action.start()


def start_action(action: Action) -> ActionRunner:
    """Start running an action in a new thread.

    :param action: the action to run.

    :return: the `.ActionRunner` thread, which has been started.
    """
    runner = ActionRunner(action)
    runner.start()
    return runner
