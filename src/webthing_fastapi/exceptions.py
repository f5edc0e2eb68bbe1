"""A submodule for custom WebThing-FastAPI Exceptions."""


# An __all__ for this module is less than helpful, unless we have an
# automated check that everything's included.


class PropertyError(ValueError):
    """A value could not be written to a `.Property`.

    This is raised by `.Property.set_value` if the new value fails
    validation against the property's metadata. The stored value is left
    unchanged. Over HTTP it is reported with a ``400`` status code, and
    over a websocket as an ``error`` message.
    """


class ReadOnlyPropertyError(PropertyError):
    """A property is read-only.

    The property's metadata sets ``readOnly``, so requests to change it
    are refused. This is checked before any other validation and is
    reported over HTTP with a ``403`` status code.
    """


class ReadOnlyValueError(RuntimeError):
    """A `.Value` with no forwarder was asked to change.

    Values without a ``value_forwarder`` represent sensor readings, which
    may only be updated with `.Value.notify_of_external_update`. Calling
    `.Value.set` on them is a programming error.
    """


class NotFoundError(LookupError):
    """A Thing, Property, Action or Action instance does not exist.

    Subclasses of this error are reported with a ``404`` status code.
    """


class ThingNotFoundError(NotFoundError):
    """No `.Thing` is served at the requested index."""


class PropertyNotFoundError(NotFoundError):
    """The `.Thing` has no property with the requested name."""


class UnknownActionError(NotFoundError):
    """The `.Thing` has no available action with the requested name.

    Note that requesting an unknown action over HTTP is a malformed
    request, so this is reported with a ``400`` status code when it
    arises from a ``POST``.
    """


class InvalidActionInputError(ValueError):
    """The input supplied for an action does not match its schema.

    When this is raised, no `.Action` has been created and nothing has
    been added to the `.Thing`'s list of actions.
    """


class MalformedRequestError(ValueError):
    """A request body or websocket message has the wrong shape.

    For example, a ``PUT`` body that doesn't contain the property name, or
    a ``POST`` body requesting more than one action.
    """


class SerializationError(RuntimeError):
    """A value could not be converted to JSON.

    This is fatal for the request that triggered it, which will fail with
    a ``500`` status code, but it does not stop the server.
    """


class ServerNotRunningError(RuntimeError):
    """The ThingServer is not running.

    This exception is raised when a function assumes the ThingServer is
    running, and it is not. This might be because the function needs to call
    code in the async event loop.
    """


class ThingConfigurationError(RuntimeError):
    """An object named in the server configuration is not a usable Thing.

    Each entry in the configuration should import a `.Thing` instance,
    a `.Thing` subclass, or a function returning a `.Thing`.
    """
