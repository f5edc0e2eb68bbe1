r"""WebThing-FastAPI.

This is the top level module for WebThing-FastAPI, a library for serving
Web Things over HTTP and websockets using Python.

This module contains a number of convenience
imports and is intended to be imported using:

.. code-block:: python

    import webthing_fastapi as wt

    thing = wt.Thing("urn:dev:ops:my-lamp-1234", "My Lamp", ["Light"])
    thing.add_property(
        wt.Property(thing, "on", wt.Value(True, print), {"type": "boolean"})
    )
    server = wt.ThingServer(thing)

Symbols in the top-level module mostly exist elsewhere in
the package, but should be imported from here as a preference, to ensure
code does not break if modules are rearranged.
"""

from .value import Value
from .properties import Property
from .actions import Action, ActionStatus, AvailableAction, start_action
from .events import Event, AvailableEvent
from .thing import Thing
from . import exceptions
from .exceptions import PropertyError
from .server import ThingServer, cli
from .server.config_model import ThingConfig, ThingServerConfig

# The symbols in __all__ are part of our public API.
# They are imported when using `import webthing_fastapi as wt`.
__all__ = [
    "Value",
    "Property",
    "Action",
    "ActionStatus",
    "AvailableAction",
    "start_action",
    "Event",
    "AvailableEvent",
    "Thing",
    "exceptions",
    "PropertyError",
    "ThingServer",
    "cli",
    "ThingConfig",
    "ThingServerConfig",
]
