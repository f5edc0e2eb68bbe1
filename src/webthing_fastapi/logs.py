"""Logging configuration for WebThing-FastAPI.

All loggers in this package sit beneath the ``webthing_fastapi`` logger.
Each `.Thing` gets a child of `.THING_LOGGER`, named after its title, which
is available as ``thing.logger`` and should be used by device code and
action bodies.
"""

import logging


PACKAGE_LOGGER = logging.getLogger("webthing_fastapi")
"""The root logger for the package."""

THING_LOGGER = PACKAGE_LOGGER.getChild("things")
"""The parent of every `.Thing`'s logger."""


def get_thing_logger(name: str) -> logging.Logger:
    """Return the logger for a particular `.Thing`.

    :param name: a name for the Thing, which should be safe to use
        as part of a logger name (see `.slugify`).

    :return: a child of `.THING_LOGGER`.
    """
    return THING_LOGGER.getChild(name)


def configure_thing_logger(level: int = logging.INFO) -> None:
    """Set up logging for the package.

    This sets the level of the package logger and makes sure that messages
    are printed, by adding a `logging.StreamHandler` if there isn't a
    handler already. It is called when a `.ThingServer` is created, and it
    is safe to call it more than once.

    :param level: the logging level for the package logger.
    """
    PACKAGE_LOGGER.setLevel(level)
    if not PACKAGE_LOGGER.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(
            logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        )
        PACKAGE_LOGGER.addHandler(handler)
