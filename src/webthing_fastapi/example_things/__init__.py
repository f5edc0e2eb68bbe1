"""Example Things, used for testing and demonstration purposes.

These can be served from the command line, e.g.::

    webthing-server -j '{"things": ["webthing_fastapi.example_things:make_lamp"]}'

or, to serve both::

    webthing-server -j '{"things": [
        "webthing_fastapi.example_things:make_lamp",
        "webthing_fastapi.example_things:FakeHumiditySensor"
    ]}'
"""

import random
import threading
from typing import Any, Callable, Optional

from ..actions import Action
from ..events import Event
from ..properties import Property
from ..thing import Thing
from ..value import Value


class OverheatedEvent(Event):
    """The lamp has overheated."""

    def __init__(self, thing: Thing, data: Any) -> None:
        """Create the event.

        :param thing: the lamp.
        :param data: the temperature, in degrees Celsius.
        """
        super().__init__(thing, "overheated", data)


class FadeAction(Action):
    """Fade the lamp to a given brightness."""

    def __init__(self, thing: Thing, input: Any) -> None:
        """Create the action.

        :param thing: the lamp.
        :param input: ``{"brightness": ..., "duration": ...}``, which has
            already been validated.
        """
        super().__init__(thing, "fade", input)

    def perform_action(self) -> None:
        """Wait for ``duration`` milliseconds, then set the brightness.

        The lamp then overheats. If the action is cancelled while waiting,
        nothing happens.
        """
        if self.cancel_requested.wait(self.input["duration"] / 1000):
            self.thing.logger.info("Fade %s was cancelled.", self.id)
            return
        self.thing.set_property("brightness", self.input["brightness"])
        self.thing.add_event(OverheatedEvent(self.thing, 102))


FADE_METADATA = {
    "title": "Fade",
    "description": "Fade the lamp to a given level",
    "input": {
        "type": "object",
        "required": ["brightness", "duration"],
        "properties": {
            "brightness": {
                "type": "integer",
                "minimum": 0,
                "maximum": 100,
                "unit": "percent",
            },
            "duration": {
                "type": "integer",
                "minimum": 1,
                "unit": "milliseconds",
            },
        },
    },
}


def make_lamp() -> Thing:
    """Create a dimmable lamp.

    The lamp has an ``on`` property, a ``brightness`` property, a ``fade``
    action and an ``overheated`` event. Changes to the properties are only
    logged, as there is no real hardware.

    :return: the lamp.
    """
    thing = Thing(
        "urn:dev:ops:my-lamp-1234",
        "My Lamp",
        ["OnOffSwitch", "Light"],
        "A web connected lamp",
    )

    def log_change(name: str) -> Callable[[Any], None]:
        def forward(value: Any) -> None:
            thing.logger.info("%s is now %r", name, value)

        return forward

    thing.add_property(
        Property(
            thing,
            "on",
            Value(True, log_change("on")),
            {
                "@type": "OnOffProperty",
                "title": "On/Off",
                "type": "boolean",
                "description": "Whether the lamp is turned on",
            },
        )
    )
    thing.add_property(
        Property(
            thing,
            "brightness",
            Value(50, log_change("brightness")),
            {
                "@type": "BrightnessProperty",
                "title": "Brightness",
                "type": "integer",
                "description": "The level of light from 0-100",
                "minimum": 0,
                "maximum": 100,
                "unit": "percent",
            },
        )
    )
    thing.add_available_action("fade", FADE_METADATA, FadeAction)
    thing.add_available_event(
        "overheated",
        {
            "description": "The lamp has exceeded its safe operating temperature",
            "type": "number",
            "unit": "degree celsius",
        },
    )
    return thing


class FakeHumiditySensor(Thing):
    """A humidity sensor that reports a random reading every few seconds.

    The ``level`` property is read-only: it is updated by a background
    thread, in the same way a driver for real hardware would report readings.
    """

    def __init__(self, poll_interval: Optional[float] = 3.0) -> None:
        """Create the sensor.

        :param poll_interval: the time between readings, in seconds. If this
            is ``None``, no readings are taken until `.poll` is called.
        """
        super().__init__(
            "urn:dev:ops:my-humidity-sensor-1234",
            "My Humidity Sensor",
            ["MultiLevelSensor"],
            "A web connected humidity sensor",
        )
        self.level = Value(0.0)
        self.add_property(
            Property(
                self,
                "level",
                self.level,
                {
                    "@type": "LevelProperty",
                    "title": "Humidity",
                    "type": "number",
                    "description": "The current humidity in %",
                    "minimum": 0,
                    "maximum": 100,
                    "unit": "percent",
                    "readOnly": True,
                },
            )
        )
        self._stop = threading.Event()
        self._poll_thread: Optional[threading.Thread] = None
        if poll_interval is not None:
            self.start_polling(poll_interval)

    def read_from_gpio(self) -> float:
        """Mimic an actual sensor reading."""
        return abs(70.0 * random.random() * (-0.5 + random.random()))

    def poll(self) -> None:
        """Take a reading and update ``level``."""
        reading = self.read_from_gpio()
        self.logger.debug("Setting new humidity level: %f", reading)
        self.level.notify_of_external_update(reading)

    def start_polling(self, interval: float) -> None:
        """Start taking readings in a background thread.

        :param interval: the time between readings, in seconds.
        """

        def run() -> None:
            while not self._stop.wait(interval):
                self.poll()

        self._stop.clear()
        self._poll_thread = threading.Thread(target=run, daemon=True)
        self._poll_thread.start()

    def stop_polling(self) -> None:
        """Stop the background thread, if it is running."""
        self._stop.set()
        if self._poll_thread is not None:
            self._poll_thread.join()
            self._poll_thread = None
