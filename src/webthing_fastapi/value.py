"""An observable value, underlying each `.Property`.

A `.Value` sits between the hardware and the web API: it holds
the most recent reading or setting, forwards requested changes to the
device, and tells its owner when the stored value changes.

There are two ways to change a `.Value`:

* `.Value.set` is used for requests, e.g. from an HTTP ``PUT``. The new value
  is passed to the ``value_forwarder`` (which should update the hardware)
  and then stored.
* `.Value.notify_of_external_update` is used by device code to report what
  the hardware is actually doing. The forwarder is not called.

In both cases, observers are only notified if the value has changed.
"""

from __future__ import annotations
from contextlib import AbstractContextManager, nullcontext
from typing import Any, Callable, Optional

from .exceptions import ReadOnlyValueError


class Value:
    """A container for a single value that notifies its owner of changes.

    `.Value` does not do any locking itself. A `.Property` will set
    ``guard`` to the lock of its `.Thing`, so that changes are serialised
    with everything else happening on that `.Thing`.
    """

    def __init__(
        self,
        initial_value: Any = None,
        value_forwarder: Optional[Callable[[Any], None]] = None,
    ) -> None:
        """Create a value.

        :param initial_value: the starting value.
        :param value_forwarder: a function that will be called with each
            new value requested by `.Value.set`. It should update the
            device. If it is omitted, the value is read-only, i.e. it may
            only be updated by `.Value.notify_of_external_update`.
        """
        self.last_value = initial_value
        self.value_forwarder = value_forwarder
        self._observer: Optional[Callable[[Any], None]] = None
        self.guard: AbstractContextManager = nullcontext()

    def set_observer(self, observer: Optional[Callable[[Any], None]]) -> None:
        """Set the function that is called when the value changes.

        There is only ever one observer, which is normally the owning
        `.Property`. Setting a new observer replaces the old one.

        :param observer: a function accepting the new value, or ``None``
            to remove the observer.
        """
        self._observer = observer

    def set(self, value: Any) -> None:
        """Request a new value.

        The new value is passed to the forwarder first, so that the hardware
        is updated, and then stored as if the device had reported it.

        :param value: the new value.

        :raise ReadOnlyValueError: if there is no forwarder.
        """
        if self.value_forwarder is None:
            raise ReadOnlyValueError("This value has no forwarder, so can't be set.")
        with self.guard:
            self.value_forwarder(value)
            self.notify_of_external_update(value)

    def get(self) -> Any:
        """Return the most recent value.

        :return: the stored value.
        """
        return self.last_value

    def notify_of_external_update(self, value: Any) -> None:
        """Store a new value, reported by the device.

        If ``value`` is ``None``, or equal to the stored value and of the
        same type, this does nothing. So ``True`` replaces ``1``, even
        though Python considers them equal. Otherwise the value is stored
        and the observer (if any) is called once.

        :param value: the new value.
        """
        with self.guard:
            if value is None or _same_value(value, self.last_value):
                return
            self.last_value = value
            if self._observer is not None:
                self._observer(value)


def _same_value(a: Any, b: Any) -> bool:
    """Check two values are equal and of the same type, so ``1`` is not ``1.0``."""
    return type(a) is type(b) and a == b
