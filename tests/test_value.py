"""Test the `.Value` class, which underlies every property."""

import pytest

import webthing_fastapi as wt
from webthing_fastapi.exceptions import ReadOnlyValueError


def test_get_returns_initial_value():
    assert wt.Value(3).get() == 3
    assert wt.Value().get() is None


def test_set_forwards_before_storing():
    """The forwarder is called first, then the value is stored and observed."""
    calls = []
    value = wt.Value(0)

    def forwarder(v):
        # At this point, the old value should still be stored.
        calls.append(("forward", v, value.get()))

    value.value_forwarder = forwarder
    value.set_observer(lambda v: calls.append(("observe", v, value.get())))
    value.set(5)
    assert calls == [("forward", 5, 0), ("observe", 5, 5)]
    assert value.get() == 5


def test_set_without_forwarder_is_refused(mocker):
    observer = mocker.Mock()
    value = wt.Value(1)
    value.set_observer(observer)
    with pytest.raises(ReadOnlyValueError):
        value.set(2)
    assert value.get() == 1
    observer.assert_not_called()


def test_external_update_notifies_once(mocker):
    observer = mocker.Mock()
    forwarder = mocker.Mock()
    value = wt.Value(1, forwarder)
    value.set_observer(observer)
    value.notify_of_external_update(2)
    observer.assert_called_once_with(2)
    # The forwarder is only used for requested changes.
    forwarder.assert_not_called()
    assert value.get() == 2


@pytest.mark.parametrize("update", [1, None])
def test_equal_or_none_update_is_ignored(mocker, update):
    observer = mocker.Mock()
    value = wt.Value(1)
    value.set_observer(observer)
    value.notify_of_external_update(update)
    observer.assert_not_called()
    assert value.get() == 1


@pytest.mark.parametrize("update", [True, 1.0])
def test_update_of_different_type_is_a_change(mocker, update):
    """Values that compare equal but differ in type are still changes."""
    observer = mocker.Mock()
    value = wt.Value(1, mocker.Mock())
    value.set_observer(observer)
    value.set(update)
    observer.assert_called_once_with(update)
    assert value.get() is update


def test_set_equal_value_still_forwards(mocker):
    """Requests are always forwarded, but observers only see changes."""
    forwarder = mocker.Mock()
    observer = mocker.Mock()
    value = wt.Value("a", forwarder)
    value.set_observer(observer)
    value.set("a")
    forwarder.assert_called_once_with("a")
    observer.assert_not_called()


def test_only_one_observer(mocker):
    first = mocker.Mock()
    second = mocker.Mock()
    value = wt.Value(0)
    value.set_observer(first)
    value.set_observer(second)
    value.notify_of_external_update(1)
    first.assert_not_called()
    second.assert_called_once_with(1)
    value.set_observer(None)
    value.notify_of_external_update(2)
    assert second.call_count == 1


def test_guard_is_used(mocker):
    """Updates happen inside the guard supplied by the owner."""
    guard = mocker.MagicMock()
    value = wt.Value(0, mocker.Mock())
    value.guard = guard
    value.set(1)
    assert guard.__enter__.called
    assert guard.__exit__.called
