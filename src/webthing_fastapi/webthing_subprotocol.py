"""WebThing WebSocket subprotocol models.

This module defines models for the messages sent over websockets. Every
message, in either direction, is a JSON object of the form::

    {"messageType": "...", "data": {...}}

Clients may send ``setProperty``, ``requestAction`` and
``addEventSubscription`` messages. The server sends ``propertyStatus``,
``actionStatus`` and ``event`` notifications, and ``error`` replies.

Outgoing messages are built as plain dictionaries by the functions in this
module, as they are generated in many threads and only serialised when they
are written to the websocket.
"""

from typing import Any, Literal, Optional
from pydantic import BaseModel, ConfigDict


ClientMessageType = Literal["setProperty", "requestAction", "addEventSubscription"]
"""The message types a client may send."""

ServerMessageType = Literal["propertyStatus", "actionStatus", "event", "error"]
"""The message types the server sends."""

BAD_REQUEST = "400 Bad Request"
INTERNAL_SERVER_ERROR = "500 Internal Server Error"


class IncomingMessage(BaseModel):
    """A message received from a websocket client.

    Both fields are required. The type of message is not checked here, so
    that unknown types may be reported back to the client.
    """

    model_config = ConfigDict(strict=True)

    messageType: str
    data: dict[str, Any]


class ActionRequest(BaseModel):
    """One entry in the ``data`` of a ``requestAction`` message.

    The ``input`` is validated later, against the action's own schema.
    """

    input: Any = None


def error_message(
    message: str,
    status: str = BAD_REQUEST,
    request: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build an ``error`` reply.

    :param message: a human-readable description of the problem.
    :param status: the HTTP-style status line.
    :param request: the message that caused the error, if it should be
        echoed back to the client.

    :return: the message, as a dictionary.
    """
    data: dict[str, Any] = {"status": status, "message": message}
    if request is not None:
        data["request"] = request
    return {"messageType": "error", "data": data}


def property_status_message(name: str, value: Any) -> dict[str, Any]:
    """Build a ``propertyStatus`` notification.

    :param name: the property name.
    :param value: the new value.

    :return: the message, as a dictionary.
    """
    return {"messageType": "propertyStatus", "data": {name: value}}


def action_status_message(description: dict[str, Any]) -> dict[str, Any]:
    """Build an ``actionStatus`` notification.

    :param description: the result of `.Action.as_action_description`.

    :return: the message, as a dictionary.
    """
    return {"messageType": "actionStatus", "data": description}


def event_message(description: dict[str, Any]) -> dict[str, Any]:
    """Build an ``event`` notification.

    :param description: the result of `.Event.as_event_description`.

    :return: the message, as a dictionary.
    """
    return {"messageType": "event", "data": description}
