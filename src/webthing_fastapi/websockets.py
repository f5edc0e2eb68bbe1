"""Handle notification of events, property, and action status changes.

Each `.Thing` has one websocket endpoint, at the same path as its Thing
Description. A client that connects becomes a subscriber of that `.Thing`:
it receives a ``propertyStatus`` message whenever a property changes and an
``actionStatus`` message whenever an action changes state. It only receives
``event`` messages for the events it asked for with ``addEventSubscription``.

Notifications are generated in whatever thread changed the `.Thing`, while
the `.Thing`'s lock is held. They are passed to the event loop through the
server's `anyio.from_thread.BlockingPortal` and queued on an unbounded
`anyio` memory object stream, so generating a notification never waits for
the network. A relay task takes messages from the stream and writes them to
the websocket in the order they were generated.

Messages from the client are handled in a worker thread with
`anyio.to_thread.run_sync`, so the event loop never waits for a `.Thing`'s
lock.
"""

from __future__ import annotations
import logging
import math
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, Optional, Protocol

from anyio import (
    BrokenResourceError,
    CancelScope,
    ClosedResourceError,
    create_memory_object_stream,
    create_task_group,
    to_thread,
)
from anyio.abc import ObjectReceiveStream, ObjectSendStream
from anyio.from_thread import BlockingPortal
from fastapi import WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from .actions import start_action
from .exceptions import (
    InvalidActionInputError,
    PropertyError,
    PropertyNotFoundError,
    SerializationError,
    ThingConfigurationError,
    UnknownActionError,
)
from .utilities import serialize
from .webthing_subprotocol import (
    INTERNAL_SERVER_ERROR,
    ActionRequest,
    IncomingMessage,
    error_message,
)

if TYPE_CHECKING:
    from .thing import Thing


_LOGGER = logging.getLogger(__name__)


class Subscriber(Protocol):
    """Something that receives notifications from a `.Thing`.

    ``send_message`` is called while the `.Thing`'s lock is held, so it must
    not block on the network.
    """

    def send_message(self, message: dict[str, Any]) -> None:
        """Queue a message for delivery.

        :param message: the message, as a dictionary.
        """


class WebSocketSubscriber:
    """Deliver notifications from a `.Thing` to one websocket connection."""

    def __init__(self, send_stream: ObjectSendStream, portal: BlockingPortal) -> None:
        """Create a subscriber for a websocket.

        :param send_stream: the stream read by `.relay_notifications_to_websocket`.
        :param portal: a blocking portal for the event loop that owns the stream.
        """
        self._send_stream = send_stream
        self._portal = portal

    def send_message(self, message: dict[str, Any]) -> None:
        """Queue a message to be sent over the websocket.

        This must be called from a thread other than the event loop's. If the
        websocket has already closed, the message is discarded.

        :param message: the message, as a dictionary.
        """
        try:
            self._portal.call(self._send_stream.send_nowait, message)
        except (BrokenResourceError, ClosedResourceError):
            _LOGGER.debug(
                "Dropped %s message: websocket closed.", message["messageType"]
            )


async def relay_notifications_to_websocket(
    websocket: WebSocket, receive_stream: ObjectReceiveStream
) -> None:
    """Relay objects from a stream to a websocket as JSON.

    Messages that can't be serialised are logged and skipped. If the client
    has gone away, relaying stops.

    :param websocket: the WebSocket we are communicating over.
    :param receive_stream: an `anyio.abc.ObjectReceiveStream` that will
        yield objects that we send over the websocket.
    """
    async with receive_stream:
        async for item in receive_stream:
            try:
                content = serialize(item)
            except SerializationError:
                _LOGGER.exception("Could not send a %s message.", item["messageType"])
                continue
            try:
                await websocket.send_json(content)
            except WebSocketDisconnect:
                # Anything still queued is discarded when the stream closes.
                return


def handle_message(
    thing: Thing, subscriber: Subscriber, message: IncomingMessage
) -> list[dict[str, Any]]:
    """Act on a message from a websocket client.

    This calls into the `.Thing`, so it should be run in a worker thread.
    Notifications caused by the message (e.g. ``propertyStatus``) are sent
    to ``subscriber`` in the usual way. Errors are returned, so that they
    can be sent as replies.

    :param thing: the `.Thing` the websocket is attached to.
    :param subscriber: the subscriber for this websocket.
    :param message: the validated message.

    :return: a list of ``error`` replies, which is empty if all went well.
    """
    replies: list[dict[str, Any]] = []
    request = message.model_dump()
    if message.messageType == "setProperty":
        # Each property is set independently: one failure doesn't stop the rest.
        for name, value in message.data.items():
            try:
                thing.set_property(name, value)
            except (PropertyError, PropertyNotFoundError) as e:
                replies.append(error_message(str(e), request=request))
    elif message.messageType == "requestAction":
        for name, params in message.data.items():
            try:
                action_request = ActionRequest.model_validate(params)
                action = thing.perform_action(name, action_request.input)
            except (ValidationError, UnknownActionError, InvalidActionInputError):
                replies.append(error_message("Invalid action request", request=request))
                continue
            except ThingConfigurationError as e:
                thing.logger.exception("Could not create action %s.", name)
                replies.append(
                    error_message(str(e), status=INTERNAL_SERVER_ERROR, request=request)
                )
                continue
            start_action(action)
    elif message.messageType == "addEventSubscription":
        for name in message.data:
            thing.add_event_subscriber(name, subscriber)
    else:
        replies.append(error_message(f"Unknown messageType: {message.messageType}"))
    return replies


def frame_text(frame: Mapping[str, Any]) -> Optional[str]:
    """Extract the text of a websocket frame.

    Binary frames are accepted if they hold UTF-8 text.

    :param frame: an ASGI ``websocket.receive`` message.

    :return: the text of the frame, or ``None`` if it isn't text.
    """
    text = frame.get("text")
    if text is not None:
        return text
    data = frame.get("bytes")
    if data is None:
        return None
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return None


async def process_messages_from_websocket(
    websocket: WebSocket,
    send_stream: ObjectSendStream,
    thing: Thing,
    subscriber: Subscriber,
) -> None:
    r"""Process messages received from a websocket.

    Text frames and UTF-8 binary frames are both accepted. Anything that is
    not a valid message gets an ``Invalid message`` error reply.

    :param websocket: the WebSocket we are communicating over.
    :param send_stream: an `anyio.abc.ObjectSendStream` used to send replies,
        via `.relay_notifications_to_websocket`\ . It is closed when the
        client disconnects.
    :param thing: the `.Thing` we are attached to. The websocket is specific to
        one `.Thing`, and this is it.
    :param subscriber: the subscriber that represents this websocket.
    """
    while True:
        frame = await websocket.receive()
        if frame["type"] == "websocket.disconnect":
            await send_stream.aclose()
            return
        text = frame_text(frame)
        try:
            # A frame that isn't text fails validation as empty JSON.
            message = IncomingMessage.model_validate_json(text or "")
        except ValidationError:
            _LOGGER.warning("Got a bad websocket message: %r", text or frame)
            await send_stream.send(error_message("Invalid message"))
            continue
        replies = await to_thread.run_sync(handle_message, thing, subscriber, message)
        for reply in replies:
            _LOGGER.warning(
                "Websocket message %s failed: %s", text, reply["data"]["message"]
            )
            await send_stream.send(reply)


async def websocket_endpoint(
    thing: Thing, websocket: WebSocket, portal: BlockingPortal
) -> None:
    r"""Handle communication to a client via websocket.

    This function handles a websocket connection to a `.Thing`\ 's websocket
    endpoint. The connection is subscribed to the `.Thing` until it closes,
    at which point it is removed from every subscription.

    :param thing: the `.Thing` the websocket is attached to.
    :param websocket: the web socket that has been created.
    :param portal: the server's blocking portal, used by other threads to
        queue notifications.
    """
    await websocket.accept()
    send_stream, receive_stream = create_memory_object_stream[dict](math.inf)
    subscriber = WebSocketSubscriber(send_stream, portal)
    await to_thread.run_sync(thing.add_subscriber, subscriber)
    try:
        async with create_task_group() as tg:
            tg.start_soon(relay_notifications_to_websocket, websocket, receive_stream)
            tg.start_soon(
                process_messages_from_websocket,
                websocket,
                send_stream,
                thing,
                subscriber,
            )
    finally:
        with CancelScope(shield=True):
            await to_thread.run_sync(thing.remove_subscriber, subscriber)
