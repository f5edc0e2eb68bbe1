"""Code supporting the WebThing server.

WebThing-FastAPI wraps the `fastapi.FastAPI` application in a `.ThingServer`,
which serves one or more `.Thing` instances over HTTP and websockets.

If one `.Thing` is served, its Thing Description is at the root of the
server (or at ``base_path``). If several are served, each one is available
at ``<base_path>/<index>`` and the root returns a list of all their
Thing Descriptions.
"""

from __future__ import annotations
from collections.abc import Mapping, Sequence
from contextlib import asynccontextmanager
from typing import Annotated, Any, AsyncGenerator, Optional

from anyio.from_thread import BlockingPortal
from fastapi import (
    Body,
    Depends,
    FastAPI,
    HTTPException,
    Request,
    Response,
    WebSocket,
)
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.trustedhost import TrustedHostMiddleware

from ..actions import start_action
from ..exceptions import (
    InvalidActionInputError,
    MalformedRequestError,
    PropertyError,
    ReadOnlyPropertyError,
    SerializationError,
    ServerNotRunningError,
    ThingConfigurationError,
    ThingNotFoundError,
    UnknownActionError,
)
from ..logs import configure_thing_logger
from ..thing import Thing
from ..utilities import serialize
from ..websockets import websocket_endpoint
from .config_model import ThingServerConfig


JsonBody = Annotated[Any, Body()]
"""A request body that may be any JSON value, checked by the endpoint."""


def thing_from_request(request: Request) -> Thing:
    """Find the `.Thing` addressed by a request.

    This is used as a FastAPI dependency, via `.ThingDep`.

    :param request: is supplied automatically by FastAPI.

    :return: the `.Thing`.

    :raise HTTPException: with code ``404`` if there is no such Thing.
    """
    thing_server: ThingServer = request.app.state.thing_server
    try:
        return thing_server.thing_at(request.path_params.get("thing_index"))
    except ThingNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e


ThingDep = Annotated[Thing, Depends(thing_from_request)]
"""The `.Thing` addressed by the path of a request."""


class ThingServer:
    """Use FastAPI to serve `.Thing` instances.

    The `.ThingServer` sets up a `fastapi.FastAPI` application and uses it
    to expose the capabilities of `.Thing` instances over HTTP.

    There are several functions of a `.ThingServer`:

    * Add HTTP endpoints for the properties, actions and events of each
      `.Thing`, and a websocket endpoint for notifications.
    * Configure the server to allow cross-origin requests (required if
      we use a web app that is not served from the `.ThingServer`), and
      optionally to check the ``Host`` header.
    * Allow threaded code to call functions in the event loop, by providing
      an `anyio.from_thread.BlockingPortal`. This is how notifications get
      from `.Thing` code to the websockets.
    """

    def __init__(
        self,
        things: Thing | Sequence[Thing],
        name: str = "WebThing server",
        base_path: str = "",
        allowed_hosts: Optional[Sequence[str]] = None,
    ) -> None:
        """Initialise a WebThing server.

        Setting up the `.ThingServer` involves creating the underlying
        `fastapi.FastAPI` app, setting its lifespan function (used to
        create the blocking portal), configuring middleware, and adding the
        endpoints of every `.Thing`.

        :param things: the `.Thing` to serve, or a sequence of them. If
            more than one is given, each is served under its index.
        :param name: the name of the server, used when several Things are
            served.
        :param base_path: a prefix for every path on the server, e.g.
            ``/things``. A trailing slash is removed.
        :param allowed_hosts: if given, requests with a ``Host`` header not
            in this list are rejected.

        :raise ValueError: if there are no Things to serve.
        """
        if isinstance(things, Thing):
            things = [things]
        if len(things) == 0:
            raise ValueError("A ThingServer needs at least one Thing to serve.")
        self._things: list[Thing] = list(things)
        self.name = name
        self.base_path = base_path.rstrip("/")
        self.allowed_hosts = list(allowed_hosts) if allowed_hosts else None
        self.blocking_portal: Optional[BlockingPortal] = None
        self.app = FastAPI(lifespan=self.lifespan, title=name)
        self.app.state.thing_server = self
        self.set_cors_middleware()
        if self.allowed_hosts is not None:
            self.app.add_middleware(
                TrustedHostMiddleware, allowed_hosts=self.allowed_hosts
            )
        self.add_exception_handlers()
        if self.multiple_things:
            for i, thing in enumerate(self._things):
                thing.set_href_prefix(f"{self.base_path}/{i}")
            self.add_things_view_to_app()
            self.add_thing_endpoints(f"{self.base_path}/{{thing_index}}")
        else:
            self._things[0].set_href_prefix(self.base_path)
            self.add_thing_endpoints(self.base_path)
        configure_thing_logger()  # Note: this is safe to call multiple times.

    app: FastAPI

    @classmethod
    def from_config(cls, config: ThingServerConfig | Mapping[str, Any]) -> ThingServer:
        r"""Create a ThingServer from a configuration model or dictionary.

        Each entry in ``config.things`` is turned into a `.Thing` with
        `.thing_from_config`\ .

        :param config: the server configuration, either as a
            `.ThingServerConfig` or a dictionary in the same format.

        :return: a `.ThingServer` serving the configured Things. The server
            will not be started by this function.
        """
        if not isinstance(config, ThingServerConfig):
            config = ThingServerConfig.model_validate(config)
        things = [
            thing_from_config(c.cls, c.args, c.kwargs) for c in config.thing_configs
        ]
        return cls(
            things,
            name=config.name,
            base_path=config.base_path,
            allowed_hosts=config.allowed_hosts,
        )

    @property
    def things(self) -> Sequence[Thing]:
        """The Things served, in index order."""
        return tuple(self._things)

    @property
    def multiple_things(self) -> bool:
        """Whether more than one `.Thing` is served."""
        return len(self._things) > 1

    def set_cors_middleware(self) -> None:
        """Configure the server to allow requests from other origins.

        This is required to allow web applications access to the HTTP API,
        if they are not served from the same origin (i.e. if they are not
        served as part of the `.ThingServer`.).
        """
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def add_exception_handlers(self) -> None:
        """Report malformed requests with a ``400`` status code.

        FastAPI would otherwise use ``422`` for bodies that aren't JSON.
        """

        async def malformed_request(
            request: Request, exc: RequestValidationError
        ) -> JSONResponse:
            return JSONResponse(
                status_code=400, content={"detail": jsonable_encoder(exc.errors())}
            )

        self.app.add_exception_handler(RequestValidationError, malformed_request)

    @asynccontextmanager
    async def lifespan(self, app: FastAPI) -> AsyncGenerator[None]:
        """Manage set up and tear down of the server.

        This method is used as a lifespan function for the FastAPI app. See
        the lifespan_ page in FastAPI's documentation.

        .. _lifespan: https://fastapi.tiangolo.com/advanced/events/#lifespan-function

        It sets up the blocking portal, so that threads (e.g. actions, or
        device code) can queue notifications for websocket clients.

        :param app: The FastAPI application wrapped by the server.
        :yield: no value. The FastAPI application will serve requests while this
            function yields.
        """
        async with BlockingPortal() as portal:
            self.blocking_portal = portal
            yield
        self.blocking_portal = None

    def thing_at(self, index: Optional[str]) -> Thing:
        """Find the `.Thing` served at a given index.

        :param index: the index from the URL, or ``None`` if only one
            `.Thing` is served.

        :return: the `.Thing`.

        :raise ThingNotFoundError: if there is no `.Thing` at ``index``.
        """
        if index is None and not self.multiple_things:
            return self._things[0]
        try:
            i = int(index)  # type: ignore[arg-type]
        except (TypeError, ValueError) as e:
            raise ThingNotFoundError(f"No Thing at index {index}.") from e
        if not 0 <= i < len(self._things):
            raise ThingNotFoundError(f"No Thing at index {index}.")
        return self._things[i]

    def describe_thing(self, thing: Thing, request: Request) -> dict[str, Any]:
        """Generate the Thing Description for a request.

        The description from `.Thing.as_thing_description` is extended with
        links that depend on the URL used to reach the server: the ``base``
        URL, and the ``alternate`` websocket link.

        :param thing: the `.Thing` to describe.
        :param request: the request, used to find the server's URL.

        :return: the Thing Description.
        """
        td = thing.as_thing_description()
        ws_scheme = "wss" if request.url.scheme == "https" else "ws"
        td["links"].append(
            {
                "rel": "alternate",
                "href": f"{ws_scheme}://{request.url.netloc}{thing.get_href()}",
            }
        )
        td["base"] = f"{str(request.base_url).rstrip('/')}{thing.get_href()}"
        td["securityDefinitions"] = {"nosec_sc": {"scheme": "nosec"}}
        td["security"] = "nosec_sc"
        return td

    def add_things_view_to_app(self) -> None:
        """Add an endpoint that lists the Things, when several are served."""
        thing_server = self

        @self.app.get(self.base_path or "/")
        def thing_descriptions(request: Request) -> list[dict[str, Any]]:
            """Describe all the things available from this server.

            :param request: is supplied automatically by FastAPI.

            :return: a list of Thing Descriptions, each with an ``href``
                giving the path of the `.Thing`.
            """
            descriptions = []
            for thing in thing_server.things:
                td = thing_server.describe_thing(thing, request)
                td["href"] = thing.get_href()
                descriptions.append(td)
            return serialize_or_500(descriptions)

    def add_thing_endpoints(self, prefix: str) -> None:
        r"""Add the HTTP and websocket endpoints for the `.Thing`\ (s).

        :param prefix: the path prefix of the endpoints. If several Things
            are served, this contains a ``{thing_index}`` path parameter.
        """
        thing_server = self
        app = self.app

        @app.get(prefix or "/")
        def thing_description(request: Request, thing: ThingDep) -> dict[str, Any]:
            """Return the Thing Description."""
            return serialize_or_500(thing_server.describe_thing(thing, request))

        @app.websocket(prefix or "/")
        async def thing_websocket(websocket: WebSocket) -> None:
            """Subscribe to notifications from the Thing.

            :param websocket: the websocket connection.

            :raise ServerNotRunningError: if the server's lifespan has not
                started, so there is no blocking portal.
            """
            try:
                thing = thing_server.thing_at(websocket.path_params.get("thing_index"))
            except ThingNotFoundError:
                await websocket.close(code=1008)
                return
            portal = thing_server.blocking_portal
            if portal is None:
                raise ServerNotRunningError(
                    "Websockets need the server to be running, with a blocking portal."
                )
            await websocket_endpoint(thing, websocket, portal)

        @app.get(f"{prefix}/properties")
        def get_properties(thing: ThingDep) -> dict[str, Any]:
            """Return the value of every property."""
            return serialize_or_500(thing.get_properties())

        @app.get(
            f"{prefix}/properties/{{name}}",
            responses={404: {"description": "Property not found"}},
        )
        def get_property(name: str, thing: ThingDep) -> dict[str, Any]:
            """Return the value of one property.

            :param name: the name of the property (from the path).
            :param thing: the `.Thing`, found from the path.

            :return: ``{name: value}``.

            :raise HTTPException: with code ``404`` if there is no such property.
            """
            if not thing.has_property(name):
                raise HTTPException(status_code=404, detail=f"No property '{name}'.")
            return serialize_or_500({name: thing.get_property(name)})

        @app.put(
            f"{prefix}/properties/{{name}}",
            responses={
                400: {"description": "Malformed request or invalid value"},
                403: {"description": "Property is read-only"},
                404: {"description": "Property not found"},
            },
        )
        def put_property(name: str, thing: ThingDep, body: JsonBody = None) -> Any:
            """Set the value of a property.

            :param name: the name of the property (from the path).
            :param thing: the `.Thing`, found from the path.
            :param body: the request body, which should be ``{name: value}``.

            :return: ``{name: value}`` with the new value.

            :raise HTTPException: with code ``404`` if there is no such
                property, ``403`` if it is read-only, or ``400`` if the body
                or value is not valid.
            """
            if not thing.has_property(name):
                raise HTTPException(status_code=404, detail=f"No property '{name}'.")
            try:
                if not isinstance(body, dict) or name not in body:
                    raise MalformedRequestError(f"The body must contain '{name}'.")
                with thing.lock:
                    thing.set_property(name, body[name])
                    value = thing.get_property(name)
            except ReadOnlyPropertyError as e:
                raise HTTPException(status_code=403, detail=str(e)) from e
            except (MalformedRequestError, PropertyError) as e:
                raise HTTPException(status_code=400, detail=str(e)) from e
            return serialize_or_500({name: value})

        @app.get(f"{prefix}/actions")
        def get_actions(thing: ThingDep) -> list[dict[str, Any]]:
            """Describe every action that has been requested."""
            return serialize_or_500(thing.get_action_descriptions())

        @app.post(
            f"{prefix}/actions",
            status_code=201,
            responses={400: {"description": "Malformed request or invalid input"}},
        )
        def post_action(thing: ThingDep, body: JsonBody = None) -> dict[str, Any]:
            """Request an action.

            :param thing: the `.Thing`, found from the path.
            :param body: ``{action_name: {"input": ...}}``, with exactly one key.

            :return: the description of the new action.
            """
            name, action_input = parse_action_request(body)
            return request_action(thing, name, action_input)

        @app.get(f"{prefix}/actions/{{action_name}}")
        def get_actions_by_name(
            action_name: str, thing: ThingDep
        ) -> list[dict[str, Any]]:
            """Describe the requested actions of one kind."""
            return serialize_or_500(thing.get_action_descriptions(action_name))

        @app.post(
            f"{prefix}/actions/{{action_name}}",
            status_code=201,
            responses={400: {"description": "Malformed request or invalid input"}},
        )
        def post_action_by_name(
            action_name: str, thing: ThingDep, body: JsonBody = None
        ) -> dict[str, Any]:
            """Request an action of a particular kind.

            :param action_name: the kind of action (from the path).
            :param thing: the `.Thing`, found from the path.
            :param body: ``{action_name: {"input": ...}}``. The key must match
                the path.

            :return: the description of the new action.

            :raise HTTPException: with code ``400`` if the body requests a
                different action.
            """
            name, action_input = parse_action_request(body)
            if name != action_name:
                raise HTTPException(
                    status_code=400,
                    detail=f"The body requests '{name}' but the URL is for "
                    f"'{action_name}'.",
                )
            return request_action(thing, name, action_input)

        def find_action(thing: Thing, action_name: str, action_id: str) -> Any:
            action = thing.get_action(action_name, action_id)
            if action is None:
                raise HTTPException(
                    status_code=404,
                    detail=f"No action '{action_name}' found with ID {action_id}",
                )
            return action

        @app.get(
            f"{prefix}/actions/{{action_name}}/{{action_id}}",
            responses={404: {"description": "Action not found"}},
        )
        def get_action(
            action_name: str, action_id: str, thing: ThingDep
        ) -> dict[str, Any]:
            """Describe one action."""
            action = find_action(thing, action_name, action_id)
            return serialize_or_500(action.as_action_description())

        @app.put(
            f"{prefix}/actions/{{action_name}}/{{action_id}}",
            responses={404: {"description": "Action not found"}},
        )
        def put_action(action_name: str, action_id: str, thing: ThingDep) -> Response:
            """Update an action.

            Actions may not currently be changed once requested, so this
            does nothing if the action exists.
            """
            find_action(thing, action_name, action_id)
            return Response(status_code=200)

        @app.delete(
            f"{prefix}/actions/{{action_name}}/{{action_id}}",
            status_code=204,
            responses={404: {"description": "Action not found"}},
        )
        def delete_action(
            action_name: str, action_id: str, thing: ThingDep
        ) -> Response:
            """Cancel an action and stop tracking it.

            :param action_name: the kind of action (from the path).
            :param action_id: the unique ID of the action (from the path).
            :param thing: the `.Thing`, found from the path.

            :return: an empty response.

            :raise HTTPException: with code ``404`` if the action is not found.
            """
            if not thing.remove_action(action_name, action_id):
                raise HTTPException(
                    status_code=404,
                    detail=f"No action '{action_name}' found with ID {action_id}",
                )
            return Response(status_code=204)

        @app.get(f"{prefix}/events")
        def get_events(thing: ThingDep) -> list[dict[str, Any]]:
            """Describe every event that has occurred."""
            return serialize_or_500(thing.get_event_descriptions())

        @app.get(f"{prefix}/events/{{event_name}}")
        def get_events_by_name(
            event_name: str, thing: ThingDep
        ) -> list[dict[str, Any]]:
            """Describe the events of one kind that have occurred."""
            return serialize_or_500(thing.get_event_descriptions(event_name))


def serialize_or_500(value: Any) -> Any:
    """Serialise a response body, failing the request if that's not possible.

    :param value: the body of the response.

    :return: the serialised body.

    :raise HTTPException: with code ``500`` if the value can't be serialised.
    """
    try:
        return serialize(value)
    except SerializationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e


def parse_action_request(body: Any) -> tuple[str, Any]:
    """Extract the action name and input from a request body.

    :param body: the body of a ``POST`` request, which should be
        ``{action_name: {"input": ...}}`` with exactly one key. The
        ``input`` may be omitted.

    :return: the action name and its input (``None`` if there is no input).

    :raise HTTPException: with code ``400`` if the body has the wrong shape.
    """
    if not isinstance(body, dict) or len(body) != 1:
        raise HTTPException(
            status_code=400, detail="The body must request exactly one action."
        )
    ((name, params),) = body.items()
    if params is None:
        return name, None
    if not isinstance(params, dict):
        raise HTTPException(
            status_code=400, detail=f"The request for '{name}' must be an object."
        )
    return name, params.get("input")


def request_action(thing: Thing, name: str, action_input: Any) -> JSONResponse:
    """Create and start an action, returning its description.

    :param thing: the `.Thing` to act on.
    :param name: the kind of action.
    :param action_input: the input, if any.

    :return: a ``201`` response describing the action. The description is
        taken before the action starts, so its status is ``created``.

    :raise HTTPException: with code ``400`` if the action is unknown or the
        input is invalid, or ``500`` if the action is wrongly configured.
    """
    try:
        action = thing.perform_action(name, action_input)
    except (UnknownActionError, InvalidActionInputError) as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except ThingConfigurationError as e:
        raise HTTPException(status_code=500, detail=str(e)) from e
    description = serialize_or_500(action.as_action_description())
    start_action(action)
    return JSONResponse(status_code=201, content=description)


def thing_from_config(
    obj: Any, args: Sequence[Any] = (), kwargs: Optional[Mapping[str, Any]] = None
) -> Thing:
    """Make a `.Thing` from an object loaded from the configuration.

    :param obj: a `.Thing` instance, a `.Thing` subclass, or a function that
        returns a `.Thing`.
    :param args: positional arguments, used if ``obj`` is called.
    :param kwargs: keyword arguments, used if ``obj`` is called.

    :return: the `.Thing`.

    :raise ThingConfigurationError: if ``obj`` doesn't produce a `.Thing`.
    """
    if isinstance(obj, Thing):
        if args or kwargs:
            raise ThingConfigurationError(
                f"{obj!r} is already a Thing, so it can't take arguments."
            )
        return obj
    if not callable(obj):
        raise ThingConfigurationError(f"{obj!r} is not a Thing, class or function.")
    thing = obj(*args, **(kwargs or {}))
    if not isinstance(thing, Thing):
        raise ThingConfigurationError(f"{obj!r} did not return a Thing.")
    return thing


__all__ = [
    "ThingServer",
    "thing_from_config",
    "parse_action_request",
    "request_action",
]
