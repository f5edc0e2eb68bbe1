"""Command-line interface to the `.ThingServer`.

This module provides a command-line interface that is provided as
`webthing-server`. It exposes various functions that may be useful to
projects based on WebThing-FastAPI, if they wish to expose their own CLI.

The server is configured with a JSON file or string, in the format
described by `.ThingServerConfig`. For example, to serve the example lamp::

    webthing-server -j '{"things": ["webthing_fastapi.example_things:make_lamp"]}'

.. note::

    The server does not provide HTTPS. If that is needed, run the
    application behind a reverse proxy that terminates TLS.
"""

from argparse import ArgumentParser, Namespace
import sys
from typing import Optional

from pydantic import ValidationError
import uvicorn

from ..exceptions import ThingConfigurationError
from . import ThingServer
from .config_model import ThingServerConfig, ThingImportFailure


def get_default_parser() -> ArgumentParser:
    """Return the default CLI parser for WebThing-FastAPI.

    This can be used to add more arguments, for custom CLIs that make use of
    WebThing-FastAPI.

    :return: an `argparse.ArgumentParser` set up with the options for
        ``webthing-server``.
    """
    parser = ArgumentParser(description="Serve Things over HTTP and websockets.")
    source = parser.add_mutually_exclusive_group()
    source.add_argument("-c", "--config", type=str, help="Path to configuration file")
    source.add_argument("-j", "--json", type=str, help="Configuration as JSON string")
    parser.add_argument(
        "--host", type=str, default="127.0.0.1", help="Bind socket to this host"
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8888,
        help="Bind socket to this port. If 0, an available port will be picked.",
    )
    return parser


def parse_args(argv: Optional[list[str]] = None) -> Namespace:
    r"""Process command line arguments for the server.

    The arguments are defined in `.get_default_parser`\ .

    :param argv: command line arguments (defaults to arguments supplied
        to the current command).

    :return: a namespace with the extracted options.
    """
    parser = get_default_parser()
    return parser.parse_args(argv)


def config_from_args(args: Namespace) -> ThingServerConfig:
    """Load the configuration from a supplied file or JSON string.

    :param args: Parsed arguments from `.parse_args`.

    :return: the server configuration.

    :raise FileNotFoundError: if the configuration file specified is missing.
    :raise RuntimeError: if neither a config file nor a string is provided.
    """
    if args.config:
        try:
            with open(args.config) as f:
                return ThingServerConfig.model_validate_json(f.read())
        except FileNotFoundError as e:
            raise FileNotFoundError(
                f"Could not find configuration file {args.config}"
            ) from e
    elif args.json:
        return ThingServerConfig.model_validate_json(args.json)
    else:
        raise RuntimeError("No configuration (or empty configuration) provided")


def serve_from_cli(
    argv: Optional[list[str]] = None, dry_run: bool = False
) -> ThingServer | None:
    r"""Start the server from the command line.

    This function will parse command line arguments, load configuration,
    set up a server, and start it. It calls `.parse_args`,
    `.config_from_args` and `.ThingServer.from_config` to get a server, then
    starts `uvicorn` to serve on the specified host and port.

    If the configuration can't be loaded, we print the error and exit
    with code 3.

    :param argv: command line arguments (defaults to arguments supplied
        to the current command).
    :param dry_run: may be set to ``True`` to terminate after the server
        has been created. This tests set-up code and verifies all of the
        Things specified can be correctly loaded and instantiated, but
        does not start `uvicorn`\ .

    :return: the `.ThingServer` instance created, if ``dry_run`` is ``True``.
    """
    args = parse_args(argv)
    try:
        config = config_from_args(args)
        server = ThingServer.from_config(config)
    except (ValidationError, ThingImportFailure, ThingConfigurationError) as e:
        print(f"Error reading WebThing configuration:\n{e}")
        sys.exit(3)
    if dry_run:
        return server
    uvicorn.run(server.app, host=args.host, port=args.port)
    return None  # This is required as we sometimes return the server
