"""Test the ``webthing-server`` command line interface."""

import json

from pytest import raises
import pytest

from webthing_fastapi import ThingServer
from webthing_fastapi.server.cli import parse_args, serve_from_cli


CONFIG = {
    "things": [
        "webthing_fastapi.example_things:make_lamp",
        {
            "class": "webthing_fastapi.example_things:FakeHumiditySensor",
            "kwargs": {"poll_interval": None},
        },
    ]
}


def test_defaults():
    args = parse_args(["-j", "{}"])
    assert args.host == "127.0.0.1"
    assert args.port == 8888
    assert args.config is None


def test_serve_from_json():
    server = serve_from_cli(["-j", json.dumps(CONFIG)], dry_run=True)
    assert isinstance(server, ThingServer)
    assert [t.title for t in server.things] == ["My Lamp", "My Humidity Sensor"]


def test_serve_from_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(CONFIG))
    server = serve_from_cli(["-c", str(path)], dry_run=True)
    assert isinstance(server, ThingServer)
    assert len(server.things) == 2


def test_missing_file(tmp_path):
    with raises(FileNotFoundError):
        serve_from_cli(["-c", str(tmp_path / "missing.json")], dry_run=True)


def test_no_config():
    with raises(RuntimeError):
        serve_from_cli([], dry_run=True)


def test_file_and_json_are_exclusive():
    with raises(SystemExit) as excinfo:
        serve_from_cli(["-c", "config.json", "-j", "{}"], dry_run=True)
    assert excinfo.value.code == 2


@pytest.mark.parametrize(
    "config",
    [
        "this isn't JSON",
        '{"things": []}',
        '{"things": ["missing.module:thing"]}',
        '{"things": ["logging:INFO"]}',
    ],
)
def test_bad_config_exits(config, capsys):
    with raises(SystemExit) as excinfo:
        serve_from_cli(["-j", config], dry_run=True)
    assert excinfo.value.code == 3
    assert "Error reading WebThing configuration" in capsys.readouterr().out


def test_serve_runs_uvicorn(mocker):
    run = mocker.patch("webthing_fastapi.server.cli.uvicorn.run")
    result = serve_from_cli(
        ["-j", json.dumps(CONFIG), "--host", "0.0.0.0", "--port", "1234"]
    )
    assert result is None
    run.assert_called_once()
    app = run.call_args.args[0]
    assert run.call_args.kwargs == {"host": "0.0.0.0", "port": 1234}
    assert app.state.thing_server.multiple_things
