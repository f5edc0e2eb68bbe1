"""Test the HTTP API of a `.ThingServer`."""

from fastapi.testclient import TestClient
import pytest

import webthing_fastapi as wt
from webthing_fastapi.example_things import FakeHumiditySensor, make_lamp
from utilities import poll_action


FADE = {"fade": {"input": {"brightness": 10, "duration": 1}}}


def make_level_thing(forwarded):
    thing = wt.Thing("urn:test:level", "Level Thing", "MultiLevelSwitch")
    thing.add_property(
        wt.Property(
            thing,
            "level",
            wt.Value(0, forwarded.append),
            {"type": "number", "minimum": 0, "maximum": 100, "unit": "percent"},
        )
    )
    thing.add_property(
        wt.Property(
            thing, "sensor", wt.Value(1.5), {"type": "number", "readOnly": True}
        )
    )
    return thing


@pytest.fixture
def forwarded():
    return []


@pytest.fixture
def level_client(forwarded):
    server = wt.ThingServer(make_level_thing(forwarded))
    with TestClient(server.app) as client:
        yield client


@pytest.fixture
def lamp():
    return make_lamp()


@pytest.fixture
def client(lamp):
    """Yield a TestClient serving the example lamp."""
    server = wt.ThingServer(lamp)
    with TestClient(server.app) as client:
        yield client


def test_put_and_get_property(level_client, forwarded):
    r = level_client.put("/properties/level", json={"level": 42})
    assert r.status_code == 200
    assert r.json() == {"level": 42}
    assert level_client.get("/properties/level").json() == {"level": 42}
    assert level_client.get("/properties").json() == {"level": 42, "sensor": 1.5}
    assert forwarded == [42]


@pytest.mark.parametrize(
    ("path", "body", "status"),
    [
        ("/properties/level", {"level": 101}, 400),
        ("/properties/level", {"level": "high"}, 400),
        ("/properties/level", {"brightness": 10}, 400),
        ("/properties/level", [42], 400),
        ("/properties/level", None, 400),
        ("/properties/sensor", {"sensor": 2.5}, 403),
        ("/properties/missing", {"missing": 1}, 404),
    ],
)
def test_put_property_errors(level_client, forwarded, path, body, status):
    r = level_client.put(path, json=body)
    assert r.status_code == status
    assert level_client.get("/properties").json() == {"level": 0, "sensor": 1.5}
    assert forwarded == []


def test_put_property_not_json(level_client):
    r = level_client.put(
        "/properties/level",
        content=b"this isn't JSON",
        headers={"content-type": "application/json"},
    )
    assert r.status_code == 400


def test_get_missing_property(level_client):
    assert level_client.get("/properties/missing").status_code == 404


def test_thing_description(client):
    td = client.get("/").json()
    assert td["id"] == "urn:dev:ops:my-lamp-1234"
    assert td["base"] == "http://testserver/"
    assert td["securityDefinitions"] == {"nosec_sc": {"scheme": "nosec"}}
    assert td["security"] == "nosec_sc"
    assert {"rel": "alternate", "href": "ws://testserver/"} in td["links"]
    assert td["properties"]["brightness"]["links"] == [
        {"rel": "property", "href": "/properties/brightness"}
    ]


def test_request_action_and_poll(client):
    r = client.post("/actions", json=FADE)
    assert r.status_code == 201
    description = r.json()["fade"]
    assert description["status"] == "created"
    assert description["input"] == FADE["fade"]["input"]
    assert "timeCompleted" not in description

    completed = poll_action(client, description["href"], "fade")
    assert completed["timeRequested"] <= completed["timeCompleted"]
    assert client.get("/properties/brightness").json() == {"brightness": 10}

    listed = client.get("/actions").json()
    assert [d["fade"]["href"] for d in listed] == [description["href"]]
    assert client.get("/actions/fade").json() == listed
    assert client.get(description["href"]).json() == {"fade": completed}


def test_request_action_by_name(client):
    r = client.post("/actions/fade", json=FADE)
    assert r.status_code == 201
    poll_action(client, r.json()["fade"]["href"])


@pytest.mark.parametrize(
    ("path", "body"),
    [
        ("/actions", {"fade": {"input": {"brightness": 10}}}),
        ("/actions", {"fade": {"input": {"brightness": 200, "duration": 1}}}),
        ("/actions", {"fade": {}}),
        ("/actions", {"fade": "now"}),
        ("/actions", {**FADE, "other": {}}),
        ("/actions", {}),
        ("/actions", None),
        ("/actions", {"explode": {}}),
        ("/actions/explode", {"fade": FADE["fade"]}),
    ],
)
def test_invalid_action_requests(client, path, body):
    r = client.post(path, json=body)
    assert r.status_code == 400
    assert client.get("/actions").json() == []


def test_misconfigured_action(client, lamp):
    class NamelessAction(wt.Action):
        pass

    lamp.add_available_action("nameless", {}, NamelessAction)
    r = client.post("/actions", json={"nameless": {}})
    assert r.status_code == 500
    assert client.get("/actions").json() == []


def test_delete_action(client, lamp):
    body = {"fade": {"input": {"brightness": 10, "duration": 100000}}}
    href = client.post("/actions", json=body).json()["fade"]["href"]

    r = client.put(href, json={})
    assert r.status_code == 200
    assert r.content == b""

    r = client.delete(href)
    assert r.status_code == 204
    assert client.get(href).status_code == 404
    assert client.delete(href).status_code == 404
    assert client.put(href, json={}).status_code == 404
    assert client.get("/actions").json() == []
    # The fade was cancelled, so the brightness never changed.
    assert lamp.get_property("brightness") == 50


def test_missing_action(client):
    assert client.get("/actions/fade/not-an-id").status_code == 404
    assert client.delete("/actions/fade/not-an-id").status_code == 404
    assert client.get("/actions/explode").json() == []


def test_events(client):
    assert client.get("/events").json() == []
    r = client.post("/actions", json=FADE)
    poll_action(client, r.json()["fade"]["href"])
    events = client.get("/events").json()
    assert len(events) == 1
    assert events[0]["overheated"]["data"] == 102
    assert client.get("/events/overheated").json() == events
    assert client.get("/events/flooded").json() == []


def test_unserialisable_value(lamp, client):
    lamp.add_property(wt.Property(lamp, "weird", wt.Value(object())))
    assert client.get("/properties").status_code == 500
    assert client.get("/properties/weird").status_code == 500
    # The server keeps working.
    assert client.get("/properties/on").json() == {"on": True}


def test_multiple_things():
    sensor = FakeHumiditySensor(poll_interval=None)
    server = wt.ThingServer([make_lamp(), sensor])
    with TestClient(server.app) as client:
        tds = client.get("/").json()
        assert [td["href"] for td in tds] == ["/0", "/1"]
        assert [td["title"] for td in tds] == ["My Lamp", "My Humidity Sensor"]
        assert tds[1]["base"] == "http://testserver/1"
        assert {"rel": "alternate", "href": "ws://testserver/1"} in tds[1]["links"]
        assert tds[1]["properties"]["level"]["links"][0]["href"] == (
            "/1/properties/level"
        )

        assert client.get("/1").json()["id"] == sensor.id
        assert client.get("/1/properties/level").json() == {"level": 0.0}
        r = client.put("/1/properties/level", json={"level": 10})
        assert r.status_code == 403
        assert client.get("/0/properties/on").json() == {"on": True}
        assert client.get("/2").status_code == 404
        assert client.get("/2/properties").status_code == 404
        assert client.get("/lamp/properties").status_code == 404

        r = client.post("/0/actions", json=FADE)
        href = r.json()["fade"]["href"]
        assert href.startswith("/0/actions/fade/")
        poll_action(client, href)


def test_base_path(lamp):
    server = wt.ThingServer(lamp, base_path="/lamp/")
    with TestClient(server.app) as client:
        td = client.get("/lamp").json()
        assert td["base"] == "http://testserver/lamp"
        assert td["links"][0]["href"] == "/lamp/properties"
        assert client.get("/lamp/properties/on").json() == {"on": True}
        assert client.get("/properties/on").status_code == 404


def test_no_things():
    with pytest.raises(ValueError):
        wt.ThingServer([])


def test_allowed_hosts(lamp):
    server = wt.ThingServer(lamp, allowed_hosts=["example.com"])
    with TestClient(server.app) as client:
        assert client.get("/").status_code == 400
    with TestClient(server.app, base_url="http://example.com") as client:
        assert client.get("/").status_code == 200


def test_cors(client):
    r = client.get("/properties", headers={"Origin": "https://app.example.com"})
    assert r.status_code == 200
    assert "access-control-allow-origin" in r.headers
