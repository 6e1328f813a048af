"""
API integration tests: all Travis and Sauce calls fully mocked.
No real HTTP traffic leaves this process.
"""

import httpx
import pytest
import respx
from fastapi.testclient import TestClient

from badges.main import app, state

TRAVIS = "https://api.travis-ci.org/repos/exogen/script-atomic-onload"


@pytest.fixture(autouse=True)
def _reset_state():
    """Reset shared state between tests so the cache doesn't leak."""
    state.cache = None
    state.http = None
    state.service = None
    yield
    state.cache = None
    state.http = None
    state.service = None


# ── Mock Data ──────────────────────────────────────────────────
BRANCH = {"branch": {"id": 130, "number": "42", "state": "failed"}}

BUILD = {
    "build": {
        "id": 130,
        "number": "42",
        "started_at": "2016-05-01T10:00:00Z",
        "finished_at": "2016-05-01T10:10:00Z",
    },
    "jobs": [
        {"id": 1, "state": "passed", "config": {"env": "TEST=unit"},
         "started_at": "2016-05-01T10:00:00Z", "finished_at": "2016-05-01T10:05:00Z"},
        {"id": 2, "state": "failed", "config": {"env": "TEST=sauce"},
         "started_at": "2016-05-01T10:00:00Z", "finished_at": "2016-05-01T10:10:00Z"},
    ],
}

SAUCE_JOBS = [
    {"id": "a1", "build": "42", "browser": "firefox", "browser_short_version": "50",
     "name": "requirejs", "tags": [], "passed": True, "consolidated_status": "passed"},
    {"id": "a2", "build": "42", "browser": "firefox", "browser_short_version": "50",
     "name": "requirejs", "tags": [], "passed": None, "status": "complete",
     "consolidated_status": "error", "commands_not_successful": 0},
    {"id": "a3", "build": "42", "browser": "iexplore", "browser_short_version": "11",
     "name": "requirejs", "tags": [], "passed": False, "consolidated_status": "failed"},
    {"id": "a4", "build": "42", "browser": "iexplore", "browser_short_version": "9",
     "name": "loads-js", "tags": [], "passed": True, "consolidated_status": "passed"},
    {"id": "b1", "build": "41", "browser": "firefox", "browser_short_version": "50",
     "name": "requirejs", "tags": [], "passed": False, "consolidated_status": "failed"},
]


def _mock_travis():
    respx.get(f"{TRAVIS}/branches/master").mock(
        return_value=httpx.Response(200, json=BRANCH)
    )
    return respx.get(f"{TRAVIS}/builds/130").mock(
        return_value=httpx.Response(200, json=BUILD)
    )


def _mock_sauce(user="exogen"):
    return respx.get(host="saucelabs.com", path=f"/rest/v1/{user}/jobs").mock(
        return_value=httpx.Response(200, json=SAUCE_JOBS)
    )


# ── Tests ──────────────────────────────────────────────────────
def test_health():
    with TestClient(app) as client:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}


@respx.mock
def test_travis_status():
    _mock_travis()

    with TestClient(app) as client:
        resp = client.get("/travis/exogen/script-atomic-onload")

    assert resp.status_code == 200
    assert resp.json() == {
        "label": "script-atomic-onload",
        "status": "failed",
        "color": "red",
    }
    assert "max-age=30" in resp.headers["cache-control"]
    assert resp.headers["x-request-id"]


@respx.mock
def test_travis_status_env_filter_and_label():
    _mock_travis()

    with TestClient(app) as client:
        resp = client.get(
            "/travis/exogen/script-atomic-onload",
            params={"env": "TEST=unit", "label": "unit"},
        )

    assert resp.json() == {"label": "unit", "status": "passed", "color": "brightgreen"}


@respx.mock
def test_travis_status_degrades_on_origin_error():
    respx.get(f"{TRAVIS}/branches/master").mock(return_value=httpx.Response(500))

    with TestClient(app) as client:
        resp = client.get("/travis/exogen/script-atomic-onload")

    assert resp.status_code == 200
    assert resp.json()["status"] == "error"
    assert resp.json()["color"] == "lightgrey"


@respx.mock
def test_travis_status_cached_between_requests():
    build_route = _mock_travis()

    with TestClient(app) as client:
        first = client.get("/travis/exogen/script-atomic-onload")
        second = client.get("/travis/exogen/script-atomic-onload")

    assert first.json() == second.json()
    assert build_route.call_count == 1


@respx.mock
def test_sauce_latest_build_matrix():
    _mock_sauce()

    with TestClient(app) as client:
        resp = client.get("/sauce/exogen", params={"name": "requirejs"})

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["browsers"] == [
        {"browser": "iexplore", "versions": [
            {"browser": "iexplore", "version": "11", "status": "failed"},
        ]},
        {"browser": "firefox", "versions": [
            {"browser": "firefox", "version": "50", "status": "passed"},
        ]},
    ]


@respx.mock
def test_sauce_query_params_forwarded():
    route = _mock_sauce()

    with TestClient(app) as client:
        client.get("/sauce/exogen", params={"build": "41", "from": 100, "to": 200})

    params = route.calls[0].request.url.params
    assert params["from"] == "100"
    assert params["to"] == "200"
    assert params["full"] == "true"


@respx.mock
def test_sauce_no_matching_jobs_is_unknown():
    _mock_sauce()

    with TestClient(app) as client:
        resp = client.get("/sauce/exogen", params={"tag": "nightly"})

    assert resp.json() == {"status": "unknown", "browsers": []}


def test_sauce_invalid_name_expression():
    with respx.mock:
        _mock_sauce()
        with TestClient(app) as client:
            resp = client.get("/sauce/exogen", params={"name": "(oops"})

    assert resp.status_code == 400
    assert resp.json()["status"] == "error"


@respx.mock
def test_travis_sauce_matrix():
    _mock_travis()
    route = _mock_sauce("sauceuser")

    with TestClient(app) as client:
        resp = client.get("/travis/exogen/script-atomic-onload/sauce/sauceuser")

    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    versions = {
        (v["browser"], v["version"]): v["status"]
        for group in body["browsers"]
        for v in group["versions"]
    }
    assert versions == {
        ("firefox", "50"): "passed",
        ("iexplore", "11"): "failed",
        ("iexplore", "9"): "passed",
    }
    assert "from" in route.calls[0].request.url.params


@respx.mock
def test_travis_sauce_matrix_degrades_on_error():
    _mock_travis()
    respx.get(host="saucelabs.com", path="/rest/v1/exogen/jobs").mock(
        side_effect=httpx.ConnectError("refused")
    )

    with TestClient(app) as client:
        resp = client.get("/travis/exogen/script-atomic-onload/sauce")

    assert resp.json() == {"status": "error", "browsers": []}


@respx.mock
def test_sauce_empty_build_means_latest():
    _mock_sauce()

    with TestClient(app) as client:
        resp = client.get("/sauce/exogen", params={"build": "", "name": "loads-js"})

    assert resp.json() == {
        "status": "ok",
        "browsers": [
            {"browser": "iexplore", "versions": [
                {"browser": "iexplore", "version": "9", "status": "passed"},
            ]},
        ],
    }
