import json

import httpx
import pytest
import requests

from formflow.errors import RemoteSourceError
from formflow.transport import HttpxTransport, fetch_json_blocking, query_params

URL = "https://api.test/items"


def _recording(body, status_code=200):
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(status_code, json=body)

    return httpx.MockTransport(handler), seen


def test_query_params_flattening():
    flat = query_params({"a": None, "b": True, "c": False, "d": {"x": 1}, "e": ["p", 2, {"id": "q"}], "f": 3})
    assert flat == {"a": "", "b": "true", "c": "false", "d": '{"x": 1}', "e": ["p", 2, '{"id": "q"}'], "f": 3}
    assert query_params(None) == {}


@pytest.mark.asyncio
async def test_get_sends_params_as_query_string():
    mock, seen = _recording([{"id": 1}])
    transport = HttpxTransport(transport=mock)

    body = await transport.request("GET", URL, params={"country": "US", "tags": ["a", "b"], "active": True})

    assert body == [{"id": 1}]
    request = seen[0]
    assert request.method == "GET"
    assert request.url.params["country"] == "US"
    assert request.url.params.get_list("tags") == ["a", "b"]
    assert request.url.params["active"] == "true"


@pytest.mark.asyncio
async def test_post_sends_json_body():
    mock, seen = _recording({"ok": True})
    transport = HttpxTransport(transport=mock)

    body = await transport.request("POST", URL, json={"q": "al", "page": 2})

    assert body == {"ok": True}
    request = seen[0]
    assert request.method == "POST"
    assert request.headers["content-type"] == "application/json"
    assert json.loads(request.content) == {"q": "al", "page": 2}
    assert request.url.params.get("q") is None


@pytest.mark.asyncio
async def test_post_without_body_sends_empty_object():
    mock, seen = _recording([])
    await HttpxTransport(transport=mock).request("POST", URL)
    assert json.loads(seen[0].content) == {}


@pytest.mark.asyncio
async def test_error_status_raises():
    mock, _ = _recording({"detail": "down"}, status_code=500)
    with pytest.raises(httpx.HTTPStatusError):
        await HttpxTransport(transport=mock).request("GET", URL)


class _StubResponse:
    def __init__(self, body=None, error=None):
        self._body = body
        self._error = error

    def raise_for_status(self):
        pass

    def json(self):
        if self._error is not None:
            raise self._error
        return self._body


def test_blocking_fetch_returns_body(monkeypatch):
    calls = []

    def fake_get(url, params=None, timeout=None):
        calls.append((url, params))
        return _StubResponse(["a", "b"])

    monkeypatch.setattr(requests, "get", fake_get)

    assert fetch_json_blocking("GET", URL, {"flag": False}) == ["a", "b"]
    assert calls == [(URL, {"flag": "false"})]


def test_blocking_fetch_connection_failure(monkeypatch):
    def fake_get(url, params=None, timeout=None):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "get", fake_get)

    with pytest.raises(RemoteSourceError):
        fetch_json_blocking("GET", URL)


def test_blocking_fetch_invalid_json(monkeypatch):
    def fake_post(url, json=None, headers=None, timeout=None):
        return _StubResponse(error=ValueError("not json"))

    monkeypatch.setattr(requests, "post", fake_post)

    with pytest.raises(RemoteSourceError):
        fetch_json_blocking("POST", URL, {"q": "x"})
