import inspect

import pytest

from formflow.store import forms_store, sessions_store


class FakeTransport:
    """
    In-memory stand-in for the HTTP collaborator.

    ``routes`` maps a URL to a JSON body, an exception to raise, or a
    callable ``(method, params, json)`` returning either (sync or async).
    """

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    async def request(self, method, url, *, params=None, json=None):
        self.calls.append({"method": method, "url": url, "params": params, "json": json})
        if url not in self.routes:
            raise ConnectionError(f"no route for {url}")
        body = self.routes[url]
        if callable(body) and not isinstance(body, type):
            body = body(method, params, json)
            if inspect.isawaitable(body):
                body = await body
        if isinstance(body, Exception):
            raise body
        return body

    def urls(self):
        return [c["url"] for c in self.calls]


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture(autouse=True)
def clean_stores():
    forms_store.clear()
    sessions_store.clear()
    yield
    forms_store.clear()
    sessions_store.clear()
