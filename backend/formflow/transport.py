import json as jsonlib
import logging
from typing import Any, Mapping, Optional, Protocol

import httpx
import requests

from formflow.config import settings
from formflow.errors import RemoteSourceError

logger = logging.getLogger(__name__)

JSON_HEADERS = {"Content-Type": "application/json"}


class Transport(Protocol):
    """The generic request interface remote option sources are reached through."""

    async def request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Mapping[str, Any]] = None,
        json: Any = None,
    ) -> Any:
        """Issue the request and return the decoded JSON body."""
        ...


def query_params(params: Optional[Mapping[str, Any]]) -> dict:
    """Flatten interpolated params into something a query string can carry."""
    out = {}
    for key, value in (params or {}).items():
        if value is None:
            out[key] = ""
        elif isinstance(value, bool):
            out[key] = "true" if value else "false"
        elif isinstance(value, dict):
            out[key] = jsonlib.dumps(value)
        elif isinstance(value, (list, tuple)):
            out[key] = [v if isinstance(v, (str, int, float)) else jsonlib.dumps(v, default=str) for v in value]
        else:
            out[key] = value
    return out


class HttpxTransport:
    def __init__(
        self,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.timeout = settings.HTTP_TIMEOUT if timeout is None else timeout
        # lets tests plug in httpx.MockTransport
        self._transport = transport

    async def request(self, method, url, *, params=None, json=None):
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            if method == "POST":
                response = await client.post(url, json=json if json is not None else {}, headers=JSON_HEADERS)
            else:
                response = await client.get(url, params=query_params(params))
        response.raise_for_status()
        return response.json()


def fetch_json_blocking(
    method: str,
    url: str,
    params: Optional[Mapping[str, Any]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    One-shot blocking fetch used by the builder to preview a data source.

    Unlike the preview-time resolver, failures here are raised so the
    editing context can show them.
    """
    timeout = settings.HTTP_TIMEOUT if timeout is None else timeout
    try:
        if method == "POST":
            response = requests.post(url, json=dict(params or {}), headers=JSON_HEADERS, timeout=timeout)
        else:
            response = requests.get(url, params=query_params(params), timeout=timeout)
        response.raise_for_status()
        return response.json()
    except (requests.RequestException, ValueError) as e:
        logger.info("Preview fetch of %s %s failed: %s", method, url, e)
        raise RemoteSourceError("Failed to fetch API options.") from e
