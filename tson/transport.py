"""
HTTP transport for deserializing network responses.

The dispatcher never talks to the network itself. It asks a Transport
for a response to a request and reads the body inside the transport's
scope. HttpTransport is the default, built on httpx.

    >>> import httpx
    >>> from tson import JsonSerializer
    >>> from tson.transport import HttpTransport
    >>>
    >>> with HttpTransport(httpx.Client(base_url="https://api.example.test")) as transport:
    ...     serializer = JsonSerializer(transport=transport)
    ...     user = serializer.deserialize_request(
    ...         httpx.Request("GET", "https://api.example.test/users/1"), User
    ...     )
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from typing import ContextManager, Iterator, Optional, Protocol

import httpx

from tson.config import DEFAULT_CONFIG, JsonConfig

logger = logging.getLogger(__name__)


class Transport(Protocol):
    """Anything that can turn a request into a scoped response."""

    def open_response(self, request: httpx.Request) -> ContextManager[httpx.Response]:
        ...


class HttpTransport:
    """
    Transport backed by an httpx.Client.

    If no client is given, one is created on first use with the configured
    timeout and closed by close(). An injected client belongs to the
    caller and is never closed here.

    Attributes:
        config: JsonConfig supplying the default timeout.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        config: Optional[JsonConfig] = None,
    ):
        self.config = config or DEFAULT_CONFIG
        self._client = client
        self._owns_client = client is None
        self._lock = threading.Lock()

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = httpx.Client(timeout=self.config.timeout)
        return self._client

    @contextmanager
    def open_response(self, request: httpx.Request) -> Iterator[httpx.Response]:
        """
        Send a request and yield its streaming response.

        Error statuses raise httpx.HTTPStatusError. The response is closed
        exactly once when the block exits, including when it raises.
        """
        logger.debug("Sending %s %s", request.method, request.url)
        response = self.client.send(request, stream=True)
        try:
            response.raise_for_status()
            yield response
        finally:
            response.close()

    def close(self) -> None:
        if self._owns_client and self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self) -> "HttpTransport":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
