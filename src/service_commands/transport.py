"""HTTP transport abstraction for service clients.

The command pipeline only needs one operation from a transport: send a
request and return the response, or raise. Implementations:

- HttpxTransport: sends requests with an httpx.AsyncClient
- MockHttpTransport: in-memory responses for testing, no network I/O

Per-command transport options (the ``@http`` command parameter) are
passed to ``send`` unchanged.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

import httpx

from .config import ClientConfig

logger = logging.getLogger(__name__)


@runtime_checkable
class HttpTransport(Protocol):
    """Protocol for the transport used by AbstractClient."""

    async def send(
        self, request: httpx.Request, options: dict[str, Any] | None = None
    ) -> httpx.Response:
        """Send a request and return the response.

        Args:
            request: The request to send
            options: Transport options (timeout, headers, auth, ...)

        Raises:
            httpx.HTTPError: On network failure or an error status
        """
        ...

    async def release(self) -> None:
        """Drop connections bound to the current event loop."""
        ...

    async def close(self) -> None:
        """Release any held connections."""
        ...


class HttpxTransport:
    """Transport backed by httpx.AsyncClient.

    Recognised options:
    - timeout: float seconds for this request
    - headers: extra request headers
    - auth: httpx auth for this request
    - follow_redirects: override the client's redirect policy
    - http_errors: raise httpx.HTTPStatusError on non-2xx (default True)

    The underlying client is created on first use. A client it created
    itself is replaced when used from another event loop, since httpx
    connection pools are bound to the loop that opened them.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self.config = config or ClientConfig()
        self._client = client
        self._owns_client = client is None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _get_client(self) -> httpx.AsyncClient:
        loop = asyncio.get_running_loop()
        if self._client is not None and (not self._owns_client or self._loop is loop):
            return self._client

        if self._client is not None:
            logger.debug("Event loop changed, creating a new HTTP client")

        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.timeout),
            headers=self.config.headers,
            verify=self.config.verify,
            follow_redirects=self.config.follow_redirects,
        )
        self._loop = loop
        return self._client

    async def send(
        self, request: httpx.Request, options: dict[str, Any] | None = None
    ) -> httpx.Response:
        options = dict(options or {})
        client = self._get_client()

        timeout = options.pop("timeout", None)
        if timeout is not None:
            request.extensions["timeout"] = httpx.Timeout(timeout).as_dict()

        # Prebuilt requests bypass the client's default headers
        for name, value in self.config.headers.items():
            request.headers.setdefault(name, value)

        headers = options.pop("headers", None)
        if headers:
            request.headers.update(headers)

        auth = options.pop("auth", httpx.USE_CLIENT_DEFAULT)
        follow_redirects = options.pop("follow_redirects", httpx.USE_CLIENT_DEFAULT)
        http_errors = options.pop("http_errors", True)

        if options:
            logger.debug(f"Ignoring unsupported transport options: {sorted(options)}")

        response = await client.send(request, auth=auth, follow_redirects=follow_redirects)
        if http_errors:
            response.raise_for_status()
        return response

    async def release(self) -> None:
        """Close the client if this transport created it.

        A later send opens a new client, so this is safe to call at the
        end of every event loop.
        """
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
            self._loop = None

    async def close(self) -> None:
        await self.release()


# A canned reply: a response, an exception to raise, or a callable
# producing either from the request
MockReply = (
    httpx.Response
    | BaseException
    | Callable[[httpx.Request], httpx.Response | Awaitable[httpx.Response]]
)


class MockHttpTransport:
    """Mock transport for testing.

    Replies are consumed in order. Each reply is a response, an
    exception to raise, or a callable receiving the request. Requests
    and their options are recorded.

    Usage:
        transport = MockHttpTransport()
        transport.append(httpx.Response(200, json={"id": 1}))
        transport.append(httpx.ConnectError("refused"))

        client = MyClient(transport=transport)
        result = await client.execute_async(client.get_command("get_user"))

        assert transport.recorded_requests[0].method == "GET"
    """

    def __init__(self, replies: list[MockReply] | None = None, delay: float = 0.0) -> None:
        self._replies: deque[MockReply] = deque(replies or [])
        self._recorded: list[tuple[httpx.Request, dict[str, Any]]] = []
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.releases = 0
        self.closed = False

    @property
    def recorded_requests(self) -> list[httpx.Request]:
        """Get all requests sent through this transport."""
        return [request for request, _ in self._recorded]

    @property
    def recorded_options(self) -> list[dict[str, Any]]:
        """Get the options passed with each request."""
        return [options for _, options in self._recorded]

    def append(self, *replies: MockReply) -> None:
        """Queue replies for upcoming requests."""
        self._replies.extend(replies)

    def clear(self) -> None:
        """Clear recorded requests and queued replies."""
        self._replies.clear()
        self._recorded.clear()

    def __len__(self) -> int:
        return len(self._replies)

    async def send(
        self, request: httpx.Request, options: dict[str, Any] | None = None
    ) -> httpx.Response:
        self._recorded.append((request, dict(options or {})))
        if not self._replies:
            raise RuntimeError("Mock transport has no queued replies")
        reply = self._replies.popleft()

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if isinstance(reply, BaseException):
                raise reply
            if isinstance(reply, httpx.Response):
                response = reply
            else:
                response = reply(request)
                if inspect.isawaitable(response):
                    response = await response
        finally:
            self.in_flight -= 1

        response.request = request
        if (options or {}).get("http_errors", True):
            response.raise_for_status()
        return response

    async def release(self) -> None:
        self.releases += 1

    async def close(self) -> None:
        self.closed = True


# Factory functions


def create_httpx_transport(
    timeout: float = 30.0,
    headers: dict[str, str] | None = None,
    verify: bool = True,
) -> HttpxTransport:
    """Create an httpx-backed transport.

    Args:
        timeout: Default request timeout in seconds
        headers: Headers sent with every request
        verify: Verify TLS certificates

    Returns:
        HttpxTransport configured with a fresh ClientConfig
    """
    config = ClientConfig(timeout=timeout, headers=dict(headers or {}), verify=verify)
    return HttpxTransport(config)


def create_mock_transport(*replies: MockReply) -> MockHttpTransport:
    """Create a mock transport for testing.

    Returns:
        MockHttpTransport with the given replies queued
    """
    return MockHttpTransport(list(replies))
