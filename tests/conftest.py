"""Pytest configuration and shared fixtures."""

from __future__ import annotations

from typing import Any

import httpx
import pytest

from service_commands import (
    AbstractClient,
    Command,
    DeserializationError,
    MockHttpTransport,
    SerializationError,
)


class StubClient(AbstractClient):
    """Minimal concrete client: POSTs params as JSON to /<command name>."""

    base_url = "https://api.test"

    def serialize_request(self, command: Command) -> httpx.Request:
        if command.get_param("invalid"):
            raise SerializationError("invalid parameters")
        return httpx.Request("POST", f"{self.base_url}/{command.name}", json=command.to_dict())

    def unserialize_response(self, response: httpx.Response) -> dict[str, Any]:
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError as e:
            raise DeserializationError(str(e)) from e


@pytest.fixture
def transport() -> MockHttpTransport:
    """Mock transport with no queued replies."""
    return MockHttpTransport()


@pytest.fixture
def client(transport: MockHttpTransport) -> StubClient:
    """StubClient wired to the mock transport."""
    return StubClient(transport=transport)


@pytest.fixture
def stub_client_class() -> type[StubClient]:
    """The StubClient class, for tests that construct clients themselves."""
    return StubClient
