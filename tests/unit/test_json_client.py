"""Tests for the JSON operations client."""

from __future__ import annotations

import json

import httpx
import pytest

from service_commands import (
    HTTP_OPTIONS_KEY,
    Command,
    DeserializationError,
    JsonClient,
    MockHttpTransport,
    Operation,
    Result,
    SerializationError,
)

OPERATIONS = {
    "get_user": Operation(method="get", uri="/users/{id}"),
    "search": Operation(uri="/search"),
    "create_user": Operation(method="POST", uri="/users", headers={"X-Api": "1"}),
    "absolute": Operation(uri="https://other.test/ping"),
}


@pytest.fixture
def json_client(transport: MockHttpTransport) -> JsonClient:
    return JsonClient(OPERATIONS, base_url="https://api.test/", transport=transport)


class TestOperation:
    def test_method_is_uppercased(self):
        assert Operation(method="patch", uri="/x").method == "PATCH"

    def test_placeholders(self):
        assert Operation(uri="/orgs/{org}/users/{id}").placeholders == ["org", "id"]
        assert Operation(uri="/users").placeholders == []


class TestCommands:
    def test_unknown_operation_raises(self, json_client):
        with pytest.raises(ValueError, match="Unknown operation: nope"):
            json_client.get_command("nope")

    def test_get_command_returns_command(self, json_client):
        command = json_client.get_command("get_user", {"id": 1})

        assert isinstance(command, Command)
        assert command.params == {"id": 1}

    def test_base_url_defaults_to_config(self, transport):
        client = JsonClient(OPERATIONS, transport=transport)

        assert client.base_url == "http://localhost:8080"


class TestSerializeRequest:
    """Command parameters become URI, query string or JSON body."""

    def test_uri_placeholders_are_filled_and_quoted(self, json_client):
        request = json_client.serialize_request(Command(name="get_user", params={"id": "a b/c"}))

        assert request.method == "GET"
        assert str(request.url) == "https://api.test/users/a%20b%2Fc"

    def test_remaining_params_become_query_for_get(self, json_client):
        request = json_client.serialize_request(
            Command(name="get_user", params={"id": 1, "expand": "groups"})
        )

        assert request.url.params["expand"] == "groups"
        assert request.content == b""

    def test_params_become_json_body_for_post(self, json_client):
        request = json_client.serialize_request(
            Command(name="create_user", params={"name": "Ada"})
        )

        assert request.method == "POST"
        assert json.loads(request.content) == {"name": "Ada"}
        assert request.headers["x-api"] == "1"

    def test_absolute_uri_ignores_base_url(self, json_client):
        request = json_client.serialize_request(Command(name="absolute"))

        assert str(request.url) == "https://other.test/ping"

    def test_missing_placeholder_raises(self, json_client):
        with pytest.raises(SerializationError, match="Missing URI parameter 'id'"):
            json_client.serialize_request(Command(name="get_user"))

    def test_unknown_operation_raises(self, json_client):
        with pytest.raises(SerializationError, match="Unknown operation"):
            json_client.serialize_request(Command(name="nope"))

    def test_unencodable_body_raises(self, json_client):
        with pytest.raises(SerializationError, match="Cannot encode"):
            json_client.serialize_request(
                Command(name="create_user", params={"when": object()})
            )


class TestUnserializeResponse:
    def test_object_body(self, json_client):
        result = json_client.unserialize_response(httpx.Response(200, json={"id": 1}))

        assert result == Result(data={"id": 1})

    def test_non_object_body_is_wrapped(self, json_client):
        result = json_client.unserialize_response(httpx.Response(200, json=[1, 2]))

        assert result["value"] == [1, 2]

    def test_empty_body(self, json_client):
        assert len(json_client.unserialize_response(httpx.Response(204))) == 0

    def test_invalid_json_raises(self, json_client):
        with pytest.raises(DeserializationError):
            json_client.unserialize_response(httpx.Response(200, content=b"<html>"))


class TestExecution:
    @pytest.mark.asyncio
    async def test_round_trip(self, json_client, transport):
        transport.append(httpx.Response(200, json={"id": 42, "name": "Ada"}))
        command = json_client.get_command("get_user", {"id": 42, HTTP_OPTIONS_KEY: {"timeout": 3}})

        result = await json_client.execute_async(command)

        assert result["name"] == "Ada"
        assert result.metadata.effective_uri == "https://api.test/users/42"
        assert transport.recorded_options == [{"timeout": 3}]


class TestFromFile:
    """Operations loaded from YAML or JSON description files."""

    def test_loads_yaml(self, tmp_path, transport):
        path = tmp_path / "api.yaml"
        path.write_text(
            "base_url: https://api.example.com\n"
            "operations:\n"
            "  get_user:\n"
            "    method: get\n"
            "    uri: /users/{id}\n"
            "    description: Fetch one user\n"
        )

        client = JsonClient.from_file(path, transport=transport)

        assert client.base_url == "https://api.example.com"
        assert client.get_operation("get_user").method == "GET"
        assert client.get_operation("get_user").description == "Fetch one user"

    def test_loads_json_with_base_url_override(self, tmp_path, transport):
        path = tmp_path / "api.json"
        path.write_text(json.dumps({"operations": {"ping": {"uri": "/ping"}}}))

        client = JsonClient.from_file(path, base_url="https://override.test", transport=transport)

        assert client.base_url == "https://override.test"
        assert list(client.operations) == ["ping"]

    def test_missing_operations_raises(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("base_url: https://api.example.com\n")

        with pytest.raises(ValueError, match="No operations defined"):
            JsonClient.from_file(path)
