"""JSON service client.

A concrete AbstractClient for JSON-over-HTTP services. Each operation
maps a command name to an HTTP method and a URI template:

    client = JsonClient(
        {"get_user": Operation(method="GET", uri="/users/{id}")},
        base_url="https://api.example.com",
    )
    result = client.execute(client.get_command("get_user", {"id": 42}))

Template placeholders are filled from the command parameters. Remaining
parameters become the query string for GET, HEAD and DELETE, and the
JSON body for every other method.
"""

from __future__ import annotations

import logging
import string
from pathlib import Path
from typing import Any
from urllib.parse import quote

import httpx
import yaml
from pydantic import BaseModel, Field, field_validator

from .client import AbstractClient
from .command import Command
from .config import ClientConfig
from .exceptions import DeserializationError, SerializationError
from .handler import HandlerStack
from .hooks import CommandHooks
from .result import Result
from .transport import HttpTransport

logger = logging.getLogger(__name__)

QUERY_METHODS = frozenset({"GET", "HEAD", "DELETE"})


class Operation(BaseModel):
    """HTTP mapping of a named operation."""

    method: str = "GET"
    uri: str
    headers: dict[str, str] = Field(default_factory=dict)
    description: str | None = None

    @field_validator("method")
    @classmethod
    def _upper_method(cls, value: str) -> str:
        return value.upper()

    @property
    def placeholders(self) -> list[str]:
        """Names of the ``{placeholder}`` fields in the URI template."""
        return [field for _, field, _, _ in string.Formatter().parse(self.uri) if field]


class JsonClient(AbstractClient):
    """Client for JSON APIs described by a table of operations."""

    def __init__(
        self,
        operations: dict[str, Operation],
        base_url: str | None = None,
        transport: HttpTransport | None = None,
        handler_stack: HandlerStack | None = None,
        hooks: CommandHooks | None = None,
        config: ClientConfig | None = None,
    ):
        super().__init__(
            transport=transport,
            handler_stack=handler_stack,
            hooks=hooks,
            config=config,
        )
        self.operations = dict(operations)
        self.base_url = (base_url or self.config.base_url).rstrip("/")

    @classmethod
    def from_file(cls, path: str | Path, **kwargs: Any) -> JsonClient:
        """Load operations from a YAML or JSON description file.

        The file holds an ``operations`` mapping and an optional
        ``base_url``:

            base_url: https://api.example.com
            operations:
              get_user:
                method: GET
                uri: /users/{id}

        Raises:
            ValueError: If the file has no operations mapping
        """
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        raw_operations = data.get("operations")
        if not isinstance(raw_operations, dict):
            raise ValueError(f"No operations defined in {path}")

        operations = {name: Operation.model_validate(definition) for name, definition in raw_operations.items()}
        kwargs.setdefault("base_url", data.get("base_url"))
        logger.info(f"Loaded {len(operations)} operations from {path}")
        return cls(operations, **kwargs)

    def get_operation(self, name: str) -> Operation:
        """Look up an operation by name.

        Raises:
            ValueError: If no operation has that name
        """
        operation = self.operations.get(name)
        if operation is None:
            raise ValueError(f"Unknown operation: {name}")
        return operation

    def get_command(self, name: str, params: dict[str, Any] | None = None) -> Command:
        self.get_operation(name)
        return super().get_command(name, params)

    def serialize_request(self, command: Command) -> httpx.Request:
        try:
            operation = self.get_operation(command.name)
        except ValueError as e:
            raise SerializationError(str(e)) from e

        params = command.to_dict()
        values: dict[str, str] = {}
        for name in operation.placeholders:
            if name not in params:
                raise SerializationError(
                    f"Missing URI parameter '{name}' for operation '{command.name}'"
                )
            values[name] = quote(str(params.pop(name)), safe="")

        path = operation.uri.format(**values)
        url = path if "://" in path else f"{self.base_url}/{path.lstrip('/')}"

        try:
            if operation.method in QUERY_METHODS:
                return httpx.Request(
                    operation.method, url, params=params or None, headers=operation.headers
                )
            return httpx.Request(
                operation.method,
                url,
                json=params if params else None,
                headers=operation.headers,
            )
        except (TypeError, ValueError) as e:
            raise SerializationError(f"Cannot encode parameters for '{command.name}': {e}") from e

    def unserialize_response(self, response: httpx.Response) -> Result:
        if not response.content:
            return Result()

        try:
            data = response.json()
        except ValueError as e:
            raise DeserializationError(f"Response is not valid JSON: {e}") from e

        if isinstance(data, dict):
            return Result(data=data)
        return Result(data={"value": data})
