"""Command definition.

A command is a named, parameterized request for a service operation,
before it is turned into an HTTP request. Each command has a unique ID
used to correlate log lines of one execution.
"""

from __future__ import annotations

import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .handler import HandlerStack
from .hooks import CommandHooks, Listener, Stage

# Reserved parameter holding transport options; consumed before serialization
HTTP_OPTIONS_KEY = "@http"


class Command(BaseModel):
    """A named operation with its parameters.

    Example:
        command = Command(name="get_user", params={"id": 42})
        command.set_param("@http", {"timeout": 5})
        command.on("process", lambda event: print(event.result))

    The name cannot be changed after construction. Parameters may be
    changed freely until the request has been built.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    id: str = Field(default_factory=lambda: f"cmd_{uuid.uuid4().hex[:12]}")
    name: str = Field(frozen=True)
    params: dict[str, Any] = Field(default_factory=dict)
    is_async: bool = False

    # Per-command event channel and middleware override
    hooks: CommandHooks | None = Field(default=None, repr=False)
    handler_stack: HandlerStack | None = Field(default=None, repr=False)

    @classmethod
    def create(
        cls,
        name: str,
        params: dict[str, Any] | None = None,
        hooks: CommandHooks | None = None,
        handler_stack: HandlerStack | None = None,
    ) -> Command:
        """Factory method for creating commands."""
        return cls(
            name=name,
            params=dict(params or {}),
            hooks=hooks,
            handler_stack=handler_stack,
        )

    def has_param(self, key: str) -> bool:
        return key in self.params

    def get_param(self, key: str, default: Any = None) -> Any:
        """Get a parameter with optional default."""
        return self.params.get(key, default)

    def require_param(self, key: str) -> Any:
        """Get a required parameter, raise if missing."""
        if key not in self.params:
            raise ValueError(f"Missing required parameter: {key}")
        return self.params[key]

    def set_param(self, key: str, value: Any) -> None:
        self.params[key] = value

    def remove_param(self, key: str, default: Any = None) -> Any:
        """Remove a parameter and return its value (or default)."""
        return self.params.pop(key, default)

    def pop_http_options(self) -> dict[str, Any]:
        """Remove and return the reserved transport options entry."""
        options = self.params.pop(HTTP_OPTIONS_KEY, None)
        return dict(options) if options else {}

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the parameters."""
        return dict(self.params)

    def items(self) -> list[tuple[str, Any]]:
        return list(self.params.items())

    def on(self, stage: Stage | str, listener: Listener, first: bool = False) -> Listener:
        """Register a lifecycle listener on this command only."""
        if self.hooks is None:
            self.hooks = CommandHooks()
        return self.hooks.register(stage, listener, first=first)

    def clone(self) -> Command:
        """Return a copy with its own parameters, hooks and handler stack."""
        return Command(
            name=self.name,
            params=dict(self.params),
            is_async=self.is_async,
            hooks=self.hooks.copy() if self.hooks is not None else None,
            handler_stack=self.handler_stack.copy() if self.handler_stack is not None else None,
        )

    def __contains__(self, key: object) -> bool:
        return key in self.params

    def __len__(self) -> int:
        return len(self.params)
