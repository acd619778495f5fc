"""Middleware stack wrapping the core command handler.

A handler takes a command and returns an awaitable result. Middleware
takes the next handler and returns a new handler:

    def log_names(handler):
        async def wrapped(command):
            logger.info(command.name)
            return await handler(command)
        return wrapped

    stack.push(log_names, name="log_names")

The first middleware pushed is the outermost one when resolved.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .command import Command


Handler = Callable[["Command"], Awaitable[Any]]
Middleware = Callable[[Handler], Handler]


class HandlerStack:
    """Ordered middleware around a base handler."""

    def __init__(self, handler: Handler | None = None) -> None:
        self._handler = handler
        self._stack: list[tuple[Middleware, str]] = []

    def set_handler(self, handler: Handler) -> None:
        """Set the innermost handler (the one that talks to the transport)."""
        self._handler = handler

    def has_handler(self) -> bool:
        return self._handler is not None

    def push(self, middleware: Middleware, name: str = "") -> None:
        """Add middleware at the inner end of the stack."""
        self._stack.append((middleware, name))

    def unshift(self, middleware: Middleware, name: str = "") -> None:
        """Add middleware at the outer end of the stack."""
        self._stack.insert(0, (middleware, name))

    def remove(self, target: Middleware | str) -> None:
        """Remove middleware by name or by identity."""
        if isinstance(target, str):
            self._stack = [(fn, name) for fn, name in self._stack if name != target]
        else:
            self._stack = [(fn, name) for fn, name in self._stack if fn is not target]

    def names(self) -> list[str]:
        return [name for _, name in self._stack]

    def resolve(self) -> Handler:
        """Compose the middleware into a single handler.

        Raises:
            ConfigurationError: If no base handler was set
        """
        if self._handler is None:
            raise ConfigurationError("No handler has been specified")

        handler = self._handler
        for middleware, _ in reversed(self._stack):
            handler = middleware(handler)
        return handler

    def copy(self) -> HandlerStack:
        """Return a stack sharing the base handler with its own middleware list."""
        clone = HandlerStack(self._handler)
        clone._stack = list(self._stack)
        return clone

    def __len__(self) -> int:
        return len(self._stack)

    def __repr__(self) -> str:
        return f"HandlerStack(middleware={self.names()!r}, handler={self._handler!r})"
