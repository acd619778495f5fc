"""Lifecycle hook registry.

Listeners attach to one of three fixed stages of a command execution.
Within a stage they run in registration order.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)


class Stage(str, Enum):
    """Hook points of the command lifecycle."""

    PREPARE = "prepare"
    PROCESS = "process"
    ERROR = "error"


# A listener receives the stage event and may be a coroutine function
Listener = Callable[[Any], Awaitable[None] | None]


class CommandHooks:
    """Ordered listener lists for each lifecycle stage.

    A client holds one registry; every command it creates receives its
    own copy, so listeners added to one command never leak into another.

    Usage:
        hooks = CommandHooks()

        @hooks.on_prepare
        def build(event):
            event.set_request(httpx.Request("GET", "https://example.com"))
    """

    def __init__(self) -> None:
        self._listeners: dict[Stage, list[Listener]] = {stage: [] for stage in Stage}

    def register(self, stage: Stage | str, listener: Listener, first: bool = False) -> Listener:
        """Register a listener for a stage.

        Args:
            stage: Stage to attach to
            listener: Callable receiving the stage event
            first: Insert before already registered listeners

        Returns:
            The listener, so this can be used as a decorator
        """
        stage = Stage(stage)
        if first:
            self._listeners[stage].insert(0, listener)
        else:
            self._listeners[stage].append(listener)
        logger.debug(f"Registered {stage.value} listener: {_listener_name(listener)}")
        return listener

    def on_prepare(self, listener: Listener) -> Listener:
        return self.register(Stage.PREPARE, listener)

    def on_process(self, listener: Listener) -> Listener:
        return self.register(Stage.PROCESS, listener)

    def on_error(self, listener: Listener) -> Listener:
        return self.register(Stage.ERROR, listener)

    def remove(self, stage: Stage | str, listener: Listener) -> bool:
        """Remove a listener. Returns True if it was registered."""
        listeners = self._listeners[Stage(stage)]
        if listener in listeners:
            listeners.remove(listener)
            return True
        return False

    def listeners(self, stage: Stage | str) -> list[Listener]:
        """Listeners of a stage in invocation order (a copy)."""
        return list(self._listeners[Stage(stage)])

    def copy(self) -> CommandHooks:
        """Return an independent registry with the same listeners."""
        clone = CommandHooks()
        for stage, listeners in self._listeners.items():
            clone._listeners[stage] = list(listeners)
        return clone

    def __len__(self) -> int:
        return sum(len(listeners) for listeners in self._listeners.values())


def _listener_name(listener: Listener) -> str:
    return getattr(listener, "__qualname__", None) or repr(listener)
