"""Per-execution context for a single command."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

    from .command import Command


class TransactionState(str, Enum):
    """Lifecycle state machine of a command execution."""

    PREPARE = "prepare"
    SHORT_CIRCUITED = "short_circuited"
    SENT = "sent"
    PROCESSED = "processed"
    ERRORED = "errored"


TERMINAL_STATES = frozenset(
    {TransactionState.SHORT_CIRCUITED, TransactionState.PROCESSED, TransactionState.ERRORED}
)


@dataclass(eq=False)
class CommandTransaction:
    """Binds one command to its request, response and outcome.

    A transaction is created for every execution and never reused.
    Once terminal, exactly one of ``result`` and ``exception`` is set.
    """

    client: Any
    command: Command
    request: httpx.Request | None = None
    response: httpx.Response | None = None
    result: Any = None
    exception: BaseException | None = None
    state: TransactionState = TransactionState.PREPARE

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def outcome(self) -> Any:
        """The result, or the unrecovered exception of a failed execution."""
        if self.exception is not None and self.result is None:
            return self.exception
        return self.result
