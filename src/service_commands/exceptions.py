"""Exception types raised by the command pipeline.

Command failures carry the full execution context (command, client,
request, response) so callers can diagnose them without access to the
transaction that produced them.

Hierarchy:
- CommandException: any failure while executing a command
  - CommandClientException: the service answered with a 4xx status
  - CommandServerException: the service answered with a 5xx status
- ConfigurationError: a programming-contract violation, never wrapped
- SerializationError / DeserializationError: raised by concrete clients
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    import httpx

    from .command import Command
    from .transaction import CommandTransaction


class ConfigurationError(RuntimeError):
    """Raised when the pipeline is used in a way its contract forbids."""


class SerializationError(ValueError):
    """Raised when a command cannot be turned into a request."""


class DeserializationError(ValueError):
    """Raised when a response cannot be turned into a result."""


class CommandException(Exception):
    """A command failed to produce a result.

    The underlying cause is available as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        command: Command | None = None,
        client: Any = None,
        request: httpx.Request | None = None,
        response: httpx.Response | None = None,
        transaction: CommandTransaction | None = None,
    ):
        super().__init__(message)
        self.command = command
        self.client = client
        self.request = request
        self.response = response
        self.transaction = transaction

    @property
    def status_code(self) -> int | None:
        """Status code of the received response, if any."""
        if self.response is None:
            return None
        return self.response.status_code

    @classmethod
    def create(cls, transaction: CommandTransaction, cause: BaseException) -> CommandException:
        """Build the exception matching a failed transaction.

        An existing CommandException is returned unchanged. Otherwise the
        class is chosen from the response status: 4xx gives a
        CommandClientException, 5xx a CommandServerException, anything
        else (including no response) a generic CommandException.
        """
        if isinstance(cause, CommandException):
            return cause

        response = transaction.response
        if response is None:
            response = getattr(cause, "response", None)
        status = response.status_code if response is not None else None

        if status is not None and 400 <= status < 500:
            exc_class: type[CommandException] = CommandClientException
        elif status is not None and 500 <= status < 600:
            exc_class = CommandServerException
        else:
            exc_class = CommandException

        message = f"Error executing command '{transaction.command.name}': {cause}"
        exc = exc_class(
            message,
            command=transaction.command,
            client=transaction.client,
            request=transaction.request,
            response=response,
            transaction=transaction,
        )
        exc.__cause__ = cause
        return exc


class CommandClientException(CommandException):
    """The service rejected the command with a 4xx response."""


class CommandServerException(CommandException):
    """The service failed to handle the command (5xx response)."""
