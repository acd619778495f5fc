"""Lifecycle controller for command transactions.

Drives a transaction through its stages:

    prepare -> (short-circuited | sent)
    sent    -> (processed | errored)

Listeners registered for a stage receive a stage event wrapping the
transaction. Prepare listeners build the request (or supply a result
and skip sending), process listeners shape the result, and error
listeners may recover from a transport failure with a fallback result.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from .exceptions import CommandException, ConfigurationError
from .hooks import Listener
from .transaction import CommandTransaction, TransactionState

if TYPE_CHECKING:
    import httpx

    from .command import Command

logger = logging.getLogger(__name__)


class CommandEvent:
    """Base stage event passed to listeners."""

    def __init__(self, transaction: CommandTransaction) -> None:
        self.transaction = transaction
        self._propagation_stopped = False

    @property
    def client(self) -> Any:
        return self.transaction.client

    @property
    def command(self) -> Command:
        return self.transaction.command

    @property
    def request(self) -> httpx.Request | None:
        return self.transaction.request

    @property
    def response(self) -> httpx.Response | None:
        return self.transaction.response

    @property
    def result(self) -> Any:
        return self.transaction.result

    def set_result(self, result: Any) -> None:
        self.transaction.result = result

    @property
    def propagation_stopped(self) -> bool:
        return self._propagation_stopped

    def stop_propagation(self) -> None:
        """Skip the remaining listeners of this stage for this transaction."""
        self._propagation_stopped = True


class PrepareEvent(CommandEvent):
    """Emitted before sending. Listeners attach a request or a result."""

    def set_request(self, request: httpx.Request) -> None:
        self.transaction.request = request

    def set_result(self, result: Any) -> None:
        """Supply a result and skip sending the request entirely."""
        super().set_result(result)
        self.stop_propagation()


class ProcessEvent(CommandEvent):
    """Emitted once a result is available."""


class CommandErrorEvent(CommandEvent):
    """Emitted when the transport reports a failure."""

    def __init__(self, transaction: CommandTransaction, failure: BaseException) -> None:
        super().__init__(transaction)
        self.failure = failure

    def set_result(self, result: Any) -> None:
        """Recover from the failure; later error listeners are skipped."""
        super().set_result(result)
        self.stop_propagation()


async def _emit(event: CommandEvent, listeners: Iterable[Listener]) -> None:
    for listener in listeners:
        outcome = listener(event)
        if inspect.isawaitable(outcome):
            await outcome
        if event.propagation_stopped:
            break


class CommandEvents:
    """Enforces the stage contract of a command transaction."""

    @staticmethod
    async def prepare(
        transaction: CommandTransaction,
        listeners: Iterable[Listener] = (),
        process_listeners: Iterable[Listener] = (),
    ) -> PrepareEvent:
        """Run the prepare stage.

        If a listener supplied a result, the transaction is short-circuited
        and the process listeners run immediately with that result.
        Exceptions raised by listeners propagate unchanged.

        Raises:
            ConfigurationError: If neither a request nor a result was attached
        """
        transaction.state = TransactionState.PREPARE
        event = PrepareEvent(transaction)
        await _emit(event, listeners)

        if transaction.result is not None:
            logger.debug(f"Command {transaction.command.id} short-circuited in prepare")
            await CommandEvents.process(transaction, process_listeners)
            transaction.state = TransactionState.SHORT_CIRCUITED
            return event

        if transaction.request is None:
            raise ConfigurationError("No request was prepared for the command")

        logger.debug(
            f"Prepared {transaction.request.method} {transaction.request.url} "
            f"for command {transaction.command.id} ({transaction.command.name})"
        )
        return event

    @staticmethod
    async def process(
        transaction: CommandTransaction,
        listeners: Iterable[Listener] = (),
    ) -> Any:
        """Run the process stage and return the transaction's result."""
        event = ProcessEvent(transaction)
        await _emit(event, listeners)
        transaction.state = TransactionState.PROCESSED
        return transaction.result

    @staticmethod
    async def error(
        transaction: CommandTransaction,
        failure: BaseException,
        listeners: Iterable[Listener] = (),
        process_listeners: Iterable[Listener] = (),
    ) -> Any:
        """Run the error stage for a transport failure.

        Returns the fallback result when a listener recovered. Otherwise
        raises the typed exception matching the response status.
        """
        transaction.exception = failure
        if transaction.response is None:
            transaction.response = getattr(failure, "response", None)

        event = CommandErrorEvent(transaction, failure)
        await _emit(event, listeners)

        if transaction.result is not None:
            logger.debug(f"Command {transaction.command.id} recovered from error: {failure}")
            transaction.exception = None
            return await CommandEvents.process(transaction, process_listeners)

        transaction.state = TransactionState.ERRORED
        exc = CommandException.create(transaction, failure)
        transaction.exception = exc
        logger.debug(f"Command {transaction.command.id} failed: {exc}")
        raise exc
