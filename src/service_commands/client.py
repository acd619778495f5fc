"""Service client base.

AbstractClient turns commands into HTTP round trips. Concrete clients
supply two operations:

- serialize_request(command) -> httpx.Request
- unserialize_response(response) -> Result (or a mapping)

Everything else (lifecycle hooks, middleware, transport options,
error classification, concurrent execution) is handled here.

Usage:
    class UsersClient(AbstractClient):
        def serialize_request(self, command):
            return httpx.Request("GET", f"https://api.example.com/users/{command['id']}")

        def unserialize_response(self, response):
            return response.json()

    client = UsersClient()
    result = client.execute(client.get_command("get_user", {"id": 42}))
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Coroutine, Mapping
from typing import Any, Protocol, TypeVar, runtime_checkable

import httpx

from .command import Command
from .config import ClientConfig
from .events import CommandEvents, PrepareEvent
from .exceptions import CommandException, ConfigurationError
from .handler import HandlerStack
from .hooks import CommandHooks, Stage
from .pool import CommandPool, CommandSource
from .result import HttpMetadata, Result
from .transaction import CommandTransaction, TransactionState
from .transport import HttpTransport, HttpxTransport

logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ServiceClient(Protocol):
    """Protocol for web service clients.

    All clients must implement:
    - get_command: Create a command for an operation name
    - execute / execute_async: Run a single command
    - execute_all / create_pool: Run many commands concurrently
    """

    def get_command(self, name: str, params: dict[str, Any] | None = None) -> Command:
        """Create a command for an operation.

        Raises:
            ValueError: If no command can be created for the name
        """
        ...

    def execute(self, command: Command) -> Any:
        """Execute a command and block until it completes.

        Raises:
            CommandException: If the command failed
        """
        ...

    async def execute_async(self, command: Command) -> Any:
        """Execute a command."""
        ...

    def execute_all(self, commands: CommandSource, **options: Any) -> None:
        """Execute many commands concurrently, blocking until all settle."""
        ...

    def create_pool(self, commands: CommandSource, **options: Any) -> CommandPool:
        """Create a concurrency-capped pool for the commands."""
        ...


def run_sync(factory: Callable[[], Coroutine[Any, Any, T]]) -> T:
    """Run the coroutine built by ``factory`` from synchronous code.

    Raises:
        ConfigurationError: If called while an event loop is running
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(factory())

    raise ConfigurationError(
        "Synchronous execution cannot run inside an event loop; await the async variant instead"
    )


class AbstractClient(ABC):
    """Base class for command-based service clients.

    Holds the transport, the default lifecycle hooks and the default
    middleware stack. Commands created with ``get_command`` receive
    private copies of the hooks and the stack.
    """

    def __init__(
        self,
        transport: HttpTransport | None = None,
        handler_stack: HandlerStack | None = None,
        hooks: CommandHooks | None = None,
        config: ClientConfig | None = None,
    ):
        self.config = config or ClientConfig()
        self._owns_transport = transport is None
        self._transport: HttpTransport = (
            transport if transport is not None else HttpxTransport(self.config)
        )
        self._handler_stack = handler_stack if handler_stack is not None else HandlerStack()
        self._handler_stack.set_handler(self._handle_command)
        self._hooks = hooks if hooks is not None else CommandHooks()

    @property
    def transport(self) -> HttpTransport:
        """Access the underlying transport."""
        return self._transport

    @property
    def handler_stack(self) -> HandlerStack:
        """Middleware stack applied to commands without their own stack."""
        return self._handler_stack

    @property
    def hooks(self) -> CommandHooks:
        """Lifecycle listeners copied into every new command."""
        return self._hooks

    def get_command(self, name: str, params: dict[str, Any] | None = None) -> Command:
        return Command.create(
            name,
            params,
            hooks=self._hooks.copy(),
            handler_stack=self._handler_stack.copy(),
        )

    def execute(self, command: Command) -> Any:
        """Execute a command, blocking the calling thread until it settles.

        Returns:
            The command's result

        Raises:
            CommandException: If the command failed
            ConfigurationError: If called from inside a running event loop
        """
        command.is_async = False
        return run_sync(lambda: self._release_after(self._execute(command)))

    async def execute_async(self, command: Command) -> Any:
        """Execute a command.

        Returns:
            The command's result

        Raises:
            CommandException: If the command failed
        """
        command.is_async = True
        return await self._execute(command)

    def execute_all(self, commands: CommandSource, **options: Any) -> None:
        """Execute commands concurrently and block until all have settled.

        Failures are not raised. Pass ``fulfilled`` and ``rejected``
        callbacks to observe outcomes.

        Args:
            commands: Iterable, async iterable or mapping of commands
            **options: Pool options (concurrency, fulfilled, rejected)
        """
        run_sync(lambda: self._release_after(self.execute_all_async(commands, **options)))

    async def execute_all_async(self, commands: CommandSource, **options: Any) -> None:
        """Awaitable variant of ``execute_all``."""
        await self.create_pool(commands, **options).run()

    def create_pool(self, commands: CommandSource, **options: Any) -> CommandPool:
        if options.get("concurrency") is None:
            options["concurrency"] = self.config.concurrency
        return CommandPool(self, commands, **options)

    @abstractmethod
    def serialize_request(self, command: Command) -> httpx.Request:
        """Build the HTTP request for a command.

        Raises:
            SerializationError: If the command parameters are invalid
        """

    @abstractmethod
    def unserialize_response(self, response: httpx.Response) -> Result | Mapping[str, Any]:
        """Build the result data from an HTTP response.

        Raises:
            DeserializationError: If the response payload is malformed
        """

    async def close(self) -> None:
        """Close the transport if this client created it."""
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> AbstractClient:
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.close()

    async def _execute(self, command: Command) -> Any:
        stack = command.handler_stack if command.handler_stack is not None else self._handler_stack
        handler = stack.resolve()
        return await handler(command)

    async def _release_after(self, coro: Coroutine[Any, Any, T]) -> T:
        # Each synchronous call runs in a fresh event loop; drop loop-bound connections
        try:
            return await coro
        finally:
            await self._transport.release()

    def _serialize(self, event: PrepareEvent) -> None:
        if event.request is None:
            event.set_request(self.serialize_request(event.command))

    def _build_result(self, response: httpx.Response, request: httpx.Request) -> Result:
        result = Result.from_mapping(self.unserialize_response(response))
        return result.with_metadata(HttpMetadata.from_response(response, request))

    async def _handle_command(self, command: Command) -> Any:
        """Core handler: prepare, send, then process or error."""
        options = command.pop_http_options()
        transaction = CommandTransaction(client=self, command=command)
        hooks = command.hooks if command.hooks is not None else self._hooks
        process_listeners = hooks.listeners(Stage.PROCESS)

        try:
            await CommandEvents.prepare(
                transaction,
                [*hooks.listeners(Stage.PREPARE), self._serialize],
                process_listeners,
            )
            if transaction.state is TransactionState.SHORT_CIRCUITED:
                return transaction.result

            request = transaction.request
            transaction.state = TransactionState.SENT
            logger.debug(f"Sending command {command.id} ({command.name}): {request.method} {request.url}")

            try:
                response = await self._transport.send(request, options)
            except Exception as e:
                return await CommandEvents.error(
                    transaction, e, hooks.listeners(Stage.ERROR), process_listeners
                )

            transaction.response = response
            transaction.result = self._build_result(response, request)
            return await CommandEvents.process(transaction, process_listeners)

        except (CommandException, ConfigurationError):
            raise
        except Exception as e:
            transaction.state = TransactionState.ERRORED
            transaction.result = None
            exc = CommandException.create(transaction, e)
            transaction.exception = exc
            raise exc from e
