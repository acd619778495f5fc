"""Concurrency-capped command pool.

Executes commands from a (possibly unbounded) source through a client,
never running more than ``concurrency`` commands at once. Outcomes are
reported in completion order to caller-supplied callbacks:

    async def on_success(result, key): ...
    def on_failure(exception, key): ...

    pool = client.create_pool(commands, concurrency=10,
                              fulfilled=on_success, rejected=on_failure)
    await pool.run()

``key`` is the command's position in the source, or its key when the
source is a mapping.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Iterable, Mapping
from typing import TYPE_CHECKING, Any

from .command import Command
from .config import DEFAULT_CONCURRENCY
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .client import ServiceClient

logger = logging.getLogger(__name__)

CommandSource = Iterable[Command] | AsyncIterable[Command] | Mapping[Any, Command]

# Receives the outcome (result or exception) and the command's key
OutcomeCallback = Callable[[Any, Any], Awaitable[None] | None]


def _invalid_item(item: Any) -> ConfigurationError:
    return ConfigurationError(
        f"The command source must yield Command instances, got {type(item).__name__}"
    )


class CommandPool:
    """Sliding-window scheduler for many commands against one client.

    Guarantees:
    - at most ``concurrency`` executions are in flight at any time
    - every command pulled from the source is executed exactly once
    - one command's failure never stops the others
    """

    def __init__(
        self,
        client: ServiceClient,
        commands: CommandSource,
        concurrency: int = DEFAULT_CONCURRENCY,
        fulfilled: OutcomeCallback | None = None,
        rejected: OutcomeCallback | None = None,
    ):
        if concurrency < 1:
            raise ConfigurationError(f"Pool concurrency must be at least 1, got {concurrency}")

        # Materialised sources are validated up front
        if isinstance(commands, Mapping):
            for item in commands.values():
                if not isinstance(item, Command):
                    raise _invalid_item(item)
        elif isinstance(commands, list | tuple):
            for item in commands:
                if not isinstance(item, Command):
                    raise _invalid_item(item)

        self._client = client
        self._commands = commands
        self._concurrency = concurrency
        self._fulfilled = fulfilled
        self._rejected = rejected

        self._cancelled = False
        self._running = False
        self._in_flight: dict[asyncio.Task[Any], Any] = {}
        self.started = 0
        self.settled = 0

    @property
    def concurrency(self) -> int:
        return self._concurrency

    @property
    def in_flight(self) -> int:
        """Number of executions currently running."""
        return len(self._in_flight)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Stop pulling new commands. Running executions still settle."""
        self._cancelled = True

    def __await__(self):
        return self.run().__await__()

    async def run(self) -> None:
        """Execute the pool until the source is exhausted and all commands settle.

        Raises:
            ConfigurationError: If the pool already ran or the source
                yields something that is not a Command
        """
        if self._running:
            raise ConfigurationError("A command pool can only be run once")
        self._running = True

        source = self._iterate()
        exhausted = False

        try:
            while True:
                while (
                    not exhausted
                    and not self._cancelled
                    and len(self._in_flight) < self._concurrency
                ):
                    try:
                        key, command = await anext(source)
                    except StopAsyncIteration:
                        exhausted = True
                        break
                    self._start(key, command)

                if not self._in_flight:
                    break

                done, _ = await asyncio.wait(self._in_flight, return_when=asyncio.FIRST_COMPLETED)
                callback_error: Exception | None = None
                for task in done:
                    try:
                        await self._settle(task, self._in_flight.pop(task))
                    except Exception as e:
                        # Every finished task is still reported before aborting
                        if callback_error is None:
                            callback_error = e
                if callback_error is not None:
                    raise callback_error
        except BaseException:
            await self._abandon()
            raise
        finally:
            await source.aclose()

        logger.info(
            f"Command pool drained: {self.started} started, {self.settled} settled"
            + (" (cancelled)" if self._cancelled else "")
        )

    def _start(self, key: Any, command: Command) -> None:
        task = asyncio.create_task(self._client.execute_async(command))
        self._in_flight[task] = key
        self.started += 1
        logger.debug(f"Pool started command {command.id} ({command.name}) at {key!r}")

    async def _abandon(self) -> None:
        """Let started executions finish without reporting them."""
        if not self._in_flight:
            return
        await asyncio.wait(self._in_flight)
        for task in self._in_flight:
            self.settled += 1
            if not task.cancelled():
                task.exception()
        logger.debug(f"Command pool aborted with {len(self._in_flight)} unreported executions")
        self._in_flight.clear()

    async def _settle(self, task: asyncio.Task[Any], key: Any) -> None:
        self.settled += 1
        if task.cancelled():
            callback, outcome = self._rejected, asyncio.CancelledError()
        elif task.exception() is not None:
            callback, outcome = self._rejected, task.exception()
        else:
            callback, outcome = self._fulfilled, task.result()

        if callback is not None:
            returned = callback(outcome, key)
            if inspect.isawaitable(returned):
                await returned

    async def _iterate(self) -> AsyncIterator[tuple[Any, Command]]:
        commands = self._commands
        if isinstance(commands, Mapping):
            pairs: Iterable[tuple[Any, Any]] = commands.items()
        elif isinstance(commands, AsyncIterable):
            index = 0
            async for item in commands:
                if not isinstance(item, Command):
                    raise _invalid_item(item)
                yield index, item
                index += 1
            return
        else:
            pairs = enumerate(commands)

        for key, item in pairs:
            if not isinstance(item, Command):
                raise _invalid_item(item)
            yield key, item

    @classmethod
    async def batch(
        cls,
        client: ServiceClient,
        commands: CommandSource,
        **options: Any,
    ) -> dict[Any, Any]:
        """Execute commands and return every outcome in source order.

        Each value is the command's result or the exception it raised.
        Caller-supplied ``fulfilled``/``rejected`` callbacks still run.

        Every command and outcome is held in memory, so this is not
        suitable for large or unbounded sources; use the pool with
        callbacks instead.
        """
        positions: dict[Any, int] = {}
        outcomes: dict[int, tuple[Any, Any]] = {}

        if isinstance(commands, Mapping):
            positions = {key: index for index, key in enumerate(commands)}

        def compose(name: str) -> OutcomeCallback:
            current = options.get(name)

            async def record(outcome: Any, key: Any) -> None:
                if current is not None:
                    returned = current(outcome, key)
                    if inspect.isawaitable(returned):
                        await returned
                outcomes[positions.get(key, key)] = (key, outcome)

            return record

        options["fulfilled"] = compose("fulfilled")
        options["rejected"] = compose("rejected")
        await cls(client, commands, **options).run()

        return {key: outcome for _, (key, outcome) in sorted(outcomes.items())}
