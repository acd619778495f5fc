"""Tests for the command lifecycle controller."""

from __future__ import annotations

import httpx
import pytest

from service_commands import (
    Command,
    CommandClientException,
    CommandErrorEvent,
    CommandEvents,
    CommandException,
    CommandServerException,
    CommandTransaction,
    ConfigurationError,
    PrepareEvent,
    ProcessEvent,
    TransactionState,
)

REQUEST = httpx.Request("GET", "https://api.test/things")


@pytest.fixture
def transaction() -> CommandTransaction:
    return CommandTransaction(client=object(), command=Command(name="foo"))


def status_error(status: int) -> httpx.HTTPStatusError:
    response = httpx.Response(status, request=REQUEST)
    return httpx.HTTPStatusError("bad status", request=REQUEST, response=response)


# =============================================================================
# Prepare stage
# =============================================================================


class TestPrepare:
    """Prepare listeners attach a request or short-circuit with a result."""

    @pytest.mark.asyncio
    async def test_listener_attaches_request(self, transaction):
        def build(event: PrepareEvent):
            event.set_request(REQUEST)

        event = await CommandEvents.prepare(transaction, [build])

        assert event.request is REQUEST
        assert transaction.request is REQUEST
        assert event.propagation_stopped is False
        assert transaction.result is None
        assert transaction.state is TransactionState.PREPARE

    @pytest.mark.asyncio
    async def test_requires_request_or_result(self, transaction):
        with pytest.raises(ConfigurationError, match="No request was prepared for the command"):
            await CommandEvents.prepare(transaction, [lambda event: None])

    @pytest.mark.asyncio
    async def test_result_short_circuits_and_runs_process(self, transaction):
        seen = []

        def intercept(event: PrepareEvent):
            event.set_result("123")

        def never_called(event: PrepareEvent):
            raise AssertionError("later prepare listeners are skipped")

        def process(event: ProcessEvent):
            seen.append(event.result)

        event = await CommandEvents.prepare(transaction, [intercept, never_called], [process])

        assert event.request is None
        assert event.propagation_stopped is True
        assert transaction.result == "123"
        assert transaction.state is TransactionState.SHORT_CIRCUITED
        assert seen == ["123"]

    @pytest.mark.asyncio
    async def test_listener_exception_passes_through_untouched(self, transaction):
        original = CommandException("foo", command=transaction.command)

        def fail(event):
            raise original

        with pytest.raises(CommandException) as exc_info:
            await CommandEvents.prepare(transaction, [fail])

        assert exc_info.value is original

    @pytest.mark.asyncio
    async def test_async_listeners_are_awaited(self, transaction):
        async def build(event: PrepareEvent):
            event.set_request(REQUEST)

        await CommandEvents.prepare(transaction, [build])

        assert transaction.request is REQUEST

    @pytest.mark.asyncio
    async def test_listeners_run_in_order(self, transaction):
        calls = []

        def first(event):
            calls.append("first")
            event.command.set_param("token", "abc")

        def second(event):
            calls.append("second")
            assert event.command.get_param("token") == "abc"
            event.set_request(REQUEST)

        await CommandEvents.prepare(transaction, [first, second])

        assert calls == ["first", "second"]


# =============================================================================
# Process stage
# =============================================================================


class TestProcess:
    """Process listeners observe and may replace the result."""

    @pytest.mark.asyncio
    async def test_listener_sees_full_context(self, transaction):
        response = httpx.Response(200, request=REQUEST)
        transaction.request = REQUEST
        transaction.response = response
        called = []

        def process(event: ProcessEvent):
            assert event.client is transaction.client
            assert event.command is transaction.command
            assert event.request is REQUEST
            assert event.response is response
            event.set_result("foo")
            called.append(True)

        result = await CommandEvents.process(transaction, [process])

        assert result == "foo"
        assert called == [True]
        assert transaction.state is TransactionState.PROCESSED

    @pytest.mark.asyncio
    async def test_stop_propagation_skips_later_listeners(self, transaction):
        transaction.result = "original"

        def replace(event: ProcessEvent):
            event.set_result("replaced")
            event.stop_propagation()

        def never_called(event):
            raise AssertionError("should be skipped")

        assert await CommandEvents.process(transaction, [replace, never_called]) == "replaced"

    @pytest.mark.asyncio
    async def test_stop_propagation_is_per_transaction(self):
        calls = []

        def stop(event):
            calls.append("stop")
            event.stop_propagation()

        def later(event):
            calls.append("later")

        for _ in range(2):
            transaction = CommandTransaction(client=None, command=Command(name="foo"))
            await CommandEvents.process(transaction, [stop, later])

        assert calls == ["stop", "stop"]


# =============================================================================
# Error stage
# =============================================================================


class TestError:
    """Error listeners may recover; otherwise typed exceptions are raised."""

    @pytest.mark.asyncio
    async def test_listener_can_intercept_with_result(self, transaction):
        failure = status_error(200)
        transaction.request = REQUEST
        seen = []

        def recover(event: CommandErrorEvent):
            assert event.client is transaction.client
            assert event.command is transaction.command
            assert event.request is REQUEST
            assert event.response is failure.response
            assert event.failure is failure
            event.set_result("foo")

        def process(event: ProcessEvent):
            seen.append(event.result)

        result = await CommandEvents.error(transaction, failure, [recover], [process])

        assert result == "foo"
        assert seen == ["foo"]
        assert transaction.exception is None
        assert transaction.state is TransactionState.PROCESSED

    @pytest.mark.asyncio
    async def test_first_recovering_listener_wins(self, transaction):
        def first(event):
            event.set_result("first")

        def second(event):
            event.set_result("second")

        result = await CommandEvents.error(transaction, status_error(500), [first, second])

        assert result == "first"

    @pytest.mark.asyncio
    async def test_unresolved_raises_generic_exception(self, transaction):
        failure = status_error(200)
        transaction.request = REQUEST
        observed = []

        with pytest.raises(CommandException) as exc_info:
            await CommandEvents.error(transaction, failure, [lambda event: observed.append(event)])

        exc = exc_info.value
        assert type(exc) is CommandException
        assert exc.command is transaction.command
        assert exc.client is transaction.client
        assert exc.request is REQUEST
        assert exc.response is failure.response
        assert exc.__cause__ is failure
        assert len(observed) == 1
        assert transaction.state is TransactionState.ERRORED
        assert transaction.exception is exc
        assert transaction.result is None

    @pytest.mark.asyncio
    async def test_raises_client_exception_for_4xx(self, transaction):
        with pytest.raises(CommandClientException):
            await CommandEvents.error(transaction, status_error(400))

    @pytest.mark.asyncio
    async def test_raises_server_exception_for_5xx(self, transaction):
        with pytest.raises(CommandServerException):
            await CommandEvents.error(transaction, status_error(500))

    @pytest.mark.asyncio
    async def test_no_response_raises_generic_exception(self, transaction):
        failure = httpx.ConnectError("refused", request=REQUEST)

        with pytest.raises(CommandException) as exc_info:
            await CommandEvents.error(transaction, failure)

        assert type(exc_info.value) is CommandException
        assert exc_info.value.response is None
