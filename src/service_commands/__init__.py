"""service-commands - Command-based web service clients.

Build a typed client by subclassing AbstractClient (or use JsonClient),
then execute named commands instead of writing HTTP calls:

    command = client.get_command("get_user", {"id": 42})
    result = client.execute(command)              # blocking
    result = await client.execute_async(command)  # async

    outcomes = await CommandPool.batch(client, commands, concurrency=10)

Key concepts:
- Command: named operation with parameters and its own lifecycle hooks
- Lifecycle: prepare -> send -> process | error, with listener hook points
- CommandPool: runs many commands with a concurrency cap
- Typed failures: CommandClientException (4xx), CommandServerException (5xx)
"""

from .client import AbstractClient, ServiceClient
from .command import HTTP_OPTIONS_KEY, Command
from .config import ClientConfig
from .events import CommandErrorEvent, CommandEvents, PrepareEvent, ProcessEvent
from .exceptions import (
    CommandClientException,
    CommandException,
    CommandServerException,
    ConfigurationError,
    DeserializationError,
    SerializationError,
)
from .handler import HandlerStack
from .hooks import CommandHooks, Stage
from .json_client import JsonClient, Operation
from .pool import CommandPool
from .result import METADATA_KEY, HttpMetadata, Result
from .transaction import CommandTransaction, TransactionState
from .transport import (
    HttpTransport,
    HttpxTransport,
    MockHttpTransport,
    create_httpx_transport,
    create_mock_transport,
)

__all__ = [
    # Clients
    "AbstractClient",
    "ServiceClient",
    "JsonClient",
    "Operation",
    "ClientConfig",
    # Commands & results
    "Command",
    "HTTP_OPTIONS_KEY",
    "Result",
    "HttpMetadata",
    "METADATA_KEY",
    # Lifecycle
    "CommandEvents",
    "CommandHooks",
    "Stage",
    "PrepareEvent",
    "ProcessEvent",
    "CommandErrorEvent",
    "CommandTransaction",
    "TransactionState",
    "HandlerStack",
    # Concurrency
    "CommandPool",
    # Transports
    "HttpTransport",
    "HttpxTransport",
    "MockHttpTransport",
    "create_httpx_transport",
    "create_mock_transport",
    # Errors
    "CommandException",
    "CommandClientException",
    "CommandServerException",
    "ConfigurationError",
    "SerializationError",
    "DeserializationError",
]
