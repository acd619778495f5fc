"""service-commands CLI.

Runs operations described in a YAML/JSON operations file against a
JSON service.

Usage:
    service-commands operations --api api.yaml          # List operations
    service-commands call get_user --api api.yaml -p id=42
    service-commands call create_user --api api.yaml -p name=Ada -f table
    service-commands batch jobs.yaml --api api.yaml --concurrency 5

Environment variables SERVICE_COMMANDS_BASE_URL, SERVICE_COMMANDS_TIMEOUT,
SERVICE_COMMANDS_CONCURRENCY and SERVICE_COMMANDS_VERIFY provide defaults.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from typing import Any

import click
import yaml

from .command import HTTP_OPTIONS_KEY, Command
from .config import ClientConfig
from .exceptions import CommandException
from .json_client import JsonClient
from .pool import CommandPool
from .result import METADATA_KEY, Result

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


def parse_param(raw: str) -> tuple[str, Any]:
    """Parse a ``key=value`` option. JSON values are decoded, anything else stays a string."""
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise click.BadParameter(f"Expected key=value, got '{raw}'")
    try:
        return key, json.loads(value)
    except ValueError:
        return key, value


def truncate(text: str, max_len: int = 60) -> str:
    """Truncate text for display."""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _load_client(api_path: str, base_url: str | None) -> JsonClient:
    kwargs: dict[str, Any] = {"config": ClientConfig.from_env()}
    if base_url:
        kwargs["base_url"] = base_url
    try:
        return JsonClient.from_file(api_path, **kwargs)
    except (ValueError, yaml.YAMLError) as e:
        raise click.ClickException(f"Invalid operations file {api_path}: {e}") from e


def _echo_result(result: Result, output_format: str) -> None:
    if output_format == FORMAT_JSON:
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
        return

    for key, value in result.items():
        if key == METADATA_KEY:
            continue
        click.echo(f"{key:<20} {truncate(json.dumps(value, default=str))}")
    if result.metadata:
        click.echo(f"{'status':<20} {result.metadata.status_code}")


@click.group()
@click.option(
    "--log-level",
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    default="WARNING",
    help="Logging level",
)
def main(log_level: str) -> None:
    """Execute commands against JSON web services."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@main.command("operations")
@click.option("--api", "api_path", required=True, type=click.Path(exists=True, dir_okay=False))
def list_operations(api_path: str) -> None:
    """List the operations defined in an operations file."""
    client = _load_client(api_path, None)
    click.echo(f"{'Name':<24} {'Method':<8} {'URI':<40}")
    click.echo("-" * 74)
    for name, operation in sorted(client.operations.items()):
        click.echo(f"{name:<24} {operation.method:<8} {truncate(operation.uri, 40):<40}")


@main.command("call")
@click.argument("operation")
@click.option("--api", "api_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--base-url", help="Override the service base URL")
@click.option("--param", "-p", "params", multiple=True, help="Command parameter as key=value")
@click.option("--timeout", type=float, help="Request timeout in seconds")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_JSON,
    help="Output format",
)
def call(
    operation: str,
    api_path: str,
    base_url: str | None,
    params: tuple[str, ...],
    timeout: float | None,
    output_format: str,
) -> None:
    """Execute a single operation.

    Examples:

        service-commands call get_user --api api.yaml -p id=42
        service-commands call search --api api.yaml -p q=widgets --timeout 5
    """
    client = _load_client(api_path, base_url)
    try:
        command = client.get_command(operation, dict(parse_param(p) for p in params))
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    if timeout is not None:
        command.set_param(HTTP_OPTIONS_KEY, {"timeout": timeout})

    try:
        result = client.execute(command)
    except CommandException as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    _echo_result(result, output_format)


@main.command("batch")
@click.argument("jobs_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--api", "api_path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--base-url", help="Override the service base URL")
@click.option("--concurrency", "-c", type=int, help="Maximum concurrent commands")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
def batch(
    jobs_path: str,
    api_path: str,
    base_url: str | None,
    concurrency: int | None,
    output_format: str,
) -> None:
    """Execute a list of operations concurrently.

    The jobs file is a YAML/JSON list of entries with a ``name`` and
    optional ``params``:

        - name: get_user
          params: {id: 1}
        - name: get_user
          params: {id: 2}
    """
    client = _load_client(api_path, base_url)

    with open(jobs_path, encoding="utf-8") as f:
        jobs = yaml.safe_load(f) or []
    if not isinstance(jobs, list):
        raise click.ClickException(f"{jobs_path} must contain a list of jobs")

    try:
        commands: list[Command] = [
            client.get_command(job["name"], job.get("params")) for job in jobs
        ]
    except (KeyError, TypeError) as e:
        raise click.ClickException(f"Invalid job entry in {jobs_path}: {e}") from e
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    async def run() -> dict[Any, Any]:
        async with client:
            return await CommandPool.batch(
                client,
                commands,
                concurrency=concurrency or client.config.concurrency,
            )

    outcomes = asyncio.run(run())
    failed = [key for key, outcome in outcomes.items() if isinstance(outcome, Exception)]

    if output_format == FORMAT_JSON:
        click.echo(
            json.dumps(
                [
                    {"position": key, "error": str(outcome)}
                    if isinstance(outcome, Exception)
                    else {"position": key, "result": outcome.to_dict()}
                    for key, outcome in outcomes.items()
                ],
                indent=2,
                default=str,
            )
        )
    else:
        click.echo(f"{'#':<5} {'Command':<24} {'Outcome':<50}")
        click.echo("-" * 80)
        for key, outcome in outcomes.items():
            if isinstance(outcome, Exception):
                summary = f"{type(outcome).__name__}: {outcome}"
            else:
                status = outcome.metadata.status_code if outcome.metadata else "-"
                summary = f"ok ({status})"
            click.echo(f"{key:<5} {commands[key].name:<24} {truncate(summary, 50):<50}")

    if failed:
        click.echo(f"{len(failed)} of {len(outcomes)} commands failed", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
