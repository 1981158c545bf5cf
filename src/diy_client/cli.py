"""diy-client CLI.

Default mode is interactive: pick a tool or resource from the peer's
catalogs, answer prompts for string parameters, see the result.

Usage:
    diy-client                                    # Interactive menu
    diy-client --server "python my_server.py"     # Custom peer command
    diy-client -vv                                # Debug logging on stderr

    diy-client info                               # Server info and capabilities
    diy-client tools                              # List tools
    diy-client resources                          # List resources
    diy-client call <name> -a key=value           # Call a tool
    diy-client read <uri>                         # Read a resource
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
import sys
from collections.abc import Coroutine, Iterator
from typing import Any, TypeVar

import click

from .config import DEFAULT_SERVER_COMMAND, ClientConfig
from .protocol.errors import (
    MalformedMessage,
    PeerDisconnected,
    ProtocolViolation,
    RemoteError,
    RequestTimeout,
)
from .protocol.types import PROTOCOL_VERSION, ContentBlock, ResourceDescriptor, ToolDescriptor
from .sdk.client import PeerClient, create_subprocess_client, render_content

T = TypeVar("T")

# Output format options
FORMAT_TABLE = "table"
FORMAT_JSON = "json"


def truncate(text: str | None, max_len: int = 50) -> str:
    """Truncate text for display."""
    if not text:
        return ""
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _configure_logging(verbose: int) -> None:
    # Logs go to stderr; stdout belongs to the UI
    if verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s", stream=sys.stderr)


@contextlib.contextmanager
def _protocol_errors() -> Iterator[None]:
    """Turn protocol failures into exit status 1."""
    try:
        yield
    except RemoteError as e:
        click.echo(f"Peer returned error {e.code}: {e.message}", err=True)
        sys.exit(1)
    except RequestTimeout as e:
        click.echo(f"Request timed out: {e}", err=True)
        sys.exit(1)
    except PeerDisconnected as e:
        click.echo(f"Peer disconnected: {e}", err=True)
        sys.exit(1)
    except MalformedMessage as e:
        click.echo(f"Peer sent a malformed reply: {e}", err=True)
        sys.exit(1)
    except ProtocolViolation as e:
        click.echo(f"Protocol violation: {e}", err=True)
        sys.exit(1)


def _run(coro: Coroutine[Any, Any, None]) -> None:
    with _protocol_errors():
        asyncio.run(coro)


def _echo_blocks(blocks: list[ContentBlock]) -> None:
    if not blocks:
        click.echo("(no content)")
    for line in render_content(blocks):
        click.echo(line)


@click.group(invoke_without_command=True)
@click.option(
    "--server",
    "server_command",
    default=DEFAULT_SERVER_COMMAND,
    show_default=True,
    help="Command that launches the peer",
)
@click.option(
    "--cwd",
    type=click.Path(exists=True, file_okay=False),
    default=None,
    help="Working directory for the peer",
)
@click.option("--timeout", type=float, default=None, help="Per-request timeout in seconds")
@click.option("--protocol-version", default=PROTOCOL_VERSION, show_default=True)
@click.option("--verbose", "-v", count=True, help="-v for info, -vv for debug logging")
@click.pass_context
def main(
    ctx: click.Context,
    server_command: str,
    cwd: str | None,
    timeout: float | None,
    protocol_version: str,
    verbose: int,
) -> None:
    """diy-client - explore and invoke a peer's tools and resources.

    Launches the peer as a subprocess, negotiates capabilities over stdio,
    and runs an interactive menu unless a subcommand is given.
    """
    _configure_logging(verbose)

    try:
        config = ClientConfig.from_command_line(
            server_command,
            working_directory=cwd,
            request_timeout=timeout,
            protocol_version=protocol_version,
        )
    except ValueError as e:
        raise click.UsageError(str(e)) from e

    ctx.obj = config

    # If a subcommand is invoked, let it handle everything
    if ctx.invoked_subcommand is not None:
        return

    with _protocol_errors():
        _interactive(config)


# =============================================================================
# Interactive mode
# =============================================================================


def _choose(message: str, options: list[tuple[T, str]]) -> T:
    """Numbered menu; raises click.Abort on Ctrl-C or EOF."""
    for index, (_, label) in enumerate(options, start=1):
        click.echo(f"  {index}. {label}")
    choice = click.prompt(message, type=click.IntRange(1, len(options)))
    return options[choice - 1][0]


def _run_tool(runner: asyncio.Runner, client: PeerClient) -> None:
    if not client.tools:
        click.echo("No tools available.")
        return

    tool: ToolDescriptor = _choose(
        "Select a tool", [(t, f"{t.name} - {truncate(t.description)}") for t in client.tools]
    )

    arguments: dict[str, str] = {}
    for key in tool.string_parameters():
        arguments[key] = click.prompt(f"{key}", default="", show_default=False)

    _echo_blocks(runner.run(client.call_tool(tool, arguments)))


def _read_resource(runner: asyncio.Runner, client: PeerClient) -> None:
    if not client.resources:
        click.echo("No resources available.")
        return

    resource: ResourceDescriptor = _choose(
        "Select a resource", [(r, r.name) for r in client.resources]
    )
    _echo_blocks(runner.run(client.read_resource(resource)))


def _interactive(config: ClientConfig) -> None:
    """Menu loop.

    Prompts block on the main thread between short runs of the event loop,
    so Ctrl-C interrupts the prompt itself. The correlator's reader task
    stays on the runner's loop and resumes on every run.
    """
    client = create_subprocess_client(config)
    with asyncio.Runner() as runner:
        try:
            runner.run(client.start())
            info = client.server_info
            click.echo(f"Connected to {info.name} v{info.version}")

            actions = [("tool", "Run a tool"), ("resource", "Get a resource")]
            while True:
                action = _choose("What would you like to do?", actions)
                try:
                    if action == "tool":
                        _run_tool(runner, client)
                    else:
                        _read_resource(runner, client)
                except (RemoteError, RequestTimeout, MalformedMessage) as e:
                    # The session survives these; report and show the menu again
                    click.echo(f"Error: {e}", err=True)
        except (click.Abort, KeyboardInterrupt):
            click.echo()
        finally:
            runner.run(client.close())


# =============================================================================
# One-shot commands
# =============================================================================


@main.command("info")
@click.pass_obj
def info(config: ClientConfig) -> None:
    """Show server info and negotiated capabilities."""

    async def _info() -> None:
        async with create_subprocess_client(config) as client:
            server = client.server_info
            click.echo(f"Server:       {server.name} v{server.version}")
            click.echo(f"Protocol:     {client.session.protocol_version}")
            advertised = sorted(client.capabilities.model_dump(exclude_none=True))
            click.echo(f"Capabilities: {', '.join(advertised) or 'none'}")
            click.echo(f"Tools:        {len(client.tools)}")
            click.echo(f"Resources:    {len(client.resources)}")
            if client.session.instructions:
                click.echo(f"\n{client.session.instructions}")

    _run(_info())


@main.command("tools")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def tools(config: ClientConfig, output_format: str) -> None:
    """List the peer's tools."""

    async def _tools() -> None:
        async with create_subprocess_client(config) as client:
            if output_format == FORMAT_JSON:
                data = [tool.model_dump(exclude_none=True) for tool in client.tools]
                click.echo(json.dumps(data, indent=2, ensure_ascii=False))
                return

            if not client.tools:
                click.echo("No tools found.")
                return

            click.echo(f"{'Name':<24} {'Parameters':<24} Description")
            click.echo("-" * 75)
            for tool in client.tools:
                params = truncate(", ".join(tool.properties), 24)
                click.echo(f"{tool.name:<24} {params:<24} {truncate(tool.description)}")

    _run(_tools())


@main.command("resources")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice([FORMAT_TABLE, FORMAT_JSON]),
    default=FORMAT_TABLE,
    help="Output format",
)
@click.pass_obj
def resources(config: ClientConfig, output_format: str) -> None:
    """List the peer's resources."""

    async def _resources() -> None:
        async with create_subprocess_client(config) as client:
            if output_format == FORMAT_JSON:
                data = [res.model_dump(exclude_none=True) for res in client.resources]
                click.echo(json.dumps(data, indent=2, ensure_ascii=False))
                return

            if not client.resources:
                click.echo("No resources found.")
                return

            click.echo(f"{'Name':<24} URI")
            click.echo("-" * 75)
            for res in client.resources:
                click.echo(f"{truncate(res.name, 24):<24} {res.uri}")

    _run(_resources())


def _parse_arguments(pairs: tuple[str, ...]) -> dict[str, str]:
    arguments: dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"Expected key=value, got {pair!r}", param_hint="--arg")
        arguments[key] = value
    return arguments


@main.command("call")
@click.argument("name")
@click.option("--arg", "-a", "pairs", multiple=True, help="Tool argument as key=value")
@click.pass_obj
def call(config: ClientConfig, name: str, pairs: tuple[str, ...]) -> None:
    """Call a tool by name.

    Examples:

        diy-client call echo -a text=hello
    """
    arguments = _parse_arguments(pairs)

    async def _call() -> None:
        async with create_subprocess_client(config) as client:
            if client.session.find_tool(name) is None:
                raise click.ClickException(f"Tool not advertised by peer: {name}")
            _echo_blocks(await client.call_tool(name, arguments))

    _run(_call())


@main.command("read")
@click.argument("uri")
@click.pass_obj
def read(config: ClientConfig, uri: str) -> None:
    """Read a resource by URI."""

    async def _read() -> None:
        async with create_subprocess_client(config) as client:
            _echo_blocks(await client.read_resource(uri))

    _run(_read())


if __name__ == "__main__":
    main()
