"""
renderkit-relay command line.

Commands:
- serve: run the relay with uvicorn
- check: load a renderer artifact and report its version
- sign: print authentication headers for a request body
- render: send one signed render request to a running relay
- load-test: burst load against a running relay
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Annotated, Any

import typer
from rich.console import Console
from rich.table import Table

from renderkit_relay._version import get_version
from renderkit_relay.config import DEFAULT_PORT, DEFAULT_RENDERER_PATH, ENV_PREFIX, load_config
from renderkit_relay.errors import ConfigError, RelayError
from renderkit_relay.logging import setup_logging
from renderkit_relay.renderer_loader import RendererHandle, load_renderer_module

app = typer.Typer(
    help="renderKit-Relay: signed server-side rendering sidecar",
    no_args_is_help=True,
)

console = Console()

DEFAULT_URL = f"http://127.0.0.1:{DEFAULT_PORT}"

SecretOption = Annotated[
    str,
    typer.Option("--secret", envvar=f"{ENV_PREFIX}SECRET", help="Shared HMAC secret"),
]
UrlOption = Annotated[str, typer.Option("--url", help="Relay base URL")]


def version_callback(value: bool) -> None:
    if value:
        typer.echo(f"renderkit-relay {get_version()}")
        raise typer.Exit()


@app.callback()
def main_callback(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = None,
) -> None:
    """renderKit-Relay command line."""


def _parse_json_option(value: str, option: str) -> Any:
    try:
        return json.loads(value)
    except ValueError as e:
        console.print(f"[red]{option} is not valid JSON: {e}[/red]")
        raise typer.Exit(code=2) from e


@app.command()
def serve(
    host: Annotated[str | None, typer.Option("--host", help="Override bind address")] = None,
    port: Annotated[int | None, typer.Option("--port", "-p", help="Override listen port")] = None,
    reload: Annotated[bool, typer.Option("--reload", help="Reload on relay code changes")] = False,
) -> None:
    """Run the relay (configuration comes from RENDERKIT_RELAY_* variables)."""
    from dataclasses import replace

    from renderkit_relay.app_factory import run_app

    try:
        config = load_config()
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e.message}")
        raise typer.Exit(code=1) from e

    if host is not None:
        config = replace(config, host=host)
    if port is not None:
        config = replace(config, port=port)

    setup_logging(config.log_level, config.log_dir)
    console.print(
        f"[bold]renderKit-Relay[/bold] {get_version()} on "
        f"[cyan]http://{config.host}:{config.port}[/cyan] "
        f"(renderer: {config.renderer_path})"
    )
    run_app(config, reload=reload)


@app.command()
def check(
    path: Annotated[
        Path,
        typer.Option(
            "--path",
            envvar=f"{ENV_PREFIX}RENDERER_PATH",
            help="Renderer artifact to load",
        ),
    ] = Path(DEFAULT_RENDERER_PATH),
) -> None:
    """Load a renderer artifact once and report what it exports."""
    if not path.exists():
        console.print(f"[red]renderer_missing:[/red] {path}")
        raise typer.Exit(code=1)

    try:
        module = load_renderer_module(path)
    except RelayError as e:
        console.print(f"[red]{e.code}:[/red] {e.message}")
        raise typer.Exit(code=1) from e

    handle = RendererHandle(module=module, path=path, mtime_ns=path.stat().st_mtime_ns)
    table = Table(title="Renderer artifact", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Path", str(path))
    table.add_row("Version", handle.version)
    table.add_row("Validator", "yes" if handle.has_validator else "no")
    console.print(table)


@app.command()
def sign(
    body: Annotated[str, typer.Argument(help="Exact request body to sign")],
    secret: SecretOption,
    timestamp: Annotated[
        int | None, typer.Option("--timestamp", "-t", help="Unix seconds (default: now)")
    ] = None,
) -> None:
    """Print the authentication headers for a request body."""
    from renderkit_relay.signature import sign_headers

    for name, value in sign_headers(secret, body.encode("utf-8"), timestamp).items():
        typer.echo(f"{name}: {value}")


@app.command()
def render(
    block: Annotated[str, typer.Argument(help="Block name, e.g. renderkit/hero")],
    secret: SecretOption,
    props: Annotated[str, typer.Option("--props", help="Props as a JSON object")] = "{}",
    url: UrlOption = DEFAULT_URL,
    timeout: Annotated[float, typer.Option("--timeout", help="Timeout in seconds")] = 1.5,
) -> None:
    """Render one block through a running relay and print the HTML."""
    from renderkit_relay.client import RelayClient

    parsed = _parse_json_option(props, "--props")
    if not isinstance(parsed, dict):
        console.print("[red]--props must be a JSON object[/red]")
        raise typer.Exit(code=2)

    with RelayClient(url, secret, timeout=timeout) as client:
        html = client.render(block, parsed)

    if not html:
        console.print(f"[red]Render of {block} failed[/red] (see relay logs)")
        raise typer.Exit(code=1)
    typer.echo(html)


@app.command(name="load-test")
def load_test(
    secret: SecretOption,
    url: UrlOption = DEFAULT_URL,
    duration: Annotated[
        float | None, typer.Option("--duration", "-d", help="Seconds to run (default: forever)")
    ] = None,
    interval: Annotated[float, typer.Option("--interval", help="Seconds between bursts")] = 0.1,
) -> None:
    """Send bursts of 1-5 signed renders against a running relay."""
    from renderkit_relay.load_test import run_load_test

    console.print(f"Starting load test against [cyan]{url}[/cyan]... (Ctrl+C to stop)")
    try:
        totals = asyncio.run(
            run_load_test(
                url,
                secret,
                duration=duration,
                interval=interval,
                on_report=lambda report: console.print(str(report)),
            )
        )
    except KeyboardInterrupt:
        console.print("\n[yellow]Load test stopped[/yellow]")
        return

    console.print(f"[bold]Total[/bold] sent={totals.sent} errors={totals.errors}")
    if totals.first_error:
        console.print(f"[red]First error:[/red] {totals.first_error}")


def main() -> None:
    """Entry point for the renderkit-relay command."""
    app()


if __name__ == "__main__":
    main()
