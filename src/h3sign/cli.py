"""h3sign CLI - signed requests and signature debugging."""

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from datetime import datetime
from typing import Any, ParamSpec, TypeVar

import click
from pydantic import SecretStr
from rich.console import Console
from rich.table import Table

from h3sign.client.client import H3Client, build_url, encode_body
from h3sign.client.signer import Credentials, sign_request
from h3sign.common.errors import H3Error, HTTPError, RetriesExhaustedError
from h3sign.common.hmac import build_canonical_request
from h3sign.common.logging import setup_logging
from h3sign.common.settings import Settings

console = Console()

P = ParamSpec("P")
R = TypeVar("R")


def async_command(f: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Decorator to run async commands."""

    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(f(*args, **kwargs))

    return wrapper


def _parse_query(values: tuple[str, ...]) -> dict[str, str]:
    query: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected key=value, got {item!r}", param_hint="--query")
        query[key] = value
    return query


def _parse_data(data: str | None) -> Any:
    if data is None:
        return None
    try:
        return json.loads(data)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"invalid JSON: {exc}", param_hint="--data") from exc


@click.group()
@click.option("--endpoint", default=None, help="API endpoint (H3_API_ENDPOINT)")
@click.option("--key-id", default=None, help="API key id (H3_KEY_ID)")
@click.option("--secret-key", default=None, help="API secret key (H3_SECRET_KEY)")
@click.option("--timeout", type=float, default=None, help="Per-attempt timeout in seconds")
@click.option("--max-retries", type=int, default=None, help="Retries on transient failures")
@click.pass_context
def cli(
    ctx: click.Context,
    endpoint: str | None,
    key_id: str | None,
    secret_key: str | None,
    timeout: float | None,
    max_retries: int | None,
) -> None:
    """h3sign - HMAC-signed requests for the H3 Cloud API."""
    settings = Settings()
    overrides: dict[str, Any] = {}
    if endpoint:
        overrides["api_endpoint"] = endpoint
    if key_id:
        overrides["key_id"] = key_id
    if secret_key:
        overrides["secret_key"] = SecretStr(secret_key)
    if timeout is not None:
        overrides["timeout"] = timeout
    if max_retries is not None:
        overrides["max_retries"] = max_retries
    if overrides:
        settings = settings.model_copy(update=overrides)

    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@cli.command("request")
@click.argument("method")
@click.argument("path")
@click.option("--query", "-q", multiple=True, help="Query parameter as key=value (repeatable)")
@click.option("--data", "-d", default=None, help="JSON request body")
@click.pass_context
@async_command
async def request_cmd(
    ctx: click.Context,
    method: str,
    path: str,
    query: tuple[str, ...],
    data: str | None,
) -> None:
    """Execute a signed request and print the JSON response."""
    settings: Settings = ctx.obj["settings"]
    params = _parse_query(query)
    body = _parse_data(data)

    try:
        async with H3Client.from_settings(settings) as client:
            result = await client.execute(method.upper(), path, params or None, body)
    except HTTPError as exc:
        console.print(f"[red]HTTP {exc.status_code}: {exc.body}[/red]")
        sys.exit(1)
    except RetriesExhaustedError as exc:
        console.print(f"[red]Gave up after {exc.retries} retries: {exc.last_error}[/red]")
        sys.exit(1)
    except H3Error as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if result is None:
        console.print("[yellow]Empty response[/yellow]")
        return
    if isinstance(result, bytes):
        console.print(result.decode("utf-8", errors="replace"), markup=False, highlight=False)
        return
    console.print_json(json.dumps(result))


@cli.command("canonical")
@click.argument("method")
@click.argument("path")
@click.option("--query", "-q", multiple=True, help="Query parameter as key=value (repeatable)")
@click.option("--data", "-d", default=None, help="JSON request body")
@click.option("--date", default=None, help="Fixed RFC3339 timestamp, e.g. 2024-05-01T12:00:00Z")
@click.pass_context
def canonical_cmd(
    ctx: click.Context,
    method: str,
    path: str,
    query: tuple[str, ...],
    data: str | None,
    date: str | None,
) -> None:
    """Show the canonical string, headers and signature for a request."""
    settings: Settings = ctx.obj["settings"]
    if not settings.key_id or not settings.secret_key:
        console.print("[red]Key id and secret key are required[/red]")
        sys.exit(1)

    clock = None
    if date:
        try:
            moment = datetime.fromisoformat(date.replace("Z", "+00:00"))
        except ValueError as exc:
            raise click.BadParameter(str(exc), param_hint="--date") from exc
        clock = lambda: moment  # noqa: E731

    try:
        payload = encode_body(_parse_data(data))
    except H3Error as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    url = build_url(settings.api_endpoint.rstrip("/"), path, _parse_query(query) or None)
    credentials = Credentials(settings.key_id, settings.secret_key.get_secret_value())
    signed = sign_request(credentials, method.upper(), url, payload, clock=clock)
    canonical = build_canonical_request(
        signed.method,
        signed.path,
        signed.raw_query,
        signed.timestamp,
        credentials.key_id,
        signed.body,
    )

    console.print("[bold]Canonical request[/bold]")
    console.print(canonical, markup=False, highlight=False)

    table = Table(title="Headers")
    table.add_column("Header", style="cyan")
    table.add_column("Value", style="green")
    for name, value in signed.headers.items():
        table.add_row(name, value)
    console.print(table)


@cli.command("serve")
@click.option("--host", default=None, help="Bind host")
@click.option("--port", type=int, default=None, help="Bind port")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the verifying echo server."""
    import uvicorn

    from h3sign.server.main import create_app

    settings: Settings = ctx.obj["settings"]
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        create_app(settings),
        host=host or settings.server_host,
        port=port or settings.server_port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """CLI entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
