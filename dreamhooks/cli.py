"""DreamAI Webhooks CLI - send, sign, verify and receive webhooks locally."""

import asyncio
import json
import sys
from typing import Any, Dict, Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table

from . import __version__
from .config import LOG_LEVELS, DispatchSettings
from .logging import setup_logging
from .testing import MockWebhookServer
from .webhooks import (
    DeliveryResult,
    InvalidEventError,
    InvalidSubscriptionError,
    WebhookManager,
    sign,
    verify,
)
from .webhooks.models import EventType

console = Console()


def print_success(message: str) -> None:
    console.print(f"[green]✓[/green] {message}")


def print_error(message: str) -> None:
    console.print(f"[red]✗[/red] {message}")


def print_json(data: Any) -> None:
    json_str = json.dumps(data, indent=2, default=str)
    console.print(Syntax(json_str, "json", theme="monokai", line_numbers=False))


def _read_body(body: Optional[str], file: Optional[Any]) -> bytes:
    if file is not None:
        return file.read()
    if body is not None:
        return body.encode("utf-8")
    print_error("Provide the body with --body or --file")
    sys.exit(2)


def _load_settings(**overrides: Any) -> DispatchSettings:
    try:
        return DispatchSettings(**overrides)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or 'settings'}: {error['msg']}"
            for error in e.errors()
        )
        print_error(f"Invalid configuration: {details}")
        sys.exit(1)


def _print_result(result: DeliveryResult) -> None:
    table = Table(title=f"Event {result.event_id}", show_header=True, header_style="bold cyan")
    table.add_column("Webhook")
    table.add_column("URL")
    table.add_column("Status")
    table.add_column("Attempts")
    table.add_column("Last Response")

    for item in result.results:
        status_color = "green" if item.succeeded else "red"
        last = item.last_attempt
        if last is None:
            last_response = "-"
        elif last.http_status is not None:
            last_response = f"HTTP {last.http_status}"
        else:
            last_response = last.error or "-"
        table.add_row(
            item.subscription_id,
            item.endpoint_url,
            f"[{status_color}]{item.status.value}[/{status_color}]",
            str(item.total_attempts),
            last_response,
        )

    console.print(table)
    console.print(f"\nDelivered: {result.succeeded}/{result.total}")


@click.group()
@click.version_option(version=__version__, prog_name="dreamhooks")
@click.option("--log-level", envvar="WEBHOOK_LOG_LEVEL", default="WARNING",
              type=click.Choice(LOG_LEVELS, case_sensitive=False),
              help="Log level")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table",
              help="Output format")
@click.pass_context
def cli(ctx: click.Context, log_level: str, output: str):
    """DreamAI Webhooks - deliver and inspect webhooks from the command line.

    \b
    Examples:
      dreamhooks serve-mock --port 3001
      dreamhooks send http://localhost:3001/webhook -e dream_created -p '{"id": "d1"}'
      dreamhooks sign --secret s3cr3t --body '{"event":"dream_created"}'
    """
    ctx.ensure_object(dict)
    ctx.obj["output"] = output
    ctx.obj["log_level"] = log_level.upper()


@cli.command("send")
@click.argument("url")
@click.option("--event", "-e", default=EventType.DREAM_CREATED.value, show_default=True,
              help="Event type to send")
@click.option("--payload", "-p", default="{}", help="Event payload as JSON")
@click.option("--secret", "-s", help="Signing secret")
@click.option("--attempts", "-a", type=click.IntRange(min=1), help="Maximum delivery attempts")
@click.option("--timeout", "-t", type=click.FloatRange(min=0, min_open=True),
              help="Per-attempt timeout in seconds")
@click.option("--backoff", type=click.FloatRange(min=0), help="Base retry delay in seconds")
@click.pass_context
def send(
    ctx: click.Context,
    url: str,
    event: str,
    payload: str,
    secret: Optional[str],
    attempts: Optional[int],
    timeout: Optional[float],
    backoff: Optional[float],
):
    """Deliver one event to URL and report the outcome."""
    try:
        data = json.loads(payload)
    except json.JSONDecodeError:
        print_error("Invalid JSON for payload")
        sys.exit(1)

    overrides: Dict[str, Any] = {"log_level": ctx.obj["log_level"]}
    if attempts is not None:
        overrides["max_attempts"] = attempts
    if timeout is not None:
        overrides["timeout_seconds"] = timeout
    if backoff is not None:
        overrides["backoff_base_seconds"] = backoff
        overrides["backoff_max_seconds"] = max(backoff, 30.0)

    settings = _load_settings(**overrides)
    setup_logging(settings=settings)

    async def _send() -> DeliveryResult:
        async with WebhookManager(settings) as manager:
            manager.add_webhook(url, [event], secret=secret)
            return await manager.trigger(event, data)

    try:
        result = asyncio.run(_send())
    except (InvalidEventError, InvalidSubscriptionError) as e:
        print_error(str(e))
        sys.exit(1)

    if ctx.obj["output"] == "json":
        print_json({
            **result.to_dict(),
            "results": [r.to_dict() for r in result.results],
        })
    else:
        _print_result(result)

    if result.failed:
        sys.exit(1)


@cli.command("serve-mock")
@click.option("--host", default="127.0.0.1", show_default=True, help="Interface to bind")
@click.option("--port", "-p", type=int, default=3001, show_default=True, help="Port to listen on")
@click.option("--path", default="/webhook", show_default=True, help="Webhook endpoint path")
@click.option("--status", type=int, default=200, show_default=True,
              help="Status code to answer with")
@click.option("--secret", "-s", help="Reject requests without a valid signature")
@click.pass_context
def serve_mock(
    ctx: click.Context,
    host: str,
    port: int,
    path: str,
    status: int,
    secret: Optional[str],
):
    """Run a mock webhook receiver and print what it receives."""
    setup_logging(settings=_load_settings(log_level=ctx.obj["log_level"]))
    server = MockWebhookServer(host=host, port=port, path=path, status=status, secret=secret)

    async def _serve() -> None:
        await server.start()
        console.print(f"Listening on [bold]{server.url}[/bold] (Ctrl+C to stop)")
        seen = 0
        try:
            while True:
                await asyncio.sleep(0.2)
                received = server.get_received()
                for item in received[seen:]:
                    event = item.body.get("event") if isinstance(item.body, dict) else None
                    signature = ""
                    if item.signature_valid is not None:
                        signature = " [green]signed[/green]" if item.signature_valid else " [red]bad signature[/red]"
                    console.print(
                        f"{item.received_at.strftime('%H:%M:%S')} "
                        f"[cyan]{event or 'unknown'}[/cyan]{signature}"
                    )
                    if ctx.obj["output"] == "json":
                        print_json(item.body)
                seen = len(received)
        finally:
            await server.stop()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        console.print(f"\nStopped after {len(server.get_received())} request(s)")


@cli.command("sign")
@click.option("--secret", "-s", required=True, help="Signing secret")
@click.option("--body", "-b", help="Raw body to sign")
@click.option("--file", "-f", type=click.File("rb"), help="Read the body from a file ('-' for stdin)")
def sign_cmd(secret: str, body: Optional[str], file: Optional[Any]):
    """Print the X-Webhook-Signature value for a body."""
    click.echo(sign(_read_body(body, file), secret))


@cli.command("verify")
@click.option("--secret", "-s", required=True, help="Signing secret")
@click.option("--signature", required=True, help="X-Webhook-Signature header value")
@click.option("--body", "-b", help="Raw body as received")
@click.option("--file", "-f", type=click.File("rb"), help="Read the body from a file ('-' for stdin)")
def verify_cmd(secret: str, signature: str, body: Optional[str], file: Optional[Any]):
    """Check a signature. Exits with status 1 when it does not match."""
    if verify(_read_body(body, file), signature, secret):
        print_success("Signature valid")
    else:
        print_error("Signature mismatch")
        sys.exit(1)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
