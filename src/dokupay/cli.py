"""dokupay CLI - create payments, query status and debug signatures."""

import asyncio
import json
import sys
from collections.abc import Callable, Coroutine
from pathlib import Path
from typing import Any, ParamSpec, TypeVar

import click
from rich.console import Console
from rich.table import Table

from dokupay.common.settings import Settings, get_settings
from dokupay.gateway.client import GatewayClient, GatewayConfig
from dokupay.gateway.errors import DokuPayError, GatewayError
from dokupay.gateway.signature import canonical_string, components_for, sign

console = Console()

P = ParamSpec("P")
R = TypeVar("R")


def async_command(f: Callable[P, Coroutine[Any, Any, R]]) -> Callable[P, R]:
    """Decorator to run async commands."""

    def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
        return asyncio.run(f(*args, **kwargs))

    wrapper.__name__ = f.__name__
    wrapper.__doc__ = f.__doc__
    return wrapper


def _settings(ctx: click.Context) -> Settings:
    settings: Settings = ctx.obj["settings"]
    if ctx.obj.get("env"):
        settings = settings.model_copy(update={"doku_env": ctx.obj["env"]})
    return settings


def _gateway_config(ctx: click.Context) -> GatewayConfig:
    settings = _settings(ctx)
    if not settings.client_id or not settings.secret_key:
        console.print("[red]DOKUPAY_CLIENT_ID and DOKUPAY_SECRET_KEY must be set[/red]")
        sys.exit(1)
    return GatewayConfig.from_settings(settings)


def _report_error(exc: DokuPayError) -> None:
    if isinstance(exc, GatewayError):
        console.print(f"[red]{exc}[/red]")
        console.print_json(json.dumps(exc.body))
    else:
        console.print(f"[red]Error: {exc}[/red]")
    sys.exit(1)


@click.group()
@click.option(
    "--env",
    type=click.Choice(["sandbox", "production"]),
    default=None,
    help="DOKU environment (overrides DOKUPAY_DOKU_ENV)",
)
@click.pass_context
def cli(ctx: click.Context, env: str | None) -> None:
    """dokupay CLI - DOKU checkout payments."""
    ctx.ensure_object(dict)
    ctx.obj.setdefault("settings", get_settings())
    ctx.obj["env"] = env


@cli.command("create")
@click.option("--amount", type=int, required=True, help="Amount in the smallest currency unit")
@click.option("--invoice", "invoice_number", required=True, help="Merchant invoice number")
@click.option("--currency", default=None, help="Currency code (defaults to configured currency)")
@click.pass_context
@async_command
async def create_payment(
    ctx: click.Context,
    amount: int,
    invoice_number: str,
    currency: str | None,
) -> None:
    """Create a checkout payment and print its redirect URL."""
    config = _gateway_config(ctx)
    payload: dict[str, Any] = {"amount": amount, "invoice_number": invoice_number}
    if currency:
        payload["currency"] = currency

    try:
        async with GatewayClient(config) as client:
            result = await client.create_payment(payload)
    except DokuPayError as exc:
        _report_error(exc)
        return

    if result.payment_url:
        console.print(f"[green]Payment created:[/green] {result.payment_url}")
    else:
        console.print("[yellow]Payment created without a redirect URL[/yellow]")
        console.print_json(json.dumps(result.data))


@cli.command("status")
@click.argument("invoice_number")
@click.pass_context
@async_command
async def check_status(ctx: click.Context, invoice_number: str) -> None:
    """Show the payment status of an invoice."""
    config = _gateway_config(ctx)

    try:
        async with GatewayClient(config) as client:
            result = await client.check_status(invoice_number)
    except DokuPayError as exc:
        _report_error(exc)
        return

    order = result.data.get("order", {}) if isinstance(result.data, dict) else {}
    transaction = result.data.get("transaction", {}) if isinstance(result.data, dict) else {}

    table = Table(title=f"Invoice {invoice_number}")
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Status", str(result.transaction_status or "unknown"))
    table.add_row("Amount", str(order.get("amount", "")))
    table.add_row("Date", str(transaction.get("date", "")))
    table.add_row("Original request", str(transaction.get("original_request_id", "")))
    console.print(table)


@cli.command("sign")
@click.option("--client-id", required=True, help="Client-Id value")
@click.option("--request-id", required=True, help="Request-Id value")
@click.option("--timestamp", required=True, help="Request-Timestamp value (YYYY-MM-DDTHH:MM:SSZ)")
@click.option("--target", required=True, help="Request-Target path")
@click.option(
    "--body-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="File holding the exact body bytes (omit for requests without a body)",
)
@click.pass_context
def sign_command(
    ctx: click.Context,
    client_id: str,
    request_id: str,
    timestamp: str,
    target: str,
    body_file: Path | None,
) -> None:
    """Print the canonical string and signature for a request."""
    settings: Settings = ctx.obj["settings"]
    if not settings.secret_key:
        console.print("[red]DOKUPAY_SECRET_KEY must be set[/red]")
        sys.exit(1)

    body = body_file.read_bytes() if body_file else None
    components = components_for(client_id, request_id, timestamp, target, body)

    console.print("[bold]Canonical string:[/bold]")
    console.print(canonical_string(components), markup=False, highlight=False, soft_wrap=True)
    console.print("[bold]Signature:[/bold]")
    console.print(sign(components, settings.secret_key), markup=False, highlight=False, soft_wrap=True)


@cli.command("serve")
@click.option("--host", default=None, help="Bind host (overrides DOKUPAY_HOST)")
@click.option("--port", type=int, default=None, help="Bind port (overrides DOKUPAY_PORT)")
@click.pass_context
def serve(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the payment HTTP service."""
    import uvicorn

    from dokupay.common.logging import setup_logging
    from dokupay.service.main import create_app

    settings = _settings(ctx)
    setup_logging(settings.log_level, settings.log_json)
    uvicorn.run(
        create_app(settings),
        host=host or settings.host,
        port=port or settings.port,
        log_level=settings.log_level.lower(),
    )


def main() -> None:
    """Entry point."""
    cli()


if __name__ == "__main__":
    main()
