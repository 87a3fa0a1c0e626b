"""Typer CLI for Storefront-Engine."""

from decimal import Decimal, InvalidOperation

import typer
from rich.console import Console
from rich.table import Table

app = typer.Typer(name="storefront", help="Storefront-Engine: order settlement and licensing")
console = Console()


@app.command()
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind host"),
    port: int = typer.Option(8080, help="Bind port"),
):
    """Start the Storefront-Engine API server."""
    import uvicorn
    from storefront_engine.app import create_app

    console.print(f"[bold green]Starting Storefront-Engine on {host}:{port}[/bold green]")
    uvicorn.run(create_app(), host=host, port=port)


@app.command("generate-key")
def generate_key(
    count: int = typer.Option(1, min=1, help="How many keys"),
):
    """Generate license keys (offline, no DB required)."""
    from storefront_engine.keygen.generator import generate_license_key

    for _ in range(count):
        console.print(f"[bold]{generate_license_key()}[/bold]")


@app.command("generate-discount-code")
def generate_discount_code(
    length: int = typer.Option(8, min=1, max=32, help="Code length"),
):
    """Generate a discount code without ambiguous characters."""
    from storefront_engine.keygen.generator import generate_discount_code as make_code

    console.print(f"[bold]{make_code(length)}[/bold]")


@app.command()
def split(
    amount: str = typer.Argument(..., help="Sale amount, e.g. 80 or 19.99"),
    fee_percent: str = typer.Option(None, help="Platform fee percent (default: configured)"),
):
    """Preview the platform fee / creator earnings split for an amount."""
    from storefront_engine.common.config import get_settings
    from storefront_engine.pricing.fees import split as split_amount

    try:
        percent = Decimal(fee_percent) if fee_percent else get_settings().platform_fee_percent
        result = split_amount(Decimal(amount), percent)
    except (InvalidOperation, ValueError) as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)

    table = Table(title=f"Fee split at {percent}%")
    table.add_column("Amount", justify="right")
    table.add_column("Platform fee", justify="right")
    table.add_column("Creator earnings", justify="right")
    table.add_row(str(result.amount), str(result.platform_fee), str(result.creator_earnings))
    console.print(table)


@app.command()
def health(
    url: str = typer.Option("http://localhost:8080", help="Server URL"),
):
    """Check Storefront-Engine server health."""
    import httpx

    try:
        resp = httpx.get(f"{url}/health", timeout=5)
        data = resp.json()
        console.print(f"[bold green]{data['status']}[/bold green] — v{data['version']}")
    except Exception as e:
        console.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(1)


if __name__ == "__main__":
    app()
