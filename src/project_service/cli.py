"""
Project service CLI.
Operator commands for running and inspecting the service.
"""

import json
import sys

import click
from rich.console import Console
from rich.table import Table

from project_service.config import settings
from project_service.errors import RemoteUnavailableError
from project_service.main import configure_logging

console = Console()


@click.group()
@click.option("--log-level", "-l", default=None, help="Override LOG_LEVEL")
@click.pass_context
def cli(ctx, log_level: str | None):
    """Project service - projects, domains and repositories with tenant quotas."""
    ctx.ensure_object(dict)
    configure_logging(log_level)


@cli.command()
@click.option("--host", default=None, help="Bind address (default API_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default API_PORT)")
@click.option("--no-consumer", is_flag=True, help="Do not consume events in the API process")
def serve(host: str | None, port: int | None, no_consumer: bool):
    """Run the HTTP API."""
    import uvicorn

    from project_service.api.app import create_app

    app = create_app(consume_events=not no_consumer)
    uvicorn.run(app, host=host or settings.api_host, port=port or settings.api_port)


@cli.command()
def worker():
    """Consume inbound events until interrupted."""
    from project_service.main import main

    main()


@cli.command("init-db")
def init_db():
    """Create database tables."""
    from project_service.db import DatabaseManager

    manager = DatabaseManager.from_settings(settings)
    manager.init_db()
    manager.close()
    console.print(f"✅ [green]Database ready[/green] ({settings.database_url})")


@cli.command()
@click.argument("tenant_id")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def limits(tenant_id: str, as_json: bool):
    """Fetch a tenant's limits from the tenant service."""
    from project_service.quota import TenantServiceClient

    client = TenantServiceClient.from_settings(settings)
    try:
        tenant_limits = client.fetch_limits(tenant_id)
    except RemoteUnavailableError as e:
        console.print(f"❌ [red]{e}[/red]")
        sys.exit(1)
    finally:
        client.close()

    if as_json:
        click.echo(json.dumps(tenant_limits.to_dict(), indent=2))
        return

    table = Table(title=f"Limits for tenant {tenant_id}")
    table.add_column("Resource", style="cyan")
    table.add_column("Limit", justify="right", style="green")
    table.add_row("Projects", str(tenant_limits.max_projects))
    table.add_row("Domains per project", str(tenant_limits.max_domains))
    table.add_row("Repositories per project", str(tenant_limits.max_repos))
    console.print(table)


@cli.command("dead-letters")
@click.option("--limit", "-n", default=20, help="Number of messages to show")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
def dead_letters(limit: int, as_json: bool):
    """List dead-lettered inbound events."""
    from project_service.events import create_event_bus

    bus = create_event_bus(config=settings)
    try:
        messages = bus.dead_letters(limit=limit)
    finally:
        bus.close()

    if as_json:
        click.echo(json.dumps([m.to_dict() for m in messages], indent=2, default=str))
        return

    if not messages:
        console.print("No dead-lettered messages")
        return

    table = Table(title=f"Dead letters ({bus.name})")
    table.add_column("ID", style="dim")
    table.add_column("Routing key", style="cyan")
    table.add_column("Deliveries", justify="right")
    table.add_column("Error", style="red")
    for message in messages:
        table.add_row(message.id, message.routing_key, str(message.deliveries), message.error or "")
    console.print(table)


def main():
    """Entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()
