"""Operator CLI for the kubeui backend."""

from __future__ import annotations

from pathlib import Path

import click
import uvicorn
from rich.console import Console
from rich.table import Table

from kubeui.app.config import load_settings
from kubeui.app.errors import ConfigError
from kubeui.app.models.resource_contracts import ResourceQuery
from kubeui.app.services.calling_context import load_calling_context
from kubeui.app.services.resource_paths import build_path

console = Console()


@click.group()
@click.version_option(version="0.1.0")
def main() -> None:
    """kubeui - resource proxy between the web UI and a Kubernetes API server."""


@click.command()
@click.option("--host", default=None, help="Bind address (default: KUBEUI_HOST).")
@click.option("--port", type=int, default=None, help="Bind port (default: KUBEUI_PORT).")
@click.option("--reload", is_flag=True, help="Restart on code changes (development only).")
def serve(host: str | None, port: int | None, reload: bool) -> None:
    """Run the proxy and web UI server."""
    settings = load_settings()
    uvicorn.run(
        "kubeui.app.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@click.command()
@click.option(
    "--kubeconfig",
    "kubeconfig_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Kubeconfig to resolve (default: KUBECONFIG).",
)
@click.option(
    "--verify-tls/--skip-tls-verify",
    default=None,
    help="Override the TLS posture taken from SKIP_TLS_VERIFY.",
)
def context(kubeconfig_path: Path | None, verify_tls: bool | None) -> None:
    """Show the calling context the server would use. Secrets are never printed."""
    settings = load_settings()
    path = kubeconfig_path or settings.kubeconfig_path
    try:
        calling_context = load_calling_context(
            path,
            verify_tls=settings.verify_tls if verify_tls is None else verify_tls,
        )
    except ConfigError as exc:
        console.print(f"[red]✗[/red] {exc}")
        raise SystemExit(1) from exc

    table = Table(title=f"Calling context ({path})", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Context", calling_context.context_name)
    table.add_row("Server", calling_context.server)
    table.add_row("Namespace", calling_context.namespace or "-")
    table.add_row(
        "TLS verification",
        "enabled" if calling_context.verify_tls else "[yellow]disabled[/yellow]",
    )
    table.add_row("CA data", "yes" if calling_context.ca_data is not None else "system trust store")
    table.add_row("Client certificate", "yes" if calling_context.client_identity else "no")
    table.add_row("Bearer token", "yes" if calling_context.auth_headers else "no")
    console.print(table)


@click.command()
@click.option("--group", default=None)
@click.option("--version", "api_version", default=None)
@click.option("--namespace", "-n", default=None)
@click.option("--resource", default=None)
@click.option("--name", default=None)
@click.option("--subresource", default=None)
def path(
    group: str | None,
    api_version: str | None,
    namespace: str | None,
    resource: str | None,
    name: str | None,
    subresource: str | None,
) -> None:
    """Print the API server path a resource query maps to."""
    query = ResourceQuery(
        group=group,
        version=api_version,
        namespace=namespace,
        resource=resource,
        name=name,
        subresource=subresource,
    )
    click.echo(build_path(query))


main.add_command(serve)
main.add_command(context)
main.add_command(path)


if __name__ == "__main__":
    main()
