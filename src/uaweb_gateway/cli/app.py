"""Command line interface for the UA Web Gateway.

``run`` serves the HTTP API. ``probe``, ``browse`` and ``read`` open a
throwaway session against one server and print what they find, which is
handy when writing monitoring requests by hand.
"""

from __future__ import annotations

import asyncio
import os
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Annotated, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from uaweb_gateway import __version__
from uaweb_gateway.adapters.northbound.api.websocket.manager import WebSocketManager
from uaweb_gateway.adapters.publishers.factory import PublisherFactory
from uaweb_gateway.adapters.southbound.opcua_client.client import AsyncuaProtocolClient
from uaweb_gateway.application.ua_client import UaClient
from uaweb_gateway.config.loader import (
    ConfigurationError,
    generate_example_config,
    load_config,
)
from uaweb_gateway.config.schema import (
    ClientConfig,
    ClientSecurityConfig,
    GatewayConfig,
    MqttConfig,
)
from uaweb_gateway.domain.errors import GatewayError
from uaweb_gateway.main import run_gateway
from uaweb_gateway.security.certificates import CertificateManager

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import TypeVar

    T = TypeVar("T")

# Certificates closer than this to expiry are flagged by check-cert
EXPIRY_WARNING = timedelta(days=30)

console = Console()

app = typer.Typer(
    name="uaweb-gateway",
    help="UA Web Gateway - shared OPC UA sessions for web clients",
    add_completion=False,
)
security_app = typer.Typer(help="Client certificate tools")
app.add_typer(security_app, name="security")

ConfigFile = Annotated[
    Path,
    typer.Argument(help="Gateway configuration YAML", exists=True, dir_okay=False, readable=True),
]
ClientConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Take client and security settings from this file"),
]
ServerUrl = Annotated[str, typer.Argument(help="OPC UA server URL (opc.tcp://...)")]


def _fail(message: str, error: BaseException | None = None) -> NoReturn:
    console.print(f"[bold red]{message}[/bold red]")
    if error is not None:
        console.print(str(error), markup=False)
    raise typer.Exit(code=1) from error


def _show_version(value: bool) -> None:
    if value:
        typer.echo(f"uaweb-gateway {__version__}")
        raise typer.Exit()


@app.callback()
def cli(
    version: Annotated[
        bool,
        typer.Option("--version", "-V", callback=_show_version, is_eager=True, help="Show version"),
    ] = False,
) -> None:
    """UA Web Gateway CLI."""


@app.command()
def run(
    config: ConfigFile,
    override: Annotated[
        Path | None,
        typer.Option("--override", "-o", help="YAML merged over the configuration", exists=True),
    ] = None,
    log_level: Annotated[str | None, typer.Option("--log-level", "-l")] = None,
    log_format: Annotated[str | None, typer.Option("--log-format", help="console or json")] = None,
) -> None:
    """Serve the HTTP API and push channel until interrupted."""
    # Picked up by the runtime ahead of the configured values
    if log_level:
        os.environ["UAWEB_LOG_LEVEL"] = log_level
    if log_format:
        os.environ["UAWEB_LOG_FORMAT"] = log_format

    console.print(f"[bold green]Starting UA Web Gateway[/bold green] with {config}")
    try:
        asyncio.run(run_gateway(config, override_path=override))
    except KeyboardInterrupt:
        console.print("[yellow]Interrupted[/yellow]")
    except ConfigurationError as e:
        _fail("Invalid configuration:", e)


@app.command()
def validate(
    config: ConfigFile,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Print a summary of the settings")
    ] = False,
) -> None:
    """Check a configuration file without starting anything."""
    try:
        gateway_config = load_config(config)
    except ConfigurationError as e:
        _fail("Validation failed:", e)

    console.print(f"[bold green]Configuration valid:[/bold green] {config}")
    if verbose:
        console.print(_summary_table(gateway_config))


@app.command("generate-example")
def generate_example(
    output: Annotated[
        Path, typer.Option("--output", "-o", help="Where to write the example")
    ] = Path("example-config.yaml"),
) -> None:
    """Write an example configuration built from the defaults."""
    output.write_text(generate_example_config(), encoding="utf-8")
    console.print(f"[bold green]Example configuration written:[/bold green] {output}")
    console.print(f"Next: [cyan]uaweb-gateway validate {output}[/cyan]")


@app.command()
def version() -> None:
    """Show the gateway version."""
    console.print(f"UA Web Gateway version [bold]{__version__}[/bold]")


@app.command()
def probe(server_url: ServerUrl, config: ClientConfigOption = None) -> None:
    """Exit 0 when the server answers with state Running."""
    if not _with_client(config, lambda ua: ua.is_server_available(server_url)):
        _fail(f"{server_url} is not available")
    console.print(f"[green]{server_url} is running[/green]")


@app.command()
def browse(
    server_url: ServerUrl,
    node_id: Annotated[str, typer.Argument(help="Node to browse")] = "ns=0;i=85",
    config: ClientConfigOption = None,
) -> None:
    """List the hierarchical children of a node."""
    edges = _with_client(config, lambda ua: ua.browse(server_url, node_id))

    table = Table("Node Id", "Display Name", "Class", "Reference", title=f"Children of {node_id}")
    for edge in edges:
        table.add_row(edge.node_id, edge.display_name, edge.node_class, edge.reference_type_id)
    console.print(table)


@app.command()
def read(
    server_url: ServerUrl,
    node_id: Annotated[str, typer.Argument(help="Node to read")],
    config: ClientConfigOption = None,
) -> None:
    """Print a node's attributes and, for variables, its value."""
    details = _with_client(config, lambda ua: ua.read_node(server_url, node_id))

    rows = [
        ("Node Class", details.node_class),
        ("Browse Name", details.browse_name),
        ("Display Name", details.display_name),
        ("Description", details.description),
    ]
    if details.value is not None:
        rows += [("Value", repr(details.value.value)), ("Type", details.value.type_name)]
    rows.append(("Status", details.status))

    table = Table("Attribute", "Value", title=f"Node {details.node_id}")
    for name, value in rows:
        table.add_row(name, value)
    console.print(table)


@security_app.command("generate-cert")
def generate_cert(
    output: Annotated[Path, typer.Option("--output", "-o", help="Directory for the files")] = Path(
        "./certs"
    ),
    common_name: Annotated[str, typer.Option("--common-name", "-n")] = "UA Web Gateway",
    validity: Annotated[int, typer.Option("--validity", help="Validity in days")] = 365,
    organization: Annotated[str, typer.Option("--organization")] = "UA Web Gateway",
    application_uri: Annotated[
        str | None,
        typer.Option("--app-uri", help="Must equal client.application_uri"),
    ] = None,
) -> None:
    """Create a self-signed client certificate for secured endpoints."""
    manager = CertificateManager(cert_dir=output)
    try:
        cert_path, key_path = asyncio.run(
            manager.generate_self_signed(
                common_name=common_name,
                validity_days=validity,
                organization=organization,
                application_uri=application_uri,
            )
        )
    except (OSError, ValueError) as e:
        _fail("Certificate generation failed:", e)

    console.print("[bold green]Certificate generated[/bold green]")
    console.print(f"  security.cert_path: [cyan]{cert_path}[/cyan]")
    console.print(f"  security.key_path:  [cyan]{key_path}[/cyan]")


@security_app.command("check-cert")
def check_cert(
    cert: Annotated[Path, typer.Argument(help="Certificate file (DER or PEM)", exists=True)],
) -> None:
    """Show a certificate and whether it is still usable."""
    manager = CertificateManager()
    try:
        info = manager.get_certificate_info(cert)
    except ValueError as e:
        _fail(f"Cannot read certificate {cert}:", e)

    table = Table("Field", "Value", title=str(cert))
    for field, key in (
        ("Subject", "subject"),
        ("Application URI", "application_uri"),
        ("Serial Number", "serial_number"),
        ("Not Before", "not_valid_before"),
        ("Not After", "not_valid_after"),
    ):
        table.add_row(field, str(info.get(key) or "-"))
    console.print(table)

    expiry = manager.check_expiry(cert)
    remaining = expiry - datetime.now(UTC)
    if remaining <= timedelta(0):
        _fail("Certificate has expired")
    style = "yellow" if remaining < EXPIRY_WARNING else "green"
    console.print(f"[{style}]Valid for {remaining.days} more days[/{style}]")


def _client_settings(config: Path | None) -> tuple[ClientConfig, ClientSecurityConfig]:
    if config is None:
        return ClientConfig(), ClientSecurityConfig()
    try:
        gateway_config = load_config(config)
    except ConfigurationError as e:
        _fail("Invalid configuration:", e)
    return gateway_config.client, gateway_config.security


def _with_client(config: Path | None, action: Callable[[UaClient], Awaitable[T]]) -> T:
    """Run ``action`` on a UaClient that is closed again before returning."""
    client_config, security = _client_settings(config)

    async def execute() -> T:
        ua_client = UaClient.create(
            AsyncuaProtocolClient(client_config, security),
            PublisherFactory(MqttConfig(), WebSocketManager()),
            max_browse_depth=client_config.max_browse_depth,
        )
        try:
            return await action(ua_client)
        finally:
            await ua_client.close()

    try:
        return asyncio.run(execute())
    except (GatewayError, ConnectionError, TimeoutError) as e:
        _fail("Request failed:", e)


def _summary_table(config: GatewayConfig) -> Table:
    table = Table("Section", "Settings", title="Configuration Summary")
    table.add_row("gateway", f"{config.gateway.name} ({config.gateway.log_level})")
    table.add_row("client", f"{config.client.application_name} <{config.client.application_uri}>")
    table.add_row(
        "security",
        f"user={config.security.username or '-'} cert={config.security.cert_path}",
    )
    table.add_row("mqtt", f"qos={config.mqtt.qos} retain={config.mqtt.retain}")
    table.add_row(
        "api",
        f"{config.api.host}:{config.api.port}" if config.api.enabled else "disabled",
    )
    return table


if __name__ == "__main__":
    app()
