"""
Command-line interface for the OPC UA bridge
"""

import asyncio
import logging
import sys
from typing import Any

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from opcua_bridge import __version__

console = Console()


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _fail(error) -> None:
    """Print a BridgeServiceError and exit with status 1"""
    response = error.response
    console.print(f"[bold red]{response.error.value}:[/bold red] {response.message}")
    if response.recovery_hint:
        console.print(f"[yellow]Hint: {response.recovery_hint}[/yellow]")
    sys.exit(1)


def _parse_item(raw: str) -> tuple[str, str | None]:
    """Split "NODE_ID[@SLOT]" into node id and optional slot"""
    node_id, sep, slot = raw.rpartition("@")
    if not sep:
        return raw, None
    return node_id, slot


class ConsoleBroadcastChannel:
    """BroadcastChannel printing each published value"""

    def __init__(self, out: Console):
        self._out = out

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        data = payload.get("data", {})
        self._out.print(
            f"[dim]{data.get('sourceTimestamp') or '-'}[/dim] "
            f"[cyan]{payload.get('id')}[/cyan] = [bold]{data.get('value')!r}[/bold]"
        )


@click.group()
@click.version_option(version=__version__)
@click.option("--log-level", default=None, help="Logging level (default: from settings)")
@click.pass_context
def main(ctx: click.Context, log_level: str | None) -> None:
    """OPC UA Bridge - relay OPC UA values to storage and live clients"""
    from opcua_bridge.core.config import get_settings

    ctx.ensure_object(dict)
    settings = get_settings()
    ctx.obj.setdefault("settings", settings)
    ctx.obj.setdefault("transport_factory", None)
    _configure_logging(log_level or settings.log_level)


@main.command("std-vars")
def std_vars() -> None:
    """List the standard variable table"""
    from opcua_bridge.opcua.std_vars import STANDARD_VARIABLES

    table = Table(title="Standard Variables", show_header=True, header_style="bold cyan")
    table.add_column("Slot", style="cyan")
    table.add_column("Name", style="green")

    for variable in STANDARD_VARIABLES:
        table.add_row(str(variable.slot), variable.name)

    console.print(table)


@main.command()
@click.argument("host")
@click.argument("port")
@click.argument("node_id", default="RootFolder")
@click.pass_obj
def browse(obj: dict, host: str, port: str, node_id: str) -> None:
    """Connect and list the children of NODE_ID (default: RootFolder)"""
    from opcua_bridge.services import BridgeService, BridgeServiceError

    async def run():
        service = BridgeService.from_settings(obj["settings"], transport_factory=obj["transport_factory"])
        try:
            await service.connect(host, port)
            return await service.browse(node_id)
        finally:
            await service.close()

    try:
        references = asyncio.run(run())
    except BridgeServiceError as e:
        _fail(e)
        return

    table = Table(title=f"References of {node_id}", show_header=True, header_style="bold cyan")
    table.add_column("Node ID", style="cyan")
    table.add_column("Browse Name", style="green")
    table.add_column("Display Name", style="white")
    table.add_column("Class", style="dim")

    for reference in references:
        table.add_row(
            reference["nodeId"],
            reference["browseName"],
            reference["displayName"],
            reference["nodeClass"],
        )

    console.print(table)


@main.command()
@click.argument("host")
@click.argument("port")
@click.argument("node_id")
@click.pass_obj
def read(obj: dict, host: str, port: str, node_id: str) -> None:
    """Connect and read the current value of NODE_ID"""
    from opcua_bridge.services import BridgeService, BridgeServiceError

    async def run():
        service = BridgeService.from_settings(obj["settings"], transport_factory=obj["transport_factory"])
        try:
            await service.connect(host, port)
            return await service.read_variable(node_id)
        finally:
            await service.close()

    try:
        value = asyncio.run(run())
    except BridgeServiceError as e:
        _fail(e)
        return

    console.print(f"\n[bold cyan]{value['nodeId']}[/bold cyan]")
    console.print(f"  Value: [green]{value['value']!r}[/green]")
    console.print(f"  Type: {value['dataType'] or '-'}")
    console.print(f"  Status: {value['statusCode']}")
    console.print(f"  Source timestamp: {value['sourceTimestamp'] or '-'}")
    console.print(f"  Server timestamp: {value['serverTimestamp'] or '-'}\n")


@main.command()
@click.argument("host")
@click.argument("port")
@click.option(
    "--item",
    "-i",
    "items",
    multiple=True,
    required=True,
    help="Node to monitor as NODE_ID or NODE_ID@SLOT (e.g. 'ns=2;i=5@0')",
)
@click.option("--duration", "-d", type=float, default=0, help="Seconds to monitor (default: until Ctrl+C)")
@click.option("--persist/--no-persist", default=True, help="Write mapped values to the database")
@click.pass_obj
def monitor(obj: dict, host: str, port: str, items: tuple, duration: float, persist: bool) -> None:
    """Connect, monitor nodes and print every value change"""
    from opcua_bridge.services import BridgeService, BridgeServiceError
    from opcua_bridge.storage import Database, DatabasePersistenceSink

    settings = obj["settings"]
    persistence = (
        DatabasePersistenceSink(Database(settings.database_path), write_timeout=settings.sink_timeout)
        if persist
        else None
    )

    async def run():
        service = BridgeService.from_settings(
            settings,
            persistence=persistence,
            broadcast=ConsoleBroadcastChannel(console),
            transport_factory=obj["transport_factory"],
        )
        try:
            connected = await service.connect(host, port)
            console.print(
                Panel.fit(
                    f"[bold cyan]Connected to opc.tcp://{host}:{port}[/bold cyan]\n"
                    f"Session: {connected['sessionId']}",
                    border_style="cyan",
                )
            )

            for raw in items:
                node_id, slot = _parse_item(raw)
                monitored = await service.monitor_variable(node_id, slot)
                target = f"slot {monitored['stdVar']}" if monitored["stdVar"] is not None else "broadcast only"
                console.print(f"Monitoring [cyan]{monitored['id']}[/cyan] ({target})")

            if duration > 0:
                await asyncio.sleep(duration)
            else:
                await asyncio.Event().wait()

            await service.manager.fanout.join()
            return service.status()["fanout"]
        finally:
            await service.close()

    try:
        stats = asyncio.run(run())
    except BridgeServiceError as e:
        _fail(e)
        return
    except KeyboardInterrupt:
        console.print("\n[yellow]Stopped[/yellow]")
        return

    console.print(
        f"\n[bold]Delivered:[/bold] {stats['broadcast']} broadcast, {stats['persisted']} persisted, "
        f"{stats['persist_failures'] + stats['broadcast_failures']} failed, {stats['dropped']} dropped"
    )


@main.command()
@click.option("--variable", "-v", default=None, help="Only readings of this standard variable")
@click.option("--limit", "-n", default=20, type=int, help="Maximum number of readings")
@click.pass_obj
def readings(obj: dict, variable: str | None, limit: int) -> None:
    """Show the most recent persisted readings"""
    from opcua_bridge.storage import Database, DatabasePersistenceSink

    sink = DatabasePersistenceSink(Database(obj["settings"].database_path))
    rows = sink.recent(variable, limit)

    if not rows:
        console.print("[yellow]No readings stored[/yellow]")
        return

    table = Table(title="Recent Readings", show_header=True, header_style="bold cyan")
    table.add_column("Variable", style="cyan")
    table.add_column("Value", style="green")
    table.add_column("Recorded", style="dim")

    for row in rows:
        table.add_row(row["variable"], f"{row['value']:g}", row["recorded_at"] or "-")

    console.print(table)


if __name__ == "__main__":
    main()
