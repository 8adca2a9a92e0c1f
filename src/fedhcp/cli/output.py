"""Console output helpers and record tables."""

from rich.console import Console
from rich.table import Table
from rich.text import Text

from fedhcp.models.enums import ReservationState
from fedhcp.models.resources import AddressReservation, Endpoint, Subnet

console = Console()
error_console = Console(stderr=True)


def print_error(message: str) -> None:
    error_console.print(f"[bold red]Error:[/bold red] {message}")


def print_success(message: str) -> None:
    console.print(f"[green]{message}[/green]")


def print_warning(message: str) -> None:
    console.print(f"[yellow]{message}[/yellow]")


def _labels(labels: dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items())) or "-"


# =============================================================================
# Record Tables
# =============================================================================


_STATE_STYLES = {
    ReservationState.PROCESSING: "yellow",
    ReservationState.FINISHED: "green",
    ReservationState.FAILED: "red",
}


def format_subnet_table(subnets: list[Subnet]) -> Table:
    table = Table(title="Subnets", show_header=True)
    table.add_column("Namespace", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Family", justify="center")
    table.add_column("Reserved")
    table.add_column("Labels")

    for subnet in subnets:
        table.add_row(
            subnet.metadata.namespace,
            subnet.metadata.name,
            subnet.family.value,
            subnet.reserved or "-",
            _labels(subnet.metadata.labels),
        )
    return table


def format_reservation_table(reservations: list[AddressReservation]) -> Table:
    table = Table(title="Address Reservations", show_header=True)
    table.add_column("Namespace", style="dim")
    table.add_column("Name", style="cyan")
    table.add_column("Subnet")
    table.add_column("State", justify="center")
    table.add_column("Requested")
    table.add_column("Reserved")
    table.add_column("Message", overflow="ellipsis")

    for r in reservations:
        table.add_row(
            r.metadata.namespace,
            r.metadata.name,
            r.subnet,
            Text(r.state.value, style=_STATE_STYLES.get(r.state, "")),
            r.address or "-",
            r.reserved or "-",
            r.message or "",
        )
    return table


def format_endpoint_table(endpoints: list[Endpoint]) -> Table:
    table = Table(title="Endpoints", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("MAC")
    table.add_column("Address")
    table.add_column("Version", justify="right")

    for endpoint in endpoints:
        table.add_row(
            endpoint.metadata.name,
            endpoint.mac_address,
            endpoint.ip,
            str(endpoint.metadata.resource_version),
        )
    return table
