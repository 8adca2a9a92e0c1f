"""
Resource store commands.

Usage:
    fedhcp store serve --db /var/lib/fedhcp/store.db
    fedhcp store subnets --url http://127.0.0.1:8080
    fedhcp store add-subnet oob-v4 --namespace oob-ns --reserved 10.0.0.0/24 -L subnet=dhcp
    fedhcp store reservations --db store.db -n oob-ns
    fedhcp store endpoints --url http://127.0.0.1:8080
"""

from typing import Annotated

import typer

from fedhcp.cli.output import (
    console,
    format_endpoint_table,
    format_reservation_table,
    format_subnet_table,
    print_error,
    print_success,
    print_warning,
)
from fedhcp.core.exceptions import ConfigurationError
from fedhcp.models.config import parse_label_selector
from fedhcp.models.enums import AddressFamily, LogLevel, ResourceKind
from fedhcp.models.resources import ObjectMeta, Subnet
from fedhcp.store.base import ResourceStore, StoreError

app = typer.Typer(help="Resource store service and records")

UrlOption = Annotated[
    str,
    typer.Option("--url", help="Store service URL", envvar="FEDHCP_STORE_URL"),
]
DbOption = Annotated[
    str | None,
    typer.Option("--db", help="Open a local SQLite store instead of the service"),
]
NamespaceOption = Annotated[
    str | None,
    typer.Option("--namespace", "-n", help="Namespace (default: all)"),
]


def _open_store(url: str, db_file: str | None) -> ResourceStore:
    if db_file:
        from fedhcp.store.sqlite import SQLiteResourceStore

        return SQLiteResourceStore(db_file)

    from fedhcp.store.http import HttpResourceStore

    return HttpResourceStore(url)


def _list(kind: ResourceKind, url: str, db_file: str | None, namespace: str | None):
    store = _open_store(url, db_file)
    try:
        return store.list(kind, namespace)
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(1)
    finally:
        store.close()


# =============================================================================
# Service
# =============================================================================


@app.command("serve")
def serve(
    db_file: Annotated[str, typer.Option("--db", help="SQLite database file")] = (
        "/var/lib/fedhcp/store.db"
    ),
    host: Annotated[str, typer.Option("--host", help="Bind address")] = "127.0.0.1",
    port: Annotated[int, typer.Option("--port", "-p", help="HTTP port")] = 8080,
    allocator: Annotated[
        bool,
        typer.Option("--allocator/--no-allocator", help="Run the address allocator"),
    ] = True,
    interval: Annotated[
        float, typer.Option("--interval", help="Allocator pass interval in seconds")
    ] = 0.5,
    log_level: Annotated[LogLevel, typer.Option("--log-level", "-l")] = LogLevel.INFO,
):
    """Serve a SQLite resource store over HTTP."""
    from fedhcp.store import app as store_app
    from fedhcp.store.config import config

    config.DB_FILE = db_file
    config.STORE_BIND_IP = host
    config.STORE_PORT = port
    config.ALLOCATOR_ENABLED = allocator
    config.ALLOCATOR_INTERVAL_SECONDS = interval
    config.LOG_LEVEL = log_level

    store_app.run()


# =============================================================================
# Records
# =============================================================================


@app.command("subnets")
def list_subnets(
    url: UrlOption = "http://127.0.0.1:8080",
    db_file: DbOption = None,
    namespace: NamespaceOption = None,
):
    """List subnets."""
    subnets = _list(ResourceKind.SUBNET, url, db_file, namespace)
    if not subnets:
        print_warning("No subnets found.")
        return
    console.print(format_subnet_table(subnets))


@app.command("reservations")
def list_reservations(
    url: UrlOption = "http://127.0.0.1:8080",
    db_file: DbOption = None,
    namespace: NamespaceOption = None,
):
    """List address reservations."""
    reservations = _list(ResourceKind.ADDRESS_RESERVATION, url, db_file, namespace)
    if not reservations:
        print_warning("No address reservations found.")
        return
    console.print(format_reservation_table(reservations))


@app.command("endpoints")
def list_endpoints(
    url: UrlOption = "http://127.0.0.1:8080",
    db_file: DbOption = None,
):
    """List published endpoints."""
    endpoints = _list(ResourceKind.ENDPOINT, url, db_file, None)
    if not endpoints:
        print_warning("No endpoints found.")
        return
    console.print(format_endpoint_table(endpoints))


@app.command("add-subnet")
def add_subnet(
    name: Annotated[str, typer.Argument(help="Subnet name")],
    reserved: Annotated[str, typer.Option("--reserved", "-r", help="Reserved CIDR")],
    namespace: Annotated[str, typer.Option("--namespace", "-n")] = "default",
    label: Annotated[
        list[str] | None,
        typer.Option("--label", "-L", help="key=value label, repeatable"),
    ] = None,
    url: UrlOption = "http://127.0.0.1:8080",
    db_file: DbOption = None,
):
    """Create a subnet record."""
    try:
        labels = dict(parse_label_selector(item) for item in label or [])
    except ConfigurationError as e:
        print_error(str(e))
        raise typer.Exit(1)

    subnet = Subnet(
        metadata=ObjectMeta(name=name, namespace=namespace, labels=labels),
        reserved=reserved,
    )
    network = subnet.network()
    if network is None:
        print_error(f"Invalid CIDR '{reserved}'")
        raise typer.Exit(1)
    subnet.family = AddressFamily.of(network)

    store = _open_store(url, db_file)
    try:
        created = store.create(subnet)
    except StoreError as e:
        print_error(str(e))
        raise typer.Exit(1)
    finally:
        store.close()

    print_success(f"Created {created.family.value} subnet {created.key} ({reserved})")
