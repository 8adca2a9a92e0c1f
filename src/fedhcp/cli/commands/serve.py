"""Responder commands."""

from typing import Annotated

import typer

from fedhcp.cli.output import console, print_error
from fedhcp.core.exceptions import FeDHCPError
from fedhcp.models.enums import LogLevel
from fedhcp.store.base import StoreError

app = typer.Typer(help="Run the DHCP responder")


@app.callback(invoke_without_command=True)
def serve(
    config_file: Annotated[
        str,
        typer.Option("--config", "-c", help="Plugin chain file", envvar="FEDHCP_CONFIG"),
    ] = "config.yaml",
    store_url: Annotated[
        str,
        typer.Option("--store-url", help="Resource store service URL", envvar="FEDHCP_STORE_URL"),
    ] = "",
    db_file: Annotated[
        str | None,
        typer.Option("--db", help="Local SQLite store (when no --store-url)"),
    ] = None,
    server_mac: Annotated[
        str | None,
        typer.Option("--server-mac", help="MAC for the DHCPv6 server DUID"),
    ] = None,
    server_address: Annotated[
        str | None,
        typer.Option("--server-address", help="Own IPv4 address for DHCPv4 replies"),
    ] = None,
    log_level: Annotated[
        LogLevel,
        typer.Option("--log-level", "-l", help="Log verbosity"),
    ] = LogLevel.INFO,
    log_file: Annotated[
        str,
        typer.Option("--log-file", help="Also write logs to this file"),
    ] = "",
):
    """Start the responder with the configured plugin chains."""
    from fedhcp.server import app as responder
    from fedhcp.server.config import config

    config.CONFIG_FILE = config_file
    config.STORE_URL = store_url
    config.LOG_LEVEL = log_level
    config.LOG_FILE = log_file
    if db_file:
        config.DB_FILE = db_file
    if server_mac:
        config.SERVER_MAC = server_mac
    if server_address:
        config.SERVER4_ADDRESS = server_address

    console.print(f"[bold]Starting FeDHCP responder[/bold] ({config_file})")
    try:
        responder.run()
    except (FeDHCPError, StoreError) as e:
        print_error(str(e))
        raise typer.Exit(1)
