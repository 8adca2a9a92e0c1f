"""
FeDHCP CLI entry point.

Usage:
    fedhcp [OPTIONS] COMMAND [ARGS]...

Commands:
    serve     Run the DHCP responder
    store     Resource store service and records
    plugins   List available plugins
    version   Show version information
"""

import typer
from rich.table import Table

from fedhcp.cli.commands import serve, store
from fedhcp.cli.output import console

app = typer.Typer(
    name="fedhcp",
    help="FeDHCP address reservation responder",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

# Register command groups
app.add_typer(serve.app, name="serve", help="Run the DHCP responder")
app.add_typer(store.app, name="store", help="Resource store service and records")


@app.command("plugins")
def list_plugins():
    """List available plugins and the address families they support."""
    from fedhcp.plugins import PLUGINS

    table = Table(title="Plugins", show_header=True)
    table.add_column("Name", style="cyan")
    table.add_column("DHCPv4", justify="center")
    table.add_column("DHCPv6", justify="center")

    for name, plugin in PLUGINS.items():
        table.add_row(
            name,
            "[green]yes[/green]" if plugin.setup4 else "[dim]-[/dim]",
            "[green]yes[/green]" if plugin.setup6 else "[dim]-[/dim]",
        )
    console.print(table)


@app.command("version")
def version():
    """Show version information."""
    from fedhcp import __version__

    console.print(f"FeDHCP v{__version__}")


def run():
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    run()
