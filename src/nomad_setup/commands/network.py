"""Diagnostic commands: IP detection and payload decoding."""

import typer
from rich.markup import escape

from nomad_setup.core.network import DETECTION_STRATEGIES, detect_primary_ipv4
from nomad_setup.core.payload import InvalidArgumentError, parse_payload
from nomad_setup.utils.output import create_table, error, ok, print_table, raw


def detect_ip(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show every detection strategy"),
) -> None:
    """Print the LAN IPv4 address the QR code would advertise."""
    if verbose:
        table = create_table("IP detection", ["Strategy", "Result"])
        for strategy in DETECTION_STRATEGIES:
            table.add_row(strategy.__name__, strategy() or "[dim]-[/dim]")
        print_table(table)

    ip = detect_primary_ipv4()
    if not ip:
        error("Unable to detect a LAN IP.")
        raise typer.Exit(1)
    raw(ip)


def decode(
    uri: str = typer.Argument(..., help="nomad://connect?... payload"),
) -> None:
    """Show the fields of a quick setup payload."""
    try:
        request = parse_payload(uri)
    except InvalidArgumentError as e:
        error(escape(str(e)))
        raise typer.Exit(1) from None

    table = create_table("Nomad payload", ["Field", "Value"])
    table.add_row("host", escape(request.host))
    table.add_row("port", str(request.port))
    table.add_row("user", escape(request.user))
    table.add_row("mosh", "true")
    table.add_row("setup_token", escape(request.token))
    print_table(table)
    ok("Payload is valid")
