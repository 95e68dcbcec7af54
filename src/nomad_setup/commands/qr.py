"""QR generation command (payload + QR, no system changes)."""

import typer

from nomad_setup.core.config import Settings, load_settings
from nomad_setup.core.network import detect_primary_ipv4
from nomad_setup.core.payload import InvalidArgumentError, build_payload, new_token
from nomad_setup.core.qr import image_data_uri, terminal_qr, write_qr_page
from nomad_setup.utils.output import error, info, ok, raw, warn
from nomad_setup.utils.process import command_exists


def make_payload(host: str, user: str, port: int) -> str:
    """Build a payload with a fresh token, exiting 1 on invalid input."""
    try:
        return build_payload(host, user, port, new_token())
    except InvalidArgumentError as e:
        error(str(e))
        raise typer.Exit(1) from None


def display_qr(
    payload: str,
    title: str,
    settings: Settings,
    *,
    terminal: bool = False,
    open_page: bool = True,
) -> None:
    """Show the payload as a QR code in the terminal or a browser page.

    Display problems are warnings only; the payload has already been printed.
    """
    if terminal or command_exists("qrencode"):
        info("QR code:")
        raw(terminal_qr(payload))
        return

    image_src, source = image_data_uri(payload, settings.qr_api_url, settings.qr_size)
    if source == "local":
        warn("QR image service unreachable, using a locally generated image")
    try:
        path = write_qr_page(payload, title, image_src)
    except OSError as e:
        warn(f"Could not write QR page: {e}")
        return
    ok(f"QR page written: {path}")

    if not (open_page and settings.open_browser):
        info(f"Open {path} in a browser to scan the code")
        return

    info("Opening QR code in browser...")
    try:
        opened = typer.launch(str(path)) == 0
    except OSError:
        opened = False
    if not opened:
        warn(f"Could not open a browser; open {path} manually")


def qr(
    host: str = typer.Option(None, "--host", "-H", help="Address the app should connect to"),
    user: str = typer.Option(None, "--user", "-u", help="Login user (defaults to current user)"),
    port: int = typer.Option(None, "--port", "-p", help="SSH port (default 22)"),
    auto: bool = typer.Option(False, "--auto", "-a", help="Auto-detect the LAN IP if --host is not given"),
    no_open: bool = typer.Option(False, "--no-open", help="Don't open the QR page in a browser"),
    terminal: bool = typer.Option(False, "--terminal", "-t", help="Print the QR code in the terminal"),
) -> None:
    """Generate a Nomad QR code without changing the system.

    Examples:
        nomad-setup qr --auto
        nomad-setup qr --host 192.168.1.42 --user pi --port 22
    """
    settings = load_settings()

    if not host and auto:
        host = detect_primary_ipv4()
        if host:
            info(f"Detected LAN IP: {host}")

    if not host:
        error("Missing host.")
        info("Usage: nomad-setup qr --auto  |  nomad-setup qr --host <ip> [--user <name>] [--port <port>]")
        raise typer.Exit(1)

    if port is None:
        port = settings.port
    payload = make_payload(host, user or settings.target_account(), port)

    info("QR payload:")
    raw(payload)

    display_qr(payload, "Nomad QR", settings, terminal=terminal, open_page=not no_open)
