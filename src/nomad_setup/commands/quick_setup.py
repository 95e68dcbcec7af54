"""Quick setup: prepare SSH/mosh, authorize the app key, show the QR code."""

import typer

from nomad_setup.commands.qr import display_qr, make_payload
from nomad_setup.core.config import PUBKEY_ENV_VAR, Settings, load_settings
from nomad_setup.core.keys import (
    ProvisionOptions,
    ResolutionError,
    decode_key,
    provision_key,
    resolve_target,
)
from nomad_setup.core.network import detect_primary_ipv4
from nomad_setup.core.system import prepare_host
from nomad_setup.utils.output import error, info, ok, raw, section, warn


def add_pubkey_from_env(settings: Settings) -> bool:
    """Authorize the key from NOMAD_PUBKEY_B64, if one was supplied.

    Append-only: no pruning and no backup. Any failure is reported and
    swallowed so that the QR code is still produced.

    Returns:
        True if the key is now authorized.
    """
    if not settings.pubkey_b64:
        return False

    key_line = decode_key(settings.pubkey_b64)
    if key_line is None:
        warn(f"Unable to decode {PUBKEY_ENV_VAR}.")
        return False

    try:
        target = resolve_target(settings)
    except ResolutionError as e:
        warn(f"{e}; continuing without adding a key")
        return False

    info(f"Adding SSH public key to {target.authorized_keys} (user: {target.account})")
    try:
        result = provision_key(target, key_line, ProvisionOptions(prune=False))
    except OSError as e:
        error(f"Could not update {target.authorized_keys}: {e}")
        return False

    if result.added:
        ok(f"Added SSH public key to {result.path}")
    else:
        info(f"SSH public key already exists in {result.path}")
    return True


def quick_setup(
    host: str = typer.Option(None, "--host", "-H", help="Address to advertise (skips IP detection)"),
    user: str = typer.Option(None, "--user", "-u", help="Login user (defaults to current user)"),
    port: int = typer.Option(None, "--port", "-p", help="SSH port (default 22)"),
    skip_system: bool = typer.Option(
        False, "--skip-system", help="Skip package installation and SSH service setup"
    ),
    no_open: bool = typer.Option(False, "--no-open", help="Don't open the QR page in a browser"),
    terminal: bool = typer.Option(False, "--terminal", "-t", help="Print the QR code in the terminal"),
) -> None:
    """Set up this machine for the Nomad app and show the connection QR code.

    This command:
    - Installs mosh, tmux and an SSH server if missing
    - Enables and starts the SSH service
    - Authorizes the key in $NOMAD_PUBKEY_B64 (if set)
    - Detects the LAN IP and shows a quick setup QR code

    Idempotent: safe to run multiple times.
    """
    section("Nomad Quick Setup")
    settings = load_settings()

    if skip_system:
        info("Skipping system setup")
    else:
        prepare_host()

    add_pubkey_from_env(settings)

    if not host:
        host = detect_primary_ipv4()
        if not host:
            error("Unable to detect a LAN IP. Please run on the server and provide --host manually.")
            raise typer.Exit(1)
        info(f"Detected LAN IP: {host}")

    if port is None:
        port = settings.port
    payload = make_payload(host, user or settings.target_account(), port)

    info("Quick setup payload:")
    raw(payload)

    display_qr(payload, "Nomad Quick Setup", settings, terminal=terminal, open_page=not no_open)

    ok("Done. Scan the QR code from the Nomad app.")
