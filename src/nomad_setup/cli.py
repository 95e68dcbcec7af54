"""Main CLI application."""

import typer

from nomad_setup import __version__
from nomad_setup.commands import migrate, network, qr, quick_setup

app = typer.Typer(
    name="nomad-setup",
    help="Host setup for the Nomad app (SSH/mosh + quick setup QR code)",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        typer.echo(f"nomad-setup {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Host setup for the Nomad app (SSH/mosh + quick setup QR code)."""
    pass


app.command(name="quick-setup")(quick_setup.quick_setup)
app.command(name="qr")(qr.qr)
app.command(name="migrate-key")(migrate.migrate_key)
app.command(name="detect-ip")(network.detect_ip)
app.command(name="decode")(network.decode)


if __name__ == "__main__":
    app()
