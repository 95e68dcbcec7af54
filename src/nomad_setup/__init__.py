"""Host setup tools for the Nomad app (SSH/mosh + QR quick setup)."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("nomad-setup")
except PackageNotFoundError:
    __version__ = "0.0.0.dev"
