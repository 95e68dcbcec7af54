"""Configuration: environment variables and the optional YAML settings file.

Everything the setup commands read from the ambient process (environment
variables, the invoking account, the effective uid) is collected once into a
``Settings`` object and passed explicitly to the code that needs it.
"""

import getpass
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

PUBKEY_ENV_VAR = "NOMAD_PUBKEY_B64"

DEFAULT_PORT = 22
DEFAULT_COMMENT_PREFIX = "Nomad-"
DEFAULT_QR_API_URL = "https://api.qrserver.com/v1/create-qr-code/"
DEFAULT_QR_SIZE = 320


def get_nomad_config_dir() -> Path:
    """Get nomad-setup config directory."""
    return Path.home() / ".config" / "nomad"


def _get_config_file() -> Path:
    """Get path to config.yaml."""
    return get_nomad_config_dir() / "config.yaml"


def load_file_config() -> dict:
    """Load ~/.config/nomad/config.yaml.

    Returns:
        The parsed mapping, or an empty dict if the file is missing,
        unreadable or not a mapping.
    """
    config_file = _get_config_file()
    if not config_file.exists():
        return {}

    try:
        data = yaml.safe_load(config_file.read_text()) or {}
    except (yaml.YAMLError, OSError):
        return {}
    if not isinstance(data, dict):
        return {}
    return data


def current_login() -> str | None:
    """Login name of the running process, if the platform can tell."""
    try:
        return getpass.getuser() or None
    except (KeyError, OSError):
        return None


def _euid() -> int | None:
    return os.geteuid() if hasattr(os, "geteuid") else None


@dataclass
class Settings:
    """Process-wide settings, populated once at start."""

    pubkey_b64: str | None = None
    user: str | None = None
    sudo_user: str | None = None
    euid: int | None = None
    port: int = DEFAULT_PORT
    comment_prefix: str = DEFAULT_COMMENT_PREFIX
    qr_api_url: str = DEFAULT_QR_API_URL
    qr_size: int = DEFAULT_QR_SIZE
    open_browser: bool = True

    @property
    def privileged(self) -> bool:
        """Running as root (effective uid 0)."""
        return self.euid == 0

    def target_account(self) -> str:
        """Account whose authorized_keys should receive a key.

        When run through sudo this is the account that invoked sudo, not root.
        """
        return self.sudo_user or self.user or current_login() or "root"


def _int_setting(data: dict, key: str, default: int) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        return default
    return value


def _str_setting(data: dict, key: str, default: str) -> str:
    value = data.get(key, default)
    if not isinstance(value, str) or not value:
        return default
    return value


def load_settings(environ: dict[str, str] | None = None) -> Settings:
    """Build Settings from the environment and the optional config file.

    Args:
        environ: Environment mapping to read (defaults to os.environ).

    Returns:
        A populated Settings instance.
    """
    env = os.environ if environ is None else environ
    data = load_file_config()

    open_browser = data.get("open_browser", True)
    if not isinstance(open_browser, bool):
        open_browser = True

    return Settings(
        pubkey_b64=env.get(PUBKEY_ENV_VAR) or None,
        user=env.get("USER") or env.get("USERNAME") or None,
        sudo_user=env.get("SUDO_USER") or None,
        euid=_euid(),
        port=_int_setting(data, "port", DEFAULT_PORT),
        comment_prefix=_str_setting(data, "comment_prefix", DEFAULT_COMMENT_PREFIX),
        qr_api_url=_str_setting(data, "qr_api_url", DEFAULT_QR_API_URL),
        qr_size=_int_setting(data, "qr_size", DEFAULT_QR_SIZE),
        open_browser=open_browser,
    )
