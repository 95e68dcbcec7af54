"""Environment detection for OS type."""

import platform
from enum import Enum
from pathlib import Path


class OSType(Enum):
    """Operating system type."""

    LINUX = "linux"
    WSL2 = "wsl2"
    WINDOWS = "windows"
    MACOS = "macos"
    UNKNOWN = "unknown"


def detect_os_type() -> OSType:
    """Detect operating system type."""
    # Check for WSL2 first (before generic Linux check)
    proc_version = Path("/proc/version")
    if proc_version.exists():
        try:
            if "microsoft" in proc_version.read_text().lower():
                return OSType.WSL2
        except OSError:
            pass

    system = platform.system().lower()
    os_map = {
        "windows": OSType.WINDOWS,
        "darwin": OSType.MACOS,
        "linux": OSType.LINUX,
    }
    return os_map.get(system, OSType.UNKNOWN)
