"""Subprocess execution helpers."""

import os
import shutil
import subprocess
from dataclasses import dataclass


@dataclass
class CommandResult:
    """Result of a command execution."""

    returncode: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.returncode == 0


def run(
    cmd: list[str],
    *,
    capture: bool = True,
    timeout: int | None = 120,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command and return the result.

    A missing binary or a timeout is reported as a failed result
    (returncode -1) rather than raised.
    """
    run_env = None
    if env:
        run_env = os.environ.copy()
        run_env.update(env)

    try:
        result = subprocess.run(
            cmd,
            capture_output=capture,
            text=True,
            timeout=timeout,
            env=run_env,
        )
        return CommandResult(
            returncode=result.returncode,
            stdout=result.stdout if capture else "",
            stderr=result.stderr if capture else "",
        )
    except subprocess.TimeoutExpired:
        return CommandResult(returncode=-1, stdout="", stderr="Command timed out")
    except (FileNotFoundError, PermissionError):
        return CommandResult(returncode=-1, stdout="", stderr=f"Command not found: {cmd[0]}")


def is_root() -> bool:
    """Check if running with an effective uid of 0 (always False on Windows)."""
    return hasattr(os, "geteuid") and os.geteuid() == 0


def run_sudo(cmd: list[str], **kwargs) -> CommandResult:
    """Run a command with sudo, unless already root."""
    if is_root():
        return run(cmd, **kwargs)
    return run(["sudo"] + cmd, **kwargs)


def run_powershell(script: str, **kwargs) -> CommandResult:
    """Run a PowerShell snippet."""
    return run(["powershell", "-NoProfile", "-NonInteractive", "-Command", script], **kwargs)


def command_exists(cmd: str) -> bool:
    """Check if a command exists in PATH."""
    return shutil.which(cmd) is not None
