"""Host-level setup: package installation and SSH service management.

Everything here is best effort. Failures are reported as ``False`` and a
warning, never raised, so the quick setup can carry on to the QR code.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

from nomad_setup.core.environment import OSType, detect_os_type
from nomad_setup.utils.output import info, ok, warn
from nomad_setup.utils.process import command_exists, run, run_powershell, run_sudo

# command -> package providing it
REQUIRED_COMMANDS = {
    "mosh": "mosh",
    "tmux": "tmux",
    "sshd": "openssh-server",
}

# Installed alongside the required packages when possible
OPTIONAL_PACKAGES = ["qrencode"]

SSH_SERVICE = "ssh"

# systemd/SysV unit names tried for the SSH service, in order
SSH_UNIT_NAMES = ("sshd", "ssh")


def missing_dependencies() -> list[str]:
    """Return the packages whose commands are not on PATH."""
    return [pkg for cmd, pkg in REQUIRED_COMMANDS.items() if not command_exists(cmd)]


@dataclass
class PackageManager:
    """A package manager invocation recipe."""

    command: str
    install: list[str]
    sudo: bool = True
    refresh: list[str] | None = None
    # Packages that do not exist (or are built in) for this manager
    skip: tuple[str, ...] = field(default_factory=tuple)

    def available(self) -> bool:
        return command_exists(self.command)


PACKAGE_MANAGERS = [
    PackageManager("brew", ["brew", "install"], sudo=False, skip=("openssh-server",)),
    PackageManager(
        "apt-get",
        ["apt-get", "install", "-y"],
        refresh=["apt-get", "update"],
    ),
    PackageManager("dnf", ["dnf", "install", "-y"]),
    PackageManager("yum", ["yum", "install", "-y"]),
]

APT_ENV = {"DEBIAN_FRONTEND": "noninteractive"}


def detect_package_manager() -> PackageManager | None:
    """Return the first available package manager."""
    for manager in PACKAGE_MANAGERS:
        if manager.available():
            return manager
    return None


class SystemSetup(ABC):
    """Capability interface for host setup, implemented per platform."""

    @abstractmethod
    def install_packages(self, packages: list[str]) -> bool:
        """Install packages; return True on success."""

    @abstractmethod
    def ensure_service_running(self, name: str) -> bool:
        """Enable and start a service; return True if it is running."""


class PosixSetup(SystemSetup):
    """Linux and macOS: Homebrew/apt/dnf/yum plus systemsetup/systemd/service."""

    def __init__(self, manager: PackageManager | None = None) -> None:
        self.manager = manager or detect_package_manager()

    def install_packages(self, packages: list[str]) -> bool:
        if not packages:
            return True
        manager = self.manager
        if manager is None:
            warn(f"No supported package manager found. Please install: {' '.join(packages)}")
            return False

        wanted = [pkg for pkg in packages if pkg not in manager.skip]
        if not wanted:
            return True
        runner = run_sudo if manager.sudo else run
        env = APT_ENV if manager.command == "apt-get" else None

        info(f"Installing with {manager.command}: {' '.join(wanted)}")
        if manager.refresh:
            runner(manager.refresh, env=env, timeout=600)
        result = runner(manager.install + wanted, env=env, timeout=1800)
        if not result.success:
            warn(f"{manager.command} failed: {result.stderr.strip() or result.returncode}")
            return False
        ok(f"Installed: {' '.join(wanted)}")
        return True

    def ensure_service_running(self, name: str) -> bool:
        if name == SSH_SERVICE and command_exists("systemsetup"):
            return self._ensure_remote_login()
        if command_exists("systemctl"):
            unit = self._find_systemd_unit(name)
            if unit:
                return self._ensure_systemd(unit)
        if command_exists("service"):
            return self._ensure_sysv(name)
        warn(f"No service manager found to start {name}")
        return False

    def _ensure_remote_login(self) -> bool:
        """macOS: the SSH server is the Remote Login setting."""
        result = run(["systemsetup", "-getremotelogin"])
        if result.success and "On" in result.stdout:
            return True
        info("Enabling Remote Login (SSH)")
        result = run_sudo(["systemsetup", "-setremotelogin", "on"])
        if not result.success:
            warn(f"Could not enable Remote Login: {result.stderr.strip()}")
        return result.success

    def _find_systemd_unit(self, name: str) -> str | None:
        result = run(["systemctl", "list-unit-files"])
        if not result.success:
            return None
        units = {line.split()[0] for line in result.stdout.splitlines() if line.strip()}
        candidates = SSH_UNIT_NAMES if name == SSH_SERVICE else (name,)
        for candidate in candidates:
            if f"{candidate}.service" in units:
                return candidate
        return None

    def _ensure_systemd(self, unit: str) -> bool:
        if not run(["systemctl", "is-enabled", "--quiet", unit]).success:
            info(f"Enabling SSH service ({unit})")
            if not run_sudo(["systemctl", "enable", unit]).success:
                warn(f"Could not enable {unit}")
        if run(["systemctl", "is-active", "--quiet", unit]).success:
            return True
        info(f"Starting SSH service ({unit})")
        result = run_sudo(["systemctl", "start", unit])
        if not result.success:
            warn(f"Could not start {unit}: {result.stderr.strip()}")
        return result.success

    def _ensure_sysv(self, name: str) -> bool:
        if run(["service", name, "status"]).success:
            return True
        info(f"Starting SSH service ({name})")
        result = run_sudo(["service", name, "start"])
        if not result.success:
            warn(f"Could not start {name}: {result.stderr.strip()}")
        return result.success


# Windows ships OpenSSH as an optional capability; mosh/tmux have no native port
WINDOWS_CAPABILITIES = {"openssh-server": "OpenSSH.Server~~~~0.0.1.0"}
WINDOWS_SERVICES = {SSH_SERVICE: "sshd"}


class WindowsSetup(SystemSetup):
    """Windows: OpenSSH capability and service via PowerShell."""

    def install_packages(self, packages: list[str]) -> bool:
        success = True
        for pkg in packages:
            capability = WINDOWS_CAPABILITIES.get(pkg)
            if capability is None:
                info(f"Skipping {pkg} (not available natively on Windows)")
                continue
            info(f"Adding Windows capability {capability}")
            result = run_powershell(f"Add-WindowsCapability -Online -Name {capability}", timeout=1800)
            if not result.success:
                warn(f"Could not add {capability} (run as Administrator?)")
                success = False
        return success

    def ensure_service_running(self, name: str) -> bool:
        service = WINDOWS_SERVICES.get(name, name)
        result = run_powershell(f"(Get-Service -Name {service}).Status")
        if result.success and result.stdout.strip() == "Running":
            return True
        info(f"Starting service {service}")
        result = run_powershell(
            f"Set-Service -Name {service} -StartupType Automatic; Start-Service {service}"
        )
        if not result.success:
            warn(f"Could not start {service} (run as Administrator?)")
        return result.success


def get_system_setup(os_type: OSType | None = None) -> SystemSetup:
    """Return the SystemSetup implementation for this platform."""
    os_type = os_type or detect_os_type()
    if os_type == OSType.WINDOWS:
        return WindowsSetup()
    return PosixSetup()


def prepare_host(setup: SystemSetup | None = None) -> None:
    """Install missing dependencies and make sure the SSH server runs."""
    setup = setup or get_system_setup()

    missing = missing_dependencies()
    if missing:
        setup.install_packages(missing + OPTIONAL_PACKAGES)
    else:
        ok("mosh, tmux and sshd already installed")

    if setup.ensure_service_running(SSH_SERVICE):
        ok("SSH server is running")
    else:
        warn("SSH server may not be running")
