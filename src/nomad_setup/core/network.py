"""LAN IPv4 address detection.

Detection is an ordered list of strategies. Each strategy returns an address
or None and never raises; the first usable address wins.
"""

import ipaddress
import re
import socket
from collections.abc import Callable

from nomad_setup.utils.process import command_exists, run

# Public address used to pick the default-route interface (nothing is sent)
PROBE_ADDRESS = "1.1.1.1"

MACOS_INTERFACES = ("en0", "en1")

_IFCONFIG_INET = re.compile(r"inet (?:addr:)?(\d{1,3}(?:\.\d{1,3}){3})")
_IPCONFIG_IPV4 = re.compile(r"IPv4 Address[ .]*: *(\d{1,3}(?:\.\d{1,3}){3})")
_ROUTE_SRC = re.compile(r"\bsrc (\d{1,3}(?:\.\d{1,3}){3})")


def is_usable_ipv4(address: str | None) -> bool:
    """Check if address is an IPv4 literal the app could connect to.

    Loopback (127.0.0.0/8), link-local (169.254.0.0/16) and 0.0.0.0 are
    rejected.
    """
    if not address:
        return False
    try:
        ip = ipaddress.IPv4Address(address.strip())
    except ValueError:
        return False
    return not (ip.is_loopback or ip.is_link_local or ip.is_unspecified)


def _first_usable(candidates: list[str]) -> str | None:
    for candidate in candidates:
        if is_usable_ipv4(candidate):
            return candidate.strip()
    return None


def from_default_route() -> str | None:
    """Local address of the interface holding the default route."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect((PROBE_ADDRESS, 80))
            ip = s.getsockname()[0]
    except OSError:
        return None
    return _first_usable([ip])


def from_macos_ipconfig() -> str | None:
    """macOS: ``ipconfig getifaddr en0`` then ``en1``."""
    if not command_exists("ipconfig"):
        return None
    for iface in MACOS_INTERFACES:
        result = run(["ipconfig", "getifaddr", iface], timeout=5)
        if result.success:
            ip = _first_usable(result.stdout.split())
            if ip:
                return ip
    return None


def from_hostname_command() -> str | None:
    """Linux: first usable address from ``hostname -I``."""
    if not command_exists("hostname"):
        return None
    result = run(["hostname", "-I"], timeout=5)
    if not result.success:
        return None
    return _first_usable(result.stdout.split())


def from_ip_route() -> str | None:
    """Linux: ``src`` of ``ip -4 route get 1.1.1.1``."""
    if not command_exists("ip"):
        return None
    result = run(["ip", "-4", "route", "get", PROBE_ADDRESS], timeout=5)
    if not result.success:
        return None
    return _first_usable(_ROUTE_SRC.findall(result.stdout))


def parse_ifconfig(output: str) -> list[str]:
    """Extract IPv4 addresses from ifconfig (BSD or net-tools) or Windows ipconfig output."""
    return _IFCONFIG_INET.findall(output) + _IPCONFIG_IPV4.findall(output)


def from_legacy_ifconfig() -> str | None:
    """Textual parse of ``ifconfig`` (or ``ipconfig`` on Windows)."""
    for cmd in (["ifconfig"], ["ipconfig"]):
        if not command_exists(cmd[0]):
            continue
        result = run(cmd, timeout=5)
        if result.success:
            ip = _first_usable(parse_ifconfig(result.stdout))
            if ip:
                return ip
    return None


def from_hostname_lookup() -> str | None:
    """Addresses the local hostname resolves to."""
    try:
        addrs = socket.getaddrinfo(socket.gethostname(), None, socket.AF_INET)
    except (socket.gaierror, OSError):
        return None
    return _first_usable([addr[4][0] for addr in addrs])


DETECTION_STRATEGIES: list[Callable[[], str | None]] = [
    from_default_route,
    from_macos_ipconfig,
    from_hostname_command,
    from_ip_route,
    from_legacy_ifconfig,
    from_hostname_lookup,
]


def detect_primary_ipv4(
    strategies: list[Callable[[], str | None]] | None = None,
) -> str | None:
    """Detect this machine's primary LAN IPv4 address.

    Args:
        strategies: Override the detection order (mainly for tests).

    Returns:
        The first usable address found, or None.
    """
    for strategy in strategies if strategies is not None else DETECTION_STRATEGIES:
        ip = strategy()
        if is_usable_ipv4(ip):
            return ip
    return None
