"""Tests for LAN IPv4 detection."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from nomad_setup.core import network
from nomad_setup.core.network import (
    detect_primary_ipv4,
    from_default_route,
    from_hostname_command,
    from_hostname_lookup,
    from_ip_route,
    from_legacy_ifconfig,
    is_usable_ipv4,
    parse_ifconfig,
)
from nomad_setup.utils.process import CommandResult

IFCONFIG_OUTPUT = """\
lo0: flags=8049<UP,LOOPBACK,RUNNING,MULTICAST> mtu 16384
	inet 127.0.0.1 netmask 0xff000000
en5: flags=8863<UP,BROADCAST,SMART,RUNNING,SIMPLEX,MULTICAST> mtu 1500
	inet 169.254.12.7 netmask 0xffff0000 broadcast 169.254.255.255
en0: flags=8863<UP,BROADCAST,SMART,RUNNING,SIMPLEX,MULTICAST> mtu 1500
	inet 192.168.1.42 netmask 0xffffff00 broadcast 192.168.1.255
"""

NET_TOOLS_OUTPUT = """\
eth0      Link encap:Ethernet  HWaddr 00:11:22:33:44:55
          inet addr:10.1.2.3  Bcast:10.1.2.255  Mask:255.255.255.0
"""

WINDOWS_IPCONFIG_OUTPUT = """\
Ethernet adapter Ethernet:

   Link-local IPv6 Address . . . . . : fe80::1c2d:3e4f:5a6b:7c8d%12
   IPv4 Address. . . . . . . . . . . : 192.168.0.77
   Subnet Mask . . . . . . . . . . . : 255.255.255.0
"""


def ok_result(stdout: str) -> CommandResult:
    return CommandResult(returncode=0, stdout=stdout, stderr="")


class TestIsUsableIPv4:
    """Tests for address filtering."""

    @pytest.mark.parametrize("ip", ["192.168.1.42", "10.0.0.5", "172.16.4.4", "100.64.0.1"])
    def test_accepts_lan_addresses(self, ip):
        assert is_usable_ipv4(ip) is True

    @pytest.mark.parametrize(
        "ip",
        ["127.0.0.1", "127.1.2.3", "169.254.0.1", "169.254.255.254", "0.0.0.0", "", None, "fe80::1", "not-an-ip"],
    )
    def test_rejects_unusable(self, ip):
        assert is_usable_ipv4(ip) is False


class TestDetectPrimaryIPv4:
    """Tests for the ordered strategy chain."""

    def test_skips_loopback_and_link_local(self):
        strategies = [
            lambda: "127.0.0.1",
            lambda: "169.254.1.2",
            lambda: None,
            lambda: "192.168.1.42",
            lambda: "10.0.0.9",
        ]
        assert detect_primary_ipv4(strategies) == "192.168.1.42"

    def test_returns_none_when_nothing_usable(self):
        assert detect_primary_ipv4([lambda: "127.0.0.1", lambda: None]) is None

    def test_stops_at_first_success(self):
        later = MagicMock(return_value="10.0.0.9")
        assert detect_primary_ipv4([lambda: "10.0.0.1", later]) == "10.0.0.1"
        later.assert_not_called()

    def test_uses_default_strategies(self):
        with patch.object(network, "DETECTION_STRATEGIES", [lambda: "169.254.9.9", lambda: "10.0.0.3"]):
            assert detect_primary_ipv4() == "10.0.0.3"


class TestStrategies:
    """Tests for individual detection strategies."""

    @patch("socket.socket")
    def test_default_route(self, mock_socket_class):
        sock = mock_socket_class.return_value.__enter__.return_value
        sock.getsockname.return_value = ("192.168.1.42", 54321)

        assert from_default_route() == "192.168.1.42"

    @patch("socket.socket")
    def test_default_route_network_error(self, mock_socket_class):
        sock = mock_socket_class.return_value.__enter__.return_value
        sock.connect.side_effect = OSError("Network unreachable")

        assert from_default_route() is None

    @patch("nomad_setup.core.network.run")
    @patch("nomad_setup.core.network.command_exists", return_value=True)
    def test_hostname_command_skips_link_local(self, mock_exists, mock_run):
        mock_run.return_value = ok_result("169.254.3.3 10.0.0.5 fe80::1\n")

        assert from_hostname_command() == "10.0.0.5"
        mock_run.assert_called_once_with(["hostname", "-I"], timeout=5)

    @patch("nomad_setup.core.network.command_exists", return_value=False)
    def test_hostname_command_missing(self, mock_exists):
        assert from_hostname_command() is None

    @patch("nomad_setup.core.network.run")
    @patch("nomad_setup.core.network.command_exists", return_value=True)
    def test_ip_route_src(self, mock_exists, mock_run):
        mock_run.return_value = ok_result(
            "1.1.1.1 via 192.168.1.1 dev wlan0 src 192.168.1.42 uid 1000 \n    cache \n"
        )

        assert from_ip_route() == "192.168.1.42"

    @patch("nomad_setup.core.network.run")
    @patch("nomad_setup.core.network.command_exists", return_value=True)
    def test_ip_route_failure(self, mock_exists, mock_run):
        mock_run.return_value = CommandResult(returncode=2, stdout="", stderr="RTNETLINK answers")

        assert from_ip_route() is None

    @patch("nomad_setup.core.network.run")
    @patch("nomad_setup.core.network.command_exists", side_effect=lambda cmd: cmd == "ifconfig")
    def test_legacy_ifconfig_skips_loopback(self, mock_exists, mock_run):
        mock_run.return_value = ok_result(IFCONFIG_OUTPUT)

        assert from_legacy_ifconfig() == "192.168.1.42"

    @patch("socket.getaddrinfo")
    def test_hostname_lookup_filters_loopback(self, mock_getaddrinfo):
        mock_getaddrinfo.return_value = [
            (None, None, None, None, ("127.0.1.1", 0)),
            (None, None, None, None, ("192.168.1.50", 0)),
        ]

        assert from_hostname_lookup() == "192.168.1.50"

    @patch("socket.getaddrinfo")
    def test_hostname_lookup_failure(self, mock_getaddrinfo):
        mock_getaddrinfo.side_effect = socket.gaierror("no address")

        assert from_hostname_lookup() is None


class TestParseIfconfig:
    """Tests for legacy output parsing."""

    def test_bsd_ifconfig(self):
        assert parse_ifconfig(IFCONFIG_OUTPUT) == ["127.0.0.1", "169.254.12.7", "192.168.1.42"]

    def test_net_tools_ifconfig(self):
        assert parse_ifconfig(NET_TOOLS_OUTPUT) == ["10.1.2.3"]

    def test_windows_ipconfig(self):
        assert parse_ifconfig(WINDOWS_IPCONFIG_OUTPUT) == ["192.168.0.77"]
