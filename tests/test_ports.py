"""Tests for PortAllocator and ReadinessProbe."""

import socket
from unittest.mock import patch

import pytest

from ssh_tunnel_wrapper.common.exceptions import PortForwardingFailedError
from ssh_tunnel_wrapper.core.ports import PortAllocator, ReadinessProbe


class TestPortAllocator:
    def test_allocates_ephemeral_port(self):
        port = PortAllocator().allocate()

        assert 1024 <= port <= 65535

    def test_port_is_released_after_allocation(self):
        port = PortAllocator().allocate()

        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
            sock.bind(("127.0.0.1", port))

    def test_bind_failure_raises_port_forwarding_failed(self):
        with patch("socket.socket.bind", side_effect=OSError("Address not available")):
            with pytest.raises(PortForwardingFailedError, match="Address not available"):
                PortAllocator().allocate()

    def test_socket_creation_failure(self):
        with patch("socket.socket", side_effect=OSError("Too many open files")):
            with pytest.raises(PortForwardingFailedError):
                PortAllocator().allocate()


class TestReadinessProbe:
    def test_listening_port(self):
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as server:
            server.bind(("127.0.0.1", 0))
            server.listen(1)
            port = server.getsockname()[1]

            assert ReadinessProbe().is_listening(port) is True

    def test_closed_port(self):
        port = PortAllocator().allocate()

        assert ReadinessProbe(timeout=0.2).is_listening(port) is False

    def test_other_socket_errors_mean_not_listening(self):
        with patch("socket.create_connection", side_effect=TimeoutError("timed out")):
            assert ReadinessProbe().is_listening(50000) is False

    def test_uses_configured_timeout(self):
        with patch("socket.create_connection") as mock_connect:
            assert ReadinessProbe(timeout=0.25).is_listening(50001) is True

        mock_connect.assert_called_once_with(("127.0.0.1", 50001), timeout=0.25)
