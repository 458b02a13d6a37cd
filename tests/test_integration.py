"""Integration tests against a real ssh binary.

The end-to-end forward needs a reachable SSH server. Point the tests at one
with ``SSH_TUNNEL_TEST_HOST``, ``SSH_TUNNEL_TEST_USER``, ``SSH_TUNNEL_TEST_KEY``
and optionally ``SSH_TUNNEL_TEST_PORT``. The server must be able to reach
``SSH_TUNNEL_TEST_REMOTE`` (default ``127.0.0.1:22``).
"""

import os
import shutil
import socket

import pytest

from ssh_tunnel_wrapper.common.exceptions import ConnectionFailedError
from ssh_tunnel_wrapper.common.settings import TunnelSettings
from ssh_tunnel_wrapper.core.controller import TunnelLifecycleController
from ssh_tunnel_wrapper.core.ports import PortAllocator, ReadinessProbe
from ssh_tunnel_wrapper.tunnels.models import KeyReference, TunnelConfiguration, TunnelState

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(shutil.which("ssh") is None, reason="ssh binary not found"),
]


def server_config() -> TunnelConfiguration:
    host = os.environ.get("SSH_TUNNEL_TEST_HOST")
    if not host:
        pytest.skip("SSH_TUNNEL_TEST_HOST not set")

    remote = os.environ.get("SSH_TUNNEL_TEST_REMOTE", "127.0.0.1:22")
    remote_host, remote_port = remote.rsplit(":", 1)
    return TunnelConfiguration(
        host=host,
        port=int(os.environ.get("SSH_TUNNEL_TEST_PORT", "22")),
        user=os.environ.get("SSH_TUNNEL_TEST_USER", os.environ.get("USER", "root")),
        key=KeyReference(path=os.environ.get("SSH_TUNNEL_TEST_KEY", "~/.ssh/id_rsa")),
        remote_host=remote_host,
        remote_port=int(remote_port),
    )


class TestRealSsh:
    @pytest.mark.asyncio
    async def test_unreachable_host(self, key_file, temp_key_dir):
        """ssh exits during the settle delay when nothing listens on the SSH port"""
        closed_port = PortAllocator().allocate()
        config = TunnelConfiguration(
            host="127.0.0.1",
            port=closed_port,
            user="nobody",
            key=KeyReference(path=str(key_file)),
            remote_host="127.0.0.1",
            remote_port=5432,
        )
        controller = TunnelLifecycleController(TunnelSettings(temp_dir=temp_key_dir))

        with pytest.raises(ConnectionFailedError) as exc_info:
            await controller.establish(config)

        assert "Connection refused" in exc_info.value.detail
        assert controller.state == TunnelState.IDLE
        assert controller.handle.is_empty
        assert list(temp_key_dir.iterdir()) == []

    @pytest.mark.asyncio
    async def test_forward_round_trip(self, temp_key_dir):
        """Establish, connect through the forward, close"""
        config = server_config()

        async with TunnelLifecycleController(TunnelSettings(temp_dir=temp_key_dir)) as tunnel:
            port = await tunnel.establish(config)

            assert tunnel.is_active()
            with socket.create_connection(("127.0.0.1", port), timeout=5.0):
                pass

        assert tunnel.state == TunnelState.CLOSED
        assert ReadinessProbe().is_listening(port) is False
        assert list(temp_key_dir.iterdir()) == []
