"""High-level API for SSH Tunnel Wrapper.

This module provides simple, user-friendly helpers for the common case of
connecting a database client through an optional SSH tunnel.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import NamedTuple

from .common.logging import get_logger
from .common.settings import TunnelSettings
from .common.utils import validate_non_empty_string, validate_port
from .core.controller import TunnelLifecycleController
from .core.ports import LOOPBACK_HOST
from .tunnels.models import TunnelConfiguration

logger = get_logger(__name__)


class ConnectionTarget(NamedTuple):
    """Where a database client should connect."""

    host: str
    port: int
    tunneled: bool = False


@asynccontextmanager
async def managed_tunnel(
    config: TunnelConfiguration,
    settings: TunnelSettings | None = None,
) -> AsyncIterator[TunnelLifecycleController]:
    """Establish a tunnel and close it when the block exits.

    Args:
        config: SSH tunnel configuration
        settings: Optional timing and location settings

    Yields:
        TunnelLifecycleController: Established controller (see ``local_port``)

    Example:
        >>> async with managed_tunnel(config) as tunnel:
        ...     conn = await asyncpg.connect(host="127.0.0.1", port=tunnel.local_port)
    """
    controller = TunnelLifecycleController(settings)
    async with controller:
        await controller.establish(config)
        yield controller


@asynccontextmanager
async def tunneled_endpoint(
    db_host: str,
    db_port: int,
    tunnel: TunnelConfiguration | None = None,
    settings: TunnelSettings | None = None,
) -> AsyncIterator[ConnectionTarget]:
    """Resolve the endpoint a database client should use.

    Without a tunnel configuration, or with tunnelling disabled, the database
    endpoint is returned unchanged. Otherwise the tunnel is pointed at
    ``db_host:db_port`` and the loopback endpoint of the forward is returned.

    Args:
        db_host: Database host as reachable from the SSH host
        db_port: Database port
        tunnel: Optional SSH tunnel configuration
        settings: Optional timing and location settings

    Yields:
        ConnectionTarget: Host/port to connect to
    """
    db_host = validate_non_empty_string(db_host, "Database host")
    validate_port(db_port, "Database port")

    if tunnel is None or not tunnel.enabled:
        logger.debug("Direct database connection", host=db_host, port=db_port)
        yield ConnectionTarget(db_host, db_port)
        return

    async with managed_tunnel(tunnel.with_remote(db_host, db_port), settings) as controller:
        logger.info(
            "Database reachable through SSH tunnel",
            local_port=controller.local_port,
            remote=f"{db_host}:{db_port}",
        )
        yield ConnectionTarget(LOOPBACK_HOST, controller.local_port, tunneled=True)
