"""Tunnel lifecycle orchestration.

``establish()`` walks IDLE → ALLOCATING → RESOLVING_KEY → LAUNCHING → PROBING
→ ESTABLISHED. Whatever fails along the way, the partial state built so far
(ssh process, temporary key, scoped access) is torn down before the error
reaches the caller, and the controller is back to an empty handle.
"""

import asyncio
import os
import signal
from types import TracebackType
from typing import Any, Literal

from ..common.context import ResourceLeakDetector
from ..common.exceptions import (
    ConnectionFailedError,
    PortForwardingFailedError,
    TunnelError,
    TunnelNotEstablishedError,
)
from ..common.logging import get_logger
from ..common.settings import TunnelSettings
from ..tunnels.models import TunnelConfiguration, TunnelHandle, TunnelState
from .bookmarks import BookmarkResolver
from .keys import KeyMaterialResolver
from .ports import PortAllocator, ReadinessProbe
from .process import ProcessLauncher, TransportProcessSupervisor

logger = get_logger(__name__)


class TunnelLifecycleController:
    """Owns at most one SSH local port forward at a time.

    Use it as an async context manager, or pair every ``establish()`` with
    ``close()``::

        async with TunnelLifecycleController() as tunnel:
            port = await tunnel.establish(config)
            ...  # connect the database client to 127.0.0.1:port
    """

    def __init__(
        self,
        settings: TunnelSettings | None = None,
        *,
        launcher: ProcessLauncher | None = None,
        bookmarks: BookmarkResolver | None = None,
        port_allocator: PortAllocator | None = None,
        key_resolver: KeyMaterialResolver | None = None,
        supervisor: TransportProcessSupervisor | None = None,
        probe: ReadinessProbe | None = None,
    ):
        self.settings = settings or TunnelSettings()
        self.port_allocator = port_allocator or PortAllocator()
        self.key_resolver = key_resolver or KeyMaterialResolver(
            self.settings, bookmarks=bookmarks
        )
        self.supervisor = supervisor or TransportProcessSupervisor(
            self.settings, launcher=launcher
        )
        self.probe = probe or ReadinessProbe(timeout=self.settings.probe_timeout)

        self.handle = TunnelHandle()
        self._state = TunnelState.IDLE
        self._config: TunnelConfiguration | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def local_port(self) -> int:
        """Forwarded loopback port, 0 while no tunnel is active."""
        return self.handle.local_port

    @property
    def config(self) -> TunnelConfiguration | None:
        return self._config

    def is_active(self) -> bool:
        """Check if a tunnel is established and its ssh process is alive."""
        return (
            self._state == TunnelState.ESTABLISHED
            and self.handle.process is not None
            and self.handle.process.is_running()
        )

    def require_local_port(self) -> int:
        """Return the local port of an active tunnel.

        Raises:
            TunnelNotEstablishedError: If no tunnel is active
        """
        if not self.is_active():
            raise TunnelNotEstablishedError()
        return self.handle.local_port

    async def establish(self, config: TunnelConfiguration) -> int:
        """Establish the tunnel described by ``config``.

        An already active tunnel is closed first.

        Returns:
            The local port to connect to on 127.0.0.1

        Raises:
            ConnectionFailedError: If ssh cannot start or exits early
            AuthenticationFailedError: If ssh reports rejected credentials
            PortForwardingFailedError: If no port is available or it never listens
            TunnelNotEstablishedError: If ``config`` has tunnelling disabled
            InvalidKeyPathError: If the key cannot be resolved or staged
        """
        if not config.enabled:
            raise TunnelNotEstablishedError("SSH tunnel is disabled for this connection.")

        async with self._lock:
            if not self.handle.is_empty:
                logger.info("Closing active tunnel before establishing a new one")
                await self._close_locked()

            self._config = config
            try:
                return await self._establish_locked(config)
            except TunnelError as e:
                logger.error(
                    "SSH tunnel establishment failed",
                    stage=self._state.value,
                    error=str(e),
                )
                await self._teardown()
                raise
            except asyncio.CancelledError:
                logger.warning("SSH tunnel establishment cancelled", stage=self._state.value)
                await self._teardown()
                raise
            except Exception as e:
                logger.error(
                    "Unexpected error while establishing SSH tunnel",
                    stage=self._state.value,
                    error=str(e),
                )
                await self._teardown()
                raise ConnectionFailedError(str(e)) from e

    async def _establish_locked(self, config: TunnelConfiguration) -> int:
        logger.info(
            "Establishing SSH tunnel",
            ssh_host=config.host,
            ssh_port=config.port,
            ssh_user=config.user,
            remote=config.forward_spec,
        )

        self._state = TunnelState.ALLOCATING
        local_port = self.port_allocator.allocate()

        self._state = TunnelState.RESOLVING_KEY
        self.handle.key_material = self.key_resolver.resolve(config.key)

        self._state = TunnelState.LAUNCHING
        process = await self.supervisor.launch(
            config, local_port, self.handle.key_material.path
        )
        self.handle.activate(local_port, process)
        ResourceLeakDetector.register_resource(self)

        self._state = TunnelState.PROBING
        listening = await asyncio.to_thread(self.probe.is_listening, local_port)
        if not listening:
            raise PortForwardingFailedError(
                f"Local port {local_port} is not accepting connections"
            )

        self._state = TunnelState.ESTABLISHED
        logger.info(
            "SSH tunnel established",
            local_port=local_port,
            remote=config.forward_spec,
            pid=process.pid,
        )
        return local_port

    async def close(self) -> None:
        """Tear the tunnel down. Never raises; safe on an idle controller."""
        async with self._lock:
            await self._close_locked()

    async def _close_locked(self) -> None:
        if self.handle.is_empty:
            logger.debug("No active tunnel, nothing to close")
            if self._state != TunnelState.IDLE:
                self._state = TunnelState.CLOSED
            return

        self._state = TunnelState.CLOSING
        await self._teardown()
        self._state = TunnelState.CLOSED
        logger.info("SSH tunnel closed")

    async def _teardown(self) -> None:
        """Best-effort release of everything in the handle, then clear it."""
        process = self.handle.process
        key_material = self.handle.key_material

        if process is not None:
            try:
                await self.supervisor.terminate(process)
            except Exception as e:
                logger.error("Failed to stop SSH process", pid=process.pid, error=str(e))

        if key_material is not None:
            try:
                key_material.release()
            except Exception as e:
                logger.error("Failed to release key material", error=str(e))

        self.handle.clear()
        self._config = None
        ResourceLeakDetector.unregister_resource(self)
        if self._state != TunnelState.CLOSING:
            self._state = TunnelState.IDLE

    def cleanup(self) -> None:
        """Synchronous last-resort teardown, used at interpreter exit.

        Signals the ssh process directly by pid since the event loop that
        spawned it may already be gone.
        """
        process = self.handle.process
        if process is not None and process.returncode is None:
            try:
                os.kill(process.pid, signal.SIGTERM)
            except OSError as e:
                logger.warning("Failed to signal SSH process", pid=process.pid, error=str(e))

        if self.handle.key_material is not None:
            self.handle.key_material.release()

        self.handle.clear()
        self._config = None
        self._state = TunnelState.CLOSED
        ResourceLeakDetector.unregister_resource(self)

    def status(self) -> dict[str, Any]:
        """Get tunnel status for diagnostics."""
        return {
            "state": self._state.value,
            "active": self.is_active(),
            "remote": self._config.forward_spec if self._config else None,
            **self.handle.to_dict(),
        }

    async def __aenter__(self) -> "TunnelLifecycleController":
        logger.debug("Entering TunnelLifecycleController context")
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        logger.debug("Exiting TunnelLifecycleController context")
        try:
            await self.close()
        except Exception as e:
            logger.error("Error during context exit", error=str(e))
        return False
