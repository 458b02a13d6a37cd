"""Process management for the ssh binary."""

import asyncio
import os
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import Protocol

from ..common.exceptions import (
    AuthenticationFailedError,
    BinaryNotFoundError,
    ConnectionFailedError,
    TunnelError,
)
from ..common.logging import get_logger
from ..common.settings import TunnelSettings
from ..tunnels.models import TunnelConfiguration

logger = get_logger(__name__)

# ssh prints these when the server rejects every offered credential
AUTH_FAILURE_MARKERS = (
    "Permission denied (",
    "Too many authentication failures",
)


class ProcessHandle(Protocol):
    """Running external process as seen by the supervisor."""

    @property
    def pid(self) -> int: ...

    @property
    def returncode(self) -> int | None: ...

    def is_running(self) -> bool: ...

    def terminate(self) -> None:
        """Send a graceful stop signal."""
        ...

    async def wait(self) -> int: ...

    async def read_output(self) -> str:
        """Return captured stderr and stdout. Only valid after exit."""
        ...


class ProcessLauncher(Protocol):
    """Capability to spawn external processes."""

    async def spawn(self, argv: Sequence[str]) -> ProcessHandle: ...


class AsyncioProcessHandle:
    """ProcessHandle backed by :mod:`asyncio.subprocess`."""

    def __init__(self, process: asyncio.subprocess.Process):
        self._process = process

    @property
    def pid(self) -> int:
        return self._process.pid

    @property
    def returncode(self) -> int | None:
        return self._process.returncode

    def is_running(self) -> bool:
        return self._process.returncode is None

    def terminate(self) -> None:
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    async def wait(self) -> int:
        return await self._process.wait()

    async def read_output(self) -> str:
        stdout, stderr = await self._process.communicate()
        parts = [
            data.decode("utf-8", errors="replace").strip()
            for data in (stderr, stdout)
            if data
        ]
        return "\n".join(part for part in parts if part)


class AsyncioProcessLauncher:
    """Spawns processes with piped output for diagnostics."""

    async def spawn(self, argv: Sequence[str]) -> ProcessHandle:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        return AsyncioProcessHandle(process)


def find_ssh_binary() -> str:
    """Find ssh binary in system PATH or common locations.

    Returns:
        Path to ssh binary

    Raises:
        BinaryNotFoundError: If binary cannot be found
    """
    binary_path = shutil.which("ssh")
    if binary_path:
        return binary_path

    common_paths = [
        "/usr/bin/ssh",
        "/usr/local/bin/ssh",
        "/opt/homebrew/bin/ssh",
        r"C:\Windows\System32\OpenSSH\ssh.exe",
    ]

    for path in common_paths:
        expanded_path = os.path.expanduser(path)
        if os.path.exists(expanded_path) and os.access(expanded_path, os.X_OK):
            return expanded_path

    raise BinaryNotFoundError("ssh binary not found in PATH or common locations")


def classify_startup_failure(output: str, returncode: int | None) -> TunnelError:
    """Map the output of an ssh process that died during startup to an error."""
    if any(marker in output for marker in AUTH_FAILURE_MARKERS):
        return AuthenticationFailedError()
    detail = output or f"ssh exited with status {returncode}"
    return ConnectionFailedError(detail)


class TransportProcessSupervisor:
    """Launches and stops the ssh process that carries one port forward."""

    def __init__(
        self,
        settings: TunnelSettings | None = None,
        launcher: ProcessLauncher | None = None,
    ):
        self.settings = settings or TunnelSettings()
        self.launcher: ProcessLauncher = launcher or AsyncioProcessLauncher()
        self._binary_path: str | None = None

    @property
    def binary_path(self) -> str:
        """Configured ssh binary, or the auto-detected one.

        Raises:
            BinaryNotFoundError: If the binary is missing or not executable
        """
        if self._binary_path is None:
            if self.settings.ssh_binary:
                self._binary_path = self._validate_binary(self.settings.ssh_binary)
            else:
                self._binary_path = find_ssh_binary()
        return self._binary_path

    @staticmethod
    def _validate_binary(binary: str) -> str:
        binary_path = Path(binary).expanduser()

        if not binary_path.exists():
            raise BinaryNotFoundError(f"Binary not found: {binary}")

        if not binary_path.is_file():
            raise BinaryNotFoundError(f"Binary path is not a file: {binary}")

        if not os.access(binary_path, os.X_OK):
            raise BinaryNotFoundError(f"Binary is not executable: {binary}")

        return str(binary_path)

    def build_arguments(
        self, config: TunnelConfiguration, local_port: int, key_path: Path | str
    ) -> list[str]:
        """Build ssh arguments. The order is part of the contract with ssh."""
        return [
            "-N",
            "-L",
            f"{local_port}:{config.forward_spec}",
            "-p",
            str(config.port),
            "-i",
            str(key_path),
            "-o",
            "StrictHostKeyChecking=no",
            "-o",
            "UserKnownHostsFile=/dev/null",
            "-o",
            f"ServerAliveInterval={self.settings.keepalive_interval}",
            "-o",
            f"ServerAliveCountMax={self.settings.keepalive_count_max}",
            config.destination,
        ]

    def build_command(
        self, config: TunnelConfiguration, local_port: int, key_path: Path | str
    ) -> list[str]:
        return [self.binary_path, *self.build_arguments(config, local_port, key_path)]

    async def launch(
        self, config: TunnelConfiguration, local_port: int, key_path: Path | str
    ) -> ProcessHandle:
        """Start ssh and give it the settle delay to fail fast.

        Returns:
            Handle of the still-running process

        Raises:
            BinaryNotFoundError: If no ssh binary is available
            ConnectionFailedError: If ssh cannot be spawned or exits during startup
            AuthenticationFailedError: If ssh exits because credentials were rejected
        """
        command = self.build_command(config, local_port, key_path)

        logger.info(
            "Starting SSH process",
            destination=config.destination,
            ssh_port=config.port,
            forward=f"{local_port}:{config.forward_spec}",
            key_path=str(key_path),
        )
        try:
            process = await self.launcher.spawn(command)
        except OSError as e:
            logger.error("Failed to start SSH process", error=str(e))
            raise ConnectionFailedError(f"Failed to start ssh: {e}") from e

        logger.info("SSH process started", pid=process.pid)

        try:
            await asyncio.sleep(self.settings.settle_delay)
        except asyncio.CancelledError:
            logger.warning("SSH startup cancelled, stopping process", pid=process.pid)
            await asyncio.shield(self.terminate(process))
            raise

        if not process.is_running():
            output = await process.read_output()
            logger.error(
                "SSH process exited during startup",
                pid=process.pid,
                returncode=process.returncode,
                output=output,
            )
            raise classify_startup_failure(output, process.returncode)

        return process

    async def terminate(self, process: ProcessHandle) -> bool:
        """Send SIGTERM and wait the grace period; never force-kills.

        Returns:
            True if the process is gone after the grace period
        """
        if not process.is_running():
            logger.debug("SSH process not running, nothing to stop", pid=process.pid)
            return True

        logger.info("Stopping SSH process", pid=process.pid)
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self.settings.terminate_grace)
        except TimeoutError:
            logger.warning(
                "SSH process still running after grace period",
                pid=process.pid,
                grace=self.settings.terminate_grace,
            )
            return False

        logger.info("SSH process terminated", pid=process.pid, returncode=process.returncode)
        return True
