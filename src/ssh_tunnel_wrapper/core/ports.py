"""Local port allocation and readiness probing."""

import errno
import socket

from ..common.exceptions import PortForwardingFailedError
from ..common.logging import get_logger

logger = get_logger(__name__)

LOOPBACK_HOST = "127.0.0.1"


class PortAllocator:
    """Finds a free loopback TCP port for the ssh ``-L`` listener.

    The socket is closed before returning, so the port is only a hint:
    another process may grab it before ssh binds it.
    """

    def __init__(self, host: str = LOOPBACK_HOST):
        self.host = host

    def allocate(self) -> int:
        """Return a system-assigned ephemeral port.

        Raises:
            PortForwardingFailedError: If the socket cannot be created or bound
        """
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.bind((self.host, 0))
                port: int = sock.getsockname()[1]
        except OSError as e:
            logger.error("Local port allocation failed", host=self.host, error=str(e))
            raise PortForwardingFailedError(
                f"Failed to allocate a local port on {self.host}: {e}"
            ) from e

        logger.debug("Allocated local port", host=self.host, port=port)
        return port


class ReadinessProbe:
    """Single connect attempt against the forwarded local port."""

    def __init__(self, host: str = LOOPBACK_HOST, timeout: float = 1.0):
        self.host = host
        self.timeout = timeout

    def is_listening(self, port: int) -> bool:
        """Check whether something accepts connections on ``port``.

        No retries; every socket error maps to ``False``.
        """
        try:
            with socket.create_connection((self.host, port), timeout=self.timeout):
                pass
        except ConnectionRefusedError:
            logger.debug("Readiness probe refused", port=port)
            return False
        except OSError as e:
            logger.debug(
                "Readiness probe failed",
                port=port,
                error=errno.errorcode.get(e.errno or 0, str(e)),
            )
            return False

        logger.debug("Readiness probe succeeded", port=port)
        return True
