"""Common utilities and shared functionality."""

from .context import ResourceLeakDetector
from .exceptions import (
    AuthenticationFailedError,
    BinaryNotFoundError,
    ConnectionFailedError,
    InvalidKeyPathError,
    PortForwardingFailedError,
    TunnelError,
    TunnelNotEstablishedError,
)
from .logging import get_logger, setup_logging
from .settings import TunnelSettings
from .utils import (
    MAX_PORT,
    MIN_PORT,
    format_destination,
    mask_sensitive_data,
    sanitize_log_data,
    validate_non_empty_string,
    validate_port,
)

__all__ = [
    # Exceptions
    "TunnelError",
    "ConnectionFailedError",
    "BinaryNotFoundError",
    "AuthenticationFailedError",
    "PortForwardingFailedError",
    "TunnelNotEstablishedError",
    "InvalidKeyPathError",
    # Logging
    "get_logger",
    "setup_logging",
    # Settings
    "TunnelSettings",
    # Lifecycle
    "ResourceLeakDetector",
    # Utils
    "validate_port",
    "validate_non_empty_string",
    "mask_sensitive_data",
    "sanitize_log_data",
    "format_destination",
    "MIN_PORT",
    "MAX_PORT",
]
