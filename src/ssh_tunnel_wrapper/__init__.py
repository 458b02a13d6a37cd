"""SSH Tunnel Wrapper - ssh local port forwarding for database clients."""

from .api import ConnectionTarget, managed_tunnel, tunneled_endpoint
from .common.context import ResourceLeakDetector
from .common.exceptions import (
    AuthenticationFailedError,
    BinaryNotFoundError,
    ConnectionFailedError,
    InvalidKeyPathError,
    PortForwardingFailedError,
    TunnelError,
    TunnelNotEstablishedError,
)
from .common.logging import get_logger, setup_logging
from .common.settings import TunnelSettings
from .common.utils import mask_sensitive_data, sanitize_log_data
from .core.bookmarks import (
    BookmarkResolver,
    PathBookmarkResolver,
    ScopedAccess,
    create_bookmark,
)
from .core.controller import TunnelLifecycleController
from .core.keys import KeyMaterialHandle, KeyMaterialResolver
from .core.ports import PortAllocator, ReadinessProbe
from .core.process import (
    AsyncioProcessLauncher,
    ProcessHandle,
    ProcessLauncher,
    TransportProcessSupervisor,
)
from .tunnels.models import KeyReference, TunnelConfiguration, TunnelState

# Setup logging on package initialization
setup_logging(level="INFO")

# Package level logger
logger = get_logger(__name__)

__version__ = "0.1.0"


__all__ = [
    # High-level API
    "managed_tunnel",
    "tunneled_endpoint",
    "ConnectionTarget",
    # Lifecycle
    "TunnelLifecycleController",
    "TunnelConfiguration",
    "KeyReference",
    "TunnelState",
    "TunnelSettings",
    "ResourceLeakDetector",
    # Components
    "PortAllocator",
    "ReadinessProbe",
    "KeyMaterialResolver",
    "KeyMaterialHandle",
    "BookmarkResolver",
    "PathBookmarkResolver",
    "ScopedAccess",
    "create_bookmark",
    "TransportProcessSupervisor",
    "ProcessLauncher",
    "ProcessHandle",
    "AsyncioProcessLauncher",
    # Exceptions
    "TunnelError",
    "ConnectionFailedError",
    "BinaryNotFoundError",
    "AuthenticationFailedError",
    "PortForwardingFailedError",
    "TunnelNotEstablishedError",
    "InvalidKeyPathError",
    # Utilities
    "get_logger",
    "setup_logging",
    "mask_sensitive_data",
    "sanitize_log_data",
]
