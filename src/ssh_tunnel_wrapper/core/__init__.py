"""Core tunnel lifecycle components."""

from .bookmarks import (
    BookmarkResolver,
    PathBookmarkResolver,
    ResolvedBookmark,
    ScopedAccess,
    create_bookmark,
)
from .controller import TunnelLifecycleController
from .keys import KeyMaterialHandle, KeyMaterialResolver
from .ports import PortAllocator, ReadinessProbe
from .process import (
    AsyncioProcessLauncher,
    ProcessHandle,
    ProcessLauncher,
    TransportProcessSupervisor,
    find_ssh_binary,
)

__all__ = [
    "TunnelLifecycleController",
    "PortAllocator",
    "ReadinessProbe",
    "KeyMaterialHandle",
    "KeyMaterialResolver",
    "BookmarkResolver",
    "PathBookmarkResolver",
    "ResolvedBookmark",
    "ScopedAccess",
    "create_bookmark",
    "ProcessHandle",
    "ProcessLauncher",
    "AsyncioProcessLauncher",
    "TransportProcessSupervisor",
    "find_ssh_binary",
]
