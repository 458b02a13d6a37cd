import atexit
import logging
import threading
from typing import Any

logger = logging.getLogger(__name__)


class ResourceLeakDetector:
    """Tracks live tunnel owners and tears them down at interpreter exit.

    This is the last line of defence for callers that never close a
    controller. Deterministic teardown (``async with`` / ``close()``) stays
    the expected calling convention.

    References are strong: an owner dropped without ``close()`` must stay
    reachable until it unregisters itself or is cleaned up at exit.
    """

    _active_resources: set[Any] = set()
    _lock = threading.Lock()

    @classmethod
    def register_resource(cls, resource: Any) -> None:
        """Register a resource for leak detection"""
        with cls._lock:
            cls._active_resources.add(resource)

    @classmethod
    def unregister_resource(cls, resource: Any) -> None:
        """Unregister a resource"""
        with cls._lock:
            cls._active_resources.discard(resource)

    @classmethod
    def get_active_count(cls) -> int:
        """Get count of active resources"""
        with cls._lock:
            return len(cls._active_resources)

    @classmethod
    def cleanup_leaked(cls) -> None:
        """Clean up any leaked resources"""
        with cls._lock:
            leaked_resources = list(cls._active_resources)

        for resource in leaked_resources:
            try:
                resource.cleanup()
                logger.warning(f"Cleaned up leaked resource: {type(resource).__name__}")
            except Exception as e:
                logger.error(f"Failed to clean up leaked resource: {e}")
            finally:
                cls.unregister_resource(resource)


atexit.register(ResourceLeakDetector.cleanup_leaked)
