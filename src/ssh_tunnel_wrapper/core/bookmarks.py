"""Revocable, scoped references to key files chosen outside the key store.

A bookmark is an opaque token a UI stores alongside a saved connection. Turning
it back into a readable file takes two steps: :meth:`BookmarkResolver.resolve`
finds the current path (and reports whether the token went stale), then
:meth:`BookmarkResolver.start_access` acquires a :class:`ScopedAccess` that must
be held while the file is read and released deterministically afterwards.

Platforms with real sandbox bookmarks plug in their own resolver; the default
:class:`PathBookmarkResolver` encodes the path plus the file identity.
"""

from __future__ import annotations

import json
import os
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from types import TracebackType
from typing import Literal, Protocol

from ..common.exceptions import InvalidKeyPathError
from ..common.logging import get_logger

logger = get_logger(__name__)

BOOKMARK_VERSION = 1


@dataclass(frozen=True)
class ResolvedBookmark:
    path: Path
    is_stale: bool = False


class ScopedAccess:
    """Acquire/release capsule around access to one resolved file."""

    def __init__(self, path: Path, on_release: Callable[[Path], None] | None = None):
        self.path = path
        self._on_release = on_release
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Stop accessing the resource. Safe to call more than once."""
        if self._released:
            return
        self._released = True
        if self._on_release is not None:
            self._on_release(self.path)
        logger.debug("Scoped access released", path=str(self.path))

    def __enter__(self) -> ScopedAccess:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.release()
        return False


class BookmarkResolver(Protocol):
    """Capability that turns bookmark tokens into accessible files."""

    def resolve(self, token: bytes) -> ResolvedBookmark:
        """Map a token to a file path.

        Raises:
            InvalidKeyPathError: If the token cannot be resolved at all
        """
        ...

    def start_access(self, path: Path) -> ScopedAccess | None:
        """Begin scoped access; ``None`` means access was refused."""
        ...


def create_bookmark(path: str | os.PathLike[str]) -> bytes:
    """Create a bookmark token for ``path`` understood by PathBookmarkResolver.

    Raises:
        InvalidKeyPathError: If the file cannot be inspected
    """
    resolved = Path(path).expanduser().resolve()
    try:
        stat_result = resolved.stat()
    except OSError as e:
        raise InvalidKeyPathError(f"Cannot bookmark {resolved}: {e.strerror}") from e

    payload = {
        "version": BOOKMARK_VERSION,
        "path": str(resolved),
        "device": stat_result.st_dev,
        "inode": stat_result.st_ino,
    }
    return json.dumps(payload, sort_keys=True).encode("utf-8")


class PathBookmarkResolver:
    """Default resolver for tokens produced by :func:`create_bookmark`.

    A bookmark is stale when the file at the recorded path is no longer the
    file that was bookmarked (replaced, restored from backup, ...).
    """

    def resolve(self, token: bytes) -> ResolvedBookmark:
        try:
            payload = json.loads(token.decode("utf-8"))
            path = Path(payload["path"])
        except (UnicodeDecodeError, ValueError, KeyError, TypeError) as e:
            raise InvalidKeyPathError("Key bookmark is malformed") from e

        try:
            stat_result = path.stat()
        except OSError as e:
            raise InvalidKeyPathError(
                f"Key bookmark target is unavailable: {path}"
            ) from e

        is_stale = (
            payload.get("device") != stat_result.st_dev
            or payload.get("inode") != stat_result.st_ino
        )
        return ResolvedBookmark(path=path, is_stale=is_stale)

    def start_access(self, path: Path) -> ScopedAccess | None:
        if not os.access(path, os.R_OK):
            logger.warning("Scoped access refused", path=str(path))
            return None
        logger.debug("Scoped access started", path=str(path))
        return ScopedAccess(path)
