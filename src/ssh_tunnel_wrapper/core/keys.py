"""Private key staging for the ssh process.

ssh refuses identity files that other users can read, and keys picked from
arbitrary locations rarely have the right mode. Keys are therefore copied
into an owner-only temporary file for the lifetime of one tunnel, unless
they already live in the application's private key store.
"""

import os
import tempfile
from pathlib import Path
from types import TracebackType
from typing import Literal

from ..common.exceptions import InvalidKeyPathError
from ..common.logging import get_logger
from ..common.settings import TunnelSettings
from ..tunnels.models import KeyReference
from .bookmarks import BookmarkResolver, PathBookmarkResolver, ScopedAccess

logger = get_logger(__name__)

KEY_FILE_MODE = 0o600
KEY_STORAGE_DIR_MODE = 0o700
TEMP_KEY_PREFIX = "ssh_key_"


class KeyMaterialHandle:
    """Owns the identity file handed to ssh and any scoped access behind it."""

    def __init__(
        self,
        path: Path,
        *,
        is_temporary: bool,
        mode: int | None = None,
        scope: ScopedAccess | None = None,
    ):
        self.path = path
        self.is_temporary = is_temporary
        self.mode = mode
        self.scope = scope
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def release(self) -> None:
        """Delete the temporary copy and release scoped access.

        Each step is attempted even if the previous one failed; failures are
        logged, never raised.
        """
        if self._released:
            return
        self._released = True

        if self.is_temporary:
            try:
                self.path.unlink(missing_ok=True)
                logger.debug("Temporary key file removed", path=str(self.path))
            except OSError as e:
                logger.warning(
                    "Failed to remove temporary key file",
                    path=str(self.path),
                    error=str(e),
                )

        if self.scope is not None:
            try:
                self.scope.release()
            except Exception as e:
                logger.error("Failed to release scoped key access", error=str(e))
            finally:
                self.scope = None

    def __enter__(self) -> "KeyMaterialHandle":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> Literal[False]:
        self.release()
        return False

    def __repr__(self) -> str:
        return (
            f"KeyMaterialHandle(path={str(self.path)!r}, "
            f"is_temporary={self.is_temporary}, scoped={self.scope is not None})"
        )


class KeyMaterialResolver:
    """Turns a :class:`KeyReference` into a :class:`KeyMaterialHandle`."""

    def __init__(
        self,
        settings: TunnelSettings | None = None,
        bookmarks: BookmarkResolver | None = None,
    ):
        self.settings = settings or TunnelSettings()
        self.bookmarks: BookmarkResolver = bookmarks or PathBookmarkResolver()

    def resolve(self, reference: KeyReference) -> KeyMaterialHandle:
        """Resolve key material for one tunnel.

        Raises:
            InvalidKeyPathError: If the key cannot be located, accessed, read or staged
        """
        if reference.bookmark:
            return self._resolve_bookmark(reference.bookmark)
        return self._resolve_path(reference.path)

    def is_in_key_storage(self, path: Path) -> bool:
        """Check whether ``path`` already lives in the private key store."""
        try:
            path.resolve().relative_to(self.settings.key_storage_dir.resolve())
        except ValueError:
            return False
        return True

    def import_key(self, source: str | os.PathLike[str]) -> Path:
        """Copy a key into the private key store so tunnels can use it in place.

        The original filename is kept; an existing key with the same name is
        replaced atomically.

        Args:
            source: Path to the private key to import

        Returns:
            Path of the stored key

        Raises:
            InvalidKeyPathError: If the key cannot be read or stored
        """
        source_path = Path(source).expanduser()
        data = self._read_key(source_path)

        storage_dir = self.settings.key_storage_dir
        destination = storage_dir / source_path.name
        try:
            storage_dir.mkdir(mode=KEY_STORAGE_DIR_MODE, parents=True, exist_ok=True)
            # mkdir leaves an existing directory's mode alone
            os.chmod(storage_dir, KEY_STORAGE_DIR_MODE)
            fd, temp_path = tempfile.mkstemp(prefix=".import_", dir=storage_dir)
        except OSError as e:
            raise InvalidKeyPathError(
                f"Failed to prepare key storage {storage_dir}: {e.strerror}"
            ) from e

        try:
            with os.fdopen(fd, "wb") as f:
                os.chmod(temp_path, KEY_FILE_MODE)
                f.write(data)
            os.replace(temp_path, destination)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise InvalidKeyPathError(
                f"Failed to store SSH key {source_path.name}: {e.strerror}"
            ) from e

        logger.info(
            "SSH key imported into key storage",
            source=str(source_path),
            path=str(destination),
            size=len(data),
        )
        return destination

    def _resolve_bookmark(self, token: bytes) -> KeyMaterialHandle:
        try:
            resolved = self.bookmarks.resolve(token)
        except InvalidKeyPathError:
            raise
        except Exception as e:
            raise InvalidKeyPathError(f"Failed to resolve key bookmark: {e}") from e

        if resolved.is_stale:
            logger.warning("Key bookmark is stale, using it anyway", path=str(resolved.path))

        try:
            scope = self.bookmarks.start_access(resolved.path)
        except Exception as e:
            raise InvalidKeyPathError(
                f"Failed to access key file {resolved.path}: {e}"
            ) from e
        if scope is None:
            raise InvalidKeyPathError(f"Access to key file was denied: {resolved.path}")

        try:
            staged = self._stage_copy(resolved.path)
        except BaseException:
            scope.release()
            raise

        return KeyMaterialHandle(
            staged, is_temporary=True, mode=KEY_FILE_MODE, scope=scope
        )

    def _resolve_path(self, raw_path: str) -> KeyMaterialHandle:
        if not raw_path or not raw_path.strip():
            raise InvalidKeyPathError()

        path = Path(raw_path.strip()).expanduser()
        if not path.is_file():
            logger.error("SSH key file not found", path=str(path))
            raise InvalidKeyPathError(f"SSH key file not found: {path}")

        if self.is_in_key_storage(path):
            logger.debug("Using stored key in place", path=str(path))
            return KeyMaterialHandle(path, is_temporary=False)

        return KeyMaterialHandle(
            self._stage_copy(path), is_temporary=True, mode=KEY_FILE_MODE
        )

    def _read_key(self, source: Path) -> bytes:
        try:
            data = source.read_bytes()
        except OSError as e:
            logger.error("Failed to read SSH key", path=str(source), error=e.strerror)
            raise InvalidKeyPathError(
                f"Failed to read SSH key {source}: {e.strerror}"
            ) from e

        if not data:
            raise InvalidKeyPathError(f"SSH key file is empty: {source}")

        logger.debug("Read SSH key", path=str(source), size=len(data))
        return data

    def _stage_copy(self, source: Path) -> Path:
        """Copy key bytes into a fresh owner-only file in the temp directory."""
        data = self._read_key(source)

        try:
            fd, temp_path = tempfile.mkstemp(
                prefix=TEMP_KEY_PREFIX, dir=self.settings.effective_temp_dir
            )
        except OSError as e:
            raise InvalidKeyPathError(
                f"Failed to create temporary key file: {e.strerror}"
            ) from e

        try:
            with os.fdopen(fd, "wb") as f:
                # mkstemp already uses 0600; enforce it before any byte lands
                os.chmod(temp_path, KEY_FILE_MODE)
                f.write(data)
        except OSError as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise InvalidKeyPathError(
                f"Failed to write temporary key file: {e.strerror}"
            ) from e

        logger.info(
            "Staged temporary key copy",
            source=str(source),
            path=temp_path,
            size=len(data),
        )
        return Path(temp_path)
