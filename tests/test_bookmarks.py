"""Tests for scoped bookmark resolution."""

import json
import os
from unittest.mock import Mock

import pytest

from ssh_tunnel_wrapper.common.exceptions import InvalidKeyPathError
from ssh_tunnel_wrapper.core.bookmarks import (
    PathBookmarkResolver,
    ScopedAccess,
    create_bookmark,
)


class TestScopedAccess:
    def test_release_runs_callback_once(self, tmp_path):
        on_release = Mock()
        scope = ScopedAccess(tmp_path, on_release=on_release)

        scope.release()
        scope.release()

        assert scope.released
        on_release.assert_called_once_with(tmp_path)

    def test_context_manager_releases(self, tmp_path):
        with ScopedAccess(tmp_path) as scope:
            assert not scope.released

        assert scope.released


class TestCreateBookmark:
    def test_encodes_path_and_identity(self, key_file):
        token = create_bookmark(key_file)
        payload = json.loads(token)

        assert payload["path"] == str(key_file.resolve())
        assert payload["inode"] == key_file.stat().st_ino
        assert payload["version"] == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidKeyPathError):
            create_bookmark(tmp_path / "missing")


class TestPathBookmarkResolver:
    def test_resolves_fresh_bookmark(self, key_file):
        resolved = PathBookmarkResolver().resolve(create_bookmark(key_file))

        assert resolved.path == key_file.resolve()
        assert resolved.is_stale is False

    def test_replaced_file_is_stale(self, key_file):
        token = create_bookmark(key_file)

        replacement = key_file.with_name("replacement")
        replacement.write_bytes(key_file.read_bytes())
        os.replace(replacement, key_file)

        resolved = PathBookmarkResolver().resolve(token)
        assert resolved.is_stale is True

    def test_malformed_token(self):
        with pytest.raises(InvalidKeyPathError, match="malformed"):
            PathBookmarkResolver().resolve(b"\xff\xfe not json")

        with pytest.raises(InvalidKeyPathError, match="malformed"):
            PathBookmarkResolver().resolve(b'{"inode": 1}')

    def test_missing_target(self, key_file):
        token = create_bookmark(key_file)
        key_file.unlink()

        with pytest.raises(InvalidKeyPathError, match="unavailable"):
            PathBookmarkResolver().resolve(token)

    def test_start_access_returns_scope(self, key_file):
        scope = PathBookmarkResolver().start_access(key_file)

        assert isinstance(scope, ScopedAccess)
        assert scope.path == key_file

    @pytest.mark.skipif(
        hasattr(os, "geteuid") and os.geteuid() == 0,
        reason="root can read files regardless of mode",
    )
    def test_start_access_refused_for_unreadable_file(self, key_file):
        key_file.chmod(0o000)
        try:
            assert PathBookmarkResolver().start_access(key_file) is None
        finally:
            key_file.chmod(0o600)
