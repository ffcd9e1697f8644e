"""Tests for zeebe_testbed.deploy.artifacts."""

from __future__ import annotations

import stat
from pathlib import Path
from unittest.mock import patch

import pytest


class TestBindDirectory:
    """Tests for the bind_directory() context manager."""

    def test_created_and_removed(self):
        from zeebe_testbed.deploy.artifacts import bind_directory

        with bind_directory() as path:
            assert path.is_dir()
            assert path.name.startswith("zeebe-data-")
            (path / "raft-partition").mkdir()
            (path / "raft-partition" / "journal.log").write_bytes(b"x")
        assert not path.exists()

    def test_world_writable(self):
        from zeebe_testbed.deploy.artifacts import bind_directory

        with bind_directory() as path:
            assert stat.S_IMODE(path.stat().st_mode) == 0o777

    def test_removed_on_exception(self):
        from zeebe_testbed.deploy.artifacts import bind_directory

        with pytest.raises(RuntimeError):
            with bind_directory() as path:
                raise RuntimeError("test failed")
        assert not path.exists()

    def test_keep(self):
        import shutil

        from zeebe_testbed.deploy.artifacts import bind_directory

        with bind_directory(keep=True) as path:
            pass
        try:
            assert path.is_dir()
        finally:
            shutil.rmtree(path)

    def test_removal_failure_raises_cleanup_error(self):
        from zeebe_testbed.core.errors import CleanupError
        from zeebe_testbed.deploy.artifacts import bind_directory

        with patch("zeebe_testbed.deploy.artifacts.shutil.rmtree", side_effect=OSError("busy")):
            with pytest.raises(CleanupError) as exc_info:
                with bind_directory() as path:
                    pass
        path.rmdir()
        assert exc_info.value.context.resource == str(path)

    def test_removal_failure_does_not_mask(self):
        from zeebe_testbed.deploy.artifacts import bind_directory

        with patch("zeebe_testbed.deploy.artifacts.shutil.rmtree", side_effect=OSError("busy")):
            with pytest.raises(ValueError, match="original"):
                with bind_directory() as path:
                    raise ValueError("original")
        path.rmdir()


class TestListArtifacts:
    """Tests for list_artifacts()."""

    def test_empty(self, tmp_path):
        from zeebe_testbed.deploy.artifacts import list_artifacts

        assert list_artifacts(tmp_path) == []

    def test_nested_sorted(self, tmp_path):
        from zeebe_testbed.deploy.artifacts import list_artifacts

        (tmp_path / "raft-partition" / "partitions" / "1").mkdir(parents=True)
        (tmp_path / "raft-partition" / "partitions" / "1" / "raft-partition-partition-1-1.log").write_bytes(b"x")
        (tmp_path / ".topology.meta").write_bytes(b"x")
        files = list_artifacts(tmp_path)
        assert [f.relative_to(tmp_path).as_posix() for f in files] == [
            ".topology.meta",
            "raft-partition/partitions/1/raft-partition-partition-1-1.log",
        ]

    def test_missing_path_is_not_an_error(self, tmp_path):
        from zeebe_testbed.deploy.artifacts import list_artifacts

        assert list_artifacts(tmp_path / "gone") == []

    def test_walk_errors_only_logged(self, tmp_path):
        import structlog

        from zeebe_testbed.deploy.artifacts import list_artifacts

        def fake_walk(path, onerror=None):
            onerror(PermissionError(13, "Permission denied", str(path / "locked")))
            yield str(path), [], ["a.log"]

        with structlog.testing.capture_logs() as logs:
            with patch("zeebe_testbed.deploy.artifacts.os.walk", side_effect=fake_walk):
                files = list_artifacts(tmp_path)

        assert files == [tmp_path / "a.log"]
        assert any(entry["event"] == "artifacts.walk_error" for entry in logs)


class TestHasArtifacts:
    def test_has_artifacts(self, tmp_path):
        from zeebe_testbed.deploy.artifacts import has_artifacts

        assert has_artifacts(tmp_path) is False
        (tmp_path / "f").write_text("x")
        assert has_artifacts(tmp_path) is True

    def test_missing(self, tmp_path):
        from zeebe_testbed.deploy.artifacts import has_artifacts

        assert has_artifacts(tmp_path / "gone") is False
