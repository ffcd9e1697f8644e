"""Host-side bind directory and artifact inspection.

``bind_directory()`` owns the host directory mounted into the broker. It is
removed on every exit path; a removal failure is raised as ``CleanupError``
when nothing else is propagating, and only logged when it would otherwise
mask the original exception.

``list_artifacts()`` walks the directory after a deploy. Per-entry walk
errors (for example files the broker created with restrictive permissions)
are logged and skipped, never raised.
"""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

from zeebe_testbed.core.errors import CleanupError
from zeebe_testbed.core.logging import get_logger

logger = get_logger(__name__)


@contextmanager
def bind_directory(prefix: str = "zeebe-data-", *, keep: bool = False) -> Iterator[Path]:
    """Create a temporary host directory and remove it afterwards.

    Args:
        prefix: Directory name prefix
        keep: Leave the directory in place (debugging)
    """
    path = Path(tempfile.mkdtemp(prefix=prefix))
    # The broker runs as a different uid inside the container.
    path.chmod(0o777)
    logger.debug("bind_dir.created", path=str(path))

    failed = False
    try:
        yield path
    except BaseException:
        failed = True
        raise
    finally:
        if keep:
            logger.info("bind_dir.kept", path=str(path))
        else:
            try:
                shutil.rmtree(path)
                logger.debug("bind_dir.removed", path=str(path))
            except OSError as exc:
                error = CleanupError(
                    f"failed to remove bind directory {path}: {exc}", cause=exc
                ).with_context(resource=str(path))
                if not failed:
                    raise error from exc
                logger.error("bind_dir.cleanup_failed", error=error)


def list_artifacts(path: Path) -> list[Path]:
    """Return every file below ``path``, sorted.

    Walk errors are logged per entry and do not fail the listing.
    """

    def _on_error(exc: OSError) -> None:
        logger.warning("artifacts.walk_error", path=exc.filename, error=str(exc))

    files: list[Path] = []
    for root, _dirs, names in os.walk(path, onerror=_on_error):
        for name in names:
            file_path = Path(root) / name
            logger.debug("artifacts.file", path=str(file_path.relative_to(path)))
            files.append(file_path)
    return sorted(files)


def has_artifacts(path: Path) -> bool:
    """True when ``path`` exists and holds at least one entry."""
    try:
        return path.is_dir() and any(path.iterdir())
    except OSError as exc:
        logger.warning("artifacts.unreadable", path=str(path), error=str(exc))
        return False


__all__ = ["bind_directory", "list_artifacts", "has_artifacts"]
