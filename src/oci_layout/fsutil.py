"""
Atomic filesystem helpers.

Everything the layout publishes (blobs, the index, the marker) goes through
a temporary file in the destination directory followed by ``os.replace``,
so readers only ever see complete files.
"""
from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Optional

from .errors import Cancelled

__all__ = ["atomic_write_bytes", "fsync_dir", "discard", "raise_if_cancelled", "TEMP_PREFIX"]

logger = logging.getLogger(__name__)

# Temporary files share this prefix so they are never mistaken for content
TEMP_PREFIX = ".tmp-"


def raise_if_cancelled(cancel: Optional[threading.Event], what: str) -> None:
    """Raise Cancelled if the caller's cancel event is set."""
    if cancel is not None and cancel.is_set():
        raise Cancelled(f"{what} cancelled")


def fsync_dir(path: Path) -> None:
    """
    Flush a directory entry so a rename inside it survives a crash.

    Platforms that cannot open directories are skipped silently.
    """
    try:
        fd = os.open(path, os.O_RDONLY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        # Some filesystems refuse fsync on directories
        pass
    finally:
        os.close(fd)


def discard(temp_path: Path) -> None:
    """Remove a temporary file, tolerating it being gone already."""
    try:
        temp_path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove temporary file {temp_path}: {e}")


def atomic_write_bytes(target_path: Path, data: bytes, *, fsync: bool = True) -> None:
    """
    Write ``data`` to ``target_path`` atomically using temp file + rename.

    Args:
        target_path: Final path for the file
        data: Complete file content
        fsync: Flush the file and its directory before returning

    Raises:
        OSError: If file operations fail; the previous file is left intact
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, dir=target_path.parent)
    temp_path = Path(temp_name)

    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            if fsync:
                os.fsync(f.fileno())

        os.replace(temp_path, target_path)
    except BaseException:
        discard(temp_path)
        raise

    if fsync:
        fsync_dir(target_path.parent)
