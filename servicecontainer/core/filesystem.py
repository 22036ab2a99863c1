"""Filesystem helpers for the cache directory.

``dump_file`` never exposes a half-written file: content goes to a
temporary file in the target directory, which is then renamed over the
target.  A reader sees either the previous file or the complete new one.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)


def current_umask() -> int:
    """Return the process umask without changing it."""
    mask = os.umask(0)
    os.umask(mask)
    return mask


def dump_file(path: Path, content: str) -> None:
    """Atomically write *content* to *path*, creating parent directories.

    The file ends up world-usable as far as the umask allows
    (``0o666 & ~umask``), like a file created by ``open()``.

    Raises
    ------
    OSError
        If the directory cannot be created or the file cannot be written.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.chmod(tmp_name, 0o666 & ~current_umask())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise
    logger.debug("Wrote %s (%d bytes).", path, len(content))


def is_writable_dir(path: Path) -> bool:
    return path.is_dir() and os.access(path, os.W_OK | os.X_OK)
