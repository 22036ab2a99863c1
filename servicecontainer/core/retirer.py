"""LegacyRetirer — deletes superseded generations one rebuild late.

Retirement is two-phase.  When a rebuild replaces generation ``A`` with
``B``, ``A`` is only tagged (``A.legacy`` is touched).  The *next*
retirement sweeps every tagged generation except the ones in use, so a
process still running on ``A`` gets a full rebuild cycle to finish.

Removing the tag file is the claim: of two processes sweeping at once, only
the one whose ``unlink`` succeeds deletes the directory.

No lock is taken.  A process that outlives two rebuilds can still see its
generation deleted; that window is bounded, not closed.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path

from servicecontainer.core.hasher import GENERATION_PREFIX
from servicecontainer.runtime.container import CompiledContainer

logger = logging.getLogger(__name__)

LEGACY_SUFFIX = ".legacy"


class LegacyRetirer:
    """Tags and sweeps generation directories in one cache directory.

    Parameters
    ----------
    cache_dir:
        The cache directory holding ``<generation>/`` and
        ``<generation>.legacy``.
    prefix:
        Generation directory name prefix; only matching markers are swept.
    """

    def __init__(self, cache_dir: Path, prefix: str = GENERATION_PREFIX) -> None:
        self._cache_dir = Path(cache_dir)
        self._prefix = prefix

    def legacy_markers(self) -> list[Path]:
        return sorted(self._cache_dir.glob(f"{self._prefix}*{LEGACY_SUFFIX}"))

    def retire(self, previous: CompiledContainer, current: CompiledContainer) -> list[Path]:
        """Sweep tagged generations, then tag *previous*.

        Nothing happens when both containers share a type name.  The
        directories backing *previous* and *current* are never deleted, even
        if another process tagged them.

        Returns
        -------
        list[Path]
            Generation directories deleted by this call.
        """
        if previous.type_name == current.type_name:
            logger.debug("Container generation unchanged (%s); nothing to retire.", current.type_name)
            return []

        in_use = {previous.generation_dir.resolve(), current.generation_dir.resolve()}
        removed: list[Path] = []
        for marker in self.legacy_markers():
            generation_dir = marker.with_name(marker.name.removesuffix(LEGACY_SUFFIX))
            if generation_dir.resolve() in in_use:
                continue
            try:
                marker.unlink()
            except FileNotFoundError:
                # Claimed by a concurrent sweep.
                continue
            except OSError as exc:
                logger.warning("Could not remove legacy marker %s: %s", marker, exc)
                continue
            try:
                shutil.rmtree(generation_dir)
            except FileNotFoundError:
                pass
            except OSError as exc:
                logger.warning("Could not remove legacy generation %s: %s", generation_dir, exc)
                continue
            removed.append(generation_dir)
            logger.info("Removed legacy container generation %s.", generation_dir.name)

        self._tag(previous.generation_dir)
        return removed

    def _tag(self, generation_dir: Path) -> None:
        marker = generation_dir.with_name(generation_dir.name + LEGACY_SUFFIX)
        try:
            marker.touch()
        except OSError as exc:
            logger.warning("Could not tag %s as legacy: %s", generation_dir, exc)
            return
        logger.info("Tagged container generation %s as legacy.", generation_dir.name)
