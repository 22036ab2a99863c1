"""CacheManager — freshness check, load and atomic write of the compiled container.

One boot walks this state machine once::

    CheckingFreshness -> Miss | Fresh | Stale | Corrupt
    Fresh             -> use the loaded container
    Miss/Stale/Corrupt -> compile, write, load back from disk

Freshness rules
---------------
* No entry file: miss.
* Entry file present, debug off: fresh.  Production trusts the cache and
  never looks at timestamps.
* Entry file present, debug on: fresh only if every resource in the
  manifest (``<entry>.meta``) is unchanged since the entry file's mtime.
* Anything raised while loading the cached container: corrupt.  The error
  is logged and the caller rebuilds; it never propagates.

Write ordering
--------------
Generation files first, then the old entry file is removed, then the
manifest and the entry file are written, each via atomic rename.  A reader
that can see the entry file can therefore load everything it references
and reads the manifest written with it.  A writer that dies half-way
leaves a cache that looks exactly like one that was never built.
"""

from __future__ import annotations

import logging
import runpy
import warnings
from collections.abc import Iterator
from contextlib import contextmanager
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, ValidationError

from servicecontainer.core.filesystem import dump_file, is_writable_dir
from servicecontainer.errors import CacheDirUnwritableError, CacheLoadCorruptError
from servicecontainer.models.artifacts import CompiledArtifact
from servicecontainer.models.resources import ResourceManifest
from servicecontainer.runtime.container import CompiledContainer

logger = logging.getLogger(__name__)


class CacheState(str, Enum):
    """Outcome of probing the cache."""

    MISS = "miss"
    FRESH = "fresh"
    STALE = "stale"
    CORRUPT = "corrupt"


class CacheProbe(BaseModel):
    """Result of ``CacheManager.load_if_fresh``.

    ``container`` is set for ``FRESH`` and ``STALE``: a stale container is
    still needed to know which generation is being superseded.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    state: CacheState
    container: CompiledContainer | None = None

    @property
    def is_fresh(self) -> bool:
        return self.state is CacheState.FRESH


@contextmanager
def suppressed_warnings() -> Iterator[None]:
    """Silence warnings for the duration of the block, restoring filters after."""
    with warnings.catch_warnings():
        warnings.simplefilter("ignore")
        yield


class CacheManager:
    """Owns ``{cache_dir}/{class_name}.py`` and everything it references.

    Parameters
    ----------
    cache_dir:
        Directory holding the entry file, its manifest and the generation
        directories.
    class_name:
        Name of the generated container class; also names the entry file.
    debug:
        Whether cached containers are checked against their manifest.
    """

    def __init__(self, cache_dir: Path, class_name: str = "ServiceContainer", *, debug: bool = False) -> None:
        self._cache_dir = Path(cache_dir)
        self._class_name = class_name
        self._debug = debug

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def entry_path(self) -> Path:
        return self._cache_dir / f"{self._class_name}.py"

    @property
    def meta_path(self) -> Path:
        return self._cache_dir / f"{self._class_name}.py.meta"

    # ------------------------------------------------------------------
    # Probe
    # ------------------------------------------------------------------

    def load_if_fresh(self) -> CacheProbe:
        """Load the cached container and decide whether it can be used."""
        if not self.entry_path.is_file():
            logger.debug("No cached container at %s.", self.entry_path)
            return CacheProbe(state=CacheState.MISS)

        with suppressed_warnings():
            try:
                container = self.load()
            except Exception:
                logger.warning(
                    "Cached container at %s could not be loaded; rebuilding.",
                    self.entry_path,
                    exc_info=True,
                )
                return CacheProbe(state=CacheState.CORRUPT)

            if self.is_fresh():
                logger.debug("Using cached container %s.", container.type_name)
                return CacheProbe(state=CacheState.FRESH, container=container)

        return CacheProbe(state=CacheState.STALE, container=container)

    def is_fresh(self) -> bool:
        """Whether the entry file exists and, in debug mode, matches its sources."""
        try:
            timestamp = self.entry_path.stat().st_mtime
        except OSError:
            return False
        if not self._debug:
            return True

        manifest = self.read_manifest()
        if manifest is None:
            return False
        stale = manifest.stale_resources(timestamp)
        if stale:
            logger.info(
                "Cached container is stale; changed: %s",
                ", ".join(resource.key for resource in stale),
            )
            return False
        return True

    def read_manifest(self) -> ResourceManifest | None:
        """Return the stored manifest, or ``None`` if it is missing or unreadable."""
        try:
            return ResourceManifest.model_validate_json(self.meta_path.read_text(encoding="utf-8"))
        except OSError:
            logger.debug("No readable manifest at %s.", self.meta_path)
        except ValidationError:
            logger.warning("Manifest at %s is invalid; treating cache as stale.", self.meta_path)
        return None

    # ------------------------------------------------------------------
    # Load
    # ------------------------------------------------------------------

    def load(self) -> CompiledContainer:
        """Execute the entry file and return the container it builds.

        Raises
        ------
        CacheLoadCorruptError
            If the entry file fails to run or does not produce a container.
        """
        try:
            namespace = runpy.run_path(str(self.entry_path))
        except CacheLoadCorruptError:
            raise
        except Exception as exc:
            raise CacheLoadCorruptError(f"Cannot load cached container {self.entry_path}: {exc}") from exc
        container = namespace.get("container")
        if not isinstance(container, CompiledContainer):
            raise CacheLoadCorruptError(f"{self.entry_path} did not produce a compiled container.")
        return container

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def ensure_cache_dir(self) -> None:
        """Create the cache directory if needed and check it is writable.

        Raises
        ------
        CacheDirUnwritableError
            If the directory cannot be created or written to.
        """
        if not self._cache_dir.is_dir():
            try:
                self._cache_dir.mkdir(parents=True, exist_ok=True)
            except OSError as exc:
                raise CacheDirUnwritableError(
                    f"Unable to create the cache directory ({self._cache_dir})."
                ) from exc
        elif not is_writable_dir(self._cache_dir):
            raise CacheDirUnwritableError(f"Unable to write to the cache directory ({self._cache_dir}).")

    def write(self, artifact: CompiledArtifact) -> None:
        """Persist *artifact*: generation files, then manifest, then entry file.

        Raises
        ------
        CacheDirUnwritableError
            If the cache directory or any file cannot be written.
        ValueError
            If *artifact* was compiled for a different class name.
        """
        if artifact.class_name != self._class_name:
            raise ValueError(
                f"Artifact class '{artifact.class_name}' does not match cache entry '{self._class_name}'."
            )
        self.ensure_cache_dir()
        try:
            for relative_path, code in artifact.files.items():
                dump_file(self._cache_dir / relative_path, code)
            # The old entry must not outlive its manifest: a crash from here on is a miss.
            self.entry_path.unlink(missing_ok=True)
            dump_file(self.meta_path, artifact.manifest.model_dump_json(indent=2))
            dump_file(self.entry_path, artifact.entry_code)
        except OSError as exc:
            raise CacheDirUnwritableError(
                f"Unable to write the compiled container to the cache directory ({self._cache_dir})."
            ) from exc
        logger.info(
            "Wrote container generation %s (%d file(s)) to %s.",
            artifact.generation,
            len(artifact.files),
            self._cache_dir,
        )
