"""Freshness-tracked resources and the manifest attached to a compiled container.

Each resource knows how to answer one question: has my source changed since
``timestamp`` (the modification time of the cached entry file)?  The
manifest is persisted as JSON next to the entry file and is only consulted
in debug mode.
"""

from __future__ import annotations

import inspect
from pathlib import Path
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


def _mtime(path: Path) -> float | None:
    try:
        return path.stat().st_mtime
    except OSError:
        return None


def glob_matches(prefix: Path, pattern: str) -> list[str]:
    """Return the sorted, prefix-relative files matching *pattern* under *prefix*."""
    if not prefix.is_dir():
        return []
    return sorted(
        p.relative_to(prefix).as_posix() for p in prefix.glob(pattern) if p.is_file()
    )


class FileResource(BaseModel):
    """A file whose content feeds the container.

    Stale when the file disappeared or was modified after ``timestamp``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["file"] = "file"
    path: str

    @property
    def key(self) -> str:
        return f"file:{self.path}"

    def is_fresh(self, timestamp: float) -> bool:
        mtime = _mtime(Path(self.path))
        return mtime is not None and mtime <= timestamp


class FileExistenceResource(BaseModel):
    """Tracks whether a path exists, not what it contains."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["file_existence"] = "file_existence"
    path: str
    exists: bool

    @property
    def key(self) -> str:
        return f"file_existence:{self.path}"

    def is_fresh(self, timestamp: float) -> bool:
        return Path(self.path).exists() == self.exists


class GlobResource(BaseModel):
    """The set of files matched by a glob pattern below a directory.

    Stale when a match appeared or vanished, or when any match was
    modified after ``timestamp``.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["glob"] = "glob"
    prefix: str
    pattern: str
    matches: list[str] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return f"glob:{self.prefix}:{self.pattern}"

    def is_fresh(self, timestamp: float) -> bool:
        prefix = Path(self.prefix)
        if glob_matches(prefix, self.pattern) != self.matches:
            return False
        for match in self.matches:
            mtime = _mtime(prefix / match)
            if mtime is None or mtime > timestamp:
                return False
        return True


class SourceResource(BaseModel):
    """The source file that defines a Python type (a bundle, the kernel)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["source"] = "source"
    type_name: str
    path: str

    @property
    def key(self) -> str:
        return f"source:{self.type_name}"

    @classmethod
    def for_object(cls, obj: object) -> SourceResource | None:
        """Build a resource for the type of *obj*, or ``None`` if it has no source file."""
        obj_type = obj if isinstance(obj, type) else type(obj)
        try:
            path = inspect.getsourcefile(obj_type)
        except TypeError:
            return None
        if path is None:
            return None
        return cls(
            type_name=f"{obj_type.__module__}.{obj_type.__qualname__}",
            path=str(Path(path).resolve()),
        )

    def is_fresh(self, timestamp: float) -> bool:
        mtime = _mtime(Path(self.path))
        return mtime is not None and mtime <= timestamp


Resource = Annotated[
    Union[FileResource, FileExistenceResource, GlobResource, SourceResource],
    Field(discriminator="kind"),
]


class ResourceManifest(BaseModel):
    """The resources whose state decides whether a cached container is fresh."""

    model_config = ConfigDict(frozen=True)

    resources: list[Resource] = Field(default_factory=list)

    def stale_resources(self, timestamp: float) -> list[Resource]:
        """Return the resources that changed after *timestamp*."""
        return [r for r in self.resources if not r.is_fresh(timestamp)]
