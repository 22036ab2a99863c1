"""Compiled container artifact models."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from servicecontainer.models.resources import ResourceManifest


class CompiledArtifact(BaseModel):
    """The serialized form of a compiled service graph, not yet on disk.

    ``files`` maps cache-relative paths of the auxiliary files (the generation
    directory contents) to their source; ``entry_code`` becomes the entry file,
    written last.  The artifact is immutable: whatever is written is what
    gets loaded back.
    """

    model_config = ConfigDict(frozen=True)

    class_name: str
    generation: str  # "Container<digest>", also the generation directory name
    entry_code: str
    files: dict[str, str] = Field(default_factory=dict)
    manifest: ResourceManifest = ResourceManifest()

    @property
    def type_name(self) -> str:
        """Fully qualified name of the generated container class."""
        return f"{self.generation}.{self.class_name}"
