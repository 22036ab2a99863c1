"""Service container data models — Pydantic v2."""

from servicecontainer.models.artifacts import CompiledArtifact
from servicecontainer.models.definitions import Alias, Definition, MethodCall, Reference
from servicecontainer.models.resources import (
    FileExistenceResource,
    FileResource,
    GlobResource,
    Resource,
    ResourceManifest,
    SourceResource,
)

__all__ = [
    # definitions
    "Alias",
    "Definition",
    "MethodCall",
    "Reference",
    # resources
    "FileResource",
    "FileExistenceResource",
    "GlobResource",
    "SourceResource",
    "Resource",
    "ResourceManifest",
    # artifacts
    "CompiledArtifact",
]
