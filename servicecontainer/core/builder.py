"""ContainerBuilder — the mutable service graph that gets compiled.

Bundles, extensions and the YAML loader all write into a builder.
``compile()`` runs the merge pass, any bundle-registered passes and the
resolution/validation passes, then freezes the builder so the dumper sees a
graph that can no longer change underneath it.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

from servicecontainer.bundles.bundle import Extension
from servicecontainer.errors import (
    BuilderFrozenError,
    LoadError,
    ParameterNotFoundError,
    ServiceNotFoundError,
)
from servicecontainer.models.definitions import Alias, Definition
from servicecontainer.models.resources import (
    FileExistenceResource,
    FileResource,
    Resource,
    SourceResource,
)

logger = logging.getLogger(__name__)


class CompilerPass(Protocol):
    """A step that inspects or rewrites the graph during ``compile()``."""

    def process(self, builder: ContainerBuilder) -> None: ...


class ContainerBuilder:
    """Parameters, service definitions, aliases, extensions and resources.

    Parameters
    ----------
    parameters:
        Initial parameters (copied).
    """

    def __init__(
        self,
        parameters: dict[str, Any] | None = None,
    ) -> None:
        self._parameters: dict[str, Any] = dict(parameters or {})
        self._definitions: dict[str, Definition] = {}
        self._aliases: dict[str, Alias] = {}
        self._extensions: dict[str, Extension] = {}
        self._extension_configs: dict[str, list[dict[str, Any]]] = {}
        self._resources: dict[str, Resource] = {}
        self._passes: list[tuple[int, int, CompilerPass]] = []
        self._merge_pass: CompilerPass | None = None
        self._frozen = False

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _ensure_open(self) -> None:
        if self._frozen:
            raise BuilderFrozenError("Cannot modify a compiled container builder.")

    # -- Parameters ---------------------------------------------------------

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self._parameters)

    def set_parameter(self, name: str, value: Any) -> None:
        self._ensure_open()
        self._parameters[name] = value

    def add_parameters(self, parameters: dict[str, Any]) -> None:
        self._ensure_open()
        self._parameters.update(parameters)

    def get_parameter(self, name: str) -> Any:
        if name not in self._parameters:
            raise ParameterNotFoundError(name)
        return self._parameters[name]

    def has_parameter(self, name: str) -> bool:
        return name in self._parameters

    # -- Definitions and aliases -------------------------------------------

    @property
    def definitions(self) -> dict[str, Definition]:
        return dict(self._definitions)

    @property
    def aliases(self) -> dict[str, Alias]:
        return dict(self._aliases)

    def register(self, service_id: str, class_path: str | None = None) -> Definition:
        """Create, store and return a definition for *service_id*."""
        return self.set_definition(service_id, Definition(class_path=class_path))

    def set_definition(self, service_id: str, definition: Definition) -> Definition:
        self._ensure_open()
        self._aliases.pop(service_id, None)
        self._definitions[service_id] = definition
        return definition

    def has_definition(self, service_id: str) -> bool:
        return service_id in self._definitions

    def get_definition(self, service_id: str) -> Definition:
        try:
            return self._definitions[service_id]
        except KeyError:
            raise ServiceNotFoundError(service_id) from None

    def set_alias(self, alias: str, target: str | Alias) -> Alias:
        self._ensure_open()
        alias_obj = target if isinstance(target, Alias) else Alias(target=target)
        if alias == alias_obj.target:
            raise LoadError(f"An alias can not reference itself, got a circular reference on '{alias}'.")
        self._definitions.pop(alias, None)
        self._aliases[alias] = alias_obj
        return alias_obj

    def has(self, service_id: str) -> bool:
        return service_id in self._definitions or service_id in self._aliases

    def find_tagged_service_ids(self, tag: str) -> dict[str, list[dict[str, Any]]]:
        """Return ``service id -> tag attribute dicts`` for services tagged *tag*."""
        return {
            service_id: list(definition.tags[tag])
            for service_id, definition in self._definitions.items()
            if tag in definition.tags
        }

    # -- Extensions ---------------------------------------------------------

    @property
    def extensions(self) -> dict[str, Extension]:
        return dict(self._extensions)

    def register_extension(self, extension: Extension) -> None:
        self._ensure_open()
        self._extensions[extension.alias] = extension

    def has_extension(self, alias: str) -> bool:
        return alias in self._extensions

    def load_from_extension(self, alias: str, config: dict[str, Any] | None) -> None:
        """Queue a configuration block for the extension registered as *alias*."""
        self._ensure_open()
        if alias not in self._extensions:
            raise LoadError(
                f"There is no extension able to load the configuration for '{alias}'. "
                f"Looked for namespace '{alias}', found: "
                f"{', '.join(sorted(self._extensions)) or 'none'}."
            )
        self._extension_configs.setdefault(alias, []).append(dict(config or {}))

    def get_extension_config(self, alias: str) -> list[dict[str, Any]]:
        return list(self._extension_configs.get(alias, []))

    # -- Resources ----------------------------------------------------------

    @property
    def resources(self) -> list[Resource]:
        return list(self._resources.values())

    def add_resource(self, resource: Resource) -> None:
        self._resources[resource.key] = resource

    def add_source_resource(self, obj: object) -> None:
        """Track the source file of *obj*'s type."""
        resource = SourceResource.for_object(obj)
        if resource is None:
            logger.debug("No source file to track for %r.", obj)
            return
        self.add_resource(resource)

    def file_exists(self, path: str | Path, track_contents: bool = True) -> bool:
        """Return whether *path* exists, tracking the answer as a resource."""
        path = Path(path)
        exists = path.exists()
        if track_contents and path.is_file():
            self.add_resource(FileResource(path=str(path)))
        else:
            self.add_resource(FileExistenceResource(path=str(path), exists=exists))
        return exists

    # -- Compilation --------------------------------------------------------

    def add_compiler_pass(self, compiler_pass: CompilerPass, priority: int = 0) -> None:
        """Run *compiler_pass* after merging; higher priority runs first."""
        self._ensure_open()
        self._passes.append((priority, len(self._passes), compiler_pass))

    def set_merge_pass(self, merge_pass: CompilerPass) -> None:
        self._ensure_open()
        self._merge_pass = merge_pass

    def merge(self, other: ContainerBuilder, *, override: bool = True) -> None:
        """Fold *other* into this builder.

        With ``override=False`` existing parameters, definitions and aliases
        are kept and *other* only fills the gaps.
        """
        self._ensure_open()
        if override:
            self._parameters.update(other._parameters)
        else:
            self._parameters = {**other._parameters, **self._parameters}
        for service_id, definition in other._definitions.items():
            if override or not self.has(service_id):
                self.set_definition(service_id, definition)
        for alias, alias_obj in other._aliases.items():
            if override or not self.has(alias):
                self.set_alias(alias, alias_obj)
        for resource in other.resources:
            self.add_resource(resource)

    def compile(self) -> None:
        """Merge extension config, run all passes, then freeze.

        Raises
        ------
        ContainerConfigError
            Any subclass, raised by a pass that found the graph invalid.
        """
        from servicecontainer.core.passes import resolution_passes

        self._ensure_open()
        if self._merge_pass is not None:
            self._merge_pass.process(self)
        for _, _, compiler_pass in sorted(self._passes, key=lambda item: (-item[0], item[1])):
            compiler_pass.process(self)
        for compiler_pass in resolution_passes():
            compiler_pass.process(self)
        self._frozen = True
        logger.debug(
            "Compiled container builder: %d parameter(s), %d service(s), %d alias(es).",
            len(self._parameters),
            len(self._definitions),
            len(self._aliases),
        )
