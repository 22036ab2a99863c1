"""Compiler passes run by ``ContainerBuilder.compile()``.

Order of a compile:

1. ``MergeExtensionConfigurationPass`` — every extension turns its queued
   config blocks into parameters/services, in bundle registration order.
2. Bundle-registered passes, by descending priority.
3. ``resolution_passes()``: parameter placeholders, definition checks,
   alias/reference resolution, constructor cycle detection.
"""

from __future__ import annotations

import keyword
import logging
import re
from collections.abc import Iterable
from typing import TYPE_CHECKING, Any

from servicecontainer.errors import (
    ContainerConfigError,
    InvalidDefinitionError,
    ParameterCircularReferenceError,
    ParameterNotFoundError,
    ServiceCircularReferenceError,
    ServiceCollisionError,
    ServiceNotFoundError,
)
from servicecontainer.models.definitions import (
    IMPORT_PATH_PATTERN,
    Alias,
    Definition,
    MethodCall,
    Reference,
)

if TYPE_CHECKING:
    from servicecontainer.core.builder import CompilerPass, ContainerBuilder

logger = logging.getLogger(__name__)

_PLACEHOLDER = re.compile(r"%%|%([^%\s]+)%")
_FULL_PLACEHOLDER = re.compile(r"%([^%\s]+)%")


# ---------------------------------------------------------------------------
# Merge
# ---------------------------------------------------------------------------


class MergeExtensionConfigurationPass:
    """Load every extension's configuration into the builder.

    Extensions named in *aliases* are loaded even when no file configured
    them.  Each extension loads into its own scratch builder.  Two
    extensions defining the same service id is an error; for parameters
    the later extension wins.  Whatever the builder already holds (from
    bundle ``build`` callbacks and the YAML files) takes precedence over
    extension output.
    """

    def __init__(self, aliases: Iterable[str]) -> None:
        self._aliases = list(aliases)

    def process(self, builder: ContainerBuilder) -> None:
        for alias in self._aliases:
            if not builder.get_extension_config(alias):
                builder.load_from_extension(alias, {})

        staged = type(builder)()
        owners: dict[str, str] = {}
        for alias, extension in builder.extensions.items():
            configs = builder.get_extension_config(alias)
            if not configs:
                continue
            scratch = type(builder)(builder.parameters)
            try:
                extension.load(configs, scratch)
            except ContainerConfigError:
                raise
            except Exception as exc:
                raise InvalidDefinitionError(
                    f"Extension '{alias}' could not load its configuration: {exc}"
                ) from exc

            for service_id in [*scratch.definitions, *scratch.aliases]:
                if service_id in owners:
                    raise ServiceCollisionError(
                        f"Service '{service_id}' is defined by both the "
                        f"'{owners[service_id]}' and '{alias}' extensions."
                    )
                owners[service_id] = alias
            staged.merge(scratch)
            logger.debug("Loaded extension '%s' from %d config block(s).", alias, len(configs))

        builder.merge(staged, override=False)


# ---------------------------------------------------------------------------
# Parameters
# ---------------------------------------------------------------------------


class ParameterResolver:
    """Resolves ``%name%`` placeholders against a parameter table."""

    def __init__(self, parameters: dict[str, Any]) -> None:
        self._raw = parameters
        self._resolved: dict[str, Any] = {}

    def resolve_all(self) -> dict[str, Any]:
        return {name: self.resolve_parameter(name, [], None) for name in self._raw}

    def resolve_parameter(self, name: str, chain: list[str], source: str | None) -> Any:
        if name in self._resolved:
            return self._resolved[name]
        if name not in self._raw:
            raise ParameterNotFoundError(name, source)
        if name in chain:
            raise ParameterCircularReferenceError([*chain[chain.index(name):], name])
        value = self.resolve_value(self._raw[name], [*chain, name], f"parameter '{name}'")
        self._resolved[name] = value
        return value

    def resolve_value(self, value: Any, chain: list[str], source: str | None) -> Any:
        if isinstance(value, str):
            return self._resolve_string(value, chain, source)
        if isinstance(value, list):
            return [self.resolve_value(item, chain, source) for item in value]
        if isinstance(value, dict):
            return {
                self.resolve_value(key, chain, source): self.resolve_value(item, chain, source)
                for key, item in value.items()
            }
        return value

    def _resolve_string(self, value: str, chain: list[str], source: str | None) -> Any:
        match = _FULL_PLACEHOLDER.fullmatch(value)
        if match:
            return self.resolve_parameter(match.group(1), chain, source)

        def substitute(m: re.Match[str]) -> str:
            if m.group(0) == "%%":
                return "%"
            resolved = self.resolve_parameter(m.group(1), chain, source)
            if isinstance(resolved, bool) or not isinstance(resolved, (str, int, float)):
                raise InvalidDefinitionError(
                    f"A string value must be composed of strings and/or numbers, but found "
                    f"parameter '{m.group(1)}' of type {type(resolved).__name__} inside "
                    f"string value '{value}'."
                )
            return str(resolved)

        return _PLACEHOLDER.sub(substitute, value)


class ResolveParameterPlaceholdersPass:
    """Replace placeholders in parameters and service definitions."""

    def process(self, builder: ContainerBuilder) -> None:
        resolver = ParameterResolver(builder.parameters)
        builder.add_parameters(resolver.resolve_all())

        for service_id, definition in builder.definitions.items():
            source = f"service '{service_id}'"
            for attr in ("class_path", "factory"):
                value = getattr(definition, attr)
                if value is not None:
                    setattr(definition, attr, resolver.resolve_value(value, [], source))
            definition.arguments = resolver.resolve_value(definition.arguments, [], source)
            definition.calls = [
                MethodCall(
                    method=call.method,
                    arguments=resolver.resolve_value(call.arguments, [], source),
                )
                for call in definition.calls
            ]


# ---------------------------------------------------------------------------
# Definitions and references
# ---------------------------------------------------------------------------


class CheckDefinitionsPass:
    """Every service needs an importable ``module:attr`` constructor.

    A definition without class or factory falls back to its id, which then
    has to look like an import path.
    """

    def process(self, builder: ContainerBuilder) -> None:
        for service_id, definition in builder.definitions.items():
            if definition.constructor is None:
                if not IMPORT_PATH_PATTERN.match(service_id):
                    raise InvalidDefinitionError(
                        f"The definition for '{service_id}' has no class. Set 'class' to a "
                        f"'module:attr' import path, or use it as the service id."
                    )
                definition.class_path = service_id
            constructor = definition.constructor
            if not isinstance(constructor, str) or not IMPORT_PATH_PATTERN.match(constructor):
                raise InvalidDefinitionError(
                    f"Service '{service_id}' has an invalid class or factory "
                    f"'{constructor}'; expected 'module:attr'."
                )
            for call in definition.calls:
                if not call.method.isidentifier() or keyword.iskeyword(call.method):
                    raise InvalidDefinitionError(
                        f"Service '{service_id}' calls invalid method name '{call.method}'."
                    )


class ResolveReferencesPass:
    """Point aliases and references at concrete definitions.

    Missing optional references become ``None``; missing required ones fail.
    """

    def process(self, builder: ContainerBuilder) -> None:
        aliases = builder.aliases
        targets = {alias: self._resolve_alias(alias, aliases, builder, []) for alias in aliases}
        for alias, target in targets.items():
            builder.set_alias(alias, Alias(target=target, public=aliases[alias].public))

        for service_id, definition in builder.definitions.items():
            definition.arguments = self._resolve(definition.arguments, service_id, builder, targets)
            definition.calls = [
                MethodCall(
                    method=call.method,
                    arguments=self._resolve(call.arguments, service_id, builder, targets),
                )
                for call in definition.calls
            ]

    def _resolve_alias(
        self,
        alias: str,
        aliases: dict[str, Alias],
        builder: ContainerBuilder,
        chain: list[str],
    ) -> str:
        if alias in chain:
            raise ServiceCircularReferenceError([*chain[chain.index(alias):], alias])
        target = aliases[alias].target
        if target in aliases:
            return self._resolve_alias(target, aliases, builder, [*chain, alias])
        if not builder.has_definition(target):
            raise ServiceNotFoundError(target, alias)
        return target

    def _resolve(
        self,
        value: Any,
        service_id: str,
        builder: ContainerBuilder,
        targets: dict[str, str],
    ) -> Any:
        if isinstance(value, Reference):
            target = targets.get(value.id, value.id)
            if builder.has_definition(target):
                return Reference(id=target)
            if value.optional:
                return None
            raise ServiceNotFoundError(value.id, service_id)
        if isinstance(value, list):
            return [self._resolve(item, service_id, builder, targets) for item in value]
        if isinstance(value, dict):
            return {
                key: self._resolve(item, service_id, builder, targets)
                for key, item in value.items()
            }
        return value


def constructor_references(definition: Definition) -> list[str]:
    """Service ids a definition needs before it can be constructed."""
    found: list[str] = []

    def walk(value: Any) -> None:
        if isinstance(value, Reference):
            found.append(value.id)
        elif isinstance(value, list):
            for item in value:
                walk(item)
        elif isinstance(value, dict):
            for item in value.values():
                walk(item)

    walk(definition.arguments)
    return found


class CheckCircularReferencesPass:
    """Reject services that need each other to be constructed.

    Method-call references are not edges: a shared service is registered
    before its calls run, so setter injection may close a loop.
    """

    def process(self, builder: ContainerBuilder) -> None:
        graph = {
            service_id: constructor_references(definition)
            for service_id, definition in builder.definitions.items()
        }
        done: set[str] = set()

        def visit(service_id: str, path: list[str]) -> None:
            if service_id in path:
                raise ServiceCircularReferenceError([*path[path.index(service_id):], service_id])
            if service_id in done:
                return
            for dependency in graph.get(service_id, []):
                visit(dependency, [*path, service_id])
            done.add(service_id)

        for service_id in graph:
            visit(service_id, [])


def resolution_passes() -> list[CompilerPass]:
    """The passes every compile ends with, in order."""
    return [
        ResolveParameterPlaceholdersPass(),
        CheckDefinitionsPass(),
        ResolveReferencesPass(),
        CheckCircularReferencesPass(),
    ]
