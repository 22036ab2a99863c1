"""YAML configuration loader.

Configuration files look like::

    imports:
      - { resource: parameters/common.yaml }
      - { resource: optional.yaml, ignore_errors: not_found }

    parameters:
      mailer.sender: noreply@example.com

    services:
      mailer:
        class: smtplib:SMTP
        arguments: ['%mailer.host%']
        public: true
      mailer.default: '@mailer'

    acme_mailer:            # any other key configures an extension
      transport: smtp

Every file read, every glob expanded and every missing optional file is
recorded on the builder as a resource, so a debug-mode cache notices when
any of them change.
"""

from __future__ import annotations

import glob
import logging
from pathlib import Path
from typing import Any, Literal, Union

import yaml

from servicecontainer.core.builder import ContainerBuilder
from servicecontainer.errors import (
    ContainerConfigError,
    ImportCircularReferenceError,
    LoadError,
)
from servicecontainer.models.definitions import Alias, Definition, MethodCall, Reference
from servicecontainer.models.resources import (
    FileExistenceResource,
    FileResource,
    GlobResource,
    glob_matches,
)

logger = logging.getLogger(__name__)

IgnoreErrors = Union[bool, Literal["not_found"]]

_RESERVED_KEYS = frozenset({"imports", "parameters", "services"})
_DEFINITION_KEYS = frozenset(
    {"class", "factory", "arguments", "calls", "public", "shared", "tags", "alias"}
)


class FileNotLocatedError(LoadError):
    """A configuration file could not be found in any search path."""


class FileLocator:
    """Finds configuration files relative to a set of base directories."""

    def __init__(self, paths: Path | list[Path]) -> None:
        self._paths = [paths] if isinstance(paths, Path) else list(paths)

    @property
    def paths(self) -> list[Path]:
        return list(self._paths)

    def locate(self, name: str, current_dir: Path | None = None) -> Path:
        """Return the absolute path of *name*.

        Raises
        ------
        FileNotLocatedError
            If *name* exists in neither *current_dir* nor the base paths.
        """
        candidate = Path(name)
        if candidate.is_absolute():
            if candidate.is_file():
                return candidate.resolve()
            raise FileNotLocatedError(f'The file "{name}" does not exist.')

        search = ([current_dir] if current_dir is not None else []) + self._paths
        for directory in search:
            path = directory / name
            if path.is_file():
                return path.resolve()
        raise FileNotLocatedError(
            f'The file "{name}" does not exist (in: {", ".join(str(d) for d in search)}).'
        )


class YamlFileLoader:
    """Loads YAML configuration files into a ``ContainerBuilder``.

    Parameters
    ----------
    builder:
        The builder receiving parameters, services and extension configs.
    locator:
        Resolves relative file names.
    """

    def __init__(self, builder: ContainerBuilder, locator: FileLocator) -> None:
        self._builder = builder
        self._locator = locator
        self._loading: list[Path] = []

    # -- Public API ---------------------------------------------------------

    def import_(
        self,
        resource: str,
        ignore_errors: IgnoreErrors = False,
        current_dir: Path | None = None,
    ) -> None:
        """Load *resource*, a file name or a glob pattern.

        Parameters
        ----------
        resource:
            Path relative to *current_dir* or the locator's base paths.
        ignore_errors:
            ``False``: every failure raises.  ``"not_found"``: a missing
            file is skipped.  ``True``: any load failure is skipped.  An
            import cycle always raises.

        Raises
        ------
        ImportCircularReferenceError
            If *resource* is already being loaded further up the import chain.
        LoadError
            If the file is missing or malformed and not ignored.
        """
        if glob.has_magic(resource):
            self._import_glob(resource, ignore_errors, current_dir)
            return

        try:
            path = self._locator.locate(resource, current_dir)
        except FileNotLocatedError:
            base = current_dir or (self._locator.paths[0] if self._locator.paths else Path("."))
            self._builder.add_resource(
                FileExistenceResource(path=str((base / resource).resolve()), exists=False)
            )
            if ignore_errors:
                logger.debug("Skipping missing optional configuration file %s.", resource)
                return
            raise
        self._load_tolerant(path, ignore_errors)

    # -- Internal helpers ---------------------------------------------------

    def _import_glob(
        self,
        pattern: str,
        ignore_errors: IgnoreErrors,
        current_dir: Path | None,
    ) -> None:
        base = current_dir or (self._locator.paths[0] if self._locator.paths else Path("."))
        parts = Path(pattern).parts
        static = parts[: next(i for i, part in enumerate(parts) if glob.has_magic(part))]
        prefix = (base.joinpath(*static) if static else base).resolve()
        rest = "/".join(parts[len(static):])

        matches = glob_matches(prefix, rest)
        self._builder.add_resource(GlobResource(prefix=str(prefix), pattern=rest, matches=matches))
        if not prefix.is_dir() and not ignore_errors:
            raise LoadError(f'The directory "{prefix}" does not exist for pattern "{pattern}".')
        for match in matches:
            self._load_tolerant(prefix / match, ignore_errors)

    def _load_tolerant(self, path: Path, ignore_errors: IgnoreErrors) -> None:
        try:
            self._load_file(path)
        except ImportCircularReferenceError:
            raise
        except LoadError:
            if ignore_errors is not True:
                raise
            logger.warning("Ignoring configuration file %s that failed to load.", path, exc_info=True)

    def _load_file(self, path: Path) -> None:
        if path in self._loading:
            chain = [str(p) for p in self._loading[self._loading.index(path):]] + [str(path)]
            raise ImportCircularReferenceError(chain)

        self._loading.append(path)
        try:
            self._builder.add_resource(FileResource(path=str(path)))
            content = self._parse(path)
            if content is None:
                return
            self._apply(content, path)
        finally:
            self._loading.pop()
        logger.debug("Loaded configuration file %s.", path)

    def _parse(self, path: Path) -> dict[str, Any] | None:
        try:
            content = yaml.safe_load(path.read_text(encoding="utf-8"))
        except OSError as exc:
            raise LoadError(f'Unable to read "{path}": {exc}') from exc
        except yaml.YAMLError as exc:
            raise LoadError(f'The file "{path}" does not contain valid YAML: {exc}') from exc
        if content is not None and not isinstance(content, dict):
            raise LoadError(f'The service file "{path}" is not valid. It should contain a mapping.')
        return content

    def _apply(self, content: dict[str, Any], path: Path) -> None:
        for key in content:
            if key not in _RESERVED_KEYS and not self._builder.has_extension(key):
                raise LoadError(
                    f'There is no extension able to load the configuration for "{key}" '
                    f'(in "{path}"). Looked for namespace "{key}", found: '
                    f'{", ".join(sorted(self._builder.extensions)) or "none"}.'
                )

        self._parse_imports(content.get("imports"), path)

        parameters = content.get("parameters") or {}
        if not isinstance(parameters, dict):
            raise LoadError(f'The "parameters" key should contain a mapping in "{path}".')
        for name, value in parameters.items():
            self._builder.set_parameter(str(name), value)

        services = content.get("services") or {}
        if not isinstance(services, dict):
            raise LoadError(f'The "services" key should contain a mapping in "{path}".')
        for service_id, spec in services.items():
            self._parse_service(str(service_id), spec, path)

        for key, value in content.items():
            if key in _RESERVED_KEYS:
                continue
            if value is not None and not isinstance(value, dict):
                raise LoadError(f'The configuration for "{key}" in "{path}" should be a mapping.')
            self._builder.load_from_extension(key, value or {})

    def _parse_imports(self, imports: Any, path: Path) -> None:
        if imports is None:
            return
        if not isinstance(imports, list):
            raise LoadError(f'The "imports" key should contain a list in "{path}".')
        for item in imports:
            if isinstance(item, str):
                item = {"resource": item}
            if not isinstance(item, dict) or "resource" not in item:
                raise LoadError(f'An import should provide a resource in "{path}".')
            ignore = item.get("ignore_errors", False)
            if ignore not in (True, False, "not_found"):
                raise LoadError(
                    f'Invalid ignore_errors value "{ignore}" in "{path}"; '
                    f'expected true, false or "not_found".'
                )
            self.import_(str(item["resource"]), ignore, current_dir=path.parent)

    def _parse_service(self, service_id: str, spec: Any, path: Path) -> None:
        if isinstance(spec, str) and spec.startswith("@"):
            self._builder.set_alias(service_id, spec[1:])
            return
        if spec is None:
            spec = {}
        if not isinstance(spec, dict):
            raise LoadError(
                f'A service definition must be a mapping or an "@" alias; '
                f'got {type(spec).__name__} for "{service_id}" in "{path}".'
            )
        unknown = set(spec) - _DEFINITION_KEYS
        if unknown:
            raise LoadError(
                f'Invalid key(s) {", ".join(sorted(map(str, unknown)))} for service '
                f'"{service_id}" in "{path}". Allowed: {", ".join(sorted(_DEFINITION_KEYS))}.'
            )

        if "alias" in spec:
            self._builder.set_alias(
                service_id,
                Alias(target=str(spec["alias"]), public=bool(spec.get("public", True))),
            )
            return

        arguments = spec.get("arguments", [])
        if not isinstance(arguments, (list, dict)):
            raise LoadError(f'The "arguments" of service "{service_id}" must be a list or mapping.')

        try:
            definition = Definition(
                class_path=spec.get("class"),
                factory=spec.get("factory"),
                arguments=_parse_value(arguments),
                calls=[_parse_call(call, service_id) for call in spec.get("calls") or []],
                public=spec.get("public", True),
                shared=spec.get("shared", True),
                tags=_parse_tags(spec.get("tags") or [], service_id),
            )
        except ContainerConfigError:
            raise
        except ValueError as exc:
            raise LoadError(f'Invalid definition for service "{service_id}" in "{path}": {exc}') from exc
        self._builder.set_definition(service_id, definition)


def _parse_value(value: Any) -> Any:
    """Turn ``@id`` / ``@?id`` strings into references; ``@@`` escapes ``@``."""
    if isinstance(value, str) and value.startswith("@"):
        if value.startswith("@@"):
            return value[1:]
        if value.startswith("@?"):
            return Reference(id=value[2:], optional=True)
        return Reference(id=value[1:])
    if isinstance(value, list):
        return [_parse_value(item) for item in value]
    if isinstance(value, dict):
        return {key: _parse_value(item) for key, item in value.items()}
    return value


def _parse_call(call: Any, service_id: str) -> MethodCall:
    if isinstance(call, dict) and "method" in call:
        return MethodCall(method=str(call["method"]), arguments=_parse_value(call.get("arguments") or []))
    if isinstance(call, list) and call and isinstance(call[0], str):
        arguments = call[1] if len(call) > 1 else []
        return MethodCall(method=call[0], arguments=_parse_value(arguments))
    raise LoadError(f'Invalid method call for service "{service_id}": {call!r}.')


def _parse_tags(tags: Any, service_id: str) -> dict[str, list[dict[str, Any]]]:
    if not isinstance(tags, list):
        raise LoadError(f'The "tags" of service "{service_id}" must be a list.')
    parsed: dict[str, list[dict[str, Any]]] = {}
    for tag in tags:
        if isinstance(tag, str):
            tag = {"name": tag}
        if not isinstance(tag, dict) or "name" not in tag:
            raise LoadError(f'A tag of service "{service_id}" is missing its "name".')
        attributes = {key: value for key, value in tag.items() if key != "name"}
        parsed.setdefault(str(tag["name"]), []).append(attributes)
    return parsed
