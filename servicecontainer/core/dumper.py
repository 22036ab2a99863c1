"""PythonDumper — renders a compiled builder as Python source files.

Output layout, relative to the cache directory::

    ServiceContainer.py                         entry file, written last
    Container<digest>/ServiceContainer.py       CompiledContainer subclass
    Container<digest>/get_<service>_service.py  one factory per service

The digest is computed over the generated files, so the same graph always
lands in the same generation directory with byte-identical content.
"""

from __future__ import annotations

import datetime
import keyword
import math
import re
from typing import Any

from servicecontainer.core.builder import ContainerBuilder
from servicecontainer.core.hasher import generation_name
from servicecontainer.errors import InvalidDefinitionError
from servicecontainer.models.artifacts import CompiledArtifact
from servicecontainer.models.definitions import Definition, Reference
from servicecontainer.models.resources import ResourceManifest

HEADER = "# This file has been auto-generated by servicecontainer. Do not edit.\n"

_NON_WORD = re.compile(r"\W+")


def export(value: Any) -> str:
    """Render *value* as a Python expression evaluated inside a factory."""
    if isinstance(value, Reference):
        return f"container.get_service({value.id!r})"
    if value is None or isinstance(value, (bool, int, str)):
        return repr(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise InvalidDefinitionError(f"Unable to dump non-finite float {value!r}.")
        return repr(value)
    # datetime is a date subclass, so it goes first.
    if isinstance(value, datetime.datetime):
        return f"datetime.datetime.fromisoformat({value.isoformat()!r})"
    if isinstance(value, datetime.date):
        return f"datetime.date.fromisoformat({value.isoformat()!r})"
    if isinstance(value, list):
        return "[" + ", ".join(export(item) for item in value) + "]"
    if isinstance(value, dict):
        items = []
        for key, item in value.items():
            if isinstance(key, (Reference, list, dict)):
                raise InvalidDefinitionError(f"Unable to dump mapping key {key!r}.")
            items.append(f"{export(key)}: {export(item)}")
        return "{" + ", ".join(items) + "}"
    raise InvalidDefinitionError(
        f"Unable to dump a value of type {type(value).__name__}; only None, bool, int, "
        f"float, str, dates, lists, mappings and service references are supported."
    )


class PythonDumper:
    """Dumps a frozen ``ContainerBuilder`` into a ``CompiledArtifact``."""

    def __init__(self, builder: ContainerBuilder) -> None:
        if not builder.frozen:
            raise RuntimeError("Cannot dump an uncompiled container.")
        self._builder = builder

    def dump(self, class_name: str = "ServiceContainer") -> CompiledArtifact:
        """Render the graph.

        Raises
        ------
        InvalidDefinitionError
            If *class_name* is not an identifier, or a parameter or argument
            holds a value that has no Python literal form.
        """
        if not class_name.isidentifier():
            raise InvalidDefinitionError(f"Container class name '{class_name}' is not an identifier.")

        definitions = dict(sorted(self._builder.definitions.items()))
        service_files = self._factory_file_names(list(definitions))

        files: dict[str, str] = {
            service_files[service_id]: self._dump_factory(service_id, definition)
            for service_id, definition in definitions.items()
        }
        files[f"{class_name}.py"] = self._dump_container_class(class_name, service_files)

        generation = generation_name(class_name, files)
        return CompiledArtifact(
            class_name=class_name,
            generation=generation,
            entry_code=self._dump_entry(class_name, generation),
            files={f"{generation}/{name}": code for name, code in sorted(files.items())},
            manifest=ResourceManifest(resources=self._builder.resources),
        )

    # -- Internal helpers ---------------------------------------------------

    @staticmethod
    def _factory_file_names(service_ids: list[str]) -> dict[str, str]:
        names: dict[str, str] = {}
        taken: set[str] = set()
        for service_id in service_ids:
            slug = _NON_WORD.sub("_", service_id).strip("_").lower() or "service"
            name = f"get_{slug}_service.py"
            counter = 2
            while name in taken:
                name = f"get_{slug}_{counter}_service.py"
                counter += 1
            taken.add(name)
            names[service_id] = name
        return names

    def _dump_factory(self, service_id: str, definition: Definition) -> str:
        module, _, attr = (definition.constructor or "").partition(":")
        arguments = self._dump_arguments(service_id, definition.arguments)

        lines = [
            HEADER,
            "import datetime",
            f"import {module} as _module",
            "",
            "",
            "def build(container):",
            f"    instance = _module.{attr}({arguments})",
        ]
        if definition.shared:
            lines.append(f"    container.share({service_id!r}, instance)")
        for call in definition.calls:
            call_args = self._dump_arguments(service_id, call.arguments)
            lines.append(f"    instance.{call.method}({call_args})")
        lines.append("    return instance")
        return "\n".join(lines) + "\n"

    @staticmethod
    def _dump_arguments(service_id: str, arguments: list[Any] | dict[str, Any]) -> str:
        if isinstance(arguments, dict):
            rendered = []
            for name, value in arguments.items():
                if not isinstance(name, str) or not name.isidentifier() or keyword.iskeyword(name):
                    raise InvalidDefinitionError(
                        f"Service '{service_id}' has invalid keyword argument name {name!r}."
                    )
                rendered.append(f"{name}={export(value)}")
            return ", ".join(rendered)
        return ", ".join(export(value) for value in arguments)

    def _dump_container_class(self, class_name: str, service_files: dict[str, str]) -> str:
        definitions = self._builder.definitions
        aliases = dict(sorted(self._builder.aliases.items()))
        public_ids = sorted(
            [sid for sid, definition in definitions.items() if definition.public]
            + [alias for alias, alias_obj in aliases.items() if alias_obj.public]
        )
        parameters = dict(sorted(self._builder.parameters.items()))

        lines = [
            HEADER,
            "import datetime",
            "",
            "from servicecontainer.runtime.container import CompiledContainer",
            "",
            "",
            f"class {class_name}(CompiledContainer):",
            "    PARAMETERS = {",
            *(f"        {name!r}: {export(value)}," for name, value in parameters.items()),
            "    }",
            "    SERVICE_FILES = {",
            *(f"        {sid!r}: {name!r}," for sid, name in service_files.items()),
            "    }",
            "    ALIASES = {",
            *(f"        {alias!r}: {alias_obj.target!r}," for alias, alias_obj in aliases.items()),
            "    }",
            "    PUBLIC_IDS = (",
            *(f"        {sid!r}," for sid in public_ids),
            "    )",
            "    SERVICE_INFO = {",
            *(
                f"        {sid!r}: {export(self._service_info(definition))},"
                for sid, definition in sorted(definitions.items())
            ),
            "    }",
        ]
        return "\n".join(lines) + "\n"

    @staticmethod
    def _service_info(definition: Definition) -> dict[str, Any]:
        return {
            "constructor": definition.constructor,
            "public": definition.public,
            "shared": definition.shared,
            "tags": sorted(definition.tags),
        }

    @staticmethod
    def _dump_entry(class_name: str, generation: str) -> str:
        return (
            f"{HEADER}"
            "from servicecontainer.runtime.container import load_generation\n"
            "\n"
            f"container = load_generation(__file__, {generation!r}, {class_name!r})\n"
        )
