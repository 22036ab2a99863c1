"""Bundle and extension base classes.

A bundle is a named unit that contributes to the compiled container in two
ways: its ``build`` callback edits the builder directly, and its optional
extension turns configuration blocks (``<alias>: {...}`` in the YAML files)
into parameters and service definitions during the merge pass.
"""

from __future__ import annotations

import inspect
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from servicecontainer.core.builder import ContainerBuilder

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


class Extension(ABC):
    """Loads the configuration blocks addressed to one alias.

    Subclasses implement :meth:`load`.  The alias defaults to the snake_cased
    class name with any ``Extension`` suffix removed (``AcmeMailerExtension``
    -> ``acme_mailer``).
    """

    alias_name: ClassVar[str | None] = None

    @property
    def alias(self) -> str:
        if self.alias_name:
            return self.alias_name
        name = type(self).__name__.removesuffix("Extension")
        return _CAMEL_BOUNDARY.sub("_", name).lower()

    @abstractmethod
    def load(self, configs: list[dict[str, Any]], builder: ContainerBuilder) -> None:
        """Register parameters and services from *configs* (in load order)."""

    @staticmethod
    def merge_configs(configs: list[dict[str, Any]]) -> dict[str, Any]:
        """Shallow-merge config blocks; later blocks win per key."""
        merged: dict[str, Any] = {}
        for config in configs:
            merged.update(config or {})
        return merged


class Bundle:
    """Base class for container contributors.

    Attributes
    ----------
    name:
        Unique bundle name.  Defaults to the class name.
    extension_class:
        Optional ``Extension`` subclass instantiated by
        :meth:`get_container_extension`.
    """

    name: ClassVar[str | None] = None
    extension_class: ClassVar[type[Extension] | None] = None

    def get_name(self) -> str:
        return self.name or type(self).__name__

    def get_path(self) -> str:
        """Directory containing the module that defines this bundle."""
        source = inspect.getsourcefile(type(self)) or inspect.getfile(type(self))
        return str(Path(source).resolve().parent)

    def get_namespace(self) -> str:
        module = type(self).__module__
        return module.rpartition(".")[0] or module

    def get_type_path(self) -> str:
        return f"{type(self).__module__}:{type(self).__qualname__}"

    def get_container_extension(self) -> Extension | None:
        if self.extension_class is None:
            return None
        return self.extension_class()

    def build(self, builder: ContainerBuilder) -> None:
        """Edit the builder before configuration files are merged."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.get_name()!r})"
