"""Runtime base class for generated containers.

A generation directory holds one subclass of ``CompiledContainer`` plus one
factory module per service.  Factory modules are executed the first time
their service is requested, so booting a cached container costs one module
execution regardless of graph size.
"""

from __future__ import annotations

import importlib.util
from pathlib import Path
from types import ModuleType
from typing import Any, ClassVar

from servicecontainer.errors import (
    CacheLoadCorruptError,
    ParameterNotFoundError,
    ServiceCircularReferenceError,
    ServiceNotFoundError,
)


def _exec_module(name: str, path: Path) -> ModuleType:
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise CacheLoadCorruptError(f"Cannot load generated module {path}.")
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class CompiledContainer:
    """A compiled, read-only service container.

    Generated subclasses fill in the class attributes; the base class only
    knows how to find and run factory modules.
    """

    PARAMETERS: ClassVar[dict[str, Any]] = {}
    SERVICE_FILES: ClassVar[dict[str, str]] = {}
    ALIASES: ClassVar[dict[str, str]] = {}
    PUBLIC_IDS: ClassVar[tuple[str, ...]] = ()
    SERVICE_INFO: ClassVar[dict[str, dict[str, Any]]] = {}

    def __init__(self, generation_dir: Path) -> None:
        self._generation_dir = Path(generation_dir)
        self._services: dict[str, Any] = {}
        self._factories: dict[str, ModuleType] = {}
        self._loading: list[str] = []

    # -- Identity -----------------------------------------------------------

    @property
    def generation(self) -> str:
        return type(self).__module__

    @property
    def generation_dir(self) -> Path:
        return self._generation_dir

    @property
    def type_name(self) -> str:
        return f"{type(self).__module__}.{type(self).__qualname__}"

    # -- Services -----------------------------------------------------------

    def get(self, service_id: str) -> Any:
        """Return the public service *service_id*.

        Raises
        ------
        ServiceNotFoundError
            If no public service or alias has that id.
        """
        if service_id not in self.PUBLIC_IDS:
            raise ServiceNotFoundError(service_id)
        return self.get_service(self.ALIASES.get(service_id, service_id))

    def has(self, service_id: str) -> bool:
        return service_id in self.PUBLIC_IDS

    def initialized(self, service_id: str) -> bool:
        return self.ALIASES.get(service_id, service_id) in self._services

    def service_ids(self) -> list[str]:
        return sorted(self.PUBLIC_IDS)

    def describe(self, service_id: str) -> dict[str, Any]:
        """Constructor and flags recorded for *service_id* (aliases resolved)."""
        target = self.ALIASES.get(service_id, service_id)
        if target not in self.SERVICE_INFO:
            raise ServiceNotFoundError(service_id)
        return dict(self.SERVICE_INFO[target])

    def get_service(self, service_id: str) -> Any:
        """Build or return *service_id*, public or not.  Used by factories."""
        if service_id in self._services:
            return self._services[service_id]
        if service_id in self._loading:
            raise ServiceCircularReferenceError(
                [*self._loading[self._loading.index(service_id):], service_id]
            )
        try:
            file_name = self.SERVICE_FILES[service_id]
        except KeyError:
            raise ServiceNotFoundError(service_id) from None

        factory = self._factories.get(file_name)
        if factory is None:
            factory = _exec_module(
                f"{self.generation}.{Path(file_name).stem}",
                self._generation_dir / file_name,
            )
            self._factories[file_name] = factory

        self._loading.append(service_id)
        try:
            return factory.build(self)
        finally:
            self._loading.pop()

    def share(self, service_id: str, instance: Any) -> Any:
        """Remember a shared instance before its method calls run."""
        self._services[service_id] = instance
        return instance

    # -- Parameters ---------------------------------------------------------

    @property
    def parameters(self) -> dict[str, Any]:
        return dict(self.PARAMETERS)

    def get_parameter(self, name: str) -> Any:
        if name not in self.PARAMETERS:
            raise ParameterNotFoundError(name)
        return self.PARAMETERS[name]

    def has_parameter(self, name: str) -> bool:
        return name in self.PARAMETERS

    def __repr__(self) -> str:
        return f"<{self.type_name} services={len(self.SERVICE_FILES)}>"


def load_generation(entry_file: str | Path, generation: str, class_name: str) -> CompiledContainer:
    """Instantiate *class_name* from the generation directory next to *entry_file*.

    Called by generated entry files.

    Raises
    ------
    CacheLoadCorruptError
        If the generation directory or its container module is missing, or
        does not define a ``CompiledContainer`` subclass.
    """
    generation_dir = Path(entry_file).resolve().parent / generation
    path = generation_dir / f"{class_name}.py"
    if not path.is_file():
        raise CacheLoadCorruptError(f"Generated container {path} is missing.")
    module = _exec_module(generation, path)
    container_class = getattr(module, class_name, None)
    if not isinstance(container_class, type) or not issubclass(container_class, CompiledContainer):
        raise CacheLoadCorruptError(f"{path} does not define container class {class_name}.")
    return container_class(generation_dir)
