"""ArtifactCompiler — bundles + config files + environment -> CompiledArtifact.

The compiler never touches the cache directory.  It seeds a
``ContainerBuilder`` with the ``kernel.*`` parameters, lets every bundle
register its extension and edit the builder, loads the YAML configuration,
compiles, and hands the frozen graph to the dumper.  Any graph or loader
error comes out as ``ConfigurationInvalidError`` with the original error
chained.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from pydantic import BaseModel, ConfigDict

from servicecontainer.bundles.bundle import Bundle
from servicecontainer.bundles.registry import BundleRegistry
from servicecontainer.config import ContainerSettings
from servicecontainer.core.builder import ContainerBuilder
from servicecontainer.core.dumper import PythonDumper
from servicecontainer.core.loader import FileLocator, YamlFileLoader
from servicecontainer.core.passes import MergeExtensionConfigurationPass
from servicecontainer.errors import ConfigurationInvalidError, ContainerConfigError
from servicecontainer.models.artifacts import CompiledArtifact

logger = logging.getLogger(__name__)

BUNDLES_FILE = "bundles.yaml"


def _escape(value: Any) -> Any:
    """Escape ``%`` so literal values survive placeholder resolution."""
    if isinstance(value, str):
        return value.replace("%", "%%")
    if isinstance(value, dict):
        return {key: _escape(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_escape(item) for item in value]
    return value


class EnvironmentParameters(BaseModel):
    """The ``kernel.*`` parameters every compiled container starts with."""

    model_config = ConfigDict(frozen=True)

    project_dir: str
    environment: str
    runtime_environment: str
    debug: bool
    build_dir: str
    cache_dir: str
    logs_dir: str
    bundles: dict[str, str]
    bundles_metadata: dict[str, dict[str, str]]
    charset: str
    container_class: str

    @classmethod
    def from_settings(cls, settings: ContainerSettings, registry: BundleRegistry) -> EnvironmentParameters:
        cache_dir = str(settings.resolved_cache_dir)
        return cls(
            project_dir=str(settings.resolved_project_dir),
            environment=settings.environment,
            runtime_environment=settings.environment,
            debug=settings.debug,
            build_dir=cache_dir,
            cache_dir=cache_dir,
            logs_dir=str(settings.resolved_log_dir),
            bundles=registry.bundle_types(),
            bundles_metadata=registry.bundle_metadata(),
            charset=settings.charset,
            container_class=settings.container_class,
        )

    def as_parameters(self) -> dict[str, Any]:
        """``kernel.<field> -> value``, escaped for placeholder resolution."""
        return {f"kernel.{name}": _escape(value) for name, value in self.model_dump().items()}


class ArtifactCompiler:
    """Compiles the registered bundles and configuration files.

    Parameters
    ----------
    settings:
        Supplies the config directory, environment, debug flag and
        container class name.
    owner:
        The object booting the container (usually the kernel).  Its source
        file is tracked so that editing it invalidates a debug cache.
    """

    def __init__(self, settings: ContainerSettings, owner: object | None = None) -> None:
        self._settings = settings
        self._owner = owner

    def build_container(self, bundles: Iterable[Bundle], env_params: EnvironmentParameters) -> ContainerBuilder:
        """Seed a builder and run every bundle's registration, in order."""
        builder = ContainerBuilder(env_params.as_parameters())
        if self._owner is not None:
            builder.add_source_resource(self._owner)

        aliases: list[str] = []
        for bundle in bundles:
            extension = bundle.get_container_extension()
            if extension is not None:
                builder.register_extension(extension)
                aliases.append(extension.alias)
            if self._settings.debug:
                builder.add_source_resource(bundle)
            bundle.build(builder)

        builder.set_merge_pass(MergeExtensionConfigurationPass(aliases))
        return builder

    def configure_container(self, builder: ContainerBuilder) -> None:
        """Load the YAML configuration into *builder*.

        Reads ``services.yaml``, ``parameters/<environment>.yaml`` and
        ``packages/*.yaml`` from the config directory.  The first two are
        optional; a package file that fails to load is skipped with a warning.

        Raises
        ------
        ConfigurationInvalidError
            If services.yaml or the parameters file is malformed, or the
            imports form a cycle.
        """
        config_dir = self._settings.resolved_config_dir
        loader = YamlFileLoader(builder, FileLocator(config_dir))
        try:
            loader.import_("services.yaml", "not_found")
            loader.import_(f"parameters/{self._settings.environment}.yaml", "not_found")
            loader.import_("packages/*.yaml", True)
        except ContainerConfigError as exc:
            raise ConfigurationInvalidError(f"Could not configure container: {exc}", exc) from exc
        builder.file_exists(config_dir / BUNDLES_FILE)

    def compile(self, bundles: Iterable[Bundle], env_params: EnvironmentParameters) -> CompiledArtifact:
        """Build, configure, compile and dump the container.

        Raises
        ------
        ConfigurationInvalidError
            Wrapping the ``ContainerConfigError`` that stopped compilation.
        """
        try:
            builder = self.build_container(bundles, env_params)
        except ContainerConfigError as exc:
            raise ConfigurationInvalidError(f"Could not register bundles: {exc}", exc) from exc

        self.configure_container(builder)

        try:
            builder.compile()
            artifact = PythonDumper(builder).dump(self._settings.container_class)
        except ContainerConfigError as exc:
            raise ConfigurationInvalidError(f"Could not compile container: {exc}", exc) from exc

        logger.info(
            "Compiled container %s: %d service(s), %d tracked resource(s).",
            artifact.type_name,
            len(builder.definitions),
            len(artifact.manifest.resources),
        )
        return artifact
