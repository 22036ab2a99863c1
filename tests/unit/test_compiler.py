"""Tests for ArtifactCompiler and the kernel environment parameters."""

from __future__ import annotations

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from conftest import CoreBundle, MailerBundle
from servicecontainer.bundles.registry import BundleRegistry
from servicecontainer.config import ContainerSettings
from servicecontainer.core.compiler import ArtifactCompiler, EnvironmentParameters
from servicecontainer.errors import (
    ConfigurationInvalidError,
    ImportCircularReferenceError,
    ServiceNotFoundError,
)
from servicecontainer.models.resources import FileExistenceResource, FileResource, GlobResource, SourceResource

WriteFile = Callable[[Path, str], Path]


def _env_params(settings: ContainerSettings, *bundles: Any) -> EnvironmentParameters:
    registry = BundleRegistry()
    registry.register(bundles)
    return EnvironmentParameters.from_settings(settings, registry)


class TestEnvironmentParameters:
    def test_kernel_parameters(self, make_settings: Callable[..., ContainerSettings], project_dir: Path):
        settings = make_settings(environment_type="development")
        parameters = _env_params(settings, CoreBundle()).as_parameters()
        assert parameters["kernel.environment"] == "dev"
        assert parameters["kernel.runtime_environment"] == "dev"
        assert parameters["kernel.debug"] is True
        assert parameters["kernel.project_dir"] == str(project_dir.resolve())
        assert parameters["kernel.cache_dir"] == parameters["kernel.build_dir"]
        assert parameters["kernel.bundles"] == {"core": "conftest:CoreBundle"}
        assert set(parameters["kernel.bundles_metadata"]["core"]) == {"path", "namespace"}
        assert parameters["kernel.charset"] == "UTF-8"
        assert parameters["kernel.container_class"] == "ServiceContainer"

    def test_percent_signs_are_escaped(self, tmp_path: Path):
        settings = ContainerSettings(project_dir=tmp_path / "100%")
        parameters = _env_params(settings).as_parameters()
        assert parameters["kernel.project_dir"].endswith("100%%")


class TestArtifactCompiler:
    def test_compiles_bundles_and_config(self, make_settings: Callable[..., ContainerSettings]):
        settings = make_settings()
        bundles = [CoreBundle(), MailerBundle()]
        artifact = ArtifactCompiler(settings).compile(bundles, _env_params(settings, *bundles))
        container_source = artifact.files[f"{artifact.generation}/ServiceContainer.py"]
        for service_id in ("app.config", "core.settings", "mailer.transport"):
            assert repr(service_id) in container_source

    def test_tracks_config_resources(self, make_settings: Callable[..., ContainerSettings], project_dir: Path):
        settings = make_settings()
        artifact = ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))
        keys = {r.key for r in artifact.manifest.resources}
        config = (project_dir / "config").resolve()
        assert f"file:{config / 'services.yaml'}" in keys
        assert f"file_existence:{config / 'parameters' / 'production.yaml'}" in keys
        assert any(isinstance(r, GlobResource) for r in artifact.manifest.resources)
        assert f"file:{settings.resolved_config_dir / 'bundles.yaml'}" in keys

    def test_bundle_sources_tracked_only_in_debug(self, make_settings: Callable[..., ContainerSettings]):
        def sources(settings: ContainerSettings) -> set[str]:
            bundle = CoreBundle()
            artifact = ArtifactCompiler(settings).compile([bundle], _env_params(settings, bundle))
            return {r.type_name for r in artifact.manifest.resources if isinstance(r, SourceResource)}

        assert "conftest.CoreBundle" not in sources(make_settings())
        assert "conftest.CoreBundle" in sources(make_settings(environment_type="local"))

    def test_owner_source_is_tracked(self, make_settings: Callable[..., ContainerSettings]):
        settings = make_settings()
        compiler = ArtifactCompiler(settings, owner=MailerBundle())
        artifact = compiler.compile([CoreBundle()], _env_params(settings, CoreBundle()))
        assert any(
            isinstance(r, SourceResource) and r.type_name == "conftest.MailerBundle"
            for r in artifact.manifest.resources
        )

    def test_environment_parameter_file(
        self, make_settings: Callable[..., ContainerSettings], project_dir: Path, write_file: WriteFile
    ):
        write_file(project_dir / "config" / "parameters" / "staging.yaml", "parameters:\n  app.name: staged\n")
        settings = make_settings(environment_type="staging")
        artifact = ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))
        assert "'app.name': 'staged'" in artifact.files[f"{artifact.generation}/ServiceContainer.py"]
        assert not any(
            isinstance(r, FileExistenceResource) and r.path.endswith("staging.yaml")
            for r in artifact.manifest.resources
        )

    def test_package_config_reaches_extension(
        self, make_settings: Callable[..., ContainerSettings], project_dir: Path, write_file: WriteFile
    ):
        write_file(project_dir / "config" / "packages" / "core.yaml", "core:\n  greeting: bonjour\n")
        settings = make_settings()
        artifact = ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))
        assert "'core.greeting': 'bonjour'" in artifact.files[f"{artifact.generation}/ServiceContainer.py"]

    def test_yaml_dates_compile(
        self, make_settings: Callable[..., ContainerSettings], project_dir: Path, write_file: WriteFile
    ):
        write_file(project_dir / "config" / "parameters" / "staging.yaml", "parameters:\n  app.since: 2024-01-01\n")
        settings = make_settings(environment_type="staging")
        artifact = ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))
        container_source = artifact.files[f"{artifact.generation}/ServiceContainer.py"]
        assert "'app.since': datetime.date.fromisoformat('2024-01-01')" in container_source

    def test_broken_package_file_is_skipped_with_warning(
        self,
        make_settings: Callable[..., ContainerSettings],
        project_dir: Path,
        write_file: WriteFile,
        caplog: pytest.LogCaptureFixture,
    ):
        write_file(project_dir / "config" / "packages" / "broken.yaml", "foo: [unclosed\n")
        write_file(project_dir / "config" / "packages" / "core.yaml", "core:\n  greeting: bonjour\n")
        settings = make_settings()
        with caplog.at_level(logging.WARNING, logger="servicecontainer.core.loader"):
            artifact = ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))

        assert "'core.greeting': 'bonjour'" in artifact.files[f"{artifact.generation}/ServiceContainer.py"]
        [record] = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert "Ignoring configuration file" in record.getMessage()
        assert "broken.yaml" in record.getMessage()
        # Still tracked, so fixing the file rebuilds in debug mode.
        assert any(
            isinstance(r, FileResource) and r.path.endswith("broken.yaml") for r in artifact.manifest.resources
        )

    def test_package_import_cycle_still_fails(
        self, make_settings: Callable[..., ContainerSettings], project_dir: Path, write_file: WriteFile
    ):
        write_file(project_dir / "config" / "packages" / "loop.yaml", "imports: [loop.yaml]\n")
        settings = make_settings()
        with pytest.raises(ConfigurationInvalidError) as exc_info:
            ArtifactCompiler(settings).compile([CoreBundle()], _env_params(settings, CoreBundle()))
        assert isinstance(exc_info.value.cause, ImportCircularReferenceError)

    def test_import_cycle_is_configuration_invalid(
        self, make_settings: Callable[..., ContainerSettings], project_dir: Path, write_file: WriteFile
    ):
        write_file(project_dir / "config" / "services.yaml", "imports: [loop.yaml]\n")
        write_file(project_dir / "config" / "loop.yaml", "imports: [services.yaml]\n")
        settings = make_settings()
        with pytest.raises(ConfigurationInvalidError, match="Could not configure container") as exc_info:
            ArtifactCompiler(settings).compile([], _env_params(settings))
        assert isinstance(exc_info.value.cause, ImportCircularReferenceError)
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_missing_service_is_configuration_invalid(self, make_settings: Callable[..., ContainerSettings]):
        # services.yaml references core.settings, which only the core bundle defines.
        settings = make_settings()
        with pytest.raises(ConfigurationInvalidError, match="Could not compile container") as exc_info:
            ArtifactCompiler(settings).compile([], _env_params(settings))
        assert isinstance(exc_info.value.cause, ServiceNotFoundError)
