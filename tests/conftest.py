"""Shared test fixtures for servicecontainer."""

from __future__ import annotations

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from servicecontainer.bundles.bundle import Bundle, Extension
from servicecontainer.bundles.registry import BundleCatalog
from servicecontainer.config import ContainerSettings
from servicecontainer.core.builder import ContainerBuilder
from servicecontainer.hooks import HookRegistry
from servicecontainer.kernel import ContainerKernel

# ---------------------------------------------------------------------------
# Sample bundles
# ---------------------------------------------------------------------------


class CoreExtension(Extension):
    """Registers ``core.settings`` with a configurable greeting."""

    def load(self, configs: list[dict[str, Any]], builder: ContainerBuilder) -> None:
        config = self.merge_configs(configs)
        builder.set_parameter("core.greeting", config.get("greeting", "hello"))
        definition = builder.register("core.settings", "types:SimpleNamespace")
        definition.arguments = {"greeting": "%core.greeting%", "env": "%kernel.environment%"}


class CoreBundle(Bundle):
    name = "core"
    extension_class = CoreExtension


class MailerBundle(Bundle):
    name = "mailer"

    def build(self, builder: ContainerBuilder) -> None:
        definition = builder.register("mailer.transport", "collections:OrderedDict")
        definition.add_tag("mailer.transport", priority=10)


class ShadowCoreBundle(Bundle):
    """A different bundle class that claims the ``core`` name."""

    name = "core"


SERVICES_YAML = """\
parameters:
  app.name: demo
  app.title: '%app.name% app'

services:
  app.config:
    class: types:SimpleNamespace
    arguments:
      name: '%app.name%'
      title: '%app.title%'
      core: '@core.settings'
  app.registry:
    class: collections:OrderedDict
    public: false
    calls:
      - [update, [{ready: true}]]
  app.registry.public: '@app.registry'
  app.counter:
    class: collections:Counter
    arguments: [[a, b, a]]
    shared: false
"""

BUNDLES_YAML = """\
core:
  all: true
mailer:
  all: true
"""


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep host SERVICECONTAINER_* variables and .env files out of the tests."""
    for name in list(os.environ):
        if name.startswith("SERVICECONTAINER_"):
            monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def write_file() -> Callable[[Path, str], Path]:
    """Write text to a path, creating parent directories."""

    def _write(path: Path, content: str) -> Path:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def catalog() -> BundleCatalog:
    """Provide a catalog with the sample bundles."""
    return BundleCatalog({"core": CoreBundle, "mailer": MailerBundle, "shadow_core": ShadowCoreBundle})


@pytest.fixture
def project_dir(tmp_path: Path, write_file: Callable[[Path, str], Path]) -> Path:
    """Provide a project with bundles.yaml and services.yaml under config/."""
    project = tmp_path / "project"
    write_file(project / "config" / "bundles.yaml", BUNDLES_YAML)
    write_file(project / "config" / "services.yaml", SERVICES_YAML)
    return project


@pytest.fixture
def make_settings(project_dir: Path) -> Callable[..., ContainerSettings]:
    """Build settings rooted at the test project."""

    def _make(**overrides: Any) -> ContainerSettings:
        return ContainerSettings(project_dir=project_dir, **overrides)

    return _make


@pytest.fixture
def make_kernel(
    make_settings: Callable[..., ContainerSettings],
    catalog: BundleCatalog,
) -> Callable[..., ContainerKernel]:
    """Build an unbooted kernel with its own hook registry."""

    def _make(hooks: HookRegistry | None = None, **overrides: Any) -> ContainerKernel:
        return ContainerKernel(make_settings(**overrides), catalog=catalog, hooks=hooks or HookRegistry())

    return _make


@pytest.fixture
def age_entry() -> Callable[[ContainerKernel], None]:
    """Backdate a kernel's cached entry file so every tracked resource looks newer."""

    def _age(kernel: ContainerKernel, seconds: float = 3600) -> None:
        entry = kernel.cache.entry_path
        past = entry.stat().st_mtime - seconds
        os.utime(entry, (past, past))

    return _age
