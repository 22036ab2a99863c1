"""Bundle catalog and registry.

Bundles are never instantiated from a class name found in a file.  Instead a
``BundleCatalog`` maps stable keys to factories, registered by code or
discovered through the ``servicecontainer.bundles`` entry-point group.  The
``bundles.yaml`` file only says which catalog keys are active in which
environment::

    core:
      all: true
    debug_toolbar:
      dev: true
      test: true

The ``BundleRegistry`` then holds the instantiated bundles for exactly one
boot, keyed by bundle name.  Two bundles with the same name abort the boot.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from importlib.metadata import entry_points
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field

from servicecontainer.bundles.bundle import Bundle
from servicecontainer.errors import (
    ConfigurationInvalidError,
    DuplicateContributorNameError,
)

logger = logging.getLogger(__name__)

ENTRY_POINT_GROUP = "servicecontainer.bundles"

BundleFactory = Callable[[], Bundle]


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------


class BundleCatalog:
    """Startup-time table of ``key -> bundle factory``.

    Examples
    --------
    >>> catalog = BundleCatalog()
    >>> catalog.register("core", Bundle)
    >>> "core" in catalog
    True
    """

    def __init__(self, factories: dict[str, BundleFactory] | None = None) -> None:
        self._factories: dict[str, BundleFactory] = {}
        for key, factory in (factories or {}).items():
            self.register(key, factory)

    @classmethod
    def from_entry_points(cls, group: str = ENTRY_POINT_GROUP) -> BundleCatalog:
        """Build a catalog from installed distributions' entry points."""
        catalog = cls()
        for ep in entry_points(group=group):
            catalog.register(ep.name, ep.load())
        logger.debug("Discovered %d bundle(s) in entry-point group %s.", len(catalog), group)
        return catalog

    def register(self, key: str, factory: BundleFactory) -> None:
        """Add a factory under *key*.

        Raises
        ------
        ValueError
            If *key* is already taken.
        """
        if key in self._factories:
            raise ValueError(f"Bundle key '{key}' is already registered in the catalog.")
        self._factories[key] = factory

    def create(self, key: str) -> Bundle:
        try:
            factory = self._factories[key]
        except KeyError:
            raise ConfigurationInvalidError(
                f"Unknown bundle '{key}'. Known bundles: {', '.join(sorted(self._factories)) or 'none'}."
            ) from None
        return factory()

    def keys(self) -> list[str]:
        return list(self._factories)

    def __contains__(self, key: object) -> bool:
        return key in self._factories

    def __len__(self) -> int:
        return len(self._factories)


# ---------------------------------------------------------------------------
# Activation
# ---------------------------------------------------------------------------


class BundleActivation(BaseModel):
    """Which environments activate one catalog key."""

    model_config = ConfigDict(frozen=True)

    key: str
    environments: dict[str, bool] = Field(default_factory=dict)

    def is_active(self, environment: str) -> bool:
        """Environment-specific flag first, then ``all``, otherwise inactive."""
        if environment in self.environments:
            return self.environments[environment]
        return self.environments.get("all", False)


def load_bundle_activations(path: Path) -> dict[str, dict[str, bool]]:
    """Read ``bundles.yaml`` into a ``key -> {environment: flag}`` mapping.

    A missing file means no configured bundles.

    Raises
    ------
    ConfigurationInvalidError
        If the file is not valid YAML or not a mapping of mappings.
    """
    if not path.is_file():
        logger.debug("No bundle activation file at %s.", path)
        return {}
    try:
        raw = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise ConfigurationInvalidError(
            f"Could not parse bundle activations in {path}: {exc}", exc
        ) from exc
    if raw is None:
        return {}
    if not isinstance(raw, dict) or not all(isinstance(v, dict) for v in raw.values()):
        raise ConfigurationInvalidError(
            f"Bundle activations in {path} must map bundle keys to environment tables."
        )
    return {str(key): {str(env): bool(flag) for env, flag in envs.items()} for key, envs in raw.items()}


def select_bundles(
    catalog: BundleCatalog,
    activations: dict[str, dict[str, bool]],
    environment: str,
) -> list[Bundle]:
    """Instantiate the bundles active in *environment*, in activation order."""
    selected: list[Bundle] = []
    for key, environments in activations.items():
        if BundleActivation(key=key, environments=environments).is_active(environment):
            selected.append(catalog.create(key))
    return selected


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class BundleRegistry:
    """The ordered, name-unique set of bundles for the current boot."""

    def __init__(self) -> None:
        self._bundles: dict[str, Bundle] = {}

    def register(self, bundles: Iterable[Bundle]) -> None:
        """Replace the registry contents with *bundles*.

        Raises
        ------
        DuplicateContributorNameError
            If two bundles share a name.  Nothing is kept in that case.
        """
        registered: dict[str, Bundle] = {}
        for bundle in bundles:
            name = bundle.get_name()
            if name in registered:
                raise DuplicateContributorNameError(name)
            registered[name] = bundle
        self._bundles = registered
        logger.debug("Registered bundles: %s", ", ".join(registered) or "none")

    def names(self) -> list[str]:
        return list(self._bundles)

    def bundle_types(self) -> dict[str, str]:
        """``name -> module:Class`` for every registered bundle."""
        return {name: bundle.get_type_path() for name, bundle in self._bundles.items()}

    def bundle_metadata(self) -> dict[str, dict[str, Any]]:
        """``name -> {path, namespace}`` for every registered bundle."""
        return {
            name: {"path": bundle.get_path(), "namespace": bundle.get_namespace()}
            for name, bundle in self._bundles.items()
        }

    def __iter__(self) -> Iterator[Bundle]:
        return iter(list(self._bundles.values()))

    def __len__(self) -> int:
        return len(self._bundles)
