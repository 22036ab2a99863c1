"""ContainerKernel — boots the compiled service container once per process.

Boot sequence::

    enforce production constraints
    bundles.yaml -> container_bundles filter -> BundleCatalog -> BundleRegistry
    CacheManager.load_if_fresh()
        FRESH                 -> done
        MISS / STALE / CORRUPT -> compile -> write -> load from disk
                                  -> retire the superseded generation
    register the container filter, fire container_booted

Every failure inside ``boot`` goes through ``handle_boot_failure``.
"""

from __future__ import annotations

import logging
from typing import Any

from servicecontainer.bundles.bundle import Bundle
from servicecontainer.bundles.registry import (
    BundleCatalog,
    BundleRegistry,
    load_bundle_activations,
    select_bundles,
)
from servicecontainer.config import ContainerSettings
from servicecontainer.core.boot_guard import enforce_production_constraints, handle_boot_failure
from servicecontainer.core.cache import CacheManager, CacheState
from servicecontainer.core.compiler import BUNDLES_FILE, ArtifactCompiler, EnvironmentParameters
from servicecontainer.core.retirer import LegacyRetirer
from servicecontainer.hooks import BOOTED_ACTION, BUNDLES_FILTER, CONTAINER_FILTER, HookRegistry
from servicecontainer.hooks import hooks as default_hooks
from servicecontainer.runtime.container import CompiledContainer

logger = logging.getLogger(__name__)


class ContainerNotBootedError(RuntimeError):
    """Raised when the container is requested before a successful boot."""


class ContainerKernel:
    """Owns one boot of the service container.

    Parameters
    ----------
    settings:
        Paths, environment and class name.  Read from the environment when
        omitted.
    catalog:
        Bundle factories by key.  Discovered from entry points when omitted.
    hooks:
        Host hook registry.  The module-level registry when omitted.
    """

    def __init__(
        self,
        settings: ContainerSettings | None = None,
        *,
        catalog: BundleCatalog | None = None,
        hooks: HookRegistry | None = None,
    ) -> None:
        self.settings = settings or ContainerSettings()
        self._catalog = catalog if catalog is not None else BundleCatalog.from_entry_points()
        self._hooks = hooks if hooks is not None else default_hooks
        self._bundles = BundleRegistry()
        self._compiler = ArtifactCompiler(self.settings, owner=self)
        self._cache = CacheManager(
            self.settings.resolved_cache_dir,
            self.settings.container_class,
            debug=self.settings.debug,
        )
        self._retirer = LegacyRetirer(self.settings.resolved_cache_dir)
        self._container: CompiledContainer | None = None
        self._cache_state: CacheState | None = None

    @classmethod
    def run(cls, settings: ContainerSettings | None = None, **kwargs: Any) -> ContainerKernel:
        """Create a kernel and boot it; the single startup entry point."""
        kernel = cls(settings, **kwargs)
        kernel.boot()
        return kernel

    # -- Accessors ----------------------------------------------------------

    @property
    def bundles(self) -> BundleRegistry:
        return self._bundles

    @property
    def cache(self) -> CacheManager:
        return self._cache

    @property
    def cache_state(self) -> CacheState | None:
        """What the cache probe found during the last boot."""
        return self._cache_state

    def get(self) -> CompiledContainer:
        """Return the booted container.

        Raises
        ------
        ContainerNotBootedError
            If ``boot`` has not completed.
        """
        if self._container is None:
            raise ContainerNotBootedError("The service container has not been booted.")
        return self._container

    def _provide_container(self, _value: Any = None) -> CompiledContainer:
        return self.get()

    # -- Boot ---------------------------------------------------------------

    def boot(self) -> CompiledContainer:
        """Initialize bundles and container, then publish the container.

        Raises
        ------
        SystemExit
            On any failure outside the local environment.
        Exception
            The original failure, in the local environment.
        """
        try:
            enforce_production_constraints(self.settings)
            self.initialize_bundles()
            self.initialize_container()

            # Booting again re-registers rather than stacking a second accessor.
            self._hooks.remove_filter(CONTAINER_FILTER, self._provide_container)
            self._hooks.add_filter(CONTAINER_FILTER, self._provide_container)
            self._hooks.do_action(BOOTED_ACTION, self.get())
        except Exception as exc:
            handle_boot_failure(exc, self.settings)
        return self.get()

    def get_registered_bundles(self) -> list[Bundle]:
        """Instantiate the bundles active in the current environment."""
        activations = load_bundle_activations(self.settings.resolved_config_dir / BUNDLES_FILE)
        activations = self._hooks.apply_filters(BUNDLES_FILTER, activations)
        return select_bundles(self._catalog, activations, self.settings.environment)

    def initialize_bundles(self) -> None:
        self._bundles.register(self.get_registered_bundles())

    def initialize_container(self) -> None:
        """Use the cached container if fresh, otherwise rebuild and swap it in."""
        probe = self._cache.load_if_fresh()
        self._cache_state = probe.state
        if probe.is_fresh:
            self._container = probe.container
            logger.info("Loaded cached container %s.", self._container.type_name)
            return

        previous = probe.container
        self._cache.ensure_cache_dir()
        artifact = self._compiler.compile(list(self._bundles), self.env_parameters())
        self._cache.write(artifact)
        self._container = self._cache.load()
        logger.info(
            "Rebuilt container %s (cache was %s).",
            self._container.type_name,
            probe.state.value,
        )

        if previous is not None:
            self._retirer.retire(previous, self._container)

    def env_parameters(self) -> EnvironmentParameters:
        return EnvironmentParameters.from_settings(self.settings, self._bundles)
