"""Startup configuration — env-driven, explicit paths.

Reads ``SERVICECONTAINER_*`` environment variables and an optional ``.env``
file.  The project root and the cache/log/config directories are injected
here rather than discovered from where the package happens to be installed.
"""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# Host environment types that run with debug (freshness-checked) caching.
DEBUG_ENVIRONMENT_TYPES: frozenset[str] = frozenset({"local", "development"})

# Host environment type -> container environment name.
_ENVIRONMENT_NAMES: dict[str, str] = {"development": "dev"}


class ContainerSettings(BaseSettings):
    """Settings for booting and caching the service container.

    Examples
    --------
    Override via environment::

        export SERVICECONTAINER_ENVIRONMENT_TYPE=local
        export SERVICECONTAINER_PROJECT_DIR=/srv/app
        export SERVICECONTAINER_CACHE_DIR=/var/cache/app

    Or via .env file::

        SERVICECONTAINER_ENVIRONMENT_TYPE=staging
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="SERVICECONTAINER_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Host environment: local, development, staging or production
    environment_type: str = "production"
    debug_override: bool | None = None
    log_level: str = "INFO"

    # Paths
    project_dir: Path = Path(".")
    cache_dir: Path | None = None
    log_dir: Path | None = None
    config_dir: Path | None = None

    # Compiled container
    container_class: str = "ServiceContainer"
    charset: str = "UTF-8"

    @classmethod
    def for_project(cls, project_dir: Path, environment_type: str | None = None) -> ContainerSettings:
        """Settings for *project_dir*; other fields still come from the environment."""
        overrides: dict[str, object] = {"project_dir": project_dir}
        if environment_type is not None:
            overrides["environment_type"] = environment_type
        return cls(**overrides)

    @property
    def environment(self) -> str:
        """Container environment name (``development`` is shortened to ``dev``)."""
        return _ENVIRONMENT_NAMES.get(self.environment_type, self.environment_type)

    @property
    def debug(self) -> bool:
        """Whether cached containers are checked against their sources."""
        if self.debug_override is not None:
            return self.debug_override
        return self.environment_type in DEBUG_ENVIRONMENT_TYPES

    @property
    def is_local(self) -> bool:
        return self.environment_type == "local"

    @property
    def is_production(self) -> bool:
        return self.environment_type == "production"

    @property
    def resolved_project_dir(self) -> Path:
        return self.project_dir.resolve()

    @property
    def resolved_cache_dir(self) -> Path:
        return self.cache_dir or self.resolved_project_dir / "var" / "cache"

    @property
    def resolved_log_dir(self) -> Path:
        return self.log_dir or self.resolved_project_dir / "var" / "log"

    @property
    def resolved_config_dir(self) -> Path:
        return self.config_dir or self.resolved_project_dir / "config"


def configure_logging(settings: ContainerSettings) -> None:
    """Log to stderr and ``<log_dir>/servicecontainer.log`` at ``settings.log_level``.

    Does nothing if the root logger already has handlers.
    """
    root = logging.getLogger()
    if root.handlers:
        return

    handlers: list[logging.Handler] = [logging.StreamHandler()]
    log_dir = settings.resolved_log_dir
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_dir / "servicecontainer.log", encoding="utf-8"))
    except OSError as exc:
        logging.getLogger(__name__).warning("Not logging to %s: %s", log_dir, exc)

    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )
