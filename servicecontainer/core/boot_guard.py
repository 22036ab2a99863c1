"""Boot guard — startup constraints and the fatal-failure policy.

Two rules live here so that nothing else needs ``if is_production`` checks:

* ``enforce_production_constraints`` runs before any cache work and refuses
  settings that must never reach production.
* ``handle_boot_failure`` decides what the host sees when boot fails.  In
  the local environment the original exception propagates unchanged.
  Everywhere else it is logged with its traceback and the process exits
  with a generic message, so internal details never reach end users.
"""

from __future__ import annotations

import logging
from typing import NoReturn

from servicecontainer.config import ContainerSettings
from servicecontainer.errors import ProductionConfigError

logger = logging.getLogger(__name__)

BOOT_FAILURE_MESSAGE = "Could not boot container."


def enforce_production_constraints(settings: ContainerSettings) -> None:
    """Validate production-critical settings.

    Raises
    ------
    ProductionConfigError
        If debug caching is enabled in production.
    """
    if not settings.is_production:
        return

    if settings.debug:
        msg = (
            "debug=True is not allowed in production. "
            "Unset SERVICECONTAINER_DEBUG_OVERRIDE or set it to false."
        )
        logger.critical("Production configuration guard failed: %s", msg)
        raise ProductionConfigError(msg)

    logger.debug("Production configuration guard passed.")


def handle_boot_failure(exc: BaseException, settings: ContainerSettings) -> NoReturn:
    """Re-raise *exc* locally, otherwise log it and exit generically."""
    if settings.is_local:
        raise exc

    logger.critical(
        "Container boot failed in %s environment.",
        settings.environment_type,
        exc_info=(type(exc), exc, exc.__traceback__),
    )
    raise SystemExit(BOOT_FAILURE_MESSAGE) from None
