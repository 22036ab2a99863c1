"""Exception hierarchy for the service container.

Boot-level errors (what the kernel reacts to):

* ``DuplicateContributorNameError`` — two bundles share a name; aborts boot.
* ``ConfigurationInvalidError`` — loading or compiling the graph failed;
  wraps the original cause.
* ``CacheDirUnwritableError`` — the cache directory cannot be created or
  written; never retried.
* ``CacheLoadCorruptError`` — a cached artifact could not be materialized.
  Only ever raised inside the cache probe, which recovers by rebuilding.
* ``ProductionConfigError`` — settings that must not reach production.

Graph-level errors (``ContainerConfigError`` and subclasses) are raised by the
builder, the compiler passes and the YAML loader.  They never leave the
compiler on their own: ``ArtifactCompiler`` re-raises them as
``ConfigurationInvalidError`` with the original error chained.

Every error carries a ``user_message``.  For boot-level errors outside the
local environment even that message is withheld from the end user; see
``servicecontainer.core.boot_guard``.
"""

from __future__ import annotations


class ServiceContainerError(Exception):
    """Base class for all service container errors."""

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


# ---------------------------------------------------------------------------
# Boot-level errors
# ---------------------------------------------------------------------------


class DuplicateContributorNameError(ServiceContainerError):
    """Raised when two bundles register under the same name."""

    def __init__(self, name: str) -> None:
        super().__init__(f"Bundle '{name}' already exists")
        self.name = name


class ConfigurationInvalidError(ServiceContainerError):
    """Raised when the container configuration cannot be loaded or compiled.

    The original error is available both as ``cause`` and through the
    standard ``__cause__`` chain (``raise ... from exc``).
    """

    def __init__(self, user_message: str, cause: BaseException | None = None) -> None:
        super().__init__(user_message)
        self.cause = cause


class CacheDirUnwritableError(ServiceContainerError):
    """Raised when the cache directory cannot be created or written to."""


class CacheLoadCorruptError(ServiceContainerError):
    """Raised when a cached container exists but cannot be materialized."""


class ProductionConfigError(ServiceContainerError):
    """Raised when settings violate a production constraint.

    The process cannot safely start with such settings; this must not be
    caught and ignored.
    """


# ---------------------------------------------------------------------------
# Graph-level errors
# ---------------------------------------------------------------------------


class ContainerConfigError(ServiceContainerError):
    """Base class for errors in the service graph or its configuration files."""


class LoadError(ContainerConfigError):
    """A configuration file is missing, unreadable or malformed."""


class ImportCircularReferenceError(ContainerConfigError):
    """A configuration file imports itself, directly or transitively."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            "Circular import detected: " + " > ".join(f'"{item}"' for item in chain)
        )
        self.chain = chain


class ParameterNotFoundError(ContainerConfigError):
    """A ``%placeholder%`` names a parameter that does not exist."""

    def __init__(self, name: str, source: str | None = None) -> None:
        message = f"You have requested a non-existent parameter '{name}'"
        if source:
            message += f" (referenced by {source})"
        super().__init__(message + ".")
        self.name = name
        self.source = source


class ParameterCircularReferenceError(ContainerConfigError):
    """Parameters reference each other in a loop."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            "Circular reference detected for parameter '%s' (\"%s\")."
            % (chain[0], '" > "'.join(chain))
        )
        self.chain = chain


class ServiceNotFoundError(ContainerConfigError):
    """A reference or alias targets a service that does not exist."""

    def __init__(self, service_id: str, source: str | None = None) -> None:
        if source:
            message = (
                f"The service '{source}' has a dependency on a non-existent "
                f"service '{service_id}'."
            )
        else:
            message = f"You have requested a non-existent service '{service_id}'."
        super().__init__(message)
        self.service_id = service_id
        self.source = source


class ServiceCircularReferenceError(ContainerConfigError):
    """Services depend on each other through their constructors in a loop."""

    def __init__(self, chain: list[str]) -> None:
        super().__init__(
            "Circular reference detected for service '%s', path: '%s'."
            % (chain[0], " -> ".join(chain))
        )
        self.chain = chain


class ServiceCollisionError(ContainerConfigError):
    """Two bundle extensions define the same service id."""


class InvalidDefinitionError(ContainerConfigError):
    """A service definition is structurally invalid."""


class BuilderFrozenError(ContainerConfigError):
    """A compiled (frozen) builder was asked to change."""
