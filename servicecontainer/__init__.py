"""servicecontainer: a compiled, cached service container for Python applications.

Bundles contribute configuration and service definitions; the kernel
compiles them once into plain Python modules under the cache directory and
reuses that cache on every later boot:
  - Bundle catalog keyed by name, populated from code or entry points
  - YAML service definitions with parameters, references, aliases and tags
  - Atomic, all-or-nothing cache writes (entry file published last)
  - Debug-mode freshness tracking of every file and bundle source involved
  - Two-phase retirement of superseded container generations
"""

__version__ = "0.1.0"
__description__ = "Compiled, cached service container with pluggable bundles"

from servicecontainer.bundles import Bundle, BundleCatalog, Extension
from servicecontainer.config import ContainerSettings
from servicecontainer.kernel import ContainerKernel
from servicecontainer.runtime import CompiledContainer

__all__ = [
    "Bundle",
    "BundleCatalog",
    "Extension",
    "CompiledContainer",
    "ContainerKernel",
    "ContainerSettings",
    "__version__",
]
