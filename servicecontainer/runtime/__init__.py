"""Runtime support imported by generated container code."""

from servicecontainer.runtime.container import CompiledContainer, load_generation

__all__ = ["CompiledContainer", "load_generation"]
