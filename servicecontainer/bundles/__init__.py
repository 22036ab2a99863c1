"""Bundles — the named contributors that make up a compiled container."""

from servicecontainer.bundles.bundle import Bundle, Extension
from servicecontainer.bundles.registry import (
    BundleActivation,
    BundleCatalog,
    BundleRegistry,
    load_bundle_activations,
    select_bundles,
)

__all__ = [
    "Bundle",
    "Extension",
    "BundleActivation",
    "BundleCatalog",
    "BundleRegistry",
    "load_bundle_activations",
    "select_bundles",
]
