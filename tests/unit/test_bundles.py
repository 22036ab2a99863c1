"""Tests for bundles, the bundle catalog and the bundle registry."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from conftest import CoreBundle, CoreExtension, MailerBundle, ShadowCoreBundle
from servicecontainer.bundles.bundle import Bundle
from servicecontainer.bundles.registry import (
    BundleActivation,
    BundleCatalog,
    BundleRegistry,
    load_bundle_activations,
    select_bundles,
)
from servicecontainer.errors import ConfigurationInvalidError, DuplicateContributorNameError


class AcmeMailerBundle(Bundle):
    pass


# ---------------------------------------------------------------------------
# Test: Bundle and Extension
# ---------------------------------------------------------------------------


class TestBundle:
    def test_name_defaults_to_class_name(self):
        assert AcmeMailerBundle().get_name() == "AcmeMailerBundle"

    def test_explicit_name(self):
        assert CoreBundle().get_name() == "core"

    def test_path_is_defining_directory(self):
        assert Path(CoreBundle().get_path()) == Path(__file__).resolve().parent.parent

    def test_type_path(self):
        assert AcmeMailerBundle().get_type_path().endswith(":AcmeMailerBundle")

    def test_extension(self):
        assert isinstance(CoreBundle().get_container_extension(), CoreExtension)
        assert MailerBundle().get_container_extension() is None

    def test_extension_alias_from_class_name(self):
        assert CoreExtension().alias == "core"

    def test_merge_configs_later_wins(self):
        merged = CoreExtension.merge_configs([{"a": 1, "b": 1}, {"b": 2}, {}])
        assert merged == {"a": 1, "b": 2}


# ---------------------------------------------------------------------------
# Test: Catalog and activations
# ---------------------------------------------------------------------------


class TestBundleCatalog:
    def test_register_and_create(self):
        catalog = BundleCatalog()
        catalog.register("core", CoreBundle)
        assert "core" in catalog
        assert len(catalog) == 1
        assert isinstance(catalog.create("core"), CoreBundle)

    def test_duplicate_key_rejected(self):
        catalog = BundleCatalog({"core": CoreBundle})
        with pytest.raises(ValueError, match="already registered"):
            catalog.register("core", MailerBundle)

    def test_unknown_key_is_configuration_error(self):
        with pytest.raises(ConfigurationInvalidError, match="Unknown bundle 'nope'"):
            BundleCatalog().create("nope")

    def test_from_entry_points_with_empty_group(self):
        catalog = BundleCatalog.from_entry_points("servicecontainer.tests.no_such_group")
        assert len(catalog) == 0


class TestActivations:
    def test_environment_flag_wins_over_all(self):
        activation = BundleActivation(key="toolbar", environments={"all": True, "production": False})
        assert activation.is_active("dev") is True
        assert activation.is_active("production") is False

    def test_missing_entry_is_inactive(self):
        assert BundleActivation(key="toolbar", environments={"dev": True}).is_active("staging") is False

    def test_load_missing_file(self, tmp_path: Path):
        assert load_bundle_activations(tmp_path / "bundles.yaml") == {}

    def test_load_file(self, tmp_path: Path, write_file: Callable[[Path, str], Path]):
        path = write_file(tmp_path / "bundles.yaml", "core: {all: true}\ntoolbar: {dev: true, test: true}\n")
        assert load_bundle_activations(path) == {
            "core": {"all": True},
            "toolbar": {"dev": True, "test": True},
        }

    def test_load_invalid_yaml(self, tmp_path: Path, write_file: Callable[[Path, str], Path]):
        path = write_file(tmp_path / "bundles.yaml", "core: [unclosed\n")
        with pytest.raises(ConfigurationInvalidError, match="Could not parse"):
            load_bundle_activations(path)

    def test_load_wrong_shape(self, tmp_path: Path, write_file: Callable[[Path, str], Path]):
        path = write_file(tmp_path / "bundles.yaml", "- core\n")
        with pytest.raises(ConfigurationInvalidError, match="environment tables"):
            load_bundle_activations(path)

    def test_select_bundles_in_activation_order(self, catalog: BundleCatalog):
        bundles = select_bundles(
            catalog,
            {"mailer": {"all": True}, "shadow_core": {"dev": True}, "core": {"all": True}},
            "production",
        )
        assert [b.get_name() for b in bundles] == ["mailer", "core"]


# ---------------------------------------------------------------------------
# Test: Registry
# ---------------------------------------------------------------------------


class TestBundleRegistry:
    def test_register_keeps_order(self):
        registry = BundleRegistry()
        registry.register([MailerBundle(), CoreBundle()])
        assert registry.names() == ["mailer", "core"]
        assert len(registry) == 2
        assert [type(b) for b in registry] == [MailerBundle, CoreBundle]

    def test_duplicate_name_fails_and_keeps_nothing(self):
        registry = BundleRegistry()
        with pytest.raises(DuplicateContributorNameError, match="Bundle 'core' already exists") as exc_info:
            registry.register([CoreBundle(), ShadowCoreBundle()])
        assert exc_info.value.name == "core"
        assert len(registry) == 0

    def test_failed_register_does_not_replace_previous_contents(self):
        registry = BundleRegistry()
        registry.register([MailerBundle()])
        with pytest.raises(DuplicateContributorNameError):
            registry.register([CoreBundle(), CoreBundle()])
        assert registry.names() == ["mailer"]

    def test_bundle_types_and_metadata(self):
        registry = BundleRegistry()
        registry.register([CoreBundle()])
        assert registry.bundle_types() == {"core": "conftest:CoreBundle"}
        metadata = registry.bundle_metadata()["core"]
        assert metadata["namespace"] == "conftest"
        assert Path(metadata["path"]).is_dir()
