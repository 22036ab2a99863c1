"""Tests for CacheManager — probe, load and ordered atomic writes."""

from __future__ import annotations

import os
import stat
import time
from pathlib import Path

import pytest

from servicecontainer.core import cache as cache_module
from servicecontainer.core.builder import ContainerBuilder
from servicecontainer.core.cache import CacheManager, CacheState
from servicecontainer.core.dumper import PythonDumper
from servicecontainer.core.filesystem import current_umask
from servicecontainer.errors import CacheDirUnwritableError
from servicecontainer.models.artifacts import CompiledArtifact
from servicecontainer.models.resources import FileResource
from servicecontainer.runtime.container import CompiledContainer


@pytest.fixture
def source_file(tmp_path: Path) -> Path:
    path = tmp_path / "services.yaml"
    path.write_text("services: {}\n")
    return path


@pytest.fixture
def artifact(source_file: Path) -> CompiledArtifact:
    builder = ContainerBuilder({"greeting": "hello"})
    builder.register("registry", "collections:OrderedDict")
    builder.add_resource(FileResource(path=str(source_file)))
    builder.compile()
    return PythonDumper(builder).dump()


@pytest.fixture
def cache_dir(tmp_path: Path) -> Path:
    return tmp_path / "var" / "cache"


def _touch_future(path: Path) -> None:
    future = time.time() + 3600
    os.utime(path, (future, future))


class TestWrite:
    def test_write_creates_layout(self, cache_dir: Path, artifact: CompiledArtifact):
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        assert cache.entry_path == cache_dir / "ServiceContainer.py"
        assert cache.entry_path.is_file()
        assert cache.meta_path.is_file()
        assert (cache_dir / artifact.generation / "ServiceContainer.py").is_file()
        assert cache.entry_path.read_text() == artifact.entry_code

    def test_entry_is_published_last(
        self, cache_dir: Path, artifact: CompiledArtifact, monkeypatch: pytest.MonkeyPatch
    ):
        written: list[Path] = []
        real_dump_file = cache_module.dump_file

        def recording_dump_file(path: Path, content: str) -> None:
            written.append(path)
            real_dump_file(path, content)

        monkeypatch.setattr(cache_module, "dump_file", recording_dump_file)
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        assert written[-1] == cache.entry_path
        assert written[-2] == cache.meta_path
        assert set(written[:-2]) == {cache_dir / name for name in artifact.files}

    def test_failed_rewrite_leaves_no_entry(
        self, cache_dir: Path, artifact: CompiledArtifact, monkeypatch: pytest.MonkeyPatch
    ):
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        real_dump_file = cache_module.dump_file

        def failing_dump_file(path: Path, content: str) -> None:
            if path == cache.entry_path:
                raise OSError("disk full")
            real_dump_file(path, content)

        monkeypatch.setattr(cache_module, "dump_file", failing_dump_file)
        with pytest.raises(CacheDirUnwritableError):
            cache.write(artifact)
        # The new manifest is on disk; the entry it would have described is not.
        assert cache.meta_path.is_file()
        assert not cache.entry_path.exists()
        assert CacheManager(cache_dir, debug=True).load_if_fresh().state is CacheState.MISS

    def test_file_permissions_follow_umask(self, cache_dir: Path, artifact: CompiledArtifact):
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        mode = stat.S_IMODE(cache.entry_path.stat().st_mode)
        assert mode == 0o666 & ~current_umask()

    def test_no_temp_files_left(self, cache_dir: Path, artifact: CompiledArtifact):
        CacheManager(cache_dir).write(artifact)
        leftovers = [p for p in cache_dir.rglob("*") if p.name.endswith(".tmp")]
        assert leftovers == []

    def test_class_name_mismatch(self, cache_dir: Path, artifact: CompiledArtifact):
        with pytest.raises(ValueError, match="does not match"):
            CacheManager(cache_dir, "OtherContainer").write(artifact)

    def test_cache_dir_is_a_file(self, tmp_path: Path, artifact: CompiledArtifact):
        blocker = tmp_path / "cache"
        blocker.write_text("not a directory")
        with pytest.raises(CacheDirUnwritableError, match="Unable to create the cache directory"):
            CacheManager(blocker).write(artifact)

    def test_ensure_cache_dir_creates_parents(self, cache_dir: Path):
        CacheManager(cache_dir).ensure_cache_dir()
        assert cache_dir.is_dir()


class TestProbe:
    def test_miss_without_entry(self, cache_dir: Path):
        probe = CacheManager(cache_dir).load_if_fresh()
        assert probe.state is CacheState.MISS
        assert probe.container is None

    def test_fresh_after_write(self, cache_dir: Path, artifact: CompiledArtifact):
        CacheManager(cache_dir).write(artifact)
        probe = CacheManager(cache_dir).load_if_fresh()
        assert probe.state is CacheState.FRESH
        assert probe.is_fresh is True
        assert probe.container.type_name == artifact.type_name
        assert probe.container.get_parameter("greeting") == "hello"

    def test_production_ignores_timestamps(self, cache_dir: Path, artifact: CompiledArtifact, source_file: Path):
        CacheManager(cache_dir).write(artifact)
        _touch_future(source_file)
        assert CacheManager(cache_dir, debug=False).load_if_fresh().state is CacheState.FRESH

    def test_debug_fresh_when_untouched(self, cache_dir: Path, artifact: CompiledArtifact):
        CacheManager(cache_dir).write(artifact)
        assert CacheManager(cache_dir, debug=True).load_if_fresh().state is CacheState.FRESH

    def test_debug_stale_after_touch(self, cache_dir: Path, artifact: CompiledArtifact, source_file: Path):
        CacheManager(cache_dir).write(artifact)
        _touch_future(source_file)
        probe = CacheManager(cache_dir, debug=True).load_if_fresh()
        assert probe.state is CacheState.STALE
        assert isinstance(probe.container, CompiledContainer)

    def test_debug_stale_without_manifest(self, cache_dir: Path, artifact: CompiledArtifact):
        cache = CacheManager(cache_dir, debug=True)
        cache.write(artifact)
        cache.meta_path.unlink()
        assert cache.read_manifest() is None
        assert cache.load_if_fresh().state is CacheState.STALE

    def test_read_manifest(self, cache_dir: Path, artifact: CompiledArtifact, source_file: Path):
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        manifest = cache.read_manifest()
        assert manifest is not None
        assert [r.key for r in manifest.resources] == [f"file:{source_file}"]


class TestLoad:
    def test_each_load_is_a_new_instance(self, cache_dir: Path, artifact: CompiledArtifact):
        cache = CacheManager(cache_dir)
        cache.write(artifact)
        first, second = cache.load(), cache.load()
        assert first is not second
        assert first.type_name == second.type_name
        assert first.generation_dir == (cache_dir / artifact.generation).resolve()
