"""Tests for the storage backends."""

from __future__ import annotations

from pathlib import Path

import pytest

from silentflow.cache.backends import DiskBackend, MemoryBackend, SnapshotBackend


@pytest.fixture()
def disk_backend(tmp_path: Path):
    backend = DiskBackend(tmp_path)
    yield backend
    backend.close()


@pytest.fixture(params=["memory", "disk"])
def backend(request, tmp_path: Path):
    """Each backend implementation in turn."""
    if request.param == "memory":
        yield MemoryBackend()
        return
    b = DiskBackend(tmp_path)
    yield b
    b.close()


class TestContract:
    def test_get_missing_returns_none(self, backend) -> None:
        assert backend.get("missing") is None

    def test_set_and_get(self, backend) -> None:
        backend.set("k", "v")
        assert backend.get("k") == "v"

    def test_set_overwrites(self, backend) -> None:
        backend.set("k", "v1")
        backend.set("k", "v2")
        assert backend.get("k") == "v2"

    def test_set_many_writes_all(self, backend) -> None:
        backend.set_many({"a": "1", "b": "2", "c": "3"})
        assert sorted(backend.keys()) == ["a", "b", "c"]

    def test_snapshot_is_unaffected_by_later_writes(self, backend) -> None:
        backend.set_many({"a": "1"})
        view = backend.snapshot()
        backend.set_many({"a": "2", "b": "3"})
        assert dict(view) == {"a": "1"}
        assert backend.get("a") == "2"

    def test_snapshot_is_read_only(self, backend) -> None:
        backend.set("a", "1")
        view = backend.snapshot()
        with pytest.raises(TypeError):
            view["a"] = "2"  # type: ignore[index]


class TestMemoryBackend:
    def test_initial_entries(self) -> None:
        backend = MemoryBackend({"x": "1"})
        assert backend.get("x") == "1"

    def test_group_write_is_swapped_in_whole(self) -> None:
        backend = MemoryBackend({"a": "old-a", "b": "old-b"})
        before = backend.snapshot()
        backend.set_many({"a": "new-a", "b": "new-b"})
        after = backend.snapshot()
        assert (before["a"], before["b"]) == ("old-a", "old-b")
        assert (after["a"], after["b"]) == ("new-a", "new-b")


class TestDiskBackend:
    def test_persists_across_instances(self, tmp_path: Path) -> None:
        first = DiskBackend(tmp_path)
        first.set_many({"k": "v"})
        first.close()

        second = DiskBackend(tmp_path)
        try:
            assert second.get("k") == "v"
        finally:
            second.close()

    def test_directory_is_under_credentials(self, disk_backend: DiskBackend, tmp_path: Path) -> None:
        assert disk_backend.directory == tmp_path / "credentials"
        assert disk_backend.directory.is_dir()


class TestSnapshotBackend:
    def test_writes_are_rejected(self) -> None:
        backend = SnapshotBackend({"a": "1"})
        assert backend.get("a") == "1"
        assert backend.keys() == ["a"]
        with pytest.raises(TypeError):
            backend.set("b", "2")
        with pytest.raises(TypeError):
            backend.set_many({"b": "2"})
