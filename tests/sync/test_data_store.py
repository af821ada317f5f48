from __future__ import annotations

import fcntl
import os
from pathlib import Path

import pytest

from portfolio_sync.config.settings import settings
from portfolio_sync.models.collection import ProjectCollection
from portfolio_sync.models.project import ProjectRecord
from portfolio_sync.storage.data_store import (
    DataFileFormatError,
    DataStoreError,
    ProjectDataStore,
    SyncInProgressError,
)


def record(name: str, date: str, updated: str) -> ProjectRecord:
    return ProjectRecord(
        name=name,
        title=name.title(),
        description={"en": f"{name} in English", "fr": f"{name} en français"},
        date=date,
        topics=["python"],
        html_url=f"https://github.com/gderamchi/{name}",
        stars=2,
        language="Python",
        updated=updated,
    )


def make_store(tmp_path: Path) -> ProjectDataStore:
    return ProjectDataStore(tmp_path / "projects-data.js", tmp_path / "projects-data.backup.js")


def test_missing_file_loads_empty_collection(tmp_path: Path) -> None:
    assert len(make_store(tmp_path).load()) == 0


def test_write_sorts_renders_and_reloads(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    collection = ProjectCollection(
        [
            record("older", "2023", "2023-05-01T00:00:00Z"),
            record("recent", "2024", "2024-06-01T00:00:00Z"),
            record("early", "2024", "2024-01-01T00:00:00Z"),
        ]
    )

    store.write(collection)
    text = store.path.read_text(encoding="utf-8")
    reloaded = store.load()

    assert text.startswith("// Projects data - Auto-generated by portfolio-sync\n// Last updated: ")
    assert "// Total projects: 3\n" in text
    assert "const projects = [" in text
    assert "module.exports = { projects };" in text
    assert "en français" in text
    assert [item.name for item in reloaded] == ["recent", "early", "older"]
    assert reloaded.get("recent").to_dict() == collection.get("recent").to_dict()


def test_write_backs_up_previous_file(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.write(ProjectCollection([record("first", "2024", "2024-01-01T00:00:00Z")]))
    previous = store.path.read_text(encoding="utf-8")

    store.write(ProjectCollection([record("second", "2024", "2024-02-01T00:00:00Z")]))

    assert store.backup_path.read_text(encoding="utf-8") == previous
    assert [item.name for item in store.load()] == ["second"]


def test_failed_write_leaves_previous_file_untouched(tmp_path: Path, monkeypatch) -> None:
    store = make_store(tmp_path)
    store.write(ProjectCollection([record("kept", "2024", "2024-01-01T00:00:00Z")]))
    previous = store.path.read_text(encoding="utf-8")

    def failing_replace(*_args, **_kwargs):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", failing_replace)

    with pytest.raises(DataStoreError):
        store.write(ProjectCollection([record("lost", "2024", "2024-02-01T00:00:00Z")]))

    assert store.path.read_text(encoding="utf-8") == previous
    assert not [path for path in tmp_path.iterdir() if path.name.endswith(".tmp")]


def test_unparseable_files_raise_format_error(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    store.path.write_text("// nothing here\n", encoding="utf-8")
    with pytest.raises(DataFileFormatError):
        store.load()

    store.path.write_text('const projects = [\n  {\n    name: "Legacy",\n  }\n];\n', encoding="utf-8")
    with pytest.raises(DataFileFormatError):
        store.load()

    store.path.write_text('const projects = {"name": "x"};\n', encoding="utf-8")
    with pytest.raises(DataFileFormatError):
        store.load()


def test_lock_can_be_taken_for_consecutive_runs(tmp_path: Path) -> None:
    store = make_store(tmp_path)

    with store.lock():
        assert store.lock_path.exists()
    with store.lock():
        store.write(ProjectCollection())

    assert "// Total projects: 0" in store.path.read_text(encoding="utf-8")


def test_contended_lock_fails_fast_with_holder_pid(tmp_path: Path) -> None:
    store = make_store(tmp_path)
    store.lock_path.write_text("4242", encoding="utf-8")

    with open(store.lock_path, "a+") as holder:
        fcntl.flock(holder, fcntl.LOCK_EX | fcntl.LOCK_NB)
        with pytest.raises(SyncInProgressError, match="4242"):
            with store.lock():
                pass
        fcntl.flock(holder, fcntl.LOCK_UN)

    with store.lock():
        assert store.lock_path.read_text(encoding="utf-8") == str(os.getpid())


def test_default_paths_come_from_settings(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setattr(settings, "SITE_ROOT", tmp_path)
    monkeypatch.setattr(settings, "PROJECTS_BACKUP_FILE", "previous-projects.js")

    store = ProjectDataStore()

    assert store.path == settings.projects_data_path
    assert store.backup_path == tmp_path / "previous-projects.js"
