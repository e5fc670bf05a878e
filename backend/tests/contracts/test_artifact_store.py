"""Contract tests for the on-disk artifact store."""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

import pytest

from vis_render.config import Settings
from vis_render.errors import StorageError
from vis_render.store import FileArtifactStore, new_artifact_filename

_UUID_PNG = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-4[0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}\.png$")


def _store(directory: Path) -> FileArtifactStore:
    return FileArtifactStore(directory=directory, base_url="http://localhost:3000", url_prefix="/images")


def test_filenames_are_random_uuid_pngs() -> None:
    names = {new_artifact_filename() for _ in range(200)}
    assert len(names) == 200
    assert all(_UUID_PNG.match(name) for name in names)


def test_persist_writes_bytes_and_returns_public_url(tmp_path: Path) -> None:
    store = _store(tmp_path)

    url = asyncio.run(store.persist(b"\x89PNG-bytes"))

    prefix = "http://localhost:3000/images/"
    assert url.startswith(prefix)
    filename = url[len(prefix) :]
    assert _UUID_PNG.match(filename)
    assert (tmp_path / filename).read_bytes() == b"\x89PNG-bytes"
    assert [path.name for path in tmp_path.iterdir()] == [filename]


def test_ensure_directory_is_idempotent(tmp_path: Path) -> None:
    store = _store(tmp_path / "deep" / "er")
    store.ensure_directory()
    store.ensure_directory()
    assert (tmp_path / "deep" / "er").is_dir()


def test_ensure_directory_failure_is_a_storage_error(tmp_path: Path) -> None:
    blocker = tmp_path / "occupied"
    blocker.write_text("not a directory")
    with pytest.raises(StorageError):
        _store(blocker / "public").ensure_directory()


def test_write_failure_is_a_storage_error(tmp_path: Path) -> None:
    store = _store(tmp_path / "missing")
    with pytest.raises(StorageError) as exc_info:
        asyncio.run(store.persist(b"data"))
    assert exc_info.value.status_code == 500
    assert exc_info.value.message.startswith("Failed to store rendered image")


def test_from_settings_uses_resolved_base_url_and_prefix(tmp_path: Path) -> None:
    settings = Settings(
        _env_file=None,
        image_mode="url",
        host="0.0.0.0",
        port=4000,
        public_path=str(tmp_path),
        public_url_prefix="files/",
    )
    store = FileArtifactStore.from_settings(settings)
    assert store.directory == tmp_path
    assert store.public_url("x.png") == "http://localhost:4000/files/x.png"
