import asyncio
import builtins
import os

import pytest

from conftest import WATCH_URL, FakeBackend, write_file
from app.core.errors import DownloadNotFound, InvalidInput, StorageUnavailable
from app.models.internal import MediaRequest
from app.services.orchestrator import FetchOrchestrator
from app.services.storage import StorageManager


def deny_writes_under(monkeypatch, directory):
    real_open = builtins.open

    def fake_open(path, mode="r", *args, **kwargs):
        if "w" in mode and str(path).startswith(str(directory)):
            raise PermissionError(13, "Permission denied", str(path))
        return real_open(path, mode, *args, **kwargs)

    monkeypatch.setattr("app.services.storage.open", fake_open, raising=False)


def test_resolves_configured_directory(storage, test_config):
    assert storage.downloads_dir == os.path.abspath(test_config.storage.downloads_dir)
    assert os.path.isdir(storage.downloads_dir)
    assert storage.temp_dir == test_config.temp_dir
    # the probe leaves nothing behind
    assert os.listdir(storage.downloads_dir) == []


@pytest.mark.asyncio
async def test_falls_back_to_platform_temp_dir_on_permission_error(test_config, tmp_tempdir, monkeypatch):
    deny_writes_under(monkeypatch, os.path.abspath(test_config.storage.downloads_dir))
    storage = StorageManager(test_config)

    resolved = storage.resolve()

    assert resolved == os.path.join(str(tmp_tempdir), test_config.storage.fallback_subdir)
    # mkdir succeeded, but that alone does not make it writable
    assert os.path.isdir(test_config.storage.downloads_dir)

    orchestrator = FetchOrchestrator([], [FakeBackend("pytubefix", chunks=[b"data"])], storage)
    saved = await orchestrator.download_to_server(MediaRequest(url=WATCH_URL))
    assert os.path.dirname(saved.path) == resolved
    assert os.path.exists(saved.path)


def test_no_writable_directory_raises_storage_unavailable(test_config, tmp_tempdir, monkeypatch):
    deny_writes_under(monkeypatch, "/")
    storage = StorageManager(test_config)

    assert storage.resolve() is None
    with pytest.raises(StorageUnavailable):
        storage.list_downloads()


def test_listing_is_stable_and_hides_dotfiles(storage):
    write_file(storage.downloads_dir, "a-1.mp4", b"12345")
    write_file(storage.downloads_dir, "b-2.mp4")
    write_file(storage.downloads_dir, ".hidden")

    first = storage.list_downloads()
    second = storage.list_downloads()

    assert first == second
    assert sorted(e.filename for e in first) == ["a-1.mp4", "b-2.mp4"]
    entry = next(e for e in first if e.filename == "a-1.mp4")
    assert entry.size == 5
    assert entry.download_url == "/downloads/a-1.mp4"
    assert entry.model_dump(by_alias=True).keys() == {"filename", "size", "created", "downloadUrl"}


def test_delete_download(storage):
    path = write_file(storage.downloads_dir, "gone-1.mp4")

    storage.delete_download("gone-1.mp4")

    assert not os.path.exists(path)
    with pytest.raises(DownloadNotFound):
        storage.delete_download("gone-1.mp4")


@pytest.mark.parametrize("name", ["../etc/passwd", "sub/file.mp4", ".probe", "", ".."])
def test_saved_path_rejects_non_plain_names(storage, name):
    with pytest.raises(InvalidInput):
        storage.saved_path(name)


@pytest.mark.asyncio
async def test_schedule_unlink_waits_for_delay(storage):
    path = write_file(storage.temp_dir, "video-x.mp4")

    storage.schedule_unlink(path, delay=0.1)
    assert os.path.exists(path)
    await asyncio.sleep(0.3)
    assert not os.path.exists(path)


def test_unlink_now_tolerates_missing_file(storage):
    storage.unlink_now(os.path.join(storage.temp_dir, "never-existed"))
