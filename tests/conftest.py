"""
Shared fixtures.

No test touches the network or spawns a real extractor: backends are
replaced by ``FakeBackend`` instances and subprocess calls are patched.
"""
import os
import tempfile
from typing import List, Optional

import pytest

from app.config.settings import Config
from app.models.internal import EphemeralFile, MediaMetadata, MediaRequest, StreamHandle
from app.services.backends import ExtractorBackend
from app.services.orchestrator import FetchOrchestrator
from app.services.storage import StorageManager

WATCH_URL = "https://www.youtube.com/watch?v=abc123XYZ"
SHORTS_URL = "https://youtube.com/shorts/abc123XYZ"


class FakeBackend(ExtractorBackend):
    """Scripted backend that records every call"""

    def __init__(
        self,
        name: str,
        metadata: Optional[MediaMetadata] = None,
        chunks: Optional[List[bytes]] = None,
        file_path: Optional[str] = None,
        error: Optional[Exception] = None,
        fail_after: Optional[int] = None,
        title: Optional[str] = "Clip",
    ):
        self.name = name
        self.metadata = metadata
        self.chunks = chunks
        self.file_path = file_path
        self.error = error
        self.fail_after = fail_after
        self.title = title
        self.calls = 0
        self.closed_handles = 0

    async def fetch_metadata(self, request: MediaRequest):
        self.calls += 1
        if self.error:
            raise self.error
        return self.metadata

    async def open_stream(self, request: MediaRequest):
        self.calls += 1
        if self.error:
            raise self.error
        if self.file_path:
            return EphemeralFile(path=self.file_path, transient=True, source=self.name)
        if self.chunks is None:
            return None

        chunks = list(self.chunks)
        fail_after = self.fail_after

        async def generate():
            for i, chunk in enumerate(chunks):
                if fail_after is not None and i >= fail_after:
                    raise RuntimeError("source died")
                yield chunk

        async def close():
            self.closed_handles += 1

        return StreamHandle(
            chunks=generate(),
            media_type="video/mp4",
            extension="mp4",
            source=self.name,
            title=self.title,
            closer=close,
        )


@pytest.fixture
def tmp_tempdir(tmp_path, monkeypatch):
    """Point the platform temp directory into the test's tmp_path"""
    platform_tmp = tmp_path / "platform-tmp"
    platform_tmp.mkdir()
    monkeypatch.setattr(tempfile, "tempdir", str(platform_tmp))
    return platform_tmp


@pytest.fixture
def test_config(tmp_path, tmp_tempdir):
    return Config(
        storage={
            "downloads_dir": str(tmp_path / "downloads"),
            "cleanup_delay_seconds": 0.05,
        },
        ytdlp={
            "managed_bin_dir": str(tmp_path / "bin"),
            "cookies_file": str(tmp_path / "cookies.txt"),
            "system_paths": [],
        },
        download={"first_byte_timeout_seconds": 2.0},
    )


@pytest.fixture
def storage(test_config):
    manager = StorageManager(test_config)
    manager.resolve()
    return manager


@pytest.fixture
def make_orchestrator(storage):
    def factory(metadata_backends=(), stream_backends=()):
        return FetchOrchestrator(
            metadata_backends=list(metadata_backends),
            stream_backends=list(stream_backends),
            storage=storage,
            first_byte_timeout=2.0,
        )
    return factory


def write_file(directory, name: str, data: bytes = b"media-bytes") -> str:
    path = os.path.join(str(directory), name)
    with open(path, "wb") as f:
        f.write(data)
    return path
