import asyncio
import logging
import os
import uuid
from contextlib import suppress
from datetime import datetime, timezone
from typing import AsyncIterator, List, Optional
from urllib.parse import quote

import aiofiles

from app.config.settings import Config
from app.core.errors import DownloadNotFound, InvalidInput, StorageUnavailable
from app.models.internal import EphemeralFile, StreamHandle
from app.models.response import SavedDownload

logger = logging.getLogger(__name__)

CHUNK_SIZE = 256 * 1024
PROBE_PREFIX = ".write-probe-"


class StorageManager:
    """
    Owns the downloads directory (permanent saves) and the temp directory
    (transient download-then-stream files).
    Directories are resolved once at startup and never change afterwards.
    """

    def __init__(self, config: Config):
        self.primary_dir = os.path.abspath(config.storage.downloads_dir)
        self.fallback_dir = config.fallback_downloads_dir
        self.temp_root = config.temp_dir
        self.cleanup_delay = config.storage.cleanup_delay_seconds
        self.chunk_size = config.download.chunk_size or CHUNK_SIZE
        self.downloads_dir: Optional[str] = None
        self.temp_dir: Optional[str] = None

    def resolve(self) -> Optional[str]:
        """Pick the first writable directory: configured one, then the platform temp dir."""
        for candidate in (self.primary_dir, self.fallback_dir):
            if self._is_writable(candidate):
                if candidate != self.primary_dir:
                    logger.warning(f"Downloads directory {self.primary_dir} is not writable, using {candidate}")
                self.downloads_dir = candidate
                break
        else:
            logger.error("No writable downloads directory available")
            self.downloads_dir = None

        self.temp_dir = self.temp_root if self._is_writable(self.temp_root) else None
        if self.temp_dir is None:
            logger.error(f"Temp directory {self.temp_root} is not writable")
        return self.downloads_dir

    def _is_writable(self, directory: str) -> bool:
        """mkdir succeeding is not enough; create and remove a marker file."""
        try:
            os.makedirs(directory, exist_ok=True)
            probe = os.path.join(directory, f"{PROBE_PREFIX}{uuid.uuid4().hex}")
            with open(probe, "wb") as f:
                f.write(b"ok")
            os.remove(probe)
            return True
        except OSError as e:
            logger.warning(f"Write probe failed for {directory}: {e}")
            return False

    def require_downloads_dir(self) -> str:
        if not self.downloads_dir:
            raise StorageUnavailable("No writable downloads directory")
        return self.downloads_dir

    def require_temp_dir(self) -> str:
        if not self.temp_dir:
            raise StorageUnavailable("No writable temp directory")
        return self.temp_dir

    def saved_path(self, filename: str) -> str:
        """Absolute path of a saved download; rejects anything that is not a plain file name."""
        directory = self.require_downloads_dir()
        name = os.path.basename(filename or "")
        if not name or name != filename or name.startswith(".") or name in (".", ".."):
            raise InvalidInput(f"Invalid filename: {filename!r}")
        return os.path.join(directory, name)

    def list_downloads(self) -> List[SavedDownload]:
        directory = self.require_downloads_dir()
        entries = []
        with os.scandir(directory) as it:
            for entry in it:
                if entry.name.startswith(".") or not entry.is_file():
                    continue
                st = entry.stat()
                entries.append(SavedDownload(
                    filename=entry.name,
                    size=st.st_size,
                    created=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc).isoformat(),
                    download_url=f"/downloads/{quote(entry.name)}",
                ))
        entries.sort(key=lambda e: (e.created, e.filename), reverse=True)
        return entries

    def delete_download(self, filename: str) -> None:
        path = self.saved_path(filename)
        try:
            os.remove(path)
        except FileNotFoundError:
            raise DownloadNotFound(f"No such download: {filename}")
        except OSError as e:
            raise StorageUnavailable(f"Failed to delete {filename}: {e}")
        logger.info(f"Deleted saved download {filename}")

    def unlink_now(self, path: str) -> None:
        """Best effort; failures are logged, never raised."""
        try:
            os.remove(path)
            logger.debug(f"Cleaned up {path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove {path}: {e}")

    def schedule_unlink(self, path: str, delay: Optional[float] = None) -> None:
        """Delete ``path`` after a short delay so the read handle is fully released first."""
        delay = self.cleanup_delay if delay is None else delay
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.unlink_now(path)
            return
        loop.call_later(delay, self.unlink_now, path)

    def open_transient(self, file: EphemeralFile) -> StreamHandle:
        """Stream a download-then-stream artifact; the file is unlinked once the stream ends."""
        size = os.path.getsize(file.path)
        ext = os.path.splitext(file.path)[1].lstrip(".") or "bin"
        chunk_size = self.chunk_size

        async def generate() -> AsyncIterator[bytes]:
            async with aiofiles.open(file.path, "rb") as f:
                while True:
                    chunk = await f.read(chunk_size)
                    if not chunk:
                        break
                    yield chunk

        chunks = generate()

        async def close() -> None:
            with suppress(Exception):
                await chunks.aclose()
            if file.transient:
                self.schedule_unlink(file.path)

        return StreamHandle(
            chunks=chunks,
            media_type=file.media_type,
            extension=ext,
            source=file.source,
            title=file.title,
            content_length=size,
            closer=close,
        )

    async def save_stream(self, handle: StreamHandle, filename: str) -> str:
        """
        Write a stream into the downloads directory.
        Returns only after the file is fully written; a partial file is removed on error.
        """
        path = self.saved_path(filename)
        try:
            async with aiofiles.open(path, "wb") as out:
                async for chunk in handle.chunks:
                    await out.write(chunk)
        except BaseException:
            self.unlink_now(path)
            raise
        finally:
            await handle.aclose()
        logger.info(f"Saved {filename} ({os.path.getsize(path)} bytes)")
        return path
