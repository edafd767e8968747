"""
Extractor backends.

Every backend exposes ``attempt(request)`` and never raises: the outcome is a
``BackendResult`` carrying either the value (``MediaMetadata``, an open
``StreamHandle`` or a finished ``EphemeralFile``) or a ``BackendUnavailable``.
"""
import asyncio
import json
import logging
import os
import uuid
from collections import deque
from contextlib import suppress
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx
import yt_dlp

from app.config.settings import DownloadConfig, YtDlpConfig
from app.models.internal import (
    BackendResult,
    EphemeralFile,
    FormatDescriptor,
    MediaMetadata,
    MediaRequest,
    OperationKind,
    StreamHandle,
)
from app.services.format import FormatDecision, metadata_from_ytdlp
from app.services.storage import StorageManager
from app.services.ytdlp import SubprocessExecutor, YTDLPCommandBuilder

logger = logging.getLogger(__name__)

STDERR_MAX_LINES = 50
STDERR_DRAIN_TIMEOUT = 2.0

UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/122.0.0.0 Safari/537.36"
)

ExecutableResolver = Callable[[], Awaitable[Optional[str]]]


class ExtractorBackend:
    """Common shape of a strategy the orchestrator iterates over"""

    name = "backend"

    async def attempt(self, request: MediaRequest) -> BackendResult:
        try:
            if request.kind == OperationKind.METADATA:
                value = await self.fetch_metadata(request)
            else:
                value = await self.open_stream(request)
        except NotImplementedError:
            return BackendResult.failure(self.name, f"does not support {request.kind.value}")
        except Exception as e:
            return BackendResult.failure(self.name, str(e) or type(e).__name__, e)

        if value is None:
            return BackendResult.failure(self.name, "no result")
        return BackendResult.success(value)

    async def fetch_metadata(self, request: MediaRequest) -> Optional[MediaMetadata]:
        raise NotImplementedError

    async def open_stream(self, request: MediaRequest):
        raise NotImplementedError

    async def aclose(self) -> None:
        pass


class DirectLibraryBackend(ExtractorBackend):
    """pytubefix: in-process metadata and a direct HTTP stream of the chosen itag"""

    name = "pytubefix"

    def __init__(
        self,
        download: DownloadConfig,
        client: Optional[httpx.AsyncClient] = None,
        youtube_factory: Optional[Callable[[str], object]] = None,
    ):
        self.chunk_size = download.chunk_size
        self._client = client
        self._youtube_factory = youtube_factory

    @property
    def client(self) -> httpx.AsyncClient:
        # Reuse client for keep-alive
        if self._client is None:
            self._client = httpx.AsyncClient(follow_redirects=True, timeout=30.0)
        return self._client

    def _youtube(self, url: str):
        if self._youtube_factory is not None:
            return self._youtube_factory(url)
        from pytubefix import YouTube
        return YouTube(url)

    def _describe(self, url: str) -> MediaMetadata:
        yt = self._youtube(url)
        formats = []
        for s in yt.streams:
            formats.append(FormatDescriptor(
                quality_label=s.resolution or s.abr,
                container=s.subtype,
                has_audio=bool(s.includes_audio_track),
                has_video=bool(s.includes_video_track),
                format_id=s.itag,
            ))
        publish_date = getattr(yt, "publish_date", None)
        return MediaMetadata(
            title=yt.title or None,
            author=yt.author or None,
            duration_seconds=yt.length,
            view_count=yt.views,
            thumbnail_url=yt.thumbnail_url,
            description=yt.description,
            upload_date=publish_date.date().isoformat() if publish_date else None,
            formats=formats,
        )

    async def fetch_metadata(self, request: MediaRequest) -> Optional[MediaMetadata]:
        return await asyncio.to_thread(self._describe, request.url)

    @staticmethod
    def pick_stream(streams, request: MediaRequest):
        """Explicit itag first, then the sentinel (or default 'highest') for the requested kind."""
        quality = request.quality
        if quality is not None and str(quality).lower() not in ("highest", "lowest"):
            try:
                stream = streams.get_by_itag(int(quality))
            except (TypeError, ValueError):
                stream = None
            if stream is not None:
                return stream

        lowest = quality == "lowest"
        if request.audio_only:
            audio = streams.filter(only_audio=True).order_by("abr")
            return audio.first() if lowest else audio.desc().first()
        if lowest:
            return streams.get_lowest_resolution()
        return streams.get_highest_resolution()

    def _resolve_stream(self, request: MediaRequest) -> Tuple[str, object]:
        yt = self._youtube(request.url)
        stream = self.pick_stream(yt.streams, request)
        if stream is None:
            raise LookupError("no matching stream")
        return yt.title, stream

    async def open_stream(self, request: MediaRequest) -> Optional[StreamHandle]:
        title, stream = await asyncio.to_thread(self._resolve_stream, request)

        req = self.client.build_request("GET", stream.url, headers={"User-Agent": UA, "Accept": "*/*"})
        response = await self.client.send(req, stream=True)
        if response.status_code not in (200, 206):
            await response.aclose()
            raise RuntimeError(f"upstream returned HTTP {response.status_code}")

        content_length = response.headers.get("content-length")
        extension = stream.subtype or "mp4"
        if request.audio_only and extension == "mp4":
            extension = "m4a"

        return StreamHandle(
            chunks=response.aiter_bytes(self.chunk_size),
            media_type=stream.mime_type or "application/octet-stream",
            extension=extension,
            source=self.name,
            title=title,
            content_length=int(content_length) if content_length and content_length.isdigit() else None,
            closer=response.aclose,
        )

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


class MetadataLibraryBackend(ExtractorBackend):
    """yt-dlp as a library: metadata only"""

    name = "yt-dlp-library"

    def __init__(self, settings: YtDlpConfig, ydl_factory: Optional[Callable[[dict], object]] = None):
        self.settings = settings
        self._ydl_factory = ydl_factory or yt_dlp.YoutubeDL

    def options(self) -> dict:
        opts = {
            "quiet": True,
            "no_warnings": True,
            "skip_download": True,
            "noplaylist": True,
            "socket_timeout": self.settings.socket_timeout,
            "retries": self.settings.retries,
        }
        cookies = self.settings.cookies_file
        if cookies and os.path.isfile(cookies):
            opts["cookiefile"] = cookies
        return opts

    def _extract(self, url: str) -> MediaMetadata:
        with self._ydl_factory(self.options()) as ydl:
            info = ydl.extract_info(url, download=False)
            info = ydl.sanitize_info(info)
        return metadata_from_ytdlp(info or {})

    async def fetch_metadata(self, request: MediaRequest) -> Optional[MediaMetadata]:
        return await asyncio.to_thread(self._extract, request.url)


class ExternalProcessBackend(ExtractorBackend):
    """The yt-dlp executable, talking over stdout (JSON dump or raw media bytes)"""

    name = "yt-dlp-process"

    def __init__(self, resolve_executable: ExecutableResolver, settings: YtDlpConfig, download: DownloadConfig):
        self.resolve_executable = resolve_executable
        self.settings = settings
        self.download = download

    async def builder(self) -> YTDLPCommandBuilder:
        path = await self.resolve_executable()
        if not path:
            raise FileNotFoundError("yt-dlp executable unavailable")
        return YTDLPCommandBuilder(path, self.settings)

    async def fetch_metadata(self, request: MediaRequest) -> Optional[MediaMetadata]:
        cmd = (await self.builder()).build_info_command(request.url)
        result = await SubprocessExecutor.run(cmd, timeout=self.download.info_timeout_seconds)
        if result.returncode != 0:
            error_msg = result.stderr.decode(errors="ignore").strip()
            raise RuntimeError(f"exited {result.returncode}: {error_msg[:200]}")
        info = json.loads(result.stdout.decode(errors="ignore"))
        return metadata_from_ytdlp(info)

    async def open_stream(self, request: MediaRequest) -> Optional[StreamHandle]:
        cmd = (await self.builder()).build_stream_command(request.url, FormatDecision.decide(request))

        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            stdin=asyncio.subprocess.DEVNULL
        )

        stderr_lines = deque(maxlen=STDERR_MAX_LINES)

        async def drain_stderr():
            """Drain stderr to prevent buffer deadlock"""
            while True:
                line = await process.stderr.readline()
                if not line:
                    break
                stderr_lines.append(line.decode(errors="ignore").strip())

        stderr_task = asyncio.create_task(drain_stderr())
        chunk_size = self.download.chunk_size

        async def generate():
            while True:
                chunk = await process.stdout.read(chunk_size)
                if not chunk:
                    break
                yield chunk
            returncode = await process.wait()
            if returncode != 0:
                await asyncio.wait({stderr_task}, timeout=STDERR_DRAIN_TIMEOUT)
                error_summary = '\n'.join(stderr_lines)
                raise RuntimeError(f"yt-dlp exited {returncode}: {error_summary[:200]}")

        chunks = generate()

        async def close():
            with suppress(RuntimeError):
                await chunks.aclose()
            if process.returncode is None:
                with suppress(ProcessLookupError):
                    process.kill()
                await process.wait()
            stderr_task.cancel()
            with suppress(asyncio.CancelledError, Exception):
                await stderr_task

        return StreamHandle(
            chunks=chunks,
            media_type="application/octet-stream",
            extension=FormatDecision.stream_extension(request),
            source=self.name,
            closer=close,
        )


def newest_with_prefix(directory: str, prefix: str) -> Optional[str]:
    """Most recently modified regular file in ``directory`` whose name starts with ``prefix``"""
    matches = []
    for name in os.listdir(directory):
        if not name.startswith(prefix) or name.endswith((".part", ".ytdl")):
            continue
        path = os.path.join(directory, name)
        if os.path.isfile(path):
            matches.append((os.path.getmtime(path), path))
    if not matches:
        return None
    return max(matches)[1]


class ExternalFileBackend(ExternalProcessBackend):
    """yt-dlp writing to a uniquely named temp file, streamed afterwards"""

    name = "yt-dlp-tempfile"

    def __init__(
        self,
        resolve_executable: ExecutableResolver,
        settings: YtDlpConfig,
        download: DownloadConfig,
        storage: StorageManager,
    ):
        super().__init__(resolve_executable, settings, download)
        self.storage = storage

    async def fetch_metadata(self, request: MediaRequest) -> Optional[MediaMetadata]:
        raise NotImplementedError

    async def open_stream(self, request: MediaRequest) -> Optional[EphemeralFile]:
        temp_dir = self.storage.require_temp_dir()
        prefix = f"{request.kind.value}-{uuid.uuid4().hex}"
        template = os.path.join(temp_dir, f"{prefix}.%(ext)s")

        cmd = (await self.builder()).build_file_command(
            request.url,
            FormatDecision.decide(request),
            template,
            audio_only=request.audio_only,
            merge_format="mp4",
        )
        try:
            result = await SubprocessExecutor.run(cmd, timeout=self.download.file_timeout_seconds)
        except BaseException:
            self._discard(temp_dir, prefix)
            raise

        if result.returncode != 0:
            self._discard(temp_dir, prefix)
            error_msg = result.stderr.decode(errors="ignore").strip()
            raise RuntimeError(f"exited {result.returncode}: {error_msg[:200]}")

        path = self._printed_path(result.stdout, prefix) or newest_with_prefix(temp_dir, prefix)
        if not path:
            raise FileNotFoundError("output file not found after download")

        return EphemeralFile(
            path=path,
            transient=True,
            media_type="audio/mpeg" if request.audio_only else "application/octet-stream",
            source=self.name,
        )

    @staticmethod
    def _printed_path(stdout: bytes, prefix: str) -> Optional[str]:
        lines: List[str] = [l.strip() for l in stdout.decode(errors="ignore").splitlines() if l.strip()]
        for line in reversed(lines):
            if os.path.basename(line).startswith(prefix) and os.path.isfile(line):
                return line
        return None

    def _discard(self, directory: str, prefix: str) -> None:
        with suppress(OSError):
            for name in os.listdir(directory):
                if name.startswith(prefix):
                    self.storage.unlink_now(os.path.join(directory, name))
