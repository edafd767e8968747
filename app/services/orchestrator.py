"""
Fetch orchestrator: resolves one MediaRequest by walking an ordered list of
extractor backends, strictly one at a time.

Metadata is lenient: a syntactically valid URL always yields a payload.
Streams commit to the first backend that produces bytes; from that point the
response headers are fixed and no other backend is consulted.
"""
import asyncio
import logging
import os
import time
from contextlib import suppress
from dataclasses import dataclass, field
from typing import AsyncIterator, List, Optional, Sequence
from urllib.parse import quote

from app.config.settings import Config
from app.core.errors import AllBackendsFailed, FetchError, InvalidInput, PostCommitFailure, StorageUnavailable
from app.core.security import UrlValidationResult, UrlValidator
from app.models.internal import (
    CommittedStream,
    EphemeralFile,
    MediaMetadata,
    MediaRequest,
    OperationKind,
    StreamHandle,
    StreamOrFile,
)
from app.services.backends import (
    DirectLibraryBackend,
    ExternalFileBackend,
    ExternalProcessBackend,
    ExtractorBackend,
    MetadataLibraryBackend,
)
from app.services.binary import YtDlpProvisioner
from app.services.storage import StorageManager
from app.utils.filename import ascii_fallback, build_download_filename, sanitize_filename
from app.utils.url import safe_url_for_log

logger = logging.getLogger(__name__)

UNKNOWN_TITLE = "Unknown title"


@dataclass
class FetchSession:
    """Per-request bookkeeping: which backends ran and whether headers are committed"""
    request: MediaRequest
    attempted: List[str] = field(default_factory=list)
    failures: List[str] = field(default_factory=list)
    headers_committed: bool = False


class FetchOrchestrator:

    def __init__(
        self,
        metadata_backends: Sequence[ExtractorBackend],
        stream_backends: Sequence[ExtractorBackend],
        storage: StorageManager,
        first_byte_timeout: float = 60.0,
    ):
        self.metadata_backends = list(metadata_backends)
        self.stream_backends = list(stream_backends)
        self.storage = storage
        self.first_byte_timeout = first_byte_timeout

    @classmethod
    def from_config(cls, config: Config, storage: StorageManager, provisioner: YtDlpProvisioner) -> "FetchOrchestrator":
        direct = DirectLibraryBackend(config.download)
        library = MetadataLibraryBackend(config.ytdlp)
        process = ExternalProcessBackend(provisioner.ensure, config.ytdlp, config.download)
        tempfile_ = ExternalFileBackend(provisioner.ensure, config.ytdlp, config.download, storage)
        return cls(
            metadata_backends=[direct, library, process],
            # External process first: most reliable on headless hosts
            stream_backends=[process, direct, tempfile_],
            storage=storage,
            first_byte_timeout=config.download.first_byte_timeout_seconds,
        )

    @staticmethod
    def validate(request: MediaRequest) -> None:
        result = UrlValidator.validate_url(request.url)
        if result == UrlValidationResult.MISSING:
            raise InvalidInput("Missing url")
        if result == UrlValidationResult.INVALID:
            raise InvalidInput("Not a YouTube watch or shorts URL")

    async def resolve_metadata(self, request: MediaRequest) -> MediaMetadata:
        request = request.as_kind(OperationKind.METADATA)
        self.validate(request)
        safe_url = safe_url_for_log(request.url)

        merged = MediaMetadata()
        for backend in self.metadata_backends:
            result = await backend.attempt(request)
            if not result.ok:
                logger.warning(f"[{request.request_id}] metadata via {backend.name} failed for {safe_url}: {result.error}")
                continue
            merged = merged.merge(result.value)
            if merged.formats:
                logger.info(f"[{request.request_id}] metadata for {safe_url} from {backend.name} ({len(merged.formats)} formats)")
                break
            logger.info(f"[{request.request_id}] {backend.name} returned no formats for {safe_url}")

        if not merged.title:
            merged = merged.model_copy(update={"title": UNKNOWN_TITLE})
        return merged

    async def resolve_stream(self, request: MediaRequest, session: Optional[FetchSession] = None) -> CommittedStream:
        """
        Walk the stream backends until one produces its first bytes.
        Raises AllBackendsFailed if none does; headers are then never committed.
        """
        if request.kind == OperationKind.METADATA:
            request = request.as_kind(OperationKind.VIDEO_DOWNLOAD)
        self.validate(request)
        session = session or FetchSession(request=request)
        safe_url = safe_url_for_log(request.url)

        for backend in self.stream_backends:
            if session.headers_committed:
                break
            session.attempted.append(backend.name)
            result = await backend.attempt(request)
            if not result.ok:
                session.failures.append(str(result.error))
                logger.warning(f"[{request.request_id}] {request.kind.value} via {backend.name} failed for {safe_url}: {result.error}")
                continue

            handle = await self._open(result.value)
            if handle is None:
                session.failures.append(f"{backend.name}: could not open result")
                continue

            primed = await self._prime(handle, request)
            if primed is None:
                session.failures.append(f"{backend.name}: produced no bytes")
                continue

            session.headers_committed = True
            filename = build_download_filename(primed.title, request.audio_only, primed.extension)
            logger.info(f"[{request.request_id}] committed to {backend.name} for {safe_url} as {filename}")
            return CommittedStream(
                handle=primed,
                headers=self.response_headers(primed, filename),
                filename=filename,
                attempted=list(session.attempted),
            )

        logger.error(f"[{request.request_id}] all backends failed for {safe_url}: {session.failures}")
        raise AllBackendsFailed(
            "; ".join(session.failures) or "no backend produced any data",
            failures=session.failures,
        )

    async def _open(self, value: StreamOrFile) -> Optional[StreamHandle]:
        if isinstance(value, StreamHandle):
            return value
        if isinstance(value, EphemeralFile):
            try:
                return self.storage.open_transient(value)
            except OSError as e:
                logger.warning(f"Could not open {value.path}: {e}")
                if value.transient:
                    self.storage.schedule_unlink(value.path)
        return None

    async def _prime(self, handle: StreamHandle, request: MediaRequest) -> Optional[StreamHandle]:
        """Read the first chunk before committing; an empty or failing source is a backend failure."""
        try:
            first = await asyncio.wait_for(handle.chunks.__anext__(), timeout=self.first_byte_timeout)
        except StopAsyncIteration:
            first = b""
        except Exception as e:
            logger.warning(f"[{request.request_id}] {handle.source} failed before first byte: {e}")
            first = b""

        if not first:
            await handle.aclose()
            return None

        rest = handle.chunks

        async def chained() -> AsyncIterator[bytes]:
            yield first
            async for chunk in rest:
                yield chunk

        chunks = chained()
        original_close = handle.aclose

        async def close() -> None:
            with suppress(RuntimeError):
                await chunks.aclose()
            await original_close()

        return StreamHandle(
            chunks=chunks,
            media_type=handle.media_type,
            extension=handle.extension,
            source=handle.source,
            title=handle.title,
            content_length=handle.content_length,
            closer=close,
        )

    @staticmethod
    def response_headers(handle: StreamHandle, filename: str) -> dict:
        headers = {
            'Content-Type': handle.media_type,
            'Content-Disposition': (
                f'attachment; filename="{ascii_fallback(filename)}"; '
                f"filename*=UTF-8''{quote(filename)}"
            ),
            'X-Content-Type-Options': 'nosniff',
            'Cache-Control': 'no-cache',
            'X-Extractor-Backend': handle.source,
        }
        if handle.content_length:
            headers['Content-Length'] = str(handle.content_length)
        return headers

    async def download_to_server(self, request: MediaRequest) -> EphemeralFile:
        """Same selection policy as a video download, written into the downloads directory."""
        request = request.as_kind(OperationKind.VIDEO_DOWNLOAD)
        self.validate(request)
        self.storage.require_downloads_dir()

        committed = await self.resolve_stream(request)
        filename = committed.filename
        if request.filename_hint:
            stem = sanitize_filename(os.path.splitext(request.filename_hint)[0])
            if stem:
                filename = build_download_filename(stem, False, committed.handle.extension)

        # Nothing has reached the caller yet, so write failures are reported
        try:
            path = await self.storage.save_stream(committed.handle, filename)
        except FetchError:
            raise
        except OSError as e:
            raise StorageUnavailable(f"Failed to write {filename}: {e}", cause=e)
        except Exception as e:
            raise AllBackendsFailed(f"{committed.handle.source} failed while saving {filename}: {e}")
        return EphemeralFile(
            path=path,
            transient=False,
            media_type=committed.handle.media_type,
            title=committed.handle.title,
            source=committed.handle.source,
        )

    async def aclose(self) -> None:
        seen = set()
        for backend in self.metadata_backends + self.stream_backends:
            if id(backend) in seen:
                continue
            seen.add(id(backend))
            with suppress(Exception):
                await backend.aclose()


async def stream_body(committed: CommittedStream, request_id: str = "unknown") -> AsyncIterator[bytes]:
    """
    Response body for a committed stream. Errors after this point truncate the
    response and are only logged; the handle is closed exactly once, including
    when the client disconnects.
    """
    sent = 0
    started = time.monotonic()
    try:
        async for chunk in committed.handle.chunks:
            sent += len(chunk)
            yield chunk
    except asyncio.CancelledError:
        logger.info(f"[{request_id}] client disconnected after {sent} bytes of {committed.filename}")
        raise
    except Exception as e:
        failure = PostCommitFailure(f"after {sent} bytes of {committed.filename}: {e}", cause=e)
        logger.error(f"[{request_id}] {failure.code} {failure.message}")
    else:
        logger.info(f"[{request_id}] sent {committed.filename} ({sent} bytes in {time.monotonic() - started:.1f}s)")
    finally:
        await committed.handle.aclose()
