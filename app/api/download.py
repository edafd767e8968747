from fastapi import APIRouter, Request, Depends
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from app.models.internal import OperationKind
from app.models.request import DownloadRequest
from app.services.orchestrator import FetchOrchestrator, stream_body
from app.core.logging import log_info
from app.api.deps import get_orchestrator, request_id_of
from app.utils.url import safe_url_for_log

router = APIRouter()

async def _stream(
    request: Request,
    video_request: DownloadRequest,
    kind: OperationKind,
    orchestrator: FetchOrchestrator
) -> StreamingResponse:
    request_id = request_id_of(request)
    media_request = video_request.to_media_request(kind, request_id)
    log_info(request, f"Starting {kind.value} download for {safe_url_for_log(str(video_request.url))}")

    # Raises InvalidInput / AllBackendsFailed before any header is sent
    committed = await orchestrator.resolve_stream(media_request)

    headers = dict(committed.headers)
    media_type = headers.pop('Content-Type', 'application/octet-stream')
    return StreamingResponse(
        stream_body(committed, request_id),
        media_type=media_type,
        headers=headers,
        # Idempotent; covers responses whose body never started
        background=BackgroundTask(committed.handle.aclose)
    )

@router.post("/download")
async def download_video(
    request: Request,
    video_request: DownloadRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator)
):
    """Stream a video to the caller"""
    return await _stream(request, video_request, OperationKind.VIDEO_DOWNLOAD, orchestrator)

@router.post("/download-audio")
async def download_audio(
    request: Request,
    video_request: DownloadRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator)
):
    """Stream the best audio track to the caller"""
    return await _stream(request, video_request, OperationKind.AUDIO_DOWNLOAD, orchestrator)
