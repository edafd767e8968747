from fastapi import APIRouter, Request, Depends
from app.config.settings import config
from app.models.internal import MediaMetadata
from app.models.request import InfoRequest
from app.services.info import VideoInfoService
from app.services.orchestrator import FetchOrchestrator
from app.core.logging import log_info
from app.api.deps import get_orchestrator, request_id_of
from app.utils.url import safe_url_for_log

router = APIRouter()

@router.post("/video-info", response_model=MediaMetadata)
async def get_video_info(
    request: Request,
    video_request: InfoRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator)
):
    """Video metadata; lenient for any syntactically valid YouTube URL"""
    media_request = video_request.to_media_request(request_id_of(request))
    log_info(request, f"Fetching info for {safe_url_for_log(str(video_request.url))}")

    metadata = await VideoInfoService.fetch(orchestrator, media_request, ttl=config.redis.info_cache_ttl)
    log_info(request, f"Info retrieved: {metadata.title}")
    return metadata
