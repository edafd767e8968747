import os
from typing import List
from fastapi import APIRouter, Request, Depends
from fastapi.responses import FileResponse
from app.core.errors import DownloadNotFound
from app.models.request import SaveRequest
from app.models.response import DeleteResponse, SaveResponse, SavedDownload
from app.services.orchestrator import FetchOrchestrator
from app.services.storage import StorageManager
from app.core.logging import log_info
from app.api.deps import get_orchestrator, get_storage, request_id_of
from app.i18n import i18n
from app.utils.url import safe_url_for_log

router = APIRouter()
static_router = APIRouter()

@router.post("/download-to-server", response_model=SaveResponse)
async def download_to_server(
    request: Request,
    save_request: SaveRequest,
    orchestrator: FetchOrchestrator = Depends(get_orchestrator)
):
    """Save a video into the managed downloads directory"""
    media_request = save_request.to_media_request(request_id_of(request))
    log_info(request, f"Saving {safe_url_for_log(str(save_request.url))} to server")

    saved = await orchestrator.download_to_server(media_request)
    filename = os.path.basename(saved.path)
    log_info(request, f"Saved {filename}")
    return SaveResponse(success=True, filename=filename, path=saved.path)

@router.get("/downloads", response_model=List[SavedDownload])
async def list_downloads(storage: StorageManager = Depends(get_storage)):
    """Files currently in the managed downloads directory"""
    return storage.list_downloads()

@router.delete("/downloads/{filename}", response_model=DeleteResponse)
async def delete_download(
    request: Request,
    filename: str,
    storage: StorageManager = Depends(get_storage)
):
    storage.delete_download(filename)
    log_info(request, f"Deleted {filename}")
    return DeleteResponse(success=True)

@static_router.get("/downloads/{filename}")
async def serve_download(filename: str, storage: StorageManager = Depends(get_storage)):
    """Static serving of a previously saved file"""
    path = storage.saved_path(filename)
    if not os.path.isfile(path):
        raise DownloadNotFound(i18n.get("error.missing_file", filename=filename))
    return FileResponse(path, filename=filename)
