from fastapi import HTTPException
from app.core.state import state
from app.services.orchestrator import FetchOrchestrator
from app.services.storage import StorageManager

def get_orchestrator() -> FetchOrchestrator:
    if state.orchestrator is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return state.orchestrator

def get_storage() -> StorageManager:
    if state.storage is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return state.storage

def request_id_of(request) -> str:
    return getattr(request.state, "request_id", "unknown")
