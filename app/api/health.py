from fastapi import APIRouter

from app.config.settings import config
from app.core.state import state
from app.i18n import i18n

router = APIRouter()


@router.get("/")
async def root():
    """Root endpoint"""
    return {
        "status": i18n.get("response.status_running"),
        "service": config.api.title,
        "version": config.api.version,
        "ytdlp_version": state.provisioner.version if state.provisioner else "unknown",
    }


@router.get("/health")
async def health_check():
    """Liveness plus the resolved directories and extractor"""
    redis_status = i18n.get("response.redis_disabled")
    if state.redis:
        try:
            await state.redis.ping()
            redis_status = i18n.get("response.redis_connected")
        except Exception:
            redis_status = i18n.get("response.redis_disconnected")

    storage = state.storage
    provisioner = state.provisioner
    return {
        "status": i18n.get("health.status"),
        "downloads_dir": storage.downloads_dir if storage else None,
        "temp_dir": storage.temp_dir if storage else None,
        "ytdlp_path": provisioner.path if provisioner else None,
        "ytdlp_version": provisioner.version if provisioner else "unknown",
        "cookies": state.cookies_present,
        "redis": redis_status,
    }
