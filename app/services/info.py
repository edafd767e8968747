import logging
from typing import Optional
from app.models.internal import MediaMetadata, MediaRequest
from app.services.orchestrator import FetchOrchestrator
from app.infra.redis import get_redis
from app.utils.hash import metadata_cache_key

logger = logging.getLogger(__name__)

INFO_CACHE_TTL = 300

class VideoInfoService:
    """Metadata lookups with an optional Redis cache in front of the orchestrator"""

    @staticmethod
    async def fetch(
        orchestrator: FetchOrchestrator,
        request: MediaRequest,
        ttl: Optional[int] = None
    ) -> MediaMetadata:
        # Validate before touching the cache so invalid input never reaches it
        orchestrator.validate(request)

        cache_key = metadata_cache_key(str(request.url))
        redis = get_redis()

        if redis:
            try:
                cached = await redis.get(cache_key)
                if cached:
                    return MediaMetadata.model_validate_json(cached)
            except Exception as e:
                logger.debug(f"Metadata cache read failed: {e}")

        metadata = await orchestrator.resolve_metadata(request)

        # Only cache complete lookups; a failed introspection may succeed next time
        if redis and metadata.formats:
            try:
                await redis.setex(cache_key, ttl or INFO_CACHE_TTL, metadata.model_dump_json(by_alias=True))
            except Exception as e:
                logger.debug(f"Metadata cache write failed: {e}")

        return metadata
