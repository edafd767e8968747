from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional
from redis.asyncio import Redis

if TYPE_CHECKING:
    from app.services.binary import YtDlpProvisioner
    from app.services.orchestrator import FetchOrchestrator
    from app.services.storage import StorageManager

@dataclass
class RuntimeState:
    """Centralized runtime state, written once at startup"""
    redis: Optional[Redis] = None
    storage: Optional["StorageManager"] = None
    provisioner: Optional["YtDlpProvisioner"] = None
    orchestrator: Optional["FetchOrchestrator"] = None
    cookies_present: bool = False

state = RuntimeState()
