from pydantic import BaseModel, Field, validator
from typing import Optional, Union
from app.models.internal import MediaRequest, OperationKind

class InfoRequest(BaseModel):
    # Optional so a missing url reaches the orchestrator and maps to InvalidInput (400)
    url: Optional[str] = Field(None, description="YouTube watch or shorts URL")

    @validator('url')
    def strip_url(cls, v):
        return v.strip() if isinstance(v, str) else v

    def to_media_request(self, request_id: str = "unknown") -> MediaRequest:
        return MediaRequest(url=self.url, kind=OperationKind.METADATA, request_id=request_id)

class DownloadRequest(InfoRequest):
    quality: Optional[Union[int, str]] = Field(
        None,
        description="Backend format identifier, or 'highest' / 'lowest'"
    )

    @validator('quality')
    def normalize_quality(cls, v):
        """Treat blank quality as unspecified"""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            if v.lower() in ("highest", "lowest"):
                return v.lower()
        return v

    def to_media_request(self, kind: OperationKind = OperationKind.VIDEO_DOWNLOAD, request_id: str = "unknown") -> MediaRequest:
        return MediaRequest(url=self.url, kind=kind, quality=self.quality, request_id=request_id)

class SaveRequest(InfoRequest):
    filename: Optional[str] = Field(None, description="Optional filename hint for the saved file")

    def to_media_request(self, request_id: str = "unknown") -> MediaRequest:
        return MediaRequest(
            url=self.url,
            kind=OperationKind.VIDEO_DOWNLOAD,
            filename_hint=self.filename,
            request_id=request_id
        )
