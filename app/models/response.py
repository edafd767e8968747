from typing import Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class SavedDownload(BaseModel):
    """Entry of the managed downloads directory"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    filename: str
    size: int
    created: str
    download_url: str


class SaveResponse(BaseModel):
    success: bool
    filename: str
    path: str


class DeleteResponse(BaseModel):
    success: bool


class ErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
