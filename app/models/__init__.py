from .internal import (
    BackendResult,
    CommittedStream,
    EphemeralFile,
    FormatDescriptor,
    MediaMetadata,
    MediaRequest,
    OperationKind,
    StreamHandle,
)
from .request import DownloadRequest, InfoRequest, SaveRequest
from .response import DeleteResponse, ErrorResponse, SaveResponse, SavedDownload

__all__ = [
    "BackendResult", "CommittedStream", "DeleteResponse", "DownloadRequest", "EphemeralFile",
    "ErrorResponse", "FormatDescriptor", "InfoRequest", "MediaMetadata", "MediaRequest",
    "OperationKind", "SaveRequest", "SaveResponse", "SavedDownload", "StreamHandle",
]
