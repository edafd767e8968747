from .errors import (
    AllBackendsFailed,
    DownloadNotFound,
    BackendUnavailable,
    FetchError,
    InvalidInput,
    PostCommitFailure,
    StorageUnavailable,
)

__all__ = [
    "AllBackendsFailed", "BackendUnavailable", "DownloadNotFound", "FetchError", "InvalidInput",
    "PostCommitFailure", "StorageUnavailable",
]
