from typing import Optional


class FetchError(Exception):
    """Base class for errors that cross the HTTP boundary"""

    status_code = 500
    code = "internal_error"

    def __init__(self, message: Optional[str] = None, *, cause: Optional[BaseException] = None):
        super().__init__(message or self.code)
        self.message = message
        self.cause = cause

    def to_payload(self, error: Optional[str] = None) -> dict:
        payload = {"error": error or self.code}
        if self.message:
            payload["message"] = self.message
        return payload


class InvalidInput(FetchError):
    """Missing or malformed URL. No backend is attempted."""

    status_code = 400
    code = "invalid_input"


class BackendUnavailable(FetchError):
    """A single backend attempt failed; the orchestrator moves on."""

    code = "backend_unavailable"

    def __init__(self, backend: str, message: Optional[str] = None, *, cause: Optional[BaseException] = None):
        super().__init__(message, cause=cause)
        self.backend = backend

    def __str__(self) -> str:
        return f"{self.backend}: {self.message or self.code}"


class AllBackendsFailed(FetchError):
    """Every strategy was exhausted before any header was committed."""

    code = "all_backends_failed"

    def __init__(self, message: Optional[str] = None, failures: Optional[list] = None):
        super().__init__(message)
        self.failures = failures or []


class PostCommitFailure(FetchError):
    """Failure after bytes reached the client. Logged only, never rendered."""

    code = "post_commit_failure"


class StorageUnavailable(FetchError):
    """No writable directory for a permanent save."""

    code = "storage_unavailable"


class DownloadNotFound(FetchError):
    """A saved download that does not exist"""

    status_code = 404
    code = "not_found"
