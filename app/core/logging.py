from fastapi import Request
import logging
from typing import Any, Optional
from rich.logging import RichHandler
from app.config.settings import LoggingConfig

logger = logging.getLogger("app")

def setup_logging(settings: LoggingConfig) -> None:
    """Install the root handler once; rich console output unless disabled."""
    root = logging.getLogger()
    if getattr(root, "_app_logging_configured", False):
        root.setLevel(settings.level)
        return

    if settings.enable_rich:
        handler: logging.Handler = RichHandler(rich_tracebacks=True, show_path=False)
        handler.setFormatter(logging.Formatter(settings.format))
    else:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s"
        ))

    root.addHandler(handler)
    root.setLevel(settings.level)
    root._app_logging_configured = True

def log_with_context(
    request: Optional[Request],
    level: int,
    message: str,
    **kwargs: Any
) -> None:
    """
    Log with request context.
    Automatically includes request_id for tracing.
    """
    request_id = "unknown"
    if request is not None:
        request_id = getattr(request.state, "request_id", "unknown")
    extra = {
        "request_id": request_id,
        **kwargs
    }
    logger.log(level, f"[{request_id}] {message}", extra=extra)

def log_info(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.INFO, message, **kwargs)

def log_error(request: Request, message: str, **kwargs: Any) -> None:
    log_with_context(request, logging.ERROR, message, **kwargs)
