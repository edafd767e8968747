from urllib.parse import urlparse
from app.config.settings import config

def safe_url_for_log(url: str) -> str:
    """Safe URL for logging; the query is only kept at DEBUG level"""
    try:
        # Scheme-less input would otherwise land entirely in the path
        parsed = urlparse(url if "://" in url else f"//{url}")
        base_url = f"{parsed.netloc}{parsed.path}"
        if parsed.scheme:
            base_url = f"{parsed.scheme}://{base_url}"

        if config.logging.level == "DEBUG" and parsed.query:
            return f"{base_url}?{parsed.query}"

        return base_url
    except (TypeError, ValueError):
        return "invalid_url"
