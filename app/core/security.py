import re
from enum import Enum, auto
from typing import Optional

# watch / shorts / youtu.be, with or without scheme and www./m./music. host variants
YOUTUBE_URL_PATTERN = re.compile(
    r"^(?:https?://)?"
    r"(?:(?:www|m|music)\.)?"
    r"(?:"
    r"youtube\.com/watch/?\?(?:[^#\s]*&)?v=[\w-]{6,}"
    r"|youtube\.com/shorts/[\w-]{6,}"
    r"|youtu\.be/[\w-]{6,}"
    r")"
    r"(?:[?&#/][^\s]*)?$",
    re.IGNORECASE,
)


class UrlValidationResult(Enum):
    """URL validation result without throwing exceptions"""
    OK = auto()
    MISSING = auto()
    INVALID = auto()


class UrlValidator:
    """
    Syntactic check that a URL points at a YouTube video.
    No network access; the extractors decide whether the video exists.
    """

    @staticmethod
    def validate_url(url: Optional[str]) -> UrlValidationResult:
        if url is None or not str(url).strip():
            return UrlValidationResult.MISSING
        if YOUTUBE_URL_PATTERN.match(str(url).strip()):
            return UrlValidationResult.OK
        return UrlValidationResult.INVALID
