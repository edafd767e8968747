from typing import List, Optional

from app.models.internal import FormatDescriptor, MediaMetadata, MediaRequest

SENTINELS = ("highest", "lowest")

class FormatDecision:
    """Make yt-dlp format decisions"""

    @staticmethod
    def decide(request: MediaRequest) -> str:
        """Decide format string based on the request's kind and quality"""
        quality = request.quality
        default = FormatDecision.default_for(request)

        if quality is not None and str(quality).lower() not in SENTINELS:
            # Backend-specific format id; fall back to the default if it does not exist
            if request.audio_only:
                return f"{quality}/{default}"
            return f"{quality}+bestaudio/{quality}/{default}"

        if quality == "lowest":
            if request.audio_only:
                return "worstaudio/worst"
            return "worstvideo+worstaudio/worst"

        return default

    @staticmethod
    def default_for(request: MediaRequest) -> str:
        if request.audio_only:
            return "bestaudio[ext=m4a]/bestaudio/best"
        # Merge best video and best audio; progressive 'best' when merging is not possible
        return "bestvideo+bestaudio/best"

    @staticmethod
    def stream_extension(request: MediaRequest) -> str:
        return "m4a" if request.audio_only else "mp4"


def _codec_present(codec: Optional[str]) -> bool:
    return bool(codec) and codec != "none"


def formats_from_ytdlp(info: dict) -> List[FormatDescriptor]:
    """Normalize the ``formats`` list of a yt-dlp info dict"""
    descriptors = []
    for f in info.get("formats") or []:
        vcodec = f.get("vcodec")
        acodec = f.get("acodec")
        label = f.get("format_note") or f.get("resolution")
        if not label and f.get("height"):
            label = f"{f['height']}p"
        descriptors.append(FormatDescriptor(
            quality_label=label,
            container=f.get("ext"),
            has_audio=_codec_present(acodec),
            has_video=_codec_present(vcodec),
            format_id=f.get("format_id"),
        ))
    return descriptors


def _as_int(value) -> Optional[int]:
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _iso_date(value: Optional[str]) -> Optional[str]:
    """yt-dlp reports YYYYMMDD"""
    if value and len(value) == 8 and value.isdigit():
        return f"{value[:4]}-{value[4:6]}-{value[6:]}"
    return value or None


def metadata_from_ytdlp(info: dict) -> MediaMetadata:
    return MediaMetadata(
        title=info.get("title") or None,
        author=info.get("uploader") or info.get("channel") or None,
        duration_seconds=_as_int(info.get("duration")),
        view_count=_as_int(info.get("view_count")),
        thumbnail_url=info.get("thumbnail") or None,
        description=info.get("description") or None,
        upload_date=_iso_date(info.get("upload_date")),
        formats=formats_from_ytdlp(info),
    )
