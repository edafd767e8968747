import re
import time
import unicodedata
from typing import Optional


def sanitize_filename(name: str, max_bytes: int = 200) -> str:
    """
    Sanitize filename for cross-platform compatibility.
    Length is capped in UTF-8 bytes; filesystems limit names to 255 bytes,
    and the timestamp suffix and extension still have to fit.
    """
    name = unicodedata.normalize("NFKC", name)
    name = re.sub(r'[\\/:*?"<>|\x00-\x1f\x7f]', '_', name)
    name = re.sub(r'\s+', ' ', name).strip(' .')

    windows_reserved = {
        'CON', 'PRN', 'AUX', 'NUL',
        'COM1', 'COM2', 'COM3', 'COM4', 'COM5', 'COM6', 'COM7', 'COM8', 'COM9',
        'LPT1', 'LPT2', 'LPT3', 'LPT4', 'LPT5', 'LPT6', 'LPT7', 'LPT8', 'LPT9'
    }
    if name.upper() in windows_reserved:
        name = f"_{name}"

    encoded = name.encode("utf-8")
    if len(encoded) > max_bytes:
        name = encoded[:max_bytes].decode("utf-8", errors="ignore")

    return name.strip(" .")


def build_download_filename(
    title: Optional[str],
    audio_only: bool,
    extension: str,
    now_ms: Optional[int] = None
) -> str:
    """
    <sanitized-title>-<unixTimeMillis>.<ext>, or {video|audio}-<unixTimeMillis>.<ext>
    when no usable title is known. Two calls in the same millisecond collide.
    """
    stamp = now_ms if now_ms is not None else int(time.time() * 1000)
    stem = sanitize_filename(title) if title else ""
    if not stem:
        stem = "audio" if audio_only else "video"
    ext = extension.lstrip(".") or ("mp3" if audio_only else "mp4")
    return f"{stem}-{stamp}.{ext}"


def ascii_fallback(name: str) -> str:
    """ASCII-only rendition for the plain filename= parameter"""
    folded = unicodedata.normalize("NFKD", name).encode("ascii", "ignore").decode("ascii")
    folded = folded.replace('"', "'").replace("\\", "_")
    return folded or "download"
