import hashlib
import re

VIDEO_ID_PATTERN = re.compile(r"(?:[?&]v=|/shorts/|youtu\.be/)([\w-]{6,})")

def hash_stable(data: str) -> str:
    """Create stable hash using SHA256"""
    return hashlib.sha256(data.encode()).hexdigest()[:16]

def metadata_cache_key(url: str) -> str:
    """Watch, shorts and youtu.be forms of one video share a key"""
    match = VIDEO_ID_PATTERN.search(url)
    return f"info:{hash_stable(match.group(1) if match else url.strip())}"
