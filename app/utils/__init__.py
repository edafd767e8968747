from .filename import ascii_fallback, build_download_filename, sanitize_filename
from .hash import hash_stable, metadata_cache_key

__all__ = ["ascii_fallback", "build_download_filename", "hash_stable", "sanitize_filename"]
