import pytest

from app.config.settings import config
from app.core.security import UrlValidationResult, UrlValidator
from app.utils.filename import ascii_fallback, build_download_filename, sanitize_filename
from app.utils.hash import metadata_cache_key
from app.utils.url import safe_url_for_log


@pytest.mark.parametrize("url", [
    "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
    "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
    "http://m.youtube.com/watch?v=dQw4w9WgXcQ&t=10",
    "youtube.com/shorts/abc123XYZ",
    "https://www.youtube.com/shorts/abc123XYZ?feature=share",
    "https://youtu.be/dQw4w9WgXcQ",
])
def test_accepts_youtube_video_urls(url):
    assert UrlValidator.validate_url(url) == UrlValidationResult.OK


@pytest.mark.parametrize("url", [
    "https://example.com/watch?v=dQw4w9WgXcQ",
    "https://www.youtube.com/playlist?list=PL123",
    "https://www.youtube.com/channel/UC123456",
    "https://www.youtube.com.evil.test/watch?v=dQw4w9WgXcQ",
    "not a url",
])
def test_rejects_other_urls(url):
    assert UrlValidator.validate_url(url) == UrlValidationResult.INVALID


@pytest.mark.parametrize("url", [None, "", "   "])
def test_missing_url(url):
    assert UrlValidator.validate_url(url) == UrlValidationResult.MISSING


def test_sanitize_filename_strips_reserved_characters():
    assert sanitize_filename('a/b:c*?"<>|d') == "a_b_c______d"
    assert sanitize_filename("  spaced    out. ") == "spaced out"
    assert sanitize_filename("tab\there") == "tab_here"
    assert sanitize_filename("CON") == "_CON"


def test_download_filename_uses_title_and_timestamp():
    assert build_download_filename("My: Clip", False, "mp4", now_ms=1700000000000) == "My_ Clip-1700000000000.mp4"


@pytest.mark.parametrize("title,audio_only,expected", [
    (None, False, "video-1.mp4"),
    ("", True, "audio-1.m4a"),
    ("???", True, "___-1.m4a"),
    ("...", False, "video-1.mp4"),
])
def test_download_filename_fallbacks(title, audio_only, expected):
    ext = "m4a" if audio_only else "mp4"
    assert build_download_filename(title, audio_only, ext, now_ms=1) == expected


def test_ascii_fallback():
    assert ascii_fallback("Café-1.mp4") == "Cafe-1.mp4"
    assert ascii_fallback("日本語") == "download"


def test_metadata_cache_key_is_shared_across_url_forms():
    keys = {
        metadata_cache_key("https://www.youtube.com/watch?v=abc123XYZ&t=3"),
        metadata_cache_key("https://youtube.com/shorts/abc123XYZ"),
        metadata_cache_key("https://youtu.be/abc123XYZ"),
    }
    assert len(keys) == 1
    assert keys != {metadata_cache_key("https://youtu.be/other123")}


def test_sanitize_filename_caps_utf8_bytes():
    name = sanitize_filename("日本語のタイトル" * 12)

    assert len(name.encode("utf-8")) <= 200
    assert "�" not in name
    assert name.startswith("日本語")

    filename = build_download_filename("😀" * 100, False, "mp4", now_ms=1700000000000)
    assert len(filename.encode("utf-8")) <= 255
    assert filename.endswith("-1700000000000.mp4")


@pytest.mark.parametrize("url,expected", [
    ("https://www.youtube.com/watch?v=abc123XYZ", "https://www.youtube.com/watch"),
    ("youtube.com/shorts/abc123XYZ", "youtube.com/shorts/abc123XYZ"),
    ("youtu.be/abc123XYZ?t=3", "youtu.be/abc123XYZ"),
])
def test_safe_url_for_log(url, expected, monkeypatch):
    monkeypatch.setattr(config.logging, "level", "INFO")
    assert safe_url_for_log(url) == expected
