"""
Tests for request validation and filename sanitization.
"""

import pytest

from trimmer.schemas.requests import OutputFormat, TrimRequest
from trimmer.services.validators import (
    TrimValidationError,
    extract_video_id,
    is_supported_url,
    is_valid_time,
    normalize_url,
    sanitize_filename,
    validate_trim_request,
)

VIDEO_URL = "https://www.youtube.com/watch?v=dQw4w9WgXcQ"


class TestUrlChecks:
    """Tests for URL recognition."""

    @pytest.mark.parametrize(
        "url",
        [
            "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
            "https://m.youtube.com/watch?v=dQw4w9WgXcQ",
            "https://youtu.be/dQw4w9WgXcQ",
            "https://www.youtube.com/shorts/dQw4w9WgXcQ",
            "www.youtube.com/watch?v=dQw4w9WgXcQ",
        ],
    )
    def test_recognized_urls(self, url):
        assert extract_video_id(url) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize(
        "url",
        ["", "https://vimeo.com/123456", "https://www.youtube.com/watch?v=short", "not a url"],
    )
    def test_rejected_urls(self, url):
        assert not is_supported_url(url)

    def test_normalize_adds_scheme(self):
        assert normalize_url("  youtu.be/dQw4w9WgXcQ ") == "https://youtu.be/dQw4w9WgXcQ"


class TestTimeShape:
    @pytest.mark.parametrize("text", ["00:03:01", "4:05", "1:02:03.250"])
    def test_valid(self, text):
        assert is_valid_time(text)

    @pytest.mark.parametrize("text", ["", "90", "1:2", "aa:bb", "00:00:00:01"])
    def test_invalid(self, text):
        assert not is_valid_time(text)


class TestSanitizeFilename:
    """Tests for sanitize_filename."""

    def test_strips_directories(self):
        assert sanitize_filename("../../etc/passwd") == "passwd"
        assert sanitize_filename("..\\..\\secret.mp4") == "secret"

    def test_removes_known_extension(self):
        assert sanitize_filename("my clip.mp3") == "my clip"

    def test_replaces_illegal_characters(self):
        assert sanitize_filename('a<b>c:d"e|f?g*h') == "a_b_c_d_e_f_g_h"

    def test_empty_uses_default(self):
        assert sanitize_filename("") == "trimmed_video"
        assert sanitize_filename("   ", default="fallback") == "fallback"

    def test_collapses_dot_runs(self):
        assert ".." not in sanitize_filename("a..b")

    def test_truncates_long_names(self):
        assert len(sanitize_filename("x" * 300)) == 100


class TestValidateTrimRequest:
    """Tests for validate_trim_request."""

    def test_valid_request(self, settings):
        request = TrimRequest(url=VIDEO_URL, start="00:03:01", end="00:04:05", filename="clip")
        validated = validate_trim_request(request, settings)

        assert validated.duration_seconds == 64
        assert validated.start_offset == 181
        assert validated.quality == settings.default_quality
        assert validated.filename == "clip"
        assert validated.output_format is OutputFormat.VIDEO

    def test_end_before_start(self, settings):
        request = TrimRequest(url=VIDEO_URL, start="00:02:00", end="00:01:00")
        with pytest.raises(TrimValidationError) as exc_info:
            validate_trim_request(request, settings)
        assert "End time must be after start time" in exc_info.value.errors

    def test_equal_times_rejected(self, settings):
        request = TrimRequest(url=VIDEO_URL, start="01:00", end="01:00")
        with pytest.raises(TrimValidationError):
            validate_trim_request(request, settings)

    def test_too_long(self, settings):
        request = TrimRequest(url=VIDEO_URL, start="00:00:00", end="00:10:01")
        with pytest.raises(TrimValidationError, match="too long"):
            validate_trim_request(request, settings)

    def test_collects_every_error(self, settings):
        request = TrimRequest(url="https://example.com", start="bad", end="", quality=999)
        with pytest.raises(TrimValidationError) as exc_info:
            validate_trim_request(request, settings)
        assert len(exc_info.value.errors) == 4

    def test_quality_ignored_for_audio(self, settings):
        request = TrimRequest(url=VIDEO_URL, start="0:10", end="0:20", quality=999, format="audio")
        validated = validate_trim_request(request, settings)
        assert validated.output_format is OutputFormat.AUDIO

    def test_legacy_format_aliases(self):
        assert TrimRequest(url=VIDEO_URL, format="mp3").output_format is OutputFormat.AUDIO
        assert TrimRequest(url=VIDEO_URL, format="MP4").output_format is OutputFormat.VIDEO

    def test_quality_with_suffix(self):
        assert TrimRequest(url=VIDEO_URL, quality="1080p").quality == 1080
