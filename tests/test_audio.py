"""Tests for audio assembly and duration measurement."""

from unittest.mock import MagicMock, patch

from newscast.audio import assemble_audio, estimate_duration_seconds


class TestAssembleAudio:
    """Tests for assemble_audio."""

    def test_concatenates_in_order(self):
        assert assemble_audio([b"one", b"two", b"three"]) == b"onetwothree"

    def test_empty(self):
        assert assemble_audio([]) == b""


class TestEstimateDuration:
    """Tests for estimate_duration_seconds."""

    def test_empty_audio(self):
        assert estimate_duration_seconds(b"") == 0

    def test_falls_back_to_bitrate_estimate(self):
        """Unparseable bytes should be estimated at the assumed bitrate."""
        # 128 kbps is 16000 bytes per second
        assert estimate_duration_seconds(b"\x00" * 160_000, bitrate_kbps=128) == 10
        assert estimate_duration_seconds(b"\x00" * 160_000, bitrate_kbps=64) == 20

    def test_uses_mp3_frame_length_when_readable(self):
        with patch("newscast.audio.MP3") as mock_mp3:
            mock_mp3.return_value = MagicMock(info=MagicMock(length=61.6))
            assert estimate_duration_seconds(b"ID3 fake") == 62
