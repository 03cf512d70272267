"""Audio assembly and duration measurement."""

import io
import logging

from mutagen.mp3 import MP3

logger = logging.getLogger(__name__)


def assemble_audio(buffers: list[bytes]) -> bytes:
    """Concatenate per-chunk MP3 buffers in order.

    MP3 frames are self-delimiting, so plain concatenation plays back as one
    stream. No cross-fade or re-encoding is applied.
    """
    return b"".join(buffers)


def estimate_duration_seconds(audio_data: bytes, bitrate_kbps: int = 128) -> int:
    """Duration of assembled audio in whole seconds.

    Reads the MP3 frame headers with mutagen when possible; otherwise falls
    back to a byte-size estimate at a fixed bitrate.

    Args:
        audio_data: Assembled MP3 bytes
        bitrate_kbps: Bitrate assumed for the fallback estimate

    Returns:
        Rounded duration in seconds
    """
    if not audio_data:
        return 0

    try:
        length = MP3(io.BytesIO(audio_data)).info.length
        if length > 0:
            return round(length)
    except Exception as e:
        logger.debug(f"Could not read MP3 frames, estimating from size: {e}")

    bytes_per_second = bitrate_kbps * 1000 / 8
    return round(len(audio_data) / bytes_per_second)
