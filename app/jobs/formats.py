"""Worker format selector composition."""

from typing import Optional

from app.jobs.models import JobMode

# Best audio-only stream, falling back to the best combined one.
BEST_AUDIO_SELECTOR = "bestaudio/best"


def build_format_selector(
    mode: JobMode,
    video: Optional[str] = None,
    audio: Optional[str] = None,
) -> str:
    """Compose the ``-f`` selector handed to the worker.

    Audio-only jobs always ask for the best audio stream and let the worker
    transcode it. For media jobs a video and an audio selector are merged
    with ``+``; a single selector is treated as a pre-muxed format and
    passed through unchanged.
    """
    if mode is JobMode.AUDIO:
        return BEST_AUDIO_SELECTOR

    video = (video or "").strip()
    audio = (audio or "").strip()
    if video and audio:
        return f"{video}+{audio}"
    if video or audio:
        return video or audio
    raise ValueError("A format selector is required for media jobs")
