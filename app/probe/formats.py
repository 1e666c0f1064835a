"""Probe a media URL for its title and available formats via yt-dlp."""

import asyncio
from typing import Any, Dict, List, Optional

from yt_dlp import YoutubeDL
from yt_dlp.utils import YoutubeDLError

PROBE_OPTIONS = {
    "quiet": True,
    "no_warnings": True,
    "skip_download": True,
    "noplaylist": True,
    "cachedir": False,
}


class ProbeError(Exception):
    """Raised when format information could not be fetched."""


def _size_text(fmt: Dict[str, Any]) -> str:
    size = fmt.get("filesize") or fmt.get("filesize_approx")
    if not size:
        return "(Size N/A)"
    return f"({size / 1024 / 1024:.2f} MB)"


def _has(fmt: Dict[str, Any], codec_key: str) -> bool:
    codec = fmt.get(codec_key)
    return bool(codec) and codec != "none"


def summarize_formats(formats: List[Dict[str, Any]]) -> Dict[str, List[Dict[str, str]]]:
    """Split raw yt-dlp formats into muxed, video-only and audio-only lists."""
    muxed: List[Dict[str, str]] = []
    video_only: List[Dict[str, str]] = []
    audio_only: List[Dict[str, str]] = []

    for fmt in formats:
        format_id = fmt.get("format_id")
        if not format_id:
            continue
        ext = fmt.get("ext", "?")
        has_video = _has(fmt, "vcodec")
        has_audio = _has(fmt, "acodec")

        if has_video and has_audio:
            if ext == "mp4":
                muxed.append({"id": format_id, "text": f"{fmt.get('height')}p - {ext} {_size_text(fmt)}"})
        elif has_video:
            fps = f"{fmt['fps']:g}fps " if fmt.get("fps") else ""
            video_only.append({
                "id": format_id,
                "text": f"{fmt.get('height')}p {fps}- {ext} {_size_text(fmt)}",
            })
        elif has_audio:
            abr = f"{fmt['abr']:.0f}kbps " if fmt.get("abr") else ""
            audio_only.append({"id": format_id, "text": f"{abr}- {ext} {_size_text(fmt)}"})

    return {"formats": muxed, "videoFormats": video_only, "audioFormats": audio_only}


def probe_formats(url: str) -> Dict[str, Any]:
    """Blocking probe; run it in an executor from async code."""
    try:
        with YoutubeDL(PROBE_OPTIONS) as ydl:
            info = ydl.extract_info(url, download=False)
    except YoutubeDLError as exc:
        raise ProbeError(str(exc)) from exc

    if not info:
        raise ProbeError("No media information returned")

    result: Dict[str, Any] = {
        "title": info.get("title"),
        "thumbnail": info.get("thumbnail"),
        "videoId": info.get("id"),
    }
    result.update(summarize_formats(info.get("formats") or []))
    return result


async def probe_formats_async(url: str, timeout: Optional[float] = None) -> Dict[str, Any]:
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(None, probe_formats, url)
    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError as exc:
        raise ProbeError("Timed out fetching formats") from exc
