"""Time-bounded artifact storage for finished downloads."""

import asyncio
import logging
import os
import re
import time
import uuid
from pathlib import Path
from typing import Optional, Set
from urllib.parse import quote

logger = logging.getLogger(__name__)

_FORBIDDEN_CHARS_RE = re.compile(r'[<>:"/\\|?*%\x00-\x1f]')
_WHITESPACE_RE = re.compile(r"\s+")


def sanitize_filename(name: Optional[str], fallback: str = "download") -> str:
    """Return a filesystem-safe version of ``name``.

    Characters outside the allowed alphabet (``<>:"/\\|?*%`` and control
    characters) become ``_``; runs of whitespace collapse to one space.
    """
    if not name:
        return fallback
    cleaned = _WHITESPACE_RE.sub(" ", name)
    cleaned = _FORBIDDEN_CHARS_RE.sub("_", cleaned).strip()
    return cleaned or fallback


class ArtifactStore:
    """Stages job output files and deletes them after a fixed retention window."""

    def __init__(self, base_dir: str, url_prefix: str = "/downloads", ttl_seconds: int = 600):
        self._base_dir = Path(base_dir).resolve()
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._url_prefix = "/" + url_prefix.strip("/")
        self._ttl_seconds = ttl_seconds
        self._reclaims: Set[asyncio.Task] = set()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def publish_prefix(self) -> str:
        return self._url_prefix

    @property
    def ttl_seconds(self) -> int:
        return self._ttl_seconds

    def stage(self, title: Optional[str], extension: str) -> Path:
        """Reserve a unique path for a new artifact."""
        stem = sanitize_filename(title)
        while True:
            candidate = self._base_dir / f"{stem}-{uuid.uuid4().hex[:8]}.{extension.lstrip('.')}"
            if not candidate.exists():
                return candidate

    def publish(self, path: Path) -> str:
        """Return the public retrieval path for a staged artifact."""
        path = Path(path)
        if path.resolve().parent != self._base_dir:
            raise ValueError(f"{path} is not inside the artifact directory")
        return f"{self._url_prefix}/{quote(path.name)}"

    def schedule_reclaim(self, path: Path, delay: Optional[float] = None) -> asyncio.Task:
        """Delete ``path`` after ``delay`` seconds (defaults to the TTL)."""
        if delay is None:
            delay = self._ttl_seconds
        task = asyncio.create_task(self._reclaim_after(Path(path), delay))
        self._reclaims.add(task)
        task.add_done_callback(self._reclaims.discard)
        return task

    async def _reclaim_after(self, path: Path, delay: float) -> None:
        await asyncio.sleep(delay)
        self.reclaim(path)

    def reclaim(self, path: Path) -> bool:
        """Delete ``path`` if it still exists. Failures are logged, not raised."""
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug("Artifact already gone: %s", path)
            return False
        except OSError as exc:
            logger.warning("Could not delete artifact %s: %s", path, exc)
            return False
        logger.info("Reclaimed artifact %s", path.name)
        return True

    def cleanup_expired(self) -> int:
        """Remove artifacts older than TTL. Returns count of removed files."""
        now = time.time()
        removed = 0
        if not self._base_dir.exists():
            return 0
        for entry in os.scandir(self._base_dir):
            if not entry.is_file():
                continue
            if now - entry.stat().st_mtime > self._ttl_seconds:
                if self.reclaim(Path(entry.path)):
                    removed += 1
        return removed

    async def close(self) -> None:
        """Cancel pending reclaim timers (process shutdown)."""
        for task in list(self._reclaims):
            task.cancel()
        if self._reclaims:
            await asyncio.gather(*self._reclaims, return_exceptions=True)
        self._reclaims.clear()
