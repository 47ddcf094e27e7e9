"""YouTube transcript extraction using yt-dlp."""

import asyncio
import logging
import re
import shutil
import subprocess
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .models import FeedItem

logger = logging.getLogger(__name__)

YOUTUBE_HOSTS = {"youtube.com", "www.youtube.com", "m.youtube.com", "youtu.be"}


def is_youtube_link(url: str) -> bool:
    return urlparse(url).netloc.lower() in YOUTUBE_HOSTS


def video_id(url: str) -> str:
    parsed = urlparse(url)
    if parsed.netloc.lower() == "youtu.be":
        return parsed.path.lstrip("/")
    return parse_qs(parsed.query).get("v", [parsed.path.rstrip("/").split("/")[-1]])[0]


def parse_vtt_transcript(vtt_content: str) -> str:
    """Reduce a VTT/SRT subtitle file to plain text."""
    text_lines = []
    last_line = ""

    for line in vtt_content.split("\n"):
        line = line.strip()

        if (
            not line
            or line.startswith(("WEBVTT", "Kind:", "Language:"))
            or "-->" in line
            or line.isdigit()
        ):
            continue

        line = re.sub(r"<[^>]+>", "", line)
        line = " ".join(line.split())

        # Auto captions repeat each line across consecutive cues
        if line and line != last_line:
            text_lines.append(line)
            last_line = line

    return " ".join(text_lines)


class YouTubeTranscriber:
    """Appends a "## Transcript" section to YouTube items."""

    def __init__(self, yt_dlp_path: Optional[str] = None, timeout: int = 60):
        self.yt_dlp_path = yt_dlp_path or shutil.which("yt-dlp")
        self.timeout = timeout

    @property
    def available(self) -> bool:
        return bool(self.yt_dlp_path)

    async def transcribe(self, item: FeedItem) -> FeedItem:
        """Return item with its transcript appended, or unchanged if none."""
        if not is_youtube_link(item.link):
            return item
        if not self.available:
            logger.warning("yt-dlp not found, skipping transcript. Install it: pip install yt-dlp")
            return item

        transcript = await asyncio.to_thread(self._extract_transcript, item.link)
        if not transcript:
            return item
        return replace(item, content=f"{item.body}\n\n## Transcript\n\n{transcript}")

    def _extract_transcript(self, url: str) -> Optional[str]:
        with tempfile.TemporaryDirectory() as temp_dir:
            temp_path = Path(temp_dir)
            vid = video_id(url)

            cmd = [
                self.yt_dlp_path,
                "--write-auto-sub",
                "--write-sub",
                "--sub-lang",
                "en,en-US,en-GB",
                "--skip-download",
                "--quiet",
                "--no-warnings",
                "--output",
                str(temp_path / "%(id)s.%(ext)s"),
                url,
            ]

            logger.debug(f"Extracting transcript for: {url}")
            try:
                subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout)
            except subprocess.TimeoutExpired:
                logger.warning(f"Transcript extraction timed out for: {url}")
                return None

            for pattern in (f"{vid}.*.vtt", f"{vid}.vtt", "*.vtt", "*.srt"):
                files = sorted(temp_path.glob(pattern))
                if files:
                    return parse_vtt_transcript(files[0].read_text(encoding="utf-8"))

            logger.debug(f"No transcript file found for video: {url}")
            return None
