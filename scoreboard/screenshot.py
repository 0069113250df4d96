"""
Client for the screenshot capture service.

The service drives a headless browser to a video, seeks to the requested
offset and returns a PNG as a data URI. It is slow (several seconds), can
break when the video page changes, and is never retried here.
"""
import logging
import re
from typing import Optional

import requests

from .errors import CaptureFailed, ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

VIDEO_ID_RE = re.compile(r"^.*((youtu\.be/)|(v/)|(/u/\w/)|(embed/)|(watch\?))\??v?=?([^#&?]*).*")


def extract_video_id(url: Optional[str]) -> Optional[str]:
    """Pull the 11-character video id out of a watch/short/embed URL."""
    if not url:
        return None
    match = VIDEO_ID_RE.match(url.strip())
    if match and len(match.group(7)) == 11:
        return match.group(7)
    return None


def parse_timestamp(value) -> int:
    """Seconds offset; anything unparseable counts as 0."""
    try:
        return max(int(float(value)), 0)
    except (TypeError, ValueError):
        return 0


class ScreenshotClient:
    """``capture(video_id, seconds)`` → encoded image."""

    def __init__(self, endpoint: Optional[str], session: Optional[requests.Session] = None, timeout: int = 90):
        self.endpoint = endpoint
        self.session = session or requests.Session()
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "ScreenshotClient":
        return cls(settings.screenshot_url, session=session, timeout=settings.capture_timeout)

    def capture(self, video_id: str, timestamp_seconds: int = 0) -> str:
        if not video_id:
            raise ValidationError("Video ID is required")
        if not self.endpoint:
            raise ConfigurationError("Screenshot capture service is not configured")

        logger.info(f"Taking screenshot of video {video_id} at {timestamp_seconds} seconds")
        try:
            response = self.session.post(
                self.endpoint,
                json={"videoId": video_id, "timestamp": timestamp_seconds},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise CaptureFailed(f"Capture service unreachable: {e}") from e

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not response.ok:
            detail = payload.get("details") or payload.get("error") if isinstance(payload, dict) else None
            raise CaptureFailed(f"Failed to take screenshot: {detail or response.status_code}")
        image = payload.get("screenshot") if isinstance(payload, dict) else None
        if not image:
            raise CaptureFailed("Capture service returned no image")
        return image

    def capture_url(self, video_url: str, timestamp=0) -> str:
        """Capture from a full video URL instead of a bare id."""
        video_id = extract_video_id(video_url)
        if not video_id:
            raise ValidationError("Please enter a valid YouTube video URL")
        return self.capture(video_id, parse_timestamp(timestamp))
