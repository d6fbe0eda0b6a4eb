# linkkeeper/youtube.py
import logging
import os
from typing import Optional

import httpx

from images import ImageArchiver
from models import LinkMetadata, Source

logger = logging.getLogger(__name__)

YOUTUBE_API_URL = "https://www.googleapis.com/youtube/v3/videos"
API_TIMEOUT = 10.0  # seconds

# largest first
THUMBNAIL_SIZES = ["maxres", "standard", "high", "medium", "default"]


def best_thumbnail(thumbnails: Optional[dict]) -> str:
    """Pick the highest resolution thumbnail URL available."""
    thumbnails = thumbnails or {}
    for size in THUMBNAIL_SIZES:
        url = (thumbnails.get(size) or {}).get("url")
        if url:
            return url
    return ""


class YouTubeFetcher:
    """
    Metadata for YouTube videos through the Data API v3.

    Without YOUTUBE_API_KEY the fetcher stays disabled and every call returns
    None, which sends the caller down the generic scraping path.
    """

    source = Source.YOUTUBE

    def __init__(
        self,
        client: httpx.AsyncClient,
        archiver: ImageArchiver,
        api_key: Optional[str] = None,
        timeout: float = API_TIMEOUT,
    ):
        self.client = client
        self.archiver = archiver
        self.api_key = api_key if api_key is not None else os.environ.get("YOUTUBE_API_KEY", "")
        self.timeout = timeout
        if not self.api_key:
            logger.warning("YouTube API key not found. YouTube API features will be disabled.")

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def fetch_by_resource_id(
        self, video_id: str, owner_url: str = ""
    ) -> Optional[LinkMetadata]:
        if not self.enabled:
            return None

        try:
            response = await self.client.get(
                YOUTUBE_API_URL,
                params={"id": video_id, "key": self.api_key, "part": "snippet"},
                timeout=self.timeout,
            )
            response.raise_for_status()
            items = response.json().get("items") or []
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 403:
                logger.error("YouTube API quota exceeded or API key invalid")
            elif status == 404:
                logger.warning(f"YouTube video not found: {video_id}")
            else:
                logger.error(f"YouTube API returned HTTP {status} for video {video_id}")
            return None
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Error fetching YouTube metadata for video {video_id}: {e!r}")
            return None

        if not items:
            logger.warning(f"No video found for ID: {video_id}")
            return None

        snippet = items[0].get("snippet") or {}
        thumbnail = best_thumbnail(snippet.get("thumbnails"))
        image = ""
        if thumbnail:
            owner = owner_url or f"https://www.youtube.com/watch?v={video_id}"
            image = await self.archiver.archive(thumbnail, owner) or ""

        logger.info(f"Successfully fetched YouTube metadata for video: {video_id}")
        return LinkMetadata(
            title=snippet.get("title") or "",
            description=snippet.get("description") or "",
            image=image,
            source=Source.YOUTUBE,
        )
