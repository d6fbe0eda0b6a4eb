# linkkeeper/images.py
import asyncio
import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple

import httpx

from errors import UpstreamFailure
from storage import ObjectStorage

logger = logging.getLogger(__name__)

IMAGE_FOLDER = "images"
DOWNLOAD_TIMEOUT = 30.0  # seconds, whole download
MAX_IMAGE_BYTES = 10 * 1024 * 1024
SIGNED_URL_TTL = timedelta(hours=1)

EXTENSIONS = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/bmp": "bmp",
    "image/svg+xml": "svg",
    "image/tiff": "tiff",
}
DEFAULT_EXTENSION = "jpg"

IMAGE_REQUEST_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; LinkKeeper/1.0)",
    "Accept": "image/*",
}


def image_extension(content_type: str) -> str:
    return EXTENSIONS.get(content_type.lower(), DEFAULT_EXTENSION)


def key_prefix(image_url: str, owner_url: str, folder: str = IMAGE_FOLDER) -> str:
    """Storage key without its extension; stable for a given URL pair."""
    digest = hashlib.md5((owner_url + image_url).encode("utf-8")).hexdigest()
    return f"{folder}/{digest}"


class ImageArchiver:
    """Copies an external preview image into object storage and hands back its key."""

    def __init__(
        self,
        storage: ObjectStorage,
        client: httpx.AsyncClient,
        download_timeout: float = DOWNLOAD_TIMEOUT,
        max_bytes: int = MAX_IMAGE_BYTES,
        folder: str = IMAGE_FOLDER,
    ):
        self.storage = storage
        self.client = client
        self.download_timeout = download_timeout
        self.max_bytes = max_bytes
        self.folder = folder

    async def archive(self, image_url: str, owner_url: str) -> Optional[str]:
        image_url = (image_url or "").strip()
        if not image_url:
            logger.info("No image URL provided, skipping upload")
            return None

        prefix = key_prefix(image_url, owner_url, self.folder)

        try:
            existing = await self.storage.find_key(prefix + ".")
        except Exception as e:
            # 查詢失敗就當作不存在，繼續下載
            logger.error(f"Error checking if image exists in storage: {e}")
            existing = None
        if existing:
            logger.info(f"Image already exists in storage: {existing}")
            return existing

        try:
            data, content_type = await asyncio.wait_for(
                self._download(image_url), timeout=self.download_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"Image download exceeded {self.download_timeout}s: {image_url}"
            )
            return None
        except Exception as e:
            logger.warning(f"Image download failed for {image_url}: {e}")
            return None

        key = f"{prefix}.{image_extension(content_type)}"
        try:
            await self.storage.put(
                key,
                data,
                content_type,
                metadata={
                    "original-url": owner_url,
                    "source-image-url": image_url,
                    "uploaded-at": datetime.now(timezone.utc).isoformat(),
                },
            )
        except Exception as e:
            logger.error(f"Error uploading image to storage: {e}")
            return None

        logger.info(f"Image successfully uploaded to storage: {key}")
        return key

    async def _download(self, image_url: str) -> Tuple[bytes, str]:
        async with self.client.stream(
            "GET",
            image_url,
            headers=IMAGE_REQUEST_HEADERS,
            timeout=self.download_timeout,
        ) as response:
            response.raise_for_status()

            content_type = (
                response.headers.get("content-type", "").split(";")[0].strip().lower()
            )
            if not content_type.startswith("image/"):
                raise UpstreamFailure(f"URL does not point to an image: {image_url}")

            declared = response.headers.get("content-length", "")
            if declared.isdigit() and int(declared) > self.max_bytes:
                raise UpstreamFailure(f"Image too large ({declared} bytes)")

            body = bytearray()
            async for chunk in response.aiter_bytes():
                body.extend(chunk)
                if len(body) > self.max_bytes:
                    raise UpstreamFailure(
                        f"Image exceeds {self.max_bytes} bytes: {image_url}"
                    )

        return bytes(body), content_type


class ImageResolver:
    """Turns a stored image key into a short-lived URL at read time."""

    def __init__(self, storage: ObjectStorage, expires: timedelta = SIGNED_URL_TTL):
        self.storage = storage
        self.expires = expires

    async def resolve(self, key: Optional[str]) -> str:
        if not key or not key.strip():
            return ""
        try:
            return await self.storage.presigned_url(key, self.expires)
        except Exception as e:
            logger.error(f"Error generating presigned URL for key {key}: {e}")
            return ""
