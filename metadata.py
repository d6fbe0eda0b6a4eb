# linkkeeper/metadata.py
import logging
import random
from typing import Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from images import ImageArchiver
from models import LinkMetadata

logger = logging.getLogger(__name__)

FETCH_TIMEOUT = 10.0  # seconds

USER_AGENTS = [
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Safari/605.1.15",
    "Mozilla/5.0 (X11; Linux x86_64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:125.0) Gecko/20100101 Firefox/125.0",
    "Mozilla/5.0 (iPhone; CPU iPhone OS 17_4 like Mac OS X) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.4 Mobile/15E148 Safari/604.1",
]

HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")

# (attribute, value) pairs tried in order, first non-empty content wins
TITLE_TAGS = [("property", "og:title"), ("name", "twitter:title"), ("name", "title")]
DESCRIPTION_TAGS = [
    ("property", "og:description"),
    ("name", "twitter:description"),
    ("name", "description"),
]
IMAGE_TAGS = [
    ("property", "og:image"),
    ("property", "og:image:url"),
    ("property", "og:image:secure_url"),
    ("name", "twitter:image"),
]


def browser_headers() -> dict:
    return {
        "User-Agent": random.choice(USER_AGENTS),
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
        "Cache-Control": "no-cache",
    }


def _clean(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(str(value).split())


def _meta(soup: BeautifulSoup, attr: str, value: str) -> str:
    tag = soup.find("meta", attrs={attr: value})
    if tag is None:
        # some sites put og:* under name= and twitter:* under property=
        other = "name" if attr == "property" else "property"
        tag = soup.find("meta", attrs={other: value})
    if tag is None:
        return ""
    return _clean(tag.get("content"))


def _first_meta(soup: BeautifulSoup, candidates) -> str:
    for attr, value in candidates:
        content = _meta(soup, attr, value)
        if content:
            return content
    return ""


def extract_title(soup: BeautifulSoup) -> str:
    title = _first_meta(soup, TITLE_TAGS)
    if title:
        return title
    if soup.title is not None:
        return _clean(soup.title.get_text())
    return ""


def extract_description(soup: BeautifulSoup) -> str:
    return _first_meta(soup, DESCRIPTION_TAGS)


def extract_image(soup: BeautifulSoup, page_url: str = "") -> str:
    image = _first_meta(soup, IMAGE_TAGS)
    if image and page_url and not image.startswith(("http://", "https://")):
        image = urljoin(page_url, image)
    return image


def parse_html(html: str, page_url: str = "") -> LinkMetadata:
    """Pull title, description and raw image URL out of an HTML document."""
    soup = BeautifulSoup(html, "html.parser")
    return LinkMetadata(
        title=extract_title(soup),
        description=extract_description(soup),
        image=extract_image(soup, page_url),
    )


class MetadataFetcher:
    """
    Best-effort page scraper for URLs without a dedicated platform API.

    fetch_metadata never raises: network errors, timeouts, non-2xx answers
    and non-HTML bodies all come back as empty metadata. A discovered image
    is archived and replaced by its storage key.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        archiver: ImageArchiver,
        timeout: float = FETCH_TIMEOUT,
    ):
        self.client = client
        self.archiver = archiver
        self.timeout = timeout

    async def fetch_metadata(self, url: str) -> LinkMetadata:
        try:
            response = await self.client.get(
                url, headers=browser_headers(), timeout=self.timeout
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Fetching {url} failed: {e!r}")
            return LinkMetadata()

        if not response.is_success:
            logger.warning(f"Fetching {url} returned HTTP {response.status_code}")
            return LinkMetadata()

        content_type = response.headers.get("content-type", "").lower()
        if not content_type.startswith(HTML_CONTENT_TYPES):
            logger.info(f"Skipping non-HTML response for {url}: {content_type!r}")
            return LinkMetadata()

        try:
            # decoding the body can fail too
            metadata = parse_html(response.text, str(response.url))
        except Exception as e:
            logger.warning(f"Could not parse HTML from {url}: {e}")
            return LinkMetadata()

        if metadata.image:
            metadata.image = await self.archiver.archive(metadata.image, url) or ""

        return metadata
