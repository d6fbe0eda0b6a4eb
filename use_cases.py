# linkkeeper/use_cases.py
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional
from urllib.parse import urlparse

from classifier import classify
from errors import DuplicateKey, InvalidUrl, NotFound
from images import ImageResolver
from metadata import MetadataFetcher
from models import Link, LinkMetadata, Source, utcnow
from repository import LinkRepository, Page, PageParams
from youtube import YouTubeFetcher

logger = logging.getLogger(__name__)


def validate_url(url: str) -> str:
    """Return the stripped URL or raise InvalidUrl if it is not absolute http(s)."""
    candidate = (url or "").strip()
    try:
        parsed = urlparse(candidate)
        host = parsed.hostname
        parsed.port  # ValueError for a non-numeric or out-of-range port
    except ValueError as e:
        raise InvalidUrl(f"Invalid URL: {candidate}") from e
    if parsed.scheme not in ("http", "https") or not host:
        raise InvalidUrl(f"Invalid URL: {candidate}")
    return candidate


@dataclass
class AddLinkResult:
    record: Link
    is_new: bool


class AddLinkUseCase:
    def __init__(
        self,
        repository: LinkRepository,
        metadata_fetcher: MetadataFetcher,
        youtube_fetcher: Optional[YouTubeFetcher] = None,
    ):
        self.repository = repository
        self.metadata_fetcher = metadata_fetcher
        self.youtube_fetcher = youtube_fetcher

    async def enrich(self, url: str) -> LinkMetadata:
        """Assemble metadata for a URL. Never raises for upstream failures."""
        classification = classify(url)

        metadata = None
        if (
            classification.source == Source.YOUTUBE
            and classification.resource_id
            and self.youtube_fetcher is not None
        ):
            metadata = await self.youtube_fetcher.fetch_by_resource_id(
                classification.resource_id, url
            )
            if metadata is None:
                logger.info(f"Falling back to page scraping for {url}")

        if metadata is None:
            metadata = await self.metadata_fetcher.fetch_metadata(url)

        metadata.source = classification.source
        return metadata

    async def execute(self, url: str, tags: Optional[List[str]] = None) -> AddLinkResult:
        url = validate_url(url)
        existing = await self.repository.find_by_url(url)
        metadata = await self.enrich(url)

        if existing is not None:
            return AddLinkResult(await self._refresh(existing, metadata, tags), False)

        metadata.tags = list(tags or [])
        record = Link(url=url, metadata=metadata, created_at=utcnow())
        try:
            saved = await self.repository.save(record)
        except DuplicateKey:
            # 另一個 request 剛好先存了同一個 URL
            logger.info(f"Concurrent insert detected for {url}, updating instead")
            existing = await self.repository.find_by_url(url)
            if existing is None:
                raise
            return AddLinkResult(await self._refresh(existing, metadata, tags), False)

        logger.info(f"Saved new URL: {url}")
        return AddLinkResult(saved, True)

    async def _refresh(
        self, existing: Link, metadata: LinkMetadata, tags: Optional[List[str]]
    ) -> Link:
        metadata = metadata.model_copy(
            update={"tags": list(tags) if tags is not None else list(existing.metadata.tags)}
        )
        existing.metadata = metadata
        updated = await self.repository.update(existing)
        logger.info(f"Refreshed metadata for existing URL: {existing.url}")
        return updated


@dataclass
class LinkView:
    id: str
    url: str
    title: str
    description: str
    image: str
    source: Optional[str]
    tags: List[str]
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "description": self.description,
            "image": self.image,
            "source": self.source,
            "tags": self.tags,
            "createdAt": self.created_at.isoformat(),
        }


async def to_view(record: Link, resolver: ImageResolver) -> LinkView:
    source = record.metadata.source
    created_at = record.created_at
    if created_at.tzinfo is None:
        # stored dates are UTC; drivers without tz_aware hand them back naive
        created_at = created_at.replace(tzinfo=timezone.utc)
    return LinkView(
        id=str(record.id),
        url=record.url,
        title=record.metadata.title,
        description=record.metadata.description,
        image=await resolver.resolve(record.metadata.image),
        source=source.value if source else None,
        tags=list(record.metadata.tags),
        created_at=created_at,
    )


@dataclass
class LinkPage:
    data: List[LinkView]
    has_more: bool
    next_cursor: Optional[str]
    count: int

    def to_dict(self) -> dict:
        pagination = {"hasMore": self.has_more, "count": self.count}
        if self.next_cursor:
            pagination["nextCursor"] = self.next_cursor
        return {"data": [view.to_dict() for view in self.data], "pagination": pagination}


class ListLinksUseCase:
    def __init__(self, repository: LinkRepository, resolver: ImageResolver):
        self.repository = repository
        self.resolver = resolver

    async def _views(self, records: List[Link]) -> List[LinkView]:
        return list(await asyncio.gather(*(to_view(r, self.resolver) for r in records)))

    async def execute_all(self) -> List[LinkView]:
        return await self._views(await self.repository.find_all())

    async def execute_with_pagination(self, params: PageParams) -> LinkPage:
        page: Page = await self.repository.find_with_pagination(params)
        return LinkPage(
            data=await self._views(page.data),
            has_more=page.has_more,
            next_cursor=page.next_cursor,
            count=page.count,
        )


class DeleteLinkUseCase:
    def __init__(self, repository: LinkRepository):
        self.repository = repository

    async def execute(self, id: str) -> None:
        if await self.repository.find_by_id(id) is None:
            raise NotFound(f"URL with id {id} not found")
        await self.repository.soft_delete(id)
