# linkkeeper/dependencies.py
from dataclasses import dataclass
from typing import Optional

import httpx
from fastapi import Request

from images import ImageArchiver, ImageResolver
from metadata import MetadataFetcher
from repository import LinkRepository
from storage import ObjectStorage
from use_cases import AddLinkUseCase, DeleteLinkUseCase, ListLinksUseCase
from youtube import YouTubeFetcher


@dataclass
class Services:
    repository: LinkRepository
    archiver: ImageArchiver
    resolver: ImageResolver
    metadata_fetcher: MetadataFetcher
    youtube_fetcher: YouTubeFetcher
    add_link: AddLinkUseCase
    list_links: ListLinksUseCase
    delete_link: DeleteLinkUseCase


def build_services(
    storage: ObjectStorage,
    http_client: httpx.AsyncClient,
    youtube_api_key: Optional[str] = None,
    repository: Optional[LinkRepository] = None,
) -> Services:
    """
    Wire the service graph once at startup.
    Nothing here is global; the result lives on app.state.
    """
    repository = repository or LinkRepository()
    archiver = ImageArchiver(storage, http_client)
    resolver = ImageResolver(storage)
    metadata_fetcher = MetadataFetcher(http_client, archiver)
    youtube_fetcher = YouTubeFetcher(http_client, archiver, api_key=youtube_api_key)

    return Services(
        repository=repository,
        archiver=archiver,
        resolver=resolver,
        metadata_fetcher=metadata_fetcher,
        youtube_fetcher=youtube_fetcher,
        add_link=AddLinkUseCase(repository, metadata_fetcher, youtube_fetcher),
        list_links=ListLinksUseCase(repository, resolver),
        delete_link=DeleteLinkUseCase(repository),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
