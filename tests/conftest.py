# linkkeeper/tests/conftest.py
from datetime import timedelta
from typing import Callable, Dict, Optional

import httpx
import pytest
import pytest_asyncio
from database import init_models
from dependencies import build_services
from mongomock_motor import AsyncMongoMockClient
from repository import LinkRepository

TEST_MONGO_DB = "test_linkkeeper"


class FakeStorage:
    """In-memory stand-in for ObjectStorage."""

    def __init__(self):
        self.objects: Dict[str, dict] = {}
        self.puts = 0
        self.fail_put = False
        self.fail_lookup = False
        self.fail_presign = False

    async def find_key(self, prefix: str) -> Optional[str]:
        if self.fail_lookup:
            raise ConnectionError("storage unreachable")
        for key in self.objects:
            if key.startswith(prefix):
                return key
        return None

    async def put(self, key, data, content_type, metadata=None):
        if self.fail_put:
            raise ConnectionError("storage unreachable")
        self.puts += 1
        self.objects[key] = {
            "data": data,
            "content_type": content_type,
            "metadata": metadata or {},
        }

    async def presigned_url(self, key: str, expires: timedelta) -> str:
        if self.fail_presign:
            raise ConnectionError("cannot sign")
        return f"https://signed.example/{key}?expires={int(expires.total_seconds())}"


class FakeWeb:
    """
    Routes outbound requests to canned responses by full URL.
    Unknown URLs answer 404; every request is recorded.
    """

    def __init__(self):
        self.routes: Dict[str, Callable[[httpx.Request], httpx.Response]] = {}
        self.requests = []

    def add(self, url: str, response):
        if isinstance(response, httpx.Response):
            self.routes[url] = lambda request, r=response: httpx.Response(
                r.status_code, headers=r.headers, content=r.content
            )
        else:
            self.routes[url] = response

    def page(self, url: str, html: str, status_code: int = 200):
        self.add(url, httpx.Response(status_code, html=html))

    def image(self, url: str, content: bytes = b"\x89PNG fake", content_type: str = "image/png"):
        self.add(url, httpx.Response(200, headers={"content-type": content_type}, content=content))

    def calls_to(self, url: str) -> int:
        return sum(1 for request in self.requests if str(request.url) == url)

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        key = str(request.url)
        route = self.routes.get(key) or self.routes.get(key.split("?")[0])
        if route is None:
            return httpx.Response(404, text="not found")
        return route(request)


@pytest.fixture
def storage():
    return FakeStorage()


@pytest.fixture
def web():
    return FakeWeb()


@pytest_asyncio.fixture
async def http_client(web):
    async with httpx.AsyncClient(
        transport=httpx.MockTransport(web.handler), follow_redirects=True
    ) as client:
        yield client


# 每個測試都用全新的記憶體資料庫
@pytest_asyncio.fixture
async def mongo_test_db():
    client = AsyncMongoMockClient()
    database = client[TEST_MONGO_DB]
    await init_models(database)
    yield database


@pytest.fixture
def repository(mongo_test_db):
    return LinkRepository()


@pytest.fixture
def services(repository, storage, http_client):
    return build_services(storage, http_client, youtube_api_key="test-key", repository=repository)
