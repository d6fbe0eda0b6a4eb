# linkkeeper/tests/test_main.py
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from dependencies import get_services
from httpx import ASGITransport, AsyncClient
from jose import jwt
from main import app
from models import Link, LinkMetadata

API_KEY = "test-internal-key"
JWT_SECRET = "test-jwt-secret"
ALLOWED_EMAIL = "owner@example.com"


# 前端登入流程簽發的 token 格式
def create_access_token(id, email, name, expires_delta=timedelta(days=7)):
    payload = {
        "id": id,
        "email": email,
        "name": name,
        "exp": datetime.now(timezone.utc) + expires_delta,
    }
    return jwt.encode(payload, JWT_SECRET, algorithm="HS256")


# 測試用的環境變數
@pytest.fixture(autouse=True)
def set_test_env_vars(monkeypatch):
    monkeypatch.setenv("INTERNAL_API_KEY", API_KEY)
    monkeypatch.setenv("JWT_SECRET", JWT_SECRET)
    monkeypatch.setenv("ALLOWED_EMAILS", ALLOWED_EMAIL)


# 用測試的 service graph 取代 app.state 上的那份
@pytest.fixture(autouse=True)
def override_get_services(services):
    app.dependency_overrides[get_services] = lambda: services
    yield
    app.dependency_overrides.clear()


# lifespan 不會被 ASGITransport 觸發，所以不需要真的 MongoDB
@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def bot_headers():
    return {"X-API-Key": API_KEY}


@pytest.fixture
def user_headers():
    token = create_access_token("user-1", ALLOWED_EMAIL, "Owner")
    return {"Authorization": f"Bearer {token}"}


async def create_test_link(repository, url, **metadata):
    return await repository.save(Link(url=url, metadata=LinkMetadata(**metadata)))


# --- Test Cases ---


@pytest.mark.asyncio
async def test_health_check(client: AsyncClient):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok", "message": "LinkKeeper API is running!"}


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, path",
    [("get", "/api/urls"), ("post", "/api/urls"), ("delete", "/api/urls/abc")],
)
async def test_routes_require_credentials(client: AsyncClient, method, path):
    response = await client.request(method.upper(), path)
    assert response.status_code == 401
    assert response.json()["error"] == "Unauthorized"


@pytest.mark.asyncio
async def test_wrong_api_key(client: AsyncClient):
    response = await client.get("/api/urls", headers={"X-API-Key": "nope"})
    assert response.status_code == 401
    assert response.json()["message"] == "Invalid API key provided."


@pytest.mark.asyncio
async def test_api_key_checked_before_jwt(client: AsyncClient, user_headers):
    response = await client.get("/api/urls", headers={"X-API-Key": "nope", **user_headers})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_valid_api_key(client: AsyncClient, bot_headers):
    response = await client.get("/api/urls", headers=bot_headers)
    assert response.status_code == 200
    assert response.json() == []


@pytest.mark.asyncio
async def test_valid_jwt(client: AsyncClient, user_headers):
    response = await client.get("/api/urls", headers=user_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_expired_jwt(client: AsyncClient):
    token = create_access_token("user-1", ALLOWED_EMAIL, "Owner", timedelta(seconds=-10))
    response = await client.get("/api/urls", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401
    assert response.json()["message"] == "Your session has expired. Please login again."


@pytest.mark.asyncio
async def test_tampered_jwt(client: AsyncClient, user_headers):
    headers = {"Authorization": user_headers["Authorization"] + "x"}
    response = await client.get("/api/urls", headers=headers)
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_jwt_for_unlisted_email(client: AsyncClient):
    token = create_access_token("user-2", "stranger@example.com", "Stranger")
    response = await client.get("/api/urls", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 403
    assert response.json()["error"] == "Forbidden"


@pytest.mark.asyncio
async def test_add_url_then_resubmit(client: AsyncClient, bot_headers, web):
    web.page("https://example.com/a", "<title>A</title>")

    first = await client.post(
        "/api/urls", json={"url": "https://example.com/a", "tags": ["x"]}, headers=bot_headers
    )
    assert first.status_code == 201
    body = first.json()
    assert body["isNew"] is True
    assert body["url"] == "https://example.com/a"
    assert body["title"] == "A"
    assert body["image"] == ""
    assert body["source"] is None
    assert body["tags"] == ["x"]
    assert body["id"]
    assert body["createdAt"]

    second = await client.post("/api/urls", json={"url": "https://example.com/a"}, headers=bot_headers)
    assert second.status_code == 200
    assert second.json()["isNew"] is False
    assert second.json()["id"] == body["id"]
    assert second.json()["tags"] == ["x"]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        {"url": "not a url"},
        {"url": "ftp://example.com/file"},
        {"url": "https://example.com:abc/"},
        {},
        {"url": "https://example.com/a", "tags": "not-a-list"},
        {"url": "https://example.com/a", "tags": ["ok", {"bad": 1}]},
    ],
)
async def test_add_url_rejects_bad_payload(client: AsyncClient, bot_headers, payload):
    response = await client.post("/api/urls", json=payload, headers=bot_headers)
    assert response.status_code == 400
    assert set(response.json()) == {"error", "message"}


@pytest.mark.asyncio
async def test_list_legacy_array(client: AsyncClient, user_headers, repository):
    await create_test_link(repository, "https://example.com/old", title="Old")
    await create_test_link(repository, "https://example.com/new", title="New", image="images/n.png")

    response = await client.get("/api/urls", headers=user_headers)

    assert response.status_code == 200
    body = response.json()
    assert [item["title"] for item in body] == ["New", "Old"]
    assert body[0]["image"] == "https://signed.example/images/n.png?expires=3600"


@pytest.mark.asyncio
async def test_list_paginated(client: AsyncClient, user_headers, repository):
    for n in range(5):
        await create_test_link(repository, f"https://example.com/{n}")

    first = await client.get("/api/urls", params={"limit": 2}, headers=user_headers)
    assert first.status_code == 200
    page = first.json()
    assert page["pagination"]["hasMore"] is True
    assert page["pagination"]["count"] == 2

    urls = [item["url"] for item in page["data"]]
    cursor = page["pagination"]["nextCursor"]
    while cursor:
        response = await client.get(
            "/api/urls", params={"limit": 2, "cursor": cursor}, headers=user_headers
        )
        page = response.json()
        urls.extend(item["url"] for item in page["data"])
        cursor = page["pagination"].get("nextCursor")

    assert urls == [f"https://example.com/{n}" for n in reversed(range(5))]


@pytest.mark.asyncio
async def test_list_filters(client: AsyncClient, user_headers, repository):
    await create_test_link(repository, "https://example.com/a", title="Cooking", tags=["food"])
    await create_test_link(repository, "https://example.com/b", title="Hiking", tags=["outdoor"])
    await create_test_link(repository, "https://youtu.be/c", source="youtube", tags=["food"])

    by_search = await client.get("/api/urls", params={"search": "cook"}, headers=user_headers)
    by_source = await client.get("/api/urls", params={"source": "youtube"}, headers=user_headers)
    by_tags = await client.get(
        "/api/urls", params={"tags": "outdoor,food"}, headers=user_headers
    )

    assert [i["url"] for i in by_search.json()["data"]] == ["https://example.com/a"]
    assert [i["url"] for i in by_source.json()["data"]] == ["https://youtu.be/c"]
    assert by_tags.json()["pagination"]["count"] == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "params",
    [
        {"limit": 0},
        {"limit": 101},
        {"limit": "abc"},
        {"cursor": "not-an-object-id"},
        {"limit": 10, "order": "sideways"},
        {"limit": 10, "sortBy": "title"},
        {"source": "myspace"},
    ],
)
async def test_list_rejects_bad_params(client: AsyncClient, user_headers, params):
    response = await client.get("/api/urls", params=params, headers=user_headers)
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_limit_error_message(client: AsyncClient, user_headers):
    response = await client.get("/api/urls", params={"limit": 500}, headers=user_headers)
    assert response.json()["message"] == "Limit must be a number between 1 and 100"
    response = await client.get("/api/urls", params={"limit": "abc"}, headers=user_headers)
    assert response.json()["message"] == "Limit must be a number between 1 and 100"


@pytest.mark.asyncio
async def test_delete_url(client: AsyncClient, user_headers, repository):
    record = await create_test_link(repository, "https://example.com/a")

    response = await client.delete(f"/api/urls/{record.id}", headers=user_headers)
    assert response.status_code == 200
    assert response.json() == {"success": True, "message": "URL deleted successfully"}

    listing = await client.get("/api/urls", headers=user_headers)
    assert listing.json() == []

    again = await client.delete(f"/api/urls/{record.id}", headers=user_headers)
    assert again.status_code == 404
    assert again.json()["error"] == "URL not found"


@pytest.mark.asyncio
async def test_delete_malformed_id(client: AsyncClient, user_headers):
    response = await client.delete("/api/urls/not-an-id", headers=user_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_created_at_is_stable_across_responses(client: AsyncClient, bot_headers, web):
    web.page("https://example.com/a", "<title>A</title>")

    created = await client.post("/api/urls", json={"url": "https://example.com/a"}, headers=bot_headers)
    resubmitted = await client.post("/api/urls", json={"url": "https://example.com/a"}, headers=bot_headers)
    listed = await client.get("/api/urls", headers=bot_headers)
    paged = await client.get("/api/urls", params={"limit": 10}, headers=bot_headers)

    created_at = created.json()["createdAt"]
    assert created_at.endswith("+00:00")
    assert resubmitted.json()["createdAt"] == created_at
    assert listed.json()[0]["createdAt"] == created_at
    assert paged.json()["data"][0]["createdAt"] == created_at


@pytest.mark.asyncio
async def test_empty_limit_is_treated_as_absent(client: AsyncClient, user_headers, repository):
    await create_test_link(repository, "https://example.com/a")

    response = await client.get("/api/urls?limit=", headers=user_headers)

    assert response.status_code == 200
    assert [item["url"] for item in response.json()] == ["https://example.com/a"]


@pytest.mark.asyncio
async def test_empty_limit_with_other_params_uses_default(client: AsyncClient, user_headers, repository):
    await create_test_link(repository, "https://example.com/a", title="Cooking")

    response = await client.get("/api/urls?limit=&search=cook", headers=user_headers)

    assert response.status_code == 200
    assert response.json()["pagination"]["count"] == 1
