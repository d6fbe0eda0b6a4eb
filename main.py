# linkkeeper/main.py
import logging
import os
from contextlib import asynccontextmanager
from typing import List, Optional

import httpx
from auth import require_auth
from database import close_mongo_connection, connect_to_mongo
from dependencies import Services, build_services, get_services
from errors import InvalidParameter, LinkKeeperError
from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ValidationError
from repository import PageParams
from starlette.middleware.cors import CORSMiddleware
from storage import get_storage_instance
from use_cases import to_view

logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# 只要帶了其中任何一個 query param 就回傳分頁格式
PAGINATION_PARAMS = ("limit", "cursor", "search", "source", "tags")
SORT_FIELDS = {"createdAt": "created_at", "created_at": "created_at"}
LIMIT_ERROR = "Limit must be a number between 1 and 100"


@asynccontextmanager
async def lifespan(app: FastAPI):
    mongo_client, _ = await connect_to_mongo()
    http_client = httpx.AsyncClient(follow_redirects=True, timeout=10.0)
    app.state.services = build_services(get_storage_instance(), http_client)
    yield
    await http_client.aclose()
    await close_mongo_connection(mongo_client)


app = FastAPI(
    title="LinkKeeper",
    description="Saves links with scraped previews for later browsing.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in os.environ.get("CORS_ORIGINS", "*").split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class UrlIn(BaseModel):
    url: str
    tags: Optional[List[str]] = None


@app.exception_handler(LinkKeeperError)
async def link_keeper_error_handler(request: Request, exc: LinkKeeperError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.error, "message": exc.message},
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = "; ".join(
        f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid request", "message": details},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unexpected error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred while processing your request",
        },
    )


@app.get("/health", tags=["Health Check"])
async def health_check():
    """
    Health check endpoint to verify service status.
    """
    return {"status": "ok", "message": "LinkKeeper API is running!"}


@app.post("/api/urls", tags=["URLs"], dependencies=[Depends(require_auth)])
async def add_url(
    body: UrlIn,
    response: Response,
    services: Services = Depends(get_services),
):
    """
    Save a URL, or refresh its metadata if it is already saved.
    201 for a new record, 200 for an existing one.
    """
    result = await services.add_link.execute(body.url, body.tags)
    view = await to_view(result.record, services.resolver)
    response.status_code = status.HTTP_201_CREATED if result.is_new else status.HTTP_200_OK
    return {**view.to_dict(), "isNew": result.is_new}


def _parse_limit(raw: Optional[str]) -> int:
    # 空字串等同沒帶
    if raw is None or not raw.strip():
        return PageParams.model_fields["limit"].default
    try:
        return int(raw)
    except ValueError:
        raise InvalidParameter(LIMIT_ERROR)


def _split_tags(tags: Optional[List[str]]) -> Optional[List[str]]:
    if not tags:
        return None
    parsed = [tag.strip() for raw in tags for tag in raw.split(",") if tag.strip()]
    return parsed or None


@app.get("/api/urls", tags=["URLs"], dependencies=[Depends(require_auth)])
async def get_urls(
    request: Request,
    limit: Optional[str] = None,
    cursor: Optional[str] = None,
    sortBy: str = "createdAt",
    order: str = "desc",
    search: Optional[str] = None,
    source: Optional[str] = None,
    tags: Optional[List[str]] = Query(None),
    services: Services = Depends(get_services),
):
    """
    Without pagination params: every saved URL, newest first (legacy array).
    With any of limit/cursor/search/source/tags: a cursor-paginated envelope.
    """
    if not any(request.query_params.get(name) for name in PAGINATION_PARAMS):
        views = await services.list_links.execute_all()
        return [view.to_dict() for view in views]

    if sortBy not in SORT_FIELDS:
        raise InvalidParameter(f"Unsupported sortBy: {sortBy}")

    try:
        params = PageParams(
            limit=_parse_limit(limit),
            cursor=cursor or None,
            sort_by=SORT_FIELDS[sortBy],
            order=order,
            search=search or None,
            source=source or None,
            tags=_split_tags(tags),
        )
    except ValidationError as e:
        field = e.errors()[0]["loc"][0] if e.errors() else "query"
        if field == "limit":
            raise InvalidParameter(LIMIT_ERROR)
        raise InvalidParameter(f"Invalid value for {field}")

    page = await services.list_links.execute_with_pagination(params)
    return page.to_dict()


@app.delete("/api/urls/{id}", tags=["URLs"], dependencies=[Depends(require_auth)])
async def delete_url(id: str, services: Services = Depends(get_services)):
    await services.delete_link.execute(id)
    return {"success": True, "message": "URL deleted successfully"}
