# linkkeeper/repository.py
import re
from dataclasses import dataclass, field
from typing import List, Literal, Optional

from beanie import SortDirection
from bson import ObjectId
from pydantic import BaseModel, Field
from pymongo.errors import DuplicateKeyError

from errors import DuplicateKey, InvalidCursor, NotFound
from models import Link, Source, utcnow

ACTIVE = {"deleted_at": None}


class PageParams(BaseModel):
    limit: int = Field(default=50, ge=1, le=100)
    cursor: Optional[str] = None
    sort_by: Literal["created_at"] = "created_at"
    order: Literal["desc", "asc"] = "desc"
    search: Optional[str] = None
    source: Optional[Source] = None
    tags: Optional[List[str]] = None


@dataclass
class Page:
    data: List[Link]
    has_more: bool
    next_cursor: Optional[str] = None
    count: int = field(init=False)

    def __post_init__(self):
        self.count = len(self.data)


def _object_id(value: str) -> Optional[ObjectId]:
    if isinstance(value, ObjectId):
        return value
    if not value or not ObjectId.is_valid(value):
        return None
    return ObjectId(value)


class LinkRepository:
    """Link records in MongoDB. Every read skips soft-deleted documents."""

    def __init__(self, document=Link):
        self.document = document

    @property
    def collection(self):
        return self.document.get_motor_collection()

    async def save(self, record: Link) -> Link:
        try:
            await record.insert()
        except DuplicateKeyError as e:
            raise DuplicateKey(f"URL already saved: {record.url}") from e
        return record

    async def find_by_url(self, url: str) -> Optional[Link]:
        return await self.document.find_one({"url": url, **ACTIVE})

    async def find_by_id(self, id: str) -> Optional[Link]:
        oid = _object_id(id)
        if oid is None:
            return None
        return await self.document.find_one({"_id": oid, **ACTIVE})

    async def find_all(self) -> List[Link]:
        return (
            await self.document.find(ACTIVE)
            .sort([("created_at", SortDirection.DESCENDING), ("_id", SortDirection.DESCENDING)])
            .to_list()
        )

    async def find_with_pagination(self, params: PageParams) -> Page:
        descending = params.order == "desc"
        query = dict(ACTIVE)

        # cursor 是上一頁最後一筆的 _id
        if params.cursor:
            cursor = _object_id(params.cursor)
            if cursor is None:
                raise InvalidCursor("Invalid cursor format")
            query["_id"] = {"$lt" if descending else "$gt": cursor}

        if params.search:
            pattern = {"$regex": re.escape(params.search), "$options": "i"}
            query["$or"] = [
                {"metadata.title": pattern},
                {"metadata.description": pattern},
                {"url": pattern},
            ]

        if params.source:
            query["metadata.source"] = Source(params.source).value

        if params.tags:
            query["metadata.tags"] = {"$in": list(params.tags)}

        direction = SortDirection.DESCENDING if descending else SortDirection.ASCENDING
        docs = (
            await self.document.find(query)
            .sort([(params.sort_by, direction), ("_id", direction)])
            .limit(params.limit + 1)
            .to_list()
        )

        has_more = len(docs) > params.limit
        if has_more:
            docs = docs[: params.limit]

        next_cursor = str(docs[-1].id) if has_more and docs else None
        return Page(data=docs, has_more=has_more, next_cursor=next_cursor)

    async def soft_delete(self, id: str) -> None:
        oid = _object_id(id)
        if oid is None:
            raise NotFound(f"URL with id {id} not found")
        result = await self.collection.update_one(
            {"_id": oid, **ACTIVE}, {"$set": {"deleted_at": utcnow()}}
        )
        if result.matched_count == 0:
            raise NotFound(f"URL with id {id} not found")

    async def update(self, record: Link) -> Link:
        if record.id is None:
            raise NotFound("URL has no id")
        try:
            result = await self.collection.update_one(
                {"_id": record.id, **ACTIVE},
                {
                    "$set": {
                        "url": record.url,
                        "metadata": record.metadata.model_dump(mode="json"),
                    }
                },
            )
        except DuplicateKeyError as e:
            raise DuplicateKey(f"URL already saved: {record.url}") from e
        if result.matched_count == 0:
            raise NotFound(f"URL with id {record.id} not found")
        return record

    async def hard_delete(self, id: str) -> None:
        """Physically remove a document. Maintenance use only."""
        oid = _object_id(id)
        if oid is None:
            raise NotFound(f"URL with id {id} not found")
        result = await self.collection.delete_one({"_id": oid})
        if result.deleted_count == 0:
            raise NotFound(f"URL with id {id} not found")
