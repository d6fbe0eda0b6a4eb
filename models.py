from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

import pymongo
from beanie import Document
from pydantic import BaseModel, Field, field_validator


class Source(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"
    THREADS = "threads"
    YOUTUBE = "youtube"


class LinkMetadata(BaseModel):
    title: str = ""
    description: str = ""
    image: str = ""  # storage key, never an external URL
    source: Optional[Source] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("tags", mode="before")
    @classmethod
    def dedupe_tags(cls, value):
        if value is None:
            return []
        seen = []
        for tag in value:
            if tag not in seen:
                seen.append(tag)
        return seen


def utcnow() -> datetime:
    # BSON dates keep milliseconds only
    now = datetime.now(timezone.utc)
    return now.replace(microsecond=now.microsecond // 1000 * 1000)


class Link(Document):
    url: str
    metadata: LinkMetadata = Field(default_factory=LinkMetadata)
    created_at: datetime = Field(default_factory=utcnow)
    deleted_at: Optional[datetime] = None

    class Settings:
        name = "urls"  # MongoDB collection
        indexes = [
            # deleted_at is null on every live record, so url is unique among
            # live records while soft-deleted copies may repeat it
            pymongo.IndexModel(
                [("url", pymongo.ASCENDING), ("deleted_at", pymongo.ASCENDING)],
                name="url_unique_active",
                unique=True,
            ),
            pymongo.IndexModel(
                [("created_at", pymongo.DESCENDING), ("_id", pymongo.DESCENDING)],
                name="created_at_id",
            ),
        ]

    @property
    def is_deleted(self) -> bool:
        return self.deleted_at is not None
