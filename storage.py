# linkkeeper/storage.py
import asyncio
import io
import logging
import os
from datetime import timedelta
from typing import Dict, Optional

from minio import Minio

logger = logging.getLogger(__name__)


class ObjectStorage:
    """
    Thin async facade over an S3-compatible bucket.

    The minio client is blocking, so every call is pushed to a worker thread.
    Errors from the client (minio.error.S3Error, urllib3 errors) are left for
    the caller to absorb.
    """

    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket

    async def find_key(self, prefix: str) -> Optional[str]:
        """Return the first object key starting with prefix, if any."""

        def _first():
            for obj in self.client.list_objects(self.bucket, prefix=prefix):
                return obj.object_name
            return None

        return await asyncio.to_thread(_first)

    async def put(
        self,
        key: str,
        data: bytes,
        content_type: str,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        await asyncio.to_thread(
            self.client.put_object,
            self.bucket,
            key,
            io.BytesIO(data),
            len(data),
            content_type=content_type,
            metadata=metadata,
        )

    async def presigned_url(self, key: str, expires: timedelta) -> str:
        return await asyncio.to_thread(
            self.client.presigned_get_object, self.bucket, key, expires=expires
        )


def get_storage_instance() -> ObjectStorage:
    """
    Build the bucket facade from S3_* environment variables.
    Called once at application startup.
    """
    S3_ENDPOINT = os.environ.get("S3_ENDPOINT", "s3.amazonaws.com")
    S3_BUCKET = os.environ.get("S3_BUCKET", "linkkeeper")
    client = Minio(
        S3_ENDPOINT,
        access_key=os.environ.get("S3_ACCESS_KEY", ""),
        secret_key=os.environ.get("S3_SECRET_KEY", ""),
        region=os.environ.get("S3_REGION", "us-east-1"),
        secure=os.environ.get("S3_SECURE", "true").lower() != "false",
    )
    logger.info(f"Object storage configured: {S3_ENDPOINT}/{S3_BUCKET}")
    return ObjectStorage(client, S3_BUCKET)
