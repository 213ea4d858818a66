"""
Storage Service
Object storage for source photos and generated images - local filesystem or S3.
"""

import logging
from pathlib import Path
from typing import Optional

import httpx

from dreamboat.core.config import settings

logger = logging.getLogger(__name__)


class StorageService:
    """
    Key-addressed object storage.

    Keys are relative paths such as "uploads/{owner}/{photo}.jpg" or
    "generated/{request_id}.jpg"; the backend decides where they live.
    """

    def __init__(self, use_local: Optional[bool] = None, base_path: Optional[str] = None):
        self.use_local = settings.USE_LOCAL_STORAGE if use_local is None else use_local

        if self.use_local:
            self.base_path = Path(base_path or settings.LOCAL_STORAGE_PATH)
            self.base_path.mkdir(parents=True, exist_ok=True)
            logger.info(f"[Storage] Using local storage: {self.base_path}")

        else:
            import boto3
            from botocore.config import Config
            self.s3 = boto3.client(
                "s3",
                endpoint_url=settings.S3_ENDPOINT or None,
                aws_access_key_id=settings.S3_ACCESS_KEY,
                aws_secret_access_key=settings.S3_SECRET_KEY,
                region_name=settings.S3_REGION,
                config=Config(signature_version="s3v4")
            )
            self.bucket = settings.S3_BUCKET
            logger.info(f"[Storage] Using S3: {self.bucket}")

    async def upload_bytes(self, data: bytes, key: str, content_type: str = "image/jpeg") -> str:
        """Store bytes under `key` and return the key."""
        if self.use_local:
            file_path = self.base_path / key
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        else:
            self.s3.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=data,
                ContentType=content_type
            )
        logger.debug(f"[Storage] Stored {len(data)} bytes at {key}")
        return key

    async def get_file(self, key: str) -> bytes:
        """Read the object stored under `key`."""
        if self.use_local:
            return (self.base_path / key).read_bytes()
        response = self.s3.get_object(Bucket=self.bucket, Key=key)
        return response["Body"].read()

    async def exists(self, key: str) -> bool:
        if self.use_local:
            return (self.base_path / key).is_file()

        from botocore.exceptions import ClientError
        try:
            self.s3.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    async def download_bytes(self, locator: str) -> bytes:
        """
        Fetch bytes from a storage key or an external http(s) URL.

        Args:
            locator: Storage key, or an http(s) URL for images hosted elsewhere

        Returns:
            File bytes
        """
        try:
            if locator.startswith(("http://", "https://")):
                async with httpx.AsyncClient() as client:
                    response = await client.get(locator, timeout=60.0)
                    response.raise_for_status()
                    return response.content
            return await self.get_file(locator)
        except Exception as e:
            logger.error(f"[Storage] Error downloading {locator}: {e}")
            raise


__all__ = ["StorageService"]
