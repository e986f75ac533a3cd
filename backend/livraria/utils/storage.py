"""
Object storage for book covers and store images: S3-compatible buckets
via boto3, and an in-memory client for tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger("livraria.storage")


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(self, path: str, payload: bytes, content_type: str) -> str:
        ...

    def delete(self, path: str) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def path_from_url(self, url: str) -> Optional[str]:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://storage.example.test"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(self, path: str, payload: bytes, content_type: str) -> str:
        self.stored_objects[path] = payload
        return self.public_url(path)

    def delete(self, path: str) -> None:
        # deleting a missing object is not an error, same as S3
        self.stored_objects.pop(path, None)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = f"{self.base_url}/"
        if url and url.startswith(prefix):
            return url[len(prefix):]
        return None

    def clear(self) -> None:
        self.stored_objects.clear()


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client (AWS S3, R2, MinIO, COS).
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str = ""

    def __post_init__(self):
        config = Config(signature_version="s3v4")
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or None,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id or None,
            aws_secret_access_key=self.secret_access_key or None,
            config=config,
        )
        if not self.public_base_url:
            if self.endpoint:
                self.public_base_url = f"{self.endpoint.rstrip('/')}/{self.bucket}"
            else:
                self.public_base_url = f"https://{self.bucket}.s3.{self.region or 'us-east-1'}.amazonaws.com"

    def upload_bytes(self, path: str, payload: bytes, content_type: str) -> str:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=payload,
            ContentType=content_type,
        )
        logger.info("object_uploaded bucket=%s key=%s bytes=%d", self.bucket, path, len(payload))
        return self.public_url(path)

    def delete(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code")
            if code not in ("NoSuchKey", "404"):
                raise
            logger.warning("object_missing bucket=%s key=%s", self.bucket, path)

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url}/{path}"

    def path_from_url(self, url: str) -> Optional[str]:
        prefix = f"{self.public_base_url}/"
        if url and url.startswith(prefix):
            return url[len(prefix):].split("?", 1)[0]
        return None
