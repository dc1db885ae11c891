"""
Object storage abstraction for Supabase Storage, its S3-compatible endpoint
and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol

import boto3
import httpx
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from supabase import Client, StorageException

from taskboard.errors import StorageError


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, *, upsert: bool = True
    ) -> None:
        ...

    def public_url(self, path: str) -> str:
        ...

    def remove(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage/v1/object/public/avatars"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, *, upsert: bool = True
    ) -> None:
        if not upsert and path in self.stored_objects:
            raise StorageError(f"Object already exists: {path}")
        self.stored_objects[path] = (data, content_type)

    def public_url(self, path: str) -> str:
        return f"{self.base_url}/{path}"

    def remove(self, path: str) -> None:
        self.stored_objects.pop(path, None)

    def get_bytes(self, path: str) -> bytes:
        stored = self.stored_objects.get(path)
        if stored is None:
            raise FileNotFoundError(path)
        return stored[0]


class SupabaseStorageClient:
    """Supabase Storage bucket accessed through the service-role client."""

    def __init__(self, client: Client, bucket: str):
        self._client = client
        self.bucket = bucket

    def _bucket(self):
        return self._client.storage.from_(self.bucket)

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, *, upsert: bool = True
    ) -> None:
        try:
            self._bucket().upload(
                path,
                data,
                {"content-type": content_type, "upsert": "true" if upsert else "false"},
            )
        except (StorageException, httpx.HTTPError) as exc:
            raise StorageError(f"upload {path}: {exc}") from exc

    def public_url(self, path: str) -> str:
        try:
            url = self._bucket().get_public_url(path)
        except (StorageException, httpx.HTTPError) as exc:
            raise StorageError(f"public url {path}: {exc}") from exc
        # Some client versions leave an empty query string behind.
        return url.rstrip("?")

    def remove(self, path: str) -> None:
        try:
            self._bucket().remove([path])
        except (StorageException, httpx.HTTPError) as exc:
            raise StorageError(f"remove {path}: {exc}") from exc


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client, e.g. the Supabase Storage S3 endpoint.
    Public URLs are built from ``public_base_url``; the bucket must be public.
    """

    bucket: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_base_url: str
    region: str = ""
    timeout_seconds: float = 10.0

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "path"},
            signature_version="s3v4",
            connect_timeout=self.timeout_seconds,
            read_timeout=self.timeout_seconds,
            retries={"total_max_attempts": 1},
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region or None,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self, path: str, data: bytes, content_type: str, *, upsert: bool = True
    ) -> None:
        # S3 PUT always overwrites; upsert=False is only honoured in-memory.
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=path,
                Body=data,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"upload {path}: {exc}") from exc

    def public_url(self, path: str) -> str:
        return f"{self.public_base_url.rstrip('/')}/{path}"

    def remove(self, path: str) -> None:
        try:
            self._client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"remove {path}: {exc}") from exc
