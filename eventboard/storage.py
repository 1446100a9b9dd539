"""
Storage abstraction for uploaded images: local disk, DigitalOcean Spaces
(S3-compatible) and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config


class StorageClient(Protocol):
    """Defines the operations the API needs from image storage."""

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict] = None,
    ) -> None:
        ...

    def public_url(self, path: str, base_url: str = "") -> str:
        ...

    def delete(self, path: str) -> None:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict] = None,
    ) -> None:
        self.stored_objects[path] = data

    def public_url(self, path: str, base_url: str = "") -> str:
        return f"{self.base_url}/{path}"

    def delete(self, path: str) -> None:
        if path not in self.stored_objects:
            raise FileNotFoundError(path)
        del self.stored_objects[path]


@dataclass
class LocalStorageClient:
    """
    Keeps images under a local directory that the app serves at /uploads.
    Paths are storage keys relative to the root, e.g. ``images/<uuid>.jpg``.
    """

    root: str
    mount_path: str = "/uploads"
    public_base_url: Optional[str] = None

    def __post_init__(self):
        self._root = Path(self.root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        target = (self._root / path).resolve()
        if self._root not in target.parents:
            raise ValueError(f"Storage path escapes upload root: {path}")
        return target

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict] = None,
    ) -> None:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)

    def public_url(self, path: str, base_url: str = "") -> str:
        base = (self.public_base_url or base_url).rstrip("/")
        return f"{base}{self.mount_path}/{path}"

    def delete(self, path: str) -> None:
        self._resolve(path).unlink()


@dataclass
class SpacesStorageClient:
    """
    S3-compatible storage client for DigitalOcean Spaces. Objects are uploaded
    public-read so the returned URL can be embedded directly.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        if "://" not in self.endpoint:
            self.endpoint = f"https://{self.endpoint}"
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self,
        path: str,
        data: bytes,
        content_type: str,
        metadata: Optional[dict] = None,
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=path,
            Body=data,
            ContentType=content_type,
            ACL="public-read",
            Metadata=metadata or {},
        )

    def public_url(self, path: str, base_url: str = "") -> str:
        endpoint = urlparse(self.endpoint)
        return f"{endpoint.scheme}://{self.bucket}.{endpoint.netloc}/{path}"

    def delete(self, path: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=path)
