"""Object-storage backends for ingested assignment files.

Two interchangeable backends implement the same two calls, ``put`` and
``delete``: an S3-compatible bucket via boto3, and a local directory served
by the app under ``/uploads`` (the development default).
"""

from __future__ import annotations

import logging
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional, Protocol
from urllib.parse import quote

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .errors import StorageError
from .settings import Settings, settings

logger = logging.getLogger(__name__)

_UNSAFE = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class StoredObject:
    key: str
    url: str


class ObjectStore(Protocol):
    public_base_url: str

    def put(self, data: bytes, name: str, content_type: str) -> StoredObject: ...

    def delete(self, key: str) -> None: ...


def safe_filename(name: str) -> str:
    base = os.path.basename((name or "").replace("\\", "/"))
    cleaned = _UNSAFE.sub("_", base).strip("._")
    return cleaned[:120] or "file"


def object_key(folder: str, name: str, use_filename: bool) -> str:
    token = uuid.uuid4().hex
    if use_filename:
        leaf = f"{token[:12]}_{safe_filename(name)}"
    else:
        leaf = token + os.path.splitext(safe_filename(name))[1].lower()
    folder = folder.strip("/")
    return f"{folder}/{leaf}" if folder else leaf


class S3ObjectStore:
    def __init__(
        self,
        client: Any,
        bucket: str,
        public_base_url: Optional[str] = None,
        folder: str = "assignments",
        use_filename: bool = True,
        region: Optional[str] = None,
    ):
        self.client = client
        self.bucket = bucket
        self.folder = folder
        self.use_filename = use_filename
        if public_base_url:
            self.public_base_url = public_base_url.rstrip("/")
        elif region:
            self.public_base_url = f"https://{bucket}.s3.{region}.amazonaws.com"
        else:
            self.public_base_url = f"https://{bucket}.s3.amazonaws.com"

    def put(self, data: bytes, name: str, content_type: str) -> StoredObject:
        key = object_key(self.folder, name, self.use_filename)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=data, ContentType=content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"upload of {key} failed: {exc}") from exc
        return StoredObject(key=key, url=f"{self.public_base_url}/{quote(key)}")

    def delete(self, key: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"delete of {key} failed: {exc}") from exc


class LocalObjectStore:
    def __init__(self, root: str, public_base_url: str, folder: str = "assignments", use_filename: bool = True):
        self.root = Path(root)
        self.public_base_url = public_base_url.rstrip("/")
        self.folder = folder
        self.use_filename = use_filename

    def put(self, data: bytes, name: str, content_type: str) -> StoredObject:
        key = object_key(self.folder, name, self.use_filename)
        path = self.root / key
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as exc:
            raise StorageError(f"write of {key} failed: {exc}") from exc
        return StoredObject(key=key, url=f"{self.public_base_url}/{quote(key)}")

    def delete(self, key: str) -> None:
        try:
            (self.root / key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(f"delete of {key} failed: {exc}") from exc


def build_object_store(cfg: Settings = settings) -> ObjectStore:
    if cfg.storage_backend == "s3":
        client = boto3.client(
            "s3",
            endpoint_url=cfg.s3_endpoint_url,
            aws_access_key_id=cfg.aws_access_key_id,
            aws_secret_access_key=cfg.aws_secret_access_key,
            region_name=cfg.aws_default_region,
        )
        return S3ObjectStore(
            client,
            cfg.s3_bucket,
            public_base_url=cfg.storage_public_base_url,
            folder=cfg.storage_folder,
            use_filename=cfg.storage_use_filename,
            region=cfg.aws_default_region,
        )
    if cfg.storage_backend == "local":
        base = cfg.storage_public_base_url or cfg.public_base_url.rstrip("/") + "/uploads"
        return LocalObjectStore(cfg.upload_dir, base, folder=cfg.storage_folder, use_filename=cfg.storage_use_filename)
    raise ValueError(f"unknown storage backend: {cfg.storage_backend!r}")
