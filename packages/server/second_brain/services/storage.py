"""
Local filesystem storage for uploaded attachments.

Files are written under `upload_dir` with a random name that keeps the
original extension, and served back from `url_prefix`.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from pathlib import Path

import structlog
from fastapi import Request

log = structlog.get_logger()


@dataclass(frozen=True)
class StoredFile:
    url: str
    key: str
    size: int


class LocalFileStorage:
    """Store uploads on the local filesystem."""

    def __init__(self, base_path: str = "./data/uploads", url_prefix: str = "/uploads"):
        self.base_path = Path(base_path)
        self.url_prefix = url_prefix.rstrip("/")

    def _key_for(self, filename: str) -> str:
        suffix = Path(filename).suffix.lower()
        return f"{uuid.uuid4().hex}{suffix}"

    def path_for(self, key: str) -> Path:
        return self.base_path / key

    async def put(self, data: bytes, filename: str) -> StoredFile:
        key = self._key_for(filename)
        path = self.path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        log.info("storage.stored", key=key, size=len(data))
        return StoredFile(url=f"{self.url_prefix}/{key}", key=key, size=len(data))

    async def delete(self, key: str) -> bool:
        path = self.path_for(key)
        if path.exists():
            path.unlink()
            return True
        return False


def get_storage(request: Request) -> LocalFileStorage:
    return request.app.state.storage
