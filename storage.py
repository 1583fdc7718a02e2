"""
storage.py
Portrait storage: store image bytes, get back something st.image can display.
"""

from __future__ import annotations

import logging
import mimetypes
import uuid
from pathlib import Path

import httpx
from storage3.exceptions import StorageException
from supabase import Client

from config import Settings
from errors import StorageError
from members import make_supabase_client

logger = logging.getLogger(__name__)


def _object_name(content_type: str) -> str:
    ext = mimetypes.guess_extension(content_type) or ".png"
    return f"{uuid.uuid4().hex}{ext}"


class LocalPortraitStorage:
    """Files in a directory; the returned URL is the file path."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def save(self, data: bytes, content_type: str = "image/png") -> str:
        if not data:
            raise StorageError("Empty image.")
        path = self.root / _object_name(content_type)
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Could not save portrait: {e}") from e
        logger.info("Saved portrait %s (%d bytes)", path.name, len(data))
        return str(path)


class SupabasePortraitStorage:
    """Objects in a Supabase storage bucket; returns the public URL."""

    def __init__(self, client: Client, bucket: str):
        self.client = client
        self.bucket = bucket

    def save(self, data: bytes, content_type: str = "image/png") -> str:
        if not data:
            raise StorageError("Empty image.")
        name = _object_name(content_type)
        bucket = self.client.storage.from_(self.bucket)
        try:
            bucket.upload(name, data, {"content-type": content_type})
        except StorageException as e:
            logger.error("Supabase storage rejected %s: %s", name, e)
            raise StorageError(f"Could not upload portrait: {e}") from e
        except httpx.HTTPError as e:
            raise StorageError(f"Could not upload portrait: {e}") from e
        logger.info("Uploaded portrait %s to bucket %s", name, self.bucket)
        return bucket.get_public_url(name)


def make_storage(settings: Settings, client: Client | None = None):
    if settings.member_backend == "supabase":
        if client is None:
            client = make_supabase_client(settings)
        return SupabasePortraitStorage(client, settings.supabase_bucket)
    return LocalPortraitStorage(settings.portrait_dir)
