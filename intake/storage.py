"""
Object storage for uploaded files.

Two backends share the same small interface (`put`, `head`, `get`): the local
filesystem, used for development and tests, and a Supabase Storage bucket.
Object metadata is written next to each object as `<key>.meta.json`.
"""

import hashlib
import json
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Dict, Optional

from auth.supabase_client import get_service_role_client
from storage3.exceptions import StorageApiError

logger = logging.getLogger(__name__)

META_SUFFIX = ".meta.json"
_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


class StorageWriteError(Exception):
    """The object store did not accept the file."""


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def sanitize_reference(reference: Optional[str], max_length: int = 64) -> Optional[str]:
    """Restrict a free-text reference to a filename-safe charset. Blank -> None."""
    if not reference:
        return None
    cleaned = _UNSAFE_CHARS.sub("_", reference.strip())[:max_length].strip("._")
    return cleaned or None


def build_storage_key(
    brand_slug: str,
    received_at: datetime,
    record_id: str,
    extension: str,
    reference: Optional[str] = None,
) -> str:
    """
    Human-readable, hierarchical key, e.g.
    `acme/2025/09/20250904_001122_7KQ2MZ4D_PO-1234.pdf`.

    The record id is part of the name, so an object orphaned by an
    interrupted upload can be matched back to its transaction.
    """
    stamp = received_at.strftime("%Y%m%d_%H%M%S")
    name = f"{stamp}_{record_id}"
    if reference:
        name = f"{name}_{reference}"
    return f"{brand_slug or 'default'}/{received_at:%Y}/{received_at:%m}/{name}.{extension}"


def _meta_document(key: str, data: bytes, content_type: str, metadata: Optional[Dict[str, str]]) -> bytes:
    document = {
        "key": key,
        "content_type": content_type,
        "byte_size": len(data),
        "sha256": sha256_hex(data),
        "metadata": metadata or {},
        "stored_at": datetime.now().isoformat(),
    }
    return json.dumps(document, indent=2).encode("utf-8")


class LocalObjectStore:
    """Stores objects as plain files under `base_dir`."""

    def __init__(self, base_dir: str):
        self.base_dir = Path(base_dir).expanduser().resolve()
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self.base_dir / key).resolve()
        # Keys are built from sanitized parts, but never escape the root
        if self.base_dir not in path.parents:
            raise StorageWriteError(f"Refusing key outside storage root: {key}")
        return path

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None) -> None:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            with open(path, "wb") as f:
                f.write(data)
            with open(f"{path}{META_SUFFIX}", "wb") as f:
                f.write(_meta_document(key, data, content_type, metadata))
        except OSError as e:
            raise StorageWriteError(f"Failed to write {key}: {e}") from e

    def head(self, key: str) -> bool:
        return self._path(key).is_file()

    def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.is_file():
            return None
        return path.read_bytes()

    def get_metadata(self, key: str) -> Optional[Dict]:
        path = Path(f"{self._path(key)}{META_SUFFIX}")
        if not path.is_file():
            return None
        return json.loads(path.read_text(encoding="utf-8"))


class SupabaseObjectStore:
    """Stores objects in a Supabase Storage bucket using the service role."""

    def __init__(self, bucket_name: str, client=None):
        self.bucket_name = bucket_name
        self._client = client

    def _bucket(self):
        client = self._client or get_service_role_client()
        if client is None:
            raise StorageWriteError("Supabase is not configured (SUPABASE_URL / SUPABASE_SERVICE_ROLE_KEY)")
        self._client = client
        return client.storage.from_(self.bucket_name)

    def put(self, key: str, data: bytes, content_type: str, metadata: Optional[Dict[str, str]] = None) -> None:
        try:
            bucket = self._bucket()
            bucket.upload(
                path=key,
                file=data,
                file_options={"content-type": content_type or "application/octet-stream", "upsert": "true"},
            )
        except StorageWriteError:
            raise
        except Exception as e:
            raise StorageWriteError(f"Failed to upload {key} to Supabase Storage: {e}") from e

        # The object itself is what matters; a missing sidecar is only logged
        try:
            bucket.upload(
                path=f"{key}{META_SUFFIX}",
                file=_meta_document(key, data, content_type, metadata),
                file_options={"content-type": "application/json", "upsert": "true"},
            )
        except Exception as e:
            logger.warning(f"⚠️ Failed to upload metadata for {key}: {e}")

    def head(self, key: str) -> bool:
        folder, _, name = key.rpartition("/")
        try:
            items = self._bucket().list(folder or None, {"limit": 100, "search": name})
        except StorageApiError as e:
            logger.warning(f"⚠️ Could not list {folder} in Supabase Storage: {e}")
            return False
        return any(item.get("name") == name for item in items or [])

    def get(self, key: str) -> Optional[bytes]:
        try:
            return self._bucket().download(key)
        except StorageApiError as e:
            if getattr(e, "code", None) == "not_found" or "not_found" in str(e).lower():
                return None
            raise


def create_object_store(settings):
    """Build the object store selected by `settings.storage_backend`."""
    if settings.storage_backend == "supabase":
        return SupabaseObjectStore(settings.bucket_name)
    return LocalObjectStore(settings.storage_dir)
