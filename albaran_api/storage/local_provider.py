"""
Local filesystem blob store for development.
Files are named by their sha256 so the same bytes always map to the same hash,
like an IPFS pin would.
"""
import hashlib
from pathlib import Path
from typing import Optional

import structlog

from ..config import settings
from .provider import BlobStore, BlobStoreError


logger = structlog.get_logger(__name__)


class LocalBlobStore(BlobStore):
    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None):
        self.base_dir = Path(base_dir or settings.local_storage_dir) / "ipfs"
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self.public_base_url = (public_base_url or settings.public_base_url).rstrip("/")

    def path_for(self, content_hash: str) -> Path:
        # Hashes are hex; anything else cannot escape the storage dir
        clean = "".join(ch for ch in content_hash if ch.isalnum())
        return self.base_dir / clean

    def pin(self, data: bytes, filename: str, content_type: Optional[str] = None) -> str:
        content_hash = hashlib.sha256(data).hexdigest()
        path = self.path_for(content_hash)
        try:
            if not path.exists():
                path.write_bytes(data)
        except OSError as e:
            raise BlobStoreError(f"local pin failed: {e}") from e
        logger.info("blob_pinned", provider="local", filename=filename, hash=content_hash, size=len(data))
        return content_hash

    def url_for(self, content_hash: str) -> str:
        return f"{self.public_base_url}/files/ipfs/{content_hash}"

    def exists(self, content_hash: str) -> bool:
        return self.path_for(content_hash).exists()

    def fetch(self, content_hash: str) -> bytes:
        path = self.path_for(content_hash)
        try:
            return path.read_bytes()
        except OSError as e:
            raise BlobStoreError(f"local fetch failed: {e}") from e
