from typing import Optional


class BlobStoreError(Exception):
    pass


class BlobStore:
    """Content-addressed store: pin bytes, get back a hash, derive a public URL from it."""

    def pin(self, data: bytes, filename: str, content_type: Optional[str] = None) -> str:
        raise NotImplementedError

    def url_for(self, content_hash: str) -> str:
        raise NotImplementedError

    def fetch(self, content_hash: str) -> bytes:
        raise NotImplementedError

    @staticmethod
    def hash_from_url(url: Optional[str]) -> Optional[str]:
        if not url or "/ipfs/" not in url:
            return None
        return url.rsplit("/ipfs/", 1)[1].split("?", 1)[0] or None
