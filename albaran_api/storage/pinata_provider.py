import json
from typing import Optional

import httpx
import structlog

from ..config import settings
from .provider import BlobStore, BlobStoreError


logger = structlog.get_logger(__name__)


class PinataBlobStore(BlobStore):
    def __init__(self) -> None:
        if not settings.pinata_key or not settings.pinata_secret or not settings.pinata_gateway:
            raise RuntimeError("PINATA_KEY, PINATA_SECRET and PINATA_GATEWAY must be set")
        self._api_url = settings.pinata_api_url.rstrip("/")
        self._gateway = settings.pinata_gateway
        self._headers = {
            "pinata_api_key": settings.pinata_key,
            "pinata_secret_api_key": settings.pinata_secret,
        }

    def pin(self, data: bytes, filename: str, content_type: Optional[str] = None) -> str:
        files = {"file": (filename, data, content_type or "application/octet-stream")}
        form = {
            "pinataMetadata": json.dumps({"name": filename}),
            "pinataOptions": json.dumps({"cidVersion": 0}),
        }
        try:
            r = httpx.post(
                f"{self._api_url}/pinning/pinFileToIPFS",
                headers=self._headers,
                files=files,
                data=form,
                timeout=settings.upload_timeout_seconds,
            )
            r.raise_for_status()
            content_hash = r.json().get("IpfsHash")
        except (httpx.HTTPError, ValueError) as e:
            logger.warning("pinata_upload_failed", filename=filename, error=str(e))
            raise BlobStoreError(str(e)) from e
        if not content_hash:
            raise BlobStoreError("Pinata response did not include IpfsHash")
        logger.info("blob_pinned", provider="pinata", filename=filename, hash=content_hash, size=len(data))
        return content_hash

    def url_for(self, content_hash: str) -> str:
        return f"https://{self._gateway}/ipfs/{content_hash}"

    def fetch(self, content_hash: str) -> bytes:
        try:
            r = httpx.get(self.url_for(content_hash), timeout=settings.upload_timeout_seconds, follow_redirects=True)
            r.raise_for_status()
        except httpx.HTTPError as e:
            raise BlobStoreError(str(e)) from e
        return r.content
