from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import Response

from ..config import settings
from ..storage.local_provider import LocalBlobStore
from ..storage.pinata_provider import PinataBlobStore
from ..storage.provider import BlobStore


router = APIRouter(prefix="/files", tags=["files"])

_SIGNATURES = (
    (b"%PDF", "application/pdf"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF8", "image/gif"),
)


def get_blob_store() -> BlobStore:
    """
    Blob store selected by STORAGE_PROVIDER.
    Pinata in production; the local content-addressed store for development and tests.
    """
    if settings.storage_provider == "pinata":
        return PinataBlobStore()
    return LocalBlobStore()


def _sniff(data: bytes) -> str:
    for magic, media_type in _SIGNATURES:
        if data.startswith(magic):
            return media_type
    return "application/octet-stream"


@router.get("/ipfs/{content_hash}")
def download_local_blob(content_hash: str, store: BlobStore = Depends(get_blob_store)):
    # Pinata blobs are served by their gateway
    if not isinstance(store, LocalBlobStore) or not store.exists(content_hash):
        raise HTTPException(status_code=404, detail="FILE_NOT_FOUND")
    data = store.fetch(content_hash)
    return Response(content=data, media_type=_sniff(data), headers={"Cache-Control": "public, max-age=31536000, immutable"})
