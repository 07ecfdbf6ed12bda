import logging
from typing import Optional, Tuple
from urllib.parse import quote

from gridfs.errors import NoFile
from motor.motor_asyncio import AsyncIOMotorDatabase, AsyncIOMotorGridFSBucket
from pymongo.errors import PyMongoError

from tripsplit.core.config import settings
from tripsplit.core.exceptions import DataUnavailableError, RecordNotFoundError
from tripsplit.services.cache import result_cache

logger = logging.getLogger(__name__)


def public_url(path: str) -> str:
    """Retrievable URL for a stored object, memoized in the result cache."""
    if path.startswith("http://") or path.startswith("https://"):
        return path

    key = f"blob_url:{path}"
    url = result_cache.get(key)
    if url is None:
        url = f"{settings.PUBLIC_BASE_URL}{settings.API_V1_STR}/blobs/{quote(path)}"
        result_cache.set(key, url, ttl=settings.BLOB_URL_CACHE_TTL)
    return url


class BlobStore:
    """Slip and profile images kept in a GridFS bucket."""

    def __init__(self, db: AsyncIOMotorDatabase, bucket_name: Optional[str] = None):
        self.bucket = AsyncIOMotorGridFSBucket(db, bucket_name=bucket_name or settings.BLOB_BUCKET)

    async def upload(self, path: str, data: bytes, content_type: str) -> str:
        if len(data) > settings.MAX_FILE_SIZE:
            raise ValueError(f"File exceeds {settings.MAX_FILE_SIZE} bytes")
        try:
            await self.bucket.upload_from_stream(
                path, data, metadata={"contentType": content_type}
            )
        except PyMongoError as e:
            raise DataUnavailableError(f"Blob upload failed: {e}") from e
        logger.info("Stored blob %s (%d bytes)", path, len(data))
        return public_url(path)

    async def download(self, path: str) -> Tuple[bytes, str]:
        try:
            stream = await self.bucket.open_download_stream_by_name(path)
            data = await stream.read()
        except NoFile as e:
            raise RecordNotFoundError(f"Blob {path} not found") from e
        except PyMongoError as e:
            raise DataUnavailableError(f"Blob download failed: {e}") from e
        metadata = stream.metadata or {}
        return data, metadata.get("contentType", "application/octet-stream")

    async def delete(self, path: str) -> int:
        """Remove every stored revision of path; failures are logged, not raised."""
        removed = 0
        try:
            async for grid_out in self.bucket.find({"filename": path}):
                await self.bucket.delete(grid_out._id)
                removed += 1
        except PyMongoError as e:
            logger.warning("Could not delete blob %s: %s", path, e)
            return removed
        result_cache.invalidate(f"blob_url:{path}")
        logger.info("Deleted blob %s (%d revisions)", path, removed)
        return removed


def content_type_for(filename: Optional[str]) -> Tuple[str, str]:
    """(extension, content type) guessed from a file name, jpeg by default."""
    ext = ""
    if filename and "." in filename:
        ext = filename.rsplit(".", 1)[1].lower()
    if ext == "png":
        return "png", "image/png"
    if ext == "webp":
        return "webp", "image/webp"
    return "jpg", "image/jpeg"
