"""
PCOS Portal - Blob Storage
Filesystem-backed buckets for uploaded genetic data and medical images
"""
import logging
import time
from pathlib import Path, PurePosixPath

from pcos_portal.config import settings
from pcos_portal.exceptions import StorageError

logger = logging.getLogger(__name__)

GENETIC_BUCKET = "genetic-data"
IMAGING_BUCKET = "medical-imaging"
BUCKETS = (GENETIC_BUCKET, IMAGING_BUCKET)


def safe_filename(filename: str) -> str:
    """Base name of whatever path the client sent"""
    return PurePosixPath(filename.replace("\\", "/")).name


def build_object_key(user_id: int, filename: str, timestamp_ms: int | None = None) -> str:
    """Object key: {user_id}/{timestamp}_{original_filename}"""
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{user_id}/{timestamp_ms}_{safe_filename(filename)}"


class BlobStorage:
    """Buckets are directories under root; object keys are relative paths inside them"""

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _object_path(self, bucket: str, key: str) -> Path:
        if bucket not in BUCKETS:
            raise StorageError(f"Unknown bucket: {bucket}", bucket=bucket)
        bucket_dir = (self.root / bucket).resolve()
        path = (bucket_dir / key).resolve()
        if bucket_dir not in path.parents:
            raise StorageError("Invalid object key", bucket=bucket, details={"key": key})
        return path

    def upload(self, bucket: str, key: str, data: bytes) -> str:
        """Write a new object; existing objects are never overwritten"""
        path = self._object_path(bucket, key)
        if path.exists():
            raise StorageError("The resource already exists", bucket=bucket, details={"key": key})
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            logger.error("Blob write failed for %s/%s: %s", bucket, key, e)
            raise StorageError(f"Failed to store file: {e.strerror or e}", bucket=bucket) from e
        logger.info("Stored %d bytes at %s/%s", len(data), bucket, key)
        return key

    def download(self, bucket: str, key: str) -> bytes:
        path = self._object_path(bucket, key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read file: {e.strerror or e}", bucket=bucket) from e

    def exists(self, bucket: str, key: str) -> bool:
        return self._object_path(bucket, key).exists()


_storage = BlobStorage(settings.storage_root)


def get_storage() -> BlobStorage:
    """Dependency returning the configured blob store"""
    return _storage
