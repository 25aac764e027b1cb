"""
Blob storage for file contents

Two interchangeable backends:
- MinioBlobStore: MinIO / S3-compatible object storage (production)
- LocalBlobStore: plain filesystem directory (single host, tests)

All methods are async; blocking client/filesystem calls run in the default
executor so the event loop stays free for other requests. Writes are atomic
from the reader's point of view: an object either exists completely or not
at all.
"""
import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import AsyncIterator

from minio import Minio
from minio.commonconfig import CopySource
from minio.error import S3Error
from urllib3.exceptions import HTTPError

from ..core.config import Settings
from ..core.errors import IOFailureError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# S3 error responses, urllib3 connection/protocol errors and socket errors
MINIO_ERRORS = (S3Error, HTTPError, OSError)
MISSING_OBJECT_CODES = {"NoSuchKey", "NoSuchObject", "ResourceNotFound"}


class BlobStore(ABC):
    """Interface shared by the storage backends"""

    @abstractmethod
    async def put(self, key: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        ...

    @abstractmethod
    async def get(self, key: str) -> bytes:
        ...

    @abstractmethod
    def iter_chunks(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        ...

    @abstractmethod
    async def copy(self, source_key: str, dest_key: str) -> None:
        """Duplicate a blob under a new key"""

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        ...

    def ensure_ready(self) -> None:
        """Prepare the backend at startup (bucket/directory creation)"""


class MinioBlobStore(BlobStore):
    """
    Object storage using MinIO (S3-compatible).

    put_object is atomic on the server side, so a failed or cancelled upload
    never leaves a partial object behind.
    """

    def __init__(self, client: Minio, bucket: str):
        self.client = client
        self.bucket = bucket
        logger.info(f"🗄️  MinIO blob store initialized: bucket={self.bucket}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "MinioBlobStore":
        client = Minio(
            settings.MINIO_ENDPOINT,
            access_key=settings.MINIO_ACCESS_KEY,
            secret_key=settings.MINIO_SECRET_KEY,
            secure=settings.MINIO_SECURE
        )
        return cls(client, settings.MINIO_BUCKET)

    def ensure_ready(self) -> None:
        """Create bucket if it doesn't exist"""
        try:
            if not self.client.bucket_exists(self.bucket):
                self.client.make_bucket(self.bucket)
                logger.info(f"✅ Created MinIO bucket: {self.bucket}")
            else:
                logger.info(f"✅ MinIO bucket exists: {self.bucket}")
        except S3Error as e:
            logger.error(f"❌ Failed to create bucket: {e}")
            raise

    async def _run(self, operation: str, key: str, func, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, func, *args)
        except MINIO_ERRORS as e:
            logger.error(f"❌ MinIO {operation} failed for {key}: {e}")
            raise IOFailureError(operation, key, str(e)) from e

    async def put(self, key: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        await self._run(
            "upload", key,
            lambda: self.client.put_object(
                self.bucket, key, BytesIO(content), length=len(content), content_type=content_type
            )
        )
        logger.info(f"📤 Uploaded {len(content)} bytes to {key}")

    async def get(self, key: str) -> bytes:
        def _download() -> bytes:
            response = self.client.get_object(self.bucket, key)
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

        content = await self._run("download", key, _download)
        logger.info(f"📥 Downloaded {len(content)} bytes from {key}")
        return content

    async def iter_chunks(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        """
        Stream object chunks with constant memory usage.

        get_object only returns the response handle; each read() is a blocking
        call and runs in the executor so the event loop is never frozen.
        """
        response = await self._run("download", key, self.client.get_object, self.bucket, key)
        try:
            while True:
                chunk = await self._run("download", key, response.read, chunk_size)
                if not chunk:
                    break
                yield chunk
        finally:
            response.close()
            response.release_conn()

    async def copy(self, source_key: str, dest_key: str) -> None:
        await self._run(
            "copy", source_key,
            self.client.copy_object, self.bucket, dest_key, CopySource(self.bucket, source_key)
        )
        logger.info(f"📋 Copied {source_key} to {dest_key}")

    async def delete(self, key: str) -> None:
        await self._run("delete", key, self.client.remove_object, self.bucket, key)
        logger.info(f"🗑️  Deleted {key}")

    async def exists(self, key: str) -> bool:
        """True if the object exists; an unreachable server is an IOFailureError, not False"""
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self.client.stat_object, self.bucket, key)
            return True
        except S3Error as e:
            if e.code in MISSING_OBJECT_CODES:
                return False
            logger.error(f"❌ MinIO stat failed for {key}: {e}")
            raise IOFailureError("stat", key, str(e)) from e
        except (HTTPError, OSError) as e:
            logger.error(f"❌ MinIO stat failed for {key}: {e}")
            raise IOFailureError("stat", key, str(e)) from e


class LocalBlobStore(BlobStore):
    """
    Filesystem-backed blob store.

    Writes go to a temporary file in the destination directory and are then
    renamed into place, so readers never observe a half-written blob.
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).resolve()

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalBlobStore":
        return cls(settings.LOCAL_STORAGE_DIR)

    def ensure_ready(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info(f"✅ Local blob store ready at {self.root}")

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise IOFailureError("resolve", key, "key escapes storage root")
        return path

    def _write(self, path: Path, content: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as tmp:
                tmp.write(content)
                tmp.flush()
                os.fsync(tmp.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    async def put(self, key: str, content: bytes, content_type: str = "application/octet-stream") -> None:
        path = self._path(key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, self._write, path, content)
        except OSError as e:
            logger.error(f"❌ Local write failed for {key}: {e}")
            raise IOFailureError("upload", key, str(e)) from e
        logger.info(f"📤 Stored {len(content)} bytes at {key}")

    async def get(self, key: str) -> bytes:
        path = self._path(key)
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, path.read_bytes)
        except OSError as e:
            logger.error(f"❌ Local read failed for {key}: {e}")
            raise IOFailureError("download", key, str(e)) from e

    async def iter_chunks(self, key: str, chunk_size: int = CHUNK_SIZE) -> AsyncIterator[bytes]:
        path = self._path(key)
        loop = asyncio.get_running_loop()
        try:
            handle = await loop.run_in_executor(None, open, path, "rb")
        except OSError as e:
            raise IOFailureError("download", key, str(e)) from e
        try:
            while True:
                try:
                    chunk = await loop.run_in_executor(None, handle.read, chunk_size)
                except OSError as e:
                    raise IOFailureError("download", key, str(e)) from e
                if not chunk:
                    break
                yield chunk
        finally:
            handle.close()

    async def copy(self, source_key: str, dest_key: str) -> None:
        source, dest = self._path(source_key), self._path(dest_key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: self._write(dest, source.read_bytes()))
        except OSError as e:
            logger.error(f"❌ Local copy failed for {source_key}: {e}")
            raise IOFailureError("copy", source_key, str(e)) from e
        logger.info(f"📋 Copied {source_key} to {dest_key}")

    async def delete(self, key: str) -> None:
        path = self._path(key)
        loop = asyncio.get_running_loop()
        try:
            await loop.run_in_executor(None, lambda: path.unlink(missing_ok=True))
        except OSError as e:
            logger.error(f"❌ Local delete failed for {key}: {e}")
            raise IOFailureError("delete", key, str(e)) from e
        logger.info(f"🗑️  Deleted {key}")

    async def exists(self, key: str) -> bool:
        return self._path(key).is_file()


def create_blob_store(settings: Settings) -> BlobStore:
    """Build the blob store selected by STORAGE_BACKEND"""
    if settings.STORAGE_BACKEND == "local":
        return LocalBlobStore.from_settings(settings)
    if settings.STORAGE_BACKEND == "minio":
        return MinioBlobStore.from_settings(settings)
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.STORAGE_BACKEND}")
