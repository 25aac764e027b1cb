"""
Content hashing (SHA-256) for integrity checks and per-drive deduplication
"""
import asyncio
import hashlib
import logging
from pathlib import Path
from typing import AsyncIterator, Union

from ..core.errors import DriveError, IOFailureError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024


def compute_hash(content: bytes) -> str:
    """Compute SHA256 hash of content (for in-memory payloads)"""
    return hashlib.sha256(content).hexdigest()


async def compute_hash_streaming(content_stream: AsyncIterator[bytes]) -> str:
    """
    Compute SHA256 hash from streaming content

    Efficiently hashes large files without loading into memory:
    - Process in chunks
    - Single pass (compute while reading)
    - Cancellable between chunks
    """
    hasher = hashlib.sha256()

    async for chunk in content_stream:
        hasher.update(chunk)

    return hasher.hexdigest()


async def _read_file_chunks(path: Path, chunk_size: int) -> AsyncIterator[bytes]:
    loop = asyncio.get_running_loop()
    handle = await loop.run_in_executor(None, open, path, "rb")
    try:
        while True:
            chunk = await loop.run_in_executor(None, handle.read, chunk_size)
            if not chunk:
                break
            yield chunk
    finally:
        handle.close()


async def hash_file(path: Union[str, Path], chunk_size: int = CHUNK_SIZE) -> str:
    """
    Hash a file at rest on the local filesystem.

    Each read runs in the default executor so the event loop stays free.

    Raises:
        IOFailureError: if the file cannot be opened or read
    """
    path = Path(path)
    try:
        return await compute_hash_streaming(_read_file_chunks(path, chunk_size))
    except OSError as e:
        logger.error(f"❌ Failed to hash {path}: {e}")
        raise IOFailureError("hash", str(path), str(e)) from e


async def hash_blob(store, key: str) -> str:
    """
    Hash an object already held by a blob store by streaming it.

    Raises:
        IOFailureError: if the blob is missing or unreadable
    """
    try:
        return await compute_hash_streaming(store.iter_chunks(key))
    except DriveError:
        raise
    except OSError as e:
        raise IOFailureError("hash", key, str(e)) from e
