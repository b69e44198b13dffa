"""
Uploads recorded media to object storage.

Keys are ``{owner_id}/{kind}_{epoch_millis}.{ext}``; uploads never
overwrite an existing object. An upload that succeeds before the entry
save fails leaves an unreferenced object behind; nothing cleans it up.
"""

import asyncio
import logging
import time
from typing import Callable, Optional, Union

from .config import DEFAULT_UPLOAD_TIMEOUT
from .errors import AuthError, JournalError, StorageError
from .protocol import ObjectStorage
from .types import Blob, EntryType, MediaPreview

logger = logging.getLogger(__name__)

# kind -> (file extension, content type)
MEDIA_FORMATS = {
    EntryType.AUDIO: ("webm", "audio/webm"),
    EntryType.VIDEO: ("mp4", "video/mp4"),
}


def storage_key(owner_id: str, media_kind: Union[EntryType, str], epoch_millis: int) -> str:
    """Deterministic object key for an upload."""
    kind = EntryType(media_kind)
    ext, _ = MEDIA_FORMATS[kind]
    return f"{owner_id}/{kind.value}_{epoch_millis}.{ext}"


class MediaUploader:
    """Persists finalized blobs and returns their public URL."""

    def __init__(
        self,
        storage: ObjectStorage,
        *,
        timeout: float = DEFAULT_UPLOAD_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self._storage = storage
        self._timeout = timeout
        self._clock = clock

    async def upload(
        self,
        blob: Optional[Blob],
        owner_id: str,
        media_kind: Union[EntryType, str],
    ) -> str:
        """
        Upload a blob and return its public URL.

        Text entries and empty blobs short-circuit to "" without
        touching storage.

        Raises:
            ValueError: unknown media kind
            AuthError: no owner id
            StorageError: the upload failed or timed out
        """
        kind = EntryType(media_kind)
        if kind is EntryType.TEXT:
            return ""
        if blob is None or blob.size == 0:
            logger.warning("No %s data to upload", kind.value)
            return ""
        if not owner_id:
            raise AuthError("Sign in to upload media")

        ext, content_type = MEDIA_FORMATS[kind]
        key = storage_key(owner_id, kind, int(self._clock() * 1000))
        logger.info("Uploading %s (%d bytes) to %s", kind.value, blob.size, key)
        try:
            await asyncio.wait_for(
                self._storage.upload(key, blob.data, content_type=content_type, upsert=False),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise StorageError(f"Upload of {key} timed out after {self._timeout}s") from e
        except JournalError:
            raise
        except Exception as e:
            logger.error("Upload of %s failed: %s", key, e)
            raise StorageError(f"Upload of {key} failed: {e}") from e

        url = self._storage.public_url(key)
        logger.info("Upload successful: %s", url)
        return url


def media_preview(media_url: Optional[str], media_kind: Union[EntryType, str]) -> Optional[MediaPreview]:
    """Player details for an entry's media, or None when there is nothing to play."""
    kind = EntryType(media_kind)
    if not media_url or kind is EntryType.TEXT:
        return None
    _, content_type = MEDIA_FORMATS[kind]
    return MediaPreview(kind=kind, url=media_url, content_type=content_type)
