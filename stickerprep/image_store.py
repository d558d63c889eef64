"""
In-memory store for uploaded images awaiting sticker generation

Entries expire after a TTL. Expiry happens only when sweep_expired() is
called, so the owner decides the schedule.
"""
import logging
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .config import get_config

logger = logging.getLogger(__name__)


@dataclass
class StoredImage:
    id: str
    data: bytes
    content_type: str
    uploaded_at: float
    preview: Optional[str] = None
    sticker_url: Optional[str] = None


class ImageStore:
    """Upload store with explicit lifecycle: construct, use, sweep, close"""

    def __init__(self, ttl_seconds: Optional[int] = None, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_config().store.ttl_seconds
        self._clock = clock
        self._images: Dict[str, StoredImage] = {}
        self._lock = threading.Lock()
        self._closed = False

    def __len__(self) -> int:
        with self._lock:
            return len(self._images)

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("ImageStore is closed")

    def store(self, data: bytes, content_type: str, preview: Optional[str] = None) -> str:
        """Keep an upload and return its id"""
        image_id = secrets.token_urlsafe(16)
        entry = StoredImage(
            id=image_id,
            data=data,
            content_type=content_type,
            uploaded_at=self._clock(),
            preview=preview,
        )
        with self._lock:
            self._check_open()
            self._images[image_id] = entry
        logger.debug(f"Stored image {image_id} ({len(data)} bytes)")
        return image_id

    def get(self, image_id: str) -> Optional[StoredImage]:
        with self._lock:
            return self._images.get(image_id)

    def remove(self, image_id: str) -> bool:
        with self._lock:
            return self._images.pop(image_id, None) is not None

    def attach_sticker_url(self, image_id: str, url: str) -> bool:
        """Record the generated sticker URL; False if the upload is gone"""
        with self._lock:
            entry = self._images.get(image_id)
            if entry is None:
                return False
            entry.sticker_url = url
            return True

    def sweep_expired(self, now: Optional[float] = None) -> int:
        """Drop entries older than the TTL, returns how many were removed"""
        cutoff = (self._clock() if now is None else now) - self.ttl_seconds
        with self._lock:
            expired = [k for k, v in self._images.items() if v.uploaded_at < cutoff]
            for image_id in expired:
                del self._images[image_id]
        if expired:
            logger.info(f"🧹 Swept {len(expired)} expired image(s)")
        return len(expired)

    def close(self) -> None:
        with self._lock:
            self._images.clear()
            self._closed = True
