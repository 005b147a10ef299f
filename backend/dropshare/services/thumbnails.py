import io
import logging
from typing import BinaryIO, Optional

from PIL import Image, UnidentifiedImageError

from dropshare.core.config import settings
from dropshare.core.errors import StorageError
from dropshare.services.storage import StorageBackend

logger = logging.getLogger(__name__)


def thumbnail_key(file_id: int) -> str:
    return f"thumbnails/{file_id}.jpg"


def make_thumbnail(storage: StorageBackend, file_id: int, source: BinaryIO) -> Optional[str]:
    """
    Store a JPEG thumbnail for an uploaded image and return its key.

    A thumbnail is a convenience: unreadable images and storage errors are
    logged and yield ``None`` instead of failing the upload.
    """
    try:
        source.seek(0)
        img = Image.open(source)
        img.thumbnail((settings.THUMBNAIL_SIZE, settings.THUMBNAIL_SIZE))
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        img_io = io.BytesIO()
        img.save(img_io, format="JPEG")
        img_io.seek(0)
        return storage.put(thumbnail_key(file_id), img_io, "image/jpeg")
    except (UnidentifiedImageError, OSError, StorageError) as e:
        logger.warning(f"Thumbnail generation failed for file {file_id}: {e}")
        return None
