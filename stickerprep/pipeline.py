"""
Source preparation for sticker generation

Raw upload → normalize → budget check → publish to object storage.
The returned URL is what the image-generation model is pointed at.
"""
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .config import UploadConfig, get_config
from .errors import DecodeError, ImageTooLargeError, UploadValidationError
from .normalizer import EncodedImage, ImageNormalizer, validate_size
from .s3_service import Uploader
from .utils import format_file_size, sniff_image_format

logger = logging.getLogger(__name__)


@dataclass
class PreparedImage:
    url: str
    image: EncodedImage
    original_size_bytes: int
    processing_time_ms: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "url": self.url,
            "original_size_bytes": self.original_size_bytes,
            "processing_time_ms": self.processing_time_ms,
            **self.image.to_dict(),
        }


class StickerSourcePreparer:
    """Turns an uploaded photo into a budget-compliant, publicly reachable image"""

    def __init__(
        self,
        uploader: Uploader,
        normalizer: Optional[ImageNormalizer] = None,
        upload_config: Optional[UploadConfig] = None,
    ):
        self.uploader = uploader
        self.normalizer = normalizer or ImageNormalizer()
        self.upload_config = upload_config or get_config().upload

    @property
    def byte_budget(self) -> int:
        return self.normalizer.params.byte_budget

    def prepare(self, data: bytes, **normalize_kwargs) -> PreparedImage:
        """
        Normalize and publish an upload

        Raises:
            UploadValidationError: raw upload over the upload size limit
            ImageTooLargeError: still over the byte budget after normalizing
            DecodeError: a passed-through upload is not a recognized image
            NormalizationError subclasses from the normalizer
            StorageError: the uploader failed
        """
        start_time = time.time()
        limit = self.upload_config.max_upload_size_bytes
        if len(data) > limit:
            raise UploadValidationError(
                f"File size {format_file_size(len(data))} exceeds {format_file_size(limit)} limit"
            )

        budget = normalize_kwargs.get("byte_budget")
        if budget is None:
            budget = self.byte_budget
        image = self.normalizer.normalize(data, **normalize_kwargs)
        if not validate_size(image.data, budget):
            logger.warning(f"❌ Normalized image still too large: {format_file_size(image.size_bytes)}")
            raise ImageTooLargeError(image.size_bytes, budget)

        content_type = image.mime_type
        if not image.dimensions_known:
            # Pass-through keeps the original container
            sniffed = sniff_image_format(image.data)
            if sniffed is None:
                raise DecodeError(
                    f"Upload is not a recognized image. Magic bytes: {image.data[:12].hex()}"
                )
            content_type = f"image/{sniffed}"

        url = self.uploader(image.data, content_type)
        elapsed = int((time.time() - start_time) * 1000)
        logger.info(f"📤 Prepared sticker source {image.to_dict()} → {url} in {elapsed}ms")
        return PreparedImage(
            url=url,
            image=image,
            original_size_bytes=len(data),
            processing_time_ms=elapsed,
        )
