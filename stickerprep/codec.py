"""
Decode / render / encode boundary

The normalizer talks to pixels only through ImageCodec. PillowCodec is the
one implementation; analysis helpers get numpy views from SourceImage.
"""
import io
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .config import OutputFormat
from .errors import DecodeError, EncodeError
from .geometry import CropRect, TargetSize

logger = logging.getLogger(__name__)

# Bits per pixel for the Pillow modes we expect to see from uploads
MODE_BIT_DEPTH = {
    "1": 1,
    "L": 8,
    "P": 8,
    "LA": 16,
    "PA": 16,
    "I;16": 16,
    "I;16B": 16,
    "RGB": 24,
    "YCbCr": 24,
    "LAB": 24,
    "HSV": 24,
    "RGBA": 32,
    "RGBa": 32,
    "CMYK": 32,
    "I": 32,
    "F": 32,
}


@dataclass(frozen=True)
class SourceImage:
    """Decoded raster, owned by a single normalize call"""
    image: Image.Image
    width: int
    height: int
    source_mode: str
    color_depth: int

    @property
    def has_alpha(self) -> bool:
        return self.image.mode == "RGBA"

    def to_rgb_array(self, max_side: int = 0) -> np.ndarray:
        """RGB uint8 array, optionally downscaled so the longest side is <= max_side"""
        img = self.image.convert("RGB")
        if max_side and max(self.width, self.height) > max_side:
            scale = max_side / max(self.width, self.height)
            size = (max(1, round(self.width * scale)), max(1, round(self.height * scale)))
            img = img.resize(size, Image.Resampling.BILINEAR)
        return np.asarray(img, dtype=np.uint8)


class ImageCodec(ABC):
    """Capability interface the normalizer is written against"""

    @abstractmethod
    def decode(self, data: bytes) -> SourceImage:
        ...

    @abstractmethod
    def render(self, source: SourceImage, crop: CropRect, size: TargetSize) -> Image.Image:
        ...

    @abstractmethod
    def encode(self, image: Image.Image, fmt: OutputFormat, quality: float = 1.0) -> bytes:
        ...


class PillowCodec(ImageCodec):
    """ImageCodec backed by Pillow"""

    def __init__(self, png_compression: int = 9, jpeg_background: Tuple[int, int, int] = (255, 255, 255)):
        self.png_compression = png_compression
        self.jpeg_background = jpeg_background

    def decode(self, data: bytes) -> SourceImage:
        """Decode bytes to an RGB/RGBA raster with EXIF orientation applied"""
        if not data:
            raise DecodeError("Image bytes are empty")

        try:
            img = Image.open(io.BytesIO(data))
            img.load()
        except (UnidentifiedImageError, Image.DecompressionBombError, OSError, SyntaxError) as e:
            raise DecodeError(
                f"Could not decode image bytes. Size: {len(data)} bytes. "
                f"Magic bytes: {data[:12].hex()}. "
                f"Supported formats: JPEG, PNG, GIF, WEBP, BMP, TIFF."
            ) from e

        source_mode = img.mode
        color_depth = MODE_BIT_DEPTH.get(source_mode, 24)

        try:
            img = ImageOps.exif_transpose(img)
        except (OSError, ValueError) as e:
            logger.warning(f"   ⚠️ Ignoring unreadable EXIF orientation: {e}")

        if img.mode in ("RGBA", "LA", "PA", "RGBa") or (img.mode == "P" and "transparency" in img.info):
            img = img.convert("RGBA")
        elif img.mode != "RGB":
            img = img.convert("RGB")

        width, height = img.size
        logger.debug(f"   Decoded {img.format or 'image'} {width}x{height} mode={source_mode} depth={color_depth}")
        return SourceImage(
            image=img,
            width=width,
            height=height,
            source_mode=source_mode,
            color_depth=color_depth,
        )

    def render(self, source: SourceImage, crop: CropRect, size: TargetSize) -> Image.Image:
        """Sample the crop rectangle and resample it to exactly the target size"""
        box = (crop.x, crop.y, crop.x + crop.width, crop.y + crop.height)
        return source.image.resize(
            (size.width, size.height),
            Image.Resampling.LANCZOS,
            box=box,
        )

    def encode(self, image: Image.Image, fmt: OutputFormat, quality: float = 1.0) -> bytes:
        """Encode to PNG (max compression) or JPEG at the given 0.0-1.0 quality"""
        buffer = io.BytesIO()
        try:
            if fmt == OutputFormat.PNG:
                image.save(buffer, format="PNG", compress_level=self.png_compression)
            elif fmt == OutputFormat.JPEG:
                if image.mode == "RGBA":
                    flattened = Image.new("RGB", image.size, self.jpeg_background)
                    flattened.paste(image, mask=image.getchannel("A"))
                    image = flattened
                elif image.mode != "RGB":
                    image = image.convert("RGB")
                jpeg_quality = max(1, min(95, round(quality * 100)))
                image.save(buffer, format="JPEG", quality=jpeg_quality, optimize=True, progressive=True)
            else:
                raise EncodeError(f"Unsupported output format: {fmt}")
        except (OSError, ValueError) as e:
            raise EncodeError(f"Failed to encode {fmt.value}: {e}") from e

        result = buffer.getvalue()
        if not result:
            raise EncodeError(f"Encoder produced no {fmt.value} output")
        return result
