"""
Upload validation and size/format helpers
"""
import base64
import binascii
import re
from dataclasses import dataclass
from typing import Optional

from .config import UploadConfig, get_config
from .errors import DecodeError

DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")

# (signature, offset, format)
MAGIC_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", 0, "png"),
    (b"\xff\xd8\xff", 0, "jpeg"),
    (b"GIF87a", 0, "gif"),
    (b"GIF89a", 0, "gif"),
    (b"BM", 0, "bmp"),
    (b"II*\x00", 0, "tiff"),
    (b"MM\x00*", 0, "tiff"),
)


@dataclass
class UploadValidationResult:
    is_valid: bool
    error: Optional[str] = None


def validate_upload(
    content_type: str,
    size_bytes: int,
    config: Optional[UploadConfig] = None,
) -> UploadValidationResult:
    """Check an upload's declared MIME type and size before reading pixels"""
    config = config or get_config().upload

    if size_bytes > config.max_upload_size_bytes:
        return UploadValidationResult(
            is_valid=False,
            error=f"File size must be less than {config.max_upload_size_mb}MB",
        )

    if (content_type or "").lower() not in config.allowed_content_types:
        return UploadValidationResult(
            is_valid=False,
            error="Please upload a valid image file (JPEG, PNG, GIF, WebP, BMP, or TIFF)",
        )

    return UploadValidationResult(is_valid=True)


def format_file_size(size_bytes: int) -> str:
    """Human readable size, e.g. 1536 -> '1.5 KB'"""
    if size_bytes <= 0:
        return "0 Bytes"

    units = ["Bytes", "KB", "MB", "GB"]
    value = float(size_bytes)
    i = 0
    while value >= 1024 and i < len(units) - 1:
        value /= 1024
        i += 1
    return f"{round(value, 2):g} {units[i]}"


def sniff_image_format(data: bytes) -> Optional[str]:
    """Detect image container from magic bytes, None if unrecognized"""
    head = data[:16]
    for signature, offset, fmt in MAGIC_SIGNATURES:
        if head[offset:offset + len(signature)] == signature:
            return fmt
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "webp"
    return None


def decode_base64_image(text: str) -> bytes:
    """Decode base64 image data, with or without a data: URL prefix"""
    payload = DATA_URL_PREFIX.sub("", text.strip(), count=1)
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecodeError(f"Invalid base64 image data ({len(payload)} chars)") from e
