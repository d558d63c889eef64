"""
Exception types raised by the normalizer and its collaborators
"""
from typing import Optional


class NormalizationError(Exception):
    """Base class for failures of a normalize call"""


class DecodeError(NormalizationError, ValueError):
    """Input bytes are not a decodable raster image"""


class UnsupportedGeometryError(NormalizationError, ValueError):
    """Zero-area source or a crop request that cannot be satisfied"""


class EncodeError(NormalizationError):
    """The encoder backend could not produce output"""


class ImageTooLargeError(NormalizationError):
    """Normalized output still exceeds the byte budget"""

    def __init__(self, size_bytes: int, budget_bytes: int, message: Optional[str] = None):
        self.size_bytes = size_bytes
        self.budget_bytes = budget_bytes
        super().__init__(
            message or f"Image is {size_bytes} bytes after normalization, limit is {budget_bytes} bytes"
        )


class UploadValidationError(ValueError):
    """Upload rejected before processing (type or size)"""


class StorageError(Exception):
    """Object storage operation failed"""
