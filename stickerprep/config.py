"""
Configuration settings for the sticker source normalizer
Dataclass sections loaded from environment variables (.env supported)
"""
import os
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

MIB = 1024 * 1024


class CropAnchor(str, Enum):
    """Which region of the source survives a square crop"""
    CENTER = "center"
    NORTH = "north"
    SOUTH = "south"
    EAST = "east"
    WEST = "west"
    NORTHEAST = "northeast"
    NORTHWEST = "northwest"
    SOUTHEAST = "southeast"
    SOUTHWEST = "southwest"
    ENTROPY = "entropy"      # Window with the richest grayscale histogram
    ATTENTION = "attention"  # Window with the most salient content

    @property
    def is_content_aware(self) -> bool:
        return self in (CropAnchor.ENTROPY, CropAnchor.ATTENTION)


class OutputFormat(str, Enum):
    """Formats the normalizer can emit"""
    PNG = "png"
    JPEG = "jpeg"

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class NormalizerParams:
    """Geometry, budget and shrink-loop parameters"""
    max_dimension: int = field(
        default_factory=lambda: int(os.getenv("MAX_DIMENSION", "1024"))
    )
    # Hard ceiling applied to any requested max_dimension
    dimension_cap: int = 1024

    byte_budget: int = field(
        default_factory=lambda: int(os.getenv("BYTE_BUDGET_BYTES", str(4 * MIB)))
    )
    # Inputs under this size (and under the budget) pass through untouched
    small_image_threshold: int = field(
        default_factory=lambda: int(os.getenv("SMALL_IMAGE_THRESHOLD_BYTES", str(1 * MIB)))
    )

    # Shrink loop
    min_dimension: int = field(
        default_factory=lambda: int(os.getenv("MIN_DIMENSION", "256"))
    )
    max_encode_attempts: int = field(
        default_factory=lambda: int(os.getenv("MAX_ENCODE_ATTEMPTS", "2"))
    )
    final_attempt_quality: float = field(
        default_factory=lambda: float(os.getenv("FINAL_ATTEMPT_QUALITY", "0.6"))
    )
    switch_format_on_final_attempt: bool = field(
        default_factory=lambda: _env_bool("SWITCH_FORMAT_ON_FINAL_ATTEMPT", "true")
    )

    # Output quality
    png_compression: int = 9
    jpeg_background: tuple = (255, 255, 255)

    force_square: bool = True
    crop_anchor: CropAnchor = field(
        default_factory=lambda: CropAnchor(os.getenv("DEFAULT_CROP_ANCHOR", "attention"))
    )


@dataclass
class AnalysisParams:
    """Parameters for content-aware anchor choosers"""
    analysis_max_side: int = 256
    # Candidate windows evaluated along the axis with slack
    max_candidates: int = 64

    # Attention map weights
    edge_weight: float = 0.4
    detail_weight: float = 0.2
    saturation_weight: float = 0.2
    skin_weight: float = 0.2

    canny_low: int = 50
    canny_high: int = 150


@dataclass
class UploadConfig:
    """Upload acceptance rules"""
    max_upload_size_mb: int = field(
        default_factory=lambda: int(os.getenv("MAX_UPLOAD_SIZE_MB", "10"))
    )
    allowed_content_types: tuple = (
        "image/jpeg",
        "image/jpg",
        "image/png",
        "image/gif",
        "image/webp",
        "image/bmp",
        "image/tiff",
    )

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * MIB


@dataclass
class StoreConfig:
    """In-memory upload store configuration"""
    ttl_seconds: int = field(
        default_factory=lambda: int(os.getenv("IMAGE_STORE_TTL_SECONDS", "3600"))
    )


@dataclass
class StorageConfig:
    """Object storage configuration"""
    # S3 Configuration
    s3_bucket: str = field(default_factory=lambda: os.getenv("S3_BUCKET", ""))
    s3_prefix: str = field(default_factory=lambda: os.getenv("S3_PREFIX", "sticker-sources/"))
    s3_region: str = field(default_factory=lambda: os.getenv("AWS_REGION", "ap-south-1"))
    s3_endpoint: str = field(default_factory=lambda: os.getenv("S3_ENDPOINT", ""))
    s3_access_key: str = field(default_factory=lambda: os.getenv("AWS_ACCESS_KEY_ID", ""))
    s3_secret_key: str = field(default_factory=lambda: os.getenv("AWS_SECRET_ACCESS_KEY", ""))

    # CDN or bucket website base used for public URLs
    public_url_base: Optional[str] = field(
        default_factory=lambda: os.getenv("PUBLIC_URL_BASE") or None
    )

    @property
    def use_s3(self) -> bool:
        return bool(self.s3_bucket)


@dataclass
class Config:
    """Main configuration class"""
    normalizer: NormalizerParams = field(default_factory=NormalizerParams)
    analysis: AnalysisParams = field(default_factory=AnalysisParams)
    upload: UploadConfig = field(default_factory=UploadConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Config":
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Global config instance
_config = None


def get_config() -> Config:
    """Get the global config instance"""
    global _config
    if _config is None:
        _config = Config.from_env()
    return _config


def reset_config() -> None:
    """Drop the cached config so the next get_config() re-reads the environment"""
    global _config
    _config = None
