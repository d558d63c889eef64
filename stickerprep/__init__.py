"""
Sticker source preparation
Size-constrained image normalization for the sticker generation service
"""
from .config import (
    get_config,
    Config,
    CropAnchor,
    OutputFormat,
    NormalizerParams,
    AnalysisParams,
)
from .errors import (
    NormalizationError,
    DecodeError,
    EncodeError,
    UnsupportedGeometryError,
    ImageTooLargeError,
    UploadValidationError,
    StorageError,
)
from .geometry import CropRect, TargetSize, GeometryPlan, plan_geometry
from .codec import ImageCodec, PillowCodec, SourceImage
from .saliency import (
    AnchorChooser,
    CenterAnchorChooser,
    EntropyAnchorChooser,
    AttentionAnchorChooser,
    get_anchor_chooser,
)
from .normalizer import (
    ImageNormalizer,
    EncodedImage,
    normalize_image,
    validate_size,
)
from .image_store import ImageStore, StoredImage
from .s3_service import S3Service, Uploader
from .pipeline import StickerSourcePreparer, PreparedImage
from .utils import (
    UploadValidationResult,
    validate_upload,
    format_file_size,
    sniff_image_format,
    decode_base64_image,
)
from .logging_config import setup_logging

__all__ = [
    # Config
    'get_config',
    'Config',
    'CropAnchor',
    'OutputFormat',
    'NormalizerParams',
    'AnalysisParams',

    # Errors
    'NormalizationError',
    'DecodeError',
    'EncodeError',
    'UnsupportedGeometryError',
    'ImageTooLargeError',
    'UploadValidationError',
    'StorageError',

    # Geometry
    'CropRect',
    'TargetSize',
    'GeometryPlan',
    'plan_geometry',

    # Codec
    'ImageCodec',
    'PillowCodec',
    'SourceImage',

    # Anchors
    'AnchorChooser',
    'CenterAnchorChooser',
    'EntropyAnchorChooser',
    'AttentionAnchorChooser',
    'get_anchor_chooser',

    # Normalizer
    'ImageNormalizer',
    'EncodedImage',
    'normalize_image',
    'validate_size',

    # Supporting services
    'ImageStore',
    'StoredImage',
    'S3Service',
    'Uploader',
    'StickerSourcePreparer',
    'PreparedImage',
    'UploadValidationResult',
    'validate_upload',
    'format_file_size',
    'sniff_image_format',
    'decode_base64_image',
    'setup_logging',
]
