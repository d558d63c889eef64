import asyncio
import math

import pytest
from PIL import Image

from stickerprep.codec import PillowCodec
from stickerprep.config import CropAnchor, OutputFormat
from stickerprep.errors import DecodeError, EncodeError, UnsupportedGeometryError
from stickerprep.config import reset_config
from stickerprep.normalizer import EncodedImage, ImageNormalizer, normalize_image, validate_size
from stickerprep.saliency import CenterAnchorChooser

from conftest import (
    create_gradient_image,
    create_noise_image,
    create_test_image,
    make_params,
    open_image,
)

MIB = 1024 * 1024


class RecordingCodec(PillowCodec):
    """PillowCodec that remembers every render size and encode format"""

    def __init__(self):
        super().__init__()
        self.renders = []
        self.encodes = []

    def render(self, source, crop, size):
        self.renders.append((crop, size))
        return super().render(source, crop, size)

    def encode(self, image, fmt, quality=1.0):
        data = super().encode(image, fmt, quality)
        self.encodes.append((fmt, quality, len(data)))
        return data


# ==================== FAST PATH ====================

def test_small_image_passes_through_untouched():
    data = create_test_image(10, 10)
    normalizer = ImageNormalizer(params=make_params(small_image_threshold=1 * MIB))

    result = normalizer.normalize(data)

    assert result.data == data
    assert result.format == OutputFormat.PNG
    assert (result.width, result.height) == (0, 0)
    assert not result.dimensions_known


def test_fast_path_requires_input_under_budget():
    data = create_gradient_image(300, 200)
    normalizer = ImageNormalizer(params=make_params(small_image_threshold=1 * MIB))

    result = normalizer.normalize(data, byte_budget=len(data) - 1, max_dimension=128)

    assert result.dimensions_known
    assert result.data != data


def test_fast_path_requires_input_under_small_threshold():
    data = create_gradient_image(300, 200)
    normalizer = ImageNormalizer(params=make_params(small_image_threshold=len(data)))

    result = normalizer.normalize(data, max_dimension=128)

    assert (result.width, result.height) == (128, 128)


# ==================== GEOMETRY THROUGH THE PIPELINE ====================

@pytest.mark.parametrize("anchor", list(CropAnchor))
def test_force_square_output_for_every_anchor(normalizer, anchor):
    data = create_gradient_image(300, 200)

    result = normalizer.normalize(data, max_dimension=128, force_square=True, crop_anchor=anchor)

    assert result.width == result.height == 128
    assert open_image(result.data).size == (128, 128)


def test_anchor_accepts_plain_string(normalizer):
    result = normalizer.normalize(create_gradient_image(300, 200), max_dimension=64, crop_anchor="southeast")

    assert (result.width, result.height) == (64, 64)


def test_aspect_ratio_preserved_without_square():
    normalizer = ImageNormalizer(params=make_params())

    result = normalizer.normalize(
        create_gradient_image(2000, 1000), max_dimension=800, force_square=False
    )

    assert (result.width, result.height) == (800, 400)
    assert open_image(result.data).size == (800, 400)


def test_max_dimension_is_clamped_to_cap(normalizer):
    result = normalizer.normalize(create_gradient_image(400, 300), max_dimension=4096)

    assert (result.width, result.height) == (1024, 1024)


def test_small_source_is_enlarged_to_target(normalizer):
    result = normalizer.normalize(create_gradient_image(40, 30), max_dimension=256)

    assert open_image(result.data).size == (256, 256)


def test_injected_chooser_is_used_for_content_aware_anchor():
    calls = []

    class SpyChooser(CenterAnchorChooser):
        def choose_anchor(self, source, side):
            calls.append((source.width, source.height, side))
            return super().choose_anchor(source, side)

    normalizer = ImageNormalizer(params=make_params(), chooser=SpyChooser())
    normalizer.normalize(create_gradient_image(300, 200), max_dimension=64, crop_anchor=CropAnchor.ENTROPY)

    assert calls == [(300, 200, 200)]


# ==================== ERRORS ====================

def test_empty_input_is_a_decode_error(normalizer):
    with pytest.raises(DecodeError):
        normalizer.normalize(b"")


def test_garbage_input_is_a_decode_error(normalizer):
    with pytest.raises(DecodeError):
        normalizer.normalize(b"definitely not pixels" * 100)


def test_non_positive_max_dimension_is_rejected(normalizer):
    with pytest.raises(UnsupportedGeometryError):
        normalizer.normalize(create_gradient_image(50, 50), max_dimension=0)


def test_encoder_failure_surfaces_as_encode_error(normalizer, monkeypatch):
    def broken_save(self, *args, **kwargs):
        raise OSError("disk on fire")

    data = create_gradient_image(50, 50)
    monkeypatch.setattr(Image.Image, "save", broken_save)

    with pytest.raises(EncodeError):
        normalizer.normalize(data, max_dimension=32)


def test_decode_and_geometry_errors_are_value_errors():
    assert issubclass(DecodeError, ValueError)
    assert issubclass(UnsupportedGeometryError, ValueError)


# ==================== SHRINK LOOP ====================

def test_within_budget_uses_single_full_quality_attempt():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(), codec=codec)

    result = normalizer.normalize(create_gradient_image(300, 300), max_dimension=256)

    assert len(codec.encodes) == 1
    assert codec.encodes[0][:2] == (OutputFormat.PNG, 1.0)
    assert result.format == OutputFormat.PNG


def test_shrink_loop_is_bounded_and_monotonic():
    codec = RecordingCodec()
    params = make_params(min_dimension=64, max_encode_attempts=3)
    normalizer = ImageNormalizer(params=params, codec=codec)

    result = normalizer.normalize(
        create_noise_image(600, 600), max_dimension=512, byte_budget=100_000, crop_anchor=CropAnchor.CENTER
    )

    sides = [size.width for _, size in codec.renders]
    assert 1 < len(sides) <= 3
    assert sides == sorted(sides, reverse=True)
    assert all(side >= 64 for side in sides)
    assert all(size.width == size.height for _, size in codec.renders)
    assert result.width == sides[-1]


def test_shrink_loop_reuses_the_same_crop():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=32), codec=codec)

    normalizer.normalize(create_noise_image(400, 300), max_dimension=256, byte_budget=20_000, crop_anchor="west")

    crops = {crop for crop, _ in codec.renders}
    assert len(crops) == 1


def test_shrink_scale_follows_square_root_of_overshoot():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=16), codec=codec)

    normalizer.normalize(create_noise_image(300, 300), max_dimension=256, byte_budget=50_000, crop_anchor="center")

    first_size = codec.encodes[0][2]
    expected = round(256 * math.sqrt(50_000 / first_size))
    assert codec.renders[1][1].width == expected


def test_final_attempt_switches_to_jpeg_at_reduced_quality():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=64), codec=codec)

    result = normalizer.normalize(create_noise_image(512, 512), max_dimension=512, byte_budget=60_000)

    assert [fmt for fmt, _, _ in codec.encodes] == [OutputFormat.PNG, OutputFormat.JPEG]
    assert codec.encodes[-1][1] == pytest.approx(0.6)
    assert result.format == OutputFormat.JPEG
    assert open_image(result.data).format == "JPEG"


def test_final_attempt_can_stay_png():
    codec = RecordingCodec()
    params = make_params(min_dimension=64, switch_format_on_final_attempt=False)
    normalizer = ImageNormalizer(params=params, codec=codec)

    result = normalizer.normalize(create_noise_image(512, 512), max_dimension=512, byte_budget=60_000)

    assert [fmt for fmt, _, _ in codec.encodes] == [OutputFormat.PNG, OutputFormat.PNG]
    assert result.format == OutputFormat.PNG


def test_floor_holds_for_tiny_budgets():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=256), codec=codec)

    result = normalizer.normalize(create_noise_image(600, 600), max_dimension=512, byte_budget=1)

    assert (result.width, result.height) == (256, 256)
    assert all(size.width >= 256 for _, size in codec.renders)


def test_over_budget_result_is_returned_not_raised():
    normalizer = ImageNormalizer(params=make_params(min_dimension=256))

    result = normalizer.normalize(create_noise_image(600, 600), max_dimension=512, byte_budget=10)

    assert isinstance(result, EncodedImage)
    assert not validate_size(result.data, 10)


def test_floor_never_enlarges_below_floor_targets():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=256), codec=codec)

    normalizer.normalize(create_noise_image(300, 300), max_dimension=128, byte_budget=1)

    assert [size.width for _, size in codec.renders] == [128, 128]


def test_non_square_shrink_keeps_aspect_ratio():
    codec = RecordingCodec()
    normalizer = ImageNormalizer(params=make_params(min_dimension=64), codec=codec)

    result = normalizer.normalize(
        create_noise_image(800, 400), max_dimension=800, force_square=False, byte_budget=100_000
    )

    assert result.width < 800
    assert result.height == round(400 * result.width / 800)


# ==================== SCENARIOS ====================

def test_large_photo_scenario():
    """6000x4000 JPEG well over 4 MiB → square, <= 1024, under budget"""
    data = create_noise_image(6000, 4000, format="JPEG", quality=90)
    assert len(data) > 4 * MIB
    normalizer = ImageNormalizer(params=make_params(small_image_threshold=1 * MIB))

    result = normalizer.normalize(
        data, max_dimension=1024, force_square=True, crop_anchor=CropAnchor.CENTER, byte_budget=4 * MIB
    )

    assert result.width == result.height
    assert result.width <= 1024
    assert len(result.data) <= 4 * MIB
    assert result.format in (OutputFormat.PNG, OutputFormat.JPEG)


def test_tiny_png_scenario():
    data = create_test_image(10, 10)
    normalizer = ImageNormalizer(params=make_params(small_image_threshold=1 * MIB))

    result = normalizer.normalize(data, byte_budget=4 * MIB)

    assert result.data == data
    assert (result.width, result.height) == (0, 0)


# ==================== MISC ====================

@pytest.mark.parametrize("size,budget", [(0, 0), (10, 9), (10, 10), (10, 11), (5, 0)])
def test_validate_size(size, budget):
    assert validate_size(b"x" * size, budget) == (size <= budget)


def test_normalize_async(normalizer):
    data = create_gradient_image(120, 80)

    result = asyncio.run(normalizer.normalize_async(data, max_dimension=48))

    assert (result.width, result.height) == (48, 48)


def test_encoded_image_to_dict():
    image = EncodedImage(data=b"x" * 2048, format=OutputFormat.JPEG, width=10, height=20)

    assert image.to_dict() == {
        "format": "jpeg",
        "mime_type": "image/jpeg",
        "width": 10,
        "height": 20,
        "size_bytes": 2048,
        "size_kb": 2.0,
    }


def test_unknown_crop_anchor_is_a_geometry_error(normalizer):
    with pytest.raises(UnsupportedGeometryError, match="top-left"):
        normalizer.normalize(create_gradient_image(300, 200), crop_anchor="top-left")


def test_decompression_bomb_is_a_decode_error(normalizer, monkeypatch):
    data = create_test_image(100, 100, color=0, mode="1")
    monkeypatch.setattr(Image, "MAX_IMAGE_PIXELS", 2000)

    with pytest.raises(DecodeError):
        normalizer.normalize(data)


def test_normalize_image_with_default_params(monkeypatch):
    for name in ("MAX_DIMENSION", "BYTE_BUDGET_BYTES", "SMALL_IMAGE_THRESHOLD_BYTES", "MIN_DIMENSION"):
        monkeypatch.delenv(name, raising=False)
    reset_config()
    data = create_noise_image(800, 800)
    assert len(data) > MIB

    try:
        result = normalize_image(data, max_dimension=128, crop_anchor="center")
    finally:
        reset_config()

    assert result.format == OutputFormat.PNG
    assert (result.width, result.height) == (128, 128)
    assert open_image(result.data).size == (128, 128)
