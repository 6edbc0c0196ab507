import io

import pytest
from PIL import Image, features

from image_optimizer.core.processors.image import (
    ImageProcessingError,
    ImageProcessor,
    OptimizeRequest,
    available_encoders,
    clamp_quality,
    normalize_format,
)

avif_required = pytest.mark.skipif(
    not features.check("avif"), reason="Pillow built without AVIF support"
)


@pytest.fixture
def processor():
    return ImageProcessor()


def open_bytes(data):
    img = Image.open(io.BytesIO(data))
    img.load()
    return img


@pytest.mark.parametrize(
    "value, expected",
    [
        (None, "webp"),
        ("", "webp"),
        ("webp", "webp"),
        ("AVIF", "avif"),
        (" png ", "png"),
        ("jpg", "jpeg"),
        ("jpeg", "jpeg"),
        ("gif", "webp"),
        ("tiff", "webp"),
    ],
)
def test_normalize_format(value, expected):
    assert normalize_format(value) == expected


def test_normalize_format_uses_given_default():
    assert normalize_format("bmp", default="png") == "png"


def test_clamp_quality():
    assert clamp_quality(0) == 1
    assert clamp_quality(-5) == 1
    assert clamp_quality(55) == 55
    assert clamp_quality(150) == 100


def test_available_encoders_lists_every_format():
    encoders = available_encoders()
    assert set(encoders) == {"webp", "avif", "jpeg", "png"}
    assert encoders["jpeg"] and encoders["png"]


def test_decode_rejects_garbage(processor):
    with pytest.raises(ImageProcessingError) as exc_info:
        processor.decode(b"definitely not an image")
    assert exc_info.value.stage == "decode"
    assert exc_info.value.details


def test_describe(processor, make_image):
    img = processor.decode(make_image())
    info = processor.describe(img)
    assert info == {"format": "PNG", "width": 400, "height": 200, "mode": "RGB", "channels": 3}


@pytest.mark.parametrize(
    "width, height, expected",
    [
        (100, None, (100, 50)),
        (None, 50, (100, 50)),
        (100, 100, (100, 50)),
        (300, 50, (100, 50)),
    ],
)
def test_resize_fits_inside(processor, width, height, expected):
    img = Image.new("RGB", (400, 200))
    assert processor.resize_inside(img, width, height).size == expected


def test_resize_never_enlarges(processor):
    img = Image.new("RGB", (400, 200))
    assert processor.resize_inside(img, 1000, 1000).size == (400, 200)
    assert processor.resize_inside(img, 800, None).size == (400, 200)


def test_resize_without_dimensions_is_a_noop(processor):
    img = Image.new("RGB", (400, 200))
    assert processor.resize_inside(img) is img


def test_resize_palette_image(processor):
    img = Image.new("P", (400, 200))
    assert processor.resize_inside(img, 200).size == (200, 100)


@pytest.mark.parametrize("mode", ["I;16", "I", "CMYK"])
def test_resize_high_bit_depth_and_other_modes(processor, mode):
    img = Image.new(mode, (400, 200))
    resized = processor.resize_inside(img, 200)
    assert resized.size == (200, 100)
    assert resized.mode == "RGB"


def test_resize_keeps_grayscale_alpha(processor):
    img = Image.new("LA", (400, 200))
    assert processor.resize_inside(img, 200).mode == "LA"


def test_encode_webp(processor):
    out = open_bytes(processor.encode(Image.new("RGBA", (40, 20), (0, 0, 255, 128)), "webp", 80))
    assert out.format == "WEBP"
    assert out.size == (40, 20)


def test_encode_jpeg_flattens_alpha(processor):
    img = Image.new("RGBA", (40, 20), (0, 0, 0, 0))
    out = open_bytes(processor.encode(img, "jpeg", 80))
    assert out.format == "JPEG"
    assert out.mode == "RGB"
    # fully transparent pixels end up on the white background
    assert out.getpixel((10, 10)) == pytest.approx((255, 255, 255), abs=2)


def test_encode_png_quantizes_below_full_quality(processor):
    img = Image.new("RGB", (40, 20), (10, 200, 10))
    assert open_bytes(processor.encode(img, "png", 80)).mode == "P"
    assert open_bytes(processor.encode(img, "png", 100)).mode == "RGB"


def test_encode_png_keeps_transparency(processor):
    img = Image.new("RGBA", (40, 20), (10, 200, 10, 0))
    out = open_bytes(processor.encode(img, "png", 100))
    assert out.mode == "RGBA"


def test_encode_avif_options(processor, monkeypatch):
    calls = []

    def record_save(self, fp, format=None, **params):
        calls.append((self.mode, format, params))

    monkeypatch.setattr(Image.Image, "save", record_save)
    processor.encode(Image.new("P", (40, 20)), "avif", 55)

    assert calls == [
        ("RGB", "AVIF", {"quality": 55, "speed": 6, "subsampling": "4:2:0"}),
    ]


@avif_required
def test_encode_avif(processor):
    out = open_bytes(processor.encode(Image.new("RGB", (40, 20), (120, 60, 30)), "avif", 60))
    assert out.format == "AVIF"
    assert out.size == (40, 20)


def test_encode_unknown_format(processor):
    with pytest.raises(ValueError):
        processor.encode(Image.new("RGB", (4, 4)), "bmp", 80)


def test_lower_quality_gives_smaller_jpeg(processor):
    img = Image.effect_noise((128, 128), 64).convert("RGB")
    high = processor.encode(img, "jpeg", 95)
    low = processor.encode(img, "jpeg", 20)
    assert len(low) < len(high)


def test_transcode_via_jpeg_removes_temp_file(processor, tmp_path):
    temp_path = tmp_path / "abc_temp.jpg"
    result = processor.transcode_via_jpeg(Image.new("RGBA", (30, 30), (1, 2, 3, 255)), temp_path)
    assert result.format == "JPEG"
    assert result.mode == "RGB"
    assert result.size == (30, 30)
    assert not temp_path.exists()


def test_transcode_via_jpeg_falls_back_to_memory(processor, tmp_path):
    temp_path = tmp_path / "missing-dir" / "abc_temp.jpg"
    result = processor.transcode_via_jpeg(Image.new("RGB", (30, 30)), temp_path)
    assert result.format == "JPEG"
    assert result.size == (30, 30)


def test_transcode_via_jpeg_without_temp_path(processor):
    result = processor.transcode_via_jpeg(Image.new("L", (30, 30)))
    assert result.format == "JPEG"


def test_optimize_resizes_and_encodes(processor, make_image):
    request = OptimizeRequest(format="jpeg", quality=70, width=100)
    result = processor.optimize(make_image(), request)
    assert (result.width, result.height) == (100, 50)
    assert result.format == "jpeg"
    assert result.size == len(result.data)
    assert open_bytes(result.data).format == "JPEG"


def test_optimize_avif_source_goes_through_jpeg(processor, make_image, tmp_path):
    temp_path = tmp_path / "xyz_temp.jpg"
    request = OptimizeRequest(format="webp", quality=80, height=100, source_format="avif")
    result = processor.optimize(make_image(mode="RGBA", color=(0, 128, 0, 255)), request, temp_path)
    assert (result.width, result.height) == (200, 100)
    assert open_bytes(result.data).format == "WEBP"
    assert not temp_path.exists()


def test_optimize_continues_when_avif_workaround_fails(processor, make_image, monkeypatch):
    def broken(*args, **kwargs):
        raise OSError("jpeg encoder unavailable")

    monkeypatch.setattr(processor, "transcode_via_jpeg", broken)
    request = OptimizeRequest(format="png", quality=100, source_format="avif")
    result = processor.optimize(make_image(), request)
    assert (result.width, result.height) == (400, 200)


def test_optimize_reports_decode_stage(processor):
    with pytest.raises(ImageProcessingError) as exc_info:
        processor.optimize(b"\x89PNG broken", OptimizeRequest())
    assert exc_info.value.stage == "decode"


def test_optimize_reports_resize_stage(processor, make_image, monkeypatch):
    def broken(*args, **kwargs):
        raise MemoryError("too big")

    monkeypatch.setattr(processor, "resize_inside", broken)
    with pytest.raises(ImageProcessingError) as exc_info:
        processor.optimize(make_image(), OptimizeRequest(width=10))
    assert exc_info.value.stage == "resize"
    assert exc_info.value.details == "too big"


def test_optimize_reports_final_stage(processor, make_image):
    with pytest.raises(ImageProcessingError) as exc_info:
        processor.optimize(make_image(), OptimizeRequest(format="bmp"))
    assert exc_info.value.stage == "final_processing"
    assert exc_info.value.message == "Image processing failed in final stage"
    assert "bmp" in exc_info.value.details
