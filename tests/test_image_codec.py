import pytest
from PIL import Image

from conftest import make_image_bytes, staged_file
from media_compressor.core.exceptions import OutputMissingError, ProcessError
from media_compressor.core.models import (
    CompressionRequest,
    FileState,
    FitPolicy,
    MediaFormat,
    ResizeSpec,
)
from media_compressor.engine import compress, image
from media_compressor.engine.settings import resolve_image_settings


@pytest.fixture
def source_png(tmp_path):
    path = tmp_path / "source.png"
    path.write_bytes(make_image_bytes((400, 200)))
    return path


@pytest.mark.parametrize(
    "fit, expected",
    [
        (FitPolicy.COVER, (100, 100)),
        (FitPolicy.CONTAIN, (100, 100)),
        (FitPolicy.FILL, (100, 100)),
        (FitPolicy.INSIDE, (100, 50)),
        (FitPolicy.OUTSIDE, (200, 100)),
    ],
)
def test_resize_follows_fit_policy(source_png, tmp_path, fit, expected):
    output = tmp_path / "out.jpg"
    settings = resolve_image_settings(MediaFormat.JPEG, 0.8)

    dims = image.encode_image(source_png, output, settings, ResizeSpec(100, 100, fit))

    assert dims == expected
    with Image.open(output) as written:
        assert written.size == expected
        assert written.format == "JPEG"


def test_single_dimension_keeps_aspect_ratio(source_png, tmp_path):
    output = tmp_path / "out.webp"
    settings = resolve_image_settings(MediaFormat.WEBP, 0.7)

    assert image.encode_image(source_png, output, settings, ResizeSpec(width=100)) == (100, 50)
    assert image.encode_image(source_png, output, settings, ResizeSpec(height=50)) == (100, 50)


def test_no_resize_keeps_dimensions(source_png, tmp_path):
    output = tmp_path / "out.png"
    settings = resolve_image_settings(MediaFormat.PNG, 0.3)

    assert image.encode_image(source_png, output, settings) == (400, 200)


def test_transparent_image_is_flattened_for_jpeg(tmp_path):
    source = tmp_path / "alpha.png"
    source.write_bytes(make_image_bytes((20, 20), mode="RGBA", color=(0, 0, 0, 0)))
    output = tmp_path / "flat.jpg"

    image.encode_image(source, output, resolve_image_settings(MediaFormat.JPEG, 0.9))

    with Image.open(output) as written:
        assert written.mode == "RGB"
        r, g, b = written.getpixel((10, 10))
        assert min(r, g, b) > 240


def test_unreadable_image_raises_process_error(tmp_path):
    source = tmp_path / "broken.png"
    source.write_bytes(b"definitely not an image")

    with pytest.raises(ProcessError):
        image.read_dimensions(source)


def test_compress_file_reports_pristine_dimensions(source_png, tmp_path):
    staged = staged_file(source_png, name="photo.png")
    request = CompressionRequest(MediaFormat.JPEG, 0.6, ResizeSpec(100, 100, FitPolicy.INSIDE))
    output = tmp_path / "compressed.jpg"

    result = compress.compress_file(staged, request, output)

    assert staged.state is FileState.COMPLETED
    assert result.dimensions == (400, 200)
    assert result.output_dimensions == (100, 50)
    assert result.input_size == source_png.stat().st_size
    assert result.output_size == output.stat().st_size
    assert result.reduction_label == f"{result.reduction_percent:.1f}"


def test_compress_file_marks_failure_on_corrupt_input(tmp_path):
    source = tmp_path / "corrupt.jpg"
    source.write_bytes(b"\xff\xd8garbage")
    staged = staged_file(source, name="corrupt.jpg")

    with pytest.raises(ProcessError):
        compress.compress_file(staged, CompressionRequest(MediaFormat.JPEG, 0.8), tmp_path / "out.jpg")

    assert staged.state is FileState.FAILED


def test_compress_file_rejects_empty_output(monkeypatch, source_png, tmp_path):
    output = tmp_path / "out.jpg"

    def _write_nothing(input_path, output_path, settings, resize=None):
        output_path.write_bytes(b"")
        return (1, 1)

    monkeypatch.setattr(compress.image, "encode_image", _write_nothing)
    staged = staged_file(source_png)

    with pytest.raises(OutputMissingError):
        compress.compress_file(staged, CompressionRequest(MediaFormat.JPEG, 0.8), output)

    assert staged.state is FileState.FAILED


def test_unexpected_codec_error_becomes_process_error(monkeypatch, source_png, tmp_path):
    def _explode(*args, **kwargs):
        raise RuntimeError("boom")

    monkeypatch.setattr(compress.image, "encode_image", _explode)
    staged = staged_file(source_png, name="photo.png")

    with pytest.raises(ProcessError) as excinfo:
        compress.compress_file(staged, CompressionRequest(MediaFormat.PNG, 0.8), tmp_path / "out.png")

    assert "photo.png" in excinfo.value.message
    assert staged.state is FileState.FAILED
