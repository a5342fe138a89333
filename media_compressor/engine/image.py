"""In-process image codec built on Pillow.

Resizes under a fit policy, then re-encodes with quality-keyed parameters.
"""

import logging
from collections.abc import Callable
from functools import wraps
from pathlib import Path
from typing import Optional, Tuple, TypeVar

import PIL
from PIL import Image, ImageOps
from PIL.Image import DecompressionBombError, UnidentifiedImageError

from media_compressor.core.exceptions import ProcessError
from media_compressor.core.models import FitPolicy, ImageCodecSettings, MediaFormat, ResizeSpec

logger = logging.getLogger(__name__)
T = TypeVar("T")

RESAMPLE = Image.Resampling.LANCZOS
JPEG_BACKGROUND = (255, 255, 255)

_PIL_FORMATS = {
    MediaFormat.JPEG: "JPEG",
    MediaFormat.PNG: "PNG",
    MediaFormat.WEBP: "WEBP",
}


def pillow_version() -> str:
    return PIL.__version__


def handle_image_errors(func: Callable[..., T]) -> Callable[..., T]:
    """Translate Pillow and filesystem errors into ProcessError for the named file."""

    @wraps(func)
    def wrapper(input_path: Path, *args, **kwargs) -> T:
        try:
            return func(input_path, *args, **kwargs)
        except UnidentifiedImageError as e:
            logger.error("Unrecognised image data in %s: %s", input_path.name, e)
            raise ProcessError("File is not a readable image. It may be corrupted.", e) from e
        except DecompressionBombError as e:
            logger.error("Image too large to decode safely %s: %s", input_path.name, e)
            raise ProcessError("Image dimensions are too large to process safely.", e) from e
        except (OSError, ValueError, SyntaxError) as e:
            logger.error("Image codec failed on %s: %s", input_path.name, e)
            raise ProcessError(f"Image processing failed: {e}", e) from e

    return wrapper


@handle_image_errors
def read_dimensions(input_path: Path) -> Tuple[int, int]:
    """Width and height of the pristine source, read from its header."""
    with Image.open(input_path) as img:
        return img.size


def _normalize_mode(img: Image.Image) -> Image.Image:
    if img.mode in ("RGB", "RGBA", "L"):
        return img
    if img.mode == "P":
        return img.convert("RGBA" if "transparency" in img.info else "RGB")
    if img.mode in ("LA", "PA", "RGBa", "La"):
        return img.convert("RGBA")
    return img.convert("RGB")


def resize_image(img: Image.Image, spec: Optional[ResizeSpec]) -> Image.Image:
    """Apply a resize under the requested fit policy.

    With only one side given, the other follows the source aspect ratio
    whatever the policy.
    """
    if spec is None or spec.is_noop:
        return img

    src_w, src_h = img.size
    width, height = spec.width, spec.height
    if not width or not height:
        if width:
            height = max(1, round(src_h * width / src_w))
        else:
            width = max(1, round(src_w * height / src_h))
        return img.resize((width, height), RESAMPLE)

    size = (width, height)
    if spec.fit is FitPolicy.CONTAIN:
        # 0 is black for opaque modes and fully transparent for RGBA.
        return ImageOps.pad(img, size, method=RESAMPLE, color=0)
    if spec.fit is FitPolicy.FILL:
        return img.resize(size, RESAMPLE)
    if spec.fit is FitPolicy.INSIDE:
        return ImageOps.contain(img, size, method=RESAMPLE)
    if spec.fit is FitPolicy.OUTSIDE:
        scale = max(width / src_w, height / src_h)
        return img.resize((max(1, round(src_w * scale)), max(1, round(src_h * scale))), RESAMPLE)
    return ImageOps.fit(img, size, method=RESAMPLE)


def prepare_for_format(img: Image.Image, fmt: MediaFormat) -> Image.Image:
    """JPEG has no alpha channel, so transparent images are flattened onto white."""
    if fmt is not MediaFormat.JPEG or img.mode != "RGBA":
        return img
    background = Image.new("RGB", img.size, JPEG_BACKGROUND)
    background.paste(img, mask=img.getchannel("A"))
    return background


@handle_image_errors
def encode_image(
    input_path: Path,
    output_path: Path,
    settings: ImageCodecSettings,
    resize: Optional[ResizeSpec] = None,
) -> Tuple[int, int]:
    """Resize and re-encode ``input_path`` into ``output_path``.

    Returns:
        Dimensions of the written image.
    """
    with Image.open(input_path) as source:
        img = ImageOps.exif_transpose(source)
        img = _normalize_mode(img)
        img = resize_image(img, resize)
        img = prepare_for_format(img, settings.format)
        img.save(output_path, format=_PIL_FORMATS[settings.format], **settings.save_params)
        return img.size
