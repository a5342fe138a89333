"""Resolve quality levels into concrete codec parameters.

Everything here is pure and total: malformed input falls back to a balanced
default instead of raising, so resolution can never fail a request.
"""

from __future__ import annotations

import math
from typing import Any, Dict, Optional

from media_compressor.core.models import (
    DocumentCodecSettings,
    DocumentPreset,
    FitPolicy,
    ImageCodecSettings,
    MediaFormat,
)

DEFAULT_IMAGE_QUALITY = 0.8
DEFAULT_DOCUMENT_PRESET = DocumentPreset.EBOOK
WEBP_EFFORT = 6

DOCUMENT_PRESETS: Dict[DocumentPreset, DocumentCodecSettings] = {
    DocumentPreset.SCREEN: DocumentCodecSettings(DocumentPreset.SCREEN, 72, "Screen quality (72 dpi)"),
    DocumentPreset.EBOOK: DocumentCodecSettings(DocumentPreset.EBOOK, 150, "eBook quality (150 dpi)"),
    DocumentPreset.PRINTER: DocumentCodecSettings(DocumentPreset.PRINTER, 300, "Printer quality (300 dpi)"),
    DocumentPreset.PREPRESS: DocumentCodecSettings(DocumentPreset.PREPRESS, 300, "Prepress quality (300+ dpi)"),
}

# Quality names exposed to clients, plus the raw Ghostscript preset names.
_PRESET_ALIASES: Dict[str, DocumentPreset] = {
    "low": DocumentPreset.SCREEN,
    "medium": DocumentPreset.EBOOK,
    "high": DocumentPreset.PRINTER,
    "maximum": DocumentPreset.PREPRESS,
    "screen": DocumentPreset.SCREEN,
    "ebook": DocumentPreset.EBOOK,
    "printer": DocumentPreset.PRINTER,
    "prepress": DocumentPreset.PREPRESS,
}

_IMAGE_FORMAT_ALIASES: Dict[str, MediaFormat] = {
    "jpeg": MediaFormat.JPEG,
    "jpg": MediaFormat.JPEG,
    "png": MediaFormat.PNG,
    "webp": MediaFormat.WEBP,
}


def parse_image_quality(raw: Any, default: float = DEFAULT_IMAGE_QUALITY) -> float:
    """Parse a client quality value into [0, 1]."""
    if raw is None or (isinstance(raw, str) and not raw.strip()):
        return default
    try:
        value = float(raw)
    except (TypeError, ValueError):
        return default
    if math.isnan(value):
        return default
    return min(1.0, max(0.0, value))


def parse_image_format(raw: Optional[str]) -> MediaFormat:
    key = (raw or "").strip().lower().lstrip(".")
    return _IMAGE_FORMAT_ALIASES.get(key, MediaFormat.JPEG)


def parse_document_preset(raw: Optional[str]) -> DocumentPreset:
    key = (raw or "").strip().lower().lstrip("/")
    return _PRESET_ALIASES.get(key, DEFAULT_DOCUMENT_PRESET)


def parse_fit_policy(raw: Optional[str]) -> FitPolicy:
    try:
        return FitPolicy((raw or "").strip().lower())
    except ValueError:
        return FitPolicy.COVER


def parse_dimension(raw: Any) -> Optional[int]:
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return None
    return value if value > 0 else None


def codec_quality(quality: float) -> int:
    """Map q in [0, 1] to an integer codec quality, rounding half up."""
    quality = min(1.0, max(0.0, quality))
    return int(math.floor(quality * 100 + 0.5))


def png_compress_level(quality: float) -> int:
    """Lower quality asks for more zlib effort and a smaller file."""
    if quality < 0.5:
        return 9
    if quality < 0.8:
        return 6
    return 3


def resolve_image_settings(fmt: MediaFormat, quality: float) -> ImageCodecSettings:
    quality = parse_image_quality(quality)
    level = codec_quality(quality)

    if fmt is MediaFormat.PNG:
        params: Dict[str, Any] = {"compress_level": png_compress_level(quality), "optimize": True}
    elif fmt is MediaFormat.WEBP:
        params = {"quality": level, "method": WEBP_EFFORT}
    else:
        fmt = MediaFormat.JPEG
        params = {"quality": level, "optimize": True, "progressive": True}

    return ImageCodecSettings(format=fmt, quality=level, save_params=params)


def resolve_document_settings(preset: Any) -> DocumentCodecSettings:
    if not isinstance(preset, DocumentPreset):
        preset = parse_document_preset(preset if isinstance(preset, str) else None)
    return DOCUMENT_PRESETS[preset]

