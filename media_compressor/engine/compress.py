"""Compression executor: one staged file in, one verified output out.

Formats dispatch through ``CODECS``, a table pairing each format's settings
resolver with the codec that runs it.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, NamedTuple, Optional, Tuple

from media_compressor.core.exceptions import (
    CodecFailure,
    EncryptionError,
    OutputMissingError,
    ProcessError,
)
from media_compressor.core.models import (
    CodecSettings,
    CompressionRequest,
    CompressionResult,
    FileState,
    MediaFormat,
    StagedFile,
)
from media_compressor.core.utils import format_mb
from media_compressor.engine import ghostscript, image
from media_compressor.engine.pdf_diagnostics import precheck_pdf
from media_compressor.engine.settings import resolve_document_settings, resolve_image_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CodecOutput:
    dimensions: Optional[Tuple[int, int]] = None
    output_dimensions: Optional[Tuple[int, int]] = None
    pages: Optional[int] = None


class Codec(NamedTuple):
    resolve: Callable[[CompressionRequest], CodecSettings]
    run: Callable[[StagedFile, Path, CodecSettings, CompressionRequest, float], CodecOutput]


def _run_image(
    staged: StagedFile,
    output_path: Path,
    settings: CodecSettings,
    request: CompressionRequest,
    timeout: float,
) -> CodecOutput:
    # Dimensions come from the untouched source, before any transform.
    dimensions = image.read_dimensions(staged.path)
    output_dimensions = image.encode_image(staged.path, output_path, settings, request.resize)
    return CodecOutput(dimensions=dimensions, output_dimensions=output_dimensions)


def _run_document(
    staged: StagedFile,
    output_path: Path,
    settings: CodecSettings,
    request: CompressionRequest,
    timeout: float,
) -> CodecOutput:
    precheck = precheck_pdf(staged.path)
    if precheck.is_locked:
        raise EncryptionError.for_file(staged.original_name)
    ghostscript.compress_pdf_with_ghostscript(
        staged.path,
        output_path,
        settings,
        timeout=timeout,
        display_name=staged.original_name,
    )
    return CodecOutput(pages=precheck.page_count)


def _image_codec(fmt: MediaFormat) -> Codec:
    return Codec(lambda request: resolve_image_settings(fmt, request.quality), _run_image)


CODECS: Dict[MediaFormat, Codec] = {
    MediaFormat.JPEG: _image_codec(MediaFormat.JPEG),
    MediaFormat.PNG: _image_codec(MediaFormat.PNG),
    MediaFormat.WEBP: _image_codec(MediaFormat.WEBP),
    MediaFormat.PDF: Codec(lambda request: resolve_document_settings(request.quality), _run_document),
}


def resolve_request(request: CompressionRequest) -> CodecSettings:
    """Resolve codec parameters; called once per request, not per file."""
    return CODECS[request.format].resolve(request)


def _verified_output_size(output_path: Path, name: str) -> int:
    try:
        size = output_path.stat().st_size
    except FileNotFoundError:
        size = 0
    if size == 0:
        raise OutputMissingError.for_file(name)
    return size


def compress_file(
    staged: StagedFile,
    request: CompressionRequest,
    output_path: Path,
    settings: Optional[CodecSettings] = None,
    timeout: float = ghostscript.DEFAULT_TIMEOUT_SECONDS,
) -> CompressionResult:
    """Compress one validated staged file into ``output_path``.

    The caller owns both paths and is responsible for deleting them.

    Raises:
        CodecFailure: processError, timeout, outputMissing or toolUnavailable.
    """
    codec = CODECS[request.format]
    if settings is None:
        settings = codec.resolve(request)

    start = time.time()
    input_size = staged.path.stat().st_size
    staged.advance(FileState.PROCESSING)

    try:
        output = codec.run(staged, output_path, settings, request, timeout)
        output_size = _verified_output_size(output_path, staged.original_name)
    except CodecFailure:
        staged.advance(FileState.FAILED)
        raise
    except Exception as e:
        staged.advance(FileState.FAILED)
        logger.exception(f"Unexpected codec error on {staged.original_name}")
        raise ProcessError.for_file(staged.original_name, str(e)) from e

    staged.advance(FileState.COMPLETED)
    result = CompressionResult(
        original_name=staged.original_name,
        format=request.format,
        input_size=input_size,
        output_size=output_size,
        output_path=output_path,
        duration_ms=(time.time() - start) * 1000,
        dimensions=output.dimensions,
        output_dimensions=output.output_dimensions,
        pages=output.pages,
    )

    logger.info(
        "Compressed %s: %s -> %s (%s%% reduction)%s",
        staged.original_name,
        format_mb(input_size),
        format_mb(output_size),
        result.reduction_label,
        f" {output.dimensions[0]}x{output.dimensions[1]}" if output.dimensions else "",
    )
    return result
