"""Ghostscript PDF rewrite with preset-driven image downsampling."""

import contextlib
import logging
import shutil
import subprocess
import threading
import time
from pathlib import Path
from typing import Iterator, List, Optional

from media_compressor.core.exceptions import (
    OutputMissingError,
    ProcessError,
    ProcessingTimeoutError,
    ToolUnavailableError,
)
from media_compressor.core.models import DocumentCodecSettings
from media_compressor.core.utils import get_file_size_mb

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
VERSION_TIMEOUT_SECONDS = 10.0

_slot_lock = threading.Lock()
_slots = threading.BoundedSemaphore(2)


def configure_concurrency(max_active: int) -> None:
    """Cap how many Ghostscript processes may run at once in this process."""
    global _slots
    with _slot_lock:
        _slots = threading.BoundedSemaphore(max(1, int(max_active)))
    logger.info("Ghostscript concurrency capped at %s", max_active)


@contextlib.contextmanager
def compression_slot(label: str) -> Iterator[None]:
    semaphore = _slots
    start = time.time()
    semaphore.acquire()
    waited = time.time() - start
    if waited >= 1:
        logger.info("[%s] Waited %.1fs for a Ghostscript slot", label, waited)
    try:
        yield
    finally:
        semaphore.release()


def get_ghostscript_command() -> Optional[str]:
    """Get Ghostscript binary name for current platform."""
    for name in ["gs", "gswin64c", "gswin32c"]:
        if shutil.which(name):
            return name
    return None


def get_ghostscript_version() -> Optional[str]:
    """Return the installed Ghostscript version, or None when unavailable."""
    gs_cmd = get_ghostscript_command()
    if not gs_cmd:
        return None
    try:
        result = subprocess.run(
            [gs_cmd, "--version"],
            capture_output=True,
            text=True,
            timeout=VERSION_TIMEOUT_SECONDS,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.warning("Ghostscript version probe failed: %s", e)
        return None
    if result.returncode != 0:
        return None
    return result.stdout.strip() or None


def translate_ghostscript_error(stderr: str, return_code: int) -> str:
    """Translate Ghostscript stderr to a clear, user-friendly error message.

    Also logs the full stderr for debugging purposes.
    """
    logger.error(f"Ghostscript failed (exit code {return_code}). Full error:\n{stderr}")

    stderr_lower = (stderr or "").lower()

    if 'invalidfileaccess' in stderr_lower or 'password' in stderr_lower:
        return "PDF is password-protected or locked. Please remove the password and try again."

    if 'typecheck' in stderr_lower or 'rangecheck' in stderr_lower:
        return "PDF has corrupted internal data. Try re-saving it from the original program."

    if any(x in stderr_lower for x in ['undefined', 'ioerror', 'syntaxerror', 'eofread']):
        return "PDF is damaged or corrupted. Please use a different copy of the file."

    return f"PDF processing failed (Ghostscript exit code {return_code}). The file may be corrupted."


def build_ghostscript_command(
    gs_cmd: str,
    input_path: Path,
    output_path: Path,
    settings: DocumentCodecSettings,
) -> List[str]:
    return [
        gs_cmd,
        "-sDEVICE=pdfwrite",
        "-dCompatibilityLevel=1.4",
        f"-dPDFSETTINGS=/{settings.preset.value}",
        "-dNOPAUSE",
        "-dQUIET",
        "-dBATCH",
        "-dDownsampleColorImages=true",
        f"-dColorImageResolution={settings.dpi}",
        "-dDownsampleGrayImages=true",
        f"-dGrayImageResolution={settings.dpi}",
        "-dCompressPages=true",
        "-dColorImageDownsampleType=/Bicubic",
        "-dGrayImageDownsampleType=/Bicubic",
        f"-sOutputFile={output_path}",
        str(input_path),
    ]


def compress_pdf_with_ghostscript(
    input_path: Path,
    output_path: Path,
    settings: DocumentCodecSettings,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    display_name: Optional[str] = None,
) -> None:
    """Rewrite ``input_path`` into ``output_path`` at the preset's resolution.

    Raises:
        ToolUnavailableError: Ghostscript is not installed.
        ProcessingTimeoutError: the process outlived ``timeout`` and was killed.
        ProcessError: non-zero exit status.
        OutputMissingError: zero exit but no output, or an empty one.
    """
    name = display_name or input_path.name
    gs_cmd = get_ghostscript_command()
    if not gs_cmd:
        raise ToolUnavailableError()

    cmd = build_ghostscript_command(gs_cmd, input_path, output_path, settings)
    file_mb = get_file_size_mb(input_path)
    logger.info(f"Compressing {name} ({file_mb:.1f}MB) with {settings.description}")

    with compression_slot(name):
        try:
            # subprocess.run kills the child before re-raising TimeoutExpired.
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            logger.warning(f"Ghostscript timed out after {timeout:.0f}s on {name}")
            raise ProcessingTimeoutError.for_file(name, timeout) from e
        except OSError as e:
            raise ProcessError.for_file(name, str(e)) from e

    if result.returncode != 0:
        raise ProcessError(translate_ghostscript_error(result.stderr, result.returncode))

    try:
        out_size = output_path.stat().st_size
    except FileNotFoundError:
        out_size = 0
    if out_size == 0:
        logger.error(f"Ghostscript exited 0 but produced no output for {name}")
        raise OutputMissingError.for_file(name)
