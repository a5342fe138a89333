"""Flask-facing compression operations, error mapping and health snapshot."""

import contextlib
import io
import logging
import sys
from datetime import datetime, timezone
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from flask import current_app, jsonify, request, send_file
from werkzeug.exceptions import HTTPException, NotFound, RequestEntityTooLarge

from media_compressor import bootstrap
from media_compressor.config import RuntimeConfig
from media_compressor.core.exceptions import (
    MediaCompressionError,
    ToolUnavailableError,
    UsageDeniedError,
)
from media_compressor.core.models import CompressionRequest, CompressionResult, MediaFormat, ResizeSpec
from media_compressor.engine import ghostscript, image
from media_compressor.engine.compress import compress_file, resolve_request
from media_compressor.engine.settings import (
    parse_dimension,
    parse_document_preset,
    parse_fit_policy,
    parse_image_format,
    parse_image_quality,
)
from media_compressor.services import staging
from media_compressor.services.batch import run_batch

# Config
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout,
)
logger = logging.getLogger(__name__)

CONFIG_KEY = "MEDIA_CONFIG"
USAGE_DECISION_KEY = "USAGE_DECISION"

GHOSTSCRIPT_INSTALL_HINT = (
    "Install with: brew install ghostscript (Mac) or apt-get install ghostscript (Linux)"
)


def allow_all(_request) -> bool:
    return True


def configure_app(app, config: RuntimeConfig) -> None:
    """Apply Flask app config values required by this service layer."""
    app.config[CONFIG_KEY] = config
    app.config["MAX_CONTENT_LENGTH"] = config.max_content_length
    app.config.setdefault(USAGE_DECISION_KEY, allow_all)
    config.upload_folder.mkdir(parents=True, exist_ok=True)
    logger.info("Upload folder resolved to: %s", config.upload_folder.resolve())


def get_config() -> RuntimeConfig:
    return current_app.config[CONFIG_KEY]


def register_error_handlers(app) -> None:
    """Register HTTP and framework error handlers."""
    app.register_error_handler(RequestEntityTooLarge, handle_large_file)
    app.register_error_handler(MediaCompressionError, handle_compression_error)
    app.register_error_handler(HTTPException, handle_http_exception)
    app.register_error_handler(Exception, handle_error)


def require_auth(f):
    """Decorator to require Bearer token authentication when API_TOKEN is set."""
    @wraps(f)
    def decorated(*args, **kwargs):
        api_token = get_config().api_token
        if not api_token:
            return f(*args, **kwargs)  # No token configured = open access

        auth_header = request.headers.get('Authorization')
        if not auth_header:
            logger.warning(f"Missing Authorization header on {request.path}")
            return jsonify({"success": False, "error": "Missing Authorization header"}), 401

        if not auth_header.startswith('Bearer '):
            logger.warning(f"Invalid Authorization format on {request.path}")
            return jsonify({"success": False, "error": "Authorization must use Bearer token format"}), 401

        if auth_header[7:] != api_token:
            logger.warning(f"Invalid token on {request.path}")
            return jsonify({"success": False, "error": "Invalid token"}), 403

        return f(*args, **kwargs)
    return decorated


def require_usage_allowance(f):
    """Consult the account layer's allow/deny decision; quota state lives there."""
    @wraps(f)
    def decorated(*args, **kwargs):
        decide: Callable = current_app.config.get(USAGE_DECISION_KEY) or allow_all
        if not decide(request):
            logger.info(f"Usage denied on {request.path}")
            raise UsageDeniedError()
        return f(*args, **kwargs)
    return decorated


def create_error_response(error: Exception, status_code: int = 500):
    """Create the standard error body: 'error' plus 'error_type'/'error_message'."""
    if isinstance(error, MediaCompressionError):
        body = {
            "success": False,
            "error": error.message,
            "error_type": error.error_type,
            "error_message": error.message,
        }
        kind = getattr(error, "kind", None)
        if kind:
            body["error_kind"] = kind
        return jsonify(body), status_code

    message = getattr(error, "description", None) or str(error)
    return jsonify({
        "success": False,
        "error": message,
        "error_type": type(error).__name__ if isinstance(error, HTTPException) else "UnknownError",
        "error_message": message,
    }), status_code


def get_error_status_code(error: Exception) -> int:
    """Map exception type to appropriate HTTP status code."""
    if isinstance(error, MediaCompressionError):
        return error.status_code
    if isinstance(error, HTTPException):
        return error.code or 500
    if isinstance(error, FileNotFoundError):
        return 404
    if isinstance(error, ValueError):
        return 400
    return 500


# Error handlers
def handle_large_file(e):
    max_mb = int(get_config().max_content_length / (1024 * 1024))
    message = f"Upload too large (max {max_mb}MB per request)"
    return jsonify({
        "success": False,
        "error": message,
        "error_type": "FileTooLarge",
        "error_message": message,
    }), 413


def handle_compression_error(e: MediaCompressionError):
    status = get_error_status_code(e)
    if status >= 500:
        logger.error("%s on %s %s: %s", e.error_type, request.method, request.path, e.message)
    else:
        logger.warning("%s on %s %s: %s", e.error_type, request.method, request.path, e.message)
    return create_error_response(e, status)


def handle_http_exception(e):
    if isinstance(e, NotFound):
        logger.info("404 %s %s", request.method, request.path)
    else:
        logger.warning("HTTP %s on %s %s: %s", e.code, request.method, request.path, e.description)
    return create_error_response(e, e.code or 400)


def handle_error(e):
    logger.exception("Unhandled error")
    return create_error_response(e, get_error_status_code(e))


def _image_request(form, with_resize: bool = False) -> CompressionRequest:
    resize = None
    if with_resize:
        resize = ResizeSpec(
            width=parse_dimension(form.get("width")),
            height=parse_dimension(form.get("height")),
            fit=parse_fit_policy(form.get("fit")),
        )
    return CompressionRequest(
        format=parse_image_format(form.get("format")),
        quality=parse_image_quality(form.get("quality"), get_config().default_image_quality),
        resize=resize,
    )


def _pdf_request(form) -> CompressionRequest:
    return CompressionRequest(format=MediaFormat.PDF, quality=parse_document_preset(form.get("quality")))


def _size_headers(result: CompressionResult) -> Dict[str, Any]:
    headers: Dict[str, Any] = {
        "X-Original-Size": result.input_size,
        "X-Compressed-Size": result.output_size,
        "X-Reduction": result.reduction_label,
        "X-Duration-Ms": int(result.duration_ms),
    }
    if result.dimensions:
        headers["X-Width"], headers["X-Height"] = result.dimensions
    if result.pages is not None:
        headers["X-Pages"] = result.pages
    return headers


def _compress_single(
    field: str,
    kind: staging.UploadKind,
    compression_request: CompressionRequest,
    download_name: Callable[[str], str],
    extra_headers: Optional[Callable[[CompressionResult], Dict[str, Any]]] = None,
):
    """Stage, compress and send back one file.

    The output is read into memory before the handle is released, so the
    staged input and output are both gone before the response is built.
    """
    config = get_config()
    upload = staging.validate_upload(request.files.get(field), kind)
    settings = resolve_request(compression_request)

    with staging.stage(upload, kind, config.upload_folder) as handle:
        output_path = handle.output_path(compression_request.format)
        result = compress_file(
            handle.staged,
            compression_request,
            output_path,
            settings=settings,
            timeout=config.gs_timeout_seconds,
        )
        data = output_path.read_bytes()
        name = download_name(handle.staged.original_name)

    response = send_file(
        io.BytesIO(data),
        mimetype=compression_request.format.mime_type,
        as_attachment=True,
        download_name=name,
    )
    headers = _size_headers(result)
    if extra_headers:
        headers.update(extra_headers(result))
    for key, value in headers.items():
        response.headers[key] = str(value)
    return response


def _compress_batch(field: str, kind: staging.UploadKind, limit: int, compression_request: CompressionRequest):
    config = get_config()
    uploads = staging.validate_batch(request.files.getlist(field), kind, limit)
    settings = resolve_request(compression_request)

    handles = staging.stage_many(uploads, kind, config.upload_folder)
    with contextlib.ExitStack() as stack:
        for handle in handles:
            stack.enter_context(handle)
        report = run_batch(
            handles,
            compression_request,
            settings=settings,
            workers=config.batch_workers,
            timeout=config.gs_timeout_seconds,
        )

    return jsonify(report.to_payload())


def _renamed(original_name: str, extension: str, prefix: str = "", suffix: str = "") -> str:
    stem = Path(original_name).stem or "file"
    return f"{prefix}{stem}{suffix}{extension}"


def _require_ghostscript() -> None:
    if not ghostscript.get_ghostscript_command():
        raise ToolUnavailableError()


# Routes
@require_auth
@require_usage_allowance
def compress_image():
    """Compress a single image (multipart field 'image')."""
    config = get_config()
    compression_request = _image_request(request.form)
    logger.info(
        "Compressing image: format=%s quality=%s",
        compression_request.format.value,
        compression_request.quality,
    )
    return _compress_single(
        "image",
        staging.image_uploads(config.max_image_bytes),
        compression_request,
        lambda name: _renamed(name, compression_request.format.extension),
    )


@require_auth
@require_usage_allowance
def resize_image():
    """Resize under a fit policy, then compress (multipart field 'image')."""
    config = get_config()
    compression_request = _image_request(request.form, with_resize=True)
    resize = compression_request.resize
    logger.info(
        "Resizing image: width=%s height=%s fit=%s quality=%s",
        resize.width or "auto",
        resize.height or "auto",
        resize.fit.value,
        compression_request.quality,
    )

    def _resize_headers(result: CompressionResult) -> Dict[str, Any]:
        headers: Dict[str, Any] = {}
        if result.dimensions:
            headers["X-Original-Width"], headers["X-Original-Height"] = result.dimensions
        if result.output_dimensions:
            headers["X-New-Width"], headers["X-New-Height"] = result.output_dimensions
        return headers

    return _compress_single(
        "image",
        staging.image_uploads(config.max_image_bytes),
        compression_request,
        lambda name: _renamed(name, compression_request.format.extension, prefix="resized-"),
        extra_headers=_resize_headers,
    )


@require_auth
@require_usage_allowance
def compress_image_batch():
    """Compress up to MAX_BATCH_IMAGES images (multipart field 'images')."""
    config = get_config()
    return _compress_batch(
        "images",
        staging.image_uploads(config.max_image_bytes),
        config.max_batch_images,
        _image_request(request.form),
    )


@require_auth
@require_usage_allowance
def compress_pdf():
    """Compress a single PDF (multipart field 'pdf')."""
    config = get_config()
    _require_ghostscript()
    compression_request = _pdf_request(request.form)
    logger.info("Compressing PDF: preset=%s", compression_request.quality.value)
    return _compress_single(
        "pdf",
        staging.pdf_uploads(config.max_pdf_bytes),
        compression_request,
        lambda name: _renamed(name, ".pdf", suffix="_compressed"),
    )


@require_auth
@require_usage_allowance
def compress_pdf_batch():
    """Compress up to MAX_BATCH_PDFS PDFs (multipart field 'pdfs')."""
    config = get_config()
    _require_ghostscript()
    return _compress_batch(
        "pdfs",
        staging.pdf_uploads(config.max_pdf_bytes),
        config.max_batch_pdfs,
        _pdf_request(request.form),
    )


def pdf_tool_health() -> Dict[str, Any]:
    version = ghostscript.get_ghostscript_version()
    if version is None:
        return {"tool_available": False}
    return {"tool_available": True, "version": version}


def image_tool_health() -> Dict[str, Any]:
    return {"tool_available": True, "version": image.pillow_version()}


def check_pdf_tool():
    """Report whether Ghostscript is installed."""
    status = pdf_tool_health()
    if not status["tool_available"]:
        status.update({"message": "Ghostscript is not installed", "instructions": GHOSTSCRIPT_INSTALL_HINT})
        return jsonify(status), 503
    status["message"] = "Ghostscript is installed and ready"
    return jsonify(status)


def check_image_tool():
    """Report the Pillow version used for image compression."""
    status = image_tool_health()
    status.update({
        "message": "Pillow is installed and ready",
        "upload_dir": str(get_config().upload_folder),
    })
    return jsonify(status)


def build_health_snapshot() -> Dict[str, Any]:
    """Build a lightweight snapshot for health endpoints."""
    config = get_config()
    gs_cmd = ghostscript.get_ghostscript_command()
    try:
        staged_count = sum(1 for p in config.upload_folder.iterdir() if p.is_file())
    except OSError:
        staged_count = -1

    sweeper = bootstrap.get_sweeper()
    return {
        "status": "healthy" if gs_cmd else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "ghostscript": {
            "available": gs_cmd is not None,
            "command": gs_cmd or "missing",
        },
        "pillow": {"version": image.pillow_version()},
        "storage": {
            "upload_folder": str(config.upload_folder.resolve()),
            "staged_files": staged_count,
            "retention_seconds": config.file_retention_seconds,
            "sweep_interval_seconds": config.sweep_interval_seconds,
            "sweeper_running": bool(sweeper and sweeper.running),
            "last_sweep_removed": sweeper.last_removed if sweeper else 0,
        },
        "limits": {
            "max_image_bytes": config.max_image_bytes,
            "max_pdf_bytes": config.max_pdf_bytes,
            "max_batch_images": config.max_batch_images,
            "max_batch_pdfs": config.max_batch_pdfs,
            "gs_timeout_seconds": config.gs_timeout_seconds,
            "max_active_compressions": config.max_active_compressions,
        },
    }


def health():
    """Health check endpoint."""
    return jsonify(build_health_snapshot())
