"""Application configuration loading."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from media_compressor.core.utils import env_float, env_int, get_effective_cpu_count

logger = logging.getLogger(__name__)

MB = 1024 * 1024


def resolve_upload_folder() -> Path:
    """Resolve the staging folder; differs between local runs and production."""
    env_override = os.environ.get("UPLOAD_DIR")
    if env_override:
        return Path(env_override)

    environment = (os.environ.get("APP_ENV") or os.environ.get("FLASK_ENV") or "development").strip().lower()
    if environment == "production":
        # Container filesystems are read-only outside /tmp.
        return Path("/tmp/uploads")

    return Path(__file__).resolve().parents[1] / "uploads"


def _default_active_compressions() -> int:
    return max(1, min(2, get_effective_cpu_count()))


@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime configuration values consumed by the Flask app and the engine."""

    upload_folder: Path = field(default_factory=resolve_upload_folder)
    max_image_bytes: int = 20 * MB
    max_pdf_bytes: int = 50 * MB
    max_batch_images: int = 20
    max_batch_pdfs: int = 10
    file_retention_seconds: int = 3600
    sweep_interval_seconds: float = 3600.0
    gs_timeout_seconds: float = 60.0
    max_active_compressions: int = field(default_factory=_default_active_compressions)
    batch_workers: int = 4
    default_image_quality: float = 0.8
    api_token: Optional[str] = None

    @property
    def max_content_length(self) -> int:
        return max(
            self.max_image_bytes * self.max_batch_images,
            self.max_pdf_bytes * self.max_batch_pdfs,
        )


def load_runtime_config() -> RuntimeConfig:
    """Load runtime configuration from the environment, once per process."""
    return RuntimeConfig(
        upload_folder=resolve_upload_folder(),
        max_image_bytes=max(1, env_int("MAX_IMAGE_SIZE", 20 * MB)),
        max_pdf_bytes=max(1, env_int("MAX_PDF_SIZE", 50 * MB)),
        max_batch_images=max(1, env_int("MAX_BATCH_IMAGES", 20)),
        max_batch_pdfs=max(1, env_int("MAX_BATCH_PDFS", 10)),
        file_retention_seconds=max(1, env_int("FILE_RETENTION_SECONDS", 3600)),
        sweep_interval_seconds=max(1.0, env_float("SWEEP_INTERVAL_SECONDS", 3600.0)),
        gs_timeout_seconds=max(1.0, env_float("GS_TIMEOUT_SECONDS", 60.0)),
        max_active_compressions=max(1, env_int("MAX_ACTIVE_COMPRESSIONS", _default_active_compressions())),
        batch_workers=max(1, env_int("BATCH_WORKERS", 4)),
        default_image_quality=min(1.0, max(0.0, env_float("DEFAULT_IMAGE_QUALITY", 0.8))),
        api_token=os.environ.get("API_TOKEN") or None,
    )


def _format_env_value(name: str, effective: Any) -> str:
    raw = os.environ.get(name)
    if raw is None:
        return f"{effective} (default)"
    return f"{effective} (env:{raw})"


def _truncate(value: Any, width: int) -> str:
    text = str(value)
    if len(text) <= width:
        return text
    return text[: max(0, width - 3)] + "..."


_BOX_LABEL_WIDTH = 26
_BOX_VALUE_WIDTH = 40
_BOX_INNER_WIDTH = _BOX_LABEL_WIDTH + _BOX_VALUE_WIDTH + 5


def _box(title: str, rows: list[tuple[str, str]]) -> list[str]:
    title_border = "+" + "=" * _BOX_INNER_WIDTH + "+"
    row_border = "+" + "-" * (_BOX_LABEL_WIDTH + 2) + "+" + "-" * (_BOX_VALUE_WIDTH + 2) + "+"
    lines = [title_border, f"|{' ' + title + ' ':^{_BOX_INNER_WIDTH}}|", title_border, row_border]
    for label, value in rows:
        lines.append(
            f"| {_truncate(label, _BOX_LABEL_WIDTH):<{_BOX_LABEL_WIDTH}} "
            f"| {_truncate(value, _BOX_VALUE_WIDTH):<{_BOX_VALUE_WIDTH}} |"
        )
    lines.append(row_border)
    return lines


def log_effective_config(config: RuntimeConfig) -> None:
    rows = [
        ("UPLOAD_DIR", _format_env_value("UPLOAD_DIR", config.upload_folder)),
        ("MAX_IMAGE_SIZE", _format_env_value("MAX_IMAGE_SIZE", config.max_image_bytes)),
        ("MAX_PDF_SIZE", _format_env_value("MAX_PDF_SIZE", config.max_pdf_bytes)),
        ("MAX_BATCH_IMAGES", _format_env_value("MAX_BATCH_IMAGES", config.max_batch_images)),
        ("MAX_BATCH_PDFS", _format_env_value("MAX_BATCH_PDFS", config.max_batch_pdfs)),
        ("FILE_RETENTION_SECONDS", _format_env_value("FILE_RETENTION_SECONDS", config.file_retention_seconds)),
        ("SWEEP_INTERVAL_SECONDS", _format_env_value("SWEEP_INTERVAL_SECONDS", config.sweep_interval_seconds)),
        ("GS_TIMEOUT_SECONDS", _format_env_value("GS_TIMEOUT_SECONDS", config.gs_timeout_seconds)),
        ("MAX_ACTIVE_COMPRESSIONS", _format_env_value("MAX_ACTIVE_COMPRESSIONS", config.max_active_compressions)),
        ("BATCH_WORKERS", _format_env_value("BATCH_WORKERS", config.batch_workers)),
        ("DEFAULT_IMAGE_QUALITY", _format_env_value("DEFAULT_IMAGE_QUALITY", config.default_image_quality)),
        ("API_TOKEN", "set" if config.api_token else "unset (open access)"),
    ]
    logger.info("\n%s", "\n".join(_box("CONFIG SNAPSHOT (startup)", rows)))
