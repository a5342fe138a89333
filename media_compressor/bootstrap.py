"""Runtime bootstrap for the compression slots and the staging sweeper."""

from __future__ import annotations

import threading
from typing import Optional

from media_compressor.config import RuntimeConfig
from media_compressor.engine import ghostscript
from media_compressor.services.janitor import Sweeper

_bootstrap_lock = threading.Lock()
_bootstrap_started = False
_sweeper: Optional[Sweeper] = None


def bootstrap_runtime(config: RuntimeConfig) -> None:
    """Start background services once per process."""
    global _bootstrap_started, _sweeper
    with _bootstrap_lock:
        if _bootstrap_started:
            return

        ghostscript.configure_concurrency(config.max_active_compressions)
        _sweeper = Sweeper(
            config.upload_folder,
            retention_seconds=config.file_retention_seconds,
            interval_seconds=config.sweep_interval_seconds,
        )
        _sweeper.start()
        _bootstrap_started = True


def shutdown_runtime(timeout: float = 5.0) -> None:
    """Stop the sweeper; a later bootstrap starts a fresh one."""
    global _bootstrap_started, _sweeper
    with _bootstrap_lock:
        if _sweeper is not None:
            _sweeper.stop(timeout)
        _sweeper = None
        _bootstrap_started = False


def get_sweeper() -> Optional[Sweeper]:
    return _sweeper


def is_bootstrapped() -> bool:
    """Expose runtime bootstrap state for diagnostics/tests."""
    return _bootstrap_started
