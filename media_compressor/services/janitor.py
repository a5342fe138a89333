"""Cleanup of staged artifacts.

Two independent mechanisms: immediate, idempotent deletion of the paths a
request produced, and a periodic sweep that reaps anything older than the
retention threshold in case a request crashed before its own cleanup ran.
"""

import logging
import threading
import time
from pathlib import Path
from typing import List, Optional, Union

from media_compressor.core.models import FileState, StagedFile

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def discard(*paths: Optional[PathLike]) -> bool:
    """Delete each path, ignoring ones that are already gone.

    Failures are logged and never raised, so cleanup can't change the
    outcome of the request that triggered it.

    Returns:
        True when every path is absent afterwards.
    """
    clean = True
    for path in paths:
        if path is None:
            continue
        try:
            Path(path).unlink(missing_ok=True)
            logger.debug(f"Cleaned up: {Path(path).name}")
        except OSError as e:
            clean = False
            logger.error(f"Cleanup failed for {path}: {e}")
    return clean


def release(staged: StagedFile, *extra_paths: Optional[PathLike]) -> bool:
    """Terminal disposition for a staged file and whatever it produced."""
    clean = discard(staged.path, *extra_paths)
    if staged.state is not FileState.DELETED:
        staged.advance(FileState.DELETED)
    return clean


def sweep_staging_folder(folder: Path, retention_seconds: float, now: Optional[float] = None) -> List[Path]:
    """Delete files in ``folder`` whose mtime is older than the retention threshold.

    Ownership is ignored: a file this old has outlived any request.
    """
    cutoff = (time.time() if now is None else now) - retention_seconds
    removed: List[Path] = []

    try:
        candidates = [p for p in folder.iterdir() if p.is_file()]
    except FileNotFoundError:
        return removed
    except OSError as e:
        logger.error(f"[sweep] Cleanup scan error: {e}")
        return removed

    for path in candidates:
        try:
            mtime = path.stat().st_mtime
        except OSError:
            continue
        if mtime >= cutoff:
            continue
        if discard(path):
            removed.append(path)
            logger.info(f"[sweep] Removed stale file: {path.name}")

    return removed


class Sweeper:
    """Background orphan sweep with an explicit start/stop handle.

    Runs once at start and then every ``interval_seconds``. Tests call
    ``run_once`` directly instead of waiting for the timer.
    """

    def __init__(self, folder: Path, retention_seconds: float, interval_seconds: float) -> None:
        self.folder = folder
        self.retention_seconds = retention_seconds
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.last_run_at: Optional[float] = None
        self.last_removed = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self, now: Optional[float] = None) -> List[Path]:
        removed = sweep_staging_folder(self.folder, self.retention_seconds, now=now)
        self.last_run_at = time.time()
        self.last_removed = len(removed)
        if removed:
            logger.info(f"[sweep] Reclaimed {len(removed)} orphaned file(s)")
        return removed

    def _loop(self) -> None:
        logger.info(
            "[sweep] Started (folder=%s retention=%ss interval=%ss)",
            self.folder,
            self.retention_seconds,
            self.interval_seconds,
        )
        while not self._stop.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("[sweep] Sweep cycle failed")
            self._stop.wait(self.interval_seconds)
        logger.info("[sweep] Stopped")

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, daemon=True, name="staging-sweeper")
        self._thread.start()

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
