"""Shared helpers for the compression service.

Contains:
- env_int / env_float: tolerant environment parsing
- get_file_size_mb: file size in MB for log lines
- get_effective_cpu_count: CPU count honouring affinity and cgroup v2 quotas
- unique_staging_name: collision-resistant names for the shared staging folder
"""

import logging
import os
import secrets
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("[settings] Invalid %s=%s; using %s", name, raw, default)
        return default


def get_file_size_mb(path: Path) -> float:
    """Get file size in megabytes."""
    return path.stat().st_size / (1024 * 1024)


def format_mb(num_bytes: int) -> str:
    return f"{num_bytes / (1024 * 1024):.2f} MB"


def get_effective_cpu_count(default: int = 1) -> int:
    """Return effective CPU count, respecting affinity and cgroup v2 quotas."""
    count = os.cpu_count() or default
    try:
        affinity = os.sched_getaffinity(0)
        if affinity:
            count = min(count, len(affinity))
    except (AttributeError, OSError):
        pass

    cpu_max = Path("/sys/fs/cgroup/cpu.max")
    try:
        quota_str, period_str = cpu_max.read_text().strip().split()[:2]
        if quota_str != "max" and int(quota_str) > 0 and int(period_str) > 0:
            count = min(count, max(1, int(quota_str) // int(period_str)))
    except (OSError, ValueError):
        pass

    return max(default, count)


def unique_staging_name(prefix: str, suffix: str = "") -> str:
    """Build a staging filename from a millisecond timestamp and a random suffix.

    The staging folder is shared by every concurrent request, so names must
    never collide; no locking is used beyond this.
    """
    stamp = int(time.time() * 1000)
    return f"{prefix}-{stamp}-{secrets.token_hex(6)}{suffix}"
