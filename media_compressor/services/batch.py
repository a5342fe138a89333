"""Batch orchestration with per-item failure isolation.

Every item gets exactly one outcome in the report, and every item's input
and output are deleted before ``run_batch`` returns, whatever happened.
"""

import logging
import time
import uuid
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, Sequence, Union

from media_compressor.core.exceptions import CodecFailure, ProcessError
from media_compressor.core.models import (
    BatchFailure,
    BatchItem,
    BatchReport,
    CodecSettings,
    CompressionRequest,
    CompressionResult,
)
from media_compressor.engine import ghostscript
from media_compressor.engine.compress import compress_file, resolve_request
from media_compressor.services.staging import StagedUpload

logger = logging.getLogger(__name__)

Outcome = Union[BatchItem, BatchFailure]
ExecutorFn = Callable[..., CompressionResult]


def _process_item(
    handle: StagedUpload,
    request: CompressionRequest,
    settings: CodecSettings,
    timeout: float,
    executor_fn: ExecutorFn,
    batch_id: str,
) -> Outcome:
    staged = handle.staged
    try:
        if handle.rejection is not None:
            rejection = handle.rejection
            logger.warning(f"[batch:{batch_id}] Skipping {staged.original_name}: {rejection.message}")
            return BatchFailure(staged.original_name, ProcessError.kind, rejection.error_type, rejection.message)

        output_path = handle.output_path(request.format)
        result = executor_fn(staged, request, output_path, settings=settings, timeout=timeout)
        return BatchItem(result=result, data=output_path.read_bytes())
    except CodecFailure as e:
        logger.warning(f"[batch:{batch_id}] Error compressing {staged.original_name}: {e.message}")
        return BatchFailure(staged.original_name, e.kind, e.error_type, e.message)
    except Exception as e:
        # Isolation boundary: one bad item must never take the batch down.
        logger.exception(f"[batch:{batch_id}] Unexpected error compressing {staged.original_name}")
        return BatchFailure(staged.original_name, ProcessError.kind, ProcessError.error_type, str(e))
    finally:
        handle.release()


def run_batch(
    handles: Sequence[StagedUpload],
    request: CompressionRequest,
    settings: Optional[CodecSettings] = None,
    workers: int = 4,
    timeout: float = ghostscript.DEFAULT_TIMEOUT_SECONDS,
    executor_fn: ExecutorFn = compress_file,
) -> BatchReport:
    """Compress every staged file with one shared request.

    Items run on a bounded thread pool; Ghostscript calls are additionally
    capped by the process-wide compression slots.
    """
    batch_id = uuid.uuid4().hex[:8]
    report = BatchReport()
    if not handles:
        return report

    if settings is None:
        settings = resolve_request(request)

    start = time.time()
    logger.info(f"[batch:{batch_id}] Compressing {len(handles)} {request.format.value} file(s)")

    with ThreadPoolExecutor(
        max_workers=max(1, min(workers, len(handles))),
        thread_name_prefix=f"batch-{batch_id}",
    ) as pool:
        outcomes = list(
            pool.map(
                lambda handle: _process_item(handle, request, settings, timeout, executor_fn, batch_id),
                handles,
            )
        )

    for outcome in outcomes:
        if isinstance(outcome, BatchItem):
            report.succeeded.append(outcome)
        else:
            report.failed.append(outcome)

    logger.info(
        f"[batch:{batch_id}] Done in {time.time() - start:.1f}s: "
        f"{len(report.succeeded)} succeeded, {len(report.failed)} failed"
    )
    return report
