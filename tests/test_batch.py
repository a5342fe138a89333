import io

from werkzeug.datastructures import FileStorage

from conftest import make_image_bytes
from media_compressor.core.exceptions import ProcessingTimeoutError
from media_compressor.core.models import CompressionRequest, MediaFormat
from media_compressor.engine.compress import compress_file
from media_compressor.services import staging
from media_compressor.services.batch import run_batch


def _stage_images(upload_dir, payloads):
    kind = staging.image_uploads(1024 * 1024)
    uploads = [
        FileStorage(stream=io.BytesIO(data), filename=name, content_type="image/png")
        for name, data in payloads
    ]
    return staging.stage_many(uploads, kind, upload_dir)


def test_batch_isolates_failing_items(upload_dir, staged_files):
    handles = _stage_images(
        upload_dir,
        [
            ("a.png", make_image_bytes((40, 20))),
            ("broken.png", b"not an image"),
            ("c.png", make_image_bytes((30, 30))),
        ],
    )

    report = run_batch(handles, CompressionRequest(MediaFormat.WEBP, 0.5), workers=2)

    assert [item.result.original_name for item in report.succeeded] == ["a.png", "c.png"]
    assert len(report.failed) == 1
    failure = report.failed[0]
    assert failure.original_name == "broken.png"
    assert failure.error_kind == "processError"
    assert staged_files() == []


def test_batch_payload_shape(upload_dir):
    handles = _stage_images(upload_dir, [("a.png", make_image_bytes((40, 20)))])

    payload = run_batch(handles, CompressionRequest(MediaFormat.JPEG, 0.8)).to_payload()

    assert payload["success"] is True
    assert payload["processed_count"] == 1
    assert payload["error_count"] == 0
    item = payload["items"][0]
    assert item["original_name"] == "a.png"
    assert item["format"] == "jpeg"
    assert (item["width"], item["height"]) == (40, 20)
    assert item["data"]


def test_batch_reports_failure_kind_from_executor(upload_dir, staged_files):
    handles = _stage_images(
        upload_dir,
        [("slow.png", make_image_bytes()), ("fast.png", make_image_bytes())],
    )

    def _executor(staged, request, output_path, settings=None, timeout=60):
        if staged.original_name == "slow.png":
            raise ProcessingTimeoutError.for_file(staged.original_name, timeout)
        return compress_file(staged, request, output_path, settings=settings, timeout=timeout)

    report = run_batch(handles, CompressionRequest(MediaFormat.PNG, 0.8), timeout=3, executor_fn=_executor)

    assert [item.result.original_name for item in report.succeeded] == ["fast.png"]
    assert report.failed[0].error_kind == "timeout"
    assert report.failed[0].error_type == "ProcessingTimeout"
    assert staged_files() == []


def test_unexpected_executor_error_is_isolated(upload_dir, staged_files):
    handles = _stage_images(upload_dir, [("a.png", make_image_bytes())])

    def _executor(*args, **kwargs):
        raise RuntimeError("worker crashed")

    report = run_batch(handles, CompressionRequest(MediaFormat.JPEG, 0.8), executor_fn=_executor)

    assert report.succeeded == []
    assert report.failed[0].error_kind == "processError"
    assert "worker crashed" in report.failed[0].message
    assert staged_files() == []


def test_empty_batch_is_an_empty_report():
    report = run_batch([], CompressionRequest(MediaFormat.JPEG, 0.8))

    assert report.to_payload()["processed_count"] == 0


def test_rejected_items_are_reported_without_compressing(upload_dir, staged_files):
    handles = _stage_images(
        upload_dir,
        [("a.png", make_image_bytes((40, 20))), ("empty.png", b"")],
    )
    calls = []

    def _executor(staged, request, output_path, settings=None, timeout=60):
        calls.append(staged.original_name)
        return compress_file(staged, request, output_path, settings=settings, timeout=timeout)

    report = run_batch(handles, CompressionRequest(MediaFormat.JPEG, 0.8), executor_fn=_executor)

    assert calls == ["a.png"]
    assert [item.result.original_name for item in report.succeeded] == ["a.png"]
    failure = report.failed[0]
    assert failure.original_name == "empty.png"
    assert failure.error_kind == "processError"
    assert failure.error_type == "ValidationError"
    assert "is empty" in failure.message
    assert staged_files() == []
