import io

import pytest
from werkzeug.datastructures import FileStorage

from conftest import make_image_bytes, make_pdf_bytes
from media_compressor.core.exceptions import FileTooLargeError, ValidationError
from media_compressor.core.models import FileState, MediaFormat
from media_compressor.services import staging


def _upload(data, filename="photo.png", mimetype="image/png"):
    return FileStorage(stream=io.BytesIO(data), filename=filename, content_type=mimetype)


def test_stage_writes_validated_file(upload_dir):
    data = make_image_bytes()
    staged = staging.stage_upload(_upload(data), staging.image_uploads(1024 * 1024), upload_dir)

    assert staged.state is FileState.VALIDATED
    assert staged.original_name == "photo.png"
    assert staged.size_bytes == len(data)
    assert staged.path.parent == upload_dir
    assert staged.path.name.startswith("image-")
    assert staged.path.read_bytes() == data


def test_staged_names_never_collide(upload_dir):
    kind = staging.image_uploads(1024 * 1024)
    first = staging.stage_upload(_upload(b"a"), kind, upload_dir)
    second = staging.stage_upload(_upload(b"b"), kind, upload_dir)

    assert first.path != second.path


@pytest.mark.parametrize(
    "upload, message",
    [
        (None, "No image file uploaded"),
        (_upload(b"x", filename="notes.txt", mimetype="text/plain"), "not allowed"),
    ],
)
def test_validate_upload_rejects_missing_or_wrong_type(upload, message):
    with pytest.raises(ValidationError) as excinfo:
        staging.validate_upload(upload, staging.image_uploads(1024))
    assert message in excinfo.value.message


def test_oversized_upload_leaves_nothing_behind(upload_dir, staged_files):
    kind = staging.image_uploads(max_bytes=100)

    with pytest.raises(FileTooLargeError) as excinfo:
        staging.stage_upload(_upload(b"x" * (staging.CHUNK_SIZE + 10)), kind, upload_dir)

    assert excinfo.value.status_code == 413
    assert staged_files() == []


def test_empty_upload_is_rejected(upload_dir, staged_files):
    with pytest.raises(ValidationError):
        staging.stage_upload(_upload(b""), staging.image_uploads(1024), upload_dir)
    assert staged_files() == []


def test_pdf_without_magic_bytes_is_rejected(upload_dir, staged_files):
    kind = staging.pdf_uploads(1024 * 1024)

    with pytest.raises(ValidationError) as excinfo:
        staging.stage_upload(_upload(b"PK\x03\x04zip", "fake.pdf", "application/pdf"), kind, upload_dir)

    assert "not a valid PDF" in excinfo.value.message
    assert staged_files() == []


def test_validate_batch_enforces_limit():
    kind = staging.pdf_uploads(1024)
    uploads = [_upload(b"%PDF-", f"{i}.pdf", "application/pdf") for i in range(3)]

    with pytest.raises(ValidationError) as excinfo:
        staging.validate_batch(uploads, kind, limit=2)
    assert "at most 2" in excinfo.value.message

    with pytest.raises(ValidationError):
        staging.validate_batch([], kind, limit=2)


def test_handle_releases_input_and_outputs_on_error(upload_dir, staged_files):
    kind = staging.pdf_uploads(1024 * 1024)
    upload = _upload(make_pdf_bytes(), "doc.pdf", "application/pdf")

    with pytest.raises(RuntimeError):
        with staging.stage(upload, kind, upload_dir) as handle:
            handle.output_path(MediaFormat.PDF).write_bytes(b"partial")
            assert len(staged_files()) == 2
            raise RuntimeError("codec blew up")

    assert staged_files() == []
    assert handle.staged.state is FileState.DELETED


def test_oversized_item_aborts_batch_staging(upload_dir, staged_files):
    kind = staging.image_uploads(max_bytes=10)
    uploads = [_upload(b"small"), _upload(b"x" * 50, filename="big.png")]

    with pytest.raises(FileTooLargeError):
        staging.stage_many(uploads, kind, upload_dir)

    assert staged_files() == []


def test_stage_many_keeps_malformed_items_as_rejected_handles(upload_dir, staged_files):
    kind = staging.pdf_uploads(1024 * 1024)
    uploads = [
        _upload(make_pdf_bytes(), "good.pdf", "application/pdf"),
        _upload(b"garbage not a pdf", "bad.pdf", "application/pdf"),
        _upload(b"", "empty.pdf", "application/pdf"),
    ]

    handles = staging.stage_many(uploads, kind, upload_dir)

    assert [h.rejection is None for h in handles] == [True, False, False]
    assert handles[0].staged.state is FileState.VALIDATED
    assert handles[1].staged.state is FileState.REJECTED
    assert "not a valid PDF" in handles[1].rejection.message
    assert "is empty" in handles[2].rejection.message

    for handle in handles:
        handle.release()
    assert staged_files() == []
    assert all(h.staged.state is FileState.DELETED for h in handles)


def test_receive_upload_reports_problem_without_raising(upload_dir):
    staged, problem = staging.receive_upload(_upload(b""), staging.image_uploads(1024), upload_dir)

    assert staged.state is FileState.REJECTED
    assert isinstance(problem, ValidationError)
    assert staged.path.exists()
