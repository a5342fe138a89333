"""Admission checks and staging of uploads into the shared staging folder.

``StagedUpload`` is the single scoped handle every route uses: entering it
yields the staged file, and leaving it deletes the input plus every output
path allocated through it, on every exit path.
"""

import logging
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename

from media_compressor.core.exceptions import FileTooLargeError, ValidationError
from media_compressor.core.models import FileState, MediaFormat, StagedFile
from media_compressor.core.utils import unique_staging_name
from media_compressor.engine.pdf_diagnostics import has_pdf_header
from media_compressor.services import janitor

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
PDF_MIME_TYPES = ("application/pdf", "application/x-pdf")


@dataclass(frozen=True)
class UploadKind:
    """What a route accepts: MIME filter, size ceiling and staging prefix."""

    label: str
    prefix: str
    max_bytes: int
    accepts: Callable[[str], bool]
    header_check: Optional[Callable[[bytes], bool]] = None


def image_uploads(max_bytes: int) -> UploadKind:
    return UploadKind(
        label="image",
        prefix="image",
        max_bytes=max_bytes,
        accepts=lambda mime: mime.startswith("image/"),
    )


def pdf_uploads(max_bytes: int) -> UploadKind:
    return UploadKind(
        label="PDF",
        prefix="pdf",
        max_bytes=max_bytes,
        accepts=lambda mime: mime in PDF_MIME_TYPES,
        header_check=has_pdf_header,
    )


def display_name(upload: FileStorage) -> str:
    return upload.filename or "upload"


def validate_upload(upload: Optional[FileStorage], kind: UploadKind) -> FileStorage:
    if upload is None or not upload.filename:
        raise ValidationError.missing_file(kind.label)
    mime = (upload.mimetype or "").lower()
    if not kind.accepts(mime):
        raise ValidationError.wrong_type(display_name(upload), kind.label)
    return upload


def validate_batch(uploads: Sequence[FileStorage], kind: UploadKind, limit: int) -> List[FileStorage]:
    """Admission control for a batch; nothing is staged unless all of it passes."""
    uploads = [u for u in uploads if u is not None and u.filename]
    if not uploads:
        raise ValidationError.missing_file(kind.label)
    if len(uploads) > limit:
        raise ValidationError.too_many_files(len(uploads), limit)
    for upload in uploads:
        validate_upload(upload, kind)
    return uploads


def _staged_suffix(filename: str, kind: UploadKind) -> str:
    if kind.prefix == "pdf":
        return ".pdf"
    suffix = Path(secure_filename(filename)).suffix.lower()
    return suffix if suffix[1:].isalnum() else ""


def receive_upload(
    upload: FileStorage,
    kind: UploadKind,
    folder: Path,
) -> Tuple[StagedFile, Optional[ValidationError]]:
    """Stream a validated upload to a uniquely named staging path.

    Oversized uploads raise and never leave a file behind. Empty or
    mislabelled content is staged in the REJECTED state and the problem is
    returned alongside it, so a batch can report it per item.
    """
    validate_upload(upload, kind)
    name = display_name(upload)
    folder.mkdir(parents=True, exist_ok=True)
    path = folder / unique_staging_name(kind.prefix, _staged_suffix(name, kind))

    written = 0
    header = b""
    try:
        with open(path, "wb") as handle:
            while True:
                chunk = upload.stream.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > kind.max_bytes:
                    raise FileTooLargeError.for_file(name, kind.max_bytes)
                if len(header) < 8:
                    header += chunk[: 8 - len(header)]
                handle.write(chunk)
    except BaseException:
        janitor.discard(path)
        raise

    staged = StagedFile(
        id=uuid.uuid4().hex[:16],
        original_name=name,
        path=path,
        size_bytes=written,
        mime_type=(upload.mimetype or "").lower(),
    )

    problem: Optional[ValidationError] = None
    if written == 0:
        problem = ValidationError.empty_file(name)
    elif kind.header_check is not None and not kind.header_check(header):
        problem = ValidationError(f"'{name}' is not a valid {kind.label} file")

    if problem is not None:
        staged.advance(FileState.REJECTED)
        logger.warning(f"[stage:{staged.id}] Rejected {kind.label}: {problem.message}")
        return staged, problem

    staged.advance(FileState.VALIDATED)
    logger.info(f"[stage:{staged.id}] Received {kind.label}: {name} ({written / (1024 * 1024):.2f}MB)")
    return staged, None


def stage_upload(upload: FileStorage, kind: UploadKind, folder: Path) -> StagedFile:
    """Stage one upload, raising on anything that was not accepted."""
    staged, problem = receive_upload(upload, kind, folder)
    if problem is not None:
        janitor.release(staged)
        raise problem
    return staged


class StagedUpload:
    """Scoped ownership of one staged file and the outputs derived from it.

    ``rejection`` is set when the content failed validation; such a handle is
    only ever reported and released, never compressed.
    """

    def __init__(self, staged: StagedFile, rejection: Optional[ValidationError] = None) -> None:
        self.staged = staged
        self.rejection = rejection
        self._outputs: List[Path] = []

    def output_path(self, fmt: MediaFormat) -> Path:
        path = self.staged.path.parent / unique_staging_name("compressed", fmt.extension)
        self._outputs.append(path)
        return path

    def release(self) -> bool:
        return janitor.release(self.staged, *self._outputs)

    def __enter__(self) -> "StagedUpload":
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.release()
        return False


def stage(upload: FileStorage, kind: UploadKind, folder: Path) -> StagedUpload:
    return StagedUpload(stage_upload(upload, kind, folder))


def stage_many(uploads: Sequence[FileStorage], kind: UploadKind, folder: Path) -> List[StagedUpload]:
    """Stage every upload of a batch.

    A file over the size ceiling aborts the whole batch and nothing stays
    staged. Empty or mislabelled files come back as rejected handles.
    """
    handles: List[StagedUpload] = []
    try:
        for upload in uploads:
            staged, problem = receive_upload(upload, kind, folder)
            handles.append(StagedUpload(staged, rejection=problem))
    except BaseException:
        for handle in handles:
            handle.release()
        raise
    return handles
