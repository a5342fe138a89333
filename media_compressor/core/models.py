"""Data model for staged files, compression requests and their outcomes."""

from __future__ import annotations

import base64
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union


class MediaFormat(str, Enum):
    JPEG = "jpeg"
    PNG = "png"
    WEBP = "webp"
    PDF = "pdf"

    @property
    def is_image(self) -> bool:
        return self is not MediaFormat.PDF

    @property
    def extension(self) -> str:
        return ".jpg" if self is MediaFormat.JPEG else f".{self.value}"

    @property
    def mime_type(self) -> str:
        if self is MediaFormat.PDF:
            return "application/pdf"
        return f"image/{self.value}"


class DocumentPreset(str, Enum):
    """Ghostscript PDFSETTINGS tiers, ordered from smallest to highest fidelity."""

    SCREEN = "screen"
    EBOOK = "ebook"
    PRINTER = "printer"
    PREPRESS = "prepress"


class FitPolicy(str, Enum):
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"
    INSIDE = "inside"
    OUTSIDE = "outside"


class FileState(str, Enum):
    UPLOADED = "uploaded"
    VALIDATED = "validated"
    REJECTED = "rejected"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    DELETED = "deleted"


# Forward-only lifecycle; DELETED is terminal and re-entering it is a no-op.
_TRANSITIONS: Dict[FileState, Tuple[FileState, ...]] = {
    FileState.UPLOADED: (FileState.VALIDATED, FileState.REJECTED, FileState.DELETED),
    FileState.VALIDATED: (FileState.PROCESSING, FileState.DELETED),
    FileState.PROCESSING: (FileState.COMPLETED, FileState.FAILED, FileState.DELETED),
    FileState.REJECTED: (FileState.DELETED,),
    FileState.COMPLETED: (FileState.DELETED,),
    FileState.FAILED: (FileState.DELETED,),
    FileState.DELETED: (FileState.DELETED,),
}


@dataclass
class StagedFile:
    """An upload written to the staging folder, owned by exactly one request."""

    id: str
    original_name: str
    path: Path
    size_bytes: int
    mime_type: str
    created_at: float = field(default_factory=time.time)
    state: FileState = FileState.UPLOADED

    def advance(self, new_state: FileState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise ValueError(f"Illegal staged file transition {self.state.value} -> {new_state.value}")
        self.state = new_state


@dataclass(frozen=True)
class ResizeSpec:
    width: Optional[int] = None
    height: Optional[int] = None
    fit: FitPolicy = FitPolicy.COVER

    @property
    def is_noop(self) -> bool:
        return not self.width and not self.height


@dataclass(frozen=True)
class CompressionRequest:
    """One quality setting applied uniformly to every file of a request.

    ``quality`` is a float in [0, 1] for images and a DocumentPreset for PDFs.
    """

    format: MediaFormat
    quality: Union[float, DocumentPreset]
    resize: Optional[ResizeSpec] = None


@dataclass(frozen=True)
class ImageCodecSettings:
    format: MediaFormat
    quality: int
    save_params: Dict[str, Any]


@dataclass(frozen=True)
class DocumentCodecSettings:
    preset: DocumentPreset
    dpi: int
    description: str


CodecSettings = Union[ImageCodecSettings, DocumentCodecSettings]


@dataclass
class CompressionResult:
    original_name: str
    format: MediaFormat
    input_size: int
    output_size: int
    output_path: Path
    duration_ms: float
    dimensions: Optional[Tuple[int, int]] = None
    output_dimensions: Optional[Tuple[int, int]] = None
    pages: Optional[int] = None

    @property
    def reduction_percent(self) -> float:
        """Signed reduction; negative when the codec enlarged the file."""
        if self.input_size <= 0:
            return 0.0
        return (self.input_size - self.output_size) / self.input_size * 100

    @property
    def reduction_label(self) -> str:
        return f"{self.reduction_percent:.1f}"


@dataclass
class BatchItem:
    result: CompressionResult
    data: bytes

    def to_payload(self) -> Dict[str, Any]:
        result = self.result
        payload: Dict[str, Any] = {
            "original_name": result.original_name,
            "original_size": result.input_size,
            "compressed_size": result.output_size,
            "reduction_percent": round(result.reduction_percent, 1),
            "format": result.format.value,
            "data": base64.b64encode(self.data).decode("ascii"),
        }
        if result.dimensions:
            payload["width"], payload["height"] = result.dimensions
        if result.pages is not None:
            payload["pages"] = result.pages
        return payload


@dataclass(frozen=True)
class BatchFailure:
    original_name: str
    error_kind: str
    error_type: str
    message: str

    def to_payload(self) -> Dict[str, Any]:
        return {
            "filename": self.original_name,
            "error_kind": self.error_kind,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass
class BatchReport:
    succeeded: List[BatchItem] = field(default_factory=list)
    failed: List[BatchFailure] = field(default_factory=list)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "success": True,
            "processed_count": len(self.succeeded),
            "error_count": len(self.failed),
            "items": [item.to_payload() for item in self.succeeded],
            "errors": [failure.to_payload() for failure in self.failed],
        }
