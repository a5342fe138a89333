"""Custom exceptions for image and PDF compression.

All error messages are written in plain English so the caller knows exactly
what went wrong. Each class carries the HTTP status the service layer maps it to.
"""

from typing import Optional


class MediaCompressionError(Exception):
    """Base exception for all compression errors."""

    error_type: str = "MediaCompressionError"
    status_code: int = 400

    def __init__(
        self,
        message: str,
        original_error: Optional[Exception] = None
    ) -> None:
        super().__init__(message)
        self.message = message
        self.original_error = original_error


class ValidationError(MediaCompressionError):
    """Request rejected before anything was staged.

    Covers absent files, wrong MIME types, empty uploads and batches over the
    admission ceiling.
    """

    error_type: str = "ValidationError"

    @staticmethod
    def missing_file(kind: str) -> "ValidationError":
        return ValidationError(f"No {kind} file uploaded")

    @staticmethod
    def wrong_type(filename: str, expected: str) -> "ValidationError":
        return ValidationError(f"'{filename}' is not allowed. Only {expected} files are accepted.")

    @staticmethod
    def empty_file(filename: str) -> "ValidationError":
        return ValidationError(f"'{filename}' is empty")

    @staticmethod
    def too_many_files(count: int, limit: int) -> "ValidationError":
        return ValidationError(f"Too many files: {count} uploaded, at most {limit} allowed per request")


class FileTooLargeError(ValidationError):
    """Upload exceeded the per-file size ceiling."""

    error_type: str = "FileTooLarge"
    status_code: int = 413

    @staticmethod
    def for_file(filename: str, limit_bytes: int) -> "FileTooLargeError":
        limit_mb = limit_bytes / (1024 * 1024)
        return FileTooLargeError(f"'{filename}' is too large (max {limit_mb:.0f}MB)")


class UsageDeniedError(MediaCompressionError):
    """The usage decision supplied by the account layer denied this request."""

    error_type: str = "UsageLimitExceeded"
    status_code: int = 429

    def __init__(self, message: str = "Usage limit reached. Upgrade your plan or try again later.") -> None:
        super().__init__(message)


class CodecFailure(MediaCompressionError):
    """A codec could not turn one staged file into a compressed output.

    Isolated per item in batch mode, fatal to the request in single-file mode.
    """

    error_type: str = "CodecFailure"
    status_code: int = 422
    kind: str = "processError"


class ProcessError(CodecFailure):
    """Codec raised or the external tool exited non-zero."""

    error_type: str = "ProcessError"

    @staticmethod
    def for_file(filename: str, detail: str = "") -> "ProcessError":
        base_msg = f"'{filename}' could not be compressed."
        if detail:
            return ProcessError(f"{base_msg} Issue: {detail}")
        return ProcessError(f"{base_msg} The file may be corrupted.")


class EncryptionError(ProcessError):
    """PDF is password-protected or locked."""

    error_type: str = "EncryptionError"

    @staticmethod
    def for_file(filename: str) -> "EncryptionError":
        return EncryptionError(
            f"'{filename}' is password-protected or locked. "
            f"Please remove the password and try again."
        )


class ProcessingTimeoutError(CodecFailure):
    """External tool exceeded its hard execution timeout."""

    error_type: str = "ProcessingTimeout"
    status_code: int = 504
    kind: str = "timeout"

    @staticmethod
    def for_file(filename: str, timeout_seconds: float) -> "ProcessingTimeoutError":
        return ProcessingTimeoutError(
            f"'{filename}' took longer than {timeout_seconds:.0f} seconds to compress and was stopped. "
            f"The file may be too complex; try a smaller or simpler document."
        )


class OutputMissingError(CodecFailure):
    """Tool reported success but produced no output, or an empty one."""

    error_type: str = "OutputMissing"
    status_code: int = 500
    kind: str = "outputMissing"

    @staticmethod
    def for_file(filename: str) -> "OutputMissingError":
        return OutputMissingError(f"Compression failed - output file not created for '{filename}'")


class ToolUnavailableError(CodecFailure):
    """The external document codec is not installed on this host."""

    error_type: str = "ToolUnavailable"
    status_code: int = 503
    kind: str = "toolUnavailable"

    def __init__(self, message: str = "Ghostscript is not installed. PDF compression is unavailable.") -> None:
        super().__init__(message)
