"""
Upload Exception Hierarchy

Errors raised while uploading one file. Each error says whether the
object's content is known to be stored, so callers can tell "content
possibly not stored" apart from "content stored, metadata incomplete".
"""

from typing import Any, Dict, Optional


class UploadError(Exception):
    """
    Base exception for all upload errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code
        details: Additional context (object name, block index, ...)
        content_stored: True when the object's content is committed
    """

    error_code: str = "UploadError"
    content_stored: bool = False

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.error_code
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary format for API responses."""
        return {
            "code": self.error_code,
            "message": self.message,
            "content_stored": self.content_stored,
            "details": self.details,
        }


class StreamReadError(UploadError):
    """Raised when a chunk cannot be read from the input stream."""
    error_code = "StreamReadFailed"

    def __init__(self, offset: int, count: int, reason: str):
        super().__init__(
            f"Failed to read {count} bytes at offset {offset}: {reason}",
            details={"offset": offset, "count": count},
        )
        self.offset = offset
        self.count = count


class StagingError(UploadError):
    """Raised when the store rejects or fails to stage one block."""
    error_code = "BlockStagingFailed"

    def __init__(self, object_name: str, sequence_index: int, block_id: str, reason: str):
        super().__init__(
            f"Staging block {sequence_index} of '{object_name}' failed: {reason}",
            details={
                "object_name": object_name,
                "sequence_index": sequence_index,
                "block_id": block_id,
            },
        )
        self.object_name = object_name
        self.sequence_index = sequence_index
        self.block_id = block_id


class CommitError(UploadError):
    """
    Raised when the block list commit, or a single-shot upload, fails.

    ``block_count`` is None for single-shot uploads.
    """
    error_code = "BlockListCommitFailed"

    def __init__(self, object_name: str, block_count: Optional[int], reason: str):
        what = f"{block_count} blocks of '{object_name}'" if block_count is not None else f"'{object_name}'"
        super().__init__(
            f"Committing {what} failed: {reason}",
            details={"object_name": object_name, "block_count": block_count},
        )
        self.object_name = object_name
        self.block_count = block_count


class MetadataError(UploadError):
    """
    Raised when properties or metadata cannot be set after a commit.

    The object exists with correct content; re-issuing only the finalize
    step repairs it.
    """
    error_code = "MetadataUpdateFailed"
    content_stored = True

    def __init__(self, object_name: str, stage: str, reason: str):
        super().__init__(
            f"Setting {stage} on '{object_name}' failed: {reason}",
            details={"object_name": object_name, "stage": stage},
        )
        self.object_name = object_name
        self.stage = stage


class EmptyUploadError(UploadError):
    """Raised when a zero-length input is rejected by policy."""
    error_code = "EmptyUpload"

    def __init__(self, object_name: str):
        super().__init__(
            f"Refusing to upload zero-length content to '{object_name}'",
            details={"object_name": object_name},
        )
        self.object_name = object_name


class NoFilesError(UploadError):
    """Raised when an upload request carries no files."""
    error_code = "NoFiles"

    def __init__(self):
        super().__init__("At least one file is required")
