"""
Object Store Exception Hierarchy

Error types raised by object store backends, with machine-readable codes.
"""

from typing import Any, Dict, Optional


class StoreError(Exception):
    """
    Base exception for all object store errors.

    Attributes:
        message: Human-readable error message
        error_code: Machine-readable error code (e.g., 'BlobNotFound')
        details: Additional context (container, blob name, block id, ...)
    """

    error_code: str = "StoreError"

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
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details,
            }
        }


class ContainerNotFoundError(StoreError):
    """Raised when the container does not exist."""
    error_code = "ContainerNotFound"

    def __init__(self, container_name: str, message: Optional[str] = None):
        message = message or f"Container '{container_name}' not found"
        super().__init__(message, details={"container_name": container_name})


class InvalidContainerNameError(StoreError):
    """Raised when a container name breaks the naming rules."""
    error_code = "InvalidContainerName"

    def __init__(self, container_name: str, reason: str):
        super().__init__(
            f"Invalid container name '{container_name}': {reason}",
            details={"container_name": container_name, "reason": reason},
        )


class BlobNotFoundError(StoreError):
    """Raised when a blob is not found (or has no committed content yet)."""
    error_code = "BlobNotFound"

    def __init__(self, blob_name: str, message: Optional[str] = None):
        message = message or f"Blob '{blob_name}' not found"
        super().__init__(message, details={"blob_name": blob_name})


class InvalidBlockIdError(StoreError):
    """Raised when a block id is malformed or references no staged block."""
    error_code = "InvalidBlockId"

    def __init__(self, blob_name: str, block_id: str, reason: str):
        super().__init__(
            f"Invalid block '{block_id}' for blob '{blob_name}': {reason}",
            details={"blob_name": blob_name, "block_id": block_id, "reason": reason},
        )


class StoreUnavailableError(StoreError):
    """Raised when the store cannot be reached or answers with a server error."""
    error_code = "StoreUnavailable"
