"""
Object Store Models

Pydantic models for blob properties, listings, and staged blocks.
"""

import base64
import binascii
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


DEFAULT_CONTENT_TYPE = "application/octet-stream"

# Block ids are limited to 64 bytes before base64 encoding.
MAX_BLOCK_ID_BYTES = 64


class ContainerNameValidator:
    """
    Validates blob container names.

    Rules:
    - 3-63 characters
    - Lowercase letters, numbers, hyphens only
    - Must start and end with letter or number
    - No consecutive hyphens
    """

    PATTERN = re.compile(r'^[a-z0-9]([a-z0-9-]*[a-z0-9])?$')
    MIN_LENGTH = 3
    MAX_LENGTH = 63

    @classmethod
    def validate(cls, name: str) -> tuple[bool, Optional[str]]:
        """
        Validate a container name.

        Args:
            name: Container name to validate

        Returns:
            Tuple of (is_valid, error_message)
        """
        if not name:
            return False, "Container name cannot be empty"

        if len(name) < cls.MIN_LENGTH:
            return False, f"Container name must be at least {cls.MIN_LENGTH} characters"

        if len(name) > cls.MAX_LENGTH:
            return False, f"Container name must be at most {cls.MAX_LENGTH} characters"

        if not cls.PATTERN.match(name):
            return False, "Container name must contain only lowercase letters, numbers, and hyphens, and must start/end with letter or number"

        if '--' in name:
            return False, "Container name cannot contain consecutive hyphens"

        return True, None

    @classmethod
    def validate_raise(cls, name: str) -> None:
        """Validate container name and raise ValueError if invalid."""
        is_valid, error = cls.validate(name)
        if not is_valid:
            raise ValueError(error)


def decode_block_id(block_id: str) -> bytes:
    """
    Decode a base64 block id, enforcing the size limit.

    Raises:
        ValueError: If the id is not base64 or decodes to more than 64 bytes
    """
    try:
        decoded = base64.b64decode(block_id, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"Invalid base64 block ID: {e}") from e
    if not decoded:
        raise ValueError("Block ID cannot be empty")
    if len(decoded) > MAX_BLOCK_ID_BYTES:
        raise ValueError(f"Block ID must be at most {MAX_BLOCK_ID_BYTES} bytes before encoding")
    return decoded


class ObjectProperties(BaseModel):
    """
    Descriptive content settings attached to a finished object.

    Maps onto the standard HTTP content headers served on download.
    """

    content_type: str = Field(default=DEFAULT_CONTENT_TYPE)
    cache_control: Optional[str] = Field(default=None)
    content_disposition: Optional[str] = Field(default=None)
    content_encoding: Optional[str] = Field(default=None)
    content_language: Optional[str] = Field(default=None)

    model_config = ConfigDict(frozen=True)

    def to_headers(self) -> Dict[str, str]:
        """Convert properties to HTTP response headers."""
        headers = {'Content-Type': self.content_type}
        if self.cache_control:
            headers['Cache-Control'] = self.cache_control
        if self.content_disposition:
            headers['Content-Disposition'] = self.content_disposition
        if self.content_encoding:
            headers['Content-Encoding'] = self.content_encoding
        if self.content_language:
            headers['Content-Language'] = self.content_language
        return headers


class StoredBlock(BaseModel):
    """A staged, not yet committed block."""

    block_id: str = Field(description="Base64-encoded block ID")
    content: bytes = Field(description="Block content")

    @field_validator('block_id')
    @classmethod
    def validate_block_id(cls, v: str) -> str:
        """Validate block ID is valid base64 and not too long."""
        decode_block_id(v)
        return v


class BlobInfo(BaseModel):
    """Properties and metadata of a committed blob."""

    name: str
    size: int = Field(description="Blob size in bytes")
    etag: str
    last_modified: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    properties: ObjectProperties = Field(default_factory=ObjectProperties)
    metadata: Dict[str, str] = Field(default_factory=dict)
    committed_blocks: List[str] = Field(default_factory=list)


class BlobPage(BaseModel):
    """One segment of a blob listing."""

    names: List[str] = Field(default_factory=list)
    continuation_token: Optional[str] = None


@dataclass
class BlobDownload:
    """An open download: blob info plus an async iterator over content chunks."""

    info: BlobInfo
    chunks: AsyncIterator[bytes]
