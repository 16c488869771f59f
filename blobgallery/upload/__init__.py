"""
Uploading files into an object store.

Block uploads (``coordinator``), single-shot uploads (``single``), and
multi-file batches (``batch``).
"""

from .blocks import Block, iter_blocks, make_block_id
from .coordinator import BlockUploadCoordinator, UploadReceipt
from .exceptions import (
    CommitError,
    EmptyUploadError,
    MetadataError,
    NoFilesError,
    StagingError,
    StreamReadError,
    UploadError,
)
from .streams import BytesInputStream, FileInputStream, InputStream

__all__ = [
    "Block",
    "BlockUploadCoordinator",
    "BytesInputStream",
    "CommitError",
    "EmptyUploadError",
    "FileInputStream",
    "InputStream",
    "MetadataError",
    "NoFilesError",
    "StagingError",
    "StreamReadError",
    "UploadError",
    "UploadReceipt",
    "iter_blocks",
    "make_block_id",
]
