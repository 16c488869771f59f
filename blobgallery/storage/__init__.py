"""
Object store backends.

The store capability the uploaders talk to, an in-memory implementation,
and an Azure Blob Storage implementation (``azure_store``, imported on
demand by ``factory``).
"""

from .exceptions import (
    BlobNotFoundError,
    ContainerNotFoundError,
    InvalidBlockIdError,
    InvalidContainerNameError,
    StoreError,
    StoreUnavailableError,
)
from .interface import ObjectStore
from .memory import InMemoryObjectStore
from .models import BlobDownload, BlobInfo, BlobPage, ObjectProperties

__all__ = [
    "BlobDownload",
    "BlobInfo",
    "BlobNotFoundError",
    "BlobPage",
    "ContainerNotFoundError",
    "InMemoryObjectStore",
    "InvalidBlockIdError",
    "InvalidContainerNameError",
    "ObjectProperties",
    "ObjectStore",
    "StoreError",
    "StoreUnavailableError",
]
