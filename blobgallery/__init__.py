"""
BlobGallery: blob storage gallery with chunked block uploads.

Lists, uploads, downloads and deletes blobs in one storage container,
through a web API or the command line.
"""

__version__ = "0.1.0"

from .upload.coordinator import BlockUploadCoordinator, UploadReceipt

__all__ = ["BlockUploadCoordinator", "UploadReceipt", "__version__"]
