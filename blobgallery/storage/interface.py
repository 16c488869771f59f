"""
Object Store Interface

Defines the abstract remote object store every backend must implement.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, BinaryIO, Dict, List, Optional, Union

from .models import BlobDownload, BlobInfo, BlobPage, ObjectProperties


class ObjectStore(ABC):
    """
    Abstract base class for object store backends.

    A store instance is bound to a single container. Uploads either go
    through ``upload_blob`` in one call, or through ``stage_block`` for each
    block followed by one ``commit_block_list`` that assembles the blob
    strictly in the given id order.

    **Lifecycle**:
    1. __init__(...) - Bind to a container, no I/O
    2. create_container_if_not_exists() - Make sure the container exists
    3. [Runtime operations]
    4. close() - Release network resources

    **Error Handling**:
    Backends raise subclasses of StoreError
    (see ``blobgallery.storage.exceptions``); driver-specific exceptions never
    leak to callers.
    """

    container_name: str

    @abstractmethod
    async def create_container_if_not_exists(self) -> bool:
        """
        Create the container unless it already exists.

        Returns:
            True if the container was created, False if it already existed
        """
        pass

    @abstractmethod
    async def list_blob_page(
        self,
        continuation_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> BlobPage:
        """
        List one segment of committed blob names.

        Args:
            continuation_token: Token from a previous page, None for the first
            page_size: Optional maximum number of names in the page

        Returns:
            BlobPage whose continuation_token is None on the last page
        """
        pass

    async def iter_blob_names(self, page_size: Optional[int] = None) -> AsyncIterator[str]:
        """Yield every committed blob name, following continuation tokens."""
        token: Optional[str] = None
        while True:
            page = await self.list_blob_page(token, page_size=page_size)
            for name in page.names:
                yield name
            token = page.continuation_token
            if token is None:
                break

    async def list_blob_names(self, page_size: Optional[int] = None) -> List[str]:
        """Collect every committed blob name."""
        return [name async for name in self.iter_blob_names(page_size=page_size)]

    @abstractmethod
    async def upload_blob(
        self,
        name: str,
        data: Union[bytes, BinaryIO],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        """Upload a whole blob in one call, replacing any existing blob."""
        pass

    @abstractmethod
    async def stage_block(self, name: str, block_id: str, data: bytes) -> None:
        """
        Stage one uncommitted block.

        Staging the same block id twice replaces the earlier data.

        Raises:
            InvalidBlockIdError: If the block id is malformed
        """
        pass

    @abstractmethod
    async def commit_block_list(
        self,
        name: str,
        block_ids: List[str],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        """
        Assemble the blob from staged blocks, in exactly the given order.

        When properties or metadata are given they are applied atomically
        with the commit.

        Raises:
            InvalidBlockIdError: If an id references no staged block
        """
        pass

    @abstractmethod
    async def set_properties(self, name: str, properties: ObjectProperties) -> None:
        """Replace the content settings of a committed blob."""
        pass

    @abstractmethod
    async def set_metadata(self, name: str, metadata: Dict[str, str]) -> None:
        """Replace the metadata of a committed blob."""
        pass

    @abstractmethod
    async def get_blob_info(self, name: str) -> BlobInfo:
        """
        Get properties and metadata of a committed blob.

        Raises:
            BlobNotFoundError: If the blob does not exist
        """
        pass

    @abstractmethod
    async def download_blob(self, name: str) -> BlobDownload:
        """
        Open a committed blob for streaming.

        Raises:
            BlobNotFoundError: If the blob does not exist
        """
        pass

    @abstractmethod
    async def delete_blob_if_exists(self, name: str) -> bool:
        """
        Delete a blob.

        Returns:
            True if a blob was deleted, False if none existed
        """
        pass

    async def close(self) -> None:
        """Release resources held by the backend."""
        pass
