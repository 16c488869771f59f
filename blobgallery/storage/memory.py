"""
In-Memory Object Store

Process-local object store with the block staging and commit semantics of
the real blob service. Used for local development and tests.
"""

import asyncio
import hashlib
import logging
import uuid
from datetime import datetime, timezone
from typing import AsyncIterator, BinaryIO, Dict, List, Optional, Union

from .exceptions import (
    BlobNotFoundError,
    ContainerNotFoundError,
    InvalidBlockIdError,
    InvalidContainerNameError,
)
from .interface import ObjectStore
from .models import (
    BlobDownload,
    BlobInfo,
    BlobPage,
    ContainerNameValidator,
    ObjectProperties,
    StoredBlock,
    decode_block_id,
)

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 5000
DOWNLOAD_CHUNK_SIZE = 4 * 1024 * 1024


class InMemoryObjectStore(ObjectStore):
    """
    In-memory storage backend for one container.

    Committed blobs and staged blocks are kept in dictionaries guarded by an
    asyncio lock. Staged blocks live beside the committed blob until the next
    commit for that name consumes them; a name with only staged blocks is
    invisible to listing and download.
    """

    def __init__(self, container_name: str, create_container: bool = False):
        """
        Initialize the store.

        Args:
            container_name: Container this store is bound to
            create_container: Start with the container already present

        Raises:
            InvalidContainerNameError: If the container name is invalid
        """
        is_valid, error = ContainerNameValidator.validate(container_name)
        if not is_valid:
            raise InvalidContainerNameError(container_name, error)

        self.container_name = container_name
        self._container_exists = create_container
        self._blobs: Dict[str, BlobInfo] = {}
        self._contents: Dict[str, bytes] = {}
        self._uncommitted: Dict[str, Dict[str, StoredBlock]] = {}  # blob name -> {block id -> block}
        self._lock = asyncio.Lock()

    def _generate_etag(self) -> str:
        """Generate a unique ETag."""
        return hashlib.md5(uuid.uuid4().bytes).hexdigest()

    def _require_container(self) -> None:
        if not self._container_exists:
            raise ContainerNotFoundError(self.container_name)

    def _require_blob(self, name: str) -> BlobInfo:
        self._require_container()
        if name not in self._blobs:
            raise BlobNotFoundError(name)
        return self._blobs[name]

    def _store(
        self,
        name: str,
        content: bytes,
        properties: Optional[ObjectProperties],
        metadata: Optional[Dict[str, str]],
        committed_blocks: List[str],
    ) -> BlobInfo:
        info = BlobInfo(
            name=name,
            size=len(content),
            etag=self._generate_etag(),
            last_modified=datetime.now(timezone.utc),
            properties=properties or ObjectProperties(),
            metadata=dict(metadata or {}),
            committed_blocks=committed_blocks,
        )
        self._blobs[name] = info
        self._contents[name] = content
        return info

    def _touch(self, info: BlobInfo, **changes) -> BlobInfo:
        changes.update(etag=self._generate_etag(), last_modified=datetime.now(timezone.utc))
        updated = info.model_copy(update=changes)
        self._blobs[info.name] = updated
        return updated

    # ============================================================================
    # Container Operations
    # ============================================================================

    async def create_container_if_not_exists(self) -> bool:
        async with self._lock:
            if self._container_exists:
                return False
            self._container_exists = True
            logger.info(f"Created container '{self.container_name}'")
            return True

    async def list_blob_page(
        self,
        continuation_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> BlobPage:
        async with self._lock:
            self._require_container()

            names = sorted(self._blobs)
            if continuation_token:
                names = [n for n in names if n > continuation_token]

            limit = page_size or DEFAULT_PAGE_SIZE
            next_token = None
            if len(names) > limit:
                names = names[:limit]
                next_token = names[-1]

            return BlobPage(names=names, continuation_token=next_token)

    # ============================================================================
    # Blob Operations
    # ============================================================================

    async def upload_blob(
        self,
        name: str,
        data: Union[bytes, BinaryIO],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        content = data if isinstance(data, bytes) else data.read()
        async with self._lock:
            self._require_container()
            self._uncommitted.pop(name, None)
            return self._store(name, content, properties, metadata, committed_blocks=[])

    async def get_blob_info(self, name: str) -> BlobInfo:
        async with self._lock:
            return self._require_blob(name)

    async def download_blob(self, name: str) -> BlobDownload:
        async with self._lock:
            info = self._require_blob(name)
            content = self._contents[name]

        async def chunks() -> AsyncIterator[bytes]:
            for start in range(0, len(content), DOWNLOAD_CHUNK_SIZE):
                yield content[start:start + DOWNLOAD_CHUNK_SIZE]

        return BlobDownload(info=info, chunks=chunks())

    async def delete_blob_if_exists(self, name: str) -> bool:
        async with self._lock:
            self._require_container()
            self._uncommitted.pop(name, None)
            if name not in self._blobs:
                return False
            del self._blobs[name]
            del self._contents[name]
            return True

    async def set_properties(self, name: str, properties: ObjectProperties) -> None:
        async with self._lock:
            info = self._require_blob(name)
            self._touch(info, properties=properties)

    async def set_metadata(self, name: str, metadata: Dict[str, str]) -> None:
        async with self._lock:
            info = self._require_blob(name)
            self._touch(info, metadata=dict(metadata))

    # ============================================================================
    # Block Blob Operations
    # ============================================================================

    async def stage_block(self, name: str, block_id: str, data: bytes) -> None:
        try:
            decoded = decode_block_id(block_id)
        except ValueError as e:
            raise InvalidBlockIdError(name, block_id, str(e)) from e

        async with self._lock:
            self._require_container()
            staged = self._uncommitted.setdefault(name, {})

            # All ids staged for one blob must have the same length
            for existing_id in staged:
                if len(decode_block_id(existing_id)) != len(decoded):
                    raise InvalidBlockIdError(
                        name, block_id, "block IDs for a blob must all have the same length"
                    )

            staged[block_id] = StoredBlock(block_id=block_id, content=bytes(data))

    async def commit_block_list(
        self,
        name: str,
        block_ids: List[str],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        async with self._lock:
            self._require_container()
            staged = self._uncommitted.get(name, {})

            final_blocks: List[StoredBlock] = []
            for block_id in block_ids:
                block = staged.get(block_id)
                if block is None:
                    raise InvalidBlockIdError(name, block_id, "block not found")
                final_blocks.append(block)

            content = b"".join(block.content for block in final_blocks)
            info = self._store(
                name,
                content,
                properties,
                metadata,
                committed_blocks=list(block_ids),
            )
            self._uncommitted.pop(name, None)
            return info

    async def get_uncommitted_block_ids(self, name: str) -> List[str]:
        """List the ids currently staged for a blob, in staging order."""
        async with self._lock:
            return list(self._uncommitted.get(name, {}))
