"""
Block Upload Coordinator

Uploads one object as a sequence of staged blocks followed by a single
block list commit:

1. The input stream is split lazily into ordered blocks (``iter_blocks``).
2. Blocks are staged with at most ``max_concurrency`` store calls in
   flight; the next block is read only once a slot is free.
3. Once every block is staged, the block ids are committed in ascending
   position order, whatever order the staging calls completed in.
4. Properties and metadata are attached (see ``finalize``).

A failure at any step stops the upload of that object and is raised as an
``UploadError``. Staged but uncommitted blocks are left to the store's own
garbage collection.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..core.config_manager import EmptyUploadPolicy, FinalizeMode, UploadConfig
from ..core.logging_config import log_with_context
from ..storage.exceptions import StoreError
from ..storage.interface import ObjectStore
from ..storage.models import ObjectProperties
from .blocks import Block, iter_blocks
from .exceptions import CommitError, EmptyUploadError, StagingError
from .finalize import commit_settings, finalize_object
from .streams import InputStream

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadReceipt:
    """Outcome of a successful upload call."""

    object_name: str
    size: int
    block_ids: Tuple[str, ...] = ()
    committed: bool = True
    finalized: bool = True

    @property
    def block_count(self) -> int:
        return len(self.block_ids)


class BlockUploadCoordinator:
    """
    Uploads objects through block staging and a block list commit.

    The coordinator keeps no state between calls; one instance may serve
    many uploads, including concurrent ones for different objects.
    """

    def __init__(
        self,
        store: ObjectStore,
        max_block_size: int,
        max_concurrency: int = 1,
        empty_upload_policy: EmptyUploadPolicy = EmptyUploadPolicy.SKIP,
        finalize_mode: FinalizeMode = FinalizeMode.SEPARATE,
    ):
        """
        Args:
            store: Object store to upload into
            max_block_size: Maximum bytes per block (> 0)
            max_concurrency: Maximum blocks staged at once (>= 1); 1 stages
                strictly one block after the other
            empty_upload_policy: Handling of zero-length inputs
            finalize_mode: Whether properties and metadata ride on the commit
                or follow it as separate calls

        Raises:
            ValueError: If a size or concurrency bound is out of range
        """
        if max_block_size <= 0:
            raise ValueError(f"max_block_size must be positive, got {max_block_size}")
        if max_concurrency < 1:
            raise ValueError(f"max_concurrency must be at least 1, got {max_concurrency}")

        self._store = store
        self._max_block_size = max_block_size
        self._max_concurrency = max_concurrency
        self._empty_upload_policy = EmptyUploadPolicy(empty_upload_policy)
        self._finalize_mode = FinalizeMode(finalize_mode)

    @classmethod
    def from_config(cls, store: ObjectStore, config: UploadConfig) -> "BlockUploadCoordinator":
        return cls(
            store,
            max_block_size=config.max_block_size,
            max_concurrency=config.max_concurrency,
            empty_upload_policy=config.empty_upload_policy,
            finalize_mode=config.finalize_mode,
        )

    @property
    def max_block_size(self) -> int:
        return self._max_block_size

    async def upload_in_blocks(
        self,
        stream: InputStream,
        object_name: str,
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> UploadReceipt:
        """
        Upload a stream as ``object_name``.

        Args:
            stream: Input to upload; read but never closed
            object_name: Name of the object to create or replace
            properties: Content settings for the finished object
            metadata: Metadata for the finished object

        Returns:
            UploadReceipt; ``committed`` is False when an empty input was skipped

        Raises:
            StreamReadError: A chunk could not be read; nothing committed
            StagingError: A block could not be staged; nothing committed
            CommitError: The block list was rejected; nothing committed
            MetadataError: Content committed, properties or metadata missing
            EmptyUploadError: Zero-length input under the reject policy
        """
        total_length = stream.length()

        if total_length == 0:
            if self._empty_upload_policy == EmptyUploadPolicy.REJECT:
                raise EmptyUploadError(object_name)
            if self._empty_upload_policy == EmptyUploadPolicy.SKIP:
                logger.info(f"Skipping zero-length upload of '{object_name}'")
                return UploadReceipt(object_name=object_name, size=0, committed=False, finalized=False)

        logger.info(
            f"Uploading '{object_name}': {total_length} bytes in blocks of up to "
            f"{self._max_block_size} bytes"
        )

        block_ids = await self._stage_blocks(stream, object_name)

        try:
            await self._store.commit_block_list(
                object_name,
                block_ids,
                **commit_settings(self._finalize_mode, properties, metadata),
            )
        except StoreError as e:
            logger.error(f"Commit of '{object_name}' failed: {e}")
            raise CommitError(object_name, len(block_ids), str(e)) from e

        log_with_context(
            logger,
            logging.INFO,
            f"Committed '{object_name}' from {len(block_ids)} blocks",
            size=total_length,
            block_count=len(block_ids),
        )

        if self._finalize_mode == FinalizeMode.SEPARATE:
            await finalize_object(self._store, object_name, properties, metadata)

        return UploadReceipt(
            object_name=object_name,
            size=total_length,
            block_ids=tuple(block_ids),
        )

    async def finalize(
        self,
        object_name: str,
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> None:
        """
        Re-apply properties and metadata to a committed object.

        This is the recovery path after a ``MetadataError``: the content is
        untouched and no block is staged again.
        """
        await finalize_object(self._store, object_name, properties, metadata)

    async def _stage_blocks(self, stream: InputStream, object_name: str) -> List[str]:
        """Stage every block and return the block ids in position order."""
        slots = asyncio.Semaphore(self._max_concurrency)
        tasks: Dict[int, "asyncio.Task[None]"] = {}
        block_ids: List[str] = []
        blocks = iter_blocks(stream, self._max_block_size)

        try:
            while True:
                await slots.acquire()
                if any(task.done() and not task.cancelled() and task.exception() for task in tasks.values()):
                    slots.release()
                    break

                # Chunk reads may hit disk once an upload spools over
                block = await asyncio.to_thread(next, blocks, None)
                if block is None:
                    slots.release()
                    break

                block_ids.append(block.block_id)
                tasks[block.sequence_index] = asyncio.create_task(
                    self._stage_block(object_name, block, slots)
                )

            # Barrier: let every staging call settle before deciding on the commit
            if tasks:
                await asyncio.wait(tasks.values())
        except BaseException:
            pending = [task for task in tasks.values() if not task.done()]
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            raise

        failures = [
            (index, task.exception())
            for index, task in sorted(tasks.items())
            if task.exception() is not None
        ]
        if failures:
            index, error = failures[0]
            logger.error(
                f"Upload of '{object_name}' stopped: {len(failures)} block(s) failed, first at index {index}"
            )
            raise error

        return block_ids

    async def _stage_block(self, object_name: str, block: Block, slots: asyncio.Semaphore) -> None:
        try:
            log_with_context(
                logger,
                logging.DEBUG,
                f"Staging block {block.sequence_index} of '{object_name}'",
                block_id=block.block_id,
                offset=block.offset,
                size=block.size,
            )
            await self._store.stage_block(object_name, block.block_id, block.data)
        except StoreError as e:
            raise StagingError(object_name, block.sequence_index, block.block_id, str(e)) from e
        finally:
            slots.release()
