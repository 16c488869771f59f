"""
Gallery Service

Operations behind the gallery endpoints and CLI commands: container
setup, listing, uploads, downloads and deletes against one object store.
"""

import asyncio
import logging
import mimetypes
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ..core.config_manager import UploadConfig
from ..storage.interface import ObjectStore
from ..storage.models import BlobDownload, ObjectProperties
from ..upload.batch import BatchReport, UploadJob, run_batch
from ..upload.coordinator import BlockUploadCoordinator
from ..upload.naming import random_blob_name
from ..upload.single import upload_single_shot
from ..upload.streams import InputStream

logger = logging.getLogger(__name__)

FILENAME_METADATA_KEY = "fileName"


@dataclass
class IncomingFile:
    """A file handed to the gallery for upload."""

    filename: str
    stream: InputStream
    content_type: Optional[str] = None


class GalleryService:
    """
    Gallery operations bound to one store and one upload configuration.

    Built once per application (or CLI invocation) from immutable
    configuration; holds no request state.
    """

    def __init__(self, store: ObjectStore, upload_config: UploadConfig):
        self._store = store
        self._upload_config = upload_config
        self._coordinator = BlockUploadCoordinator.from_config(store, upload_config)
        self._container_lock = asyncio.Lock()
        self._container_ready = False

    @property
    def store(self) -> ObjectStore:
        return self._store

    @property
    def coordinator(self) -> BlockUploadCoordinator:
        return self._coordinator

    async def ensure_container(self) -> bool:
        """Create the container if needed; True if it was created now."""
        async with self._container_lock:
            created = await self._store.create_container_if_not_exists()
            self._container_ready = True
            return created

    async def _ensure_container_once(self) -> None:
        if not self._container_ready:
            await self.ensure_container()

    async def list_blobs(self) -> List[str]:
        """Ensure the container exists and list every blob name in it."""
        await self.ensure_container()
        return await self._store.list_blob_names()

    def properties_for(self, filename: str, content_type: Optional[str] = None) -> ObjectProperties:
        """Content settings for a new object, from the upload and the configuration."""
        guessed, _ = mimetypes.guess_type(filename or "")
        config = self._upload_config
        return ObjectProperties(
            content_type=content_type or guessed or config.default_content_type,
            cache_control=config.cache_control,
            content_disposition=config.content_disposition,
            content_encoding=config.content_encoding,
            content_language=config.content_language,
        )

    def metadata_for(self, filename: str) -> Dict[str, str]:
        return {FILENAME_METADATA_KEY: filename}

    async def upload_files(self, files: Sequence[IncomingFile], in_blocks: bool = True) -> BatchReport:
        """
        Upload each file under a fresh random name.

        Args:
            files: Files to upload
            in_blocks: Use the block upload protocol; otherwise one call per file

        Returns:
            BatchReport with one result per file
        """
        await self._ensure_container_once()

        jobs = []
        for incoming in files:
            object_name = random_blob_name(incoming.filename)
            properties = self.properties_for(incoming.filename, incoming.content_type)
            metadata = self.metadata_for(incoming.filename)
            if in_blocks:
                run = self._block_upload(incoming.stream, object_name, properties, metadata)
            else:
                run = self._single_upload(incoming.stream, object_name, properties, metadata)
            jobs.append(UploadJob(filename=incoming.filename, object_name=object_name, run=run))

        mode = "blocks" if in_blocks else "single-shot"
        logger.info(f"Uploading {len(jobs)} file(s) ({mode})")
        return await run_batch(jobs, max_concurrent_files=self._upload_config.max_concurrent_files)

    def _block_upload(self, stream, object_name, properties, metadata):
        def run():
            return self._coordinator.upload_in_blocks(stream, object_name, properties, metadata)
        return run

    def _single_upload(self, stream, object_name, properties, metadata):
        def run():
            return upload_single_shot(
                self._store,
                stream,
                object_name,
                properties,
                metadata,
                finalize_mode=self._upload_config.finalize_mode,
            )
        return run

    async def open_blob(self, name: str) -> BlobDownload:
        return await self._store.download_blob(name)

    async def delete_blob(self, name: str) -> bool:
        deleted = await self._store.delete_blob_if_exists(name)
        if deleted:
            logger.info(f"Deleted '{name}'")
        return deleted

    async def delete_all(self) -> int:
        """Delete every blob in the container; returns how many were deleted."""
        names = await self._store.list_blob_names()
        deleted = 0
        for name in names:
            if await self._store.delete_blob_if_exists(name):
                deleted += 1
        logger.info(f"Deleted {deleted} blob(s) from '{self._store.container_name}'")
        return deleted
