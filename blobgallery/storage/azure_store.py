"""
Azure Blob Object Store

Object store backed by an Azure Blob Storage container (or a compatible
emulator) through the azure-storage-blob asyncio client.
"""

import logging
from contextlib import contextmanager
from typing import AsyncIterator, BinaryIO, Dict, Iterator, List, Optional, Union

from azure.core.exceptions import (
    AzureError,
    HttpResponseError,
    ResourceExistsError,
    ResourceNotFoundError,
    ServiceRequestError,
    ServiceResponseError,
)
from azure.storage.blob import BlobBlock, ContentSettings
from azure.storage.blob.aio import ContainerClient

from .exceptions import (
    BlobNotFoundError,
    ContainerNotFoundError,
    InvalidBlockIdError,
    StoreError,
    StoreUnavailableError,
)
from .interface import ObjectStore
from .models import BlobDownload, BlobInfo, BlobPage, ObjectProperties

logger = logging.getLogger(__name__)

_BLOCK_ERROR_CODES = {"InvalidBlockId", "InvalidBlockList", "InvalidBlobOrBlock"}


def build_connection_string(
    account_name: str,
    account_key: str,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> str:
    """
    Build a storage connection string from account settings.

    When a host is given the blob endpoint points at
    ``http://{host}:{port}/{account_name}`` (local emulators and edge
    deployments); otherwise the public endpoint for the account is used.
    """
    blob_endpoint = ""
    if host:
        authority = f"{host}:{port}" if port else host
        blob_endpoint = f"BlobEndpoint=http://{authority}/{account_name};"
    return (
        f"DefaultEndpointsProtocol=http;AccountName={account_name};"
        f"AccountKey={account_key};{blob_endpoint}"
    )


def _content_settings(properties: Optional[ObjectProperties]) -> Optional[ContentSettings]:
    if properties is None:
        return None
    return ContentSettings(
        content_type=properties.content_type,
        cache_control=properties.cache_control,
        content_disposition=properties.content_disposition,
        content_encoding=properties.content_encoding,
        content_language=properties.content_language,
    )


def _blob_info(name: str, props) -> BlobInfo:
    settings = props.content_settings
    return BlobInfo(
        name=name,
        size=props.size or 0,
        etag=(props.etag or "").strip('"'),
        last_modified=props.last_modified,
        properties=ObjectProperties(
            content_type=settings.content_type or "application/octet-stream",
            cache_control=settings.cache_control,
            content_disposition=settings.content_disposition,
            content_encoding=settings.content_encoding,
            content_language=settings.content_language,
        ),
        metadata=dict(props.metadata or {}),
    )


class AzureBlobObjectStore(ObjectStore):
    """Object store bound to one Azure Blob Storage container."""

    def __init__(self, connection_string: str, container_name: str):
        self.container_name = container_name
        self._client = ContainerClient.from_connection_string(
            connection_string, container_name=container_name
        )

    @contextmanager
    def _translate_errors(self, blob_name: Optional[str] = None, block_id: Optional[str] = None) -> Iterator[None]:
        """Map azure-core exceptions onto StoreError types."""
        try:
            yield
        except ResourceNotFoundError as e:
            if e.error_code == "ContainerNotFound" or blob_name is None:
                raise ContainerNotFoundError(self.container_name) from e
            raise BlobNotFoundError(blob_name) from e
        except HttpResponseError as e:
            if e.error_code in _BLOCK_ERROR_CODES:
                raise InvalidBlockIdError(blob_name or "", block_id or "", str(e.error_code)) from e
            if e.status_code is not None and e.status_code >= 500:
                raise StoreUnavailableError(e.message or str(e), details={"status_code": e.status_code}) from e
            raise StoreError(
                e.message or str(e),
                error_code=str(e.error_code or "StoreError"),
                details={"status_code": e.status_code, "blob_name": blob_name},
            ) from e
        except (ServiceRequestError, ServiceResponseError) as e:
            raise StoreUnavailableError(str(e)) from e
        except AzureError as e:
            raise StoreError(str(e)) from e

    async def create_container_if_not_exists(self) -> bool:
        with self._translate_errors():
            try:
                await self._client.create_container()
            except ResourceExistsError:
                return False
        logger.info(f"Created container '{self.container_name}'")
        return True

    async def list_blob_page(
        self,
        continuation_token: Optional[str] = None,
        page_size: Optional[int] = None,
    ) -> BlobPage:
        with self._translate_errors():
            pages = self._client.list_blobs(results_per_page=page_size).by_page(
                continuation_token=continuation_token
            )
            async for page in pages:
                names = [blob.name async for blob in page]
                return BlobPage(names=names, continuation_token=pages.continuation_token or None)
        return BlobPage()

    async def upload_blob(
        self,
        name: str,
        data: Union[bytes, BinaryIO],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            await blob.upload_blob(
                data,
                overwrite=True,
                content_settings=_content_settings(properties),
                metadata=metadata,
            )
        return await self.get_blob_info(name)

    async def stage_block(self, name: str, block_id: str, data: bytes) -> None:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name, block_id):
            await blob.stage_block(block_id=block_id, data=data, length=len(data))

    async def commit_block_list(
        self,
        name: str,
        block_ids: List[str],
        properties: Optional[ObjectProperties] = None,
        metadata: Optional[Dict[str, str]] = None,
    ) -> BlobInfo:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            await blob.commit_block_list(
                [BlobBlock(block_id=block_id) for block_id in block_ids],
                content_settings=_content_settings(properties),
                metadata=metadata,
            )
        return await self.get_blob_info(name)

    async def set_properties(self, name: str, properties: ObjectProperties) -> None:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            await blob.set_http_headers(content_settings=_content_settings(properties))

    async def set_metadata(self, name: str, metadata: Dict[str, str]) -> None:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            await blob.set_blob_metadata(metadata=metadata)

    async def get_blob_info(self, name: str) -> BlobInfo:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            props = await blob.get_blob_properties()
        return _blob_info(name, props)

    async def download_blob(self, name: str) -> BlobDownload:
        blob = self._client.get_blob_client(name)
        with self._translate_errors(name):
            downloader = await blob.download_blob()
        info = _blob_info(name, downloader.properties)

        async def chunks() -> AsyncIterator[bytes]:
            with self._translate_errors(name):
                async for chunk in downloader.chunks():
                    yield chunk

        return BlobDownload(info=info, chunks=chunks())

    async def delete_blob_if_exists(self, name: str) -> bool:
        blob = self._client.get_blob_client(name)
        try:
            with self._translate_errors(name):
                await blob.delete_blob()
        except BlobNotFoundError:
            return False
        return True

    async def close(self) -> None:
        await self._client.close()
