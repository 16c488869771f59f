"""
Single-shot upload: the whole stream in one store call.
"""

import asyncio
import logging
from typing import Dict, Optional

from ..core.config_manager import FinalizeMode
from ..storage.exceptions import StoreError
from ..storage.interface import ObjectStore
from ..storage.models import ObjectProperties
from .coordinator import UploadReceipt
from .exceptions import CommitError, StreamReadError
from .finalize import commit_settings, finalize_object
from .streams import InputStream

logger = logging.getLogger(__name__)


async def upload_single_shot(
    store: ObjectStore,
    stream: InputStream,
    object_name: str,
    properties: Optional[ObjectProperties] = None,
    metadata: Optional[Dict[str, str]] = None,
    finalize_mode: FinalizeMode = FinalizeMode.SEPARATE,
) -> UploadReceipt:
    """
    Upload a stream in one call, then attach properties and metadata.

    Raises:
        StreamReadError: The stream could not be read
        CommitError: The store rejected the upload
        MetadataError: Content stored, properties or metadata missing
    """
    size = stream.length()
    try:
        data = await asyncio.to_thread(stream.read_exact, 0, size)
    except (OSError, EOFError, ValueError) as e:
        raise StreamReadError(0, size, str(e)) from e

    try:
        await store.upload_blob(
            object_name,
            data,
            **commit_settings(finalize_mode, properties, metadata),
        )
    except StoreError as e:
        logger.error(f"Upload of '{object_name}' failed: {e}")
        raise CommitError(object_name, None, str(e)) from e

    logger.info(f"Uploaded '{object_name}' ({size} bytes) in a single call")

    if FinalizeMode(finalize_mode) == FinalizeMode.SEPARATE:
        await finalize_object(store, object_name, properties, metadata)

    return UploadReceipt(object_name=object_name, size=size)
