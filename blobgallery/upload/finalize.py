"""
Post-commit finalization: content settings and metadata.
"""

import logging
from typing import Any, Dict, Optional

from ..core.config_manager import FinalizeMode
from ..storage.exceptions import StoreError
from ..storage.interface import ObjectStore
from ..storage.models import ObjectProperties
from .exceptions import MetadataError

logger = logging.getLogger(__name__)


def commit_settings(
    mode: FinalizeMode,
    properties: Optional[ObjectProperties],
    metadata: Optional[Dict[str, str]],
) -> Dict[str, Any]:
    """Keyword arguments to pass with the commit call for the given mode."""
    if FinalizeMode(mode) == FinalizeMode.ON_COMMIT:
        return {"properties": properties, "metadata": metadata}
    return {}


async def finalize_object(
    store: ObjectStore,
    object_name: str,
    properties: Optional[ObjectProperties],
    metadata: Optional[Dict[str, str]],
) -> None:
    """
    Set properties, then metadata, on a committed object.

    Two separate store calls; whichever fails is reported through
    ``MetadataError.stage``. Nothing is rolled back: the content is already
    committed and the call can simply be repeated.

    Raises:
        MetadataError: If either update fails
    """
    if properties is not None:
        try:
            await store.set_properties(object_name, properties)
        except StoreError as e:
            logger.warning(f"Setting properties on '{object_name}' failed: {e}")
            raise MetadataError(object_name, "properties", str(e)) from e

    if metadata is not None:
        try:
            await store.set_metadata(object_name, metadata)
        except StoreError as e:
            logger.warning(f"Setting metadata on '{object_name}' failed: {e}")
            raise MetadataError(object_name, "metadata", str(e)) from e

    logger.debug(f"Finalized '{object_name}'")
