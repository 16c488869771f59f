"""
Application factory for the BlobGallery web app.
"""

import os
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from .. import __version__
from ..core.config_manager import CONFIG_FILE_ENV, ConfigManager, GalleryConfig
from ..core.logging_config import setup_logging_from_config
from ..storage.factory import create_object_store
from ..storage.interface import ObjectStore
from .error_handlers import register_exception_handlers
from .middleware import CorrelationMiddleware
from .routes import router
from .service import GalleryService

logger = logging.getLogger(__name__)


def create_app(config: Optional[GalleryConfig] = None, store: Optional[ObjectStore] = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        config: Loaded configuration. When omitted it is loaded from the file
            named by BLOBGALLERY_CONFIG_FILE and the environment, and logging
            is configured from it
        store: Object store to use instead of the configured backend

    Returns:
        Configured FastAPI application
    """
    if config is None:
        config = ConfigManager().load(os.getenv(CONFIG_FILE_ENV))
        setup_logging_from_config(config.logging)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        object_store = store or create_object_store(config.storage)
        app.state.store = object_store
        app.state.gallery = GalleryService(object_store, config.upload)
        logger.info(
            f"BlobGallery started (backend={config.storage.backend}, "
            f"container={config.storage.container_name})"
        )
        try:
            yield
        finally:
            await object_store.close()
            logger.info("BlobGallery stopped")

    app = FastAPI(
        title="BlobGallery",
        description="Blob storage gallery: list, upload, download and delete blobs",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.config = config

    app.add_middleware(CorrelationMiddleware)
    register_exception_handlers(app)
    app.include_router(router)

    return app
