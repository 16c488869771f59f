"""
Request-scoped accessors for objects built at application startup.
"""

from fastapi import Request

from ..core.config_manager import GalleryConfig
from .service import GalleryService


def get_gallery(request: Request) -> GalleryService:
    return request.app.state.gallery


def get_config(request: Request) -> GalleryConfig:
    return request.app.state.config
