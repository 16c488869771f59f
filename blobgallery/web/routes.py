"""
Gallery API Endpoints

List, upload (single-shot or in blocks), download and delete blobs.
"""

from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import JSONResponse, StreamingResponse

from .. import __version__
from ..core.config_manager import GalleryConfig
from ..storage.exceptions import BlobNotFoundError
from ..upload.exceptions import NoFilesError
from ..upload.streams import FileInputStream
from .dependencies import get_config, get_gallery
from .service import GalleryService, IncomingFile


router = APIRouter(tags=["gallery"])


@router.get("/", summary="List Blobs")
async def index(gallery: GalleryService = Depends(get_gallery)) -> Dict:
    """
    Create the container if needed and list every blob in it.

    Returns:
        Container name and blob names, across all listing pages
    """
    names = await gallery.list_blobs()
    return {"container": gallery.store.container_name, "blobs": names, "count": len(names)}


@router.get("/health", summary="Health Check")
async def health(config: GalleryConfig = Depends(get_config)) -> Dict:
    return {
        "status": "healthy",
        "version": __version__,
        "backend": config.storage.backend,
        "container": config.storage.container_name,
    }


@router.get("/files/{blob_name:path}", summary="Download Blob")
async def get_file(blob_name: str, gallery: GalleryService = Depends(get_gallery)) -> StreamingResponse:
    """
    Stream a blob's content with its stored content settings.

    Raises:
        404 Not Found: Blob does not exist
    """
    download = await gallery.open_blob(blob_name)
    headers = download.info.properties.to_headers()
    media_type = headers.pop("Content-Type")
    headers["Content-Length"] = str(download.info.size)
    headers["ETag"] = f'"{download.info.etag}"'
    return StreamingResponse(download.chunks, media_type=media_type, headers=headers)


def _incoming(files: Optional[List[UploadFile]]) -> List[IncomingFile]:
    if not files:
        raise NoFilesError()
    return [
        IncomingFile(
            filename=upload.filename or "upload",
            stream=FileInputStream(upload.file),
            content_type=upload.content_type,
        )
        for upload in files
    ]


def _report_response(report) -> JSONResponse:
    status_code = status.HTTP_200_OK if report.all_succeeded else status.HTTP_207_MULTI_STATUS
    return JSONResponse(status_code=status_code, content=report.to_dict())


@router.post("/upload", summary="Upload Files")
async def upload(
    files: Optional[List[UploadFile]] = File(None),
    gallery: GalleryService = Depends(get_gallery),
) -> JSONResponse:
    """
    Upload each file in a single store call.

    Returns:
        200 OK when every file was stored, 207 Multi-Status otherwise, with
        a result per file
    """
    report = await gallery.upload_files(_incoming(files), in_blocks=False)
    return _report_response(report)


@router.post("/upload-blocks", summary="Upload Files In Blocks")
async def upload_blocks(
    files: Optional[List[UploadFile]] = File(None),
    gallery: GalleryService = Depends(get_gallery),
) -> JSONResponse:
    """
    Upload each file through block staging and a block list commit.

    Zero-length files follow the configured empty upload policy.

    Returns:
        200 OK when no file failed, 207 Multi-Status otherwise, with a
        result per file
    """
    report = await gallery.upload_files(_incoming(files), in_blocks=True)
    return _report_response(report)


@router.delete("/files/{blob_name:path}", summary="Delete Blob")
async def delete_file(blob_name: str, gallery: GalleryService = Depends(get_gallery)) -> Dict:
    """
    Delete one blob.

    Raises:
        404 Not Found: Blob does not exist
    """
    if not await gallery.delete_blob(blob_name):
        raise BlobNotFoundError(blob_name)
    return {"deleted": blob_name}


@router.delete("/files", summary="Delete All Blobs")
async def delete_all(gallery: GalleryService = Depends(get_gallery)) -> Dict:
    deleted = await gallery.delete_all()
    return {"deleted": deleted}
