"""
Multi-file upload batches.

Each file is an independent unit of work: one file failing never stops
the others, and the report lists the outcome of every file in input order.
"""

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from pydantic import BaseModel, Field

from ..storage.exceptions import StoreError
from .coordinator import UploadReceipt
from .exceptions import UploadError

logger = logging.getLogger(__name__)


class UploadStatus(str, Enum):
    """Outcome of one file in a batch."""
    UPLOADED = "uploaded"
    SKIPPED = "skipped"
    FAILED = "failed"


class FileUploadResult(BaseModel):
    """Per-file entry of a batch report."""

    filename: str
    object_name: Optional[str] = None
    status: UploadStatus
    size: int = 0
    block_count: int = 0
    error: Optional[Dict[str, Any]] = None


class BatchReport(BaseModel):
    """Results of a batch, one entry per input file."""

    results: List[FileUploadResult] = Field(default_factory=list)

    @property
    def succeeded(self) -> List[FileUploadResult]:
        return [r for r in self.results if r.status == UploadStatus.UPLOADED]

    @property
    def skipped(self) -> List[FileUploadResult]:
        return [r for r in self.results if r.status == UploadStatus.SKIPPED]

    @property
    def failed(self) -> List[FileUploadResult]:
        return [r for r in self.results if r.status == UploadStatus.FAILED]

    @property
    def all_succeeded(self) -> bool:
        return not self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "uploaded": len(self.succeeded),
            "skipped": len(self.skipped),
            "failed": len(self.failed),
            "results": [r.model_dump(mode="json") for r in self.results],
        }


@dataclass
class UploadJob:
    """One file to upload: its names and the coroutine factory doing the work."""

    filename: str
    object_name: str
    run: Callable[[], Awaitable[UploadReceipt]]


async def _run_job(job: UploadJob, slots: asyncio.Semaphore) -> FileUploadResult:
    async with slots:
        try:
            receipt = await job.run()
        except UploadError as e:
            logger.error(f"Upload of '{job.filename}' as '{job.object_name}' failed: {e}")
            return FileUploadResult(
                filename=job.filename,
                object_name=job.object_name,
                status=UploadStatus.FAILED,
                error=e.to_dict(),
            )
        except StoreError as e:
            logger.error(f"Upload of '{job.filename}' failed: {e}")
            error = e.to_dict()["error"]
            error["content_stored"] = False
            return FileUploadResult(
                filename=job.filename,
                object_name=job.object_name,
                status=UploadStatus.FAILED,
                error=error,
            )
        except Exception as e:
            logger.exception(f"Unexpected error uploading '{job.filename}'")
            return FileUploadResult(
                filename=job.filename,
                object_name=job.object_name,
                status=UploadStatus.FAILED,
                error={"code": "InternalError", "message": str(e), "content_stored": False, "details": {}},
            )

    return FileUploadResult(
        filename=job.filename,
        object_name=receipt.object_name,
        status=UploadStatus.UPLOADED if receipt.committed else UploadStatus.SKIPPED,
        size=receipt.size,
        block_count=receipt.block_count,
    )


async def run_batch(jobs: Sequence[UploadJob], max_concurrent_files: int = 1) -> BatchReport:
    """
    Run upload jobs with at most ``max_concurrent_files`` at a time.

    Returns:
        BatchReport with one result per job, in the order given
    """
    if max_concurrent_files < 1:
        raise ValueError(f"max_concurrent_files must be at least 1, got {max_concurrent_files}")

    slots = asyncio.Semaphore(max_concurrent_files)
    results = await asyncio.gather(*(_run_job(job, slots) for job in jobs))
    report = BatchReport(results=list(results))
    logger.info(
        f"Batch finished: {len(report.succeeded)} uploaded, "
        f"{len(report.skipped)} skipped, {len(report.failed)} failed"
    )
    return report
