"""
Batch conversion API endpoints
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from fastapi.responses import FileResponse
from starlette.background import BackgroundTask

from fileconv.api.dependencies import build_options, get_service
from fileconv.core.errors import InvalidInput
from fileconv.models.jobs import BatchAccepted, BatchReport
from fileconv.services.conversion_service import ConversionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/batch-convert", status_code=status.HTTP_202_ACCEPTED, response_model=BatchAccepted)
async def batch_convert(
    files: Optional[List[UploadFile]] = File(None),
    target_format: Optional[str] = Form(None),
    ai_enhanced: bool = Form(False),
    quality: Optional[int] = Form(None),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    fit: Optional[str] = Form(None),
    service: ConversionService = Depends(get_service),
):
    """
    Upload several files converted to the same target format
    Every file is validated before any job is created
    """
    if not files:
        raise InvalidInput("No files uploaded", field="files")
    options = build_options(ai_enhanced=ai_enhanced, quality=quality, width=width, height=height, fit=fit)
    try:
        batch_id, job_ids = await service.submit_batch(
            [(upload, upload.filename) for upload in files], target_format, options
        )
    finally:
        for upload in files:
            await upload.close()

    return BatchAccepted(
        batch_id=batch_id,
        job_ids=job_ids,
        total_files=len(job_ids),
        message=f"Batch conversion started for {len(job_ids)} files",
    )


@router.get("/batch-status/{batch_id}", response_model=BatchReport)
async def get_batch_status(batch_id: str, service: ConversionService = Depends(get_service)):
    """
    Aggregate status of a batch, recomputed from its members
    """
    return service.batch_status(batch_id)


@router.get("/download-batch/{batch_id}")
async def download_batch(batch_id: str, service: ConversionService = Depends(get_service)):
    """
    Zip archive of every completed member of a batch
    """
    archive = service.build_batch_archive(batch_id)

    async def after_download():
        service.discard_archive(archive)

    return FileResponse(
        archive,
        media_type="application/zip",
        filename=f"batch_{batch_id[:8]}_converted.zip",
        background=BackgroundTask(after_download),
    )
