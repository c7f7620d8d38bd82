"""
Conversion API endpoints
Single-file submission, status polling, download and job control
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import FileResponse, JSONResponse
from starlette.background import BackgroundTask

from fileconv.api.dependencies import build_options, get_service
from fileconv.core.errors import InvalidInput
from fileconv.models.jobs import ConversionAccepted, ConversionStats, JobStatusResponse
from fileconv.services.conversion_service import ConversionService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/convert", status_code=status.HTTP_202_ACCEPTED, response_model=ConversionAccepted)
async def convert_file(
    file: Optional[UploadFile] = File(None),
    target_format: Optional[str] = Form(None),
    ai_enhanced: bool = Form(False),
    quality: Optional[int] = Form(None),
    compression: Optional[int] = Form(None),
    width: Optional[int] = Form(None),
    height: Optional[int] = Form(None),
    fit: Optional[str] = Form(None),
    service: ConversionService = Depends(get_service),
):
    """
    Upload a file and start converting it
    Returns immediately with the job id; poll /status/{job_id}
    """
    if file is None or not file.filename:
        raise InvalidInput("No file uploaded", field="file")
    options = build_options(
        ai_enhanced=ai_enhanced,
        quality=quality,
        compression=compression,
        width=width,
        height=height,
        fit=fit,
    )
    try:
        job_id = await service.submit_conversion(file, file.filename, target_format, options)
    finally:
        await file.close()

    logger.info(f"Accepted {file.filename} -> {target_format} as job {job_id}")
    return ConversionAccepted(job_id=job_id, status="pending")


@router.get("/status/{job_id}", response_model=JobStatusResponse)
async def get_conversion_status(job_id: str, service: ConversionService = Depends(get_service)):
    """
    Get job status by job_id
    """
    return service.status(job_id)


@router.get("/download/{job_id}")
async def download_converted_file(job_id: str, service: ConversionService = Depends(get_service)):
    """
    Download the converted file of a completed job
    The artifact is deleted shortly after the transfer
    """
    job = service.open_download(job_id)

    async def after_download():
        service.finish_download(job_id)

    return FileResponse(
        job.output_path,
        media_type=job.mime_type or "application/octet-stream",
        filename=job.download_filename,
        background=BackgroundTask(after_download),
    )


@router.delete("/jobs/{job_id}")
async def cancel_job(job_id: str, service: ConversionService = Depends(get_service)):
    """
    Cancel a pending or processing job
    """
    job = service.cancel(job_id)
    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={
            "job_id": job.id,
            "status": job.status.value,
            "message": "Cancellation requested",
        },
    )


@router.get("/history")
async def get_conversion_history(
    limit: Optional[int] = Query(None, ge=1, le=100, description="Maximum number of jobs to return"),
    service: ConversionService = Depends(get_service),
):
    """
    Most recent jobs, newest first
    """
    jobs = service.history(limit)
    return {"jobs": jobs, "total": len(jobs)}


@router.get("/stats", response_model=ConversionStats)
async def get_conversion_stats(service: ConversionService = Depends(get_service)):
    """
    Job totals, success rate and per-pair breakdown
    """
    return service.stats()
