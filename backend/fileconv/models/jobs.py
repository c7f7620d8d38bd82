"""
Job and batch models
"""
from pydantic import BaseModel, Field
from typing import Dict, List, Optional
from enum import Enum
from datetime import datetime
from pathlib import PureWindowsPath

from fileconv.models.conversion import ConversionOptions


class JobStatus(str, Enum):
    """Job status enumeration"""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


# Progress reported to pollers for each status
STATUS_PROGRESS = {
    JobStatus.PENDING: 10,
    JobStatus.PROCESSING: 50,
    JobStatus.COMPLETED: 100,
    JobStatus.FAILED: 0,
}


class BatchStatus(str, Enum):
    """Aggregate status of a batch, derived from its members
    Mixed terminal outcomes report pending: neither completed nor failed
    """
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class JobSpec(BaseModel):
    """Everything needed to register a new job"""
    id: Optional[str] = None
    batch_id: Optional[str] = None
    original_filename: str
    source_format: str
    target_format: str
    file_size_bytes: int = Field(..., ge=0)
    input_path: str
    options: ConversionOptions = Field(default_factory=ConversionOptions)


class ConversionJob(BaseModel):
    """One unit of conversion work"""
    id: str
    batch_id: Optional[str] = None
    original_filename: str
    source_format: str
    target_format: str
    file_size_bytes: int
    status: JobStatus = JobStatus.PENDING
    options: ConversionOptions = Field(default_factory=ConversionOptions)
    input_path: Optional[str] = None
    output_path: Optional[str] = None
    output_size_bytes: Optional[int] = None
    mime_type: Optional[str] = None
    download_reference: Optional[str] = None
    error_message: Optional[str] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    download_count: int = 0
    last_downloaded_at: Optional[datetime] = None

    @property
    def progress(self) -> int:
        return STATUS_PROGRESS[self.status]

    @property
    def processing_time_ms(self) -> Optional[int]:
        if self.started_at is None or self.completed_at is None:
            return None
        return int((self.completed_at - self.started_at).total_seconds() * 1000)

    @property
    def download_filename(self) -> str:
        # Client-supplied names may carry directories (either separator style)
        name = PureWindowsPath(self.original_filename).name
        stem = name.rsplit(".", 1)[0] if "." in name else name
        return f"{stem or 'file'}_converted.{self.target_format}"


class BatchJob(BaseModel):
    """A named group of jobs submitted together"""
    id: str
    member_job_ids: List[str]
    target_format: str
    created_at: datetime


class JobSummary(BaseModel):
    """Per-member line of a batch status report"""
    id: str
    filename: str
    status: JobStatus
    download_reference: Optional[str] = None
    error_message: Optional[str] = None


class BatchCounts(BaseModel):
    total: int = 0
    pending: int = 0
    processing: int = 0
    completed: int = 0
    failed: int = 0


class BatchReport(BaseModel):
    """Aggregate view of a batch, recomputed on every read"""
    batch_id: str
    status: BatchStatus
    progress: int
    summary: BatchCounts
    jobs: List[JobSummary]


class ConversionAccepted(BaseModel):
    job_id: str
    status: JobStatus
    message: str = "Conversion started successfully"


class BatchAccepted(BaseModel):
    batch_id: str
    job_ids: List[str]
    total_files: int
    message: str


class JobStatusResponse(BaseModel):
    """Status payload served to pollers"""
    id: str
    status: JobStatus
    progress: int
    original_filename: str
    source_format: str
    target_format: str
    batch_id: Optional[str] = None
    download_reference: Optional[str] = None
    error_message: Optional[str] = None
    output_size_bytes: Optional[int] = None
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    processing_time_ms: Optional[int] = None

    @classmethod
    def from_job(cls, job: ConversionJob) -> "JobStatusResponse":
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            original_filename=job.original_filename,
            source_format=job.source_format,
            target_format=job.target_format,
            batch_id=job.batch_id,
            download_reference=job.download_reference,
            error_message=job.error_message,
            output_size_bytes=job.output_size_bytes,
            created_at=job.created_at,
            started_at=job.started_at,
            completed_at=job.completed_at,
            processing_time_ms=job.processing_time_ms,
        )


class ConversionStats(BaseModel):
    total: int
    pending: int
    processing: int
    completed: int
    failed: int
    success_rate: float
    format_breakdown: Dict[str, int]
    supported_formats: int
