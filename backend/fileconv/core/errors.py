"""
Conversion error taxonomy
Every error carries the HTTP status and machine code used by the API layer
"""
from typing import Any, Dict, Optional


class ConversionError(Exception):
    """Base class for all conversion engine errors"""

    code = "CONVERSION_ERROR"
    status_code = 500

    def __init__(self, message: str, *, field: Optional[str] = None):
        self.message = message
        self.field = field
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "field": self.field,
        }


class UnsupportedConversion(ConversionError):
    """Source/target pair is not in the capability matrix"""

    code = "UNSUPPORTED_CONVERSION"
    status_code = 400

    def __init__(self, source_format: str, target_format: str):
        self.source_format = source_format
        self.target_format = target_format
        super().__init__(
            f"Conversion from {(source_format or '?').upper()} to "
            f"{(target_format or '?').upper()} is not supported",
            field="target_format",
        )


class InvalidInput(ConversionError):
    """Missing file, missing target format, empty upload or bad option"""

    code = "INVALID_INPUT"
    status_code = 400


class PayloadTooLarge(InvalidInput):
    code = "PAYLOAD_TOO_LARGE"
    status_code = 413


class CodecFailure(ConversionError):
    """The underlying extraction/encoding capability failed"""

    code = "CODEC_FAILURE"
    status_code = 500


class TransientCodecFailure(CodecFailure):
    """Codec failure that may succeed on retry (I/O hiccups, timeouts)"""

    code = "TRANSIENT_CODEC_FAILURE"


class ExtractionUnavailable(CodecFailure):
    """No extraction capability is registered for a format"""

    code = "EXTRACTION_UNAVAILABLE"

    def __init__(self, fmt: str):
        self.format = fmt
        super().__init__(f"No text extraction available for {fmt.upper()} files")


class InvalidTransition(ConversionError):
    """A component attempted an illegal job state change (programming error)"""

    code = "INVALID_TRANSITION"
    status_code = 500

    def __init__(self, job_id: str, current: str, requested: str):
        self.job_id = job_id
        self.current = current
        self.requested = requested
        super().__init__(f"Job {job_id} cannot move from {current} to {requested}")


class JobNotFound(ConversionError):
    code = "JOB_NOT_FOUND"
    status_code = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job {job_id} not found", field="job_id")


class BatchNotFound(ConversionError):
    code = "BATCH_NOT_FOUND"
    status_code = 404

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch {batch_id} not found", field="batch_id")


class NotReady(ConversionError):
    """Artifact requested for a job that has not completed"""

    code = "JOB_NOT_COMPLETED"
    status_code = 409

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(
            f"Job {job_id} is not completed. Current status: {status}",
            field="job_id",
        )


class ArtifactGone(ConversionError):
    """Artifact was already cleaned up or expired"""

    code = "ARTIFACT_NOT_FOUND"
    status_code = 404

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Converted file for job {job_id} is no longer available", field="job_id")


class NoCompletedFiles(ConversionError):
    """Batch archive requested before any member completed"""

    code = "NO_COMPLETED_FILES"
    status_code = 404

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"No completed files available for batch {batch_id}", field="batch_id")


class JobCancelled(ConversionError):
    """Raised inside the runner when a job's cancellation token is set"""

    code = "JOB_CANCELLED"

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__("Conversion cancelled")


class JobAlreadyFinished(ConversionError):
    """Cancellation requested for a job that already reached a terminal state"""

    code = "JOB_ALREADY_FINISHED"
    status_code = 409

    def __init__(self, job_id: str, status: str):
        self.job_id = job_id
        self.status = status
        super().__init__(f"Job {job_id} already {status}", field="job_id")


class CapacityExceeded(ConversionError):
    """Admission queue is full"""

    code = "CAPACITY_EXCEEDED"
    status_code = 503


class CleanupFailure(ConversionError):
    """Best-effort file deletion failed; logged, never escalated"""

    code = "CLEANUP_FAILURE"
