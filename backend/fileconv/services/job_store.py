"""
Job store and state machine
Single source of truth for ConversionJob records
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Dict, List, Optional, Protocol

from fileconv.core.errors import InvalidTransition, JobNotFound
from fileconv.models.jobs import ConversionJob, JobSpec, JobStatus

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    JobStatus.PENDING: {JobStatus.PROCESSING},
    JobStatus.PROCESSING: {JobStatus.COMPLETED, JobStatus.FAILED},
    JobStatus.COMPLETED: set(),
    JobStatus.FAILED: set(),
}

# Fields owned by the state machine; never written through update()
_PROTECTED_FIELDS = {"id", "status", "started_at", "completed_at", "created_at"}


class JobStore(Protocol):
    def create(self, spec: JobSpec) -> str:
        ...

    def get(self, job_id: str) -> ConversionJob:
        ...

    def transition(self, job_id: str, new_status: JobStatus, **fields) -> ConversionJob:
        ...

    def update(self, job_id: str, **fields) -> ConversionJob:
        ...

    def list_jobs(self, batch_id: Optional[str] = None) -> List[ConversionJob]:
        ...

    def delete(self, job_id: str) -> bool:
        ...


class InMemoryJobStore:
    """Process-local store; every record has its own lock"""

    def __init__(self):
        self._jobs: Dict[str, ConversionJob] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._index_lock = threading.Lock()

    def create(self, spec: JobSpec) -> str:
        job_id = spec.id or str(uuid.uuid4())
        job = ConversionJob(
            id=job_id,
            batch_id=spec.batch_id,
            original_filename=spec.original_filename,
            source_format=spec.source_format,
            target_format=spec.target_format,
            file_size_bytes=spec.file_size_bytes,
            options=spec.options,
            input_path=spec.input_path,
            status=JobStatus.PENDING,
            created_at=datetime.now(),
        )
        with self._index_lock:
            if job_id in self._jobs:
                raise ValueError(f"Job {job_id} already exists")
            self._jobs[job_id] = job
            self._locks[job_id] = threading.Lock()
        logger.info(f"Created job {job_id}: {spec.source_format} -> {spec.target_format}")
        return job_id

    def get(self, job_id: str) -> ConversionJob:
        with self._lock_for(job_id):
            return self._record(job_id).model_copy(deep=True)

    def transition(self, job_id: str, new_status: JobStatus, **fields) -> ConversionJob:
        new_status = JobStatus(new_status)
        with self._lock_for(job_id):
            job = self._record(job_id)
            if new_status not in ALLOWED_TRANSITIONS[job.status]:
                raise InvalidTransition(job_id, job.status.value, new_status.value)

            now = datetime.now()
            changes = self._check_fields(fields)
            if new_status == JobStatus.PROCESSING:
                changes["started_at"] = now
            else:
                changes["completed_at"] = now
            if new_status == JobStatus.FAILED:
                changes["error_message"] = changes.get("error_message") or "Conversion failed"
            else:
                changes.pop("error_message", None)

            updated = job.model_copy(update={**changes, "status": new_status})
            self._jobs[job_id] = updated
            logger.info(f"Job {job_id}: {job.status.value} -> {new_status.value}")
            return updated.model_copy(deep=True)

    def update(self, job_id: str, **fields) -> ConversionJob:
        """Bookkeeping changes that do not touch the state machine"""
        with self._lock_for(job_id):
            job = self._record(job_id)
            updated = job.model_copy(update=self._check_fields(fields))
            self._jobs[job_id] = updated
            return updated.model_copy(deep=True)

    def list_jobs(self, batch_id: Optional[str] = None) -> List[ConversionJob]:
        with self._index_lock:
            job_ids = list(self._jobs)
        jobs = []
        for job_id in job_ids:
            try:
                job = self.get(job_id)
            except JobNotFound:
                continue
            if batch_id is None or job.batch_id == batch_id:
                jobs.append(job)
        return jobs

    def delete(self, job_id: str) -> bool:
        with self._index_lock:
            lock = self._locks.get(job_id)
        if lock is None:
            return False
        with lock:
            with self._index_lock:
                removed = self._jobs.pop(job_id, None) is not None
                self._locks.pop(job_id, None)
        if removed:
            logger.info(f"Removed job record {job_id}")
        return removed

    def _lock_for(self, job_id: str) -> threading.Lock:
        with self._index_lock:
            lock = self._locks.get(job_id)
        if lock is None:
            raise JobNotFound(job_id)
        return lock

    def _record(self, job_id: str) -> ConversionJob:
        job = self._jobs.get(job_id)
        if job is None:
            # Deleted while the caller waited on the lock
            raise JobNotFound(job_id)
        return job

    @staticmethod
    def _check_fields(fields: Dict) -> Dict:
        protected = _PROTECTED_FIELDS.intersection(fields)
        if protected:
            raise ValueError(f"Fields managed by the job state machine: {', '.join(sorted(protected))}")
        unknown = set(fields) - set(ConversionJob.model_fields)
        if unknown:
            raise ValueError(f"Unknown job fields: {', '.join(sorted(unknown))}")
        return dict(fields)
