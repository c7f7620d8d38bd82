"""
Batch coordinator
Groups jobs under a batch id; the aggregate status is derived on every read
"""
import logging
import threading
import uuid
from datetime import datetime
from typing import Dict, Iterable, List, Optional

from fileconv.core.errors import BatchNotFound, JobNotFound
from fileconv.models.jobs import (
    BatchCounts,
    BatchJob,
    BatchReport,
    BatchStatus,
    ConversionJob,
    JobStatus,
    JobSummary,
)
from fileconv.services.job_store import JobStore

logger = logging.getLogger(__name__)


def aggregate_status(statuses: Iterable[JobStatus]) -> BatchStatus:
    """
    completed / failed only when every member agrees; processing while any
    member is still pending or processing; pending once all members are
    terminal with mixed outcomes
    """
    statuses = list(statuses)
    if not statuses:
        return BatchStatus.PENDING
    if all(s == JobStatus.COMPLETED for s in statuses):
        return BatchStatus.COMPLETED
    if all(s == JobStatus.FAILED for s in statuses):
        return BatchStatus.FAILED
    if any(not s.is_terminal for s in statuses):
        return BatchStatus.PROCESSING
    return BatchStatus.PENDING


class BatchCoordinator:
    def __init__(self, store: JobStore):
        self._store = store
        self._batches: Dict[str, BatchJob] = {}
        self._lock = threading.Lock()

    def create_batch(self, job_ids: List[str], target_format: str = "", batch_id: Optional[str] = None) -> str:
        if not job_ids:
            raise ValueError("A batch needs at least one job")
        batch = BatchJob(
            id=batch_id or str(uuid.uuid4()),
            member_job_ids=list(job_ids),
            target_format=target_format,
            created_at=datetime.now(),
        )
        with self._lock:
            if batch.id in self._batches:
                raise ValueError(f"Batch {batch.id} already exists")
            self._batches[batch.id] = batch
        logger.info(f"Created batch {batch.id} with {len(job_ids)} jobs")
        return batch.id

    def get_batch(self, batch_id: str) -> BatchJob:
        with self._lock:
            batch = self._batches.get(batch_id)
        if batch is None:
            raise BatchNotFound(batch_id)
        return batch.model_copy(deep=True)

    def members(self, batch_id: str) -> List[ConversionJob]:
        """Member jobs still in the store, in submission order"""
        jobs = []
        for job_id in self.get_batch(batch_id).member_job_ids:
            try:
                jobs.append(self._store.get(job_id))
            except JobNotFound:
                continue
        return jobs

    def completed_members(self, batch_id: str) -> List[ConversionJob]:
        return [job for job in self.members(batch_id) if job.status == JobStatus.COMPLETED]

    def status(self, batch_id: str) -> BatchReport:
        batch = self.get_batch(batch_id)
        jobs = self.members(batch_id)
        counts = BatchCounts(total=len(batch.member_job_ids))
        for job in jobs:
            setattr(counts, job.status.value, getattr(counts, job.status.value) + 1)
        # Evicted members count as failed: their outcome can no longer be served
        counts.failed += counts.total - len(jobs)

        statuses = [job.status for job in jobs] + [JobStatus.FAILED] * (counts.total - len(jobs))
        progress = round(100 * counts.completed / counts.total) if counts.total else 0
        return BatchReport(
            batch_id=batch_id,
            status=aggregate_status(statuses),
            progress=progress,
            summary=counts,
            jobs=[
                JobSummary(
                    id=job.id,
                    filename=job.original_filename,
                    status=job.status,
                    download_reference=job.download_reference,
                    error_message=job.error_message,
                )
                for job in jobs
            ],
        )

    def evict_orphans(self) -> int:
        """Drop batches whose members have all been evicted from the store"""
        with self._lock:
            batches = list(self._batches.values())
        evicted = 0
        for batch in batches:
            if self.members(batch.id):
                continue
            with self._lock:
                if self._batches.pop(batch.id, None) is not None:
                    evicted += 1
            logger.info(f"Evicted batch {batch.id}")
        return evicted

    def list_batches(self) -> List[BatchJob]:
        with self._lock:
            return [batch.model_copy(deep=True) for batch in self._batches.values()]
