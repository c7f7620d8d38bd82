"""
Download and cleanup manager
Serves completed artifacts and deletes them after download or expiry
"""
import asyncio
import logging
import zipfile
from datetime import datetime, timedelta
from pathlib import Path
from typing import Dict, Iterable, Optional, Set

from fileconv.core.errors import ArtifactGone, CleanupFailure, JobNotFound, NotReady
from fileconv.models.jobs import ConversionJob, JobStatus
from fileconv.services.file_storage import FileStorage
from fileconv.services.job_store import JobStore

logger = logging.getLogger(__name__)


class DownloadManager:
    """Artifact lifecycle: resolve, mark downloaded, delete, expire"""

    def __init__(
        self,
        store: JobStore,
        storage: FileStorage,
        cleanup_delay_seconds: float = 5.0,
        retention_seconds: int = 86400,
        record_ttl_seconds: int = 86400,
    ):
        self._store = store
        self._storage = storage
        self._cleanup_delay = cleanup_delay_seconds
        self._retention = timedelta(seconds=retention_seconds)
        self._record_ttl = timedelta(seconds=record_ttl_seconds)
        self._pending_deletes: Dict[str, asyncio.Task] = {}

    @property
    def retention(self) -> timedelta:
        return self._retention

    def downloadable_job(self, job_id: str) -> ConversionJob:
        """Completed job whose artifact is still on disk"""
        job = self._store.get(job_id)
        if job.status != JobStatus.COMPLETED:
            raise NotReady(job_id, job.status.value)
        if job.expires_at is not None and datetime.now() >= job.expires_at:
            raise ArtifactGone(job_id)
        if not self._storage.exists(job.output_path):
            raise ArtifactGone(job_id)
        return job

    def resolve_download(self, job_id: str) -> Path:
        return Path(self.downloadable_job(job_id).output_path)

    def mark_downloaded(self, job_id: str) -> Optional[asyncio.Task]:
        """
        Record a finished transfer and schedule deletion of the artifact
        Returns the deletion task, or None when deletion ran inline
        """
        try:
            job = self._store.get(job_id)
            self._store.update(
                job_id,
                download_count=job.download_count + 1,
                last_downloaded_at=datetime.now(),
            )
        except JobNotFound:
            return None

        if job_id in self._pending_deletes:
            return self._pending_deletes[job_id]
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            self.delete_artifact(job_id)
            return None
        task = asyncio.create_task(self._delete_later(job_id, self._cleanup_delay))
        self._pending_deletes[job_id] = task
        task.add_done_callback(lambda _: self._pending_deletes.pop(job_id, None))
        return task

    async def _delete_later(self, job_id: str, delay: float) -> None:
        await asyncio.sleep(delay)
        self.delete_artifact(job_id)

    def delete_artifact(self, job_id: str) -> bool:
        """Delete a job's output; deleting twice is a no-op"""
        try:
            job = self._store.get(job_id)
        except JobNotFound:
            return False
        if not job.output_path:
            return False
        try:
            deleted = self._storage.delete(job.output_path)
        except CleanupFailure as e:
            logger.warning(f"Cleanup failed for job {job_id}: {e.message}")
            return False
        try:
            self._store.update(job_id, output_path=None, download_reference=None)
        except JobNotFound:
            pass
        if deleted:
            logger.info(f"Deleted artifact for job {job_id}")
        return deleted

    def release_input(self, job: ConversionJob) -> bool:
        """Delete a job's uploaded input once conversion has finished or failed"""
        if not job.input_path:
            return False
        try:
            deleted = self._storage.delete(job.input_path)
        except CleanupFailure as e:
            logger.warning(f"Could not release input of job {job.id}: {e.message}")
            return False
        try:
            self._store.update(job.id, input_path=None)
        except JobNotFound:
            pass
        return deleted

    def sweep_expired(self, now: Optional[datetime] = None) -> Dict[str, int]:
        """
        Delete artifacts past their expiry and evict old terminal job records
        Non-terminal jobs are never touched
        """
        now = now or datetime.now()
        artifacts = 0
        records = 0
        for job in self._store.list_jobs():
            if not job.status.is_terminal:
                continue
            if job.output_path and job.expires_at is not None and job.expires_at <= now:
                if self.delete_artifact(job.id):
                    artifacts += 1
            finished_at = job.completed_at or job.created_at
            if now - finished_at >= self._record_ttl:
                self.delete_artifact(job.id)
                self.release_input(job)
                if self._store.delete(job.id):
                    records += 1
        if artifacts or records:
            logger.info(f"Cleanup sweep: {artifacts} artifacts expired, {records} job records evicted")
        return {"artifacts": artifacts, "records": records}

    def build_batch_archive(self, jobs: Iterable[ConversionJob], archive_name: str) -> Optional[Path]:
        """
        Zip the artifacts of completed jobs into tmp/
        Returns None when none of the jobs has an artifact left
        """
        archive_path = self._storage.tmp_dir / archive_name
        used: Set[str] = set()
        added = 0
        try:
            with zipfile.ZipFile(archive_path, "w", zipfile.ZIP_DEFLATED) as archive:
                for job in jobs:
                    if job.status != JobStatus.COMPLETED or not self._storage.exists(job.output_path):
                        continue
                    archive.write(job.output_path, arcname=self._unique_name(job.download_filename, used))
                    added += 1
        except BaseException:
            archive_path.unlink(missing_ok=True)
            raise
        if added == 0:
            archive_path.unlink(missing_ok=True)
            return None
        logger.info(f"Built batch archive {archive_name} with {added} files")
        return archive_path

    @staticmethod
    def _unique_name(name: str, used: Set[str]) -> str:
        candidate = name
        stem, dot, ext = name.rpartition(".")
        if not dot:
            stem, ext = name, ""
        counter = 2
        while candidate in used:
            candidate = f"{stem} ({counter}).{ext}" if ext else f"{stem} ({counter})"
            counter += 1
        used.add(candidate)
        return candidate

    async def drain(self) -> None:
        """Run every scheduled deletion now (shutdown)"""
        pending = list(self._pending_deletes.items())
        for job_id, task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*(task for _, task in pending), return_exceptions=True)
        for job_id, _ in pending:
            self.delete_artifact(job_id)
