"""
Conversion runner
Executes one job on a worker thread: route, convert, record the terminal state
"""
import logging
import threading
from datetime import datetime
from typing import Optional

from fileconv.core.errors import (
    CleanupFailure,
    ConversionError,
    InvalidTransition,
    JobCancelled,
    JobNotFound,
    TransientCodecFailure,
)
from fileconv.models.conversion import ConversionOutput
from fileconv.models.jobs import ConversionJob, JobStatus
from fileconv.services.conversion_router import ConversionRouter
from fileconv.services.converters.base import BaseConverter
from fileconv.services.download_manager import DownloadManager
from fileconv.services.file_storage import FileStorage
from fileconv.services.format_registry import FormatRegistry
from fileconv.services.job_store import JobStore

logger = logging.getLogger(__name__)


class ConversionRunner:
    """Owns a job from pending to its terminal state"""

    def __init__(
        self,
        store: JobStore,
        router: ConversionRouter,
        storage: FileStorage,
        downloads: DownloadManager,
        max_retries: int = 2,
        retry_backoff_seconds: float = 0.5,
        download_reference_template: str = "/download/{job_id}",
    ):
        self._store = store
        self._router = router
        self._storage = storage
        self._downloads = downloads
        self._max_retries = max_retries
        self._backoff = retry_backoff_seconds
        self._reference_template = download_reference_template

    def run(self, job_id: str, cancel_token: Optional[threading.Event] = None) -> ConversionJob:
        """Blocking; called from the scheduler's thread pool"""
        token = cancel_token or threading.Event()
        try:
            job = self._store.transition(job_id, JobStatus.PROCESSING)
        except InvalidTransition:
            # Failed by a timeout or cancellation before a worker picked it up
            logger.info(f"Job {job_id} settled before it started; skipping")
            return self._store.get(job_id)
        logger.info(f"Processing job {job_id}: {job.original_filename} -> {job.target_format}")

        output: Optional[ConversionOutput] = None
        try:
            if token.is_set():
                raise JobCancelled(job_id)
            converter = self._router.route(job.source_format, job.target_format)
            output = self._convert_with_retries(converter, job, token)
            if token.is_set():
                raise JobCancelled(job_id)
        except ConversionError as e:
            if output is not None:
                self._discard(output)
            logger.warning(f"Job {job_id} failed: {e.message}")
            self._settle(job_id, JobStatus.FAILED, error_message=e.message)
        except Exception as e:
            logger.error(f"Unexpected error in job {job_id}: {e}", exc_info=True)
            self._settle(job_id, JobStatus.FAILED, error_message=f"Unexpected error: {e}")
        else:
            now = datetime.now()
            settled = self._settle(
                job_id,
                JobStatus.COMPLETED,
                output_path=str(output.output_path),
                output_size_bytes=output.output_size_bytes,
                mime_type=FormatRegistry.mime_type(job.target_format),
                download_reference=self._reference_template.format(job_id=job_id),
                expires_at=now + self._downloads.retention,
            )
            if settled:
                logger.info(f"Job {job_id} completed: {output.output_size_bytes} bytes")
            else:
                # Lost the race against a timeout or cancellation
                self._discard(output)
        finally:
            self._downloads.release_input(job)

        return self._store.get(job_id)

    def fail(self, job_id: str, message: str) -> bool:
        """Force a non-terminal job to failed and release its input"""
        settled = self._settle(job_id, JobStatus.FAILED, error_message=message)
        try:
            self._downloads.release_input(self._store.get(job_id))
        except JobNotFound:
            pass
        return settled

    def _convert_with_retries(
        self, converter: BaseConverter, job: ConversionJob, token: threading.Event
    ) -> ConversionOutput:
        attempt = 0
        while True:
            try:
                return converter.convert(
                    job.input_path,
                    job.target_format,
                    job.options,
                    self._storage.output_path_for(job.id, job.target_format),
                    source_format=job.source_format,
                    display_name=job.original_filename,
                )
            except TransientCodecFailure as e:
                if attempt >= self._max_retries:
                    raise
                attempt += 1
                delay = self._backoff * attempt
                logger.warning(
                    f"Transient failure in job {job.id} ({e.message}); "
                    f"retry {attempt}/{self._max_retries} in {delay}s"
                )
                # Wakes early on cancellation
                if token.wait(delay):
                    raise JobCancelled(job.id) from e

    def _settle(self, job_id: str, status: JobStatus, **fields) -> bool:
        """Move a job to a terminal state; False if another path settled it first"""
        try:
            if self._store.get(job_id).status == JobStatus.PENDING:
                self._store.transition(job_id, JobStatus.PROCESSING)
            self._store.transition(job_id, status, **fields)
            return True
        except InvalidTransition as e:
            logger.info(f"Job {job_id} already settled, ignoring {status.value}: {e.message}")
            return False
        except JobNotFound:
            logger.info(f"Job {job_id} was evicted before it settled")
            return False

    def _discard(self, output: ConversionOutput) -> None:
        try:
            self._storage.delete(output.output_path)
        except CleanupFailure as e:
            logger.warning(f"Could not discard output {output.output_path}: {e.message}")
