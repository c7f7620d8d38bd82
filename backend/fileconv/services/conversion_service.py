"""
Conversion service
Wires registry, router, store, scheduler, batches and downloads together
for the HTTP layer
"""
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

from fileconv.core.config import Settings, settings as default_settings
from fileconv.core.errors import (
    CleanupFailure,
    InvalidInput,
    JobAlreadyFinished,
    JobNotFound,
    NoCompletedFiles,
)
from fileconv.models.conversion import ConversionOptions
from fileconv.models.formats import Format, extension_of
from fileconv.models.jobs import (
    BatchReport,
    ConversionJob,
    ConversionStats,
    JobSpec,
    JobStatus,
    JobStatusResponse,
)
from fileconv.services.batch_coordinator import BatchCoordinator
from fileconv.services.codec_provider import CodecProvider
from fileconv.services.conversion_router import build_router
from fileconv.services.conversion_runner import ConversionRunner
from fileconv.services.download_manager import DownloadManager
from fileconv.services.file_storage import FileStorage
from fileconv.services.format_registry import FALLBACK_TARGETS, FormatRegistry, format_registry
from fileconv.services.job_store import InMemoryJobStore, JobStore
from fileconv.services.local_codecs import LocalCodecProvider
from fileconv.services.scheduler import JobScheduler

logger = logging.getLogger(__name__)

# (upload, original filename); upload is anything with an async read(size)
UploadItem = Tuple[Any, str]


class ConversionService:
    """Entry point used by the API routers"""

    def __init__(
        self,
        settings: Settings,
        codec: Optional[CodecProvider] = None,
        store: Optional[JobStore] = None,
        registry: Optional[FormatRegistry] = None,
    ):
        self.settings = settings
        self.registry = registry or format_registry
        if codec is None:
            codec = LocalCodecProvider(
                default_quality=settings.DEFAULT_IMAGE_QUALITY,
                default_png_compression=settings.DEFAULT_PNG_COMPRESSION,
            )
        self.storage = FileStorage(settings.STORAGE_DIR)
        self.router = build_router(
            codec,
            registry=self.registry,
            scratch_dir=self.storage.tmp_dir,
            fail_soft=settings.EXTRACTION_FAIL_SOFT,
        )
        self.store = store or InMemoryJobStore()
        self.downloads = DownloadManager(
            self.store,
            self.storage,
            cleanup_delay_seconds=settings.DOWNLOAD_CLEANUP_DELAY_SECONDS,
            retention_seconds=settings.ARTIFACT_RETENTION_SECONDS,
            record_ttl_seconds=settings.JOB_RECORD_TTL_SECONDS,
        )
        self.runner = ConversionRunner(
            self.store,
            self.router,
            self.storage,
            self.downloads,
            max_retries=settings.CODEC_MAX_RETRIES,
            retry_backoff_seconds=settings.CODEC_RETRY_BACKOFF_SECONDS,
            download_reference_template=f"{settings.API_PREFIX}/download/{{job_id}}",
        )
        self.scheduler = JobScheduler(
            self.runner,
            max_concurrent=settings.MAX_CONCURRENT_JOBS,
            max_queued=settings.MAX_QUEUED_JOBS,
            timeout_seconds=settings.JOB_TIMEOUT_SECONDS,
        )
        self.batches = BatchCoordinator(self.store)
        self._sweeper: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        if self._sweeper is None and self.settings.CLEANUP_INTERVAL_SECONDS > 0:
            self._sweeper = asyncio.create_task(self._sweep_periodically())
        logger.info(f"Conversion service started (storage: {self.storage.root})")

    async def stop(self) -> None:
        if self._sweeper is not None:
            self._sweeper.cancel()
            await asyncio.gather(self._sweeper, return_exceptions=True)
            self._sweeper = None
        await self.scheduler.shutdown()
        await self.downloads.drain()
        logger.info("Conversion service stopped")

    async def _sweep_periodically(self) -> None:
        while True:
            await asyncio.sleep(self.settings.CLEANUP_INTERVAL_SECONDS)
            try:
                self.sweep()
            except Exception as e:
                logger.error(f"Cleanup sweep failed: {e}", exc_info=True)

    def sweep(self) -> Dict[str, int]:
        result = self.downloads.sweep_expired()
        result["batches"] = self.batches.evict_orphans()
        return result

    # ------------------------------------------------------------------
    # Formats
    # ------------------------------------------------------------------

    def formats(self) -> Dict[str, Any]:
        return {
            "categories": self.registry.describe(),
            "fallback_targets": [fmt.value for fmt in sorted(FALLBACK_TARGETS, key=lambda f: f.value)],
            "total_formats": self.registry.total_formats(),
        }

    def check(self, source_format: str, target_format: str) -> Dict[str, Any]:
        source = Format.parse(source_format)
        target = Format.parse(target_format)
        return {
            "supported": self.router.is_routable(source_format, target_format),
            "source_format": source.value if source else source_format,
            "target_format": target.value if target else target_format,
            "fallback": self.registry.is_fallback(source_format, target_format),
        }

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def validate_request(self, filename: Optional[str], target_format: Optional[str]) -> Tuple[Format, Format]:
        """Synchronous checks done before anything is written"""
        if not filename:
            raise InvalidInput("No file uploaded", field="file")
        if not target_format or not target_format.strip():
            raise InvalidInput("Target format is required", field="target_format")
        source_token = extension_of(filename)
        self.router.route(source_token, target_format)
        return Format.parse(source_token), Format.parse(target_format)

    async def submit_conversion(
        self,
        upload: Any,
        filename: Optional[str],
        target_format: Optional[str],
        options: Optional[ConversionOptions] = None,
    ) -> str:
        source, target = self.validate_request(filename, target_format)
        self.scheduler.reserve(1)
        try:
            job_id = await self._accept(upload, filename, source, target, options)
        except BaseException:
            self.scheduler.release(1)
            raise
        self.scheduler.submit(job_id, reserved=True)
        return job_id

    async def submit_batch(
        self,
        files: Sequence[UploadItem],
        target_format: Optional[str],
        options: Optional[ConversionOptions] = None,
    ) -> Tuple[str, List[str]]:
        """Validate every file first; one bad file rejects the whole batch"""
        if not files:
            raise InvalidInput("No files uploaded", field="files")
        if len(files) > self.settings.MAX_BATCH_FILES:
            raise InvalidInput(
                f"Maximum {self.settings.MAX_BATCH_FILES} files allowed per batch", field="files"
            )
        pairs = [self.validate_request(filename, target_format) for _, filename in files]

        self.scheduler.reserve(len(files))
        batch_id = str(uuid.uuid4())
        job_ids: List[str] = []
        try:
            for (upload, filename), (source, target) in zip(files, pairs):
                job_ids.append(await self._accept(upload, filename, source, target, options, batch_id))
            self.batches.create_batch(job_ids, pairs[0][1].value, batch_id=batch_id)
        except BaseException:
            self.scheduler.release(len(files))
            for job_id in job_ids:
                self._discard_job(job_id)
            raise

        for job_id in job_ids:
            self.scheduler.submit(job_id, reserved=True)
        logger.info(f"Batch {batch_id} accepted: {len(job_ids)} files to {pairs[0][1].value}")
        return batch_id, job_ids

    async def _accept(
        self,
        upload: Any,
        filename: str,
        source: Format,
        target: Format,
        options: Optional[ConversionOptions],
        batch_id: Optional[str] = None,
    ) -> str:
        job_id = str(uuid.uuid4())
        path = await self.storage.save_upload(job_id, source.value, upload, self.settings.max_upload_bytes)
        try:
            self.store.create(
                JobSpec(
                    id=job_id,
                    batch_id=batch_id,
                    original_filename=filename,
                    source_format=source.value,
                    target_format=target.value,
                    file_size_bytes=path.stat().st_size,
                    input_path=str(path),
                    options=options or ConversionOptions(),
                )
            )
        except BaseException:
            path.unlink(missing_ok=True)
            raise
        return job_id

    def _discard_job(self, job_id: str) -> None:
        try:
            job = self.store.get(job_id)
        except JobNotFound:
            return
        try:
            self.storage.delete(job.input_path)
        except CleanupFailure as e:
            logger.warning(f"Could not discard upload of job {job_id}: {e.message}")
        self.store.delete(job_id)

    # ------------------------------------------------------------------
    # Status and control
    # ------------------------------------------------------------------

    def get_job(self, job_id: str) -> ConversionJob:
        return self.store.get(job_id)

    def status(self, job_id: str) -> JobStatusResponse:
        return JobStatusResponse.from_job(self.store.get(job_id))

    def batch_status(self, batch_id: str) -> BatchReport:
        return self.batches.status(batch_id)

    def cancel(self, job_id: str) -> ConversionJob:
        job = self.store.get(job_id)
        if job.status.is_terminal:
            raise JobAlreadyFinished(job_id, job.status.value)
        if not self.scheduler.cancel(job_id):
            self.runner.fail(job_id, "Conversion cancelled")
        return self.store.get(job_id)

    def history(self, limit: Optional[int] = None) -> List[JobStatusResponse]:
        limit = limit or self.settings.HISTORY_LIMIT
        jobs = sorted(self.store.list_jobs(), key=lambda job: job.created_at, reverse=True)
        return [JobStatusResponse.from_job(job) for job in jobs[:limit]]

    def stats(self) -> ConversionStats:
        jobs = self.store.list_jobs()
        counts = {status: 0 for status in JobStatus}
        breakdown: Dict[str, int] = {}
        for job in jobs:
            counts[job.status] += 1
            key = f"{job.source_format}_to_{job.target_format}"
            breakdown[key] = breakdown.get(key, 0) + 1
        total = len(jobs)
        return ConversionStats(
            total=total,
            pending=counts[JobStatus.PENDING],
            processing=counts[JobStatus.PROCESSING],
            completed=counts[JobStatus.COMPLETED],
            failed=counts[JobStatus.FAILED],
            success_rate=round(100 * counts[JobStatus.COMPLETED] / total, 2) if total else 0.0,
            format_breakdown=breakdown,
            supported_formats=self.registry.total_formats(),
        )

    # ------------------------------------------------------------------
    # Downloads
    # ------------------------------------------------------------------

    def open_download(self, job_id: str) -> ConversionJob:
        return self.downloads.downloadable_job(job_id)

    def finish_download(self, job_id: str) -> None:
        self.downloads.mark_downloaded(job_id)

    def build_batch_archive(self, batch_id: str) -> Path:
        jobs = self.batches.completed_members(batch_id)
        archive = self.downloads.build_batch_archive(jobs, f"batch_{batch_id}_{uuid.uuid4().hex}.zip")
        if archive is None:
            raise NoCompletedFiles(batch_id)
        return archive

    def discard_archive(self, archive: Path) -> None:
        try:
            self.storage.delete(archive)
        except CleanupFailure as e:
            logger.warning(f"Could not delete batch archive {archive.name}: {e.message}")


def build_conversion_service(
    settings: Optional[Settings] = None,
    codec: Optional[CodecProvider] = None,
) -> ConversionService:
    return ConversionService(settings or default_settings, codec=codec)
