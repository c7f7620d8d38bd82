"""
Tests for the job store state machine
"""
import threading

import pytest

from fileconv.core.errors import InvalidTransition, JobNotFound
from fileconv.models.jobs import JobSpec, JobStatus
from fileconv.services.job_store import InMemoryJobStore


def make_spec(**overrides) -> JobSpec:
    values = {
        "original_filename": "report.txt",
        "source_format": "txt",
        "target_format": "pdf",
        "file_size_bytes": 12,
        "input_path": "/tmp/report.txt",
    }
    values.update(overrides)
    return JobSpec(**values)


class TestInMemoryJobStore:
    """Job records and transitions"""

    def setup_method(self):
        self.store = InMemoryJobStore()

    def test_create_starts_pending(self):
        """Test new jobs are pending with an id"""
        job_id = self.store.create(make_spec())
        job = self.store.get(job_id)

        assert job.status == JobStatus.PENDING
        assert job.progress == 10
        assert job.started_at is None and job.completed_at is None
        assert job.error_message is None

    def test_create_keeps_requested_id(self):
        """Test callers may choose the id; duplicates are refused"""
        assert self.store.create(make_spec(id="job-1")) == "job-1"
        with pytest.raises(ValueError):
            self.store.create(make_spec(id="job-1"))

    def test_get_returns_copies(self):
        """Test mutating a read does not change the record"""
        job_id = self.store.create(make_spec())
        job = self.store.get(job_id)
        job.status = JobStatus.COMPLETED
        job.options.quality = 5

        stored = self.store.get(job_id)
        assert stored.status == JobStatus.PENDING
        assert stored.options.quality is None

    def test_happy_path_sets_timestamps_once(self):
        """Test pending -> processing -> completed"""
        job_id = self.store.create(make_spec())
        processing = self.store.transition(job_id, JobStatus.PROCESSING)
        completed = self.store.transition(job_id, JobStatus.COMPLETED, output_path="/tmp/out.pdf")

        assert processing.started_at is not None
        assert completed.started_at == processing.started_at
        assert completed.completed_at >= completed.started_at
        assert completed.output_path == "/tmp/out.pdf"
        assert completed.processing_time_ms is not None
        assert completed.progress == 100

    def test_failed_records_error(self):
        """Test failed jobs always carry an error message"""
        job_id = self.store.create(make_spec())
        self.store.transition(job_id, JobStatus.PROCESSING)
        failed = self.store.transition(job_id, JobStatus.FAILED)

        assert failed.error_message == "Conversion failed"
        assert failed.progress == 0

    def test_error_message_dropped_on_success(self):
        """Test error messages only exist on failed jobs"""
        job_id = self.store.create(make_spec())
        self.store.transition(job_id, JobStatus.PROCESSING)
        completed = self.store.transition(job_id, JobStatus.COMPLETED, error_message="stale")
        assert completed.error_message is None

    @pytest.mark.parametrize("path", [
        [JobStatus.COMPLETED],
        [JobStatus.FAILED],
        [JobStatus.PENDING],
        [JobStatus.PROCESSING, JobStatus.PROCESSING],
        [JobStatus.PROCESSING, JobStatus.COMPLETED, JobStatus.FAILED],
        [JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.COMPLETED],
        [JobStatus.PROCESSING, JobStatus.FAILED, JobStatus.PROCESSING],
    ])
    def test_invalid_transitions(self, path):
        """Test illegal moves raise InvalidTransition and leave the record intact"""
        job_id = self.store.create(make_spec())
        *legal, illegal = path
        for status in legal:
            self.store.transition(job_id, status)
        before = self.store.get(job_id)

        with pytest.raises(InvalidTransition):
            self.store.transition(job_id, illegal)
        assert self.store.get(job_id) == before

    def test_unknown_job(self):
        """Test unknown ids raise JobNotFound"""
        with pytest.raises(JobNotFound):
            self.store.get("missing")
        with pytest.raises(JobNotFound):
            self.store.transition("missing", JobStatus.PROCESSING)
        with pytest.raises(JobNotFound):
            self.store.update("missing", download_count=1)

    def test_update_bookkeeping_fields(self):
        """Test update() changes non-status fields only"""
        job_id = self.store.create(make_spec())
        assert self.store.update(job_id, download_count=2).download_count == 2

        with pytest.raises(ValueError):
            self.store.update(job_id, status=JobStatus.COMPLETED)
        with pytest.raises(ValueError):
            self.store.update(job_id, no_such_field=1)

    def test_list_and_delete(self):
        """Test listing by batch and deleting"""
        a = self.store.create(make_spec(batch_id="b1"))
        b = self.store.create(make_spec(batch_id="b1"))
        c = self.store.create(make_spec())

        assert {job.id for job in self.store.list_jobs()} == {a, b, c}
        assert {job.id for job in self.store.list_jobs(batch_id="b1")} == {a, b}

        assert self.store.delete(a)
        assert not self.store.delete(a)
        with pytest.raises(JobNotFound):
            self.store.get(a)

    def test_racing_terminal_transitions(self):
        """Test only one of many concurrent completions wins"""
        job_id = self.store.create(make_spec())
        self.store.transition(job_id, JobStatus.PROCESSING)
        barrier = threading.Barrier(8)
        outcomes = []

        def settle(status):
            barrier.wait()
            try:
                self.store.transition(job_id, status, error_message="boom")
                outcomes.append(status)
            except InvalidTransition:
                pass

        threads = [
            threading.Thread(target=settle, args=(JobStatus.COMPLETED if i % 2 else JobStatus.FAILED,))
            for i in range(8)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(outcomes) == 1
        assert self.store.get(job_id).status == outcomes[0]
