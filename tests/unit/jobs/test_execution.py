"""Unit tests for the execution strategies."""

import threading
from unittest.mock import MagicMock

import pytest

from dfsraid.models import EncodingJob, JobState
from dfsraid.storage.encoding import FileEncoder
from dfsraid.storage.errors import ConfigurationError, JobSubmissionError
from dfsraid.storage.jobs import (
    LocalExecutionStrategy,
    ThreadPoolExecutionStrategy,
    create_execution_strategy,
)


@pytest.fixture
def job(fs, make_file, resolved_xor_policy):
    make_file('/user/raidtest/a', 3)
    return EncodingJob(policy=resolved_xor_policy, files=(fs.get_file_status('/user/raidtest/a'),))


class TestLocalExecutionStrategy:
    def test_runs_job_inline(self, fs, job):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        handle = strategy.submit(job)
        assert handle.job_id == job.job_id
        assert strategy.poll(handle) == JobState.SUCCEEDED
        assert fs.exists('/destraid/user/raidtest/a')

    def test_failed_job(self, job):
        encoder = MagicMock()
        encoder.encode_job.side_effect = RuntimeError("disk full")
        strategy = LocalExecutionStrategy(encoder)
        assert strategy.poll(strategy.submit(job)) == JobState.FAILED

    def test_cannot_cancel(self, fs, job):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        assert not strategy.cancel(strategy.submit(job))

    def test_submit_after_shutdown(self, fs, job):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        strategy.shutdown()
        with pytest.raises(JobSubmissionError):
            strategy.submit(job)

    def test_unknown_job(self, fs, job):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        other = LocalExecutionStrategy(FileEncoder(fs)).submit(job)
        with pytest.raises(ValueError):
            strategy.poll(other)

    def test_release_forgets_the_job(self, fs, job):
        strategy = LocalExecutionStrategy(FileEncoder(fs))
        handle = strategy.submit(job)
        strategy.release(handle)
        with pytest.raises(ValueError):
            strategy.poll(handle)


class TestThreadPoolExecutionStrategy:
    def test_job_lifecycle(self, job, wait):
        release = threading.Event()
        encoder = MagicMock()
        encoder.encode_job.side_effect = lambda j: release.wait(5)
        strategy = ThreadPoolExecutionStrategy(encoder, max_workers=1)
        try:
            handle = strategy.submit(job)
            assert wait(lambda: strategy.poll(handle) == JobState.RUNNING)
            release.set()
            assert wait(lambda: strategy.poll(handle) == JobState.SUCCEEDED)
        finally:
            release.set()
            strategy.shutdown()

    def test_failed_job(self, job, wait):
        encoder = MagicMock()
        encoder.encode_job.side_effect = RuntimeError("disk full")
        strategy = ThreadPoolExecutionStrategy(encoder, max_workers=1)
        try:
            handle = strategy.submit(job)
            assert wait(lambda: strategy.poll(handle) == JobState.FAILED)
        finally:
            strategy.shutdown()

    def test_cancel_queued_job(self, job, resolved_xor_policy, wait):
        release = threading.Event()
        encoder = MagicMock()
        encoder.encode_job.side_effect = lambda j: release.wait(5)
        strategy = ThreadPoolExecutionStrategy(encoder, max_workers=1)
        try:
            running = strategy.submit(job)
            assert wait(lambda: strategy.poll(running) == JobState.RUNNING)
            queued = strategy.submit(EncodingJob(policy=resolved_xor_policy, files=job.files))
            assert strategy.poll(queued) == JobState.SUBMITTED
            assert strategy.cancel(queued)
            assert strategy.poll(queued) == JobState.FAILED
        finally:
            release.set()
            strategy.shutdown()

    def test_release_forgets_the_job(self, job, wait):
        strategy = ThreadPoolExecutionStrategy(MagicMock(), max_workers=1)
        try:
            handle = strategy.submit(job)
            assert wait(lambda: strategy.poll(handle) == JobState.SUCCEEDED)
            strategy.release(handle)
            with pytest.raises(ValueError):
                strategy.poll(handle)
        finally:
            strategy.shutdown()

    def test_submit_after_shutdown(self, job):
        strategy = ThreadPoolExecutionStrategy(MagicMock(), max_workers=1)
        strategy.shutdown()
        with pytest.raises(JobSubmissionError):
            strategy.submit(job)


class TestCreateExecutionStrategy:
    def test_modes(self, fs, raid_config):
        encoder = FileEncoder(fs)
        assert isinstance(create_execution_strategy(raid_config, encoder), LocalExecutionStrategy)

        raid_config.execution_mode = 'distributed'
        strategy = create_execution_strategy(raid_config, encoder)
        assert isinstance(strategy, ThreadPoolExecutionStrategy)
        strategy.shutdown()

    def test_unknown_mode(self, fs, raid_config):
        raid_config.execution_mode = 'mapreduce'
        with pytest.raises(ConfigurationError):
            create_execution_strategy(raid_config, FileEncoder(fs))
