"""Execution strategies that run encoding jobs."""
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
import logging
import threading
from typing import Dict

from dfsraid.config.raid_config import RaidConfig
from dfsraid.models import EncodingJob, JobHandle, JobState
from dfsraid.storage.encoding import FileEncoder
from dfsraid.storage.errors import ConfigurationError, JobSubmissionError

logger = logging.getLogger(__name__)


class ExecutionStrategy(ABC):
    """Interface to the compute framework that runs encoding jobs."""

    @abstractmethod
    def submit(self, job: EncodingJob) -> JobHandle:
        """Submit a job.

        Raises:
            JobSubmissionError: If the job was rejected
        """
        pass

    @abstractmethod
    def poll(self, handle: JobHandle) -> JobState:
        """Current state of a submitted job."""
        pass

    @abstractmethod
    def cancel(self, handle: JobHandle) -> bool:
        """Cancel a job that has not started; returns True if it was cancelled."""
        pass

    def release(self, handle: JobHandle) -> None:
        """Forget a job whose terminal state has been observed."""
        pass

    @abstractmethod
    def shutdown(self) -> None:
        """Release resources without waiting for running jobs."""
        pass


class LocalExecutionStrategy(ExecutionStrategy):
    """Runs each job inline, inside submit()."""

    def __init__(self, encoder: FileEncoder):
        self._encoder = encoder
        self._states: Dict[str, JobState] = {}
        self._lock = threading.Lock()
        self._shutdown = False

    def submit(self, job: EncodingJob) -> JobHandle:
        if self._shutdown:
            raise JobSubmissionError(f"Cannot submit {job.job_id}: strategy is shut down")
        handle = JobHandle(job=job)
        try:
            self._encoder.encode_job(job)
            state = JobState.SUCCEEDED
        except Exception as e:
            logger.error(f"Job {job.job_id} failed: {str(e)}")
            state = JobState.FAILED
        with self._lock:
            self._states[job.job_id] = state
        return handle

    def poll(self, handle: JobHandle) -> JobState:
        with self._lock:
            state = self._states.get(handle.job_id)
        if state is None:
            raise ValueError(f"Unknown job: {handle.job_id}")
        return state

    def cancel(self, handle: JobHandle) -> bool:
        return False

    def release(self, handle: JobHandle) -> None:
        with self._lock:
            self._states.pop(handle.job_id, None)

    def shutdown(self) -> None:
        self._shutdown = True


class ThreadPoolExecutionStrategy(ExecutionStrategy):
    """Runs jobs on a pool of worker threads."""

    def __init__(self, encoder: FileEncoder, max_workers: int = 4):
        self._encoder = encoder
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="raid-encode")
        self._futures: Dict[str, Future] = {}
        self._lock = threading.Lock()

    def _run(self, job: EncodingJob):
        try:
            return self._encoder.encode_job(job)
        except Exception as e:
            logger.error(f"Job {job.job_id} failed: {str(e)}")
            raise

    def submit(self, job: EncodingJob) -> JobHandle:
        try:
            future = self._executor.submit(self._run, job)
        except RuntimeError as e:
            raise JobSubmissionError(f"Cannot submit {job.job_id}: {str(e)}")
        with self._lock:
            self._futures[job.job_id] = future
        logger.info(f"Submitted job {job.job_id} with {len(job.files)} files "
                    f"under policy {job.policy.name}")
        return JobHandle(job=job)

    def poll(self, handle: JobHandle) -> JobState:
        with self._lock:
            future = self._futures.get(handle.job_id)
        if future is None:
            raise ValueError(f"Unknown job: {handle.job_id}")
        if future.cancelled():
            return JobState.FAILED
        if not future.done():
            return JobState.RUNNING if future.running() else JobState.SUBMITTED
        return JobState.FAILED if future.exception() is not None else JobState.SUCCEEDED

    def cancel(self, handle: JobHandle) -> bool:
        with self._lock:
            future = self._futures.get(handle.job_id)
        return future.cancel() if future is not None else False

    def release(self, handle: JobHandle) -> None:
        with self._lock:
            self._futures.pop(handle.job_id, None)

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)


def create_execution_strategy(config: RaidConfig, encoder: FileEncoder) -> ExecutionStrategy:
    """Factory function to get the configured execution strategy"""
    mode = config.execution_mode.lower()
    if mode == 'local':
        return LocalExecutionStrategy(encoder)
    if mode == 'distributed':
        return ThreadPoolExecutionStrategy(encoder, max_workers=config.distributed_workers)
    raise ConfigurationError(f"Unknown execution mode: {config.execution_mode}")
