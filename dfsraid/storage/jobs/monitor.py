"""Tracks submitted encoding jobs until they finish."""
import logging
import threading
from typing import Callable, Dict, List, Optional, Tuple

from dfsraid.models import EncodingJob, JobHandle, JobState
from dfsraid.storage.metrics import RAID_JOBS, RAID_RUNNING_JOBS
from .execution import ExecutionStrategy

logger = logging.getLogger(__name__)

JobListener = Callable[[JobHandle, JobState], None]


class JobMonitor:
    """Polls in-flight jobs and keeps job counters.

    Finished jobs are forgotten; only the counters remember them.
    """

    def __init__(self, strategy: ExecutionStrategy, interval: float = 10.0):
        """Initialize the monitor.

        Args:
            strategy: Execution strategy the jobs were submitted to
            interval: Seconds between polling rounds of the background loop
        """
        self._strategy = strategy
        self._interval = interval
        self._jobs: Dict[str, JobHandle] = {}
        self._states: Dict[str, JobState] = {}
        self._listeners: List[JobListener] = []
        self._lock = threading.Lock()
        self._monitored = 0
        self._succeeded = 0
        self._failed = 0
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def add_listener(self, listener: JobListener) -> None:
        """Register a callback receiving (handle, terminal state) of finished jobs."""
        with self._lock:
            self._listeners.append(listener)

    def monitor_job(self, handle: JobHandle) -> None:
        with self._lock:
            self._jobs[handle.job_id] = handle
            self._states[handle.job_id] = JobState.SUBMITTED
            self._monitored += 1
        RAID_RUNNING_JOBS.inc()

    def record_submission_failure(self, job: EncodingJob) -> None:
        """Count a job the execution strategy rejected as monitored and failed."""
        with self._lock:
            self._monitored += 1
            self._failed += 1
            listeners = list(self._listeners)
        RAID_JOBS.labels(state='failed').inc()
        self._notify(listeners, [(JobHandle(job=job), JobState.FAILED)])

    def poll_once(self) -> int:
        """Run one polling round.

        Returns:
            int: Number of jobs that reached a terminal state
        """
        with self._lock:
            handles = list(self._jobs.values())

        updates: List[Tuple[JobHandle, JobState]] = []
        for handle in handles:
            try:
                state = self._strategy.poll(handle)
            except Exception as e:
                logger.error(f"Error polling job {handle.job_id}: {str(e)}")
                continue
            updates.append((handle, state))

        finished = []
        with self._lock:
            for handle, state in updates:
                if handle.job_id not in self._jobs:
                    continue
                if not state.is_terminal:
                    self._states[handle.job_id] = state
                    continue
                del self._jobs[handle.job_id]
                del self._states[handle.job_id]
                if state == JobState.SUCCEEDED:
                    self._succeeded += 1
                else:
                    self._failed += 1
                finished.append((handle, state))
            listeners = list(self._listeners)

        for handle, state in finished:
            RAID_RUNNING_JOBS.dec()
            self._strategy.release(handle)
            RAID_JOBS.labels(state=state.value).inc()
            logger.info(f"Job {handle.job_id} finished: {state.value}")
        self._notify(listeners, finished)
        return len(finished)

    def _notify(self, listeners: List[JobListener],
                finished: List[Tuple[JobHandle, JobState]]) -> None:
        for handle, state in finished:
            for listener in listeners:
                try:
                    listener(handle, state)
                except Exception as e:
                    logger.error(f"Job listener failed for {handle.job_id}: {str(e)}")

    def jobs_monitored(self) -> int:
        with self._lock:
            return self._monitored

    def jobs_succeeded(self) -> int:
        with self._lock:
            return self._succeeded

    def jobs_failed(self) -> int:
        with self._lock:
            return self._failed

    def running_jobs_count(self) -> int:
        with self._lock:
            return len(self._jobs)

    def running_jobs(self) -> List[JobHandle]:
        with self._lock:
            return list(self._jobs.values())

    def job_state(self, job_id: str) -> Optional[JobState]:
        """Last observed state of an in-flight job, None once it has finished."""
        with self._lock:
            return self._states.get(job_id)

    def running_job_states(self) -> List[Tuple[JobHandle, JobState]]:
        with self._lock:
            return [(handle, self._states[job_id]) for job_id, handle in self._jobs.items()]

    def start(self):
        """Start the polling loop."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._poll_loop, name="raid-job-monitor", daemon=True)
        self._thread.start()
        logger.info("Job monitor started")

    def stop(self):
        """Signal the polling loop to stop."""
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _poll_loop(self):
        while not self._stop_event.is_set():
            try:
                self.poll_once()
            except Exception as e:
                logger.error(f"Error in job monitor loop: {str(e)}")
            self._stop_event.wait(self._interval)
