"""
Job scheduler: walks the policies, batches eligible files into encoding
jobs and submits them, resuming each pass where the previous one stopped.
"""
from dataclasses import dataclass, field
from enum import Enum
import logging
import threading
from typing import Dict, List, Optional, Set

from dfsraid.config.raid_config import SchedulerConfig
from dfsraid.models import EffectivePolicy, EncodingJob, FileStatus, JobHandle, JobState
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.errors import JobSubmissionError
from dfsraid.storage.policy import PolicyEngine, PolicyLoader
from .execution import ExecutionStrategy
from .monitor import JobMonitor

logger = logging.getLogger(__name__)


class SchedulerState(Enum):
    IDLE = "idle"
    SCANNING = "scanning"
    BATCHING = "batching"
    SUBMITTING = "submitting"


@dataclass
class TraversalCursor:
    """Where the next pass resumes: a path per policy and a policy to start at."""
    positions: Dict[str, str] = field(default_factory=dict)
    resume_policy: Optional[str] = None

    def position(self, policy_name: str) -> Optional[str]:
        return self.positions.get(policy_name)

    def advance(self, policy_name: str, path: str) -> None:
        self.positions[policy_name] = path

    def reset(self, policy_name: str) -> None:
        self.positions.pop(policy_name, None)


class _PassOutcome(Enum):
    SUBMITTED = "submitted"
    STALLED = "stalled"
    FAILED = "failed"


class JobScheduler:
    """Turns eligible files into bounded encoding jobs."""

    def __init__(self, fs: FileSystemBackend, policy_engine: PolicyEngine,
                 policy_loader: PolicyLoader, strategy: ExecutionStrategy,
                 monitor: JobMonitor, config: SchedulerConfig):
        self.fs = fs
        self.policy_engine = policy_engine
        self.policy_loader = policy_loader
        self.strategy = strategy
        self.monitor = monitor
        self.config = config
        self.cursor = TraversalCursor()
        self.policies: List[EffectivePolicy] = []

        self._state = SchedulerState.IDLE
        self._lock = threading.Lock()
        self._pass_lock = threading.Lock()
        self._in_flight: Dict[str, Set[str]] = {}
        self._in_flight_paths: Set[str] = set()
        self._stop_event = threading.Event()
        self._wake_event = threading.Event()
        self._stalled = False
        self._thread: Optional[threading.Thread] = None

        monitor.add_listener(self._on_job_finished)

    @property
    def state(self) -> SchedulerState:
        return self._state

    def _set_state(self, state: SchedulerState) -> None:
        self._state = state

    def _on_job_finished(self, handle: JobHandle, state: JobState) -> None:
        with self._lock:
            paths = self._in_flight.pop(handle.job_id, set())
            self._in_flight_paths.difference_update(paths)
        self._wake_event.set()

    def _is_in_flight(self, path: str) -> bool:
        with self._lock:
            return path in self._in_flight_paths

    def _submit(self, policy: EffectivePolicy, batch: List[FileStatus]) -> _PassOutcome:
        if self.monitor.running_jobs_count() >= self.config.max_concurrent_jobs:
            logger.info(f"{self.config.max_concurrent_jobs} jobs in flight, "
                        f"stalling pass at policy {policy.name}")
            return _PassOutcome.STALLED

        self._set_state(SchedulerState.SUBMITTING)
        job = EncodingJob(policy=policy, files=tuple(batch))
        with self._lock:
            self._in_flight[job.job_id] = {status.path for status in batch}
            self._in_flight_paths.update(self._in_flight[job.job_id])
        try:
            handle = self.strategy.submit(job)
        except JobSubmissionError as e:
            logger.error(f"Submission of job {job.job_id} failed: {str(e)}")
            self.monitor.record_submission_failure(job)
            return _PassOutcome.FAILED

        self.monitor.monitor_job(handle)
        self.cursor.advance(policy.name, batch[-1].path)
        logger.info(f"Submitted job {job.job_id}: {len(batch)} files of policy {policy.name}")
        return _PassOutcome.SUBMITTED

    def run_pass(self) -> int:
        """Run one scan pass.

        Returns:
            int: Number of jobs submitted
        """
        with self._pass_lock:
            try:
                return self._run_pass()
            finally:
                self._set_state(SchedulerState.IDLE)

    def _run_pass(self) -> int:
        self._set_state(SchedulerState.SCANNING)
        self._stalled = False
        self.policies = self.policy_engine.resolve_all(self.policy_loader.get_policies())
        if not self.policies:
            return 0

        names = [policy.name for policy in self.policies]
        start = names.index(self.cursor.resume_policy) if self.cursor.resume_policy in names else 0
        ordered = self.policies[start:] + self.policies[:start]

        jobs_submitted = 0
        files_batched = 0
        for policy in ordered:
            self.cursor.resume_policy = policy.name
            if (jobs_submitted >= self.config.max_jobs_per_scan
                    or files_batched >= self.config.max_files_per_scan):
                return jobs_submitted
            self._set_state(SchedulerState.SCANNING)
            batch: List[FileStatus] = []
            exhausted = True
            files = self.policy_engine.iter_eligible_files(
                policy, self.fs,
                start_after=self.cursor.position(policy.name),
                traversal_threads=self.config.traversal_threads
            )
            try:
                for status in files:
                    if self._is_in_flight(status.path):
                        continue
                    self._set_state(SchedulerState.BATCHING)
                    batch.append(status)
                    files_batched += 1
                    if (len(batch) < self.config.max_files_per_job
                            and files_batched < self.config.max_files_per_scan):
                        continue

                    outcome = self._submit(policy, batch)
                    if outcome != _PassOutcome.SUBMITTED:
                        self._stalled = outcome == _PassOutcome.STALLED
                        return jobs_submitted
                    jobs_submitted += 1
                    batch = []
                    if (jobs_submitted >= self.config.max_jobs_per_scan
                            or files_batched >= self.config.max_files_per_scan):
                        exhausted = False
                        break
            finally:
                files.close()

            if batch:
                outcome = self._submit(policy, batch)
                if outcome != _PassOutcome.SUBMITTED:
                    self._stalled = outcome == _PassOutcome.STALLED
                    return jobs_submitted
                jobs_submitted += 1
            if not exhausted:
                return jobs_submitted

            self.cursor.reset(policy.name)
            logger.debug(f"Traversal of policy {policy.name} complete")

        self.cursor.resume_policy = None
        return jobs_submitted

    def start(self):
        """Start the scan loop."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._scan_loop, name="raid-scheduler", daemon=True)
        self._thread.start()
        logger.info("Job scheduler started")

    def stop(self):
        """Signal the scan loop to stop."""
        self._stop_event.set()
        self._wake_event.set()

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _scan_loop(self):
        while not self._stop_event.is_set():
            self._wake_event.clear()
            try:
                submitted = self.run_pass()
                logger.info(f"Scan pass submitted {submitted} jobs")
            except Exception as e:
                logger.error(f"Error in scan pass: {str(e)}")
            if self._stalled and not self._stop_event.is_set():
                # Rescan as soon as a job finishes
                self._wake_event.wait(self.config.rescan_interval)
            else:
                self._stop_event.wait(self.config.rescan_interval)
