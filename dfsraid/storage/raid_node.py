"""RAID node: owns the RAID components and their background loops."""
import logging
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from dfsraid.config.raid_config import RaidConfig, load_raid_config
from dfsraid.models import EffectivePolicy, PolicyInfo, RecoveryResult
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.encoding import FileEncoder
from dfsraid.storage.jobs import JobMonitor, JobScheduler, create_execution_strategy
from dfsraid.storage.placement import BlockMover, PlacementMonitor
from dfsraid.storage.policy import PolicyEngine, PolicyLoader
from dfsraid.storage.recovery import RecoveryEngine

logger = logging.getLogger(__name__)


class RaidNode:
    """Coordinates policy scans, encoding jobs, placement repair and recovery."""

    def __init__(self, fs: FileSystemBackend, config: Optional[RaidConfig] = None,
                 policies: Optional[List[PolicyInfo]] = None,
                 clock: Callable[[], float] = time.time):
        """Initialize the RAID node.

        Args:
            fs: Distributed file system to protect
            config: RAID configuration, loaded from the environment if omitted
            policies: Policies to use when no policy file is configured
            clock: Time source for eligibility and recovered file names
        """
        self.fs = fs
        self.config = config or load_raid_config()
        self.policy_loader = PolicyLoader(self.config.policy_file, policies)
        self.policy_engine = PolicyEngine(self.config, clock)
        self.encoder = FileEncoder(fs)
        self.strategy = create_execution_strategy(self.config, self.encoder)
        self.job_monitor = JobMonitor(self.strategy, self.config.scheduler.monitor_interval)
        self.scheduler = JobScheduler(
            fs,
            self.policy_engine,
            self.policy_loader,
            self.strategy,
            self.job_monitor,
            self.config.scheduler
        )
        self.block_mover = BlockMover(
            fs,
            queue_length=self.config.placement.block_move_queue_length,
            num_threads=self.config.placement.num_moving_threads
        )
        self.placement_monitor = PlacementMonitor(fs, self.block_mover, self.config.placement)
        self.job_monitor.add_listener(self.placement_monitor.on_job_finished)
        self.recovery_engine = RecoveryEngine(
            fs,
            self.policy_engine,
            self.config.recovery_location,
            self.get_all_policies,
            clock
        )

        self._stop_event = threading.Event()
        self._reload_thread: Optional[threading.Thread] = None
        self._running = False

    def start(self):
        """Start every background loop."""
        if self._running:
            return
        self._stop_event.clear()
        self.block_mover.start()
        self.job_monitor.start()
        self.scheduler.start()
        self.placement_monitor.start()
        self._reload_thread = threading.Thread(
            target=self._reload_loop, name="raid-policy-reload", daemon=True)
        self._reload_thread.start()
        self._running = True
        logger.info(f"RAID node started in {self.config.execution_mode} mode")

    def stop(self):
        """Signal every loop to stop; in-flight jobs are not waited for."""
        self._stop_event.set()
        self.scheduler.stop()
        self.job_monitor.stop()
        self.placement_monitor.stop()
        self.block_mover.stop()
        self.strategy.shutdown()
        self._running = False
        logger.info("RAID node stopping")

    def await_shutdown(self, timeout: Optional[float] = None):
        """Wait for the background loops to exit."""
        self.scheduler.join(timeout)
        self.job_monitor.join(timeout)
        self.placement_monitor.join(timeout)
        self.block_mover.join(timeout)
        if self._reload_thread is not None:
            self._reload_thread.join(timeout)
            self._reload_thread = None

    def _reload_loop(self):
        while not self._stop_event.wait(self.config.policy_reload_interval):
            try:
                self.policy_loader.reload_if_changed()
            except Exception as e:
                logger.error(f"Error reloading policies: {str(e)}")

    def get_all_policies(self) -> List[EffectivePolicy]:
        """Policies of the latest scan, or freshly resolved ones before the first scan."""
        if self.scheduler.policies:
            return list(self.scheduler.policies)
        return self.policy_engine.resolve_all(self.policy_loader.get_policies())

    def recover(self, path: str, offset: int) -> RecoveryResult:
        return self.recovery_engine.recover(path, offset)

    def job_counters(self) -> Dict[str, Any]:
        return {
            'monitored': self.job_monitor.jobs_monitored(),
            'succeeded': self.job_monitor.jobs_succeeded(),
            'failed': self.job_monitor.jobs_failed(),
            'running': self.job_monitor.running_jobs_count(),
            'scheduler_state': self.scheduler.state.value,
        }
