"""RAID node configuration management."""

import os
from dataclasses import dataclass, field
from typing import Optional

from . import base_config


@dataclass
class SchedulerConfig:
    max_jobs_per_scan: int = 10
    max_files_per_scan: int = 1000
    max_files_per_job: int = 100
    max_concurrent_jobs: int = 10
    traversal_threads: int = 4
    rescan_interval: float = 3600.0
    monitor_interval: float = 10.0


@dataclass
class PlacementConfig:
    block_move_queue_length: int = 30000
    num_moving_threads: int = 10
    audit_interval: float = 60.0
    # None means "use the code's parity length"
    violation_threshold: Optional[int] = None
    include_source: bool = False


@dataclass
class RaidConfig:
    raid_location: str = '/destraid'
    raidrs_location: str = '/destraidrs'
    recovery_location: str = '/tmp/raidrecovery'
    rs_parity_length: int = 4
    execution_mode: str = 'distributed'
    distributed_workers: int = 4
    policy_file: Optional[str] = None
    policy_reload_interval: float = 10.0
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    placement: PlacementConfig = field(default_factory=PlacementConfig)


def _optional_int(name: str) -> Optional[int]:
    value = os.getenv(name)
    return int(value) if value else None


def load_raid_config() -> RaidConfig:
    """Load RAID configuration from environment variables."""
    scheduler_config = SchedulerConfig(
        max_jobs_per_scan=int(os.getenv('RAID_MAX_JOBS_PER_SCAN', '10')),
        max_files_per_scan=int(os.getenv('RAID_MAX_FILES_PER_SCAN', '1000')),
        max_files_per_job=int(os.getenv('RAID_MAX_FILES_PER_JOB', '100')),
        max_concurrent_jobs=int(os.getenv('RAID_MAX_CONCURRENT_JOBS', '10')),
        traversal_threads=int(os.getenv('RAID_TRAVERSAL_THREADS', '4')),
        rescan_interval=float(os.getenv('RAID_RESCAN_INTERVAL', '3600')),
        monitor_interval=float(os.getenv('RAID_MONITOR_INTERVAL', '10'))
    )

    placement_config = PlacementConfig(
        block_move_queue_length=int(os.getenv('RAID_BLOCK_MOVE_QUEUE_LENGTH', '30000')),
        num_moving_threads=int(os.getenv('RAID_NUM_MOVING_THREADS', '10')),
        audit_interval=float(os.getenv('RAID_AUDIT_INTERVAL', '60')),
        violation_threshold=_optional_int('RAID_PLACEMENT_THRESHOLD'),
        include_source=os.getenv('RAID_PLACEMENT_INCLUDE_SOURCE', 'false').lower() == 'true'
    )

    return RaidConfig(
        raid_location=base_config.RAID_LOCATION,
        raidrs_location=base_config.RAIDRS_LOCATION,
        recovery_location=base_config.RECOVERY_LOCATION,
        rs_parity_length=base_config.RS_PARITY_LENGTH,
        execution_mode=base_config.EXECUTION_MODE,
        distributed_workers=base_config.DISTRIBUTED_WORKERS,
        policy_file=base_config.POLICY_FILE,
        policy_reload_interval=float(os.getenv('RAID_POLICY_RELOAD_INTERVAL', '10')),
        scheduler=scheduler_config,
        placement=placement_config
    )
