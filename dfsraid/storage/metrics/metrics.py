"""
RAID-specific metrics collection
"""
from prometheus_client import Counter, Gauge, Histogram
import time

# Job Metrics
RAID_JOBS = Counter(
    'dfs_raid_jobs_total',
    'Number of encoding jobs by final state',
    ['state']  # state: succeeded, failed
)

RAID_RUNNING_JOBS = Gauge(
    'dfs_raid_running_jobs',
    'Encoding jobs currently in flight'
)

RAID_FILES_ENCODED = Counter(
    'dfs_raid_files_encoded_total',
    'Number of files encoded',
    ['code']  # code: xor, rs
)

# Placement Metrics
PLACEMENT_VIOLATIONS = Counter(
    'dfs_raid_placement_violations_total',
    'Stripes found with too many parity blocks on one node'
)

BLOCK_MOVES = Counter(
    'dfs_raid_block_moves_total',
    'Block move tasks by outcome',
    ['outcome']  # outcome: moved, failed, dropped
)

# Recovery Metrics
RECOVERIES = Counter(
    'dfs_raid_recoveries_total',
    'Recovery requests by outcome',
    ['outcome']  # outcome: recovered, unrecoverable, error
)

RAID_OPERATION_ERRORS = Counter(
    'dfs_raid_operation_errors_total',
    'Number of failed RAID operations',
    ['operation', 'error_type']
)

RAID_OPERATION_DURATION = Histogram(
    'dfs_raid_operation_duration_seconds',
    'Duration of RAID operations',
    ['operation'],
    buckets=(
        0.001,  # 1ms
        0.01,   # 10ms
        0.1,    # 100ms
        0.5,    # 500ms
        1.0,    # 1s
        5.0,    # 5s
        30.0,   # 30s
        120.0   # 2m
    )
)


class RaidOperationTracker:
    """Context manager for tracking RAID operations"""

    def __init__(self, operation: str):
        self.operation = operation
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        RAID_OPERATION_DURATION.labels(operation=self.operation).observe(duration)

        if exc_type is not None:
            RAID_OPERATION_ERRORS.labels(
                operation=self.operation,
                error_type=exc_type.__name__
            ).inc()
