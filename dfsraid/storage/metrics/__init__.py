"""RAID metrics initialization"""

from .metrics import (
    RAID_JOBS,
    RAID_RUNNING_JOBS,
    RAID_FILES_ENCODED,
    PLACEMENT_VIOLATIONS,
    BLOCK_MOVES,
    RECOVERIES,
    RAID_OPERATION_ERRORS,
    RAID_OPERATION_DURATION,
    RaidOperationTracker,
)

__all__ = [
    'RAID_JOBS',
    'RAID_RUNNING_JOBS',
    'RAID_FILES_ENCODED',
    'PLACEMENT_VIOLATIONS',
    'BLOCK_MOVES',
    'RECOVERIES',
    'RAID_OPERATION_ERRORS',
    'RAID_OPERATION_DURATION',
    'RaidOperationTracker',
]
