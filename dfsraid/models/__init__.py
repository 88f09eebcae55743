"""Data models for the RAID subsystem."""

from .models import (
    ErasureCodeType,
    PolicyInfo,
    EffectivePolicy,
    FileStatus,
    NodeInfo,
    BlockInfo,
    JobState,
    EncodingJob,
    JobHandle,
    BlockMoveTask,
    RecoveryResult,
)

__all__ = [
    'ErasureCodeType',
    'PolicyInfo',
    'EffectivePolicy',
    'FileStatus',
    'NodeInfo',
    'BlockInfo',
    'JobState',
    'EncodingJob',
    'JobHandle',
    'BlockMoveTask',
    'RecoveryResult',
]
