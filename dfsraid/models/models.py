"""Unified data models for the RAID subsystem."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple
import time
import uuid


# Enums
class ErasureCodeType(Enum):
    XOR = "xor"
    REED_SOLOMON = "rs"

    @classmethod
    def parse(cls, value: str) -> "ErasureCodeType":
        """Parse a code name as written in policy files (xor, rs, ReedSolomon)."""
        normalized = value.strip().lower()
        if normalized in ("rs", "reedsolomon", "reed_solomon"):
            return cls.REED_SOLOMON
        if normalized == "xor":
            return cls.XOR
        raise ValueError(f"Unknown erasure code: {value}")


class JobState(Enum):
    SUBMITTED = "submitted"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobState.SUCCEEDED, JobState.FAILED)


# Policy Models
@dataclass
class PolicyInfo:
    """A policy as loaded from configuration; unset properties are None."""
    name: str
    src_path: Optional[str] = None
    file_list_path: Optional[str] = None
    parent: Optional[str] = None
    erasure_code: Optional[ErasureCodeType] = None
    src_replication: Optional[int] = None
    target_replication: Optional[int] = None
    meta_replication: Optional[int] = None
    stripe_length: Optional[int] = None
    mod_time_period: Optional[float] = None  # seconds


@dataclass(frozen=True)
class EffectivePolicy:
    """Fully resolved policy: every property is concrete."""
    name: str
    src_path: Optional[str]
    file_list_path: Optional[str]
    erasure_code: ErasureCodeType
    src_replication: int
    target_replication: int
    meta_replication: int
    stripe_length: int
    mod_time_period: float
    parity_length: int
    parity_location: str

    def parity_path(self, source_path: str) -> str:
        """Path of the parity file for a source file."""
        return self.parity_location.rstrip("/") + source_path

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "src_path": self.src_path,
            "file_list_path": self.file_list_path,
            "erasure_code": self.erasure_code.value,
            "src_replication": self.src_replication,
            "target_replication": self.target_replication,
            "meta_replication": self.meta_replication,
            "stripe_length": self.stripe_length,
            "mod_time_period": self.mod_time_period,
            "parity_length": self.parity_length,
            "parity_location": self.parity_location,
        }


# File System Models
@dataclass(frozen=True)
class FileStatus:
    """Status of a file or directory in the distributed file system."""
    path: str
    length: int = 0
    block_size: int = 0
    replication: int = 0
    modification_time: float = 0.0
    is_dir: bool = False

    @property
    def num_blocks(self) -> int:
        if self.is_dir or self.block_size <= 0:
            return 0
        return (self.length + self.block_size - 1) // self.block_size


@dataclass(frozen=True)
class NodeInfo:
    """A storage node and the rack it lives in."""
    node_id: str
    rack: str = "/default-rack"


@dataclass(frozen=True)
class BlockInfo:
    """One block of a file and the nodes hosting its replicas."""
    path: str
    block_index: int
    offset: int
    length: int
    nodes: Tuple[NodeInfo, ...] = ()


# Job Models
@dataclass(frozen=True)
class EncodingJob:
    """An immutable batch of files encoded together under one policy."""
    policy: EffectivePolicy
    files: Tuple[FileStatus, ...]
    job_id: str = field(default_factory=lambda: f"raid-{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class JobHandle:
    """Handle returned by an execution strategy for a submitted job."""
    job: EncodingJob
    submitted_at: float = field(default_factory=time.time)

    @property
    def job_id(self) -> str:
        return self.job.job_id


# Placement Models
@dataclass(frozen=True)
class BlockMoveTask:
    """Relocate one replica of a block from one node to another."""
    path: str
    block_index: int
    source_node: str
    target_node: str


# Recovery Models
@dataclass(frozen=True)
class RecoveryResult:
    """Outcome of a recovery request."""
    source_path: str
    recovered_path: str
    stripe_index: int
    reconstruction_required: bool
