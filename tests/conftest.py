"""Global test configuration and fixtures."""
import os
import random
import sys
import time

import pytest

# Add project root to Python path for imports
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from dfsraid.config.raid_config import PlacementConfig, RaidConfig, SchedulerConfig
from dfsraid.models import ErasureCodeType, PolicyInfo
from dfsraid.storage.backends import InMemoryFileSystem
from dfsraid.storage.policy import PolicyEngine

BLOCK_SIZE = 1024


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fs(clock):
    """Six node in-memory cluster with 1 KiB blocks."""
    return InMemoryFileSystem(default_block_size=BLOCK_SIZE, clock=clock)


@pytest.fixture
def raid_config():
    """Configuration for tests: inline execution, single threaded traversal."""
    return RaidConfig(
        rs_parity_length=3,
        execution_mode='local',
        distributed_workers=2,
        scheduler=SchedulerConfig(
            max_jobs_per_scan=10,
            max_files_per_scan=1000,
            max_files_per_job=100,
            max_concurrent_jobs=10,
            traversal_threads=1,
            rescan_interval=0.05,
            monitor_interval=0.05
        ),
        placement=PlacementConfig(
            block_move_queue_length=100,
            num_moving_threads=2,
            audit_interval=0.05
        )
    )


@pytest.fixture
def make_file(fs):
    """Factory writing a file of random bytes.

    The last block is last_block_size bytes long when given.
    """
    def _make_file(path, num_blocks, replication=3, last_block_size=None, seed=None):
        rng = random.Random(seed if seed is not None else path)
        length = num_blocks * BLOCK_SIZE
        if last_block_size is not None:
            length -= BLOCK_SIZE - last_block_size
        data = bytes(rng.getrandbits(8) for _ in range(length))
        fs.write_file(path, data, replication=replication, block_size=BLOCK_SIZE)
        return data
    return _make_file


@pytest.fixture
def xor_policy():
    return PolicyInfo(
        name='xor-policy',
        src_path='/user/raidtest',
        erasure_code=ErasureCodeType.XOR,
        src_replication=1,
        target_replication=1,
        meta_replication=1,
        stripe_length=3,
        mod_time_period=2.0
    )


@pytest.fixture
def rs_policy():
    return PolicyInfo(
        name='rs-policy',
        src_path='/user/rstest',
        erasure_code=ErasureCodeType.REED_SOLOMON,
        src_replication=1,
        target_replication=1,
        meta_replication=2,
        stripe_length=4,
        mod_time_period=2.0
    )


@pytest.fixture
def policy_engine(raid_config, clock):
    return PolicyEngine(raid_config, clock)


@pytest.fixture
def resolved_xor_policy(policy_engine, xor_policy):
    return policy_engine.resolve(xor_policy, {xor_policy.name: xor_policy})


def wait_for(predicate, timeout=5.0, interval=0.01):
    """Poll a condition until it holds or the timeout expires."""
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


@pytest.fixture
def wait():
    return wait_for
