"""Unit tests for the placement monitor."""

from dataclasses import replace

import pytest

from dfsraid.models import BlockInfo, EncodingJob, ErasureCodeType, JobHandle, JobState, NodeInfo
from dfsraid.storage.backends import InMemoryFileSystem
from dfsraid.storage.placement import BlockMover, PlacementMonitor, count_blocks_on_each_node

BLOCK_SIZE = 1024


def colocate(path, block_index, count, candidates):
    """Place every replica on the first nodes of the cluster."""
    return [node.node_id for node in candidates[:count]]


@pytest.fixture
def rs_effective(policy_engine, rs_policy):
    return policy_engine.resolve(rs_policy, {rs_policy.name: rs_policy})


def write_with_parity(fs, path, parity_path, num_blocks, num_parity_blocks, meta_replication=2):
    fs.write_file(path, b's' * BLOCK_SIZE * num_blocks, replication=1, block_size=BLOCK_SIZE)
    fs.write_file(parity_path, b'p' * BLOCK_SIZE * num_parity_blocks,
                  replication=meta_replication, block_size=BLOCK_SIZE)


def assert_no_node_over(fs, monitor, path, parity_path, policy, threshold):
    parity_blocks = fs.get_block_locations(parity_path)
    for start in range(0, len(parity_blocks), policy.parity_length):
        counts = count_blocks_on_each_node(parity_blocks[start:start + policy.parity_length])
        assert max(counts.values()) < threshold


class TestCountBlocks:
    def test_counts_each_replica_node(self):
        a, b, c = NodeInfo('a'), NodeInfo('b'), NodeInfo('c')
        blocks = [
            BlockInfo('/p', 0, 0, 10, (a, b)),
            BlockInfo('/p', 1, 10, 10, (a, c)),
            BlockInfo('/p', 2, 20, 10, (a,)),
        ]
        assert count_blocks_on_each_node(blocks) == {'a': 3, 'b': 1, 'c': 1}


class TestPlacementMonitor:
    @pytest.fixture
    def colocated_fs(self, clock):
        return InMemoryFileSystem(default_block_size=BLOCK_SIZE, clock=clock, block_placement=colocate)

    def test_detects_and_repairs_violations(self, colocated_fs, raid_config, rs_effective):
        fs = colocated_fs
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 8, 6)
        mover = BlockMover(fs, queue_length=100, num_threads=2)
        monitor = PlacementMonitor(fs, mover, raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', rs_effective)

        violations = monitor.audit()

        # Two stripes, each with all 3 parity blocks on node-0 and node-1
        assert len(violations) == 4
        assert {(v.stripe_index, v.node_id, v.count) for v in violations} == {
            (0, 'node-0', 3), (0, 'node-1', 3), (1, 'node-0', 3), (1, 'node-1', 3)}
        assert monitor.placement_record('/user/rstest/f', 0) == {'node-0': 3, 'node-1': 3}
        assert monitor.watched_files() == ['/user/rstest/f']
        assert mover.pending() > 0

        mover.start()
        try:
            mover.wait_until_idle()
        finally:
            mover.stop()
            mover.join(timeout=5)

        assert monitor.audit() == []
        assert monitor.watched_files() == []
        assert_no_node_over(fs, monitor, '/user/rstest/f', '/destraidrs/user/rstest/f',
                            rs_effective, threshold=3)
        # Clean files leave the watch list together with their records
        assert monitor.placement_record('/user/rstest/f', 1) is None

    def test_clean_file_leaves_watch_list(self, fs, raid_config, rs_effective):
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 4, 3)
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', rs_effective)
        assert monitor.audit() == []
        assert monitor.watched_files() == []

    def test_single_parity_codes_are_not_audited(self, colocated_fs, raid_config,
                                                 resolved_xor_policy):
        fs = colocated_fs
        write_with_parity(fs, '/user/raidtest/f', '/destraid/user/raidtest/f', 6, 2)
        monitor = PlacementMonitor(fs, BlockMover(fs), raid_config.placement)
        monitor.watch('/user/raidtest/f', '/destraid/user/raidtest/f', resolved_xor_policy)
        assert monitor.audit() == []
        assert monitor.placement_record('/user/raidtest/f', 0) is None

    def test_violations_stay_watched_while_movement_is_disabled(
            self, colocated_fs, raid_config, rs_effective):
        fs = colocated_fs
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 4, 3)
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', rs_effective)
        assert len(monitor.audit()) == 2
        assert len(monitor.audit()) == 2
        assert monitor.watched_files() == ['/user/rstest/f']

    def test_configured_threshold(self, fs, raid_config, rs_effective):
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 4, 3, meta_replication=1)
        for index in range(3):
            fs.set_block_locations('/destraidrs/user/rstest/f', index,
                                   ['node-0' if index < 2 else 'node-1'])
        raid_config.placement.violation_threshold = 2
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', rs_effective)
        violations = monitor.audit()
        assert [(v.node_id, v.count, v.threshold) for v in violations] == [('node-0', 2, 2)]

    def test_include_source_blocks(self, fs, raid_config, rs_effective):
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 4, 3, meta_replication=1)
        for index in range(4):
            fs.set_block_locations('/user/rstest/f', index, ['node-0'])
        for index in range(3):
            fs.set_block_locations('/destraidrs/user/rstest/f', index, [f'node-{index + 1}'])
        raid_config.placement.include_source = True
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', rs_effective)
        assert monitor.placement_record('/user/rstest/f', 0) is None
        violations = monitor.audit()
        assert [(v.node_id, v.count) for v in violations] == [('node-0', 4)]

    def test_prefers_a_rack_not_used_by_the_block(self, clock, raid_config, rs_effective):
        nodes = [NodeInfo('n1', '/r1'), NodeInfo('n2', '/r1'), NodeInfo('n3', '/r1'),
                 NodeInfo('n9', '/r2')]
        fs = InMemoryFileSystem(nodes=nodes, default_block_size=BLOCK_SIZE, clock=clock,
                                block_placement=colocate)
        policy = replace(rs_effective, parity_length=2)
        write_with_parity(fs, '/user/rstest/f', '/destraidrs/user/rstest/f', 2, 2)
        mover = BlockMover(fs, queue_length=10)
        monitor = PlacementMonitor(fs, mover, raid_config.placement)
        monitor.watch('/user/rstest/f', '/destraidrs/user/rstest/f', policy)

        monitor.audit()

        tasks = [mover._queue.get_nowait() for _ in range(mover.pending())]
        assert [(t.block_index, t.source_node, t.target_node) for t in tasks] == [
            (0, 'n2', 'n9'), (0, 'n1', 'n3')]

    def test_watches_files_of_succeeded_jobs(self, fs, raid_config, rs_effective, make_file):
        make_file('/user/rstest/a', 1)
        job = EncodingJob(policy=rs_effective, files=(fs.get_file_status('/user/rstest/a'),))
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)

        monitor.on_job_finished(JobHandle(job=job), JobState.FAILED)
        assert monitor.watched_files() == []
        monitor.on_job_finished(JobHandle(job=job), JobState.SUCCEEDED)
        assert monitor.watched_files() == ['/user/rstest/a']

    def test_missing_parity_stops_watching(self, fs, raid_config, rs_effective):
        monitor = PlacementMonitor(fs, BlockMover(fs, queue_length=0), raid_config.placement)
        monitor.watch('/gone', '/destraidrs/gone', rs_effective)
        assert monitor.audit() == []
        assert monitor.watched_files() == []
