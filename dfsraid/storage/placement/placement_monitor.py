"""
Placement monitor: audits how the parity blocks of each stripe are spread
over nodes and plans block moves when one node holds too many of them.
"""
from collections import Counter, OrderedDict
from dataclasses import dataclass
import logging
import threading
from typing import Dict, Iterable, List, Optional, Tuple

from dfsraid.config.raid_config import PlacementConfig
from dfsraid.models import BlockInfo, BlockMoveTask, EffectivePolicy, JobHandle, JobState
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.codec import num_stripes, parity_block_range, stripe_block_range
from dfsraid.storage.metrics import PLACEMENT_VIOLATIONS
from .block_mover import BlockMover

logger = logging.getLogger(__name__)


@dataclass
class PlacementViolation:
    """A node holding too many blocks of one stripe."""
    path: str
    stripe_index: int
    node_id: str
    count: int
    threshold: int


def count_blocks_on_each_node(blocks: Iterable[BlockInfo]) -> Dict[str, int]:
    """Number of the given blocks each node holds a replica of."""
    counts: Counter = Counter()
    for block in blocks:
        for node_id in {node.node_id for node in block.nodes}:
            counts[node_id] += 1
    return dict(counts)


class PlacementMonitor:
    """Audits watched files stripe by stripe and repairs bad placement."""

    def __init__(self, fs: FileSystemBackend, mover: BlockMover, config: PlacementConfig):
        self.fs = fs
        self.mover = mover
        self.config = config
        self._watched: "OrderedDict[str, Tuple[str, EffectivePolicy]]" = OrderedDict()
        self._records: Dict[str, Dict[int, Dict[str, int]]] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def threshold(self, policy: EffectivePolicy) -> int:
        if self.config.violation_threshold is not None:
            return self.config.violation_threshold
        return policy.parity_length

    def watch(self, source_path: str, parity_path: str, policy: EffectivePolicy) -> None:
        """Queue a file for the next audit."""
        with self._lock:
            self._watched[source_path] = (parity_path, policy)

    def watched_files(self) -> List[str]:
        with self._lock:
            return list(self._watched)

    def on_job_finished(self, handle: JobHandle, state: JobState) -> None:
        if state != JobState.SUCCEEDED:
            return
        policy = handle.job.policy
        for status in handle.job.files:
            self.watch(status.path, policy.parity_path(status.path), policy)

    def placement_record(self, path: str, stripe_index: int) -> Optional[Dict[str, int]]:
        """Node -> block count of a stripe of a watched file as of the last audit."""
        with self._lock:
            record = self._records.get(path, {}).get(stripe_index)
            return dict(record) if record is not None else None

    def audit(self) -> List[PlacementViolation]:
        """Run one audit pass over the watched files.

        Returns:
            List[PlacementViolation]: Violations found in this pass
        """
        with self._lock:
            watched = list(self._watched.items())

        violations: List[PlacementViolation] = []
        for source_path, (parity_path, policy) in watched:
            try:
                file_violations = self._audit_file(source_path, parity_path, policy)
            except FileNotFoundError:
                logger.info(f"{source_path} or its parity is gone, no longer watching it")
                self._unwatch(source_path)
                continue
            except OSError as e:
                logger.warning(f"Cannot audit {source_path}, retrying next pass: {str(e)}")
                continue
            violations.extend(file_violations)
            if not file_violations:
                self._unwatch(source_path)

        if violations:
            logger.info(f"Placement audit found {len(violations)} violations")
        return violations

    def _unwatch(self, source_path: str) -> None:
        with self._lock:
            self._watched.pop(source_path, None)
            self._records.pop(source_path, None)

    def _audit_file(self, source_path: str, parity_path: str,
                    policy: EffectivePolicy) -> List[PlacementViolation]:
        if policy.parity_length <= 1:
            return []
        threshold = self.threshold(policy)
        parity_blocks = self.fs.get_block_locations(parity_path)
        source_blocks = self.fs.get_block_locations(source_path) if self.config.include_source else []

        records: Dict[int, Dict[str, int]] = {}
        violations = []
        for stripe_index in range(num_stripes(len(parity_blocks), policy.parity_length)):
            blocks = [parity_blocks[i] for i in
                      parity_block_range(stripe_index, policy.parity_length, len(parity_blocks))]
            if self.config.include_source:
                blocks.extend(source_blocks[i] for i in stripe_block_range(
                    stripe_index, policy.stripe_length, len(source_blocks)))

            counts = count_blocks_on_each_node(blocks)
            records[stripe_index] = counts
            stripe_violations = [
                PlacementViolation(source_path, stripe_index, node_id, count, threshold)
                for node_id, count in sorted(counts.items()) if count >= threshold
            ]
            if stripe_violations:
                PLACEMENT_VIOLATIONS.inc(len(stripe_violations))
                violations.extend(stripe_violations)
                self._plan_moves(source_path, stripe_index, blocks, counts, threshold)

        with self._lock:
            self._records[source_path] = records
        return violations

    def _plan_moves(self, source_path: str, stripe_index: int, blocks: List[BlockInfo],
                    counts: Dict[str, int], threshold: int) -> int:
        """Enqueue moves until no node holds threshold blocks of the stripe.

        Planning works on a local copy of the counts and replica lists.
        """
        counts = dict(counts)
        holders = [[node.node_id for node in block.nodes] for block in blocks]
        nodes = {node.node_id: node for node in self.fs.list_nodes()}
        planned = 0

        while counts:
            busiest, count = max(counts.items(), key=lambda item: (item[1], item[0]))
            if count < threshold:
                break
            index = next(i for i, block_nodes in enumerate(holders) if busiest in block_nodes)
            used_racks = {
                nodes[n].rack for n in holders[index] if n != busiest and n in nodes
            }
            candidates = sorted(
                (node_id for node_id in nodes if node_id not in holders[index]),
                key=lambda n: (counts.get(n, 0), nodes[n].rack in used_racks, n)
            )
            if not candidates or counts.get(candidates[0], 0) + 1 >= threshold:
                logger.warning(f"No node can take a block of stripe {stripe_index} "
                               f"of {source_path} off {busiest}")
                break
            target = candidates[0]
            block = blocks[index]
            self.mover.enqueue(BlockMoveTask(
                path=block.path,
                block_index=block.block_index,
                source_node=busiest,
                target_node=target
            ))
            holders[index][holders[index].index(busiest)] = target
            counts[busiest] -= 1
            counts[target] = counts.get(target, 0) + 1
            planned += 1

        logger.info(f"Planned {planned} block moves for stripe {stripe_index} of {source_path}")
        return planned

    def start(self):
        """Start the audit loop."""
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._audit_loop, name="raid-placement", daemon=True)
        self._thread.start()

    def stop(self):
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None):
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None

    def _audit_loop(self):
        while not self._stop_event.is_set():
            try:
                self.audit()
            except Exception as e:
                logger.error(f"Error in placement audit: {str(e)}")
            self._stop_event.wait(self.config.audit_interval)
