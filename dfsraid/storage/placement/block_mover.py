"""Moves block replicas between nodes on a pool of worker threads."""
import logging
import queue
import threading
from typing import List, Optional

from dfsraid.models import BlockMoveTask
from dfsraid.storage.backends.base import FileSystemBackend
from dfsraid.storage.metrics import BLOCK_MOVES

logger = logging.getLogger(__name__)


class BlockMover:
    """Bounded queue of block moves drained by worker threads.

    A queue length of 0 disables movement. When the queue is full new tasks
    are dropped rather than blocking the caller.
    """

    def __init__(self, fs: FileSystemBackend, queue_length: int = 30000,
                 num_threads: int = 10):
        self.fs = fs
        self.queue_length = queue_length
        self.num_threads = num_threads
        self._queue: Optional[queue.Queue] = (
            queue.Queue(maxsize=queue_length) if queue_length > 0 else None
        )
        self._stop_event = threading.Event()
        self._workers: List[threading.Thread] = []

    @property
    def enabled(self) -> bool:
        return self._queue is not None

    def start(self):
        """Start the worker threads."""
        if not self.enabled or self._workers:
            return
        self._stop_event.clear()
        for i in range(self.num_threads):
            worker = threading.Thread(target=self._work, name=f"raid-block-mover-{i}", daemon=True)
            worker.start()
            self._workers.append(worker)
        logger.info(f"Block mover started with {self.num_threads} threads")

    def stop(self):
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None):
        for worker in self._workers:
            worker.join(timeout)
        self._workers = []

    def enqueue(self, task: BlockMoveTask) -> bool:
        """Queue a move.

        Returns:
            bool: False if movement is disabled or the task was dropped
        """
        if self._queue is None:
            return False
        try:
            self._queue.put_nowait(task)
            return True
        except queue.Full:
            logger.warning(f"Block move queue full, dropping move of block "
                           f"{task.block_index} of {task.path}")
            BLOCK_MOVES.labels(outcome='dropped').inc()
            return False

    def pending(self) -> int:
        return self._queue.qsize() if self._queue is not None else 0

    def wait_until_idle(self):
        """Block until every queued task has been processed."""
        if self._queue is not None:
            self._queue.join()

    def move(self, task: BlockMoveTask) -> bool:
        """Perform one move right away."""
        try:
            self.fs.move_block_replica(
                task.path, task.block_index, task.source_node, task.target_node)
        except Exception as e:
            logger.warning(f"Failed to move block {task.block_index} of {task.path} "
                           f"from {task.source_node} to {task.target_node}: {str(e)}")
            BLOCK_MOVES.labels(outcome='failed').inc()
            return False
        BLOCK_MOVES.labels(outcome='moved').inc()
        logger.debug(f"Moved block {task.block_index} of {task.path} "
                     f"from {task.source_node} to {task.target_node}")
        return True

    def _work(self):
        while not self._stop_event.is_set():
            try:
                task = self._queue.get(timeout=0.5)
            except queue.Empty:
                continue
            try:
                self.move(task)
            finally:
                self._queue.task_done()
