"""
In-memory distributed file system backend.

Simulates a small cluster: files are split into blocks, every block has
replicas on distinct nodes, and blocks can be corrupted or lose their nodes.
"""

import logging
import posixpath
import threading
import time
import zlib
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Optional, Set

from dfsraid.models import BlockInfo, FileStatus, NodeInfo
from dfsraid.storage.errors import CorruptBlockError, FileSystemError, MissingBlockError
from .base import FileSystemBackend

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 1024 * 1024

# (path, block_index, replication, live nodes) -> node ids
BlockPlacement = Callable[[str, int, int, List[NodeInfo]], List[str]]


def default_cluster_nodes(num_nodes: int = 6) -> List[NodeInfo]:
    """One node per rack, like a small test cluster."""
    return [NodeInfo(f"node-{i}", f"/rack{i + 1}") for i in range(num_nodes)]


@dataclass
class _FileEntry:
    data: bytes
    block_size: int
    replication: int
    modification_time: float
    replicas: List[List[str]] = field(default_factory=list)
    corrupt: Set[int] = field(default_factory=set)

    @property
    def num_blocks(self) -> int:
        return (len(self.data) + self.block_size - 1) // self.block_size


class InMemoryFileSystem(FileSystemBackend):
    """Thread-safe in-memory file system with block replica tracking."""

    def __init__(self, nodes: Optional[Iterable[NodeInfo]] = None,
                 default_block_size: int = DEFAULT_BLOCK_SIZE,
                 clock: Callable[[], float] = time.time,
                 block_placement: Optional[BlockPlacement] = None):
        """Initialize the file system.

        Args:
            nodes: Storage nodes of the simulated cluster
            default_block_size: Block size used when a write does not give one
            clock: Source of modification times
            block_placement: Optional hook choosing the nodes of new replicas
        """
        self._nodes: Dict[str, NodeInfo] = {
            node.node_id: node for node in (nodes or default_cluster_nodes())
        }
        self._dead_nodes: Set[str] = set()
        self._default_block_size = default_block_size
        self._clock = clock
        self._block_placement = block_placement
        self._files: Dict[str, _FileEntry] = {}
        self._dirs: Set[str] = {"/"}
        self._next_node = 0
        self._last_mtime = 0.0
        self._lock = threading.RLock()

    @staticmethod
    def _normalize(path: str) -> str:
        return posixpath.normpath("/" + path.lstrip("/"))

    def _entry(self, path: str) -> _FileEntry:
        entry = self._files.get(self._normalize(path))
        if entry is None:
            raise FileNotFoundError(f"File does not exist: {path}")
        return entry

    def _status(self, path: str, entry: _FileEntry) -> FileStatus:
        return FileStatus(
            path=path,
            length=len(entry.data),
            block_size=entry.block_size,
            replication=entry.replication,
            modification_time=entry.modification_time
        )

    def _next_modification_time(self) -> float:
        # Strictly increasing so a rewrite always looks newer
        now = self._clock()
        if now <= self._last_mtime:
            now = self._last_mtime + 0.001
        self._last_mtime = now
        return now

    def _live_nodes(self) -> List[NodeInfo]:
        return [node for node_id, node in sorted(self._nodes.items())
                if node_id not in self._dead_nodes]

    def _choose_nodes(self, path: str, block_index: int, count: int,
                      exclude: Iterable[str] = ()) -> List[str]:
        excluded = set(exclude)
        candidates = [n for n in self._live_nodes() if n.node_id not in excluded]
        if self._block_placement is not None:
            chosen = [
                node_id for node_id in self._block_placement(
                    path, block_index, count, candidates)
                if node_id not in excluded
            ]
            return chosen[:count]
        chosen = []
        for i in range(len(candidates)):
            if len(chosen) == count:
                break
            chosen.append(candidates[(self._next_node + i) % len(candidates)].node_id)
        self._next_node += 1
        return chosen

    def _add_parents(self, path: str) -> None:
        parent = posixpath.dirname(path)
        while parent not in self._dirs:
            self._dirs.add(parent)
            parent = posixpath.dirname(parent)

    def get_file_status(self, path: str) -> FileStatus:
        path = self._normalize(path)
        with self._lock:
            if path in self._files:
                return self._status(path, self._files[path])
            if path in self._dirs:
                return FileStatus(path=path, is_dir=True)
        raise FileNotFoundError(f"File does not exist: {path}")

    def list_status(self, path: str) -> List[FileStatus]:
        path = self._normalize(path)
        with self._lock:
            if path in self._files:
                return [self._status(path, self._files[path])]
            if path not in self._dirs:
                raise FileNotFoundError(f"File does not exist: {path}")
            children = [
                self._status(p, e) for p, e in self._files.items()
                if posixpath.dirname(p) == path
            ]
            children.extend(
                FileStatus(path=d, is_dir=True) for d in self._dirs
                if d != "/" and posixpath.dirname(d) == path
            )
        return sorted(children, key=lambda s: s.path)

    def exists(self, path: str) -> bool:
        path = self._normalize(path)
        with self._lock:
            return path in self._files or path in self._dirs

    def read_block(self, path: str, block_index: int) -> bytes:
        with self._lock:
            entry = self._entry(path)
            if block_index < 0 or block_index >= entry.num_blocks:
                raise FileSystemError(
                    f"Block {block_index} out of range for {path} "
                    f"({entry.num_blocks} blocks)")
            if block_index in entry.corrupt:
                raise CorruptBlockError(path, block_index)
            if not [n for n in entry.replicas[block_index] if n not in self._dead_nodes]:
                raise MissingBlockError(path, block_index)
            start = block_index * entry.block_size
            return entry.data[start:start + entry.block_size]

    def read_file(self, path: str) -> bytes:
        with self._lock:
            entry = self._entry(path)
            return b"".join(self.read_block(path, i) for i in range(entry.num_blocks))

    def write_file(self, path: str, data: bytes, replication: int = 3,
                   block_size: Optional[int] = None,
                   overwrite: bool = True) -> FileStatus:
        path = self._normalize(path)
        block_size = block_size or self._default_block_size
        with self._lock:
            if path in self._dirs:
                raise FileSystemError(f"Path is a directory: {path}")
            if path in self._files and not overwrite:
                raise FileExistsError(f"File already exists: {path}")
            self._add_parents(path)
            entry = _FileEntry(
                data=bytes(data),
                block_size=block_size,
                replication=replication,
                modification_time=self._next_modification_time()
            )
            entry.replicas = [
                self._choose_nodes(path, i, replication) for i in range(entry.num_blocks)
            ]
            self._files[path] = entry
            logger.debug(f"Wrote {path}: {len(data)} bytes, {entry.num_blocks} blocks")
            return self._status(path, entry)

    def rename(self, src: str, dst: str) -> None:
        src, dst = self._normalize(src), self._normalize(dst)
        with self._lock:
            entry = self._entry(src)
            if dst in self._files or dst in self._dirs:
                raise FileExistsError(f"Destination already exists: {dst}")
            self._add_parents(dst)
            self._files[dst] = entry
            del self._files[src]

    def delete(self, path: str, recursive: bool = False) -> bool:
        path = self._normalize(path)
        with self._lock:
            if path in self._files:
                del self._files[path]
                return True
            if path not in self._dirs:
                return False
            prefix = path.rstrip("/") + "/"
            files = [p for p in self._files if p.startswith(prefix)]
            dirs = [d for d in self._dirs if d.startswith(prefix)]
            if (files or dirs) and not recursive:
                raise FileSystemError(f"Directory is not empty: {path}")
            for p in files:
                del self._files[p]
            self._dirs.difference_update(dirs)
            if path != "/":
                self._dirs.discard(path)
            return True

    def set_times(self, path: str, modification_time: float) -> None:
        with self._lock:
            self._entry(path).modification_time = modification_time

    def get_replication(self, path: str) -> int:
        with self._lock:
            return self._entry(path).replication

    def set_replication(self, path: str, replication: int) -> None:
        with self._lock:
            entry = self._entry(path)
            for index, nodes in enumerate(entry.replicas):
                if len(nodes) > replication:
                    del nodes[replication:]
                elif len(nodes) < replication:
                    nodes.extend(self._choose_nodes(
                        path, index, replication - len(nodes), exclude=nodes))
            entry.replication = replication

    def get_block_locations(self, path: str) -> List[BlockInfo]:
        path = self._normalize(path)
        with self._lock:
            entry = self._entry(path)
            blocks = []
            for index, nodes in enumerate(entry.replicas):
                offset = index * entry.block_size
                blocks.append(BlockInfo(
                    path=path,
                    block_index=index,
                    offset=offset,
                    length=min(entry.block_size, len(entry.data) - offset),
                    nodes=tuple(self._nodes[n] for n in nodes if n not in self._dead_nodes)
                ))
            return blocks

    def list_nodes(self) -> List[NodeInfo]:
        with self._lock:
            return self._live_nodes()

    def move_block_replica(self, path: str, block_index: int,
                           source_node: str, target_node: str) -> None:
        with self._lock:
            entry = self._entry(path)
            nodes = entry.replicas[block_index]
            if source_node not in nodes:
                raise FileSystemError(
                    f"{source_node} holds no replica of block {block_index} of {path}")
            if target_node in nodes:
                raise FileSystemError(
                    f"{target_node} already holds block {block_index} of {path}")
            if target_node not in self._nodes or target_node in self._dead_nodes:
                raise FileSystemError(f"Unknown or dead node: {target_node}")
            nodes[nodes.index(source_node)] = target_node
            logger.debug(f"Moved block {block_index} of {path} from {source_node} to {target_node}")

    def checksum(self, path: str, offset: int = 0,
                 length: Optional[int] = None) -> int:
        data = self.read_file(path)
        end = len(data) if length is None else offset + length
        return zlib.crc32(data[offset:end]) & 0xFFFFFFFF

    # Fault injection

    def corrupt_block(self, path: str, block_index: int, silent: bool = False) -> None:
        """Corrupt a block.

        A detected corruption makes reads of the block fail; a silent one
        flips its bytes so reads succeed with wrong data.
        """
        with self._lock:
            entry = self._entry(path)
            if not silent:
                entry.corrupt.add(block_index)
                return
            start = block_index * entry.block_size
            end = min(start + entry.block_size, len(entry.data))
            damaged = bytes(b ^ 0xFF for b in entry.data[start:end])
            entry.data = entry.data[:start] + damaged + entry.data[end:]

    def fail_node(self, node_id: str) -> None:
        """Take a node out of the cluster; its replicas become unreadable."""
        with self._lock:
            self._dead_nodes.add(node_id)

    def set_block_locations(self, path: str, block_index: int,
                            node_ids: List[str]) -> None:
        """Force the replica placement of a block."""
        with self._lock:
            self._entry(path).replicas[block_index] = list(node_ids)
