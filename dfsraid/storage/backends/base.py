"""
Base class for distributed file system backends.

The RAID node never talks to block storage directly; everything it needs from
the cluster goes through this interface.
"""

from abc import ABC, abstractmethod
from typing import List, Optional

from dfsraid.models import BlockInfo, FileStatus, NodeInfo


class FileSystemBackend(ABC):
    """Narrow view of a distributed file system used by the RAID node."""

    @abstractmethod
    def get_file_status(self, path: str) -> FileStatus:
        """Get the status of a file or directory.

        Raises:
            FileNotFoundError: If nothing exists at path
        """
        pass

    @abstractmethod
    def list_status(self, path: str) -> List[FileStatus]:
        """List the immediate children of a directory, sorted by path."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if a file or directory exists at path."""
        pass

    @abstractmethod
    def read_block(self, path: str, block_index: int) -> bytes:
        """Read one block of a file.

        Raises:
            BlockReadError: If no healthy replica of the block can be read
        """
        pass

    @abstractmethod
    def read_file(self, path: str) -> bytes:
        """Read the full content of a file."""
        pass

    @abstractmethod
    def write_file(self, path: str, data: bytes, replication: int = 3,
                   block_size: Optional[int] = None,
                   overwrite: bool = True) -> FileStatus:
        """Create or replace a file, creating parent directories as needed."""
        pass

    @abstractmethod
    def rename(self, src: str, dst: str) -> None:
        """Rename a file; fails if dst already exists."""
        pass

    @abstractmethod
    def delete(self, path: str, recursive: bool = False) -> bool:
        """Delete a file or directory. Returns False if nothing existed."""
        pass

    @abstractmethod
    def set_times(self, path: str, modification_time: float) -> None:
        """Set the modification time of a file."""
        pass

    @abstractmethod
    def get_replication(self, path: str) -> int:
        """Get the target replication factor of a file."""
        pass

    @abstractmethod
    def set_replication(self, path: str, replication: int) -> None:
        """Set the target replication factor of a file."""
        pass

    @abstractmethod
    def get_block_locations(self, path: str) -> List[BlockInfo]:
        """Get every block of a file with the live nodes hosting it."""
        pass

    @abstractmethod
    def list_nodes(self) -> List[NodeInfo]:
        """List the live storage nodes of the cluster."""
        pass

    @abstractmethod
    def move_block_replica(self, path: str, block_index: int,
                           source_node: str, target_node: str) -> None:
        """Relocate one replica of a block to a different node."""
        pass

    @abstractmethod
    def checksum(self, path: str, offset: int = 0,
                 length: Optional[int] = None) -> int:
        """CRC-32 of a byte range of a file."""
        pass
