"""
File system backends consumed by the RAID node.
"""

from .base import FileSystemBackend
from .memory_backend import InMemoryFileSystem, default_cluster_nodes

__all__ = [
    "FileSystemBackend",
    "InMemoryFileSystem",
    "default_cluster_nodes",
]
