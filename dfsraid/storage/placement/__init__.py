"""Parity block placement auditing and repair."""

from .block_mover import BlockMover
from .placement_monitor import PlacementMonitor, PlacementViolation, count_blocks_on_each_node

__all__ = ['BlockMover', 'PlacementMonitor', 'PlacementViolation', 'count_blocks_on_each_node']
