"""
Stripe geometry shared by the encoder, the placement monitor and recovery.

A file's blocks are grouped into consecutive stripes of stripe_length blocks;
the last stripe may be shorter. The parity file holds parity_length blocks
per stripe, in stripe order.
"""
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class Stripe:
    """Consecutive source blocks of one file plus their parity."""
    path: str
    index: int
    source_blocks: List[bytes]
    block_size: int
    parity_blocks: List[bytes] = field(default_factory=list)


def num_stripes(num_blocks: int, stripe_length: int) -> int:
    return (num_blocks + stripe_length - 1) // stripe_length


def stripe_block_range(stripe_index: int, stripe_length: int, num_blocks: int) -> range:
    """Source block indices belonging to a stripe."""
    start = stripe_index * stripe_length
    return range(start, min(start + stripe_length, num_blocks))


def parity_block_range(stripe_index: int, parity_length: int,
                       num_parity_blocks: Optional[int] = None) -> range:
    """Parity file block indices belonging to a stripe."""
    start = stripe_index * parity_length
    end = start + parity_length
    if num_parity_blocks is not None:
        end = min(end, num_parity_blocks)
    return range(start, end)


def stripe_index_for_offset(offset: int, stripe_length: int, block_size: int) -> int:
    return offset // (stripe_length * block_size)
