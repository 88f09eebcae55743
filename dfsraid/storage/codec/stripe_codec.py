"""Stripe-level encode/decode on top of an erasure code."""
import logging
from typing import Dict, Iterable, List, Mapping, Optional

import numpy as np

from dfsraid.models import ErasureCodeType
from .erasure_code import ErasureCode, ReedSolomonCode, XORCode
from .stripe import Stripe

logger = logging.getLogger(__name__)


def _to_array(block: bytes, block_size: int) -> np.ndarray:
    array = np.zeros(block_size, dtype=np.uint8)
    data = np.frombuffer(block, dtype=np.uint8)[:block_size]
    array[:len(data)] = data
    return array


class StripeCodec:
    """Encodes stripes into parity blocks and reconstructs lost blocks.

    Blocks shorter than the block size are zero padded, and a stripe with
    fewer than stripe_length source blocks behaves as if the missing tail
    blocks were all zero.
    """

    def __init__(self, code: ErasureCode):
        self.code = code

    @property
    def stripe_length(self) -> int:
        return self.code.stripe_length

    @property
    def parity_length(self) -> int:
        return self.code.parity_length

    def encode(self, stripe: Stripe) -> List[bytes]:
        """Compute parity for a stripe and attach it to the stripe."""
        if len(stripe.source_blocks) > self.stripe_length:
            raise ValueError(
                f"Stripe {stripe.index} of {stripe.path} has {len(stripe.source_blocks)} "
                f"blocks, stripe length is {self.stripe_length}")
        source = [_to_array(block, stripe.block_size) for block in stripe.source_blocks]
        while len(source) < self.stripe_length:
            source.append(np.zeros(stripe.block_size, dtype=np.uint8))
        stripe.parity_blocks = [parity.tobytes() for parity in self.code.encode(source)]
        return stripe.parity_blocks

    def decode(self, stripe_index: int, available: Mapping[int, bytes],
               missing: Iterable[int], num_source_blocks: Optional[int] = None,
               block_size: Optional[int] = None) -> Dict[int, bytes]:
        """Reconstruct missing blocks of a stripe from the available ones.

        Args:
            stripe_index: Index of the stripe within its file
            available: Stripe position -> block content for every readable block
            missing: Stripe positions to reconstruct
            num_source_blocks: Source blocks actually present in the stripe;
                positions past it are known to be zero
            block_size: Size of a full block, defaults to the longest block given

        Returns:
            Stripe position -> reconstructed block (full block size) for each
            missing position

        Raises:
            UnrecoverableStripeError: If more blocks are lost than parity_length
        """
        if num_source_blocks is None:
            num_source_blocks = self.stripe_length
        if block_size is None:
            block_size = max((len(b) for b in available.values()), default=0)

        missing = set(missing)
        for pos in missing:
            if pos < 0 or pos >= self.code.total_length:
                raise ValueError(f"Block position {pos} outside stripe")
        padding = set(range(num_source_blocks, self.stripe_length))
        wanted = sorted(missing - padding)

        blocks: List[Optional[np.ndarray]] = [None] * self.code.total_length
        for pos in padding:
            blocks[pos] = np.zeros(block_size, dtype=np.uint8)
        for pos, block in available.items():
            if pos not in missing and pos not in padding:
                blocks[pos] = _to_array(block, block_size)

        decoded = self.code.decode(blocks, wanted, stripe_index=stripe_index)
        logger.debug(f"Decoded stripe {stripe_index}: positions {wanted}")
        return {pos: block.tobytes() for pos, block in decoded.items()}


def create_stripe_codec(code_type: ErasureCodeType, stripe_length: int,
                        parity_length: int = 1) -> StripeCodec:
    """Factory function to get the codec for a policy's erasure code"""
    if code_type == ErasureCodeType.XOR:
        return StripeCodec(XORCode(stripe_length))
    return StripeCodec(ReedSolomonCode(stripe_length, parity_length))
