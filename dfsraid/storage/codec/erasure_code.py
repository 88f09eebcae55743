"""
Erasure codes operating on one stripe of equally sized blocks.

Block positions inside a stripe: source blocks are 0 .. stripe_length - 1,
parity blocks follow at stripe_length .. stripe_length + parity_length - 1.
"""
from abc import ABC, abstractmethod
from functools import reduce
from typing import Dict, List, Optional, Sequence

import numpy as np

from dfsraid.storage.errors import UnrecoverableStripeError
from . import galois


class ErasureCode(ABC):
    """Base class for systematic erasure codes."""

    def __init__(self, stripe_length: int, parity_length: int):
        if stripe_length < 1:
            raise ValueError(f"stripe_length must be positive, got {stripe_length}")
        if parity_length < 1:
            raise ValueError(f"parity_length must be positive, got {parity_length}")
        self.stripe_length = stripe_length
        self.parity_length = parity_length

    @property
    def total_length(self) -> int:
        return self.stripe_length + self.parity_length

    @abstractmethod
    def encode(self, source: Sequence[np.ndarray]) -> List[np.ndarray]:
        """Compute the parity blocks of stripe_length source blocks."""
        pass

    @abstractmethod
    def _reconstruct(self, blocks: List[Optional[np.ndarray]],
                     erased: List[int]) -> Dict[int, np.ndarray]:
        pass

    def decode(self, blocks: List[Optional[np.ndarray]], erased: Sequence[int],
               stripe_index: int = 0) -> Dict[int, np.ndarray]:
        """Reconstruct the erased positions of a stripe.

        Args:
            blocks: total_length entries, None where a block is unavailable
            erased: Positions to reconstruct
            stripe_index: Used in error reports only

        Raises:
            UnrecoverableStripeError: If more blocks are unavailable than the
                code tolerates
        """
        if len(blocks) != self.total_length:
            raise ValueError(
                f"Expected {self.total_length} block slots, got {len(blocks)}")
        unavailable = [pos for pos, block in enumerate(blocks) if block is None]
        unavailable_count = len(set(unavailable) | set(erased))
        if unavailable_count > self.parity_length:
            raise UnrecoverableStripeError(stripe_index, unavailable_count, self.parity_length)
        blocks = [None if pos in erased else block for pos, block in enumerate(blocks)]
        reconstructed = self._reconstruct(blocks, sorted(set(unavailable) | set(erased)))
        return {pos: reconstructed[pos] for pos in erased}


class XORCode(ErasureCode):
    """Single parity block: byte-wise XOR of the stripe."""

    def __init__(self, stripe_length: int):
        super().__init__(stripe_length, 1)

    def encode(self, source: Sequence[np.ndarray]) -> List[np.ndarray]:
        return [reduce(np.bitwise_xor, source)]

    def _reconstruct(self, blocks, erased):
        if not erased:
            return {}
        survivors = [block for block in blocks if block is not None]
        return {erased[0]: reduce(np.bitwise_xor, survivors)}


def cauchy_matrix(parity_length: int, stripe_length: int) -> List[List[int]]:
    """Parity rows P[i][j] = 1 / (x_i + y_j) with x_i = i, y_j = parity_length + j.

    Column j only depends on parity_length and j, so stripes encoded with a
    shorter stripe_length decode with the same coefficients.
    """
    if stripe_length + parity_length > galois.FIELD_SIZE:
        raise ValueError(
            f"stripe_length + parity_length must not exceed {galois.FIELD_SIZE}")
    return [
        [galois.inverse(i ^ (parity_length + j)) for j in range(stripe_length)]
        for i in range(parity_length)
    ]


class ReedSolomonCode(ErasureCode):
    """Systematic MDS code over GF(2^8) with a Cauchy parity matrix.

    Any parity_length erasures among the stripe's blocks are recoverable.
    """

    def __init__(self, stripe_length: int, parity_length: int):
        super().__init__(stripe_length, parity_length)
        self.parity_matrix = cauchy_matrix(parity_length, stripe_length)

    def _generator_row(self, position: int) -> List[int]:
        if position < self.stripe_length:
            return [1 if j == position else 0 for j in range(self.stripe_length)]
        return self.parity_matrix[position - self.stripe_length]

    def encode(self, source: Sequence[np.ndarray]) -> List[np.ndarray]:
        return [galois.dot_blocks(row, source) for row in self.parity_matrix]

    def _reconstruct(self, blocks, erased):
        k = self.stripe_length
        source: List[Optional[np.ndarray]] = list(blocks[:k])
        missing_source = [pos for pos in erased if pos < k]

        if missing_source:
            # Any k surviving rows of the generator form an invertible matrix
            survivors = [pos for pos, block in enumerate(blocks) if block is not None][:k]
            decoding = galois.invert_matrix([self._generator_row(pos) for pos in survivors])
            survivor_blocks = [blocks[pos] for pos in survivors]
            for pos in missing_source:
                source[pos] = galois.dot_blocks(decoding[pos], survivor_blocks)

        reconstructed = {pos: source[pos] for pos in missing_source}
        for pos in erased:
            if pos >= k:
                reconstructed[pos] = galois.dot_blocks(self.parity_matrix[pos - k], source)
        return reconstructed
