"""
Arithmetic in GF(2^8) with the primitive polynomial x^8 + x^4 + x^3 + x^2 + 1.

Scalars are ints in [0, 255]; blocks are numpy uint8 arrays. Multiplying a
block by a scalar is a single lookup into a precomputed 256x256 table.
"""
from typing import List, Sequence

import numpy as np

PRIMITIVE_POLYNOMIAL = 0x11d
FIELD_SIZE = 256


def _build_tables():
    exp = np.zeros(2 * FIELD_SIZE, dtype=np.uint8)
    log = np.zeros(FIELD_SIZE, dtype=np.int32)
    x = 1
    for i in range(FIELD_SIZE - 1):
        exp[i] = x
        log[x] = i
        x <<= 1
        if x & 0x100:
            x ^= PRIMITIVE_POLYNOMIAL
    exp[FIELD_SIZE - 1:2 * (FIELD_SIZE - 1)] = exp[:FIELD_SIZE - 1]
    return exp, log


EXP_TABLE, LOG_TABLE = _build_tables()


def _build_mul_table() -> np.ndarray:
    logs = LOG_TABLE[np.arange(FIELD_SIZE)]
    table = EXP_TABLE[(logs[:, None] + logs[None, :]) % (FIELD_SIZE - 1)].astype(np.uint8)
    table[0, :] = 0
    table[:, 0] = 0
    return table


MUL_TABLE = _build_mul_table()


def mul(a: int, b: int) -> int:
    return int(MUL_TABLE[a, b])


def inverse(a: int) -> int:
    if a == 0:
        raise ZeroDivisionError("0 has no inverse in GF(2^8)")
    return int(EXP_TABLE[(FIELD_SIZE - 1) - LOG_TABLE[a]])


def div(a: int, b: int) -> int:
    return mul(a, inverse(b))


def mul_block(coefficient: int, block: np.ndarray) -> np.ndarray:
    """Multiply every byte of a block by a field element."""
    return MUL_TABLE[coefficient][block]


def dot_blocks(coefficients: Sequence[int], blocks: Sequence[np.ndarray]) -> np.ndarray:
    """Linear combination sum(c_i * block_i) of equally sized blocks."""
    result = np.zeros_like(blocks[0])
    for coefficient, block in zip(coefficients, blocks):
        if coefficient == 0:
            continue
        if coefficient == 1:
            result ^= block
        else:
            result ^= mul_block(coefficient, block)
    return result


def invert_matrix(matrix: Sequence[Sequence[int]]) -> List[List[int]]:
    """Invert a square matrix by Gauss-Jordan elimination.

    Raises:
        ValueError: If the matrix is singular
    """
    size = len(matrix)
    work = [list(row) + [1 if i == j else 0 for j in range(size)]
            for i, row in enumerate(matrix)]

    for col in range(size):
        pivot = next((r for r in range(col, size) if work[r][col] != 0), None)
        if pivot is None:
            raise ValueError("Matrix is singular over GF(2^8)")
        work[col], work[pivot] = work[pivot], work[col]

        scale = inverse(work[col][col])
        work[col] = [mul(scale, v) for v in work[col]]

        for r in range(size):
            factor = work[r][col]
            if r != col and factor != 0:
                work[r] = [v ^ mul(factor, p) for v, p in zip(work[r], work[col])]

    return [row[size:] for row in work]
