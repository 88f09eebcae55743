"""Erasure codes and stripe geometry."""

from .erasure_code import ErasureCode, XORCode, ReedSolomonCode
from .stripe import (
    Stripe,
    num_stripes,
    stripe_block_range,
    parity_block_range,
    stripe_index_for_offset,
)
from .stripe_codec import StripeCodec, create_stripe_codec

__all__ = [
    'ErasureCode',
    'XORCode',
    'ReedSolomonCode',
    'Stripe',
    'num_stripes',
    'stripe_block_range',
    'parity_block_range',
    'stripe_index_for_offset',
    'StripeCodec',
    'create_stripe_codec',
]
