"""File encoding: the unit of work run by execution strategies."""

from .encoder import FileEncoder, EncodeResult

__all__ = ['FileEncoder', 'EncodeResult']
